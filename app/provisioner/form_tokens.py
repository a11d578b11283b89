"""Textual extraction of the view-state tokens from the new-state form page."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from . import config

VIEW_STATE = "ViewState"
VIEW_STATE_MAC = "ViewStateMAC"
VIEW_STATE_CSRF = "ViewStateCSRF"
VIEW_STATE_VERSION = "ViewStateVersion"

TOKEN_NAMES = (VIEW_STATE, VIEW_STATE_MAC, VIEW_STATE_CSRF, VIEW_STATE_VERSION)


class MalformedPageError(Exception):
    """Raised when the form page lacks one or more view-state tokens."""

    def __init__(self, missing: list[str]) -> None:
        super().__init__(f"Form page is missing token(s): {', '.join(missing)}")
        self.missing = missing


@dataclass(frozen=True)
class FormTokenBundle:
    """View-state tokens scraped from one GET; good for exactly one POST."""

    view_state: str
    view_state_mac: str
    view_state_csrf: str
    view_state_version: str

    def as_form_fields(self, prefix: str | None = None) -> dict[str, str]:
        field_prefix = config.VIEW_STATE_FIELD_PREFIX if prefix is None else prefix
        return {
            f"{field_prefix}{VIEW_STATE}": self.view_state,
            f"{field_prefix}{VIEW_STATE_MAC}": self.view_state_mac,
            f"{field_prefix}{VIEW_STATE_CSRF}": self.view_state_csrf,
            f"{field_prefix}{VIEW_STATE_VERSION}": self.view_state_version,
        }


def token_marker(name: str, prefix: str | None = None) -> str:
    """Return the opening marker that precedes the value of token ``name``."""

    field_prefix = config.VIEW_STATE_FIELD_PREFIX if prefix is None else prefix
    return f'name="{field_prefix}{name}" value="'


def _value_after(html_body: str, marker: str) -> Optional[str]:
    start = html_body.find(marker)
    if start < 0:
        return None
    start += len(marker)
    end = html_body.find('"', start)
    if end < 0:
        return None
    return html_body[start:end]


def extract(html_body: str, *, prefix: str | None = None) -> FormTokenBundle:
    """Return the four tokens found in ``html_body``.

    Each value is the text between ``name="<prefix><Name>" value="`` and the
    next double quote. Raises ``MalformedPageError`` naming every missing
    token; no partial bundle is ever returned.
    """

    values: dict[str, str] = {}
    missing: list[str] = []
    for name in TOKEN_NAMES:
        value = _value_after(html_body or "", token_marker(name, prefix))
        if value is None:
            missing.append(name)
        else:
            values[name] = value

    if missing:
        raise MalformedPageError(missing)

    return FormTokenBundle(
        view_state=values[VIEW_STATE],
        view_state_mac=values[VIEW_STATE_MAC],
        view_state_csrf=values[VIEW_STATE_CSRF],
        view_state_version=values[VIEW_STATE_VERSION],
    )


__all__ = ["FormTokenBundle", "MalformedPageError", "TOKEN_NAMES", "extract", "token_marker"]
