"""Form-encoded POST bodies for the new-state form."""
from __future__ import annotations

import urllib.parse
from dataclasses import dataclass

from . import config
from .catalog import ScopeKey
from .form_tokens import FormTokenBundle


@dataclass(frozen=True)
class FormLayout:
    """Input names the remote form registered when it rendered the GET page."""

    form_id: str = "configurenew"
    add_button: str = "configurenew:j_id1:blockNew:j_id9:addButton"
    add_button_value: str = "Add"
    label_field: str = "configurenew:j_id1:blockNew:j_id9:nameSectionItem:editName"
    code_field: str = "configurenew:j_id1:blockNew:j_id9:codeSectionItem:editIsoCode"
    value_field: str = "configurenew:j_id1:blockNew:j_id9:intValSectionItem:editIntVal"
    active_field: str = "configurenew:j_id1:blockNew:j_id9:activeSectionItem:editActive"


DEFAULT_LAYOUT = FormLayout()


def compute_submission_label(
    display_name: str,
    subdivision_code: str,
    sentinel: str | None = None,
) -> str:
    """Return the label to submit for an entry.

    The remote form rejects a label that contains the entry's own code, so
    such names are replaced with ``sentinel`` (``config.LABEL_SENTINEL`` by
    default).
    """

    if subdivision_code and subdivision_code in display_name:
        return config.LABEL_SENTINEL if sentinel is None else sentinel
    return display_name


def build_form_fields(
    scope_key: ScopeKey,
    submission_label: str,
    subdivision_code: str,
    display_name: str,
    tokens: FormTokenBundle,
    *,
    layout: FormLayout = DEFAULT_LAYOUT,
) -> list[tuple[str, str]]:
    """Return the ordered key/value pairs posted for ``scope_key``."""

    fields: list[tuple[str, str]] = [
        (layout.form_id, layout.form_id),
        (layout.add_button, layout.add_button_value),
        (layout.label_field, submission_label),
        (layout.code_field, subdivision_code),
        (layout.value_field, display_name),
        (layout.active_field, "true"),
    ]
    fields.extend(tokens.as_form_fields().items())
    return fields


def build(
    scope_key: ScopeKey,
    submission_label: str,
    subdivision_code: str,
    display_name: str,
    tokens: FormTokenBundle,
    *,
    layout: FormLayout = DEFAULT_LAYOUT,
) -> str:
    """Return the UTF-8 ``application/x-www-form-urlencoded`` body."""

    fields = build_form_fields(
        scope_key,
        submission_label,
        subdivision_code,
        display_name,
        tokens,
        layout=layout,
    )
    return urllib.parse.urlencode(fields, encoding="utf-8")


__all__ = ["DEFAULT_LAYOUT", "FormLayout", "build", "build_form_fields", "compute_submission_label"]
