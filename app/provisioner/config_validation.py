from __future__ import annotations

from typing import Literal

from . import config
from .logging_utils import _provisioner_event
from .utils import log_line

Entrypoint = Literal["api", "cli", "tests"]

_LIVE_ENTRYPOINTS = {"api", "cli"}


def _raise_config_error(message: str, *, entrypoint: Entrypoint, error: str) -> None:
    _provisioner_event(
        "error",
        phase="config",
        context="runtime_validation",
        error=error,
        entrypoint=entrypoint,
    )
    log_line(f"[CONFIG] {message} (entrypoint={entrypoint})")
    raise ValueError(message)


def validate_runtime_config(entrypoint: Entrypoint, *, base_url: str | None = None) -> None:
    """Validate runtime configuration for the given entrypoint.

    Raises ``ValueError`` when a blocking misconfiguration is detected.
    Non-fatal adjustments (e.g., clamping the chunk size) are logged but do
    not raise.
    """

    effective_base_url = (base_url if base_url is not None else config.BASE_URL).strip()

    if entrypoint in _LIVE_ENTRYPOINTS:
        if not effective_base_url.lower().startswith(("http://", "https://")):
            _raise_config_error(
                "PROVISIONER_BASE_URL must be an http(s) URL.",
                entrypoint=entrypoint,
                error="base_url_invalid",
            )
        if not config.SESSION_ID:
            _raise_config_error(
                "PROVISIONER_SESSION_ID must be set to an authenticated session id.",
                entrypoint=entrypoint,
                error="session_id_missing",
            )

    if config.CHUNK_SIZE < 1:
        adjusted = 1
        _provisioner_event(
            "state",
            phase="config",
            context="runtime_validation",
            kind="config_adjustment",
            field="CHUNK_SIZE",
            value=config.CHUNK_SIZE,
            adjusted=adjusted,
            entrypoint=entrypoint,
        )
        log_line("[CONFIG] CHUNK_SIZE < 1; clamping to 1.")
        config.CHUNK_SIZE = adjusted

    if config.UNIT_MAX_ATTEMPTS < 1:
        adjusted = 1
        _provisioner_event(
            "state",
            phase="config",
            context="runtime_validation",
            kind="config_adjustment",
            field="UNIT_MAX_ATTEMPTS",
            value=config.UNIT_MAX_ATTEMPTS,
            adjusted=adjusted,
            entrypoint=entrypoint,
        )
        log_line("[CONFIG] UNIT_MAX_ATTEMPTS < 1; clamping to 1.")
        config.UNIT_MAX_ATTEMPTS = adjusted

    if config.HTTP_TIMEOUT_SECONDS <= 0:
        _raise_config_error(
            "HTTP_TIMEOUT_SECONDS must be greater than zero.",
            entrypoint=entrypoint,
            error="invalid_timeout",
        )

    if config.HTTP_RETRY_BACKOFF_SECONDS < 0:
        _raise_config_error(
            "HTTP_RETRY_BACKOFF_SECONDS must be non-negative.",
            entrypoint=entrypoint,
            error="invalid_backoff",
        )

    if not config.LABEL_SENTINEL.strip():
        _raise_config_error(
            "LABEL_SENTINEL must not be empty.",
            entrypoint=entrypoint,
            error="label_sentinel_empty",
        )


__all__ = ["validate_runtime_config", "Entrypoint"]
