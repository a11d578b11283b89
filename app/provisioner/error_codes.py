from __future__ import annotations

"""Centralised error code taxonomy for provisioning outcomes.

These codes are persisted in the outcomes.error_code column and included in
structured logs so that a run can be explained after the fact. Keep them
stable for reporting.
"""


class ErrorCode:
    NETWORK = "network_error"
    TIMEOUT = "timeout"
    MALFORMED_PAGE = "malformed_page"
    HANDLED = "handled_failure"
    UNEXPECTED = "unexpected_failure"
    ALREADY_RUNNING = "already_running"
    INTERNAL = "internal_error"


__all__ = ["ErrorCode"]
