from __future__ import annotations

from typing import Optional

from . import config
from .error_codes import ErrorCode
from .logging_utils import _provisioner_event

# Transport-level failures only; the exchange is safe to repeat.
RETRYABLE_ERROR_CODES = {
    ErrorCode.NETWORK,
    ErrorCode.TIMEOUT,
}

NON_RETRYABLE_ERROR_CODES = {
    ErrorCode.MALFORMED_PAGE,
    ErrorCode.HANDLED,
    ErrorCode.UNEXPECTED,
    ErrorCode.ALREADY_RUNNING,
    ErrorCode.INTERNAL,
}


def compute_backoff_seconds(attempt_index: int) -> float:
    """Return the pause before retrying the given attempt (1-based)."""

    return float(max(0.0, config.HTTP_RETRY_BACKOFF_SECONDS) * max(1, attempt_index))


def decide_retry(
    attempt_index: int,
    max_attempts: int,
    error: BaseException | None = None,
    *,
    error_code: Optional[str] = None,
) -> bool:
    """Decide whether a failed exchange attempt should be retried."""

    code = (error_code or "").strip()

    if attempt_index >= max_attempts:
        _provisioner_event(
            "state",
            phase="retry_decision",
            kind="capped",
            attempt=attempt_index,
            max_attempts=max_attempts,
            error_code=code or None,
            will_retry=False,
        )
        return False

    if code in RETRYABLE_ERROR_CODES:
        _provisioner_event(
            "state",
            phase="retry_decision",
            kind="retryable",
            error_code=code,
            attempt=attempt_index,
            max_attempts=max_attempts,
            will_retry=True,
        )
        return True

    _provisioner_event(
        "state",
        phase="retry_decision",
        kind="non_retryable" if code in NON_RETRYABLE_ERROR_CODES else "no_retry_policy",
        error_code=code or None,
        attempt=attempt_index,
        max_attempts=max_attempts,
        will_retry=False,
        error_repr=repr(error) if error is not None else None,
    )
    return False


__all__ = [
    "decide_retry",
    "compute_backoff_seconds",
    "RETRYABLE_ERROR_CODES",
    "NON_RETRYABLE_ERROR_CODES",
]
