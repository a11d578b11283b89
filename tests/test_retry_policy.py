from __future__ import annotations

import pytest

from app.provisioner import retry_policy
from app.provisioner.error_codes import ErrorCode


@pytest.fixture
def event_recorder(monkeypatch: pytest.MonkeyPatch) -> list[tuple[str, dict]]:
    events: list[tuple[str, dict]] = []

    def _record(event_label: str, **fields: object) -> None:
        events.append((event_label, fields))

    monkeypatch.setattr(retry_policy, "_provisioner_event", _record)
    return events


@pytest.mark.parametrize(
    "attempt, expected, kind",
    [
        (1, True, "retryable"),
        (2, False, "capped"),
        (3, False, "capped"),
    ],
)
@pytest.mark.parametrize("error_code", [ErrorCode.NETWORK, ErrorCode.TIMEOUT])
def test_transport_errors_retry_exactly_once(
    attempt: int,
    expected: bool,
    kind: str,
    error_code: str,
    event_recorder: list[tuple[str, dict]],
) -> None:
    result = retry_policy.decide_retry(attempt, 2, error_code=error_code)
    assert result is expected
    assert len(event_recorder) == 1
    label, fields = event_recorder[0]
    assert label == "state"
    assert fields["phase"] == "retry_decision"
    assert fields["attempt"] == attempt
    assert fields["max_attempts"] == 2
    assert fields["will_retry"] is expected
    assert fields["kind"] == kind


@pytest.mark.parametrize(
    "error_code",
    [ErrorCode.MALFORMED_PAGE, ErrorCode.HANDLED, ErrorCode.UNEXPECTED, ErrorCode.INTERNAL],
)
def test_non_retryable_error_codes(error_code: str, event_recorder: list[tuple[str, dict]]) -> None:
    assert error_code in retry_policy.NON_RETRYABLE_ERROR_CODES
    assert retry_policy.decide_retry(1, 2, error_code=error_code) is False
    _, fields = event_recorder[0]
    assert fields["kind"] == "non_retryable"
    assert fields["will_retry"] is False


@pytest.mark.parametrize("error_code", ["", None, "mystery"])
def test_unknown_error_codes_are_not_retried(
    error_code: str | None, event_recorder: list[tuple[str, dict]]
) -> None:
    assert retry_policy.decide_retry(1, 2, error_code=error_code) is False
    _, fields = event_recorder[0]
    assert fields["kind"] == "no_retry_policy"


def test_backoff_scales_with_attempt(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(retry_policy.config, "HTTP_RETRY_BACKOFF_SECONDS", 1.5)
    assert retry_policy.compute_backoff_seconds(1) == 1.5
    assert retry_policy.compute_backoff_seconds(2) == 3.0
