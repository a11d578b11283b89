from __future__ import annotations

from typing import Any, Callable

import pytest
import requests

from app.provisioner import http_client
from app.provisioner.http_client import HttpRequest, RetryingHttpClient, SessionCredential

TOKENS = {
    "ViewState": "vs-123",
    "ViewStateMAC": "mac-456",
    "ViewStateCSRF": "csrf-789",
    "ViewStateVersion": "ver-000",
}


def form_page(tokens: dict[str, str] | None = None) -> str:
    values = TOKENS if tokens is None else tokens
    inputs = "\n".join(
        f'<input type="hidden" id="com.salesforce.visualforce.{name}" '
        f'name="com.salesforce.visualforce.{name}" value="{value}" />'
        for name, value in values.items()
    )
    return f"<html><body><form id=\"configurenew\">{inputs}</form></body></html>"


class FakeResponse:
    def __init__(self, text: str, status_code: int = 200, url: str = "") -> None:
        self.text = text
        self.status_code = status_code
        self.content = text.encode("utf-8")
        self.url = url


class FakeSession:
    """Stands in for ``requests.Session``; ``handler`` decides each reply.

    A handler may return a string body, a ``FakeResponse`` or an exception
    instance, which is raised.
    """

    def __init__(self, handler: Callable[[str, str, dict], Any]) -> None:
        self.handler = handler
        self.calls: list[tuple[str, str, dict]] = []

    def request(self, method: str, url: str, **kwargs: Any) -> FakeResponse:
        self.calls.append((method, url, kwargs))
        result = self.handler(method, url, kwargs)
        if isinstance(result, BaseException):
            raise result
        if isinstance(result, FakeResponse):
            return result
        return FakeResponse(str(result), url=url)


def scripted(*results: Any) -> FakeSession:
    queue = list(results)
    return FakeSession(lambda *_: queue.pop(0))


def _request() -> HttpRequest:
    return HttpRequest(method="GET", url="https://admin.example.com/i18n/ConfigureNewState")


def test_exchange_returns_first_response_without_retry() -> None:
    session = scripted("<html>ok</html>")
    client = RetryingHttpClient(session, sleep=lambda _: None)

    response = client.exchange(_request())

    assert response.status_code == 200
    assert response.text == "<html>ok</html>"
    assert len(session.calls) == 1
    assert session.calls[0][2]["timeout"] == 60
    assert session.calls[0][2]["allow_redirects"] is False


def test_transport_failure_then_success_matches_first_try_result() -> None:
    first_try = RetryingHttpClient(scripted("body"), sleep=lambda _: None).exchange(_request())

    session = scripted(requests.ConnectionError("reset"), "body")
    retried = RetryingHttpClient(session, sleep=lambda _: None).exchange(_request())

    assert len(session.calls) == 2
    assert retried == first_try


def test_timeout_is_retried_once_then_propagates_untransformed() -> None:
    second = requests.Timeout("read timed out again")
    session = scripted(requests.Timeout("read timed out"), second)
    client = RetryingHttpClient(session, sleep=lambda _: None)

    with pytest.raises(requests.Timeout) as excinfo:
        client.exchange(_request())

    assert excinfo.value is second
    assert len(session.calls) == 2


def test_application_error_response_is_not_retried() -> None:
    session = scripted(FakeResponse("<h1>Server error</h1>", status_code=500))
    client = RetryingHttpClient(session, sleep=lambda _: None)

    response = client.exchange(_request())

    assert response.status_code == 500
    assert len(session.calls) == 1


def test_non_transport_exception_is_not_retried() -> None:
    session = scripted(requests.TooManyRedirects("loop"), "never used")
    client = RetryingHttpClient(session, sleep=lambda _: None)

    with pytest.raises(requests.TooManyRedirects):
        client.exchange(_request())
    assert len(session.calls) == 1


def test_body_is_utf8_encoded_and_headers_forwarded() -> None:
    session = scripted("ok")
    client = RetryingHttpClient(session, sleep=lambda _: None)
    credential = SessionCredential("abc")

    client.exchange(
        HttpRequest(
            method="POST",
            url="https://admin.example.com/i18n/ConfigureNewState",
            headers=credential.as_headers(),
            body="name=%C4%B0stanbul",
            timeout=5,
        )
    )

    _, _, kwargs = session.calls[0]
    assert kwargs["data"] == b"name=%C4%B0stanbul"
    assert kwargs["headers"] == {"Cookie": "sid=abc"}
    assert kwargs["timeout"] == 5


def test_retry_sleeps_configured_backoff(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(http_client.config, "HTTP_RETRY_BACKOFF_SECONDS", 0.5)
    pauses: list[float] = []
    session = scripted(requests.ConnectionError("down"), "ok")

    RetryingHttpClient(session, sleep=pauses.append).exchange(_request())

    assert pauses == [0.5]


def test_max_attempts_above_one_retry_is_clamped() -> None:
    session = scripted(
        requests.ConnectionError("one"),
        requests.ConnectionError("two"),
        "never used",
    )
    client = RetryingHttpClient(session, max_attempts=5, sleep=lambda _: None)

    with pytest.raises(requests.ConnectionError):
        client.exchange(_request())
    assert len(session.calls) == 2
