"""HTTP exchange with a bounded timeout and a single transport-level retry."""
from __future__ import annotations

import time
import urllib.parse
from dataclasses import dataclass, field
from typing import Callable, Mapping, Optional

import requests

from . import config
from .error_codes import ErrorCode
from .logging_utils import _provisioner_event
from .retry_policy import compute_backoff_seconds, decide_retry


@dataclass(frozen=True)
class SessionCredential:
    """An already-established session, sent as a cookie on every exchange."""

    value: str
    cookie_name: str = "sid"

    def as_headers(self) -> dict[str, str]:
        return {"Cookie": f"{self.cookie_name}={self.value}"}


@dataclass(frozen=True)
class HttpRequest:
    method: str
    url: str
    headers: Mapping[str, str] = field(default_factory=dict)
    params: Optional[Mapping[str, str]] = None
    body: Optional[str] = None
    timeout: Optional[int] = None


@dataclass
class HttpResponse:
    status_code: int
    text: str
    url: str


def _redact_url(url: str) -> str:
    try:
        parsed = urllib.parse.urlparse(url)
        return urllib.parse.urlunparse(parsed._replace(query=""))
    except Exception:
        return url


def _transport_error_code(exc: requests.RequestException) -> str:
    if isinstance(exc, requests.Timeout):
        return ErrorCode.TIMEOUT
    return ErrorCode.NETWORK


def build_http_session() -> requests.Session:
    """Return a requests session carrying the common browser-like headers."""

    session = requests.Session()
    session.headers.update(config.COMMON_HEADERS)
    return session


class RetryingHttpClient:
    """Perform one logical exchange, retrying once on connection/timeout errors.

    Application-level responses are returned as-is whatever their status code;
    only ``requests.ConnectionError`` and ``requests.Timeout`` are retried. When
    the retry fails too, the original ``requests`` exception propagates.
    """

    def __init__(
        self,
        session: Optional[requests.Session] = None,
        *,
        max_attempts: int = config.HTTP_MAX_ATTEMPTS,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._session = session if session is not None else build_http_session()
        self._max_attempts = min(config.HTTP_MAX_ATTEMPTS, max(1, max_attempts))
        self._sleep = sleep

    def exchange(self, request: HttpRequest) -> HttpResponse:
        timeout = request.timeout or config.HTTP_TIMEOUT_SECONDS
        data = request.body.encode("utf-8") if request.body is not None else None
        safe_url = _redact_url(request.url)

        attempt = 1
        while True:
            try:
                response = self._session.request(
                    request.method,
                    request.url,
                    headers=dict(request.headers),
                    params=dict(request.params) if request.params else None,
                    data=data,
                    timeout=timeout,
                    allow_redirects=False,
                )
            except (requests.ConnectionError, requests.Timeout) as exc:
                error_code = _transport_error_code(exc)
                should_retry = decide_retry(
                    attempt_index=attempt,
                    max_attempts=self._max_attempts,
                    error=exc,
                    error_code=error_code,
                )
                backoff = compute_backoff_seconds(attempt)
                _provisioner_event(
                    "http",
                    phase="exchange_retry",
                    method=request.method,
                    url=safe_url,
                    attempt=attempt,
                    max_attempts=self._max_attempts,
                    error_code=error_code,
                    will_retry=should_retry,
                    backoff_seconds=backoff if should_retry else None,
                    error_message=str(exc),
                )
                if not should_retry:
                    raise
                if backoff:
                    self._sleep(backoff)
                attempt += 1
                continue

            _provisioner_event(
                "http",
                phase="exchange",
                method=request.method,
                url=safe_url,
                attempt=attempt,
                http_status=response.status_code,
                bytes=len(response.content or b""),
            )
            return HttpResponse(
                status_code=response.status_code,
                text=response.text,
                url=str(response.url or request.url),
            )


__all__ = [
    "HttpRequest",
    "HttpResponse",
    "RetryingHttpClient",
    "SessionCredential",
    "build_http_session",
]
