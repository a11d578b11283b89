"""Submit one catalog entry through the new-state form, end to end."""
from __future__ import annotations

from typing import Optional

from . import config, form_tokens, submission
from .catalog import ScopeKey
from .error_codes import ErrorCode
from .http_client import HttpRequest, HttpResponse, RetryingHttpClient, SessionCredential
from .logging_utils import _provisioner_event
from .outcomes import Outcome, UnexpectedFailure, classify


class SubmissionWorkflow:
    """One GET of the form, one POST of the filled-in form, one classification.

    Token bundles live only inside a single :meth:`submit` call.
    """

    def __init__(
        self,
        client: RetryingHttpClient,
        credential: SessionCredential,
        *,
        base_url: Optional[str] = None,
        label_sentinel: Optional[str] = None,
        layout: submission.FormLayout = submission.DEFAULT_LAYOUT,
    ) -> None:
        self._client = client
        self._credential = credential
        self._base_url = (base_url if base_url is not None else config.BASE_URL).rstrip("/")
        self._label_sentinel = label_sentinel
        self._layout = layout

    def probe(self) -> HttpResponse:
        """GET the base endpoint once; transport failures propagate."""

        response = self._client.exchange(
            HttpRequest(
                method="GET",
                url=f"{self._base_url}/",
                headers=self._credential.as_headers(),
            )
        )
        _provisioner_event("state", phase="probe", http_status=response.status_code)
        return response

    def fetch_form(self, scope_key: ScopeKey) -> HttpResponse:
        return self._client.exchange(
            HttpRequest(
                method="GET",
                url=config.form_url(self._base_url),
                headers=self._credential.as_headers(),
                params={config.FORM_REGION_PARAM: scope_key.region_code},
            )
        )

    def submit(self, scope_key: ScopeKey, display_name: str) -> Outcome:
        page = self.fetch_form(scope_key)
        try:
            tokens = form_tokens.extract(page.text)
        except form_tokens.MalformedPageError as exc:
            _provisioner_event(
                "error",
                phase="extract_tokens",
                scope=str(scope_key),
                missing=exc.missing,
                http_status=page.status_code,
            )
            return UnexpectedFailure(page.text, error_code=ErrorCode.MALFORMED_PAGE)

        label = submission.compute_submission_label(
            display_name,
            scope_key.subdivision_code,
            self._label_sentinel,
        )
        body = submission.build(
            scope_key,
            label,
            scope_key.subdivision_code,
            display_name,
            tokens,
            layout=self._layout,
        )

        headers = dict(self._credential.as_headers())
        headers["Content-Type"] = config.FORM_CONTENT_TYPE
        response = self._client.exchange(
            HttpRequest(
                method="POST",
                url=config.form_url(self._base_url),
                headers=headers,
                body=body,
            )
        )

        outcome = classify(response.text, scope_key.region_code)
        _provisioner_event(
            "submit",
            scope=str(scope_key),
            submission_label=label,
            http_status=response.status_code,
            outcome=outcome.kind,
        )
        return outcome


__all__ = ["SubmissionWorkflow"]
