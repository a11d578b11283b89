"""Delivery of the completion report.

Each report is written once under ``REPORTS_DIR`` and, when a webhook URL is
configured, posted once as JSON. Delivery is never retried.
"""
from __future__ import annotations

import time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import requests

from . import config
from .logging_utils import _provisioner_event
from .utils import log_line


@dataclass
class Report:
    job_id: int
    subject: str
    body: str


class Notifier:
    def __init__(
        self,
        *,
        reports_dir: Optional[Path] = None,
        webhook_url: Optional[str] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.reports_dir = Path(reports_dir if reports_dir is not None else config.REPORTS_DIR)
        self.webhook_url = config.NOTIFY_WEBHOOK_URL if webhook_url is None else webhook_url
        self._session = session

    def send(self, report: Report) -> Path:
        self.reports_dir.mkdir(parents=True, exist_ok=True)
        stamp = time.strftime("%Y%m%d_%H%M%S")
        path = self.reports_dir / f"job_{report.job_id}_{stamp}.txt"
        path.write_text(f"{report.subject}\n\n{report.body}\n", encoding="utf-8")
        log_line(f"[REPORT] {report.subject} -> {path}")

        if self.webhook_url:
            self._post_webhook(report)
        return path

    def _post_webhook(self, report: Report) -> None:
        poster = self._session or requests
        try:
            response = poster.post(
                self.webhook_url,
                json={"job_id": report.job_id, "subject": report.subject, "body": report.body},
                timeout=config.NOTIFY_TIMEOUT_SECONDS,
            )
            ok = response.status_code < 400
            _provisioner_event(
                "report",
                phase="webhook",
                job_id=report.job_id,
                http_status=response.status_code,
                ok=ok,
            )
        except requests.RequestException as exc:
            _provisioner_event("error", phase="webhook", job_id=report.job_id, error=str(exc))
            log_line(f"[REPORT][WARN] Webhook delivery failed for job {report.job_id}: {exc}")


__all__ = ["Notifier", "Report"]
