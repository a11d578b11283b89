"""Job registry backed by the ``jobs`` table.

The batch job only asks two things of the registry: whether a run of its
type is active, and to register/unregister its own run. The check and the
insert happen in a single SQLite write transaction.
"""
from __future__ import annotations

import json
from typing import Any, Mapping, Optional

from . import db
from .logging_utils import _provisioner_event


class JobStatus:
    RUNNING = "running"
    FINISHED = "finished"
    FAILED = "failed"
    ABORTED = "aborted"


TERMINAL_STATUSES = {JobStatus.FINISHED, JobStatus.FAILED, JobStatus.ABORTED}


class AlreadyRunningError(Exception):
    def __init__(self, job_type: str, active_job_id: Optional[int] = None) -> None:
        detail = f" (job_id={active_job_id})" if active_job_id is not None else ""
        super().__init__(f"A {job_type} run is already active{detail}")
        self.job_type = job_type
        self.active_job_id = active_job_id


class JobNotFoundError(Exception):
    pass


class JobRegistry:
    def __init__(self) -> None:
        db.initialize_schema()

    def is_active(self, job_type: str) -> bool:
        return db.get_active_job(job_type) is not None

    def active_job_id(self, job_type: str) -> Optional[int]:
        row = db.get_active_job(job_type)
        return int(row["id"]) if row else None

    def register(
        self,
        job_type: str,
        *,
        trigger: str = "cli",
        params: Mapping[str, Any] | None = None,
        total_scopes: int = 0,
    ) -> int:
        """Record a new running job and return its id.

        Raises ``AlreadyRunningError`` when a run of ``job_type`` is active.
        """

        job_id = db.create_job_if_idle(
            job_type,
            trigger,
            json.dumps(dict(params or {}), sort_keys=True, default=str),
            total_scopes,
        )
        if job_id is None:
            raise AlreadyRunningError(job_type, self.active_job_id(job_type))
        _provisioner_event("registry", phase="register", job_type=job_type, job_id=job_id)
        return job_id

    def unregister(
        self,
        job_id: int,
        *,
        status: str = JobStatus.FINISHED,
        error_summary: Optional[str] = None,
        report_text: Optional[str] = None,
    ) -> None:
        if status not in TERMINAL_STATUSES:
            raise ValueError(f"Cannot unregister job {job_id} with status {status!r}")
        self._require(job_id)
        db.set_job_status(job_id, status, error_summary=error_summary, report_text=report_text)
        _provisioner_event("registry", phase="unregister", job_id=job_id, status=status)

    def abort(self, job_id: int) -> bool:
        """Mark a running job aborted. Returns False if it had already ended."""

        row = self._require(job_id)
        if row["status"] != JobStatus.RUNNING:
            return False
        db.set_job_status(job_id, JobStatus.ABORTED, error_summary="aborted")
        _provisioner_event("registry", phase="abort", job_id=job_id)
        return True

    def is_aborted(self, job_id: int) -> bool:
        return self.status(job_id) == JobStatus.ABORTED

    def status(self, job_id: int) -> str:
        return str(self._require(job_id)["status"])

    def get(self, job_id: int) -> dict[str, Any]:
        return dict(self._require(job_id))

    def _require(self, job_id: int):
        row = db.get_job(job_id)
        if row is None:
            raise JobNotFoundError(f"Job {job_id} not found")
        return row


__all__ = [
    "AlreadyRunningError",
    "JobNotFoundError",
    "JobRegistry",
    "JobStatus",
    "TERMINAL_STATUSES",
]
