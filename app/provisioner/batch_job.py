"""Single-flight batch job that provisions every catalog scope once.

State machine: ``idle -> running -> finished``. ``start`` refuses to run when
the registry reports an active job of the same type, probes the remote
system, then snapshots the ordered scope list. Units of work are fed in
through ``process_unit``; ``finish`` emits exactly one report.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional, Set

from . import config, db
from .artifacts import ArtifactStore
from .catalog import ScopeKey, normalize_catalog
from .error_codes import ErrorCode
from .job_registry import AlreadyRunningError, JobRegistry, JobStatus
from .logging_utils import _provisioner_event
from .notifier import Notifier, Report
from .outcomes import HandledFailure, Outcome, UnexpectedFailure, outcome_error_code
from .telemetry import RunTelemetry
from .utils import log_line
from .workflow import SubmissionWorkflow

NO_HANDLED_EXCEPTIONS_MESSAGE = "No handled exceptions occurred during the run."


class JobState:
    IDLE = "idle"
    RUNNING = "running"
    FINISHED = "finished"


class JobStateError(RuntimeError):
    pass


@dataclass
class RunState:
    handled_messages: List[str] = field(default_factory=list)


def format_handled_message(scope_key: ScopeKey, message: str) -> str:
    return (
        f"region: {scope_key.region_code}, "
        f"subdivision: {scope_key.subdivision_code} — {message}"
    )


def build_report(handled_messages: Iterable[str]) -> str:
    messages = list(handled_messages)
    if not messages:
        return NO_HANDLED_EXCEPTIONS_MESSAGE
    return "\n".join(messages)


class BatchJob:
    def __init__(
        self,
        catalog: Mapping[str, str],
        workflow: SubmissionWorkflow,
        *,
        registry: Optional[JobRegistry] = None,
        notifier: Optional[Notifier] = None,
        artifacts_root: Optional[Path] = None,
        job_type: str = config.JOB_TYPE,
        trigger: str = "cli",
    ) -> None:
        self._catalog = catalog
        self._workflow = workflow
        self._registry = registry if registry is not None else JobRegistry()
        self._notifier = notifier if notifier is not None else Notifier()
        self._artifacts_root = artifacts_root
        self.job_type = job_type
        self.trigger = trigger

        self.state = JobState.IDLE
        self.job_id: Optional[int] = None
        self.run_state = RunState()
        self.scope_keys: List[ScopeKey] = []
        self.report: Optional[Report] = None
        self._processed: Set[ScopeKey] = set()
        self._display_names: Dict[ScopeKey, str] = {}
        self._artifacts: Optional[ArtifactStore] = None
        self._telemetry: Optional[RunTelemetry] = None

    # -- idle -> running -------------------------------------------------

    def start(self) -> int:
        if self.state != JobState.IDLE:
            raise JobStateError(f"Job already {self.state}")

        if self._registry.is_active(self.job_type):
            active_id = self._registry.active_job_id(self.job_type)
            _provisioner_event(
                "error",
                phase="start",
                job_type=self.job_type,
                active_job_id=active_id,
                error_code=ErrorCode.ALREADY_RUNNING,
            )
            raise AlreadyRunningError(self.job_type, active_id)

        job_id = self._registry.register(
            self.job_type,
            trigger=self.trigger,
            params={"catalog_size": len(self._catalog)},
            total_scopes=len(self._catalog),
        )
        self.job_id = job_id
        self.state = JobState.RUNNING

        try:
            self._workflow.probe()
            self._display_names = {
                ScopeKey.parse(key): name for key, name in normalize_catalog(self._catalog).items()
            }
            self.scope_keys = list(self._display_names)
        except Exception as exc:
            log_line(f"[JOB] Job {job_id} failed to start: {exc}")
            self._registry.unregister(job_id, status=JobStatus.FAILED, error_summary=str(exc)[:200])
            self.state = JobState.FINISHED
            raise

        self._artifacts = ArtifactStore(job_id, self._artifacts_root)
        self._telemetry = RunTelemetry(job_id)
        _provisioner_event("plan", job_id=job_id, scopes=len(self.scope_keys))
        return job_id

    # -- running ---------------------------------------------------------

    def process_unit(self, unit: Iterable[ScopeKey]) -> List[Outcome]:
        """Submit each scope of ``unit`` in order.

        Handled and unexpected failures never stop the unit. A transport
        error that survived its single retry propagates to the caller; scopes
        completed before it keep their outcomes and are skipped if the unit
        is delivered again.
        """

        self._require_running()
        outcomes: List[Outcome] = []
        for scope_key in unit:
            if scope_key in self._processed:
                _provisioner_event("state", phase="skip_processed", job_id=self.job_id, scope=str(scope_key))
                continue
            display_name = self._display_names[scope_key]
            outcome = self._workflow.submit(scope_key, display_name)
            self._processed.add(scope_key)
            self._record(scope_key, outcome)
            outcomes.append(outcome)

        self._telemetry.unit_done()
        return outcomes

    def _record(self, scope_key: ScopeKey, outcome: Outcome) -> None:
        message: Optional[str] = None
        artifact_path: Optional[str] = None

        if isinstance(outcome, HandledFailure):
            message = outcome.message
            self.run_state.handled_messages.append(format_handled_message(scope_key, outcome.message))
        elif isinstance(outcome, UnexpectedFailure):
            artifact_path = str(self._artifacts.save(scope_key, outcome.raw_body))

        self._telemetry.add(outcome.kind)
        db.record_outcome(
            self.job_id,
            scope_key=str(scope_key),
            region_code=scope_key.region_code,
            subdivision_code=scope_key.subdivision_code,
            kind=outcome.kind,
            message=message,
            error_code=outcome_error_code(outcome),
            artifact_path=artifact_path,
        )

    def pending_scope_keys(self) -> List[ScopeKey]:
        return [key for key in self.scope_keys if key not in self._processed]

    def is_aborted(self) -> bool:
        if self.job_id is None:
            return False
        return self._registry.is_aborted(self.job_id)

    def abort(self) -> bool:
        self._require_running()
        return self._registry.abort(self.job_id)

    def status(self) -> str:
        return self.state

    # -- running -> finished ---------------------------------------------

    def finish(self) -> Report:
        self._require_running()

        body = build_report(self.run_state.handled_messages)
        report = Report(
            job_id=self.job_id,
            subject=f"State provisioning job {self.job_id} finished",
            body=body,
        )
        aborted = self.is_aborted()
        self._telemetry.finalize(
            extra={
                "aborted": aborted,
                "total_scopes": len(self.scope_keys),
                "processed_scopes": len(self._processed),
                "handled_messages": list(self.run_state.handled_messages),
            }
        )
        self._registry.unregister(
            self.job_id,
            status=JobStatus.ABORTED if aborted else JobStatus.FINISHED,
            report_text=body,
        )
        self.state = JobState.FINISHED
        self.report = report
        self._notifier.send(report)
        return report

    def fail(self, exc: BaseException) -> None:
        """Close the run as failed without emitting a report."""

        self._require_running()
        self._registry.unregister(self.job_id, status=JobStatus.FAILED, error_summary=str(exc)[:200])
        self.state = JobState.FINISHED

    def _require_running(self) -> None:
        if self.state != JobState.RUNNING:
            raise JobStateError(f"Job is {self.state}, expected {JobState.RUNNING}")
        if self.job_id is None or self._telemetry is None or self._artifacts is None:
            raise JobStateError("Job has not finished starting")


__all__ = [
    "BatchJob",
    "JobState",
    "JobStateError",
    "NO_HANDLED_EXCEPTIONS_MESSAGE",
    "RunState",
    "build_report",
    "format_handled_message",
]
