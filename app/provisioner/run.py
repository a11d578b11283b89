"""Chunked scheduler for the state provisioning job.

Workflow:

- Load the catalog (JSON object or ``key,name`` CSV).
- Start a :class:`BatchJob` (single-flight, liveness probe, scope snapshot).
- Split the scope keys into units of ``CHUNK_SIZE`` and feed them to
  ``process_unit`` one at a time, stopping early if the run is aborted.
- A unit that raises a transport error is delivered again up to
  ``UNIT_MAX_ATTEMPTS`` times; after that the run is marked failed.
- Finish the job, which emits the completion report.

This is wired to ``POST /api/jobs`` via ``run_provisioning()``.
"""

from __future__ import annotations

import argparse
import time
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import requests

from . import config
from .batch_job import BatchJob
from .catalog import chunked, load_catalog
from .config_validation import validate_runtime_config
from .error_codes import ErrorCode
from .http_client import RetryingHttpClient, SessionCredential, build_http_session
from .job_registry import JobRegistry
from .logging_utils import _provisioner_event
from .notifier import Notifier
from .utils import ensure_dirs, log_line, setup_run_logger
from .workflow import SubmissionWorkflow


def _short_error_message(exc: BaseException, max_length: int = 200) -> str:
    message = f"{type(exc).__name__}: {exc}"
    if len(message) > max_length:
        return message[: max_length - 3] + "..."
    return message


def build_job(
    catalog: Mapping[str, str],
    *,
    base_url: Optional[str] = None,
    session_id: Optional[str] = None,
    trigger: str = "cli",
    http_session: Optional[requests.Session] = None,
    registry: Optional[JobRegistry] = None,
    notifier: Optional[Notifier] = None,
) -> BatchJob:
    """Wire a :class:`BatchJob` with its HTTP client, workflow and collaborators."""

    credential = SessionCredential(
        value=session_id if session_id is not None else config.SESSION_ID,
        cookie_name=config.SESSION_COOKIE_NAME,
    )
    client = RetryingHttpClient(http_session or build_http_session())
    workflow = SubmissionWorkflow(client, credential, base_url=base_url)
    return BatchJob(
        catalog,
        workflow,
        registry=registry,
        notifier=notifier,
        trigger=trigger,
    )


def start_job(catalog: Mapping[str, str], **kwargs: Any) -> BatchJob:
    """Build and start a job; raises ``AlreadyRunningError`` if one is active."""

    job = build_job(catalog, **kwargs)
    job.start()
    return job


def run_units(
    job: BatchJob,
    *,
    chunk_size: Optional[int] = None,
    max_unit_attempts: Optional[int] = None,
) -> Dict[str, Any]:
    """Drive a started job through all of its units and finish it."""

    size = max(1, chunk_size if chunk_size is not None else config.CHUNK_SIZE)
    attempts_allowed = max(1, max_unit_attempts if max_unit_attempts is not None else config.UNIT_MAX_ATTEMPTS)
    units = list(chunked(job.scope_keys, size))
    units_done = 0

    for index, unit in enumerate(units):
        if job.is_aborted():
            log_line(f"[RUN] Job {job.job_id} aborted; {len(units) - index} unit(s) not scheduled")
            break

        attempt = 1
        while True:
            try:
                job.process_unit(unit)
                break
            except (requests.ConnectionError, requests.Timeout) as exc:
                _provisioner_event(
                    "error",
                    phase="unit",
                    job_id=job.job_id,
                    unit_index=index,
                    attempt=attempt,
                    max_attempts=attempts_allowed,
                    error=_short_error_message(exc),
                )
                if attempt >= attempts_allowed:
                    job.fail(exc)
                    raise
                attempt += 1
            except Exception as exc:  # noqa: BLE001
                _provisioner_event(
                    "error",
                    phase="unit",
                    job_id=job.job_id,
                    unit_index=index,
                    error=_short_error_message(exc),
                    error_code=ErrorCode.INTERNAL,
                )
                job.fail(exc)
                raise
        units_done += 1

    report = job.finish()
    return {
        "job_id": job.job_id,
        "units": len(units),
        "units_processed": units_done,
        "aborted": job.is_aborted(),
        "handled_failures": len(job.run_state.handled_messages),
        "report": report.body,
    }


def run_provisioning(
    catalog: Optional[Mapping[str, str]] = None,
    *,
    catalog_path: Optional[Path] = None,
    chunk_size: Optional[int] = None,
    trigger: str = "cli",
    base_url: Optional[str] = None,
    session_id: Optional[str] = None,
    job: Optional[BatchJob] = None,
) -> Dict[str, Any]:
    """Public entrypoint: load the catalog, start the job and run every unit.

    A job that was already started (as the HTTP surface does, so it can answer
    409 synchronously) may be passed in through ``job``.
    """

    ensure_dirs()
    log_path = setup_run_logger()
    started = time.time()

    if job is None:
        if catalog is None:
            catalog = load_catalog(catalog_path or config.CATALOG_FILE)
        job = start_job(
            catalog,
            base_url=base_url,
            session_id=session_id,
            trigger=trigger,
        )

    result = run_units(job, chunk_size=chunk_size)
    result["log_file"] = str(log_path)
    result["elapsed_seconds"] = round(time.time() - started, 3)
    log_line(f"[RUN] Job {job.job_id} complete: {result['handled_failures']} handled failure(s)")
    return result


def _cli_entrypoint(argv: Optional[List[str]] = None) -> None:  # pragma: no cover
    parser = argparse.ArgumentParser(description="Provision catalog states through the remote form")
    parser.add_argument("--catalog", type=Path, default=config.CATALOG_FILE)
    parser.add_argument("--chunk-size", type=int, default=config.CHUNK_SIZE)
    parser.add_argument("--base-url", default=None)
    args = parser.parse_args(argv)

    ensure_dirs()
    validate_runtime_config("cli", base_url=args.base_url)

    run_provisioning(
        catalog_path=args.catalog,
        chunk_size=args.chunk_size,
        base_url=args.base_url,
        trigger="cli",
    )


if __name__ == "__main__":  # pragma: no cover
    _cli_entrypoint()

__all__ = ["build_job", "run_provisioning", "run_units", "start_job", "_cli_entrypoint"]
