from __future__ import annotations

import os
import threading
from pathlib import Path
from typing import Any

import requests
from flask import Flask, Response, jsonify, request, send_from_directory

from app.provisioner import config, db
from app.provisioner.artifacts import ArtifactStore
from app.provisioner.batch_job import JobState
from app.provisioner.catalog import load_catalog, normalize_catalog
from app.provisioner.config_validation import validate_runtime_config
from app.provisioner.error_codes import ErrorCode
from app.provisioner.healthcheck import run_health_checks
from app.provisioner.job_registry import AlreadyRunningError, JobNotFoundError, JobRegistry, JobStatus
from app.provisioner.logging_utils import _provisioner_event
from app.provisioner.run import run_provisioning, start_job
from app.provisioner.utils import ensure_dirs, log_line

app = Flask(__name__)
app.secret_key = os.environ.get("SECRET_KEY", "dev-secret-change-me")

# Initialise storage paths and SQLite schema on import so WSGI entrypoints
# also have the expected environment ready. Idempotent.
ensure_dirs()
db.initialize_schema()

# Worker threads by job id; lets callers (and tests) wait for a run.
RUN_THREADS: dict[int, threading.Thread] = {}


def _parse_job_payload() -> dict[str, Any]:
    payload: dict[str, Any] = {}
    payload.update(request.args or {})

    if request.is_json:
        payload.update(request.get_json(silent=True) or {})
    else:
        payload.update(request.form or {})

    return payload


def _job_to_dict(row: Any) -> dict[str, Any]:
    job = dict(row)
    job["state"] = JobState.RUNNING if job["status"] == JobStatus.RUNNING else JobState.FINISHED
    job["outcome_counts"] = db.outcome_counts(int(job["id"]))
    return job


@app.get("/api/jobs")
def api_jobs_list() -> Response:
    try:
        limit = int(request.args.get("limit", 20))
    except (TypeError, ValueError):
        return jsonify({"ok": False, "error": "invalid_limit"}), 400

    jobs = [_job_to_dict(row) for row in db.list_jobs(limit)]
    return jsonify({"ok": True, "count": len(jobs), "jobs": jobs})


@app.post("/api/jobs")
def api_jobs_start() -> Response:
    """Start a provisioning run in a background thread."""

    payload = _parse_job_payload()

    try:
        validate_runtime_config("api")
    except ValueError as exc:
        return jsonify({"ok": False, "error": "config_invalid", "details": str(exc)}), 500

    try:
        chunk_size = int(payload.get("chunk_size") or config.CHUNK_SIZE)
    except (TypeError, ValueError):
        return jsonify({"ok": False, "error": "invalid_params", "details": "chunk_size"}), 400

    inline_catalog = payload.get("catalog")
    try:
        if isinstance(inline_catalog, dict):
            catalog = normalize_catalog(inline_catalog)
        else:
            catalog = load_catalog(Path(payload.get("catalog_path") or config.CATALOG_FILE))
    except (OSError, ValueError) as exc:
        return jsonify({"ok": False, "error": "catalog_invalid", "details": str(exc)}), 400

    try:
        job = start_job(catalog, trigger="api")
    except AlreadyRunningError as exc:
        _provisioner_event(
            "error",
            phase="api_start",
            error_code=ErrorCode.ALREADY_RUNNING,
            active_job_id=exc.active_job_id,
        )
        return (
            jsonify({"ok": False, "error": "already_running", "active_job_id": exc.active_job_id}),
            409,
        )
    except (requests.ConnectionError, requests.Timeout) as exc:
        _provisioner_event("error", phase="api_start", error=str(exc))
        return jsonify({"ok": False, "error": "remote_unreachable", "details": str(exc)}), 502

    def _run() -> None:
        with app.app_context():
            try:
                summary = run_provisioning(job=job, chunk_size=chunk_size, trigger="api")
                app.config["LAST_SUMMARY"] = summary
            except Exception as exc:  # noqa: BLE001
                log_line(f"Provisioning thread failed: {exc}")

    thread = threading.Thread(target=_run, daemon=True)
    RUN_THREADS[int(job.job_id)] = thread
    thread.start()

    return jsonify({"ok": True, "job_id": job.job_id, "scopes": len(job.scope_keys)}), 202


@app.get("/api/jobs/<int:job_id>")
def api_job_status(job_id: int) -> Response:
    row = db.get_job(job_id)
    if row is None:
        return jsonify({"ok": False, "error": "job_not_found", "job_id": job_id}), 404
    return jsonify({"ok": True, "job": _job_to_dict(row)})


@app.post("/api/jobs/<int:job_id>/abort")
def api_job_abort(job_id: int) -> Response:
    try:
        aborted = JobRegistry().abort(job_id)
    except JobNotFoundError:
        return jsonify({"ok": False, "error": "job_not_found", "job_id": job_id}), 404
    if not aborted:
        return jsonify({"ok": False, "error": "job_not_running", "job_id": job_id}), 409
    return jsonify({"ok": True, "job_id": job_id, "status": JobStatus.ABORTED})


@app.get("/api/jobs/<int:job_id>/report")
def api_job_report(job_id: int) -> Response:
    row = db.get_job(job_id)
    if row is None:
        return jsonify({"ok": False, "error": "job_not_found", "job_id": job_id}), 404
    if row["report_text"] is None:
        return jsonify({"ok": False, "error": "report_not_ready", "job_id": job_id}), 404
    return jsonify({"ok": True, "job_id": job_id, "report": row["report_text"]})


@app.get("/api/jobs/<int:job_id>/artifacts")
def api_job_artifacts(job_id: int) -> Response:
    if db.get_job(job_id) is None:
        return jsonify({"ok": False, "error": "job_not_found", "job_id": job_id}), 404
    names = [path.name for path in ArtifactStore(job_id).list()]
    return jsonify({"ok": True, "job_id": job_id, "count": len(names), "artifacts": names})


@app.get("/api/jobs/<int:job_id>/artifacts/<path:filename>")
def api_job_artifact_file(job_id: int, filename: str) -> Response:
    store = ArtifactStore(job_id)
    return send_from_directory(store.directory, filename, mimetype="text/plain")


@app.get("/api/health")
def api_health() -> Response:
    result = run_health_checks(entrypoint="api")
    status = 200 if result.ok else 503
    return jsonify({"ok": result.ok, "checks": result.checks}), status
