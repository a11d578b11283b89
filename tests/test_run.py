from __future__ import annotations

import json
from pathlib import Path

import pytest
import requests

from app.provisioner import config, db, run
from app.provisioner.job_registry import JobRegistry, JobStatus
from tests.test_batch_job import RemoteStub, make_job


def test_run_units_processes_every_chunk_in_order() -> None:
    catalog = {f"TR-{n:02d}": f"Province {n}" for n in range(1, 8)}
    remote = RemoteStub()
    job = make_job(catalog, remote)
    job.start()

    result = run.run_units(job, chunk_size=3)

    assert result["units"] == 3
    assert result["units_processed"] == 3
    assert result["aborted"] is False
    assert [row["scope_key"] for row in db.list_outcomes(job.job_id)] == list(catalog)
    assert db.get_job(job.job_id)["status"] == JobStatus.FINISHED


def test_unit_redelivered_after_transport_failure() -> None:
    catalog = {"TR-07": "Antalya", "TR-34": "İstanbul"}
    remote = RemoteStub()
    job = make_job(catalog, remote)
    job.start()

    original = remote.session.handler
    failures = {"left": 2}

    def flaky(method, url, kwargs):
        if method == "POST" and remote.last_region == "TR" and remote.post_count == 1 and failures["left"]:
            failures["left"] -= 1
            raise requests.ConnectionError("dropped")
        return original(method, url, kwargs)

    remote.session.handler = flaky

    result = run.run_units(job, chunk_size=2, max_unit_attempts=2)

    assert result["units_processed"] == 1
    assert sorted(row["scope_key"] for row in db.list_outcomes(job.job_id)) == ["TR-07", "TR-34"]


def test_unit_failing_every_delivery_fails_the_run() -> None:
    remote = RemoteStub()
    job = make_job({"TR-07": "Antalya"}, remote)
    job.start()
    remote.session.handler = lambda *_: requests.Timeout("slow")

    with pytest.raises(requests.Timeout):
        run.run_units(job, max_unit_attempts=2)

    assert db.get_job(job.job_id)["status"] == JobStatus.FAILED
    assert JobRegistry().is_active(config.JOB_TYPE) is False


def test_abort_stops_scheduling_further_units() -> None:
    catalog = {"TR-07": "Antalya", "TR-34": "İstanbul", "TR-06": "Ankara"}
    remote = RemoteStub()
    job = make_job(catalog, remote)
    job.start()

    original = remote.session.handler

    def abort_after_first_post(method, url, kwargs):
        reply = original(method, url, kwargs)
        if method == "POST" and remote.post_count == 1:
            JobRegistry().abort(job.job_id)
        return reply

    remote.session.handler = abort_after_first_post

    result = run.run_units(job, chunk_size=1)

    assert result["aborted"] is True
    assert result["units_processed"] == 1
    assert remote.post_count == 1
    assert db.get_job(job.job_id)["status"] == JobStatus.ABORTED


def test_run_provisioning_loads_catalog_file(monkeypatch: pytest.MonkeyPatch, isolated_data_dir: Path) -> None:
    catalog_path = isolated_data_dir / "catalog.json"
    catalog_path.write_text(json.dumps({"TR-07": "Antalya", "ZZ-01": "Nowhere"}), encoding="utf-8")
    remote = RemoteStub({"ZZ": config.MISSING_INFO_PHRASE})
    monkeypatch.setattr(run, "build_http_session", lambda: remote.session)

    result = run.run_provisioning(catalog_path=catalog_path)

    assert result["handled_failures"] == 1
    assert result["report"] == "region: ZZ, subdivision: 01 — ZZ does not exist"
    assert Path(result["log_file"]).exists()
    get_headers = remote.session.calls[1][2]["headers"]
    assert get_headers["Cookie"] == "sid=SESSION123"
