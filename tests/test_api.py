from __future__ import annotations

import pytest
import requests

from app import main as api
from app.provisioner import config, db, run
from app.provisioner.job_registry import JobRegistry, JobStatus
from tests.test_batch_job import UNEXPECTED_BODY, RemoteStub


@pytest.fixture()
def client():
    api.app.config.update(TESTING=True)
    return api.app.test_client()


@pytest.fixture()
def remote(monkeypatch: pytest.MonkeyPatch) -> RemoteStub:
    stub = RemoteStub({"ZZ": config.MISSING_INFO_PHRASE, "MX": UNEXPECTED_BODY})
    monkeypatch.setattr(run, "build_http_session", lambda: stub.session)
    return stub


def _start(client, catalog: dict[str, str]) -> int:
    response = client.post("/api/jobs", json={"catalog": catalog})
    assert response.status_code == 202, response.get_json()
    job_id = response.get_json()["job_id"]
    api.RUN_THREADS[job_id].join(timeout=10)
    return job_id


def test_start_job_runs_to_completion(client, remote: RemoteStub) -> None:
    job_id = _start(client, {"TR-07": "Antalya", "ZZ-01": "Nowhere"})

    body = client.get(f"/api/jobs/{job_id}").get_json()

    assert body["ok"] is True
    assert body["job"]["status"] == JobStatus.FINISHED
    assert body["job"]["state"] == "finished"
    assert body["job"]["outcome_counts"] == {"success": 1, "handled": 1}

    report = client.get(f"/api/jobs/{job_id}/report").get_json()
    assert report["report"] == "region: ZZ, subdivision: 01 — ZZ does not exist"


def test_start_while_running_returns_409(client, remote: RemoteStub) -> None:
    active_id = JobRegistry().register(config.JOB_TYPE, trigger="tests")

    response = client.post("/api/jobs", json={"catalog": {"TR-07": "Antalya"}})

    assert response.status_code == 409
    assert response.get_json() == {"ok": False, "error": "already_running", "active_job_id": active_id}
    assert remote.session.calls == []


def test_malformed_catalog_is_rejected_before_any_request(client, remote: RemoteStub) -> None:
    response = client.post("/api/jobs", json={"catalog": {"TR07": "Antalya"}})

    assert response.status_code == 400
    assert response.get_json()["error"] == "catalog_invalid"
    assert remote.session.calls == []
    assert db.list_jobs() == []


def test_invalid_config_returns_500(client, remote: RemoteStub, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(config, "SESSION_ID", "")

    response = client.post("/api/jobs", json={"catalog": {"TR-07": "Antalya"}})

    assert response.status_code == 500
    assert response.get_json()["error"] == "config_invalid"


def test_unreachable_remote_returns_502(client, remote: RemoteStub) -> None:
    remote.session.handler = lambda *_: requests.ConnectionError("no route")

    response = client.post("/api/jobs", json={"catalog": {"TR-07": "Antalya"}})

    assert response.status_code == 502
    assert db.list_jobs()[0]["status"] == JobStatus.FAILED


def test_unexpected_response_artifacts_are_served(client, remote: RemoteStub) -> None:
    job_id = _start(client, {"MX-CMX": "Ciudad de México"})

    listing = client.get(f"/api/jobs/{job_id}/artifacts").get_json()
    assert listing["artifacts"] == ["MX-CMX.html"]

    artifact = client.get(f"/api/jobs/{job_id}/artifacts/MX-CMX.html")
    assert artifact.status_code == 200
    assert artifact.get_data(as_text=True) == UNEXPECTED_BODY


def test_abort_endpoint(client) -> None:
    job_id = JobRegistry().register(config.JOB_TYPE, trigger="tests")

    first = client.post(f"/api/jobs/{job_id}/abort")
    second = client.post(f"/api/jobs/{job_id}/abort")
    missing = client.post("/api/jobs/999/abort")

    assert first.status_code == 200
    assert first.get_json()["status"] == JobStatus.ABORTED
    assert second.status_code == 409
    assert missing.status_code == 404


def test_unknown_job_returns_404(client) -> None:
    assert client.get("/api/jobs/42").status_code == 404
    assert client.get("/api/jobs/42/report").status_code == 404
    assert client.get("/api/jobs/42/artifacts").status_code == 404


def test_list_jobs(client) -> None:
    registry = JobRegistry()
    job_id = registry.register(config.JOB_TYPE, trigger="tests")
    registry.unregister(job_id, status=JobStatus.FINISHED, report_text="done")

    body = client.get("/api/jobs").get_json()

    assert body["count"] == 1
    assert body["jobs"][0]["id"] == job_id
    assert client.get("/api/jobs?limit=abc").status_code == 400


def test_health_endpoint(client, monkeypatch: pytest.MonkeyPatch) -> None:
    healthy = client.get("/api/health")
    assert healthy.status_code == 200
    assert set(healthy.get_json()["checks"]) == {"config", "filesystem", "database"}

    monkeypatch.setattr(config, "BASE_URL", "ftp://nope")
    unhealthy = client.get("/api/health")
    assert unhealthy.status_code == 503
    assert unhealthy.get_json()["checks"]["config"]["ok"] is False
