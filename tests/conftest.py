import os
import tempfile
from pathlib import Path

import pytest

# Module-level paths in app.provisioner.config are read at import time.
os.environ.setdefault("PROVISIONER_DATA_DIR", tempfile.mkdtemp(prefix="provisioner-tests-"))

from app.provisioner import config, db, utils  # noqa: E402


def _configure_temp_paths(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    data_dir = tmp_path / "data"
    data_dir.mkdir(parents=True, exist_ok=True)
    db_path = data_dir / "provisioner.db"

    monkeypatch.setattr(config, "DATA_DIR", data_dir)
    monkeypatch.setattr(config, "LOG_DIR", data_dir / "logs")
    monkeypatch.setattr(config, "LOG_FILE", data_dir / "logs" / "latest.log")
    monkeypatch.setattr(config, "ARTIFACTS_DIR", data_dir / "artifacts")
    monkeypatch.setattr(config, "REPORTS_DIR", data_dir / "reports")
    monkeypatch.setattr(config, "RUNS_DIR", data_dir / "runs")
    monkeypatch.setattr(config, "CATALOG_FILE", data_dir / "catalog.json")
    monkeypatch.setattr(config, "DB_PATH", db_path)
    monkeypatch.setattr(db, "DB_PATH", db_path)
    monkeypatch.setattr(utils, "_LOGGER_INITIALISED", False)
    db.initialize_schema()
    return data_dir


@pytest.fixture(autouse=True)
def isolated_data_dir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    data_dir = _configure_temp_paths(tmp_path, monkeypatch)
    monkeypatch.setattr(config, "BASE_URL", "https://admin.example.com")
    monkeypatch.setattr(config, "SESSION_ID", "SESSION123")
    monkeypatch.setattr(config, "HTTP_RETRY_BACKOFF_SECONDS", 0.0)
    monkeypatch.setattr(config, "NOTIFY_WEBHOOK_URL", "")
    return data_dir
