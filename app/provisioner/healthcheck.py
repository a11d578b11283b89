from __future__ import annotations

import shutil
from dataclasses import dataclass
from typing import Any

from . import config, db
from .config_validation import validate_runtime_config
from .logging_utils import _provisioner_event
from .utils import ensure_dirs, log_line

MIN_FREE_MB = 50


@dataclass
class HealthResult:
    ok: bool
    checks: dict[str, dict[str, Any]]


def _disk_has_room(min_free_mb: int) -> bool:
    usage = shutil.disk_usage(config.DATA_DIR)
    return usage.free >= min_free_mb * 1024 * 1024


def run_health_checks(entrypoint: str = "cli") -> HealthResult:
    checks: dict[str, dict[str, Any]] = {}

    try:
        validate_runtime_config(entrypoint or "cli")
        checks["config"] = {"ok": True}
    except ValueError as exc:
        checks["config"] = {"ok": False, "error": str(exc)}

    try:
        ensure_dirs()
        checks["filesystem"] = {
            "ok": _disk_has_room(MIN_FREE_MB),
            "data_dir": str(config.DATA_DIR),
            "min_free_mb": MIN_FREE_MB,
        }
    except OSError as exc:
        checks["filesystem"] = {"ok": False, "error": str(exc)}

    try:
        db.initialize_schema()
        conn = db.get_connection()
        conn.execute("SELECT COUNT(*) FROM jobs")
        checks["database"] = {"ok": True}
    except Exception as exc:  # noqa: BLE001
        checks["database"] = {"ok": False, "error": str(exc)}

    overall_ok = all(check.get("ok", False) for check in checks.values())

    _provisioner_event(
        "state" if overall_ok else "error",
        phase="health",
        context="healthcheck",
        ok=overall_ok,
        checks=checks,
    )

    return HealthResult(ok=overall_ok, checks=checks)


if __name__ == "__main__":  # pragma: no cover
    result = run_health_checks(entrypoint="cli")
    for name, info in result.checks.items():
        status = "OK" if info.get("ok") else "FAIL"
        log_line(f"[HEALTH] {name}: {status} {info}")
    raise SystemExit(0 if result.ok else 1)
