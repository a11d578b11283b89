"""Run telemetry helpers."""

from __future__ import annotations

import time
from collections import defaultdict
from pathlib import Path
from typing import Any, Dict, Optional

from . import config
from .utils import save_json_file


class RunTelemetry:
    """Collect per-run counters and timings and persist them as JSON."""

    def __init__(self, job_id: int) -> None:
        self.job_id = job_id
        self.started_at = time.time()
        self.summary: Dict[str, int] = defaultdict(int)
        self.units_processed = 0

    def add(self, kind: str) -> None:
        self.summary[f"count_{kind}"] += 1

    def unit_done(self) -> None:
        self.units_processed += 1

    def finalize(self, extra: Optional[Dict[str, Any]] = None) -> Path:
        payload = {
            "job_id": self.job_id,
            "started_at": self.started_at,
            "ended_at": time.time(),
            "units_processed": self.units_processed,
            "summary": dict(self.summary),
            **(extra or {}),
        }
        path = Path(config.RUNS_DIR) / f"run_{self.job_id}.json"
        save_json_file(path, payload)
        return path


__all__ = ["RunTelemetry"]
