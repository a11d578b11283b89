"""Storage for unclassified response bodies, one file per failing scope."""
from __future__ import annotations

from pathlib import Path
from typing import Optional

from . import config
from .catalog import ScopeKey
from .utils import log_line, sanitize_filename

ARTIFACT_SUFFIX = ".html"


class ArtifactStore:
    def __init__(self, job_id: int, root: Optional[Path] = None) -> None:
        self.job_id = job_id
        self.directory = Path(root if root is not None else config.ARTIFACTS_DIR) / f"job_{job_id}"

    def path_for(self, scope_key: ScopeKey) -> Path:
        return self.directory / f"{sanitize_filename(str(scope_key))}{ARTIFACT_SUFFIX}"

    def save(self, scope_key: ScopeKey, raw_body: str) -> Path:
        self.directory.mkdir(parents=True, exist_ok=True)
        path = self.path_for(scope_key)
        path.write_text(raw_body or "", encoding="utf-8")
        log_line(f"[ARTIFACT] Stored unexpected response for {scope_key} -> {path.name}")
        return path

    def list(self) -> list[Path]:
        if not self.directory.exists():
            return []
        return sorted(self.directory.glob(f"*{ARTIFACT_SUFFIX}"))


__all__ = ["ArtifactStore"]
