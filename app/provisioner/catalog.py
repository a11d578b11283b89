"""Catalog loading and scope key parsing.

The catalog maps ``"REGION-SUBDIVISION"`` keys to display names. It is read
once per run and never mutated; its iteration order is the processing order.
"""
from __future__ import annotations

import csv
import json
from pathlib import Path
from typing import Iterator, List, Mapping, NamedTuple, Sequence

from .utils import log_line

KEY_SEPARATOR = "-"


class ScopeKey(NamedTuple):
    region_code: str
    subdivision_code: str

    @classmethod
    def parse(cls, raw: str) -> "ScopeKey":
        """Split ``raw`` on the first separator into region and subdivision."""

        region, sep, subdivision = str(raw).strip().partition(KEY_SEPARATOR)
        if not sep or not region or not subdivision:
            raise ValueError(f"Invalid catalog key {raw!r}; expected REGION-SUBDIVISION")
        return cls(region, subdivision)

    def __str__(self) -> str:
        return f"{self.region_code}{KEY_SEPARATOR}{self.subdivision_code}"


def normalize_catalog(catalog: Mapping[str, str]) -> dict[str, str]:
    """Return ``catalog`` keyed by canonical ``REGION-SUBDIVISION`` strings."""

    normalized: dict[str, str] = {}
    for raw_key, name in catalog.items():
        key = str(ScopeKey.parse(raw_key))
        if key in normalized:
            raise ValueError(f"Duplicate catalog key {key!r}")
        normalized[key] = str(name)
    return normalized


def chunked(items: Sequence[ScopeKey], size: int) -> Iterator[List[ScopeKey]]:
    """Yield consecutive units of at most ``size`` scope keys."""

    step = max(1, int(size))
    for start in range(0, len(items), step):
        yield list(items[start : start + step])


def _load_json_catalog(path: Path) -> dict[str, str]:
    with path.open("r", encoding="utf-8") as handle:
        data = json.load(handle)
    if not isinstance(data, dict):
        raise ValueError(f"Catalog {path} must be a JSON object of key -> name")
    return {str(key): str(value) for key, value in data.items()}


def _load_csv_catalog(path: Path) -> dict[str, str]:
    catalog: dict[str, str] = {}
    with path.open("r", encoding="utf-8", newline="") as handle:
        reader = csv.reader(handle)
        for row in reader:
            if not row or not row[0].strip():
                continue
            if len(row) < 2:
                raise ValueError(f"Catalog row {row!r} must have a key and a name")
            key, name = row[0].strip(), row[1].strip()
            if key.lower() == "key" and name.lower() == "name":
                continue
            if key in catalog:
                raise ValueError(f"Duplicate catalog key {key!r} in {path}")
            catalog[key] = name
    return catalog


def load_catalog(path: Path) -> dict[str, str]:
    """Load a catalog from a JSON object file or a two-column ``key,name`` CSV."""

    path = Path(path)
    if path.suffix.lower() == ".csv":
        catalog = _load_csv_catalog(path)
    else:
        catalog = _load_json_catalog(path)

    # Malformed keys fail here, before any submission.
    catalog = normalize_catalog(catalog)
    log_line(f"[CATALOG] Loaded {len(catalog)} entries from {path}")
    return catalog


__all__ = ["ScopeKey", "chunked", "load_catalog", "normalize_catalog"]
