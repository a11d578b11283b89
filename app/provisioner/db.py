"""SQLite helpers for the provisioning job.

This module defines the project database path, connection helper, schema
initialisation, and helpers for the job registry and the per-scope outcome
ledger.
"""
from __future__ import annotations

import sqlite3
import time
from pathlib import Path
from typing import Iterable, Optional

from . import config

DB_PATH: Path = config.DB_PATH


def get_connection() -> sqlite3.Connection:
    """Return a SQLite connection to the project database.

    The parent directory is created if missing and ``check_same_thread`` is
    disabled to allow reuse from the Flask worker thread. Callers must manage
    concurrency at a higher layer.
    """

    DB_PATH.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(DB_PATH, check_same_thread=False)
    conn.row_factory = sqlite3.Row
    return conn


def initialize_schema() -> None:
    """Create the baseline tables if they do not yet exist.

    Safe to call multiple times; each statement uses ``IF NOT EXISTS``.
    """

    statements: Iterable[str] = (
        """
        CREATE TABLE IF NOT EXISTS jobs (
            id              INTEGER PRIMARY KEY AUTOINCREMENT,
            job_type        TEXT NOT NULL,
            status          TEXT NOT NULL,
            trigger         TEXT NOT NULL,
            params_json     TEXT NOT NULL,
            total_scopes    INTEGER NOT NULL DEFAULT 0,
            started_at      TEXT NOT NULL,
            ended_at        TEXT,
            error_summary   TEXT,
            report_text     TEXT
        );
        """,
        """
        CREATE INDEX IF NOT EXISTS idx_jobs_type_status
            ON jobs(job_type, status);
        """,
        """
        CREATE TABLE IF NOT EXISTS outcomes (
            id                INTEGER PRIMARY KEY AUTOINCREMENT,
            job_id            INTEGER NOT NULL,
            scope_key         TEXT NOT NULL,
            region_code       TEXT NOT NULL,
            subdivision_code  TEXT NOT NULL,
            kind              TEXT NOT NULL,
            message           TEXT,
            error_code        TEXT,
            artifact_path     TEXT,
            created_at        TEXT NOT NULL,
            UNIQUE(job_id, scope_key),
            FOREIGN KEY(job_id) REFERENCES jobs(id)
        );
        """,
        """
        CREATE INDEX IF NOT EXISTS idx_outcomes_job_kind
            ON outcomes(job_id, kind);
        """,
    )

    conn = get_connection()
    with conn:
        for statement in statements:
            conn.execute(statement)


def _utc_now() -> str:
    """Return a UTC timestamp formatted as ISO8601 without fractional seconds."""

    return time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime())


def get_active_job(job_type: str) -> Optional[sqlite3.Row]:
    """Return the running job row for ``job_type``, if any."""

    conn = get_connection()
    cursor = conn.execute(
        """
        SELECT * FROM jobs
        WHERE job_type = ? AND status = 'running'
        ORDER BY id DESC LIMIT 1
        """,
        (job_type,),
    )
    return cursor.fetchone()


def create_job_if_idle(
    job_type: str,
    trigger: str,
    params_json: str,
    total_scopes: int = 0,
) -> Optional[int]:
    """Insert a ``running`` job unless one is already running for ``job_type``.

    The check and the insert share one write transaction. Returns the new id,
    or ``None`` when another run is active.
    """

    conn = get_connection()
    conn.isolation_level = None
    try:
        conn.execute("BEGIN IMMEDIATE")
        existing = conn.execute(
            "SELECT id FROM jobs WHERE job_type = ? AND status = 'running' LIMIT 1",
            (job_type,),
        ).fetchone()
        if existing is not None:
            conn.execute("ROLLBACK")
            return None
        cursor = conn.execute(
            """
            INSERT INTO jobs (
                job_type, status, trigger, params_json, total_scopes, started_at
            ) VALUES (?, 'running', ?, ?, ?, ?)
            """,
            (job_type, trigger, params_json, total_scopes, _utc_now()),
        )
        conn.execute("COMMIT")
        return int(cursor.lastrowid)
    except Exception:
        if conn.in_transaction:
            conn.execute("ROLLBACK")
        raise
    finally:
        conn.close()


def set_job_status(
    job_id: int,
    status: str,
    *,
    error_summary: Optional[str] = None,
    report_text: Optional[str] = None,
) -> None:
    """Move ``job_id`` to ``status``; terminal states also stamp ``ended_at``."""

    conn = get_connection()
    with conn:
        conn.execute(
            """
            UPDATE jobs
            SET status = ?, ended_at = ?,
                error_summary = COALESCE(?, error_summary),
                report_text = COALESCE(?, report_text)
            WHERE id = ?
            """,
            (status, _utc_now() if status != "running" else None, error_summary, report_text, job_id),
        )


def get_job(job_id: int) -> Optional[sqlite3.Row]:
    conn = get_connection()
    cursor = conn.execute("SELECT * FROM jobs WHERE id = ?", (job_id,))
    return cursor.fetchone()


def list_jobs(limit: int = 20) -> list[sqlite3.Row]:
    conn = get_connection()
    cursor = conn.execute(
        "SELECT * FROM jobs ORDER BY id DESC LIMIT ?",
        (max(1, int(limit)),),
    )
    return list(cursor.fetchall())


def latest_job_id() -> Optional[int]:
    conn = get_connection()
    row = conn.execute("SELECT id FROM jobs ORDER BY id DESC LIMIT 1").fetchone()
    return int(row["id"]) if row else None


def record_outcome(
    job_id: int,
    *,
    scope_key: str,
    region_code: str,
    subdivision_code: str,
    kind: str,
    message: Optional[str] = None,
    error_code: Optional[str] = None,
    artifact_path: Optional[str] = None,
) -> None:
    """Insert the outcome row for one scope; a second row for the same scope fails."""

    conn = get_connection()
    with conn:
        conn.execute(
            """
            INSERT INTO outcomes (
                job_id, scope_key, region_code, subdivision_code, kind,
                message, error_code, artifact_path, created_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                job_id,
                scope_key,
                region_code,
                subdivision_code,
                kind,
                message,
                error_code,
                artifact_path,
                _utc_now(),
            ),
        )


def list_outcomes(job_id: int, kind: Optional[str] = None) -> list[sqlite3.Row]:
    conn = get_connection()
    if kind:
        cursor = conn.execute(
            "SELECT * FROM outcomes WHERE job_id = ? AND kind = ? ORDER BY id",
            (job_id, kind),
        )
    else:
        cursor = conn.execute(
            "SELECT * FROM outcomes WHERE job_id = ? ORDER BY id",
            (job_id,),
        )
    return list(cursor.fetchall())


def outcome_counts(job_id: int) -> dict[str, int]:
    conn = get_connection()
    cursor = conn.execute(
        "SELECT kind, COUNT(*) AS n FROM outcomes WHERE job_id = ? GROUP BY kind",
        (job_id,),
    )
    return {str(row["kind"]): int(row["n"]) for row in cursor.fetchall()}
