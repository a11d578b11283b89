from __future__ import annotations

"""CLI helper for printing job-level outcome summaries."""

import argparse
from typing import Sequence

from . import config, db
from .utils import load_json_file


def _build_parser() -> argparse.ArgumentParser:
    """Return an argument parser for the job summary CLI."""

    parser = argparse.ArgumentParser(
        description="Show outcome summary for a provisioning job.",
    )
    parser.add_argument(
        "--job-id",
        type=int,
        help="Job ID to summarise.",
    )
    parser.add_argument(
        "--latest",
        action="store_true",
        help="Summarise the most recent job.",
    )
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point for the job summary CLI."""

    parser = _build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)

    db.initialize_schema()
    job_id = args.job_id
    if args.latest and job_id is None:
        job_id = db.latest_job_id()
    if job_id is None:
        parser.error("You must provide --job-id or --latest")

    job = db.get_job(job_id)
    if job is None:
        parser.error(f"Job {job_id} not found")

    print(f"Job {job['id']} ({job['status']})")
    print(f"  scopes: {job['total_scopes']}")
    for kind, count in sorted(db.outcome_counts(job_id).items()):
        print(f"  {kind}: {count}")

    telemetry = load_json_file(config.RUNS_DIR / f"run_{job_id}.json")
    if telemetry:
        elapsed = telemetry.get("ended_at", 0) - telemetry.get("started_at", 0)
        print(f"  units processed: {telemetry.get('units_processed', 0)} in {elapsed:.1f}s")

    handled = db.list_outcomes(job_id, kind="handled")
    if handled:
        print("\nHandled failures:")
        for row in handled:
            print(f"  {row['scope_key']}: {row['message']}")

    unexpected = db.list_outcomes(job_id, kind="unexpected")
    if unexpected:
        print("\nUnexpected responses:")
        for row in unexpected:
            print(f"  {row['scope_key']}: {row['artifact_path']}")

    return 0


if __name__ == "__main__":  # pragma: no cover - CLI entry
    raise SystemExit(main())
