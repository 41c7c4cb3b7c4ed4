"""Cron entry point for failing analysis jobs stuck after an interrupted upload."""

from __future__ import annotations

import argparse
import sys
from dataclasses import dataclass
from datetime import datetime, timedelta

from src.videoanalysis.config import AnalysisSettings, load_config
from src.videoanalysis.jobs.jobs_reaper import find_stalled_jobs, reap_stalled_jobs
from src.videoanalysis.jobs.jobs_repository import AnalysisJobRepository


@dataclass(slots=True)
class ReapSummary:
    stalled: int
    failed: int
    dry_run: bool


def perform_reap(
    *,
    dry_run: bool,
    grace_seconds: float | None = None,
    settings: AnalysisSettings | None = None,
    reference_time: datetime | None = None,
) -> ReapSummary:
    """Find stalled jobs and, unless ``dry_run``, fail them."""
    config = load_config(settings)
    jobs = AnalysisJobRepository(config.session_factory)
    grace = timedelta(
        seconds=grace_seconds if grace_seconds is not None else config.settings.poll_ceiling_seconds
    )
    now = reference_time or datetime.utcnow()

    if dry_run:
        stalled = find_stalled_jobs(jobs, grace=grace, reference_time=now)
        return ReapSummary(stalled=len(stalled), failed=0, dry_run=True)

    reaped = reap_stalled_jobs(jobs, grace=grace, reference_time=now)
    return ReapSummary(stalled=len(reaped), failed=len(reaped), dry_run=False)


def parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Fail analysis jobs stuck after an interrupted upload.")
    parser.add_argument("--dry-run", action="store_true", help="Only report counts without touching jobs.")
    parser.add_argument(
        "--grace-seconds",
        type=float,
        default=None,
        help="Silence after which a job counts as stalled (defaults to the poll ceiling).",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv or [])
    try:
        summary = perform_reap(dry_run=args.dry_run, grace_seconds=args.grace_seconds)
    except Exception as exc:
        print(f"reap failed: {exc}", file=sys.stderr)
        return 2

    if summary.dry_run:
        print(f"reap dry-run, stalled={summary.stalled}", file=sys.stdout)
    else:
        print(f"reap done, failed={summary.failed}", file=sys.stdout)
    return 0


if __name__ == "__main__":
    sys.exit(main(sys.argv[1:]))
