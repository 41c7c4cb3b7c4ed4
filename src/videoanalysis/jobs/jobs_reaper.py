"""Fail jobs whose upload was interrupted and never produced a remote handle."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta

from ..exceptions import InvalidTransitionError
from .jobs_models import POLL_TIMEOUT_REASON, JobSnapshot, JobUpdate
from .jobs_repository import AnalysisJobRepository

logger = logging.getLogger(__name__)


def find_stalled_jobs(
    jobs: AnalysisJobRepository,
    *,
    grace: timedelta,
    reference_time: datetime | None = None,
) -> list[JobSnapshot]:
    """PROCESSING jobs without a remote handle untouched for longer than ``grace``."""
    now = reference_time or datetime.utcnow()
    return jobs.list_stalled(now - grace)


def reap_stalled_jobs(
    jobs: AnalysisJobRepository,
    *,
    grace: timedelta,
    reference_time: datetime | None = None,
) -> list[JobSnapshot]:
    """Move stalled jobs to FAILED with a timeout reason and return them."""
    reaped: list[JobSnapshot] = []
    for job in find_stalled_jobs(jobs, grace=grace, reference_time=reference_time):
        try:
            failed = jobs.apply_update(job.job_id, JobUpdate.failed(POLL_TIMEOUT_REASON))
        except InvalidTransitionError:
            # Finished while we were looking.
            continue
        reaped.append(failed)
        logger.warning(
            "analysis.reaper.failed_job",
            extra={
                "job_id": job.job_id,
                "presentation_id": job.presentation_id,
                "stalled_since": job.updated_at.isoformat(),
            },
        )
    return reaped
