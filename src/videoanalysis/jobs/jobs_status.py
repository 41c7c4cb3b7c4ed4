"""Read-side facade over analysis jobs and cached results."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from ..cache.result_cache import ResultCacheBackend
from ..exceptions import InvalidTransitionError, JobNotCancellableError
from .jobs_models import CANCELLED_BY_USER, JobSnapshot, JobStatus, JobStatusView, JobUpdate
from .jobs_repository import AnalysisJobRepository

PENDING_MESSAGE = "Preparing the analysis..."
PROCESSING_MESSAGE = "The analysis service is processing the video..."
COMPLETED_MESSAGE = "Analysis completed."
FAILED_MESSAGE = "Analysis failed"


def status_message(status: JobStatus, error_message: str | None) -> str:
    """Human readable message; depends only on the status and stored error text."""
    if status is JobStatus.PENDING:
        return PENDING_MESSAGE
    if status is JobStatus.PROCESSING:
        return error_message or PROCESSING_MESSAGE
    if status is JobStatus.COMPLETED:
        return COMPLETED_MESSAGE
    return f"{FAILED_MESSAGE}: {error_message}" if error_message else FAILED_MESSAGE


class ResultState(StrEnum):
    READY = "ready"
    NOT_READY = "not_ready"
    EXPIRED = "expired"


@dataclass(frozen=True, slots=True)
class ResultLookup:
    state: ResultState
    status: JobStatus
    payload: dict[str, Any] | None = None


@dataclass(slots=True)
class JobStatusService:
    """Status, result, cancellation and listing for clients.

    ``get_status`` and ``get_result`` never write to the store, so repeated
    calls return the same answer until a background phase moves the job.
    """

    jobs: AnalysisJobRepository
    cache: ResultCacheBackend
    log: logging.Logger = field(default_factory=lambda: logging.getLogger(__name__))

    def get_status(self, job_id: str) -> JobStatusView:
        return self._view(self.jobs.get(job_id))

    def get_result(self, job_id: str) -> ResultLookup:
        job = self.jobs.get(job_id)
        if job.status is not JobStatus.COMPLETED:
            return ResultLookup(ResultState.NOT_READY, job.status)
        payload = self.cache.get(job_id)
        if payload is None:
            self.log.info("analysis.result.expired", extra={"job_id": job_id})
            return ResultLookup(ResultState.EXPIRED, job.status)
        return ResultLookup(ResultState.READY, job.status, payload)

    def cancel(self, job_id: str) -> JobStatusView:
        """Fail a job that has not started uploading yet."""
        job = self.jobs.get(job_id)
        if job.status is not JobStatus.PENDING:
            raise JobNotCancellableError(job_id, job.status.value)
        try:
            cancelled = self.jobs.apply_update(job_id, JobUpdate.failed(CANCELLED_BY_USER))
        except InvalidTransitionError as exc:
            # The upload phase moved it first.
            raise JobNotCancellableError(job_id, exc.current) from exc
        self.log.info(
            "analysis.job.cancelled",
            extra={"job_id": job_id, "presentation_id": cancelled.presentation_id},
        )
        return self._view(cancelled)

    def list_for_presentation(self, presentation_id: str) -> list[JobStatusView]:
        return [self._view(job) for job in self.jobs.list_for_presentation(presentation_id)]

    @staticmethod
    def _view(job: JobSnapshot) -> JobStatusView:
        return JobStatusView(
            job_id=job.job_id,
            presentation_id=job.presentation_id,
            status=job.status,
            message=status_message(job.status, job.error_message),
            created_at=job.created_at,
            updated_at=job.updated_at,
            video_path=job.video_path,
            error_message=job.error_message,
        )
