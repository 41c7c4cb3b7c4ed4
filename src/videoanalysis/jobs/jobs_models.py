"""Data structures for the analysis job lifecycle."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum
from typing import Any


class JobStatus(StrEnum):
    """Lifecycle statuses for analysis_job records."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({JobStatus.COMPLETED, JobStatus.FAILED})
ACTIVE_STATUSES = frozenset({JobStatus.PENDING, JobStatus.PROCESSING})

# PROCESSING -> PROCESSING carries notes and late storage paths.
ALLOWED_TRANSITIONS: dict[JobStatus, frozenset[JobStatus]] = {
    JobStatus.PENDING: frozenset({JobStatus.PROCESSING, JobStatus.FAILED}),
    JobStatus.PROCESSING: frozenset(
        {JobStatus.PROCESSING, JobStatus.COMPLETED, JobStatus.FAILED}
    ),
    JobStatus.COMPLETED: frozenset(),
    JobStatus.FAILED: frozenset(),
}

CANCELLED_BY_USER = "Cancelled by user"
UPLOAD_INTERRUPTED_NOTE = (
    "Upload was interrupted by network errors; "
    "the analysis service may still be receiving the video."
)
POLL_TIMEOUT_REASON = "Analysis service did not respond in time (over 20 min)"
REMOTE_NOT_FOUND_REASON = "Analysis job not found on the analysis service"


def allowed_sources(target: JobStatus) -> tuple[JobStatus, ...]:
    """Return every status from which ``target`` may be reached."""
    return tuple(
        source for source, targets in ALLOWED_TRANSITIONS.items() if target in targets
    )


def can_transition(current: JobStatus, target: JobStatus) -> bool:
    return target in ALLOWED_TRANSITIONS[current]


@dataclass(frozen=True, slots=True)
class JobSnapshot:
    """Immutable view of an analysis job handed to the pipeline phases."""

    job_id: str
    presentation_id: str
    original_filename: str
    file_size: int
    status: JobStatus
    error_message: str | None
    remote_job_id: str | None
    video_path: str | None
    created_at: datetime
    updated_at: datetime

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal


@dataclass(frozen=True, slots=True)
class JobUpdate:
    """Status change produced by a phase and applied by the orchestrator.

    ``error_message`` is always written (``None`` clears it); ``remote_job_id``
    and ``video_path`` are only written when set so later updates never erase
    a known handle or storage path.
    """

    status: JobStatus
    error_message: str | None = None
    remote_job_id: str | None = None
    video_path: str | None = None

    @classmethod
    def uploaded(cls, remote_job_id: str, video_path: str | None) -> "JobUpdate":
        return cls(JobStatus.PROCESSING, remote_job_id=remote_job_id, video_path=video_path)

    @classmethod
    def upload_interrupted(cls, note: str = UPLOAD_INTERRUPTED_NOTE) -> "JobUpdate":
        return cls(JobStatus.PROCESSING, error_message=note)

    @classmethod
    def completed(cls, video_path: str | None = None) -> "JobUpdate":
        return cls(JobStatus.COMPLETED, video_path=video_path)

    @classmethod
    def failed(cls, reason: str) -> "JobUpdate":
        return cls(JobStatus.FAILED, error_message=reason)


@dataclass(frozen=True, slots=True)
class UploadReceipt:
    """Outcome of a fully accepted chunked upload."""

    job_handle: str
    video_path: str | None = None


@dataclass(slots=True)
class JobStatusView:
    """Status payload served to clients."""

    job_id: str
    presentation_id: str
    status: JobStatus
    message: str
    created_at: datetime
    updated_at: datetime
    video_path: str | None = None
    error_message: str | None = None

    def as_dict(self) -> dict[str, Any]:
        return {
            "job_id": self.job_id,
            "presentation_id": self.presentation_id,
            "status": self.status.value,
            "message": self.message,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
            "video_path": self.video_path,
            "error_message": self.error_message,
        }
