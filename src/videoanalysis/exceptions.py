"""Error taxonomy for the analysis pipeline and repository helpers."""

from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator, TypeVar

from sqlalchemy import exc as sa_exc

__all__ = [
    "AppError",
    "RepositoryError",
    "NotFoundError",
    "IntegrityConstraintViolation",
    "DatabaseOperationError",
    "AnalysisError",
    "JobNotFoundError",
    "PresentationNotFoundError",
    "ActiveJobExistsError",
    "InvalidTransitionError",
    "JobNotCancellableError",
    "UploadError",
    "ChunkSplitError",
    "ChunkUploadError",
    "RemoteProtocolError",
    "MissingJobHandleError",
    "ensure_found",
    "handle_sqlalchemy_errors",
]

T = TypeVar("T")


class AppError(Exception):
    """Base class for application specific errors."""


class RepositoryError(AppError):
    """Base class for persistence layer failures."""


class NotFoundError(RepositoryError):
    """Raised when a record could not be located."""


class IntegrityConstraintViolation(RepositoryError):
    """Raised when a database constraint is violated."""


class DatabaseOperationError(RepositoryError):
    """Raised for unexpected database errors."""


class AnalysisError(AppError):
    """Base class for failures of the video analysis pipeline."""


class JobNotFoundError(NotFoundError, AnalysisError):
    """Raised when an analysis job id is unknown."""


class PresentationNotFoundError(NotFoundError, AnalysisError):
    """Raised when the presentation owning a job does not exist."""


class ActiveJobExistsError(IntegrityConstraintViolation, AnalysisError):
    """Raised when a presentation already has a pending or processing job."""

    def __init__(self, presentation_id: str, existing_job_id: str | None = None) -> None:
        self.presentation_id = presentation_id
        self.existing_job_id = existing_job_id
        suffix = f": {existing_job_id}" if existing_job_id else ""
        super().__init__(f"presentation '{presentation_id}' already has an active analysis job{suffix}")


class InvalidTransitionError(AnalysisError):
    """Raised when a status change would leave a terminal state or skip a step."""

    def __init__(self, job_id: str, current: str, target: str) -> None:
        self.job_id = job_id
        self.current = current
        self.target = target
        super().__init__(f"job '{job_id}' cannot move from {current} to {target}")


class JobNotCancellableError(AnalysisError):
    """Raised when cancellation is requested after the upload started."""

    def __init__(self, job_id: str, status: str) -> None:
        self.job_id = job_id
        self.status = status
        super().__init__(f"job '{job_id}' is {status} and can no longer be cancelled")


class UploadError(AnalysisError):
    """Base class for failures of the chunked upload."""


class ChunkSplitError(UploadError):
    """Raised when the source cannot be read or a chunk cannot be written.

    ``chunks`` holds every chunk written before the failure so the caller
    can remove them.
    """

    def __init__(self, message: str, chunks: list | None = None) -> None:
        super().__init__(message)
        self.chunks = list(chunks or [])


class ChunkUploadError(UploadError):
    """Raised when a chunk keeps failing with transient network errors."""

    def __init__(self, chunk_index: int, total_chunks: int, attempts: int) -> None:
        self.chunk_index = chunk_index
        self.total_chunks = total_chunks
        self.attempts = attempts
        super().__init__(
            f"chunk {chunk_index + 1}/{total_chunks} failed after {attempts} attempts"
        )


class RemoteProtocolError(UploadError):
    """Raised for non-2xx or empty responses from the analysis service."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class MissingJobHandleError(UploadError):
    """Raised when every chunk was accepted but no response carried a job id."""


def ensure_found(
    record: T | None,
    *,
    entity: str,
    identifier: str,
    error: type[NotFoundError] = NotFoundError,
) -> T:
    """Ensure a record exists, otherwise raise ``error``."""

    if record is None:
        raise error(f"{entity} '{identifier}' not found")
    return record


def _translate_sqlalchemy_error(exc: Exception, *, entity: str | None) -> RepositoryError:
    prefix = f"{entity}: " if entity else ""
    if isinstance(exc, sa_exc.IntegrityError):
        return IntegrityConstraintViolation(f"{prefix}integrity constraint violated")
    if isinstance(exc, sa_exc.DBAPIError):
        return DatabaseOperationError(f"{prefix}database operation failed")
    return RepositoryError(f"{prefix}{exc}")


@contextmanager
def handle_sqlalchemy_errors(*, entity: str | None = None) -> Iterator[None]:
    """Translate SQLAlchemy errors into domain specific ones."""

    try:
        yield
    except (sa_exc.IntegrityError, sa_exc.DBAPIError) as exc:
        raise _translate_sqlalchemy_error(exc, entity=entity) from exc
