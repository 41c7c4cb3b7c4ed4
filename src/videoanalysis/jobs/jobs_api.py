"""HTTP routes for video analysis jobs."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import (
    APIRouter,
    Depends,
    File,
    Form,
    HTTPException,
    Request,
    UploadFile,
    status,
)

from ..exceptions import (
    ActiveJobExistsError,
    JobNotCancellableError,
    JobNotFoundError,
    PresentationNotFoundError,
)
from .jobs_models import JobStatus
from .jobs_orchestrator import AnalysisOrchestrator
from .jobs_schemas import AnalysisAcceptedSchema, AnalysisStatusSchema
from .jobs_status import JobStatusService, ResultState, status_message

router = APIRouter(prefix="/api", tags=["video-analysis"])
logger = logging.getLogger(__name__)


def get_orchestrator(request: Request) -> AnalysisOrchestrator:
    """Fetch the orchestrator from application state."""
    try:
        return request.app.state.orchestrator  # type: ignore[attr-defined]
    except AttributeError as exc:  # pragma: no cover - wiring error
        raise RuntimeError("AnalysisOrchestrator is not configured") from exc


def get_status_service(request: Request) -> JobStatusService:
    try:
        return request.app.state.status_service  # type: ignore[attr-defined]
    except AttributeError as exc:  # pragma: no cover - wiring error
        raise RuntimeError("JobStatusService is not configured") from exc


def _error(status_code: int, failure_reason: str, details: str | None = None, **extra: Any) -> HTTPException:
    detail: dict[str, Any] = {"status": "error", "failure_reason": failure_reason}
    if details is not None:
        detail["details"] = details
    detail.update(extra)
    return HTTPException(status_code=status_code, detail=detail)


def _job_not_found(job_id: str) -> HTTPException:
    logger.info("analysis.api.job_not_found", extra={"job_id": job_id})
    return _error(status.HTTP_404_NOT_FOUND, "job_not_found")


@router.post(
    "/presentations/{presentation_id}/video-analysis",
    status_code=status.HTTP_202_ACCEPTED,
    response_model=AnalysisAcceptedSchema,
)
async def start_video_analysis(
    presentation_id: str,
    video_file: UploadFile = File(...),
    target_time: str | None = Form(None),
    orchestrator: AnalysisOrchestrator = Depends(get_orchestrator),
) -> AnalysisAcceptedSchema:
    """Accept a video for analysis; the work continues in the background."""
    try:
        job = await orchestrator.submit(presentation_id, video_file, target_time=target_time)
    except PresentationNotFoundError:
        logger.info("analysis.api.presentation_not_found", extra={"presentation_id": presentation_id})
        raise _error(status.HTTP_404_NOT_FOUND, "presentation_not_found") from None
    except ActiveJobExistsError as exc:
        logger.info(
            "analysis.api.active_job_exists",
            extra={"presentation_id": presentation_id, "existing_job_id": exc.existing_job_id},
        )
        raise _error(
            status.HTTP_409_CONFLICT,
            "analysis_in_progress",
            existing_job_id=exc.existing_job_id,
        ) from exc

    return AnalysisAcceptedSchema(
        job_id=job.job_id,
        presentation_id=job.presentation_id,
        status=JobStatus.PENDING.value,
        message=status_message(JobStatus.PENDING, None),
    )


@router.get("/video-analysis/{job_id}/progress", response_model=AnalysisStatusSchema)
def get_analysis_progress(
    job_id: str,
    service: JobStatusService = Depends(get_status_service),
) -> AnalysisStatusSchema:
    try:
        view = service.get_status(job_id)
    except JobNotFoundError:
        raise _job_not_found(job_id) from None
    return AnalysisStatusSchema.from_view(view)


@router.get("/video-analysis/{job_id}/result")
def get_analysis_result(
    job_id: str,
    service: JobStatusService = Depends(get_status_service),
) -> dict[str, Any]:
    try:
        lookup = service.get_result(job_id)
    except JobNotFoundError:
        raise _job_not_found(job_id) from None

    if lookup.state is ResultState.NOT_READY:
        raise _error(
            status.HTTP_409_CONFLICT,
            "result_not_ready",
            job_status=lookup.status.value,
        )
    if lookup.state is ResultState.EXPIRED:
        raise _error(status.HTTP_410_GONE, "result_expired")
    return lookup.payload or {}


@router.delete("/video-analysis/{job_id}", response_model=AnalysisStatusSchema)
def cancel_video_analysis(
    job_id: str,
    service: JobStatusService = Depends(get_status_service),
) -> AnalysisStatusSchema:
    try:
        view = service.cancel(job_id)
    except JobNotFoundError:
        raise _job_not_found(job_id) from None
    except JobNotCancellableError as exc:
        raise _error(
            status.HTTP_409_CONFLICT,
            "job_not_cancellable",
            job_status=exc.status,
        ) from exc
    return AnalysisStatusSchema.from_view(view)


@router.get(
    "/presentations/{presentation_id}/video-analysis-jobs",
    response_model=list[AnalysisStatusSchema],
)
def list_video_analysis_jobs(
    presentation_id: str,
    service: JobStatusService = Depends(get_status_service),
) -> list[AnalysisStatusSchema]:
    return [AnalysisStatusSchema.from_view(view) for view in service.list_for_presentation(presentation_id)]
