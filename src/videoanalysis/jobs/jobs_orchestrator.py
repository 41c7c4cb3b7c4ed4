"""Drive analysis jobs from upload through polling to completion."""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any

from fastapi import UploadFile

from ..cache.result_cache import ResultCacheBackend
from ..exceptions import ActiveJobExistsError, ChunkUploadError, InvalidTransitionError
from ..notifications.notifier import AnalysisCompletedEvent, LoggingNotifier, Notifier
from ..presentations.analysis_sections import derive_sections
from ..presentations.presentations_repository import (
    AnalysisSectionRepository,
    PresentationRepository,
)
from ..remote.remote_paths import DEFAULT_VIDEO_URL_PREFIX, build_video_url
from ..remote.result_poller import PollOutcome, PollResult, ResultPoller
from ..upload.chunk_uploader import ChunkUploader
from ..upload.source_store import SourceHandle, SourceStore
from .jobs_models import (
    POLL_TIMEOUT_REASON,
    REMOTE_NOT_FOUND_REASON,
    JobSnapshot,
    JobStatus,
    JobUpdate,
)
from .jobs_repository import AnalysisJobRepository
from .jobs_runner import AnalysisJobRunner

logger = logging.getLogger(__name__)

DEFAULT_TARGET_TIME = "6:00"


def resolve_target_time(
    requested: str | None,
    goal_time_minutes: int | None,
    default: str = DEFAULT_TARGET_TIME,
) -> str:
    """Pick the talk length sent to the analysis service as ``M:SS``."""
    if requested and requested.strip():
        return requested.strip()
    if goal_time_minutes is not None:
        return f"{goal_time_minutes}:00"
    return default


@dataclass(slots=True)
class AnalysisOrchestrator:
    """Owns the job state machine.

    Phases receive a :class:`JobSnapshot` and produce a :class:`JobUpdate`
    or :class:`PollResult`; only this class hands updates to the
    repository. Background phases never raise: every failure ends as a
    FAILED job or a log record.
    """

    jobs: AnalysisJobRepository
    presentations: PresentationRepository
    sections: AnalysisSectionRepository
    uploader: ChunkUploader
    poller: ResultPoller
    cache: ResultCacheBackend
    runner: AnalysisJobRunner
    source_store: SourceStore
    notifier: Notifier = field(default_factory=LoggingNotifier)
    default_target_time: str = DEFAULT_TARGET_TIME
    video_url_prefix: str = DEFAULT_VIDEO_URL_PREFIX
    log: logging.Logger = field(default_factory=lambda: logger)

    async def submit(
        self,
        presentation_id: str,
        upload: UploadFile,
        *,
        target_time: str | None = None,
    ) -> JobSnapshot:
        """Accept or reject a new analysis request.

        Raises ``PresentationNotFoundError`` or ``ActiveJobExistsError``;
        everything after acceptance happens in the background.
        """
        presentation = self.presentations.get(presentation_id)
        active = self.jobs.find_active(presentation_id)
        if active is not None:
            raise ActiveJobExistsError(presentation_id, active.job_id)

        source = await self.source_store.persist_upload(uuid.uuid4().hex, upload)
        try:
            job = self.jobs.create(
                presentation_id=presentation_id,
                original_filename=source.original_filename,
                file_size=source.size_bytes,
            )
        except Exception:
            self.source_store.remove(source.key)
            raise

        metadata = {
            "target_time": resolve_target_time(
                target_time, presentation.goal_time_minutes, self.default_target_time
            )
        }
        self.log.info(
            "analysis.job.accepted",
            extra={
                "job_id": job.job_id,
                "presentation_id": presentation_id,
                "size_bytes": source.size_bytes,
                "target_time": metadata["target_time"],
            },
        )
        await self.runner.submit(
            lambda: self.run_upload_phase(job, source, metadata),
            name=f"upload:{job.job_id}",
        )
        return job

    async def run_upload_phase(
        self,
        job: JobSnapshot,
        source: SourceHandle,
        metadata: Mapping[str, Any],
    ) -> None:
        try:
            await self._upload(job, source, metadata)
        except Exception:
            self.log.exception("analysis.upload.unexpected_error", extra={"job_id": job.job_id})
        finally:
            self.source_store.remove(source.key)

    async def _upload(
        self,
        job: JobSnapshot,
        source: SourceHandle,
        metadata: Mapping[str, Any],
    ) -> None:
        current = self.jobs.get(job.job_id)
        if current.status is not JobStatus.PENDING:
            self.log.info(
                "analysis.upload.skipped",
                extra={"job_id": job.job_id, "status": current.status.value},
            )
            return

        try:
            receipt = await self.uploader.upload_file(
                source.path,
                metadata=metadata,
                namespace=job.job_id,
                original_filename=source.original_filename,
            )
        except ChunkUploadError as exc:
            # The service may still be assembling what it received.
            self.log.warning(
                "analysis.upload.interrupted",
                extra={"job_id": job.job_id, "chunk_index": exc.chunk_index, "error": str(exc)},
            )
            self.apply(job.job_id, JobUpdate.upload_interrupted())
            return
        except Exception as exc:
            self.log.exception("analysis.upload.failed", extra={"job_id": job.job_id})
            self.apply(job.job_id, JobUpdate.failed(f"Analysis start failed: {exc}"))
            return

        updated = self.apply(job.job_id, JobUpdate.uploaded(receipt.job_handle, receipt.video_path))
        if updated is None:
            return

        if receipt.video_path:
            self._attach_video_url(updated.presentation_id, receipt.video_path, job_id=job.job_id)

        self.runner.spawn(lambda: self.run_poll_phase(updated), name=f"poll:{job.job_id}")

    async def run_poll_phase(self, job: JobSnapshot) -> None:
        if not job.remote_job_id:
            self.log.error("analysis.poll.missing_handle", extra={"job_id": job.job_id})
            return
        try:
            result = await self.poller.poll(job.job_id, job.remote_job_id)
            self.handle_poll_result(job, result)
        except Exception:
            self.log.exception("analysis.poll.unexpected_error", extra={"job_id": job.job_id})

    def resume_polling(self) -> int:
        """Restart the poll phase of jobs whose poller died with the process.

        Called once at startup; each resumed job gets a fresh poll ceiling.
        """
        resumed = 0
        for job in self.jobs.list_polling():
            self.runner.spawn(lambda job=job: self.run_poll_phase(job), name=f"poll:{job.job_id}")
            resumed += 1
        if resumed:
            self.log.info("analysis.poll.resumed", extra={"jobs": resumed})
        return resumed

    def handle_poll_result(self, job: JobSnapshot, result: PollResult) -> None:
        if result.outcome is PollOutcome.COMPLETED:
            self.complete(job, result.payload or {})
        elif result.outcome is PollOutcome.ERROR:
            self.apply(job.job_id, JobUpdate.failed(f"Remote analysis error: {result.error}"))
        elif result.outcome is PollOutcome.NOT_FOUND:
            self.apply(job.job_id, JobUpdate.failed(REMOTE_NOT_FOUND_REASON))
        else:
            self.apply(job.job_id, JobUpdate.failed(POLL_TIMEOUT_REASON))

    def complete(self, job: JobSnapshot, payload: dict[str, Any]) -> None:
        """Cache the payload, mark the job COMPLETED and run side effects."""
        self.cache.put(job.job_id, payload)

        reported_path = payload.get("video_path")
        video_path = str(reported_path) if reported_path else job.video_path
        updated = self.apply(job.job_id, JobUpdate.completed(video_path))
        if updated is None:
            return

        if video_path:
            self._attach_video_url(updated.presentation_id, video_path, job_id=job.job_id)
        self._isolated(
            "sections",
            updated,
            lambda: self.sections.replace_sections(
                updated.presentation_id, updated.job_id, derive_sections(payload)
            ),
        )
        self._isolated("notify", updated, lambda: self._notify(updated))
        self.log.info(
            "analysis.job.completed",
            extra={"job_id": job.job_id, "presentation_id": updated.presentation_id},
        )

    def apply(self, job_id: str, change: JobUpdate) -> JobSnapshot | None:
        """Apply ``change``; a refused transition is logged and yields ``None``."""
        try:
            snapshot = self.jobs.apply_update(job_id, change)
        except InvalidTransitionError as exc:
            self.log.warning(
                "analysis.job.transition_refused",
                extra={"job_id": job_id, "current": exc.current, "target": exc.target},
            )
            return None
        log_method = self.log.warning if change.status is JobStatus.FAILED else self.log.info
        log_method(
            "analysis.job.status",
            extra={
                "job_id": job_id,
                "status": snapshot.status.value,
                "error_message": snapshot.error_message,
                "remote_job_id": snapshot.remote_job_id,
            },
        )
        return snapshot

    def _attach_video_url(self, presentation_id: str, video_path: str, *, job_id: str) -> None:
        url = build_video_url(video_path, self.video_url_prefix)
        if url is None:
            return
        try:
            self.presentations.set_video_url(presentation_id, url)
        except Exception:
            self.log.exception(
                "analysis.presentation.video_url_failed",
                extra={"job_id": job_id, "presentation_id": presentation_id},
            )
            return
        self.log.info(
            "analysis.presentation.video_url",
            extra={"job_id": job_id, "presentation_id": presentation_id, "video_url": url},
        )

    def _notify(self, job: JobSnapshot) -> None:
        presentation = self.presentations.get(job.presentation_id)
        self.notifier.analysis_completed(
            AnalysisCompletedEvent(
                job_id=job.job_id,
                presentation_id=presentation.id,
                presentation_title=presentation.title,
                user_id=presentation.owner_user_id,
            )
        )

    def _isolated(self, step: str, job: JobSnapshot, action: Callable[[], object]) -> None:
        try:
            action()
        except Exception:
            self.log.exception(
                "analysis.complete.side_effect_failed",
                extra={"job_id": job.job_id, "step": step},
            )
