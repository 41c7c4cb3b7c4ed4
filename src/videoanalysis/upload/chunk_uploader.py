"""Sequential chunk upload to the remote analysis service."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Awaitable, Callable, Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import httpx

from ..exceptions import (
    ChunkSplitError,
    ChunkUploadError,
    MissingJobHandleError,
    RemoteProtocolError,
)
from ..jobs.jobs_models import UploadReceipt
from ..remote.remote_paths import DEFAULT_STORAGE_MARKERS, to_relative_storage_path
from .chunk_splitter import Chunk, remove_chunks, split_filename, split_into_chunks
from .memory_pressure import MemoryPressureMonitor

logger = logging.getLogger(__name__)

MIB = 1024 * 1024

# Connection-level failures; the service may still be healthy.
TRANSIENT_ERRORS: tuple[type[Exception], ...] = (
    httpx.TimeoutException,
    httpx.NetworkError,
    httpx.RemoteProtocolError,
)


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    """Bounded exponential backoff: 2 s, 4 s, ... capped at ``max_backoff_seconds``."""

    max_attempts: int = 3
    initial_backoff_seconds: float = 2.0
    max_backoff_seconds: float = 10.0

    def backoff(self, retry_number: int) -> float:
        """Delay before retry ``retry_number`` (1-based)."""
        delay = self.initial_backoff_seconds * (2 ** (retry_number - 1))
        return min(delay, self.max_backoff_seconds)


def _default_timeout() -> httpx.Timeout:
    return httpx.Timeout(30 * 60, connect=10.0)


@dataclass(slots=True)
class ChunkUploader:
    """Upload chunk files strictly in order, one request at a time."""

    base_url: str
    chunk_root: Path
    chunk_size: int = 50 * MIB
    retry: RetryPolicy = field(default_factory=RetryPolicy)
    timeout: httpx.Timeout = field(default_factory=_default_timeout)
    storage_markers: Sequence[str] = DEFAULT_STORAGE_MARKERS
    memory: MemoryPressureMonitor = field(default_factory=MemoryPressureMonitor)
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
    transport: httpx.AsyncBaseTransport | None = None
    log: logging.Logger = field(default_factory=lambda: logger)

    async def upload_file(
        self,
        source: Path,
        *,
        metadata: Mapping[str, Any],
        namespace: str,
        original_filename: str | None = None,
    ) -> UploadReceipt:
        """Split ``source`` under ``chunk_root/namespace``, upload and clean up.

        No chunk file survives this call, whatever the outcome.
        """
        directory = self.chunk_root / namespace
        display_name = original_filename or source.name
        chunks: list[Chunk] = []
        try:
            try:
                chunks = await asyncio.to_thread(
                    split_into_chunks,
                    source,
                    chunk_size=self.chunk_size,
                    target_dir=directory,
                    filename=display_name,
                )
            except ChunkSplitError as exc:
                chunks = exc.chunks
                raise
            if not chunks:
                raise ChunkSplitError(f"source '{display_name}' is empty")

            stem, _ = split_filename(display_name)
            return await self.upload(chunks, stem, metadata)
        finally:
            removed = remove_chunks(chunks, directory)
            if removed:
                self.log.info(
                    "analysis.upload.chunks_swept",
                    extra={"namespace": namespace, "removed": removed},
                )

    async def upload(
        self,
        chunks: Sequence[Chunk],
        original_filename_stem: str,
        metadata: Mapping[str, Any],
    ) -> UploadReceipt:
        """Send every chunk and return the job handle and storage path.

        The handle may arrive in any response and the last non-empty one
        wins. The storage path is only read from the final response. Every
        chunk file is gone when this returns or raises.
        """
        metadata_json = json.dumps(dict(metadata), ensure_ascii=False)
        job_handle: str | None = None
        video_path: str | None = None

        try:
            async with httpx.AsyncClient(
                base_url=self.base_url, timeout=self.timeout, transport=self.transport
            ) as client:
                for chunk in chunks:
                    await self.memory.check("before_chunk", chunk_index=chunk.index)
                    try:
                        body = await self._send_with_retry(
                            client, chunk, original_filename_stem, metadata_json
                        )
                    finally:
                        self._discard(chunk)

                    handle = body.get("job_id")
                    if handle is not None and str(handle):
                        job_handle = str(handle)
                    if chunk.is_last:
                        video_path = self._extract_video_path(body)

                    self.log.info(
                        "analysis.upload.chunk.done",
                        extra={
                            "chunk_index": chunk.index,
                            "total_chunks": chunk.total,
                            "size_bytes": chunk.size,
                            "job_handle": job_handle,
                        },
                    )
                    await self.memory.check("after_chunk", chunk_index=chunk.index)
        finally:
            removed = remove_chunks(list(chunks))
            if removed:
                self.log.info("analysis.upload.chunks_swept", extra={"removed": removed})

        if not job_handle:
            raise MissingJobHandleError(
                f"all {len(chunks)} chunks were accepted but no job_id was returned"
            )
        return UploadReceipt(job_handle=job_handle, video_path=video_path)

    async def _send_with_retry(
        self,
        client: httpx.AsyncClient,
        chunk: Chunk,
        stem: str,
        metadata_json: str,
    ) -> dict[str, Any]:
        form = {
            "metadata": metadata_json,
            "chunk_index": str(chunk.index),
            "total_chunks": str(chunk.total),
            "original_filename": stem,
        }
        attempt = 0
        while True:
            attempt += 1
            try:
                with chunk.path.open("rb") as payload:
                    response = await client.post(
                        "/analysis",
                        data=form,
                        files={"video": (chunk.path.name, payload, "application/octet-stream")},
                    )
            except TRANSIENT_ERRORS as exc:
                if attempt >= self.retry.max_attempts:
                    self.log.error(
                        "analysis.upload.chunk.exhausted",
                        extra={
                            "chunk_index": chunk.index,
                            "total_chunks": chunk.total,
                            "attempts": attempt,
                            "error": repr(exc),
                        },
                    )
                    raise ChunkUploadError(chunk.index, chunk.total, attempt) from exc
                delay = self.retry.backoff(attempt)
                self.log.warning(
                    "analysis.upload.chunk.retry",
                    extra={
                        "chunk_index": chunk.index,
                        "total_chunks": chunk.total,
                        "attempt": attempt,
                        "max_attempts": self.retry.max_attempts,
                        "delay_seconds": delay,
                        "error": repr(exc),
                    },
                )
                await self.sleep(delay)
                continue
            return self._decode(response, chunk)

    @staticmethod
    def _decode(response: httpx.Response, chunk: Chunk) -> dict[str, Any]:
        label = f"chunk {chunk.index + 1}/{chunk.total}"
        if not response.is_success:
            raise RemoteProtocolError(
                f"{label} rejected with HTTP {response.status_code}",
                status_code=response.status_code,
            )
        if not response.content:
            raise RemoteProtocolError(f"{label} returned an empty body", status_code=response.status_code)
        try:
            body = response.json()
        except ValueError as exc:
            raise RemoteProtocolError(
                f"{label} returned a non-JSON body", status_code=response.status_code
            ) from exc
        if not isinstance(body, dict):
            raise RemoteProtocolError(
                f"{label} returned a non-object body", status_code=response.status_code
            )
        return body

    def _extract_video_path(self, body: Mapping[str, Any]) -> str | None:
        save_path = body.get("save_path")
        if isinstance(save_path, str) and save_path:
            return to_relative_storage_path(save_path, self.storage_markers)
        video_path = body.get("video_path")
        if isinstance(video_path, str) and video_path:
            return video_path
        return None

    def _discard(self, chunk: Chunk) -> None:
        try:
            chunk.path.unlink(missing_ok=True)
        except OSError as exc:
            self.log.warning(
                "analysis.chunk.cleanup_failed",
                extra={"path": str(chunk.path), "error": str(exc)},
            )
