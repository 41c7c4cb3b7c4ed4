"""Temporary storage for incoming source videos."""

from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass, field
from pathlib import Path

from fastapi import UploadFile

CHUNK_SIZE = 1 * 1024 * 1024  # 1 MiB


@dataclass(slots=True)
class SourceHandle:
    """Location of a persisted upload."""

    key: str
    path: Path
    size_bytes: int
    original_filename: str


@dataclass(slots=True)
class SourceStore:
    """Keeps each incoming video on disk until its upload phase ends."""

    root: Path
    log: logging.Logger = field(default_factory=lambda: logging.getLogger(__name__))

    def source_dir(self, key: str) -> Path:
        return self.root / "incoming" / key

    def chunk_root(self) -> Path:
        return self.root / "chunks"

    async def persist_upload(self, key: str, upload: UploadFile) -> SourceHandle:
        """Stream upload contents to disk without loading the whole file."""
        directory = self.source_dir(key)
        directory.mkdir(parents=True, exist_ok=True)
        original = upload.filename or "upload.bin"
        target = directory / self._derive_filename(original)

        size = 0
        try:
            with target.open("wb") as sink:
                while True:
                    block = await upload.read(CHUNK_SIZE)
                    if not block:
                        break
                    sink.write(block)
                    size += len(block)
        except BaseException:
            # Client disconnect or cancellation mid-stream.
            self.remove(key)
            self.log.warning(
                "analysis.source.persist_failed",
                extra={"staging_key": key, "size_bytes": size},
            )
            raise

        self.log.info(
            "analysis.source.persisted",
            extra={"staging_key": key, "path": str(target), "size_bytes": size},
        )
        return SourceHandle(key=key, path=target, size_bytes=size, original_filename=original)

    def remove(self, key: str) -> None:
        directory = self.source_dir(key)
        if directory.exists():
            shutil.rmtree(directory, ignore_errors=True)

    @staticmethod
    def _derive_filename(filename: str) -> str:
        name = Path(filename.replace("\\", "/")).name
        return name or "upload.bin"
