"""Split a source video into bounded chunk files on disk."""

from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass
from pathlib import Path

from ..exceptions import ChunkSplitError

logger = logging.getLogger(__name__)

READ_BLOCK_SIZE = 1 * 1024 * 1024  # 1 MiB


@dataclass(frozen=True, slots=True)
class Chunk:
    """One contiguous slice of the source file."""

    path: Path
    index: int
    total: int
    extension: str
    size: int

    @property
    def is_last(self) -> bool:
        return self.index == self.total - 1


def split_filename(filename: str) -> tuple[str, str]:
    """Return ``(stem, extension)`` with the extension lower-cased.

    ``"Talk.MP4"`` gives ``("Talk", ".mp4")``. A leading dot is part of the
    stem and a trailing dot yields no extension.
    """
    dot = filename.rfind(".")
    if dot <= 0:
        return filename, ""
    stem = filename[:dot]
    if dot == len(filename) - 1:
        return stem, ""
    return stem, filename[dot:].lower()


def chunk_count(size: int, chunk_size: int) -> int:
    return -(-size // chunk_size)


def split_into_chunks(
    source: Path,
    *,
    chunk_size: int,
    target_dir: Path,
    filename: str | None = None,
) -> list[Chunk]:
    """Write ``source`` into ``ceil(size / chunk_size)`` files under ``target_dir``.

    Only one read block is held in memory at a time. On any I/O failure a
    :class:`ChunkSplitError` is raised carrying the chunks already written.
    """
    if chunk_size <= 0:
        raise ValueError("chunk_size must be positive")

    stem, extension = split_filename(filename or source.name)
    written: list[Chunk] = []
    try:
        total_size = source.stat().st_size
        total = chunk_count(total_size, chunk_size)
        target_dir.mkdir(parents=True, exist_ok=True)
        logger.info(
            "analysis.split.start",
            extra={"source": str(source), "size_bytes": total_size, "chunks": total},
        )

        with source.open("rb") as reader:
            for index in range(total):
                path = target_dir / f"{stem}_chunk_{index}{extension}"
                remaining = min(chunk_size, total_size - index * chunk_size)
                size = 0
                with path.open("wb") as sink:
                    while size < remaining:
                        block = reader.read(min(READ_BLOCK_SIZE, remaining - size))
                        if not block:
                            break
                        sink.write(block)
                        size += len(block)
                chunk = Chunk(path=path, index=index, total=total, extension=extension, size=size)
                written.append(chunk)
                if size != remaining:
                    raise ChunkSplitError(
                        f"source '{source.name}' shrank while splitting", written
                    )
    except OSError as exc:
        raise ChunkSplitError(f"failed to split '{source.name}': {exc}", written) from exc

    logger.info(
        "analysis.split.done",
        extra={"source": str(source), "chunks": len(written), "target_dir": str(target_dir)},
    )
    return written


def remove_chunks(chunks: list[Chunk], directory: Path | None = None) -> int:
    """Delete chunk files that still exist and the chunk directory; return files removed."""
    removed = 0
    for chunk in chunks:
        try:
            if chunk.path.exists():
                chunk.path.unlink()
                removed += 1
        except OSError as exc:
            logger.warning(
                "analysis.chunk.cleanup_failed",
                extra={"path": str(chunk.path), "error": str(exc)},
            )
    if directory is not None and directory.exists():
        shutil.rmtree(directory, ignore_errors=True)
    return removed
