"""Advisory memory-pressure checks around chunk uploads."""

from __future__ import annotations

import asyncio
import gc
import logging
import os
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)

MIB = 1024 * 1024


def available_memory_bytes() -> int | None:
    """Return available physical memory, or ``None`` where the platform hides it."""
    try:
        return os.sysconf("SC_AVPHYS_PAGES") * os.sysconf("SC_PAGE_SIZE")
    except (AttributeError, ValueError, OSError):
        return None


@dataclass(slots=True)
class MemoryPressureMonitor:
    """Ask for a garbage collection pass when available memory runs low.

    The check never blocks an upload: it collects, pauses briefly, re-reads
    the figure, logs it and lets the caller continue.
    """

    low_watermark_bytes: int = 100 * MIB
    pause_seconds: float = 0.1
    probe: Callable[[], int | None] = available_memory_bytes
    collect: Callable[[], object] = gc.collect
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
    log: logging.Logger = field(default_factory=lambda: logger)

    async def check(self, stage: str, *, chunk_index: int | None = None) -> bool:
        """Return ``True`` when a collection was requested."""
        available = self.probe()
        if available is None or available >= self.low_watermark_bytes:
            return False

        self.log.warning(
            "analysis.memory.low",
            extra={
                "stage": stage,
                "chunk_index": chunk_index,
                "available_mb": available // MIB,
                "watermark_mb": self.low_watermark_bytes // MIB,
            },
        )
        self.collect()
        if self.pause_seconds > 0:
            await self.sleep(self.pause_seconds)
        after = self.probe()
        self.log.info(
            "analysis.memory.after_collect",
            extra={
                "stage": stage,
                "chunk_index": chunk_index,
                "available_mb": None if after is None else after // MIB,
            },
        )
        return True
