"""In-process TTL cache for completed analysis payloads."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Protocol

logger = logging.getLogger(__name__)

RESULT_TTL = timedelta(hours=24)


def _default_clock() -> datetime:
    return datetime.now(timezone.utc)


class ResultCacheBackend(Protocol):
    """Contract shared by the in-process cache and any external TTL store."""

    def put(self, job_id: str, payload: dict[str, Any]) -> None: ...

    def get(self, job_id: str) -> dict[str, Any] | None: ...

    def purge_expired(self) -> int: ...


@dataclass(slots=True)
class _CacheEntry:
    payload: dict[str, Any]
    expires_at: datetime

    def is_valid(self, *, now: datetime) -> bool:
        return now < self.expires_at


class ResultCache:
    """Keep payloads for ``ttl`` after they are stored.

    Expired entries are dropped lazily on read, on every write and by the
    periodic sweep started with the application.
    """

    def __init__(
        self,
        *,
        ttl: timedelta = RESULT_TTL,
        clock: Callable[[], datetime] | None = None,
        log: logging.Logger | None = None,
    ) -> None:
        if ttl <= timedelta(0):
            raise ValueError("ttl must be positive")
        self._ttl = ttl
        self._clock = clock or _default_clock
        self._entries: Dict[str, _CacheEntry] = {}
        self._lock = threading.Lock()
        self._logger = log or logger

    @property
    def ttl(self) -> timedelta:
        return self._ttl

    def put(self, job_id: str, payload: dict[str, Any]) -> None:
        now = self._clock()
        with self._lock:
            self._purge_locked(now)
            self._entries[job_id] = _CacheEntry(payload=dict(payload), expires_at=now + self._ttl)
        self._logger.info(
            "analysis.cache.put",
            extra={"job_id": job_id, "expires_at": (now + self._ttl).isoformat()},
        )

    def get(self, job_id: str) -> dict[str, Any] | None:
        now = self._clock()
        with self._lock:
            entry = self._entries.get(job_id)
            if entry is None:
                return None
            if not entry.is_valid(now=now):
                del self._entries[job_id]
                self._logger.info("analysis.cache.expired", extra={"job_id": job_id})
                return None
            return dict(entry.payload)

    def purge_expired(self) -> int:
        with self._lock:
            removed = self._purge_locked(self._clock())
        if removed:
            self._logger.info("analysis.cache.purged", extra={"removed": removed})
        return removed

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, job_id: object) -> bool:
        with self._lock:
            return job_id in self._entries

    def _purge_locked(self, now: datetime) -> int:
        expired = [key for key, entry in self._entries.items() if not entry.is_valid(now=now)]
        for key in expired:
            del self._entries[key]
        return len(expired)
