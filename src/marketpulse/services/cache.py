"""Timed in-memory cache for ranking and metrics query results."""

from __future__ import annotations

import asyncio
import hashlib
import json
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Dict

from loguru import logger

from marketpulse.observability.rankings import RankingObservabilityStore

Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _encode(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (set, frozenset)):
        return sorted(value)
    raise TypeError(f"Unsupported cache key parameter {value!r}")


def build_cache_key(operation: str, **params: Any) -> str:
    """Digest an operation name and its parameters into a stable cache key."""

    canonical = json.dumps(
        {"operation": operation, "params": params},
        sort_keys=True,
        separators=(",", ":"),
        default=_encode,
    )
    return f"{operation}:{hashlib.sha256(canonical.encode('utf-8')).hexdigest()}"


_OUTCOMES = {"hits": "hit", "misses": "miss", "computations": "computation", "failures": "failure"}


def _operation_of(key: str) -> str:
    return key.split(":", 1)[0]


@dataclass(frozen=True, slots=True)
class CacheEntry:
    key: str
    payload: Any
    expires_at: datetime

    def expired(self, now: datetime) -> bool:
        return now > self.expires_at


# meta: caching-strategy: timed-memory
class QueryCache:
    """Per-process TTL cache collapsing concurrent misses on the same key.

    Entries are replaced wholesale, so readers only ever observe a complete
    payload. A failed computation leaves the previous entry (if any) untouched
    and is never cached.
    """

    def __init__(
        self,
        *,
        clock: Clock | None = None,
        observability: RankingObservabilityStore | None = None,
    ) -> None:
        self._clock = clock or _utcnow
        self._observability = observability
        self._entries: Dict[str, CacheEntry] = {}
        self._locks: Dict[str, asyncio.Lock] = {}
        self._lock_users: Dict[str, int] = {}
        self._stats: Dict[str, int] = {"hits": 0, "misses": 0, "computations": 0, "failures": 0}

    def _acquire_lock(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        self._lock_users[key] = self._lock_users.get(key, 0) + 1
        return lock

    def _release_lock(self, key: str) -> None:
        remaining = self._lock_users[key] - 1
        if remaining:
            self._lock_users[key] = remaining
            return
        del self._lock_users[key]
        del self._locks[key]

    def _fresh(self, key: str) -> CacheEntry | None:
        entry = self._entries.get(key)
        if entry is None or entry.expired(self._clock()):
            return None
        return entry

    def _count(self, key: str, outcome: str) -> None:
        self._stats[outcome] += 1
        if self._observability is not None:
            self._observability.record_cache(_operation_of(key), _OUTCOMES[outcome])

    def peek(self, key: str) -> Any | None:
        entry = self._fresh(key)
        return entry.payload if entry else None

    async def get_or_compute(
        self,
        key: str,
        ttl: timedelta | float,
        compute: Callable[[], Awaitable[Any]],
    ) -> Any:
        ttl_delta = ttl if isinstance(ttl, timedelta) else timedelta(seconds=ttl)

        entry = self._fresh(key)
        if entry is not None:
            self._count(key, "hits")
            return entry.payload

        lock = self._acquire_lock(key)
        try:
            async with lock:
                entry = self._fresh(key)
                if entry is not None:
                    self._count(key, "hits")
                    return entry.payload

                self._count(key, "misses")
                try:
                    payload = await compute()
                except BaseException:
                    self._count(key, "failures")
                    raise
                self._count(key, "computations")
                self._entries[key] = CacheEntry(key=key, payload=payload, expires_at=self._clock() + ttl_delta)
                logger.bind(cache_key=key).debug("Cached query result", ttl_seconds=ttl_delta.total_seconds())
                return payload
        finally:
            self._release_lock(key)

    def pending_keys(self) -> int:
        """Keys with a computation running or waiting on one."""

        return len(self._locks)

    def invalidate(self, key: str) -> None:
        self._entries.pop(key, None)

    def clear(self) -> None:
        self._entries.clear()

    def stats(self) -> Dict[str, int]:
        return {**self._stats, "entries": len(self._entries)}


__all__ = ["CacheEntry", "Clock", "QueryCache", "build_cache_key"]
