"""In-memory upstream response cache with stale fallback and coalescing."""

from __future__ import annotations

import asyncio
import logging
import time
from collections import OrderedDict
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from threading import Lock
from typing import Any

from .errors import UpstreamError

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class CacheEntry:
    key: str
    value: Any
    fetched_at: float  # clock() reading when the value was fetched


class ResponseCache:
    """Keyed store of upstream responses with per-call time-to-live.

    Writers: get_or_fetch() only, one entry per distinct upstream request.
    Readers: every concurrent snapshot build and the proxy routes.

    An entry is only ever superseded by a newer successful fetch; a failed
    refresh leaves it in place and the stale value is served instead.
    Concurrent calls for a key that is already being fetched share the one
    in-flight fetch.
    """

    def __init__(
        self,
        max_entries: int = 512,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._entries: OrderedDict[str, CacheEntry] = OrderedDict()
        self._inflight: dict[str, asyncio.Task] = {}
        self._lock = Lock()
        self._max_entries = max_entries
        self._clock = clock

    async def get_or_fetch(
        self,
        key: str,
        ttl: float,
        fetch: Callable[[], Awaitable[Any]],
    ) -> Any:
        """Return the cached value for key, refreshing it when older than ttl seconds.

        Raises UpstreamError only when the refresh fails and nothing was ever
        cached for the key.
        """
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None and self._clock() - entry.fetched_at < ttl:
                self._entries.move_to_end(key)
                logger.debug("Cache hit: %s", key)
                return entry.value

            task = self._inflight.get(key)
            if task is None:
                task = asyncio.ensure_future(self._refresh(key, fetch))
                self._inflight[key] = task
                task.add_done_callback(lambda t, key=key: self._forget(key, t))
            else:
                logger.debug("Coalescing fetch for %s", key)

        # Shielded so a cancelled caller does not cancel the fetch other callers share
        return await asyncio.shield(task)

    async def _refresh(self, key: str, fetch: Callable[[], Awaitable[Any]]) -> Any:
        try:
            value = await fetch()
        except UpstreamError as e:
            stale = self.get(key)
            if stale is None:
                raise
            logger.warning(
                "Upstream error for %s, serving cached value from %.1fs ago: %s",
                key,
                self._clock() - stale.fetched_at,
                e,
            )
            return stale.value

        self._store(key, value)
        return value

    def _forget(self, key: str, task: asyncio.Task) -> None:
        if not task.cancelled():
            task.exception()  # waiters re-raise it; mark retrieved in case all of them left
        with self._lock:
            if self._inflight.get(key) is task:
                del self._inflight[key]

    def _store(self, key: str, value: Any) -> None:
        with self._lock:
            self._entries[key] = CacheEntry(key=key, value=value, fetched_at=self._clock())
            self._entries.move_to_end(key)
            while len(self._entries) > self._max_entries:
                evicted, _ = self._entries.popitem(last=False)
                logger.debug("Evicted %s from response cache", evicted)

    def get(self, key: str) -> CacheEntry | None:
        """Current entry for key regardless of age, or None."""
        with self._lock:
            return self._entries.get(key)

    def purge(self, max_age: float) -> int:
        """Drop entries fetched more than max_age seconds ago. Returns the count removed."""
        cutoff = self._clock() - max_age
        with self._lock:
            expired = [k for k, e in self._entries.items() if e.fetched_at < cutoff]
            for key in expired:
                del self._entries[key]
        if expired:
            logger.info("Purged %d expired cache entries", len(expired))
        return len(expired)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return key in self._entries
