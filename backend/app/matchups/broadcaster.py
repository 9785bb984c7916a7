"""Change detection and fan-out of matchup snapshots to subscribers."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from threading import Lock

from .errors import BuildError
from .models import Snapshot, WatchKey
from .registry import Sink, Subscriber, SubscriptionRegistry
from .snapshot import SnapshotBuilder

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class _Held:
    snapshot: Snapshot
    payload: str  # serialized once, reused for late subscribers
    version: int


class Broadcaster:
    """Holds the last broadcast snapshot per watch key and pushes changes.

    Per key: nothing is held until the first successful build. After that,
    each tick rebuilds the snapshot; an equal result is dropped, a different
    one replaces the held snapshot and is written to every subscriber of the
    key. A failed build never replaces the held snapshot and is never sent.

    Lifecycle:
        broadcaster = Broadcaster(registry, builder)
        handle = broadcaster.subscribe(key, sink)
        await broadcaster.poll_once()   # driven by AdaptiveScheduler
        broadcaster.unsubscribe(handle)
        await broadcaster.close()
    """

    def __init__(
        self,
        registry: SubscriptionRegistry,
        builder: SnapshotBuilder,
        grace_period: float = 300.0,
        prime_on_subscribe: bool = True,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._registry = registry
        self._builder = builder
        self._grace = grace_period
        self._prime = prime_on_subscribe
        self._clock = clock
        self._held: dict[WatchKey, _Held] = {}
        self._idle_since: dict[WatchKey, float] = {}
        self._inflight: set[WatchKey] = set()
        self._tasks: set[asyncio.Task] = set()
        self._version = 0
        self._lock = Lock()

    # --- Subscribers ---

    def subscribe(self, watch_key: WatchKey, sink: Sink) -> Subscriber:
        """Register a sink and send it the held snapshot for its key, if any."""
        subscriber = self._registry.add(watch_key, sink)
        with self._lock:
            held = self._held.get(watch_key)
            self._idle_since.pop(watch_key, None)

        if held is not None:
            self._deliver(subscriber, held)
        elif self._prime:
            task = asyncio.create_task(self._prime_key(watch_key), name=f"prime-{watch_key}")
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
        return subscriber

    def unsubscribe(self, subscriber: Subscriber) -> None:
        self._registry.remove(subscriber)

    async def _prime_key(self, watch_key: WatchKey) -> None:
        try:
            await self.refresh(watch_key)
        except Exception:
            logger.exception("Initial refresh of %s failed", watch_key)

    # --- Ticks ---

    async def poll_once(self) -> int:
        """Refresh every watched key concurrently. Returns how many keys broadcast."""
        keys = self._registry.active_keys()
        ordered = list(keys)
        broadcast = 0
        if ordered:
            results = await asyncio.gather(
                *(self.refresh(key) for key in ordered), return_exceptions=True
            )
            for key, result in zip(ordered, results):
                if isinstance(result, BaseException):
                    logger.error("Refresh of %s failed unexpectedly", key, exc_info=result)
                elif result:
                    broadcast += 1
        self.prune(keys)
        return broadcast

    async def refresh(self, watch_key: WatchKey) -> bool:
        """Rebuild one key's snapshot and broadcast it if it changed.

        Skipped (returns False) while a previous refresh of the same key is
        still running, so ticks for a key never overlap.
        """
        with self._lock:
            if watch_key in self._inflight:
                logger.debug("Refresh of %s still running, skipping tick", watch_key)
                return False
            self._inflight.add(watch_key)

        try:
            try:
                snapshot = await self._builder.build(watch_key)
            except BuildError as e:
                logger.warning("Could not build snapshot for %s: %s", watch_key, e)
                return False

            with self._lock:
                current = self._held.get(watch_key)
                if current is not None and current.snapshot == snapshot:
                    return False
                self._version += 1
                held = _Held(snapshot=snapshot, payload=snapshot.to_json(), version=self._version)
                self._held[watch_key] = held

            sent = self._fan_out(watch_key, held)
            logger.info("Updated %s - broadcast to %d clients", watch_key, sent)
            return True
        finally:
            with self._lock:
                self._inflight.discard(watch_key)

    def _fan_out(self, watch_key: WatchKey, held: _Held) -> int:
        sent = 0
        for subscriber in self._registry.subscribers_for(watch_key):
            if self._deliver(subscriber, held):
                sent += 1
        return sent

    def _deliver(self, subscriber: Subscriber, held: _Held) -> bool:
        if subscriber.last_version >= held.version:
            return False
        try:
            subscriber.sink.send(held.payload)
        except Exception as e:
            logger.warning("Dropping subscriber %d on %s: %s", subscriber.id, subscriber.watch_key, e)
            self._registry.remove(subscriber)
            return False
        subscriber.last_version = held.version
        return True

    # --- Housekeeping ---

    def prune(self, active: set[WatchKey] | None = None) -> list[WatchKey]:
        """Drop held snapshots whose key has had no subscribers for the grace period."""
        active = self._registry.active_keys() if active is None else active
        now = self._clock()
        dropped = []
        with self._lock:
            for key in list(self._held):
                if key in active:
                    self._idle_since.pop(key, None)
                    continue
                idle_since = self._idle_since.setdefault(key, now)
                if now - idle_since >= self._grace:
                    del self._held[key]
                    del self._idle_since[key]
                    dropped.append(key)
        for key in dropped:
            logger.info("Released snapshot for unwatched %s", key)
        return dropped

    def snapshot(self, watch_key: WatchKey) -> Snapshot | None:
        with self._lock:
            held = self._held.get(watch_key)
        return held.snapshot if held else None

    def held_count(self) -> int:
        with self._lock:
            return len(self._held)

    async def close(self) -> None:
        """Cancel any outstanding subscribe-time refreshes."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()
