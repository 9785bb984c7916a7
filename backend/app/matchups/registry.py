"""Registry of connected stream subscribers, keyed by the slate they watch."""

from __future__ import annotations

import asyncio
import itertools
import logging
import time
from dataclasses import dataclass, field
from threading import Lock
from typing import Protocol

from .models import WatchKey

logger = logging.getLogger(__name__)

_subscriber_ids = itertools.count(1)


class SinkClosed(Exception):
    """A subscriber's sink can no longer accept payloads."""


class Sink(Protocol):
    def send(self, payload: str) -> None:
        """Deliver one serialized snapshot. Raises on failure; never blocks."""


class QueueSink:
    """Bounded asyncio-queue sink drained by one streaming response.

    A full queue means the client stopped reading; it is reported as
    SinkClosed so the broadcaster drops the subscriber instead of buffering
    without limit.
    """

    def __init__(self, maxsize: int = 16) -> None:
        self._queue: asyncio.Queue[str] = asyncio.Queue(maxsize=maxsize)
        self._closed = False

    def send(self, payload: str) -> None:
        if self._closed:
            raise SinkClosed("sink is closed")
        try:
            self._queue.put_nowait(payload)
        except asyncio.QueueFull:
            self._closed = True
            raise SinkClosed("subscriber is not keeping up") from None

    async def get(self) -> str:
        return await self._queue.get()

    def close(self) -> None:
        self._closed = True

    @property
    def closed(self) -> bool:
        return self._closed


@dataclass(eq=False)
class Subscriber:
    """One open stream. Identity-compared; used as the subscription handle."""

    watch_key: WatchKey
    sink: Sink
    id: int = field(default_factory=lambda: next(_subscriber_ids))
    connected_at: float = field(default_factory=time.time)
    last_version: int = 0  # version of the last snapshot written to this sink


class SubscriptionRegistry:
    """Thread-safe set of subscribers.

    Writers: stream connect/disconnect handlers and the broadcaster (on a
    failed write).
    Readers: broadcaster ticks, via active_keys() and subscribers_for().
    Readers always get copies, never live views.
    """

    def __init__(self) -> None:
        self._subscribers: dict[int, Subscriber] = {}
        self._lock = Lock()

    def add(self, watch_key: WatchKey, sink: Sink) -> Subscriber:
        subscriber = Subscriber(watch_key=watch_key, sink=sink)
        with self._lock:
            self._subscribers[subscriber.id] = subscriber
        logger.info("Subscriber %d watching %s", subscriber.id, watch_key)
        return subscriber

    def remove(self, subscriber: Subscriber) -> bool:
        """Deregister a subscriber. Returns False if it was already gone."""
        with self._lock:
            removed = self._subscribers.pop(subscriber.id, None) is not None
        if removed:
            logger.info("Subscriber %d left %s", subscriber.id, subscriber.watch_key)
        return removed

    def active_keys(self) -> set[WatchKey]:
        with self._lock:
            return {s.watch_key for s in self._subscribers.values()}

    def subscribers_for(self, watch_key: WatchKey) -> list[Subscriber]:
        with self._lock:
            return [s for s in self._subscribers.values() if s.watch_key == watch_key]

    def count(self, watch_key: WatchKey | None = None) -> int:
        if watch_key is None:
            return len(self)
        return len(self.subscribers_for(watch_key))

    def __len__(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def __contains__(self, subscriber: Subscriber) -> bool:
        with self._lock:
            return self._subscribers.get(subscriber.id) is subscriber
