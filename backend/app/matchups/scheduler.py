"""Adaptive polling schedule driven by a game-activity heuristic."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import datetime

from .broadcaster import Broadcaster

logger = logging.getLogger(__name__)

SUNDAY, MONDAY, THURSDAY = 6, 0, 3  # datetime.weekday() numbering


@dataclass(frozen=True, slots=True)
class ActivityWindow:
    """A weekday and inclusive hour range during which games are likely live."""

    weekday: int
    start_hour: int
    end_hour: int

    def contains(self, moment: datetime) -> bool:
        return moment.weekday() == self.weekday and self.start_hour <= moment.hour <= self.end_hour


# Sunday, Monday and Thursday, 1 PM through 11:59 PM local time
GAME_WINDOWS: tuple[ActivityWindow, ...] = (
    ActivityWindow(SUNDAY, 13, 23),
    ActivityWindow(MONDAY, 13, 23),
    ActivityWindow(THURSDAY, 13, 23),
)


def is_high_activity(
    moment: datetime, windows: Sequence[ActivityWindow] = GAME_WINDOWS
) -> bool:
    return any(window.contains(moment) for window in windows)


class AdaptiveScheduler:
    """Runs one broadcast pass per interval, choosing the interval by time of day.

    The interval is re-derived once per reevaluate_every seconds, not on
    every tick. When it changes, the poll loop is cancelled and re-armed.
    Each pass runs on its own task, so a pass that is still waiting on a
    slow upstream neither delays the next tick nor is cut short by a re-arm.

    Lifecycle:
        scheduler = AdaptiveScheduler(broadcaster)
        await scheduler.start()
        # ... app runs ...
        await scheduler.stop()
    """

    def __init__(
        self,
        broadcaster: Broadcaster,
        active_interval: float = 3.0,
        idle_interval: float = 10.0,
        reevaluate_every: float = 3600.0,
        windows: Sequence[ActivityWindow] = GAME_WINDOWS,
        now: Callable[[], datetime] = datetime.now,
    ) -> None:
        self._broadcaster = broadcaster
        self._active_interval = active_interval
        self._idle_interval = idle_interval
        self._reevaluate_every = reevaluate_every
        self._windows = tuple(windows)
        self._now = now
        self._interval = self.interval_for(now())
        self._poll_task: asyncio.Task | None = None
        self._reevaluate_task: asyncio.Task | None = None
        self._passes: set[asyncio.Task] = set()

    def interval_for(self, moment: datetime) -> float:
        if is_high_activity(moment, self._windows):
            return self._active_interval
        return self._idle_interval

    def current_interval_seconds(self) -> float:
        return self._interval

    def current_interval_millis(self) -> int:
        return int(self._interval * 1000)

    @property
    def running(self) -> bool:
        return self._poll_task is not None and not self._poll_task.done()

    async def start(self) -> None:
        self._interval = self.interval_for(self._now())
        self._arm()
        self._reevaluate_task = asyncio.create_task(
            self._reevaluate_loop(), name="poll-reevaluate"
        )
        logger.info(
            "Polling started with %dms interval (game time: %s)",
            self.current_interval_millis(),
            self._interval == self._active_interval,
        )

    async def stop(self) -> None:
        for task in (self._reevaluate_task, self._poll_task, *self._passes):
            if task and not task.done():
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
        self._reevaluate_task = None
        self._poll_task = None
        self._passes.clear()
        logger.info("Polling stopped")

    def reevaluate(self) -> bool:
        """Re-derive the interval from the clock. Returns True if it changed."""
        interval = self.interval_for(self._now())
        if interval == self._interval:
            return False
        logger.info(
            "Poll interval changing from %dms to %dms",
            self.current_interval_millis(),
            int(interval * 1000),
        )
        self._interval = interval
        if self.running:
            self._poll_task.cancel()
            self._arm()
        return True

    # --- Internal ---

    def _arm(self) -> None:
        self._poll_task = asyncio.create_task(self._poll_loop(self._interval), name="poll-loop")

    async def _poll_loop(self, interval: float) -> None:
        while True:
            await asyncio.sleep(interval)
            # Keys still refreshing from an earlier pass are skipped by the broadcaster
            task = asyncio.create_task(self._run_pass(), name="broadcast-pass")
            self._passes.add(task)
            task.add_done_callback(self._passes.discard)

    async def _run_pass(self) -> None:
        try:
            await self._broadcaster.poll_once()
        except Exception:
            logger.exception("Broadcast pass failed")

    async def _reevaluate_loop(self) -> None:
        while True:
            await asyncio.sleep(self._reevaluate_every)
            self.reevaluate()
