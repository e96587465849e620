"""
Server-anchored question countdown.

The timer never counts down a local duration: every tick recomputes the
remaining seconds from the absolute deadline, so a stalled event loop or a
late resume can only make the display jump forward, never drift.
Expiry fires at most once per armed deadline.
"""

from __future__ import annotations

import asyncio
import math
import time
from typing import TYPE_CHECKING

import structlog

from arena.logic.exceptions import ArenaError

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

logger = structlog.get_logger()

MS_PER_SECOND = 1000


def wall_clock_ms() -> float:
    """Current wall-clock time in epoch milliseconds."""
    return time.time() * MS_PER_SECOND


def seconds_until(deadline_ms: float, now_ms: float) -> int:
    """Whole seconds left until the deadline, rounded half up and clamped at zero."""
    return max(0, math.floor((deadline_ms - now_ms) / MS_PER_SECOND + 0.5))


class CountdownTimer:
    """
    One-second countdown toward an absolute deadline.

    `can_expire` is consulted when the countdown reaches zero; expiry only
    fires while it returns True (e.g. the phase is active and no answer has
    been committed).
    """

    def __init__(
        self,
        on_expired: Callable[[], Awaitable[None]],
        *,
        clock: Callable[[], float] = wall_clock_ms,
        on_tick: Callable[[int], None] | None = None,
        can_expire: Callable[[], bool] | None = None,
        tick_interval: float = 1.0,
    ) -> None:
        self._on_expired = on_expired
        self._clock = clock
        self._on_tick = on_tick
        self._can_expire = can_expire
        self._tick_interval = tick_interval
        self._deadline_ms: float | None = None
        self._expired = False
        self._paused = False
        self._task: asyncio.Task[None] | None = None

    @property
    def deadline_ms(self) -> float | None:
        return self._deadline_ms

    @property
    def armed(self) -> bool:
        return self._deadline_ms is not None

    @property
    def paused(self) -> bool:
        return self._paused

    @property
    def expired(self) -> bool:
        return self._expired

    @property
    def remaining_seconds(self) -> int:
        if self._deadline_ms is None:
            return 0
        return seconds_until(self._deadline_ms, self._clock())

    def arm(self, deadline_ms: float) -> None:
        """Start counting down toward a new deadline, replacing any previous one."""
        self._cancel_task()
        self._deadline_ms = deadline_ms
        self._expired = False
        self._paused = False
        logger.debug("timer armed", deadline_ms=deadline_ms, remaining=self.remaining_seconds)
        self._start()

    def pause(self) -> None:
        """Stop ticking without touching the deadline."""
        if self._deadline_ms is None or self._paused:
            return
        self._paused = True
        self._cancel_task()

    def resume(self, deadline_ms: float | None = None) -> None:
        """Resume ticking, re-anchoring when the server supplies a new deadline."""
        if deadline_ms is not None:
            self._deadline_ms = deadline_ms
        if self._deadline_ms is None:
            return
        self._paused = False
        if not self._expired:
            self._start()

    def disarm(self) -> None:
        """Stop all work for the current question."""
        self._cancel_task()
        self._deadline_ms = None
        self._paused = False

    async def tick(self) -> int:
        """Recompute the remaining time and fire expiry when it first reaches zero."""
        remaining = self.remaining_seconds
        if self._on_tick is not None:
            self._on_tick(remaining)
        if remaining == 0 and not self._expired and self._deadline_ms is not None and self._guard_allows():
            self._expired = True
            logger.info("question timer expired", deadline_ms=self._deadline_ms)
            await self._on_expired()
        return remaining

    def _guard_allows(self) -> bool:
        return self._can_expire is None or self._can_expire()

    def _start(self) -> None:
        self._cancel_task()
        self._task = asyncio.create_task(self._run())

    def _cancel_task(self) -> None:
        task = self._task
        self._task = None
        # expiry callbacks may disarm the timer from inside its own task
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    async def _run(self) -> None:
        try:
            while True:
                remaining = await self.tick()
                if remaining == 0 or self._expired:
                    return
                await asyncio.sleep(self._tick_interval)
        except asyncio.CancelledError:
            pass
        except (ArenaError, RuntimeError, OSError, ValueError):
            logger.exception("timer callback failed")
