"""
Behavioural integrity monitor.

Observes client-side signals while a question is in play and reports
suspicious activity to the organiser. Reporting is fire-and-forget: a
failing reporter is logged and never interrupts gameplay. Every report
carries a monotonically increasing cumulative count.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Protocol

import structlog

from arena.logic.enums import IntegrityKind
from arena.logic.exceptions import ArenaError
from arena.logic.timer import MS_PER_SECOND, wall_clock_ms
from arena.logic.types import IntegrityEvent

if TYPE_CHECKING:
    from collections.abc import Callable

logger = structlog.get_logger()

BLOCKED_SHORTCUT_KEYS = frozenset({"c", "v", "a", "x", "s"})
DEVTOOLS_KEY = "F12"


@dataclass(frozen=True)
class KeyPress:
    key: str
    ctrl: bool = False
    meta: bool = False
    shift: bool = False
    in_answer_input: bool = False

    @property
    def has_modifier(self) -> bool:
        return self.ctrl or self.meta


@dataclass(frozen=True)
class WindowMetrics:
    """Outer (window chrome included) and inner (viewport) dimensions in px."""

    outer_width: int
    outer_height: int
    inner_width: int
    inner_height: int

    def chrome_exceeds(self, threshold_px: int) -> bool:
        return (
            self.outer_height - self.inner_height > threshold_px or self.outer_width - self.inner_width > threshold_px
        )


class SignalSource(Protocol):
    """Something that feeds UI signals into the monitor's handlers."""

    def attach(self, monitor: IntegrityMonitor) -> None: ...

    def detach(self, monitor: IntegrityMonitor) -> None: ...


class IntegrityMonitor:
    def __init__(
        self,
        reporter: Callable[[IntegrityEvent], None],
        *,
        source: SignalSource | None = None,
        window_metrics: Callable[[], WindowMetrics | None] | None = None,
        clock: Callable[[], float] = wall_clock_ms,
        visibility_threshold_seconds: float = 5.0,
        focus_threshold_seconds: float = 3.0,
        devtools_poll_interval_seconds: float = 5.0,
        devtools_size_threshold_px: int = 160,
    ) -> None:
        self._reporter = reporter
        self._source = source
        self._window_metrics = window_metrics
        self._clock = clock
        self._visibility_threshold_ms = visibility_threshold_seconds * MS_PER_SECOND
        self._focus_threshold_ms = focus_threshold_seconds * MS_PER_SECOND
        self._poll_interval = devtools_poll_interval_seconds
        self._size_threshold_px = devtools_size_threshold_px

        self._running = False
        self._count = 0
        self._hidden_since: float | None = None
        self._blurred_at: float | None = None
        self._devtools_open = False
        self._poll_task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._running

    @property
    def cumulative_count(self) -> int:
        return self._count

    def start(self) -> None:
        """Attach every observer. Calling start on a running monitor is a no-op."""
        if self._running:
            return
        self._running = True
        if self._source is not None:
            self._source.attach(self)
        if self._window_metrics is not None:
            self._poll_task = asyncio.create_task(self._poll_loop())
        logger.info("integrity monitoring started")

    def stop(self) -> None:
        """Detach every observer. Calling stop on a stopped monitor is a no-op."""
        if not self._running:
            return
        self._running = False
        if self._source is not None:
            self._source.detach(self)
        if self._poll_task is not None and not self._poll_task.done():
            self._poll_task.cancel()
        self._poll_task = None
        self._hidden_since = None
        self._blurred_at = None
        self._devtools_open = False
        logger.info("integrity monitoring stopped", reports=self._count)

    # Signal handlers. Each returns True when the default action should be suppressed.

    def handle_context_menu(self) -> bool:
        if not self._running:
            return False
        self._report(IntegrityKind.CONTEXT_MENU, "Right-click context menu blocked")
        return True

    def handle_key_down(self, press: KeyPress) -> bool:
        if not self._running:
            return False
        if press.key == DEVTOOLS_KEY:
            self._report(IntegrityKind.DEVTOOLS_SHORTCUT, "F12 key blocked")
            return True
        if press.has_modifier and press.shift and press.key.lower() == "i":
            self._report(IntegrityKind.DEVTOOLS_SHORTCUT, "Developer tools shortcut blocked")
            return True
        if press.has_modifier and press.key.lower() in BLOCKED_SHORTCUT_KEYS:
            if press.in_answer_input:
                return False
            self._report(IntegrityKind.SHORTCUT_BLOCKED, f"Blocked {press.key.upper()} shortcut")
            return True
        return False

    def handle_visibility_change(self, *, hidden: bool) -> None:
        if not self._running:
            return
        now = self._clock()
        if hidden:
            if self._hidden_since is None:
                self._hidden_since = now
            return
        if self._hidden_since is None:
            return
        away_ms = now - self._hidden_since
        self._hidden_since = None
        if away_ms > self._visibility_threshold_ms:
            seconds = away_ms / MS_PER_SECOND
            self._report(
                IntegrityKind.VISIBILITY_LOST,
                f"Tab was inactive for {round(seconds)} seconds",
                duration_seconds=seconds,
            )

    def handle_blur(self) -> None:
        if not self._running:
            return
        if self._blurred_at is None:
            self._blurred_at = self._clock()

    def handle_focus(self) -> None:
        if not self._running or self._blurred_at is None:
            return
        away_ms = self._clock() - self._blurred_at
        self._blurred_at = None
        if away_ms > self._focus_threshold_ms:
            seconds = away_ms / MS_PER_SECOND
            self._report(
                IntegrityKind.FOCUS_LOST,
                f"Window focus lost for {round(seconds)} seconds",
                duration_seconds=seconds,
            )

    def poll_devtools(self) -> bool:
        """Check window chrome size once; report only when a detection episode begins."""
        if not self._running or self._window_metrics is None:
            return False
        metrics = self._window_metrics()
        if metrics is None:
            return False
        suspected = metrics.chrome_exceeds(self._size_threshold_px)
        opened = suspected and not self._devtools_open
        self._devtools_open = suspected
        if opened:
            self._report(IntegrityKind.DEVTOOLS_SUSPECTED, "Developer tools detected")
        return opened

    async def _poll_loop(self) -> None:
        try:
            while self._running:
                await asyncio.sleep(self._poll_interval)
                self.poll_devtools()
        except asyncio.CancelledError:
            pass

    def _report(self, kind: IntegrityKind, description: str, *, duration_seconds: float | None = None) -> None:
        self._count += 1
        event = IntegrityEvent(
            kind=kind,
            description=description,
            occurred_at=datetime.fromtimestamp(self._clock() / MS_PER_SECOND, tz=UTC),
            cumulative_count=self._count,
            duration_seconds=duration_seconds,
        )
        logger.warning("integrity signal", kind=kind, description=description, count=self._count)
        try:
            self._reporter(event)
        except (ArenaError, RuntimeError, OSError, ValueError):
            logger.exception("integrity reporter failed", kind=kind)
