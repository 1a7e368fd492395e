"""Adaptive polling for store entries."""

import asyncio
import logging
from collections.abc import Callable
from typing import Protocol

from git_status_store.store.entry import StoreEntry

logger = logging.getLogger(__name__)


class ScheduledTask(Protocol):
    """Cancellable repeating task owned by one entry."""

    interval_ms: int

    def cancel(self) -> None:
        """Stop the task; no tick fires afterwards."""
        ...


TimerFactory = Callable[[int, Callable[[], None]], ScheduledTask]


class PollTimer:
    """Calls on_tick every interval_ms on the running event loop."""

    def __init__(self, interval_ms: int, on_tick: Callable[[], None]) -> None:
        """Start the timer; the first tick fires after one full interval."""
        self.interval_ms = interval_ms
        self._on_tick = on_tick
        self._task = asyncio.create_task(self._run(), name=f"poll-timer-{interval_ms}ms")

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval_ms / 1000)
            try:
                self._on_tick()
            except Exception as e:
                logger.error(f"[PollTimer] Tick error: {e}", exc_info=True)

    def cancel(self) -> None:
        self._task.cancel()

    @property
    def cancelled(self) -> bool:
        return self._task.cancelled() or self._task.done()


class PollingScheduler:
    """Keeps each entry's timer in line with its subscribers and visibility.

    An entry polls at the fastest interval requested by any active
    subscriber, and only while the surface is visible.
    """

    def __init__(
        self,
        is_visible: Callable[[], bool],
        trigger_fetch: Callable[[StoreEntry, bool], object],
        timer_factory: TimerFactory = PollTimer,
    ) -> None:
        """Initialize scheduler.

        Args:
            is_visible: Current global visibility
            trigger_fetch: Function(entry, show_loading) starting a fetch
            timer_factory: Function(interval_ms, on_tick) creating a timer
        """
        self._is_visible = is_visible
        self._trigger_fetch = trigger_fetch
        self._timer_factory = timer_factory

    def should_poll(self, entry: StoreEntry) -> bool:
        """Whether the entry should currently be polling."""
        return self._is_visible() and entry.desired_interval_ms() is not None

    def recompute(self, entry: StoreEntry) -> None:
        """Arm, rearm or tear down the entry's timer.

        Call after any subscriber change and after visibility flips.
        """
        desired = entry.desired_interval_ms()
        visible = self._is_visible()

        if desired is None or not visible:
            self.stop(entry)
            # First paint for passive viewers
            if entry.last_fetch_at is None and entry.subscribers and visible:
                self._trigger_fetch(entry, True)
            return

        was_polling = entry.timer is not None
        if not was_polling or entry.current_poll_interval_ms != desired:
            self.stop(entry)
            entry.timer = self._timer_factory(desired, lambda: self._trigger_fetch(entry, False))
            entry.current_poll_interval_ms = desired
            logger.debug(f"[PollingScheduler] Polling {entry.workspace_path} every {desired}ms")

        if not was_polling:
            self._trigger_fetch(entry, entry.last_fetch_at is None)

    def stop(self, entry: StoreEntry) -> None:
        """Cancel the entry's timer, if any."""
        if entry.timer is not None:
            entry.timer.cancel()
            entry.timer = None
            logger.debug(f"[PollingScheduler] Stopped polling {entry.workspace_path}")
        entry.current_poll_interval_ms = None
