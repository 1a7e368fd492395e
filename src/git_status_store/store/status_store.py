"""Shared git status store: subscriptions, polling and invalidation."""

import itertools
import logging
from collections.abc import Callable
from typing import Any

from git_status_store.config import Config
from git_status_store.models import GitStatusSnapshot, SnapshotCallback, SubscribeOptions
from git_status_store.provider.git_provider import StatusProvider
from git_status_store.signals import InvalidationChannel, InvalidationEvent, VisibilitySignal
from git_status_store.store.entry import EntryRegistry, StoreEntry, SubscriberRecord
from git_status_store.store.fetcher import FetchCoordinator
from git_status_store.store.paths import ReservedPathFilter
from git_status_store.store.scheduler import PollingScheduler, PollTimer, TimerFactory

logger = logging.getLogger(__name__)


class Subscription:
    """Handle returned by GitStatusStore.subscribe.

    A subscription created for an empty path is inert: every method is a no-op.
    """

    def __init__(
        self,
        store: "GitStatusStore | None" = None,
        workspace_path: str = "",
        subscriber_id: int = 0,
    ) -> None:
        self._store = store
        self._workspace_path = workspace_path
        self._subscriber_id = subscriber_id

    @property
    def id(self) -> int:
        return self._subscriber_id

    @property
    def workspace_path(self) -> str:
        return self._workspace_path

    def unsubscribe(self) -> None:
        if self._store is not None:
            self._store._unsubscribe(self._workspace_path, self._subscriber_id)

    def set_active(self, is_active: bool) -> None:
        if self._store is not None:
            self._store._set_active(self._workspace_path, self._subscriber_id, is_active)

    def set_poll_interval_ms(self, poll_interval_ms: int) -> None:
        if self._store is not None:
            self._store._set_poll_interval(
                self._workspace_path, self._subscriber_id, poll_interval_ms
            )

    async def refresh(self) -> None:
        """Force a visibly-loading fetch for this subscription's path."""
        if self._store is None:
            return
        await self._store._refresh_existing(self._workspace_path)


class GitStatusStore:
    """Deduplicating read-through cache of per-path git status.

    One entry exists per subscribed workspace path. Each entry polls the
    status provider at the fastest interval any active subscriber asked for,
    and only while the visibility signal reports the surface as visible.
    """

    def __init__(
        self,
        provider: StatusProvider,
        visibility: VisibilitySignal | None = None,
        invalidations: InvalidationChannel | None = None,
        config: Config | None = None,
        timer_factory: TimerFactory = PollTimer,
    ) -> None:
        """Initialize store.

        Args:
            provider: Source of workspace status
            visibility: Global visibility signal (defaults to always visible)
            invalidations: Channel delivering "changed at path" events
            config: Application configuration
            timer_factory: Function(interval_ms, on_tick) creating poll timers
        """
        self._config = config or Config()
        self._visibility = visibility or VisibilitySignal()
        self._invalidations = invalidations or InvalidationChannel()
        self._visible = self._visibility.visible
        self._subscriber_ids = itertools.count(1)

        self._visibility_listener_attached = False
        self._invalidation_listener_attached = False
        self._detach_visibility: Callable[[], None] | None = None
        self._detach_invalidation: Callable[[], None] | None = None

        self._registry = EntryRegistry(on_create=self._attach_listeners)
        self._scheduler = PollingScheduler(
            is_visible=lambda: self._visible,
            trigger_fetch=self._trigger_fetch,
            timer_factory=timer_factory,
        )
        self._fetcher = FetchCoordinator(
            provider=provider,
            path_filter=ReservedPathFilter(self._config.internal_dir, self._config.planning_file),
            should_poll=self._scheduler.should_poll,
        )

    @property
    def visible(self) -> bool:
        return self._visible

    def subscribe(
        self,
        workspace_path: str,
        callback: SnapshotCallback,
        options: SubscribeOptions | None = None,
    ) -> Subscription:
        """Register an observer for a workspace path.

        The callback receives the current snapshot synchronously before any
        fetch starts, then every snapshot published afterwards.

        Args:
            workspace_path: Workspace to observe; empty returns an inert subscription
            callback: Function(snapshot) called on every publish
            options: Activity and poll interval preferences

        Returns:
            Subscription handle
        """
        if not workspace_path:
            return Subscription()

        options = options or SubscribeOptions()
        poll_interval_ms = options.poll_interval_ms
        if poll_interval_ms is None:
            poll_interval_ms = self._config.default_poll_interval_ms
        _check_interval(poll_interval_ms)

        entry = self._registry.get_or_create(workspace_path)
        record = SubscriberRecord(
            id=next(self._subscriber_ids),
            callback=callback,
            is_active=options.is_active,
            poll_interval_ms=poll_interval_ms,
        )
        entry.subscribers[record.id] = record
        logger.info(
            f"[StatusStore] Subscriber {record.id} on {workspace_path} "
            f"(active={record.is_active}, interval={poll_interval_ms}ms, "
            f"total: {len(entry.subscribers)})"
        )

        self._fetcher.deliver(record, entry.snapshot)
        self._scheduler.recompute(entry)
        return Subscription(self, workspace_path, record.id)

    async def refresh(self, workspace_path: str, show_loading: bool = True) -> GitStatusSnapshot:
        """Force one fetch for a path regardless of polling state.

        Creates the entry when nobody is subscribed; such an entry is dropped
        again once the fetch finishes if it still has no subscribers.

        Returns:
            The entry's snapshot after the fetch
        """
        if not workspace_path:
            return GitStatusSnapshot.empty(workspace_path)
        entry = self._registry.get_or_create(workspace_path)
        try:
            await self._fetcher.fetch_and_apply(entry, show_loading=show_loading)
        finally:
            if entry.in_flight and entry.fetch_task is not None:
                # Caller went away mid-fetch; clean up once the fetch lands
                entry.fetch_task.add_done_callback(lambda _: self._drop_if_unused(entry))
            else:
                self._drop_if_unused(entry)
        return entry.snapshot

    def get_snapshot(self, workspace_path: str) -> GitStatusSnapshot:
        """Current snapshot for a path, or an empty placeholder."""
        entry = self._registry.get(workspace_path) if workspace_path else None
        if entry is None:
            return GitStatusSnapshot.empty(workspace_path)
        return entry.snapshot

    def get_entry(self, workspace_path: str) -> StoreEntry | None:
        """Entry for a path, if one exists."""
        return self._registry.get(workspace_path)

    def stats(self) -> dict[str, Any]:
        """Get store statistics."""
        entries = self._registry.entries()
        return {
            "visible": self._visible,
            "entries": len(entries),
            "subscribers": sum(len(e.subscribers) for e in entries),
            "polling": sum(1 for e in entries if e.timer is not None),
            "in_flight": sum(1 for e in entries if e.in_flight),
            "active_fetches": self._fetcher.active_fetches,
        }

    async def wait_idle(self) -> None:
        """Wait until no fetch is running."""
        await self._fetcher.wait_idle()

    async def close(self) -> None:
        """Stop all polling, drop every entry and detach global listeners."""
        for entry in self._registry.entries():
            self._scheduler.stop(entry)
            entry.subscribers.clear()
            self._registry.remove(entry.workspace_path)

        if self._detach_visibility is not None:
            self._detach_visibility()
            self._detach_visibility = None
        if self._detach_invalidation is not None:
            self._detach_invalidation()
            self._detach_invalidation = None
        self._visibility_listener_attached = False
        self._invalidation_listener_attached = False

        await self._fetcher.wait_idle()
        logger.info("[StatusStore] Closed")

    def _drop_if_unused(self, entry: StoreEntry) -> None:
        """Remove a transient entry that nobody subscribed to while it fetched."""
        if (
            not entry.subscribers
            and not entry.in_flight
            and self._registry.get(entry.workspace_path) is entry
        ):
            self._scheduler.stop(entry)
            self._registry.remove(entry.workspace_path)

    async def _refresh_existing(self, workspace_path: str) -> None:
        entry = self._registry.get(workspace_path)
        if entry is not None:
            await self._fetcher.fetch_and_apply(entry, show_loading=True)

    def _trigger_fetch(self, entry: StoreEntry, show_loading: bool) -> None:
        self._fetcher.trigger(entry, show_loading=show_loading)

    def _attach_listeners(self) -> None:
        """Attach the global visibility and invalidation listeners once."""
        if not self._visibility_listener_attached:
            self._visibility_listener_attached = True
            self._visible = self._visibility.visible
            self._detach_visibility = self._visibility.subscribe(self._on_visibility_change)
            logger.debug("[StatusStore] Visibility listener attached")

        if not self._invalidation_listener_attached:
            self._invalidation_listener_attached = True
            self._detach_invalidation = self._invalidations.subscribe(self._on_invalidation)
            logger.debug("[StatusStore] Invalidation listener attached")

    def _on_visibility_change(self, visible: bool) -> None:
        self._visible = visible
        for entry in self._registry.entries():
            self._scheduler.recompute(entry)

    def _on_invalidation(self, event: InvalidationEvent) -> None:
        if not self._visible:
            return
        entry = self._registry.get(event.task_path)
        if entry is None:
            return
        logger.debug(f"[StatusStore] Invalidated {event.task_path}")
        self._fetcher.trigger(entry, show_loading=False)

    def _unsubscribe(self, workspace_path: str, subscriber_id: int) -> None:
        entry = self._registry.get(workspace_path)
        if entry is None or entry.subscribers.pop(subscriber_id, None) is None:
            return

        logger.info(
            f"[StatusStore] Subscriber {subscriber_id} left {workspace_path} "
            f"(remaining: {len(entry.subscribers)})"
        )
        if not entry.subscribers:
            self._scheduler.stop(entry)
            self._registry.remove(workspace_path)
            return
        self._scheduler.recompute(entry)

    def _set_active(self, workspace_path: str, subscriber_id: int, is_active: bool) -> None:
        record = self._find_record(workspace_path, subscriber_id)
        if record is None or record.is_active == is_active:
            return
        record.is_active = is_active
        self._recompute(workspace_path)

    def _set_poll_interval(
        self, workspace_path: str, subscriber_id: int, poll_interval_ms: int
    ) -> None:
        _check_interval(poll_interval_ms)
        record = self._find_record(workspace_path, subscriber_id)
        if record is None or record.poll_interval_ms == poll_interval_ms:
            return
        record.poll_interval_ms = poll_interval_ms
        self._recompute(workspace_path)

    def _find_record(self, workspace_path: str, subscriber_id: int) -> SubscriberRecord | None:
        entry = self._registry.get(workspace_path)
        if entry is None:
            return None
        return entry.subscribers.get(subscriber_id)

    def _recompute(self, workspace_path: str) -> None:
        entry = self._registry.get(workspace_path)
        if entry is not None:
            self._scheduler.recompute(entry)


def _check_interval(poll_interval_ms: int) -> None:
    if isinstance(poll_interval_ms, bool) or poll_interval_ms <= 0:
        raise ValueError(f"Poll interval must be a positive number of ms: {poll_interval_ms}")
