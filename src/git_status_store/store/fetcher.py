"""Deduplicated status fetches for store entries."""

import asyncio
import logging
from collections.abc import Callable, Mapping
from contextlib import suppress
from dataclasses import replace
from datetime import UTC, datetime
from typing import Any

from git_status_store.models import GitStatusChange, GitStatusSnapshot
from git_status_store.provider.git_provider import StatusProvider
from git_status_store.store.entry import StoreEntry, SubscriberRecord
from git_status_store.store.paths import ReservedPathFilter

logger = logging.getLogger(__name__)

GENERIC_FETCH_ERROR = "Failed to fetch git status"


class FetchCoordinator:
    """Runs at most one provider call per entry and publishes the result.

    Requests that arrive while a fetch is in flight are collapsed into a
    single follow-up fetch, issued after the running one completes.
    """

    def __init__(
        self,
        provider: StatusProvider,
        path_filter: ReservedPathFilter,
        should_poll: Callable[[StoreEntry], bool],
    ) -> None:
        """Initialize coordinator.

        Args:
            provider: Source of workspace status
            path_filter: Filter for internal bookkeeping paths
            should_poll: Whether an entry still wants polling (gates follow-ups)
        """
        self._provider = provider
        self._path_filter = path_filter
        self._should_poll = should_poll
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def active_fetches(self) -> int:
        """Number of fetches currently running."""
        return len(self._tasks)

    def trigger(self, entry: StoreEntry, show_loading: bool = False) -> asyncio.Task[None] | None:
        """Start a fetch for the entry unless one is already running.

        Must be called from the event loop thread.

        Args:
            entry: Entry to refresh
            show_loading: Publish a loading snapshot before the provider call

        Returns:
            Background task running the fetch, or None if it was coalesced
        """
        asyncio.get_running_loop()

        if entry.in_flight:
            entry.pending_fetch = True
            logger.debug(f"[FetchCoordinator] Coalescing fetch for {entry.workspace_path}")
            return None

        # Flag before the provider call so no second fetch can slip in
        entry.in_flight = True
        if show_loading:
            entry.snapshot = replace(entry.snapshot, is_loading=True, error=None)
            self.notify_subscribers(entry)

        task = asyncio.create_task(
            self._fetch(entry), name=f"git-status-fetch-{entry.workspace_path}"
        )
        # Keep strong reference, remove when done
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        entry.fetch_task = task
        return task

    async def fetch_and_apply(self, entry: StoreEntry, show_loading: bool = False) -> None:
        """Fetch and publish, returning once the entry has no fetch in flight.

        A coalesced request waits for the running fetch and for the follow-up
        it queued, so the caller always sees a snapshot newer than its request.
        """
        self.trigger(entry, show_loading=show_loading)
        while entry.in_flight and entry.fetch_task is not None:
            await asyncio.shield(entry.fetch_task)

    async def wait_idle(self) -> None:
        """Wait until no fetch (including follow-ups) is running."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def notify_subscribers(self, entry: StoreEntry) -> None:
        """Deliver the entry's current snapshot to every subscriber once."""
        snapshot = entry.snapshot
        for subscriber in list(entry.subscribers.values()):
            self.deliver(subscriber, snapshot)

    def deliver(self, subscriber: SubscriberRecord, snapshot: GitStatusSnapshot) -> None:
        """Call one subscriber; its errors are logged, never raised."""
        try:
            subscriber.callback(snapshot)
        except Exception as e:
            logger.error(
                f"[FetchCoordinator] Subscriber {subscriber.id} callback error: {e}",
                exc_info=True,
            )

    async def _fetch(self, entry: StoreEntry) -> None:
        workspace_path = entry.workspace_path
        snapshot = replace(entry.snapshot, is_loading=False)
        completed = False

        try:
            result = await self._provider.get_status(workspace_path)
            snapshot = self._snapshot_from_result(workspace_path, result)
            completed = True
        except asyncio.CancelledError:
            logger.info(f"[FetchCoordinator] Fetch cancelled for {workspace_path}")
            raise
        except Exception as e:
            message = str(e) or type(e).__name__
            logger.error(
                f"[FetchCoordinator] Failed to fetch git status for {workspace_path}: {message}",
                exc_info=True,
            )
            snapshot = self._failure_snapshot(workspace_path, message)
            completed = True
        finally:
            entry.in_flight = False
            entry.fetch_task = None
            entry.snapshot = snapshot
            if completed:
                entry.last_fetch_at = snapshot.last_updated
            self.notify_subscribers(entry)

            if entry.pending_fetch:
                entry.pending_fetch = False
                if completed and self._should_poll(entry):
                    self.trigger(entry, show_loading=False)

    def _snapshot_from_result(self, workspace_path: str, result: Any) -> GitStatusSnapshot:
        """Build the snapshot for a provider result (success or reported failure)."""
        if not isinstance(result, Mapping) or not result.get("success"):
            error = result.get("error") if isinstance(result, Mapping) else None
            message = error if isinstance(error, str) and error else GENERIC_FETCH_ERROR
            logger.warning(f"[FetchCoordinator] Provider failed for {workspace_path}: {message}")
            return self._failure_snapshot(workspace_path, message)

        changes = self._normalize_changes(result.get("changes"))
        if changes is None:
            logger.warning(f"[FetchCoordinator] Malformed provider response for {workspace_path}")
            return self._failure_snapshot(workspace_path, GENERIC_FETCH_ERROR)

        logger.debug(f"[FetchCoordinator] {workspace_path}: {len(changes)} changes")
        return GitStatusSnapshot(
            workspace_path=workspace_path,
            changes=changes,
            is_loading=False,
            error=None,
            last_updated=datetime.now(UTC),
        )

    def _failure_snapshot(self, workspace_path: str, message: str) -> GitStatusSnapshot:
        return GitStatusSnapshot(
            workspace_path=workspace_path,
            changes=(),
            is_loading=False,
            error=message,
            last_updated=datetime.now(UTC),
        )

    def _normalize_changes(self, raw: Any) -> tuple[GitStatusChange, ...] | None:
        """Normalize provider change records.

        Returns None when the list is malformed. Reserved paths are dropped
        and only the first record for a path is kept.
        """
        if not isinstance(raw, list):
            return None

        changes: list[GitStatusChange] = []
        seen: set[str] = set()
        for item in raw:
            if not isinstance(item, Mapping):
                return None
            path = item.get("path")
            if not isinstance(path, str) or not path:
                return None
            if path in seen or self._path_filter.is_reserved(path):
                continue
            seen.add(path)

            diff = item.get("diff")
            changes.append(
                GitStatusChange(
                    path=path,
                    status=str(item.get("status") or "unknown"),
                    additions=_line_count(item.get("additions")),
                    deletions=_line_count(item.get("deletions")),
                    is_staged=bool(item.get("isStaged", item.get("is_staged", False))),
                    diff=diff if isinstance(diff, str) else None,
                )
            )
        return tuple(changes)


def _line_count(value: Any) -> int:
    """Coerce a line count to a non-negative int, 0 when unknown."""
    # bool is a subclass of int
    if value is None or isinstance(value, bool):
        return 0
    if isinstance(value, int):
        return max(value, 0)
    if isinstance(value, str):
        with suppress(ValueError):
            return max(int(value), 0)
    return 0
