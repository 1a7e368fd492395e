"""Per-path cache entries and the registry that owns them."""

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING

from git_status_store.models import GitStatusSnapshot, SnapshotCallback

if TYPE_CHECKING:
    from git_status_store.store.scheduler import ScheduledTask

logger = logging.getLogger(__name__)


@dataclass
class SubscriberRecord:
    """One observer's registration against an entry."""

    id: int
    callback: SnapshotCallback
    is_active: bool
    poll_interval_ms: int


@dataclass
class StoreEntry:
    """Cache line for one workspace path."""

    workspace_path: str
    snapshot: GitStatusSnapshot
    subscribers: dict[int, SubscriberRecord] = field(default_factory=dict)
    timer: "ScheduledTask | None" = None  # Present iff actively polling
    current_poll_interval_ms: int | None = None
    in_flight: bool = False
    pending_fetch: bool = False
    fetch_task: "asyncio.Task[None] | None" = None  # Running fetch, awaited by coalesced callers
    last_fetch_at: datetime | None = None  # None until the first fetch attempt finished

    def desired_interval_ms(self) -> int | None:
        """Fastest interval requested by an active subscriber, if any."""
        intervals = [s.poll_interval_ms for s in self.subscribers.values() if s.is_active]
        return min(intervals) if intervals else None


class EntryRegistry:
    """Owns exactly one StoreEntry per subscribed workspace path."""

    def __init__(self, on_create: Callable[[], None] | None = None) -> None:
        """Initialize empty registry.

        Args:
            on_create: Hook called whenever a new entry is created
        """
        self._entries: dict[str, StoreEntry] = {}
        self._on_create = on_create

    def get_or_create(self, workspace_path: str) -> StoreEntry:
        """Return the entry for a path, creating an empty one if needed."""
        existing = self._entries.get(workspace_path)
        if existing is not None:
            return existing

        if self._on_create is not None:
            self._on_create()

        entry = StoreEntry(
            workspace_path=workspace_path,
            snapshot=GitStatusSnapshot.empty(workspace_path),
        )
        self._entries[workspace_path] = entry
        logger.debug(f"[EntryRegistry] Created entry for {workspace_path}")
        return entry

    def get(self, workspace_path: str) -> StoreEntry | None:
        """Get entry by path."""
        return self._entries.get(workspace_path)

    def remove(self, workspace_path: str) -> None:
        """Remove entry by path; unknown paths are ignored."""
        if self._entries.pop(workspace_path, None) is not None:
            logger.debug(f"[EntryRegistry] Removed entry for {workspace_path}")

    def entries(self) -> list[StoreEntry]:
        """All entries, copied so callers may mutate the registry while iterating."""
        return list(self._entries.values())

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, workspace_path: object) -> bool:
        return workspace_path in self._entries
