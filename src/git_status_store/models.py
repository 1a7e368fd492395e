"""Domain models for GitStatusStore."""

from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class GitStatusChange:
    """One changed path in a workspace."""

    path: str  # Relative to the workspace root
    status: str  # added, modified, deleted, renamed, ...
    additions: int = 0
    deletions: int = 0
    is_staged: bool = False
    diff: str | None = None


@dataclass(frozen=True)
class GitStatusSnapshot:
    """Published view of a workspace's status at one point in time.

    Replaced wholesale on every fetch completion, never mutated.
    """

    workspace_path: str
    changes: tuple[GitStatusChange, ...] = ()
    is_loading: bool = False
    error: str | None = None
    last_updated: datetime | None = None

    @classmethod
    def empty(cls, workspace_path: str) -> "GitStatusSnapshot":
        """Placeholder snapshot for a path that was never fetched."""
        return cls(workspace_path=workspace_path)

    @property
    def total_additions(self) -> int:
        return sum(change.additions for change in self.changes)

    @property
    def total_deletions(self) -> int:
        return sum(change.deletions for change in self.changes)


@dataclass
class SubscribeOptions:
    """Per-subscriber polling preferences."""

    is_active: bool = True
    poll_interval_ms: int | None = None  # None uses the configured default


SnapshotCallback = Callable[[GitStatusSnapshot], None]
