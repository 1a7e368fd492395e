"""API models for GitStatusStore."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from git_status_store.models import GitStatusChange, GitStatusSnapshot


class ChangeResponse(BaseModel):
    """API response model for one changed path."""

    path: str
    status: str
    additions: int
    deletions: int
    is_staged: bool
    diff: str | None

    @classmethod
    def from_change(cls, change: GitStatusChange) -> "ChangeResponse":
        return cls(
            path=change.path,
            status=change.status,
            additions=change.additions,
            deletions=change.deletions,
            is_staged=change.is_staged,
            diff=change.diff,
        )


class SnapshotResponse(BaseModel):
    """API response model for a status snapshot."""

    workspace_path: str
    changes: list[ChangeResponse]
    total_additions: int
    total_deletions: int
    is_loading: bool
    error: str | None
    last_updated: datetime | None

    @classmethod
    def from_snapshot(cls, snapshot: GitStatusSnapshot) -> "SnapshotResponse":
        return cls(
            workspace_path=snapshot.workspace_path,
            changes=[ChangeResponse.from_change(c) for c in snapshot.changes],
            total_additions=snapshot.total_additions,
            total_deletions=snapshot.total_deletions,
            is_loading=snapshot.is_loading,
            error=snapshot.error,
            last_updated=snapshot.last_updated,
        )


class VisibilityRequest(BaseModel):
    """Request model for setting surface visibility."""

    visible: bool


class VisibilityResponse(BaseModel):
    """API response model for surface visibility."""

    visible: bool


class LockResponse(BaseModel):
    """API response model for plan lock operations."""

    success: bool
    changed: int
    error: str | None


class ClientMessage(BaseModel):
    """Message sent by a WebSocket client."""

    model_config = ConfigDict(populate_by_name=True)

    type: Literal["subscribe", "unsubscribe", "set_active", "set_interval", "refresh"]
    path: str = Field(min_length=1)
    active: bool | None = None
    poll_interval_ms: int | None = Field(default=None, alias="pollIntervalMs", gt=0)
