"""Status API endpoints."""

import logging
from pathlib import Path
from typing import Annotated

from fastapi import APIRouter, HTTPException, Query, status

from git_status_store import planlock
from git_status_store.api.models import (
    LockResponse,
    SnapshotResponse,
    VisibilityRequest,
    VisibilityResponse,
)
from git_status_store.factory import get_config, get_invalidations, get_store, get_visibility

logger = logging.getLogger(__name__)

router = APIRouter()

PathQuery = Annotated[str, Query(min_length=1, description="Workspace path")]


@router.get("/status", response_model=SnapshotResponse)
async def get_status(path: PathQuery) -> SnapshotResponse:
    """Get the cached status snapshot for a workspace.

    Never waits for the provider; unknown paths return an empty snapshot.
    """
    return SnapshotResponse.from_snapshot(get_store().get_snapshot(path))


@router.post("/status/refresh", response_model=SnapshotResponse)
async def refresh_status(path: PathQuery, show_loading: bool = True) -> SnapshotResponse:
    """Force one fetch for a workspace and return the resulting snapshot.

    Args:
        path: Workspace path
        show_loading: Publish a loading snapshot to subscribers first

    Returns:
        Snapshot after the fetch
    """
    snapshot = await get_store().refresh(path, show_loading=show_loading)
    return SnapshotResponse.from_snapshot(snapshot)


@router.post("/status/invalidate", status_code=status.HTTP_202_ACCEPTED)
async def invalidate_status(path: PathQuery) -> dict[str, str]:
    """Publish an invalidation for a workspace."""
    get_invalidations().publish(path)
    return {"status": "accepted", "path": path}


@router.get("/visibility", response_model=VisibilityResponse)
async def get_visibility_state() -> VisibilityResponse:
    """Get the current surface visibility."""
    return VisibilityResponse(visible=get_visibility().visible)


@router.put("/visibility", response_model=VisibilityResponse)
async def set_visibility_state(request: VisibilityRequest) -> VisibilityResponse:
    """Set surface visibility; hidden pauses all polling."""
    signal = get_visibility()
    signal.set_visible(request.visible)
    return VisibilityResponse(visible=signal.visible)


@router.get("/stats")
async def get_stats() -> dict[str, int | bool]:
    """Get status store statistics."""
    return get_store().stats()


@router.post("/plan/lock", response_model=LockResponse)
async def lock_plan(path: PathQuery) -> LockResponse:
    """Make a workspace read-only while its plan is reviewed."""
    root = _existing_dir(path)
    result = await planlock.apply_lock_async(root, get_config().internal_dir)
    get_invalidations().publish(path)
    return LockResponse(success=result.success, changed=result.changed, error=result.error)


@router.post("/plan/unlock", response_model=LockResponse)
async def unlock_plan(path: PathQuery) -> LockResponse:
    """Restore the permissions recorded by a plan lock."""
    root = _existing_dir(path)
    result = await planlock.release_lock_async(root, get_config().internal_dir)
    get_invalidations().publish(path)
    return LockResponse(success=result.success, changed=result.changed, error=result.error)


def _existing_dir(path: str) -> Path:
    root = Path(path)
    if not root.is_dir():
        raise HTTPException(status_code=404, detail=f"Workspace not found: {path}")
    return root
