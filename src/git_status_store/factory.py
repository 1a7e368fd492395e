"""Dependency injection factory."""

import asyncio
import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI

from git_status_store.api.websocket import set_connection_manager
from git_status_store.config import Config
from git_status_store.provider.git_provider import GitCliStatusProvider
from git_status_store.signals import InvalidationChannel, VisibilitySignal
from git_status_store.store.status_store import GitStatusStore
from git_status_store.watcher.workspace_watcher import WorkspaceWatcher
from git_status_store.websocket.connection_manager import ConnectionManager

logger = logging.getLogger(__name__)

# Global config instance for dependency injection
_config: Config | None = None

# Process-wide signals, store and watchers
_visibility: VisibilitySignal | None = None
_invalidations: InvalidationChannel | None = None
_store: GitStatusStore | None = None
_connection_manager: ConnectionManager | None = None
_watchers: dict[str, WorkspaceWatcher] = {}


def get_config() -> Config:
    """Get or create Config instance."""
    global _config
    if _config is None:
        _config = Config()
    return _config


def get_visibility() -> VisibilitySignal:
    """Get or create VisibilitySignal singleton.

    Starts hidden when visibility follows connected clients.
    """
    global _visibility
    if _visibility is None:
        _visibility = VisibilitySignal(visible=not get_config().hide_when_no_clients)
    return _visibility


def get_invalidations() -> InvalidationChannel:
    """Get or create InvalidationChannel singleton."""
    global _invalidations
    if _invalidations is None:
        _invalidations = InvalidationChannel()
    return _invalidations


def get_store() -> GitStatusStore:
    """Get or create GitStatusStore singleton."""
    global _store
    if _store is None:
        config = get_config()
        provider = GitCliStatusProvider(config.git_cli, include_diffs=config.include_diffs)
        _store = GitStatusStore(
            provider=provider,
            visibility=get_visibility(),
            invalidations=get_invalidations(),
            config=config,
        )
    return _store


def get_connection_manager() -> ConnectionManager:
    """Get or create ConnectionManager singleton."""
    global _connection_manager
    if _connection_manager is None:
        _connection_manager = ConnectionManager(
            store=get_store(),
            visibility=get_visibility(),
            hide_when_no_clients=get_config().hide_when_no_clients,
        )
    return _connection_manager


def start_workspace_watchers() -> None:
    """Start file watchers for all configured workspaces."""
    config = get_config()
    channel = get_invalidations()

    # Get the running event loop to schedule publishes from watcher threads
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        logger.error("[Factory] No running event loop found")
        return

    for workspace_path in config.watch_paths:
        if not Path(workspace_path).is_dir():
            logger.warning(f"[Factory] Workspace not found: {workspace_path}")
            continue

        try:
            watcher = WorkspaceWatcher(
                workspace_path,
                channel,
                loop,
                internal_dir=config.internal_dir,
                debounce_ms=config.watch_debounce_ms,
            )
            watcher.start()
            _watchers[workspace_path] = watcher
        except Exception as e:
            logger.error(
                f"[Factory] Failed to start watcher for {workspace_path}: {e}",
                exc_info=True,
            )


def stop_workspace_watchers() -> None:
    """Stop all running file watchers."""
    for workspace_path, watcher in _watchers.items():
        try:
            watcher.stop()
        except Exception as e:
            logger.error(f"[Factory] Failed to stop watcher for {workspace_path}: {e}")
    _watchers.clear()


async def shutdown() -> None:
    """Close the store and drop process-wide singletons."""
    global _store, _connection_manager, _visibility, _invalidations
    set_connection_manager(None)
    if _store is not None:
        await _store.close()
    _store = None
    _connection_manager = None
    _visibility = None
    _invalidations = None


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Manage application lifecycle - startup and shutdown."""
    set_connection_manager(get_connection_manager())

    logger.info("[Lifespan] Starting workspace watchers...")
    start_workspace_watchers()
    try:
        yield
    finally:
        logger.info("[Lifespan] Stopping workspace watchers...")
        stop_workspace_watchers()
        await shutdown()


def create_app() -> FastAPI:
    """Create FastAPI application (composition root)."""
    from git_status_store.api.status import router as status_router
    from git_status_store.api.websocket import router as ws_router

    app = FastAPI(
        title="GitStatusStore",
        description="Shared, deduplicating git status cache with adaptive polling",
        version="0.1.0",
        lifespan=lifespan,
    )

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    # Mount API routes
    app.include_router(status_router, prefix="/api")
    app.include_router(ws_router)  # WebSocket at /ws

    return app
