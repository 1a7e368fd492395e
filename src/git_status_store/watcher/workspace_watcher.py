"""File system watcher that invalidates workspace status."""

import asyncio
import logging
from collections.abc import Callable
from pathlib import Path

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer
from watchdog.observers.api import BaseObserver

from git_status_store.signals import InvalidationChannel

logger = logging.getLogger(__name__)


class WorkspaceWatcher:
    """Watches a workspace and publishes invalidations for it.

    Events arrive on watchdog's thread and are handed to the event loop,
    where bursts are debounced into a single publish.
    """

    def __init__(
        self,
        workspace_path: str,
        channel: InvalidationChannel,
        loop: asyncio.AbstractEventLoop,
        internal_dir: str = ".emdash",
        debounce_ms: int = 250,
    ) -> None:
        """Initialize watcher for a workspace.

        Args:
            workspace_path: Root of the working tree to watch
            channel: Channel receiving invalidation events
            loop: Event loop that owns the channel's listeners
            internal_dir: Reserved directory whose changes are ignored
            debounce_ms: Quiet period before publishing
        """
        self.workspace_path = workspace_path
        self._channel = channel
        self._loop = loop
        self._internal_dir = internal_dir
        self._debounce_s = debounce_ms / 1000
        self._observer: BaseObserver | None = None
        self._pending: asyncio.TimerHandle | None = None

    def start(self) -> None:
        """Start watching the workspace in watchdog's background thread."""
        handler = _WorkspaceEventHandler(
            Path(self.workspace_path), self._internal_dir, self._on_change
        )
        self._observer = Observer()
        self._observer.schedule(handler, self.workspace_path, recursive=True)
        logger.info(f"[WorkspaceWatcher] Watching {self.workspace_path}")
        self._observer.start()

    def stop(self) -> None:
        """Stop watching and clean up resources."""
        if self._observer:
            logger.info(f"[WorkspaceWatcher] Stopping watcher for {self.workspace_path}")
            self._observer.stop()
            self._observer.join()
            self._observer = None
        if self._pending is not None:
            self._pending.cancel()
            self._pending = None

    def _on_change(self) -> None:
        """Called from watchdog's thread."""
        if self._loop.is_closed():
            return
        self._loop.call_soon_threadsafe(self._schedule_publish)

    def _schedule_publish(self) -> None:
        if self._pending is not None:
            self._pending.cancel()
        self._pending = self._loop.call_later(self._debounce_s, self._publish)

    def _publish(self) -> None:
        self._pending = None
        self._channel.publish(self.workspace_path)


class _WorkspaceEventHandler(FileSystemEventHandler):
    """Internal handler for workspace file system events."""

    def __init__(self, root: Path, internal_dir: str, on_change: Callable[[], None]) -> None:
        """Initialize event handler.

        Args:
            root: Workspace root
            internal_dir: Reserved directory whose changes are ignored
            on_change: Function to call for relevant events
        """
        self.root = root
        self.internal_dir = internal_dir
        self.on_change = on_change

    def _is_relevant(self, file_path: str) -> bool:
        """Check whether a changed path can affect git status."""
        try:
            parts = Path(file_path).relative_to(self.root).parts
        except ValueError:
            return False
        if not parts:
            return False
        return parts[0] not in (".git", self.internal_dir)

    def _handle_event(self, event_type: str, event: FileSystemEvent) -> None:
        # Convert bytes to str if needed
        paths = [event.src_path, getattr(event, "dest_path", "")]
        paths = [p.decode("utf-8") if isinstance(p, bytes) else p for p in paths if p]

        if not any(self._is_relevant(p) for p in paths):
            return

        logger.debug(f"[WorkspaceEventHandler] {event_type}: {paths[0]}")
        try:
            self.on_change()
        except Exception as e:
            logger.error(f"[WorkspaceEventHandler] Callback error: {e}", exc_info=True)

    def on_modified(self, event: FileSystemEvent) -> None:
        """Handle file modification events."""
        if not event.is_directory:
            self._handle_event("modified", event)

    def on_created(self, event: FileSystemEvent) -> None:
        """Handle file creation events."""
        self._handle_event("created", event)

    def on_deleted(self, event: FileSystemEvent) -> None:
        """Handle file deletion events."""
        self._handle_event("deleted", event)

    def on_moved(self, event: FileSystemEvent) -> None:
        """Handle file move/rename events."""
        self._handle_event("moved", event)
