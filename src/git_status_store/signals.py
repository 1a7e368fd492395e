"""Process-wide visibility flag and invalidation channel."""

import logging
from collections.abc import Callable
from dataclasses import dataclass

logger = logging.getLogger(__name__)

VisibilityListener = Callable[[bool], None]


@dataclass(frozen=True)
class InvalidationEvent:
    """Something changed at a workspace path."""

    task_path: str


InvalidationListener = Callable[[InvalidationEvent], None]


class VisibilitySignal:
    """Whether the consuming surface is currently visible.

    Listeners are only called on transitions, never for a repeated value.
    """

    def __init__(self, visible: bool = True) -> None:
        """Initialize signal with its starting state."""
        self._visible = visible
        self._listeners: list[VisibilityListener] = []

    @property
    def visible(self) -> bool:
        return self._visible

    def set_visible(self, visible: bool) -> None:
        """Set visibility and notify listeners if it changed.

        Args:
            visible: New visibility state
        """
        if visible == self._visible:
            return
        self._visible = visible
        logger.info(f"[VisibilitySignal] Surface is now {'visible' if visible else 'hidden'}")
        for listener in list(self._listeners):
            try:
                listener(visible)
            except Exception as e:
                logger.error(f"[VisibilitySignal] Listener error: {e}", exc_info=True)

    def subscribe(self, listener: VisibilityListener) -> Callable[[], None]:
        """Register a transition listener.

        Args:
            listener: Function(visible) called on every transition

        Returns:
            Function that removes the listener again
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe


class InvalidationChannel:
    """Publish/subscribe channel for "changed at path" notifications."""

    def __init__(self) -> None:
        """Initialize channel with no listeners."""
        self._listeners: list[InvalidationListener] = []

    def subscribe(self, listener: InvalidationListener) -> Callable[[], None]:
        """Register a listener; returns a function that removes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def publish(self, task_path: str) -> None:
        """Deliver an invalidation event for task_path to every listener."""
        event = InvalidationEvent(task_path=task_path)
        logger.debug(f"[InvalidationChannel] Publishing {task_path}")
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception as e:
                logger.error(f"[InvalidationChannel] Listener error: {e}", exc_info=True)
