"""WebSocket connection management."""

import asyncio
import json
import logging
from typing import Any

from fastapi import WebSocket
from pydantic import ValidationError

from git_status_store.api.models import ClientMessage, SnapshotResponse
from git_status_store.models import GitStatusSnapshot, SubscribeOptions
from git_status_store.signals import VisibilitySignal
from git_status_store.store.status_store import GitStatusStore, Subscription

logger = logging.getLogger(__name__)


class ClientConnection:
    """One WebSocket client and the store subscriptions it holds.

    Snapshots are queued by store callbacks and written by a sender task,
    so callbacks never block on the socket.
    """

    def __init__(self, websocket: WebSocket) -> None:
        """Initialize connection with no subscriptions."""
        self.websocket = websocket
        self.subscriptions: dict[str, Subscription] = {}
        self._queue: asyncio.Queue[dict[str, Any]] = asyncio.Queue()
        self._sender: asyncio.Task[None] | None = None

    def start(self) -> None:
        self._sender = asyncio.create_task(self._send_loop(), name="ws-sender")

    def enqueue(self, message: dict[str, Any]) -> None:
        self._queue.put_nowait(message)

    def on_snapshot(self, snapshot: GitStatusSnapshot) -> None:
        """Store callback: queue a status message for this client."""
        payload = SnapshotResponse.from_snapshot(snapshot).model_dump(mode="json")
        self.enqueue({"type": "status", "snapshot": payload})

    async def _send_loop(self) -> None:
        try:
            while True:
                message = await self._queue.get()
                await self.websocket.send_text(json.dumps(message))
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning(f"[ClientConnection] Failed to send to client: {e}")

    def close(self) -> None:
        """Drop every subscription and stop the sender."""
        for subscription in self.subscriptions.values():
            subscription.unsubscribe()
        self.subscriptions.clear()
        if self._sender is not None:
            self._sender.cancel()
            self._sender = None


class ConnectionManager:
    """Manages active WebSocket connections and their status subscriptions."""

    def __init__(
        self,
        store: GitStatusStore,
        visibility: VisibilitySignal,
        hide_when_no_clients: bool = True,
    ) -> None:
        """Initialize connection manager with empty connection list.

        Args:
            store: Status store the clients subscribe to
            visibility: Signal toggled as clients come and go
            hide_when_no_clients: Mark the surface hidden when nobody is connected
        """
        self._store = store
        self._visibility = visibility
        self._hide_when_no_clients = hide_when_no_clients
        self.active_connections: list[ClientConnection] = []

    async def connect(self, websocket: WebSocket) -> ClientConnection:
        """Accept and register a new WebSocket connection.

        Args:
            websocket: WebSocket connection to register

        Returns:
            The registered client connection
        """
        await websocket.accept()
        connection = ClientConnection(websocket)
        connection.start()
        self.active_connections.append(connection)
        logger.info(f"[ConnectionManager] Client connected (total: {len(self.active_connections)})")

        if self._hide_when_no_clients:
            self._visibility.set_visible(True)
        return connection

    def disconnect(self, connection: ClientConnection) -> None:
        """Remove a connection and release its subscriptions.

        Args:
            connection: Client connection to remove
        """
        if connection not in self.active_connections:
            return
        connection.close()
        self.active_connections.remove(connection)
        logger.info(
            f"[ConnectionManager] Client disconnected (total: {len(self.active_connections)})"
        )

        if self._hide_when_no_clients and not self.active_connections:
            self._visibility.set_visible(False)

    async def handle_message(self, connection: ClientConnection, data: str) -> None:
        """Apply one client message to the connection's subscriptions.

        Args:
            connection: Client that sent the message
            data: Raw JSON text
        """
        try:
            message = ClientMessage.model_validate_json(data)
        except ValidationError as e:
            logger.debug(f"[ConnectionManager] Invalid client message: {data}")
            connection.enqueue(
                {"type": "error", "message": f"Invalid message: {e.error_count()} errors"}
            )
            return

        subscription = connection.subscriptions.get(message.path)

        if message.type == "subscribe":
            if subscription is not None:
                self._update(subscription, message)
                return
            options = SubscribeOptions(
                is_active=True if message.active is None else message.active,
                poll_interval_ms=message.poll_interval_ms,
            )
            connection.subscriptions[message.path] = self._store.subscribe(
                message.path, connection.on_snapshot, options
            )
        elif message.type == "refresh":
            if subscription is not None:
                await subscription.refresh()
            else:
                # One-off fetch; the result goes to this client only
                connection.on_snapshot(await self._store.refresh(message.path))
        elif subscription is None:
            connection.enqueue({"type": "error", "message": f"Not subscribed: {message.path}"})
        elif message.type == "unsubscribe":
            subscription.unsubscribe()
            del connection.subscriptions[message.path]
        else:
            self._update(subscription, message)

    def _update(self, subscription: Subscription, message: ClientMessage) -> None:
        if message.active is not None:
            subscription.set_active(message.active)
        if message.poll_interval_ms is not None:
            subscription.set_poll_interval_ms(message.poll_interval_ms)
