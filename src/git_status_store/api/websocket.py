"""WebSocket API endpoint for live status updates."""

import logging
from typing import TYPE_CHECKING

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

if TYPE_CHECKING:
    from git_status_store.websocket.connection_manager import ConnectionManager

logger = logging.getLogger(__name__)

router = APIRouter()

# Global connection manager (injected via set_connection_manager)
_connection_manager: "ConnectionManager | None" = None


def set_connection_manager(manager: "ConnectionManager | None") -> None:
    """Set global connection manager.

    Args:
        manager: ConnectionManager instance
    """
    global _connection_manager
    _connection_manager = manager


@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket) -> None:
    """WebSocket endpoint for git status subscriptions.

    Args:
        websocket: WebSocket connection
    """
    if not _connection_manager:
        logger.error("[WebSocket] Connection manager not initialized")
        await websocket.close(code=1011, reason="Server not ready")
        return

    connection = await _connection_manager.connect(websocket)
    try:
        while True:
            data = await websocket.receive_text()
            logger.debug(f"[WebSocket] Received from client: {data}")

            if data == "ping":
                await websocket.send_text("pong")
                continue
            await _connection_manager.handle_message(connection, data)

    except WebSocketDisconnect:
        logger.info("[WebSocket] Client disconnected normally")
    except Exception as e:
        logger.error(f"[WebSocket] Error: {e}", exc_info=True)
    finally:
        _connection_manager.disconnect(connection)
