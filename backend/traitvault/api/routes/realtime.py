"""
Websocket transport for realtime notifications.

Clients send ``{"action": "subscribe" | "unsubscribe", "collection_id": ...}``
and receive ``{"event", "scope", "data"}`` messages from the broadcaster.
"""

import asyncio
import logging
from typing import Any

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from traitvault.services.notifications import Broadcaster, broadcaster

logger = logging.getLogger(__name__)

router = APIRouter(tags=["realtime"])


def handle_client_message(
    hub: Broadcaster, connection_id: int, message: Any
) -> dict[str, Any]:
    """Apply one client control message; returns the reply to send back."""
    if not isinstance(message, dict):
        return {"error": "message must be a JSON object"}

    action = message.get("action")
    collection_id = message.get("collection_id")
    if action not in ("subscribe", "unsubscribe"):
        return {"error": f"unknown action: {action!r}"}
    if collection_id is None or isinstance(collection_id, (dict, list)):
        return {"error": "collection_id is required"}

    if action == "subscribe":
        hub.join_scope(connection_id, collection_id)
    else:
        hub.leave_scope(connection_id, collection_id)
    return {"ok": True, "action": action, "collection_id": collection_id}


async def _pump(websocket: WebSocket, hub: Broadcaster, connection_id: int) -> None:
    while True:
        notification = await hub.next_message(connection_id)
        await websocket.send_json(notification.to_dict())


async def stop_sender(sender: asyncio.Task, connection_id: int) -> None:
    """Cancel the outbound pump and wait for it, whether it is pending or already failed."""
    sender.cancel()
    try:
        await sender
    except asyncio.CancelledError:
        pass
    except Exception as e:
        logger.debug("Sender for connection %s ended with %r", connection_id, e)


@router.websocket("/ws")
async def realtime(websocket: WebSocket):
    await websocket.accept()
    connection_id = broadcaster.connect()
    sender = asyncio.create_task(_pump(websocket, broadcaster, connection_id))

    try:
        while True:
            try:
                message = await websocket.receive_json()
            except ValueError:
                await websocket.send_json({"error": "invalid JSON"})
                continue
            await websocket.send_json(
                handle_client_message(broadcaster, connection_id, message)
            )
    except WebSocketDisconnect:
        pass
    finally:
        await stop_sender(sender, connection_id)
        broadcaster.disconnect(connection_id)
