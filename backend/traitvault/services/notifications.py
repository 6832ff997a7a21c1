"""
Realtime notification fan-out.

The ingestion coordinator and rarity engine only see the ``Notifier``
protocol. The process-wide ``Broadcaster`` is owned by the websocket
transport: each connection gets a bounded queue, and a message for a full
queue is dropped so a slow client never back-pressures ingestion.

Every event goes to all connections; events whose payload carries a
``collectionId`` are delivered a second time on the ``collection:<id>``
scope to connections that joined it.
"""

import asyncio
import itertools
import logging
from dataclasses import dataclass
from typing import Any, Optional, Protocol

from traitvault.core.config import settings

logger = logging.getLogger(__name__)

GLOBAL_SCOPE = "global"


def collection_scope(collection_id: Any) -> str:
    return f"collection:{collection_id}"


class Notifier(Protocol):
    def publish(self, event_name: str, payload: dict[str, Any]) -> None:
        ...


class NullNotifier:
    """Discards everything. Used when no transport is attached."""

    def publish(self, event_name: str, payload: dict[str, Any]) -> None:
        return None


@dataclass
class Notification:
    event: str
    scope: str
    data: dict[str, Any]

    def to_dict(self) -> dict[str, Any]:
        return {"event": self.event, "scope": self.scope, "data": self.data}


class Broadcaster:
    """In-process pub/sub hub with dynamically created collection scopes."""

    def __init__(self, queue_size: Optional[int] = None):
        self.queue_size = queue_size or settings.NOTIFY_QUEUE_SIZE
        self._queues: dict[int, asyncio.Queue] = {}
        self._scopes: dict[str, set[int]] = {}
        self._ids = itertools.count(1)

        self.published = 0
        self.dropped = 0

    # ------------------------------------------------------------------
    # Connection management (called by the transport)
    # ------------------------------------------------------------------

    def connect(self) -> int:
        connection_id = next(self._ids)
        self._queues[connection_id] = asyncio.Queue(maxsize=self.queue_size)
        logger.info("Realtime client %d connected (%d total)", connection_id, len(self._queues))
        return connection_id

    def disconnect(self, connection_id: int) -> None:
        self._queues.pop(connection_id, None)
        for scope in list(self._scopes):
            self._leave(connection_id, scope)
        logger.info("Realtime client %d disconnected", connection_id)

    def join_scope(self, connection_id: int, collection_id: Any) -> bool:
        if connection_id not in self._queues:
            return False
        scope = collection_scope(collection_id)
        self._scopes.setdefault(scope, set()).add(connection_id)
        logger.debug("Client %d subscribed to %s", connection_id, scope)
        return True

    def leave_scope(self, connection_id: int, collection_id: Any) -> None:
        self._leave(connection_id, collection_scope(collection_id))
        logger.debug("Client %d unsubscribed from collection %s", connection_id, collection_id)

    def _leave(self, connection_id: int, scope: str) -> None:
        members = self._scopes.get(scope)
        if not members:
            return
        members.discard(connection_id)
        if not members:
            del self._scopes[scope]

    def scopes_of(self, connection_id: int) -> set[str]:
        return {scope for scope, members in self._scopes.items() if connection_id in members}

    @property
    def connection_count(self) -> int:
        return len(self._queues)

    async def next_message(self, connection_id: int) -> Notification:
        return await self._queues[connection_id].get()

    # ------------------------------------------------------------------
    # Publishing
    # ------------------------------------------------------------------

    def publish(self, event_name: str, payload: dict[str, Any]) -> None:
        """Fire-and-forget delivery; never raises, never waits."""
        self.published += 1

        for connection_id in list(self._queues):
            self._offer(connection_id, Notification(event_name, GLOBAL_SCOPE, payload))

        collection_id = payload.get("collectionId")
        if collection_id is not None:
            scope = collection_scope(collection_id)
            for connection_id in list(self._scopes.get(scope, ())):
                self._offer(connection_id, Notification(event_name, scope, payload))

    def _offer(self, connection_id: int, message: Notification) -> None:
        queue = self._queues.get(connection_id)
        if queue is None:
            return
        try:
            queue.put_nowait(message)
        except asyncio.QueueFull:
            self.dropped += 1
            logger.debug(
                "Dropping %s for slow client %d (queue full)", message.event, connection_id
            )


# Process-wide hub, owned by the websocket transport
broadcaster = Broadcaster()
