"""Broadcast router for room-scoped and global real-time events.

Two delivery scopes exist:
    - Room scope: every connection that joined a given room.
    - Global channel: every live connection, joined to a room or not.
      The admin dashboard listens here for ``admin-alert`` events.

Every outbound frame has the shape ``{"event": <name>, "data": <payload>}``.

Delivery is fire-and-forget: there is no acknowledgement, no retry and no
backpressure. Connections whose send fails are dropped from both scopes;
they catch up on the next join through the history snapshot.

Thread Safety:
    This implementation is designed for async/await usage with a single event loop.
    It is NOT thread-safe for concurrent access from multiple threads.
"""
import asyncio
import logging
from typing import Any, Dict, List, Optional

from fastapi import WebSocket

logger = logging.getLogger(__name__)


def make_frame(event: str, data: Any) -> dict:
    """Build the JSON envelope for an outbound event."""
    return {"event": event, "data": data}


class BroadcastRouter:
    """Process-wide publish/subscribe registry for WebSocket connections.

    The registry lives for the lifetime of the server: it is started in the
    application lifespan and closed on shutdown. Nothing is persisted across
    restarts.
    """

    def __init__(self) -> None:
        # room_id -> connections joined to that room
        self.active_connections: Dict[str, List[WebSocket]] = {}

        # every live connection (global channel subscribers)
        self.global_subscribers: List[WebSocket] = []

        self.running = False

    def start(self) -> None:
        self.running = True
        logger.info("[Broadcast] Router started")

    def close(self) -> None:
        """Drop every subscriber and room membership."""
        self.active_connections.clear()
        self.global_subscribers.clear()
        self.running = False
        logger.info("[Broadcast] Router closed")

    # =========================================================================
    # Membership
    # =========================================================================

    def subscribe(self, websocket: WebSocket) -> None:
        """Register a connection on the global channel."""
        if websocket not in self.global_subscribers:
            self.global_subscribers.append(websocket)

    def unsubscribe(self, websocket: WebSocket) -> None:
        """Remove a connection from the global channel and every room."""
        if websocket in self.global_subscribers:
            self.global_subscribers.remove(websocket)
        for room_id in list(self.active_connections):
            self.leave(websocket, room_id)

    def join(self, websocket: WebSocket, room_id: str) -> None:
        members = self.active_connections.setdefault(room_id, [])
        if websocket not in members:
            members.append(websocket)

    def leave(self, websocket: WebSocket, room_id: str) -> None:
        members = self.active_connections.get(room_id)
        if not members:
            return
        if websocket in members:
            members.remove(websocket)
        if not members:
            del self.active_connections[room_id]

    def get_room_size(self, room_id: str) -> int:
        """Get the number of active connections in a room."""
        return len(self.active_connections.get(room_id, []))

    def get_subscriber_count(self) -> int:
        return len(self.global_subscribers)

    # =========================================================================
    # Delivery
    # =========================================================================

    async def send(self, websocket: WebSocket, event: str, data: Any) -> bool:
        """Unicast one event. Returns False if the connection is gone."""
        return await self._safe_send(websocket, make_frame(event, data))

    async def broadcast(self, event: str, data: Any, room_id: str) -> None:
        """Send an event to every connection joined to a room."""
        await self.broadcast_except(event, data, room_id, exclude_websocket=None)

    async def broadcast_except(
        self,
        event: str,
        data: Any,
        room_id: str,
        exclude_websocket: Optional[WebSocket],
    ) -> None:
        """Send an event to a room, skipping one connection.

        Used for read receipts, where the reader already knows.
        """
        connections = [
            conn for conn in self.active_connections.get(room_id, [])
            if conn is not exclude_websocket
        ]
        await self._deliver(connections, make_frame(event, data))

    async def broadcast_global(self, event: str, data: Any) -> None:
        """Send an event to every live connection."""
        await self._deliver(list(self.global_subscribers), make_frame(event, data))

    async def _deliver(self, connections: List[WebSocket], frame: dict) -> None:
        if not connections:
            return

        # Send to all connections concurrently
        results = await asyncio.gather(
            *[self._safe_send(conn, frame) for conn in connections],
            return_exceptions=True
        )

        failed_connections = [
            conn for conn, success in zip(connections, results)
            if success is not True
        ]
        for conn in failed_connections:
            self.unsubscribe(conn)
            logger.debug("[Broadcast] Removed dead connection")

    async def _safe_send(self, connection: WebSocket, frame: dict) -> bool:
        """Send a frame to a WebSocket connection with error handling.

        Returns:
            True if successful, False if connection failed.
        """
        try:
            await connection.send_json(frame)
            return True
        except Exception as e:
            logger.debug(f"[Broadcast] Failed to send {frame.get('event')}: {e}")
            return False
