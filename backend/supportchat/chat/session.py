"""Per-connection session state.

A session lives exactly as long as its WebSocket. It remembers which room
the connection joined so that disconnect can clean up, and nothing else:
authorization never looks at session state.
"""
import uuid
from dataclasses import dataclass, field
from typing import Optional

from fastapi import WebSocket

from supportchat.chat.errors import AlreadyJoined


@dataclass
class ConnectionSession:
    """State for one live connection.

    Attributes:
        websocket: The underlying connection.
        connection_id: Server-generated ID, used in logs only.
        room_id: The joined room, or None before join-room.
        display_label: Label the client sent with join-room.
    """
    websocket: WebSocket
    connection_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    room_id: Optional[str] = None
    display_label: str = ""

    @property
    def joined(self) -> bool:
        return self.room_id is not None

    def bind_room(self, room_id: str, display_label: str = "") -> bool:
        """Record the room this connection joined.

        A connection joins at most one room. Joining the same room again is
        allowed and returns False; joining a different one raises.

        Returns:
            True on the first join, False on a repeat join of the same room.

        Raises:
            AlreadyJoined: If the connection already joined another room.
        """
        if self.room_id is not None and self.room_id != room_id:
            raise AlreadyJoined(
                f"Connection already joined room {self.room_id}"
            )
        first_join = self.room_id is None
        self.room_id = room_id
        if display_label:
            self.display_label = display_label
        return first_join
