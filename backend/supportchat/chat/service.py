"""Message lifecycle and real-time synchronisation.

ChatService ties the store, the mutation policy and the broadcast router
together. Each public coroutine handles one inbound client event:

    join_room       -> message-history (unicast)
    create_message  -> message-received (room) + admin-alert (global)
    edit_message    -> message-edited (room)
    delete_message  -> message-deleted (room)
    mark_read       -> messages-read (room, minus the reader)

Ordering within one operation is always: re-read current state from the
store, check policy, write, then broadcast. A failed write raises before
anything is broadcast, so clients never see an event for a change that
was not persisted. Broadcast failures are never reported to the actor.
"""
import logging
from typing import List, Optional

from fastapi import WebSocket

from supportchat.chat.broadcast import BroadcastRouter
from supportchat.chat.errors import (
    ConcurrentModification,
    InvalidParticipant,
    InvalidPayload,
    NotFound,
    RoomMismatch,
)
from supportchat.chat.policy import ActorClaim, check_delete, check_edit, enforce
from supportchat.chat.rooms import resolve_pair_room, validate_room
from supportchat.chat.schemas import (
    ImagePayload,
    Message,
    MessagePayload,
    MessageType,
    TextPayload,
)
from supportchat.chat.session import ConnectionSession
from supportchat.store.service import MessageStore

logger = logging.getLogger(__name__)


# Outbound event names
MESSAGE_HISTORY = "message-history"
MESSAGE_RECEIVED = "message-received"
MESSAGE_EDITED = "message-edited"
MESSAGE_DELETED = "message-deleted"
MESSAGES_READ = "messages-read"
ADMIN_ALERT = "admin-alert"
ERROR = "error"


class ChatService:
    """Real-time chat operations for one server process.

    Args:
        store: Authoritative message/user store.
        router: Broadcast router shared by all connections.
        lock_edit_after_delete: Reject edits of soft-deleted messages.
        history_limit: Maximum messages sent on join (0 = all).
    """

    def __init__(
        self,
        store: MessageStore,
        router: BroadcastRouter,
        lock_edit_after_delete: bool = True,
        history_limit: int = 0,
    ) -> None:
        self.store = store
        self.router = router
        self.lock_edit_after_delete = lock_edit_after_delete
        self.history_limit = history_limit

    # =========================================================================
    # Connection lifecycle
    # =========================================================================

    def connect(self, websocket: WebSocket) -> ConnectionSession:
        """Create a session and subscribe it to the global channel."""
        session = ConnectionSession(websocket=websocket)
        self.router.subscribe(websocket)
        logger.info(f"[Chat] Connection {session.connection_id} opened")
        return session

    def disconnect(self, session: ConnectionSession) -> None:
        """Stop delivering to a connection. In-flight work is not aborted."""
        self.router.unsubscribe(session.websocket)
        logger.info(
            f"[Chat] Connection {session.connection_id} closed "
            f"(room={session.room_id}, label={session.display_label or '-'})"
        )

    async def join_room(
        self, session: ConnectionSession, room_id: str, display_label: str = ""
    ) -> List[Message]:
        """Join a room and send its history snapshot to the caller.

        The session is bound only after the history read succeeds, so a
        failed join leaves the connection unjoined.

        Raises:
            InvalidParticipant: If room_id is not a customer's room.
            AlreadyJoined: If the connection already joined another room.
        """
        validate_room(self.store, room_id)
        history = self.store.find_messages_by_room(room_id, limit=self.history_limit)

        session.bind_room(room_id, display_label)
        self.router.join(session.websocket, room_id)
        logger.info(f"[Chat] {display_label or session.connection_id} joined room {room_id}")

        await self.router.send(
            session.websocket, MESSAGE_HISTORY, [m.to_event() for m in history]
        )
        return history

    # =========================================================================
    # Creation
    # =========================================================================

    async def create_message(
        self,
        sender_id: str,
        receiver_id: str,
        room_id: str,
        payload: MessagePayload,
    ) -> Message:
        """Persist a message, then fan it out to the room and the admin.

        Raises:
            RoomMismatch: If sender equals receiver or room_id is not the
                participants' room.
            InvalidParticipant: If a participant is unknown.
            InvalidPayload: If the text or image reference is empty.
        """
        if sender_id == receiver_id:
            raise RoomMismatch("Sender and receiver must be different users")

        if isinstance(payload, ImagePayload):
            content = payload.imageRef.strip()
            message_type = MessageType.IMAGE
        elif isinstance(payload, TextPayload):
            content = payload.content
            message_type = MessageType.TEXT
        else:
            raise InvalidPayload(f"Unsupported payload: {type(payload).__name__}")
        if not content or not content.strip():
            raise InvalidPayload("Message content is required")

        expected_room = resolve_pair_room(self.store, sender_id, receiver_id)
        if expected_room != room_id:
            raise RoomMismatch(f"Room {room_id} does not belong to these participants")

        message = self.store.create_message(
            sender_id, receiver_id, room_id, content, message_type
        )
        logger.info(
            f"[Chat] {message_type.value} message {message.id} from {sender_id} "
            f"to room {room_id} ({self.router.get_room_size(room_id)} connections)"
        )

        await self.router.broadcast(MESSAGE_RECEIVED, message.to_event(), room_id)

        # Dual-scope fan-out: the dashboard may not be joined to this room
        receiver = self.store.resolve_user(receiver_id)
        if receiver is not None and receiver.is_admin:
            await self.router.broadcast_global(
                ADMIN_ALERT, {"customerId": sender_id, "hasUnread": True}
            )
        return message

    # =========================================================================
    # Mutation
    # =========================================================================

    def _load(self, message_id: str) -> Message:
        message = self.store.find_message_by_id(message_id)
        if message is None:
            raise NotFound("Message not found")
        return message

    async def edit_message(
        self, message_id: str, actor_id: str, new_content: str, actor_is_admin: bool = False
    ) -> Message:
        """Replace a message's content and flag it edited.

        Raises:
            NotFound, Unauthorized, MessageDeleted, ReadLocked,
            InvalidPayload, ConcurrentModification.
        """
        message = self._load(message_id)
        actor = ActorClaim(user_id=actor_id, is_admin=actor_is_admin)
        enforce(check_edit(message, actor, lock_deleted=self.lock_edit_after_delete))
        if not new_content or not new_content.strip():
            raise InvalidPayload("New content is required")

        updated = self.store.update_message(
            message.id, message.version, content=new_content, edited=True
        )
        if updated is None:
            raise ConcurrentModification()

        logger.info(f"[Chat] Message {message_id} edited by {actor_id}")
        await self.router.broadcast(
            MESSAGE_EDITED,
            {"messageId": updated.id, "newContent": updated.content, "edited": True},
            updated.roomId,
        )
        return updated

    async def delete_message(
        self, message_id: str, actor_id: str, actor_is_admin: bool = False
    ) -> Message:
        """Soft-delete a message. The row is kept.

        Raises:
            NotFound, Unauthorized, ReadLocked, ConcurrentModification.
        """
        message = self._load(message_id)
        actor = ActorClaim(user_id=actor_id, is_admin=actor_is_admin)
        enforce(check_delete(message, actor))

        updated = self.store.update_message(message.id, message.version, deleted=True)
        if updated is None:
            raise ConcurrentModification()

        logger.info(f"[Chat] Message {message_id} deleted by {actor_id} (admin={actor_is_admin})")
        await self.router.broadcast(MESSAGE_DELETED, {"messageId": updated.id}, updated.roomId)
        return updated

    # =========================================================================
    # Read state
    # =========================================================================

    async def mark_read(
        self,
        room_id: str,
        reader_id: str,
        exclude_websocket: Optional[WebSocket] = None,
    ) -> int:
        """Mark everything in a room addressed to reader_id as read.

        Safe to call repeatedly; a call with nothing unread changes no
        state and still succeeds.

        Returns:
            Number of messages that became read.
        """
        if not reader_id:
            raise InvalidParticipant("Reader is required")

        count = self.store.bulk_mark_read(room_id, reader_id)
        logger.debug(f"[Chat] {reader_id} read {count} message(s) in room {room_id}")
        await self.router.broadcast_except(
            MESSAGES_READ, {"readerId": reader_id}, room_id, exclude_websocket
        )
        return count


_service: Optional[ChatService] = None


def get_chat_service() -> ChatService:
    """Return the global ChatService.

    Raises:
        RuntimeError: If the application lifespan has not created it yet.
    """
    if _service is None:
        raise RuntimeError("Chat service not initialised")
    return _service


def set_chat_service(service: Optional[ChatService]) -> None:
    """Set (or clear) the global ChatService instance."""
    global _service
    _service = service
