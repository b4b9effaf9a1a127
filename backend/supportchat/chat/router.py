"""Chat router providing the real-time WebSocket endpoint.

This module provides:
    - WebSocket /ws/chat: Real-time customer <-> admin messaging

Frames in both directions are JSON objects of the form
``{"event": "<name>", "data": {...}}``.

Inbound events:
    - join-room: Register in a room, receive message-history
    - send-message: Text message
    - send-image: Image message (imageUrl from POST /api/upload)
    - edit-message: Edit own message
    - delete-message: Soft-delete a message
    - mark-as-read: Mark the room's messages to the caller as read

Outbound events:
    - message-history, message-received, message-edited, message-deleted,
      messages-read, admin-alert, error

Errors are only ever sent to the connection that caused them; the
connection stays open.
"""
import json
import logging
from typing import Awaitable, Callable, Dict, Tuple, Type

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from pydantic import BaseModel, ValidationError

from .errors import ChatError, TransportFailure
from .schemas import (
    DeleteMessageInput,
    EditMessageInput,
    ImagePayload,
    JoinRoomInput,
    MarkAsReadInput,
    SendImageInput,
    SendMessageInput,
    TextPayload,
)
from .service import ERROR, ChatService, get_chat_service
from .session import ConnectionSession

logger = logging.getLogger(__name__)

router = APIRouter()


# =============================================================================
# Event handlers
# =============================================================================


async def _on_join_room(service: ChatService, session: ConnectionSession, data: JoinRoomInput) -> None:
    await service.join_room(session, data.roomId, data.username)


async def _on_send_message(service: ChatService, session: ConnectionSession, data: SendMessageInput) -> None:
    await service.create_message(
        data.senderId, data.receiverId, data.roomId, TextPayload(content=data.content)
    )


async def _on_send_image(service: ChatService, session: ConnectionSession, data: SendImageInput) -> None:
    await service.create_message(
        data.senderId, data.receiverId, data.roomId, ImagePayload(imageRef=data.imageUrl)
    )


async def _on_edit_message(service: ChatService, session: ConnectionSession, data: EditMessageInput) -> None:
    await service.edit_message(data.messageId, data.userId, data.newContent, data.isAdmin)


async def _on_delete_message(service: ChatService, session: ConnectionSession, data: DeleteMessageInput) -> None:
    await service.delete_message(data.messageId, data.userId, data.isAdmin)


async def _on_mark_as_read(service: ChatService, session: ConnectionSession, data: MarkAsReadInput) -> None:
    await service.mark_read(data.roomId, data.userId, exclude_websocket=session.websocket)


Handler = Callable[[ChatService, ConnectionSession, BaseModel], Awaitable[None]]

# event -> (payload schema, handler, message sent when the store fails)
EVENT_HANDLERS: Dict[str, Tuple[Type[BaseModel], Handler, str]] = {
    "join-room": (JoinRoomInput, _on_join_room, "Error fetching message history"),
    "send-message": (SendMessageInput, _on_send_message, "Error sending message"),
    "send-image": (SendImageInput, _on_send_image, "Error sending image"),
    "edit-message": (EditMessageInput, _on_edit_message, "Error editing message"),
    "delete-message": (DeleteMessageInput, _on_delete_message, "Error deleting message"),
    "mark-as-read": (MarkAsReadInput, _on_mark_as_read, "Error marking messages as read"),
}


async def dispatch(service: ChatService, session: ConnectionSession, frame: dict) -> None:
    """Validate one inbound frame and run its handler.

    Every failure is reported to this connection only.
    """
    websocket = session.websocket
    event = frame.get("event")
    if event not in EVENT_HANDLERS:
        await service.router.send(websocket, ERROR, {"message": f"Unknown event: {event}"})
        return

    schema, handler, failure_message = EVENT_HANDLERS[event]
    try:
        payload = schema.model_validate(frame.get("data") or {})
    except ValidationError as e:
        logger.info(f"[WS] Invalid {event} payload from {session.connection_id}: {e.error_count()} error(s)")
        await service.router.send(websocket, ERROR, {"message": f"Invalid {event} payload"})
        return

    try:
        await handler(service, session, payload)
    except ChatError as e:
        logger.warning(f"[WS] {event} rejected for {session.connection_id}: {e.message}")
        await service.router.send(websocket, ERROR, {"message": e.message})
    except TransportFailure as e:
        logger.error(f"[WS] {event} failed for {session.connection_id}: {e}")
        await service.router.send(websocket, ERROR, {"message": failure_message})


@router.websocket("/ws/chat")
async def websocket_chat_endpoint(websocket: WebSocket) -> None:
    """WebSocket endpoint for real-time chat.

    Protocol Flow:
        1. Client connects -> subscribed to the global channel
           (receives admin-alert events)
        2. Client sends: {event: "join-room", data: {username, roomId}}
           -> Server sends: {event: "message-history", data: [...]}
        3. Client sends message events -> Server broadcasts to the room
        4. On disconnect -> connection removed from every scope
    """
    await websocket.accept()
    service = get_chat_service()
    session = service.connect(websocket)

    try:
        while True:
            text = await websocket.receive_text()
            try:
                frame = json.loads(text)
            except json.JSONDecodeError:
                await service.router.send(websocket, ERROR, {"message": "Invalid JSON"})
                continue
            if not isinstance(frame, dict):
                await service.router.send(websocket, ERROR, {"message": "Invalid frame"})
                continue

            logger.debug("[WS] %s received: event=%s", session.connection_id, frame.get("event", "?"))
            await dispatch(service, session, frame)

    except WebSocketDisconnect:
        pass
    finally:
        service.disconnect(session)
