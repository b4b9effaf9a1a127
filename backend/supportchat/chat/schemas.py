"""Pydantic schemas for users, messages and WebSocket event payloads.

Stored records (User, Message) mirror the DuckDB rows owned by the
message store. The real-time core only ever holds transient copies of them
for the duration of one event.

Inbound payload models use the camelCase field names that browser clients
send (``senderId``, ``roomId``...). They are validated once in the
WebSocket router before anything reaches the chat service.
"""
from datetime import datetime
from enum import Enum
from typing import Optional, Union

from pydantic import BaseModel, Field


class UserRole(str, Enum):
    """User role.

    Attributes:
        ADMIN: The single support admin.
        CUSTOMER: A customer chatting with the admin.
    """
    ADMIN = "admin"
    CUSTOMER = "customer"


class MessageType(str, Enum):
    """Type of chat message.

    Attributes:
        TEXT: Plain user text.
        IMAGE: ``content`` is an opaque image reference (upload URL).
    """
    TEXT = "text"
    IMAGE = "image"


class User(BaseModel):
    id: str = Field(..., description="Opaque user ID")
    username: str = Field(..., description="Unique username")
    role: UserRole = Field(..., description="admin or customer")
    createdAt: datetime = Field(default_factory=datetime.utcnow)

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN


class Message(BaseModel):
    """A persisted chat message.

    ``edited``, ``deleted`` and ``read`` are independent flags; any
    combination of them is legal. ``version`` is bumped by every write and
    is used for compare-and-set updates.
    """
    id: str = Field(..., description="Unique message ID")
    senderId: str = Field(..., description="User ID of the sender")
    receiverId: str = Field(..., description="User ID of the other party")
    senderUsername: str = Field(default="", description="Sender username (denormalised)")
    content: str = Field(..., description="Text, or image reference when type=image")
    timestamp: datetime = Field(..., description="Creation time (UTC)")
    roomId: str = Field(..., description="Conversation key")
    type: MessageType = Field(default=MessageType.TEXT)
    edited: bool = False
    deleted: bool = False
    read: bool = False
    version: int = 0

    def to_event(self) -> dict:
        """Serialise for the wire (``version`` stays server-side)."""
        return self.model_dump(mode="json", exclude={"version"})


# =============================================================================
# Creation payloads
# =============================================================================


class TextPayload(BaseModel):
    type: MessageType = MessageType.TEXT
    content: str


class ImagePayload(BaseModel):
    type: MessageType = MessageType.IMAGE
    imageRef: str


MessagePayload = Union[TextPayload, ImagePayload]


# =============================================================================
# Inbound WebSocket events
# =============================================================================


class JoinRoomInput(BaseModel):
    username: str = Field(default="", description="Display label for logs")
    roomId: str


class SendMessageInput(BaseModel):
    senderId: str
    receiverId: str
    content: str
    roomId: str


class SendImageInput(BaseModel):
    senderId: str
    receiverId: str
    imageUrl: str
    roomId: str


class EditMessageInput(BaseModel):
    messageId: str
    newContent: str
    userId: str
    isAdmin: bool = False


class DeleteMessageInput(BaseModel):
    messageId: str
    userId: str
    isAdmin: bool = False


class MarkAsReadInput(BaseModel):
    roomId: str
    userId: str


# =============================================================================
# Reporting
# =============================================================================


class LastMessage(BaseModel):
    content: str
    timestamp: datetime
    read: bool
    senderId: str
    senderUsername: str


class CustomerSummary(BaseModel):
    """One row of the admin dashboard."""
    id: str
    username: str
    createdAt: datetime
    lastMessage: Optional[LastMessage] = None
    unreadCount: int = 0


class ChatContext(BaseModel):
    """Everything a client needs to open a conversation."""
    customer: User
    admin: User
    roomId: str
    isAdmin: bool
