"""Error taxonomy for the real-time chat core.

Every ChatError subclass is recovered at the operation boundary and sent
back to the originating connection only, as ``{"event": "error",
"data": {"message": ...}}``. TransportFailure is the exception: it means
the store could not be reached, and the WebSocket loop logs it and replies
with a generic error instead of the underlying detail.
"""


class ChatError(Exception):
    """Base class for recoverable chat errors.

    Attributes:
        message: Human-readable text sent to the client.
    """

    default_message = "Chat operation failed"

    def __init__(self, message: str = "") -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class NotFound(ChatError):
    default_message = "Message not found"


class Unauthorized(ChatError):
    default_message = "Unauthorized"


class ReadLocked(ChatError):
    default_message = "Message has already been read"


class MessageDeleted(ChatError):
    default_message = "Message has been deleted"


class RoomMismatch(ChatError):
    default_message = "Room does not match the message participants"


class InvalidParticipant(ChatError):
    default_message = "Invalid participant"


class InvalidPayload(ChatError):
    default_message = "Invalid message payload"


class AlreadyJoined(ChatError):
    default_message = "Connection has already joined another room"


class ConcurrentModification(ChatError):
    default_message = "Message was modified by another request, please retry"


class TransportFailure(Exception):
    """The message store could not complete an operation."""
