"""Mutation policy for edits and soft deletes.

The policy is a pair of stateless functions over the *persisted* message
and the actor's claim. Callers must pass a message they just re-read from
the store; nothing here consults connection state.

Edit Rules (checked in order):
    1. Only the original sender may edit, whatever their role.
    2. A soft-deleted message cannot be edited (when lock_deleted is set).
    3. A read message can only be edited by an admin author.
    4. Image messages cannot be edited; their content is an upload reference.

Delete Rules (checked in order):
    1. The sender or the admin may delete.
    2. A read message cannot be deleted by anyone.
"""
from dataclasses import dataclass
from typing import Optional

from supportchat.chat.errors import (
    ChatError,
    InvalidPayload,
    MessageDeleted,
    ReadLocked,
    Unauthorized,
)
from supportchat.chat.schemas import Message, MessageType


@dataclass(frozen=True)
class ActorClaim:
    """Who is asking for a mutation.

    Attributes:
        user_id: Claimed user ID of the actor.
        is_admin: Whether the actor claims the admin role.
    """
    user_id: str
    is_admin: bool = False


@dataclass(frozen=True)
class PolicyDecision:
    """Result of a policy check.

    Attributes:
        allowed: Whether the mutation may proceed.
        reason: Why it was denied (empty if allowed).
        error: Exception to raise when denied.
    """
    allowed: bool
    reason: str = ""
    error: Optional[ChatError] = None

    def __bool__(self) -> bool:
        return self.allowed


ALLOW = PolicyDecision(allowed=True)


def _deny(error: ChatError) -> PolicyDecision:
    return PolicyDecision(allowed=False, reason=error.message, error=error)


def check_edit(message: Message, actor: ActorClaim, lock_deleted: bool = True) -> PolicyDecision:
    if message.senderId != actor.user_id:
        return _deny(Unauthorized("Unauthorized to edit this message"))
    if lock_deleted and message.deleted:
        return _deny(MessageDeleted("Cannot edit a deleted message"))
    # Read-lock is waived for the admin only
    if message.read and not actor.is_admin:
        return _deny(ReadLocked("Cannot edit message that has been read"))
    if message.type == MessageType.IMAGE:
        return _deny(InvalidPayload("Image messages cannot be edited"))
    return ALLOW


def check_delete(message: Message, actor: ActorClaim) -> PolicyDecision:
    if message.senderId != actor.user_id and not actor.is_admin:
        return _deny(Unauthorized("Unauthorized to delete this message"))
    if message.read:
        return _deny(ReadLocked("Cannot delete message that has been read"))
    return ALLOW


def enforce(decision: PolicyDecision) -> None:
    """Raise the decision's error if it denies the mutation."""
    if not decision.allowed:
        raise decision.error or Unauthorized(decision.reason)
