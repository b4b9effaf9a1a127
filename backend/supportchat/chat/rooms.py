"""Room resolution.

A room is not stored anywhere: its ID is derived from the two
participants, customer first. The admin side is always the single
system admin, so both parties compute the same key.
"""
import logging

from supportchat.chat.errors import InvalidParticipant
from supportchat.chat.schemas import User, UserRole
from supportchat.store.service import MessageStore

logger = logging.getLogger(__name__)


def room_id_for(customer_id: str, admin_id: str) -> str:
    """Pure key function: ``"<customerId>-<adminId>"``."""
    return f"{customer_id}-{admin_id}"


def _require_role(store: MessageStore, user_id: str, role: UserRole) -> User:
    user = store.resolve_user(user_id)
    if user is None or user.role != role:
        raise InvalidParticipant(f"User {user_id} is not a known {role.value}")
    return user


def resolve_room(store: MessageStore, customer_id: str, admin_id: str) -> str:
    """Return the room ID for a (customer, admin) pair.

    Raises:
        InvalidParticipant: If either ID does not resolve to a user of the
            expected role.
    """
    _require_role(store, customer_id, UserRole.CUSTOMER)
    _require_role(store, admin_id, UserRole.ADMIN)
    return room_id_for(customer_id, admin_id)


def room_for_customer(store: MessageStore, customer_id: str) -> str:
    """Resolve the single admin first, then the customer's room."""
    admin = store.find_single_admin()
    if admin is None:
        raise InvalidParticipant("Admin not found")
    return resolve_room(store, customer_id, admin.id)


def validate_room(store: MessageStore, room_id: str) -> str:
    """Check that room_id is a known customer's room with the admin.

    Raises:
        InvalidParticipant: If no admin exists or the ID does not name a
            customer's room.
    """
    admin = store.find_single_admin()
    if admin is None:
        raise InvalidParticipant("Admin not found")
    suffix = f"-{admin.id}"
    if not room_id.endswith(suffix) or len(room_id) == len(suffix):
        raise InvalidParticipant(f"Unknown room: {room_id}")
    return resolve_room(store, room_id[:-len(suffix)], admin.id)


def resolve_pair_room(store: MessageStore, first_id: str, second_id: str) -> str:
    """Room ID for two participants given in either order.

    Used for inbound messages, where either side may be the sender.
    """
    first = store.resolve_user(first_id)
    second = store.resolve_user(second_id)
    if first is None or second is None:
        raise InvalidParticipant("Unknown message participant")
    if first.is_admin and not second.is_admin:
        return resolve_room(store, second.id, first.id)
    if second.is_admin and not first.is_admin:
        return resolve_room(store, first.id, second.id)
    logger.warning("[Chat] Pair %s/%s is not one customer and one admin", first_id, second_id)
    raise InvalidParticipant("A conversation needs one customer and the admin")
