"""Admin dashboard REST API router.

Endpoints:
    GET    /admin/customers                 - Dashboard: customers, last message, unread count
    GET    /admin/chat/{customer_id}        - Open a customer chat (marks it read)
    POST   /admin/mark-as-read/{customer_id} - Mark a customer's messages read
    DELETE /admin/users/{user_id}           - Delete a customer and their messages

Store failures are reported as HTTP 500 without the underlying detail.
"""
import logging
from typing import List

from fastapi import APIRouter, HTTPException

from supportchat.chat.errors import TransportFailure
from supportchat.chat.rooms import room_id_for
from supportchat.chat.schemas import ChatContext, CustomerSummary, User, UserRole
from supportchat.chat.service import MESSAGES_READ, get_chat_service
from supportchat.store.service import MessageStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"])


def _store_failure(action: str, error: TransportFailure) -> HTTPException:
    logger.error(f"Admin {action} failed: {error}")
    return HTTPException(status_code=500, detail="Internal Server Error")


def _require_admin(store: MessageStore) -> User:
    admin = store.find_single_admin()
    if admin is None:
        raise HTTPException(status_code=404, detail="Admin not found")
    return admin


def _require_customer(store: MessageStore, customer_id: str) -> User:
    customer = store.resolve_user(customer_id)
    if customer is None:
        raise HTTPException(status_code=404, detail="Customer not found")
    if customer.role != UserRole.CUSTOMER:
        raise HTTPException(status_code=400, detail="Invalid user")
    return customer


async def _mark_customer_read(store: MessageStore, customer: User, admin: User) -> int:
    """Mark customer -> admin messages read and tell the customer's room."""
    count = store.mark_conversation_read(customer.id, admin.id)
    if count:
        await get_chat_service().router.broadcast(
            MESSAGES_READ, {"readerId": admin.id}, room_id_for(customer.id, admin.id)
        )
    return count


@router.get("/customers", response_model=List[CustomerSummary])
async def list_customers() -> List[CustomerSummary]:
    """Every customer with their last message and unread count."""
    try:
        return MessageStore.get_instance().customer_summaries()
    except TransportFailure as e:
        raise _store_failure("customer listing", e)


@router.get("/chat/{customer_id}", response_model=ChatContext)
async def admin_chat(customer_id: str) -> ChatContext:
    """Chat context for the admin side of a customer conversation.

    Opening the chat marks everything the customer sent as read.
    """
    store = MessageStore.get_instance()
    try:
        customer = _require_customer(store, customer_id)
        admin = _require_admin(store)
        count = await _mark_customer_read(store, customer, admin)
    except TransportFailure as e:
        raise _store_failure(f"chat open for {customer_id}", e)

    logger.info(f"Admin opened chat with {customer.username} ({count} marked read)")

    return ChatContext(
        customer=customer,
        admin=admin,
        roomId=room_id_for(customer.id, admin.id),
        isAdmin=True,
    )


@router.post("/mark-as-read/{customer_id}")
async def mark_customer_read(customer_id: str) -> dict:
    store = MessageStore.get_instance()
    try:
        customer = _require_customer(store, customer_id)
        admin = _require_admin(store)
        count = await _mark_customer_read(store, customer, admin)
    except TransportFailure as e:
        raise _store_failure(f"mark-as-read for {customer_id}", e)
    return {"success": True, "message": "Messages marked as read", "count": count}


@router.delete("/users/{user_id}")
async def delete_user(user_id: str) -> dict:
    """Delete a customer and every message they sent or received.

    Raises:
        HTTPException 404: If the user does not exist.
        HTTPException 400: If the user is the admin.
        HTTPException 500: If the message store fails.
    """
    store = MessageStore.get_instance()
    try:
        user = store.resolve_user(user_id)
        if user is None:
            raise HTTPException(status_code=404, detail="User not found")
        if user.is_admin:
            raise HTTPException(status_code=400, detail="Cannot delete admin user")
        removed = store.delete_user(user_id)
    except TransportFailure as e:
        raise _store_failure(f"delete of user {user_id}", e)

    logger.info(f"Deleted user {user.username} and {removed} messages")
    return {
        "success": True,
        "message": "User and their messages deleted successfully",
        "deletedMessages": removed,
    }
