"""Customer login and chat context endpoints.

Endpoints:
    POST /login              - Find or create a customer by username
    GET  /chat/{customer_id} - Customer, admin and room ID for a customer chat

Identity here is deliberately thin: a username is enough to log in, and
the IDs returned are what the client sends with its WebSocket events.
"""
import logging
from typing import Optional

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from supportchat.chat.errors import TransportFailure
from supportchat.chat.rooms import room_id_for
from supportchat.chat.schemas import ChatContext, User, UserRole
from supportchat.store.service import MessageStore

logger = logging.getLogger(__name__)

router = APIRouter(tags=["users"])


class LoginRequest(BaseModel):
    username: str = Field(..., description="Customer username")


class LoginResponse(BaseModel):
    """Login result.

    Admin logins get ``redirect="/admin"`` and no room.
    """
    user: User
    roomId: Optional[str] = None
    admin: Optional[User] = None
    redirect: Optional[str] = None


@router.post("/login", response_model=LoginResponse)
async def login(request: LoginRequest) -> LoginResponse:
    """Log in as a customer, creating the account on first use.

    Raises:
        HTTPException 400: If the username is blank.
        HTTPException 404: If no admin has been provisioned.
        HTTPException 500: If the message store fails.
    """
    username = request.username.strip()
    if not username:
        raise HTTPException(status_code=400, detail="Please enter a valid username")

    try:
        return _login(MessageStore.get_instance(), username)
    except TransportFailure as e:
        logger.error(f"Login failed for {username}: {e}")
        raise HTTPException(status_code=500, detail="Internal Server Error")


def _login(store: MessageStore, username: str) -> LoginResponse:
    user = store.find_user_by_username(username)
    if user is not None and user.is_admin:
        return LoginResponse(user=user, redirect="/admin")

    admin = store.find_single_admin()
    if admin is None:
        raise HTTPException(status_code=404, detail="Admin not found. Please try again later.")

    if user is None:
        user = store.create_user(username, UserRole.CUSTOMER)
        logger.info(f"New customer registered: {username}")

    return LoginResponse(
        user=user,
        roomId=room_id_for(user.id, admin.id),
        admin=admin,
        redirect=f"/chat/{user.id}",
    )


@router.get("/chat/{customer_id}", response_model=ChatContext)
async def customer_chat(customer_id: str) -> ChatContext:
    """Chat context for a customer.

    Raises:
        HTTPException 404: Unknown customer or no admin.
        HTTPException 400: If the ID belongs to the admin.
        HTTPException 500: If the message store fails.
    """
    store = MessageStore.get_instance()
    try:
        customer = store.resolve_user(customer_id)
        admin = store.find_single_admin()
    except TransportFailure as e:
        logger.error(f"Chat lookup failed for {customer_id}: {e}")
        raise HTTPException(status_code=500, detail="Internal Server Error")

    if customer is None:
        raise HTTPException(status_code=404, detail="Customer not found")
    if customer.role != UserRole.CUSTOMER:
        raise HTTPException(status_code=400, detail="Not a customer account")
    if admin is None:
        raise HTTPException(status_code=404, detail="Admin not found. Please try again later.")

    return ChatContext(
        customer=customer,
        admin=admin,
        roomId=room_id_for(customer.id, admin.id),
        isAdmin=False,
    )
