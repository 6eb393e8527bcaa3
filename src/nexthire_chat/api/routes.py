"""Chat REST gateway.

Mirrors the message store over HTTP for initial page loads, offline sends and
reconciliation after a reconnect. Every route requires a bearer token.
"""

from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, Header, Request
from pydantic import BaseModel

from ..config import Settings
from ..domain.events import SendMessagePayload
from ..domain.models import Conversation, MessageView, User
from ..services.auth import bearer_token
from ..services.chat import ChatService

router = APIRouter(tags=["Chat"])


class SendResponse(BaseModel):
    success: bool = True
    message: MessageView


class ReadAck(BaseModel):
    success: bool = True
    message: MessageView


def get_chat_service(request: Request) -> ChatService:
    """Returns the chat use-case service"""
    return request.app.state.chat


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


async def get_current_user(
    request: Request, authorization: Optional[str] = Header(default=None)
) -> User:
    """Resolves the bearer token to a user; AuthError maps to 401"""
    return await request.app.state.authenticator.authenticate(bearer_token(authorization))


@router.get("/conversations", response_model=List[Conversation], summary="Get user's conversations")
async def list_conversations(
    user: User = Depends(get_current_user),
    chat: ChatService = Depends(get_chat_service),
) -> List[Conversation]:
    return await chat.store.get_conversations(user.id)


@router.get(
    "/messages/{recipient_id}",
    response_model=List[MessageView],
    summary="Get messages between users",
)
async def get_messages(
    recipient_id: str,
    page: int = 1,
    limit: Optional[int] = None,
    user: User = Depends(get_current_user),
    chat: ChatService = Depends(get_chat_service),
    settings: Settings = Depends(get_settings),
) -> List[MessageView]:
    """Page of history, oldest to newest. Marks the counterpart's messages as read."""
    if limit is None:
        limit = settings.default_page_size
    return await chat.fetch_history(user, recipient_id, page=page, limit=limit)


@router.post("/send", response_model=SendResponse, status_code=201, summary="Send a message")
async def send_message(
    payload: SendMessagePayload,
    user: User = Depends(get_current_user),
    chat: ChatService = Depends(get_chat_service),
) -> SendResponse:
    message = await chat.send_message(
        user,
        payload.target,
        payload.content,
        job_id=payload.job_id,
        client_message_id=payload.client_message_id,
        transport="rest",
    )
    return SendResponse(message=message)


@router.put(
    "/messages/{message_id}/read", response_model=ReadAck, summary="Mark a message as read"
)
async def mark_message_read(
    message_id: str,
    user: User = Depends(get_current_user),
    chat: ChatService = Depends(get_chat_service),
) -> ReadAck:
    message = await chat.mark_single_read(user, message_id)
    return ReadAck(message=message)


@router.get("/unread-count", summary="Get unread message count")
async def unread_count(
    user: User = Depends(get_current_user),
    chat: ChatService = Depends(get_chat_service),
) -> Dict[str, int]:
    return {"unreadCount": await chat.store.count_unread(user.id)}
