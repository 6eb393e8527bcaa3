"""Dispatch of inbound realtime events."""

import json
from typing import Union

import structlog
from pydantic import ValidationError as SchemaError

from ..domain.errors import NotFoundError, ValidationError
from ..domain.events import (
    JoinChat,
    MarkMessagesRead,
    SendMessage,
    ServerEvent,
    TypingStart,
    TypingStop,
    parse_event,
)
from ..domain.models import pairing_room
from ..services.chat import ChatService
from .sessions import Session, SessionManager

logger = structlog.get_logger()

SEND_FAILED = "Failed to send message"


def _event_name(raw: Union[str, bytes]) -> str:
    try:
        frame = json.loads(raw)
    except ValueError:
        return ""
    if isinstance(frame, dict) and isinstance(frame.get("event"), str):
        return frame["event"]
    return ""


class DeliveryCoordinator:
    """Routes validated events from a session to the chat service and rooms.

    Nothing raised here reaches the transport loop: send failures become a
    message_error to the sending connection, everything else is logged.
    """

    def __init__(self, sessions: SessionManager, chat: ChatService) -> None:
        self.sessions = sessions
        self.chat = chat

    async def dispatch(self, session: Session, raw: Union[str, bytes]) -> None:
        try:
            event = parse_event(raw)
        except SchemaError as e:
            name = _event_name(raw)
            logger.warning(
                "invalid_event", sid=session.sid, event_name=name or None, errors=e.error_count()
            )
            if name == "send_message":
                await self._reply_error(session, "Invalid message payload")
            return

        try:
            if isinstance(event, JoinChat):
                await self.join_chat(session, event.data.recipient_id)
            elif isinstance(event, SendMessage):
                await self.send_message(session, event)
            elif isinstance(event, TypingStart):
                await self.typing(session, event.data.recipient_id, started=True)
            elif isinstance(event, TypingStop):
                await self.typing(session, event.data.recipient_id, started=False)
            elif isinstance(event, MarkMessagesRead):
                await self.chat.mark_read(session.user.id, event.data.sender_id)
        except Exception as e:
            logger.error(
                "event_handler_failed", sid=session.sid, event_name=event.event, error=str(e)
            )

    async def join_chat(self, session: Session, recipient_id: str) -> str:
        room = pairing_room(session.user.id, recipient_id)
        if self.sessions.join(session, room):
            logger.info("chat_joined", user_id=session.user.id, room=room)
        await session.send(ServerEvent.JOINED_CHAT, {"roomId": room})
        return room

    async def send_message(self, session: Session, event: SendMessage) -> None:
        data = event.data
        try:
            await self.chat.send_message(
                session.user,
                data.target,
                data.content,
                job_id=data.job_id,
                client_message_id=data.client_message_id,
                transport="socket",
            )
        except (ValidationError, NotFoundError) as e:
            logger.warning("socket_send_rejected", user_id=session.user.id, error=str(e))
            await self._reply_error(session, str(e))
        except Exception as e:
            logger.error("socket_send_failed", user_id=session.user.id, error=str(e))
            await self._reply_error(session, SEND_FAILED)

    async def typing(self, session: Session, recipient_id: str, started: bool) -> None:
        room = pairing_room(session.user.id, recipient_id)
        if started:
            event = ServerEvent.USER_TYPING
            data = {"userId": session.user.id, "name": session.user.name}
        else:
            event = ServerEvent.USER_STOP_TYPING
            data = {"userId": session.user.id}
        await self.sessions.emit(event, data, room, skip_sid=session.sid)

    async def _reply_error(self, session: Session, error: str) -> None:
        try:
            await session.send(ServerEvent.MESSAGE_ERROR, {"error": error})
        except Exception as e:
            logger.warning("error_reply_failed", sid=session.sid, error=str(e))
