"""Chat use cases shared by the REST gateway and the realtime coordinator.

Both transports funnel message creation through ``ChatService.send_message``
so a logical send is stored once and delivered the same way regardless of
where it came from.
"""

from typing import List, Optional

import structlog

from ..domain.errors import ChatError
from ..domain.events import ServerEvent
from ..domain.models import MessageView, User, pairing_room
from ..metrics import ERRORS, MESSAGES_SENT
from ..realtime.sessions import Notifier
from .message_store import MessageStore

logger = structlog.get_logger()

NOTIFICATION_TEXT = "You have a new message"


class ChatService:
    """Persists chat actions and pushes the matching live events."""

    def __init__(self, store: MessageStore, notifier: Notifier) -> None:
        self.store = store
        self.notifier = notifier

    async def send_message(
        self,
        sender: User,
        recipient_id: Optional[str],
        content: Optional[str],
        job_id: Optional[str] = None,
        client_message_id: Optional[str] = None,
        transport: str = "rest",
    ) -> MessageView:
        """Store a message and attempt live delivery.

        A duplicate client_message_id returns the stored message without
        delivering it a second time.
        """
        try:
            message, created = await self.store.save_message(
                sender.id, recipient_id, content, job_id, client_message_id
            )
        except ChatError:
            ERRORS.labels(operation="send_message").inc()
            raise

        if created:
            MESSAGES_SENT.labels(transport=transport).inc()
            await self.deliver(message, sender)
        return message

    async def deliver(self, message: MessageView, sender: User) -> None:
        """Push a stored message to the pairing room and notify the recipient.

        Delivery is best effort; an offline recipient picks the message up on
        the next history fetch.
        """
        room = pairing_room(message.sender.id, message.recipient.id)
        try:
            reached = await self.notifier.emit(
                ServerEvent.RECEIVE_MESSAGE, message.model_dump(mode="json", by_alias=True), room
            )
            notified = await self.notifier.emit(
                ServerEvent.NEW_MESSAGE_NOTIFICATION,
                {"message": NOTIFICATION_TEXT, "sender": sender.name},
                message.recipient.id,
            )
        except Exception as e:
            ERRORS.labels(operation="deliver").inc()
            logger.warning("delivery_failed", message_id=message.id, error=str(e))
            return

        logger.info(
            "message_delivered",
            message_id=message.id,
            room=room,
            room_sessions=reached,
            recipient_sessions=notified,
        )

    async def fetch_history(
        self, reader: User, counterpart_id: str, page: int = 1, limit: int = 50
    ) -> List[MessageView]:
        """History page with read-on-view; the counterpart gets a receipt if anything changed."""
        history = await self.store.list_messages_between(reader.id, counterpart_id, page, limit)
        if history.marked_read:
            await self.send_read_receipt(reader.id, counterpart_id)
        return history.messages

    async def mark_read(self, reader_id: str, sender_id: str) -> int:
        updated = await self.store.mark_messages_read(reader_id, sender_id)
        await self.send_read_receipt(reader_id, sender_id)
        return updated

    async def mark_single_read(self, reader: User, message_id: str) -> MessageView:
        message, changed = await self.store.mark_single_read(message_id, reader.id)
        if changed:
            await self.send_read_receipt(reader.id, message.sender.id)
        return message

    async def send_read_receipt(self, reader_id: str, sender_id: str) -> None:
        """Tell every session of the original sender that the reader caught up."""
        try:
            await self.notifier.emit(
                ServerEvent.MESSAGES_READ, {"readerId": reader_id}, str(sender_id)
            )
        except Exception as e:
            ERRORS.labels(operation="read_receipt").inc()
            logger.warning(
                "read_receipt_failed", reader_id=reader_id, sender_id=sender_id, error=str(e)
            )
