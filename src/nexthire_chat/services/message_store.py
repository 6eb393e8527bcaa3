"""Message store: validation, persistence and query surface for chat messages."""

import contextlib
from typing import Dict, List, NamedTuple, Optional, Tuple

import structlog

from ..config import Settings
from ..domain.errors import ChatError, NotFoundError, StorageError, ValidationError
from ..domain.models import (
    Conversation,
    LastMessage,
    Message,
    MessageView,
    UserSummary,
)
from ..repositories.base import MessageRepository, UserDirectory

logger = structlog.get_logger()


class History(NamedTuple):
    """A page of message history, oldest first, and how many messages it marked read."""

    messages: List[MessageView]
    marked_read: int


class MessageStore:
    """Single write path and query surface over the message repository.

    Repository failures that are not already chat errors surface as
    StorageError so callers can tell client mistakes from server faults.
    """

    def __init__(
        self,
        repository: MessageRepository,
        users: UserDirectory,
        settings: Optional[Settings] = None,
    ) -> None:
        settings = settings or Settings()
        self.repository = repository
        self.users = users
        self.max_content_length = settings.max_content_length
        self.max_page_size = settings.max_page_size
        self.allow_self_messages = settings.allow_self_messages

    @contextlib.asynccontextmanager
    async def _storage(self, operation: str):
        try:
            yield
        except ChatError:
            raise
        except Exception as e:
            logger.error("storage_error", operation=operation, error=str(e))
            raise StorageError(f"Failed to {operation.replace('_', ' ')}") from e

    def _clean_content(self, content: Optional[str]) -> str:
        if content is None or not content.strip():
            raise ValidationError("Message content is required")
        text = content.strip()
        if len(text) > self.max_content_length:
            raise ValidationError(
                f"Message content cannot exceed {self.max_content_length} characters"
            )
        return text

    async def _summaries(self, user_ids: List[str]) -> Dict[str, UserSummary]:
        users = await self.users.get_users(list(dict.fromkeys(user_ids)))
        summaries = {user.id: user.summary() for user in users}
        for user_id in user_ids:
            if user_id not in summaries:
                summaries[user_id] = UserSummary(id=user_id, name="Unknown user")
        return summaries

    async def populate(self, messages: List[Message]) -> List[MessageView]:
        """Attach sender and recipient identity summaries."""
        ids: List[str] = []
        for message in messages:
            ids.extend([message.sender_id, message.recipient_id])
        summaries = await self._summaries(ids)
        return [
            MessageView(
                sender=summaries[m.sender_id],
                recipient=summaries[m.recipient_id],
                **m.model_dump(exclude={"sender_id", "recipient_id"}),
            )
            for m in messages
        ]

    async def save_message(
        self,
        sender_id: str,
        recipient_id: Optional[str],
        content: Optional[str],
        job_id: Optional[str] = None,
        client_message_id: Optional[str] = None,
    ) -> Tuple[MessageView, bool]:
        """Validate and persist a message.

        Returns the populated message and whether it was newly stored; a
        repeated client_message_id from the same sender yields the original.
        """
        if not recipient_id:
            raise ValidationError("Recipient ID is required")
        text = self._clean_content(content)
        if str(recipient_id) == str(sender_id) and not self.allow_self_messages:
            raise ValidationError("You cannot send a message to yourself")

        recipient = await self.users.get_user(str(recipient_id))
        if recipient is None:
            raise NotFoundError("Recipient not found")

        message = Message(
            sender_id=str(sender_id),
            recipient_id=recipient.id,
            content=text,
            job_id=job_id,
            client_message_id=client_message_id,
        )
        async with self._storage("save_message"):
            stored, created = await self.repository.add_message(message)

        if created:
            logger.info(
                "message_created",
                message_id=stored.id,
                sender_id=stored.sender_id,
                recipient_id=stored.recipient_id,
                content_length=len(stored.content),
            )
        views = await self.populate([stored])
        return views[0], created

    async def create_message(
        self,
        sender_id: str,
        recipient_id: Optional[str],
        content: Optional[str],
        job_id: Optional[str] = None,
    ) -> MessageView:
        view, _ = await self.save_message(sender_id, recipient_id, content, job_id)
        return view

    async def list_messages_between(
        self, reader_id: str, counterpart_id: str, page: int = 1, page_size: int = 50
    ) -> History:
        """Fetch one page of history and mark the counterpart's messages as read.

        Pages are counted from the newest message; the returned page is in
        display order (oldest to newest). Messages are read before the
        read-state update, so the page reflects the state at fetch time.
        """
        if page < 1:
            raise ValidationError("Page must be at least 1")
        if page_size < 1 or page_size > self.max_page_size:
            raise ValidationError(f"Limit must be between 1 and {self.max_page_size}")

        async with self._storage("list_messages"):
            newest_first = await self.repository.find_between(
                reader_id, counterpart_id, limit=page_size, offset=(page - 1) * page_size
            )
            marked = await self.repository.mark_read(reader_id, counterpart_id)

        newest_first.reverse()
        return History(messages=await self.populate(newest_first), marked_read=marked)

    async def mark_messages_read(self, reader_id: str, counterpart_id: str) -> int:
        """Mark everything the counterpart sent to the reader as read."""
        async with self._storage("mark_messages_read"):
            updated = await self.repository.mark_read(reader_id, counterpart_id)
        if updated:
            logger.info(
                "messages_marked_read",
                reader_id=reader_id,
                counterpart_id=counterpart_id,
                count=updated,
            )
        return updated

    async def mark_single_read(
        self, message_id: str, reader_id: Optional[str] = None
    ) -> Tuple[MessageView, bool]:
        """Mark one message as read.

        When reader_id is given, only the message's recipient may mark it.
        Returns the message and whether its read state changed.
        """
        async with self._storage("mark_single_read"):
            current = await self.repository.get_message(message_id)
            if current is None or (reader_id is not None and current.recipient_id != reader_id):
                raise NotFoundError("Message not found")
            updated, changed = await self.repository.mark_one_read(message_id)
        if updated is None:
            raise NotFoundError("Message not found")
        views = await self.populate([updated])
        return views[0], changed

    async def get_conversations(self, user_id: str) -> List[Conversation]:
        """Per-counterpart summaries ordered by most recent message."""
        async with self._storage("get_conversations"):
            groups = await self.repository.group_conversations(user_id)

        users = await self.users.get_users([g.counterpart_id for g in groups])
        known = {user.id: user for user in users}
        conversations = []
        for group in groups:
            counterpart = known.get(group.counterpart_id)
            if counterpart is None:
                # Counterparts that no longer exist are left out
                continue
            last = group.last_message
            conversations.append(
                Conversation(
                    user=counterpart.summary(),
                    last_message=LastMessage(
                        id=last.id,
                        content=last.content,
                        sender_id=last.sender_id,
                        created_at=last.created_at,
                    ),
                    unread_count=group.unread_count,
                )
            )
        conversations.sort(key=lambda c: c.last_message.created_at, reverse=True)
        return conversations

    async def count_unread(self, user_id: str) -> int:
        async with self._storage("count_unread"):
            return await self.repository.count_unread(user_id)
