"""In-memory repository implementations."""

import asyncio
from typing import Dict, List, Optional, Tuple

import structlog

from ..domain.models import ConversationGroup, Message, User, utcnow
from .base import MessageRepository, UserDirectory

logger = structlog.get_logger()


class InMemoryMessageRepository(MessageRepository):
    """Message storage kept in process memory.

    Each operation runs under a single asyncio lock so that inserts and bulk
    updates are atomic with respect to each other. Returned messages are
    copies; callers never hold a reference into the store.
    """

    def __init__(self) -> None:
        self._messages: List[Message] = []
        self._index: Dict[str, int] = {}
        self._client_ids: Dict[Tuple[str, str], str] = {}
        self._lock = asyncio.Lock()
        logger.info("message_repository_initialized")

    def _sort_key(self, message: Message) -> Tuple:
        return (message.created_at, self._index[message.id])

    async def add_message(self, message: Message) -> Tuple[Message, bool]:
        """Insert a message unless its client id was already used by the sender."""
        async with self._lock:
            if message.client_message_id:
                key = (message.sender_id, message.client_message_id)
                existing_id = self._client_ids.get(key)
                if existing_id is not None:
                    logger.info(
                        "duplicate_message_ignored",
                        message_id=existing_id,
                        client_message_id=message.client_message_id,
                    )
                    existing = self._messages[self._index[existing_id]]
                    return existing.model_copy(deep=True), False
                self._client_ids[key] = message.id

            stored = message.model_copy(deep=True)
            self._index[stored.id] = len(self._messages)
            self._messages.append(stored)
            return stored.model_copy(deep=True), True

    async def get_message(self, message_id: str) -> Optional[Message]:
        """Retrieve a message by ID."""
        async with self._lock:
            position = self._index.get(message_id)
            if position is None:
                return None
            return self._messages[position].model_copy(deep=True)

    async def find_between(
        self, user_a: str, user_b: str, limit: int = 50, offset: int = 0
    ) -> List[Message]:
        """Messages exchanged between two users, newest first."""
        async with self._lock:
            matching = [
                m for m in self._messages
                if (m.sender_id == user_a and m.recipient_id == user_b)
                or (m.sender_id == user_b and m.recipient_id == user_a)
            ]
            matching.sort(key=self._sort_key, reverse=True)
            return [m.model_copy(deep=True) for m in matching[offset : offset + limit]]

    async def mark_read(self, recipient_id: str, sender_id: str) -> int:
        """Bulk-update unread messages from sender to recipient."""
        async with self._lock:
            now = utcnow()
            updated = 0
            for message in self._messages:
                if (
                    message.recipient_id == recipient_id
                    and message.sender_id == sender_id
                    and not message.read
                ):
                    message.read = True
                    message.read_at = now
                    updated += 1
            return updated

    async def mark_one_read(self, message_id: str) -> Tuple[Optional[Message], bool]:
        """Mark a single message as read; read_at is kept if already set."""
        async with self._lock:
            position = self._index.get(message_id)
            if position is None:
                return None, False
            message = self._messages[position]
            changed = not message.read
            if changed:
                message.read = True
                message.read_at = utcnow()
            return message.model_copy(deep=True), changed

    async def group_conversations(self, user_id: str) -> List[ConversationGroup]:
        """Group the user's messages by counterpart, most recent first."""
        async with self._lock:
            involved = [
                m for m in self._messages
                if m.sender_id == user_id or m.recipient_id == user_id
            ]
            involved.sort(key=self._sort_key, reverse=True)

            groups: Dict[str, ConversationGroup] = {}
            for message in involved:
                counterpart = (
                    message.recipient_id if message.sender_id == user_id else message.sender_id
                )
                group = groups.get(counterpart)
                if group is None:
                    group = ConversationGroup(
                        counterpart_id=counterpart,
                        last_message=message.model_copy(deep=True),
                    )
                    groups[counterpart] = group
                if message.recipient_id == user_id and not message.read:
                    group.unread_count += 1

            # Insertion order follows the newest message of each group
            return list(groups.values())

    async def count_unread(self, user_id: str) -> int:
        """Count unread messages addressed to the user."""
        async with self._lock:
            return sum(
                1 for m in self._messages if m.recipient_id == user_id and not m.read
            )


class InMemoryUserDirectory(UserDirectory):
    """User directory seeded in process memory."""

    def __init__(self, users: Optional[List[User]] = None) -> None:
        self._users: Dict[str, User] = {}
        for user in users or []:
            self._users[user.id] = user

    def add_user(self, user: User) -> User:
        """Register or replace a user."""
        self._users[user.id] = user
        logger.info("user_registered", user_id=user.id, role=user.role)
        return user

    async def get_user(self, user_id: str) -> Optional[User]:
        """Retrieve a user by ID."""
        user = self._users.get(str(user_id))
        if user is None:
            logger.warning("user_not_found", user_id=str(user_id))
        return user

    async def get_users(self, user_ids: List[str]) -> List[User]:
        """Retrieve every known user among the given IDs."""
        return [self._users[uid] for uid in user_ids if uid in self._users]
