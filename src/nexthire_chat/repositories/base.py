"""Base repository interfaces."""

from abc import ABC, abstractmethod
from typing import List, Optional, Tuple

from ..domain.models import ConversationGroup, Message, User


class MessageRepository(ABC):
    """Abstract base class for message storage.

    Every method is a single atomic operation against the store.
    """

    @abstractmethod
    async def add_message(self, message: Message) -> Tuple[Message, bool]:
        """Insert a message.

        Returns the stored message and whether it was newly created. A message
        whose (sender, client_message_id) pair is already stored is not
        inserted again; the existing one is returned instead.
        """
        pass

    @abstractmethod
    async def get_message(self, message_id: str) -> Optional[Message]:
        """Retrieve a message by ID."""
        pass

    @abstractmethod
    async def find_between(
        self, user_a: str, user_b: str, limit: int = 50, offset: int = 0
    ) -> List[Message]:
        """Messages exchanged between two users, newest first."""
        pass

    @abstractmethod
    async def mark_read(self, recipient_id: str, sender_id: str) -> int:
        """Mark every unread message from sender to recipient as read.

        Returns the number of messages that changed state.
        """
        pass

    @abstractmethod
    async def mark_one_read(self, message_id: str) -> Tuple[Optional[Message], bool]:
        """Mark a single message as read.

        Returns the message (None if it does not exist) and whether this call
        changed it from unread to read.
        """
        pass

    @abstractmethod
    async def group_conversations(self, user_id: str) -> List[ConversationGroup]:
        """Group the user's messages by counterpart, most recent first."""
        pass

    @abstractmethod
    async def count_unread(self, user_id: str) -> int:
        """Count unread messages addressed to the user."""
        pass


class UserDirectory(ABC):
    """Lookup of user identities owned by the rest of the application."""

    @abstractmethod
    async def get_user(self, user_id: str) -> Optional[User]:
        """Retrieve a user by ID."""
        pass

    @abstractmethod
    async def get_users(self, user_ids: List[str]) -> List[User]:
        """Retrieve every known user among the given IDs."""
        pass
