"""Domain models for the chat subsystem."""

from datetime import datetime, timezone
from typing import Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def pairing_room(user_a: str, user_b: str) -> str:
    """Canonical room id shared by two participants, independent of call order."""
    return "_".join(sorted([str(user_a), str(user_b)]))


class User(BaseModel):
    """User record as exposed by the identity directory."""

    id: str
    name: str
    role: str = "jobseeker"  # "jobseeker", "employer" or "admin"
    avatar: Optional[str] = None

    def summary(self) -> "UserSummary":
        return UserSummary(id=self.id, name=self.name, role=self.role, avatar=self.avatar)


class WireModel(BaseModel):
    """Base for models sent to clients; serialized with camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class UserSummary(WireModel):
    """Identity fields embedded in messages and conversations."""

    id: str
    name: str
    role: Optional[str] = None
    avatar: Optional[str] = None


class Message(BaseModel):
    """Stored chat message."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    sender_id: str
    recipient_id: str
    content: str
    job_id: Optional[str] = None
    client_message_id: Optional[str] = None
    read: bool = False
    read_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utcnow)


class MessageView(WireModel):
    """Message with sender and recipient identities populated."""

    id: str
    sender: UserSummary
    recipient: UserSummary
    content: str
    job_id: Optional[str] = None
    client_message_id: Optional[str] = None
    read: bool
    read_at: Optional[datetime] = None
    created_at: datetime


class LastMessage(WireModel):
    """Most recent message of a conversation."""

    id: str
    content: str
    sender_id: str
    created_at: datetime


class Conversation(WireModel):
    """Per-counterpart summary derived from stored messages."""

    user: UserSummary
    last_message: LastMessage
    unread_count: int = 0


class ConversationGroup(BaseModel):
    """Grouped repository result before counterpart identities are joined."""

    counterpart_id: str
    last_message: Message
    unread_count: int = 0
