"""Realtime event schemas.

Frames on the wire are JSON objects ``{"event": <name>, "data": {...}}``.
Inbound frames are validated against a discriminated union keyed on
``event`` before they reach a handler.
"""

from enum import Enum
from typing import Annotated, Any, Dict, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


class ServerEvent(str, Enum):
    """Events emitted by the server."""

    RECEIVE_MESSAGE = "receive_message"
    NEW_MESSAGE_NOTIFICATION = "new_message_notification"
    USER_TYPING = "user_typing"
    USER_STOP_TYPING = "user_stop_typing"
    MESSAGES_READ = "messages_read"
    MESSAGE_ERROR = "message_error"
    JOINED_CHAT = "joined_chat"


class Payload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class RecipientPayload(Payload):
    """Payload of join_chat, typing_start and typing_stop."""

    recipient_id: str = Field(alias="recipientId", min_length=1)


class SendMessagePayload(Payload):
    """Payload of send_message and body of the REST send endpoint.

    ``recipient`` is accepted as an alias of ``recipientId``. Content is
    checked by the message store, not here, so that an empty message is a
    400 on REST rather than a schema error.
    """

    recipient_id: Optional[str] = Field(default=None, alias="recipientId")
    recipient: Optional[str] = None
    content: Optional[str] = None
    job_id: Optional[str] = Field(default=None, alias="jobId")
    client_message_id: Optional[str] = Field(default=None, alias="clientMessageId")

    @property
    def target(self) -> Optional[str]:
        return self.recipient_id or self.recipient


class MarkReadPayload(Payload):
    sender_id: str = Field(alias="senderId", min_length=1)


class JoinChat(BaseModel):
    event: Literal["join_chat"]
    data: RecipientPayload


class SendMessage(BaseModel):
    event: Literal["send_message"]
    data: SendMessagePayload


class TypingStart(BaseModel):
    event: Literal["typing_start"]
    data: RecipientPayload


class TypingStop(BaseModel):
    event: Literal["typing_stop"]
    data: RecipientPayload


class MarkMessagesRead(BaseModel):
    event: Literal["mark_messages_read"]
    data: MarkReadPayload


InboundEvent = Annotated[
    Union[JoinChat, SendMessage, TypingStart, TypingStop, MarkMessagesRead],
    Field(discriminator="event"),
]

inbound_event_adapter = TypeAdapter(InboundEvent)


def parse_event(raw: Union[str, bytes]) -> InboundEvent:
    """Validate a raw frame; raises pydantic.ValidationError on bad input."""
    return inbound_event_adapter.validate_json(raw)


def outbound(event: ServerEvent, data: Dict[str, Any]) -> Dict[str, Any]:
    return {"event": event.value, "data": data}
