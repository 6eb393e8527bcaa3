"""Shared fixtures for the chat test suite."""

from typing import Any, Dict, List, Optional

import pytest

from nexthire_chat.api.app import create_app
from nexthire_chat.config import Settings
from nexthire_chat.domain.events import ServerEvent
from nexthire_chat.domain.models import User
from nexthire_chat.realtime.coordinator import DeliveryCoordinator
from nexthire_chat.realtime.sessions import Notifier, SessionManager
from nexthire_chat.repositories.memory import InMemoryMessageRepository, InMemoryUserDirectory
from nexthire_chat.services.auth import TokenAuthenticator
from nexthire_chat.services.chat import ChatService
from nexthire_chat.services.message_store import MessageStore


class FakeTransport:
    """Stands in for a WebSocket; records every frame sent to it."""

    def __init__(self, fail: bool = False) -> None:
        self.sent: List[Dict[str, Any]] = []
        self.fail = fail

    async def send_json(self, data: Dict[str, Any]) -> None:
        if self.fail:
            raise RuntimeError("connection closed")
        self.sent.append(data)

    def events(self, name: Optional[str] = None) -> List[Dict[str, Any]]:
        return [f for f in self.sent if name is None or f["event"] == name]


class RecordingNotifier(Notifier):
    """Notifier that records emits instead of sending them."""

    def __init__(self) -> None:
        self.emitted: List[Dict[str, Any]] = []

    async def emit(self, event: ServerEvent, data, room, skip_sid=None) -> int:
        self.emitted.append({"event": event.value, "data": data, "room": room, "skip": skip_sid})
        return 0


@pytest.fixture
def settings() -> Settings:
    return Settings(jwt_secret="test-secret", log_level="WARNING")


@pytest.fixture
def users() -> InMemoryUserDirectory:
    return InMemoryUserDirectory(
        [
            User(id="alice", name="Alice", role="jobseeker", avatar="https://cdn.test/alice.png"),
            User(id="bob", name="Bob", role="employer"),
            User(id="carol", name="Carol", role="employer"),
        ]
    )


@pytest.fixture
def repository() -> InMemoryMessageRepository:
    return InMemoryMessageRepository()


@pytest.fixture
def store(repository, users, settings) -> MessageStore:
    return MessageStore(repository, users, settings)


@pytest.fixture
def authenticator(settings, users) -> TokenAuthenticator:
    return TokenAuthenticator(settings, users)


@pytest.fixture
def sessions(authenticator) -> SessionManager:
    return SessionManager(authenticator)


@pytest.fixture
def chat(store, sessions) -> ChatService:
    return ChatService(store, sessions)


@pytest.fixture
def coordinator(sessions, chat) -> DeliveryCoordinator:
    return DeliveryCoordinator(sessions, chat)


@pytest.fixture
def app(settings, users):
    return create_app(settings, users)


@pytest.fixture
def tokens(app) -> Dict[str, str]:
    authenticator = app.state.authenticator
    return {uid: authenticator.issue_token(uid) for uid in ("alice", "bob", "carol")}


def auth(token: str) -> Dict[str, str]:
    return {"Authorization": f"Bearer {token}"}
