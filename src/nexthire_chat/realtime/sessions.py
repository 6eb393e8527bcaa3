"""Realtime session registry and room-based fan-out.

A session is one live connection bound to an authenticated user. Every
session joins the room named after its user's id on open, so personal
events reach all of a user's devices. Pairing rooms are joined on demand.
All bookkeeping runs on the event loop without awaits, so no locking is
needed; only sends suspend.
"""

import asyncio
from abc import ABC, abstractmethod
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set
from uuid import uuid4

import structlog

from ..domain.events import ServerEvent, outbound
from ..domain.models import User
from ..metrics import ACTIVE_SESSIONS
from ..services.auth import TokenAuthenticator

logger = structlog.get_logger()


class Notifier(ABC):
    """Capability to push events to rooms of live sessions."""

    @abstractmethod
    async def emit(
        self,
        event: ServerEvent,
        data: Dict[str, Any],
        room: str,
        skip_sid: Optional[str] = None,
    ) -> int:
        """Send an event to every session in a room; returns sessions reached."""
        pass


@dataclass
class Session:
    """One live connection. ``transport`` needs an async ``send_json``."""

    user: User
    transport: Any
    sid: str = field(default_factory=lambda: uuid4().hex)
    rooms: Set[str] = field(default_factory=set)

    async def send(self, event: ServerEvent, data: Dict[str, Any]) -> None:
        await self.transport.send_json(outbound(event, data))


class SessionManager(Notifier):
    """Binds connections to users and tracks room membership."""

    def __init__(self, authenticator: TokenAuthenticator) -> None:
        self.authenticator = authenticator
        self._sessions: Dict[str, Session] = {}
        self._rooms: Dict[str, Set[str]] = defaultdict(set)

    async def authenticate(self, token: Optional[str]) -> User:
        """Resolve a handshake token to a user; raises AuthError."""
        return await self.authenticator.authenticate(token)

    def open(self, transport: Any, user: User) -> Session:
        """Register an authenticated connection and join its personal room."""
        session = Session(user=user, transport=transport)
        self._sessions[session.sid] = session
        self.join(session, user.id)
        ACTIVE_SESSIONS.inc()
        logger.info("session_opened", sid=session.sid, user_id=user.id)
        return session

    def join(self, session: Session, room: str) -> bool:
        """Add the session to a room; returns False if it was already a member."""
        if room in session.rooms:
            return False
        session.rooms.add(room)
        self._rooms[room].add(session.sid)
        logger.debug("room_joined", sid=session.sid, room=room)
        return True

    def close(self, session: Session) -> None:
        """Release the session's rooms. Safe to call more than once."""
        if self._sessions.pop(session.sid, None) is None:
            return
        for room in session.rooms:
            members = self._rooms.get(room)
            if members is None:
                continue
            members.discard(session.sid)
            if not members:
                del self._rooms[room]
        session.rooms.clear()
        ACTIVE_SESSIONS.dec()
        logger.info("session_closed", sid=session.sid, user_id=session.user.id)

    def sessions_in(self, room: str) -> List[Session]:
        return [self._sessions[sid] for sid in self._rooms.get(room, ()) if sid in self._sessions]

    def user_sessions(self, user_id: str) -> List[Session]:
        return self.sessions_in(user_id)

    def is_online(self, user_id: str) -> bool:
        return bool(self._rooms.get(user_id))

    async def emit(
        self,
        event: ServerEvent,
        data: Dict[str, Any],
        room: str,
        skip_sid: Optional[str] = None,
    ) -> int:
        """Send to every session in the room concurrently.

        Sessions whose transport fails are dropped; the failure does not
        affect delivery to the others.
        """
        targets = [s for s in self.sessions_in(room) if s.sid != skip_sid]
        if not targets:
            return 0

        results = await asyncio.gather(
            *(s.send(event, data) for s in targets), return_exceptions=True
        )
        delivered = 0
        for session, result in zip(targets, results):
            if isinstance(result, Exception):
                logger.warning(
                    "emit_failed",
                    sid=session.sid,
                    event_name=event.value,
                    room=room,
                    error=str(result),
                )
                self.close(session)
            else:
                delivered += 1
        return delivered
