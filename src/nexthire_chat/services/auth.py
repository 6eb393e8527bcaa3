"""Token authentication for REST callers and realtime handshakes."""

from datetime import timedelta
from typing import Optional

import jwt
import structlog

from ..config import Settings
from ..domain.errors import AuthError
from ..domain.models import User, utcnow
from ..repositories.base import UserDirectory

logger = structlog.get_logger()


class TokenAuthenticator:
    """Issues and verifies signed user tokens."""

    def __init__(self, settings: Settings, users: UserDirectory) -> None:
        self.secret = settings.jwt_secret
        self.algorithm = settings.jwt_algorithm
        self.expires = timedelta(days=settings.jwt_expires_days)
        self.users = users

    def issue_token(self, user_id: str) -> str:
        payload = {"id": str(user_id), "exp": utcnow() + self.expires}
        return jwt.encode(payload, self.secret, algorithm=self.algorithm)

    def verify_token(self, token: Optional[str]) -> str:
        """Return the user id carried by a token."""
        if not token:
            raise AuthError("Authentication token is required")
        try:
            payload = jwt.decode(token, self.secret, algorithms=[self.algorithm])
        except jwt.PyJWTError as e:
            logger.warning("token_rejected", error=str(e))
            raise AuthError("Invalid authentication token") from e

        user_id = payload.get("id")
        if not user_id:
            raise AuthError("Invalid authentication token")
        return str(user_id)

    async def authenticate(self, token: Optional[str]) -> User:
        """Resolve a token to a known user or raise AuthError."""
        user_id = self.verify_token(token)
        user = await self.users.get_user(user_id)
        if user is None:
            raise AuthError("User not found")
        return user


def bearer_token(authorization: Optional[str]) -> Optional[str]:
    """Extract the token from an ``Authorization: Bearer`` header value."""
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()
