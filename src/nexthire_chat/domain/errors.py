"""Exceptions raised by the chat subsystem."""


class ChatError(Exception):
    """Base class for chat errors."""

    status_code = 500


class ValidationError(ChatError):
    """Raised when message input is empty, oversized or otherwise rejected."""

    status_code = 400


class NotFoundError(ChatError):
    """Raised when a recipient or message does not exist."""

    status_code = 404


class AuthError(ChatError):
    """Raised when a credential is missing or invalid."""

    status_code = 401


class StorageError(ChatError):
    """Raised when the persistence layer fails."""

    status_code = 500
