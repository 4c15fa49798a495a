"""Error taxonomy for the chat core.

Every error carries the message that is sent back to the client verbatim.
"""
from __future__ import annotations


class ChatError(Exception):
    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(ChatError):
    """Input is empty or out of bounds after sanitization."""


class AuthorizationError(ChatError):
    """Caller lacks admin rights or supplied a wrong admin password."""


class NotFoundError(ChatError):
    """A referenced user or room does not exist."""


class PersistenceError(ChatError):
    """The storage layer failed; nothing was applied to live state."""


__all__ = [
    "ChatError",
    "ValidationError",
    "AuthorizationError",
    "NotFoundError",
    "PersistenceError",
]
