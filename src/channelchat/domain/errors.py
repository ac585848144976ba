from __future__ import annotations


class ChatError(Exception):
    """Base class for channelchat domain failures."""


class ValidationError(ChatError):
    """Request rejected before anything was persisted."""


class NotFoundError(ChatError, KeyError):
    """A referenced channel, message or image does not exist."""

    def __str__(self) -> str:
        return str(self.args[0]) if self.args else "not found"


class BackendError(ChatError):
    """A generation backend call failed (transport, auth, quota or malformed response)."""

    def __init__(self, message: str, provider: str | None = None) -> None:
        super().__init__(message)
        self.provider = provider
