"""Exception hierarchy for the chat core."""

from typing import Optional


class ChatError(Exception):
    """Base class for every error raised by the chat core."""


class StoreError(ChatError):
    """The persistence collaborator was unreachable or returned a fault."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class ResolutionFailed(ChatError):
    """A room could not be found or created."""

    user_message = "Failed to start chat"


class ValidationFailed(ChatError, ValueError):
    """Input was rejected before any network call (empty content, missing identity)."""


class HistoryUnavailable(ChatError):
    """Message history could not be fetched."""


class DeliveryUncertain(ChatError):
    """The live transport is not joined; sends cannot be confirmed."""

    user_message = "Connection lost - messages may not be delivered"


class ReadMarkFailed(ChatError):
    """Marking messages as read failed. Logged, never surfaced."""


class TransportError(ChatError):
    """The live transport failed to connect, emit or stay connected."""
