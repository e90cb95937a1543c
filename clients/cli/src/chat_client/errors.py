"""Error taxonomy shared by the request/response and push channels."""

from __future__ import annotations


class ChatClientError(Exception):
    """Base class for every error raised by the chat client."""


class NetworkError(ChatClientError):
    """A request/response call could not complete."""

    def __init__(self, message: str, *, status: int | None = None) -> None:
        self.status = status
        super().__init__(message)


class ProtocolError(ChatClientError):
    """A response or push payload does not match the expected structure."""


class ChannelError(ChatClientError):
    """The push channel failed or was used out of order."""


class ValidationError(ChatClientError):
    """An outgoing message was rejected before reaching the channel."""


class AuthenticationError(ChatClientError):
    """Login was aborted because no identity could be obtained."""
