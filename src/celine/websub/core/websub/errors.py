# celine/websub/core/websub/errors.py
"""
Errors raised by outbound WebSub operations (discovery and hub negotiation).

Inbound request problems are never raised; they are answered with an HTTP
status by the dispatcher.
"""
from __future__ import annotations


class WebSubError(Exception):
    """Base class for subscriber-side WebSub failures."""


class CommunicationError(WebSubError):
    """HTTP transport failure or unexpected status from a topic or hub."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        url: str | None = None,
    ) -> None:
        self.message = message
        self.status_code = status_code
        self.url = url
        super().__init__(message)

    def __str__(self) -> str:
        return self.message


class RedirectLoopError(CommunicationError):
    """A hub redirect pointed back to a URL already requested."""


class ProtocolError(WebSubError):
    """A response was received but did not carry usable WebSub data."""
