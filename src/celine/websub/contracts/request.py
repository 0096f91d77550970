# celine/websub/contracts/request.py
"""
Framework-neutral inbound request/response types.

The web layer (FastAPI, or anything else that routes ``<callback-base>/<id>``)
turns an HTTP request into an ``InboundRequest`` and writes back the
``CallbackResponse`` produced by the subscriber.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import BinaryIO, Mapping, Protocol, Sequence, runtime_checkable
from urllib.parse import parse_qs, urlsplit


@runtime_checkable
class InboundRequest(Protocol):
    """What the dispatcher needs from an HTTP request."""

    @property
    def method(self) -> str: ...

    @property
    def callback_id(self) -> str: ...

    @property
    def headers(self) -> Mapping[str, str]: ...

    def get_param(self, name: str) -> str | None:
        """Return the parameter value if it occurs exactly once, else None."""
        ...

    def read_body(self) -> bytes: ...


@dataclass
class CallbackRequest:
    """Plain ``InboundRequest`` implementation.

    ``body`` is either the raw bytes or a binary stream read on demand.
    """

    method: str
    callback_id: str
    params: Mapping[str, Sequence[str]] = field(default_factory=dict)
    headers: Mapping[str, str] = field(default_factory=dict)
    body: bytes | BinaryIO = b""

    @classmethod
    def from_url(
        cls,
        method: str,
        url: str,
        *,
        headers: Mapping[str, str] | None = None,
        body: bytes | BinaryIO = b"",
    ) -> "CallbackRequest":
        """Build a request from a full or path-only URL.

        The callback id is the last path segment.
        """
        parts = urlsplit(url)
        return cls(
            method=method,
            callback_id=parts.path.rsplit("/", 1)[-1],
            params=parse_qs(parts.query, keep_blank_values=True),
            headers=dict(headers or {}),
            body=body,
        )

    def get_param(self, name: str) -> str | None:
        values = self.params.get(name) or []
        if len(values) != 1:
            return None
        return values[0]

    def read_body(self) -> bytes:
        if isinstance(self.body, (bytes, bytearray)):
            return bytes(self.body)
        return self.body.read()


@dataclass(frozen=True)
class CallbackResponse:
    """HTTP-shaped result of handling an inbound request."""

    status_code: int
    body: str = ""
    media_type: str = "text/plain"

    @classmethod
    def ok(cls, body: str = "") -> "CallbackResponse":
        return cls(status_code=200, body=body)

    @classmethod
    def error(cls, status_code: int, message: str) -> "CallbackResponse":
        return cls(status_code=status_code, body=message)


@dataclass(frozen=True)
class Notification:
    """Content delivered by a hub for a confirmed subscription."""

    callback_id: str
    body: bytes
    headers: Mapping[str, str]
    received_at: datetime
    content_type: str | None = None
