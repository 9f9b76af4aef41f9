"""Exception types raised and reported by streaming sessions."""

from __future__ import annotations


class StreamError(Exception):
    """Base class for every error a session can report."""


class TransportError(StreamError):
    """The byte source failed before the stream ended normally."""

    def __init__(self, message: str, cause: BaseException | None = None) -> None:
        self.cause = cause
        super().__init__(message)


class UpstreamStatusError(TransportError):
    """The upstream answered with a non-success HTTP status."""

    def __init__(self, status: int, body: str = "") -> None:
        self.status = status
        self.body = body
        super().__init__(f"Upstream returned HTTP {status}")


class BufferOverflowError(StreamError):
    """Unresolved stream bytes grew past the configured cap."""

    def __init__(self, size: int, limit: int) -> None:
        self.size = size
        self.limit = limit
        super().__init__(f"Stream buffer overflow: {size} bytes (limit {limit})")


class FallbackUnavailable(StreamError):
    """A line could neither be parsed nor wrapped as a raw-text record."""

    def __init__(self, text: str, reason: str) -> None:
        self.text = text
        self.reason = reason
        super().__init__(f"Failed to parse stream data: {text[:100]}... ({reason})")
