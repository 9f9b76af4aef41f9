"""Byte source contract shared by every transport.

A byte source delivers a response body to a ChunkListener:

    on_open(handle)            stream is open (optional, before any chunk)
    on_chunk(handle, data)     0..N times, non-empty, in arrival order
    on_end(handle)             exactly once on graceful completion
    on_error(handle, error)    at most once, never together with on_end

``abort(handle)`` asks the source to stop; one delivery that is already
queued may still arrive, and listeners must ignore it.
"""

from __future__ import annotations

import asyncio
import itertools
from dataclasses import dataclass, field
from typing import Any, Protocol

from streamreq.errors import StreamError

# Payload is sent as query parameters for these methods, as a JSON body otherwise.
QUERY_PAYLOAD_METHODS = frozenset({"get", "delete"})

_handle_ids = itertools.count(1)


@dataclass(frozen=True)
class RequestDescriptor:
    """The resource a session streams from."""

    url: str
    method: str = "get"
    payload: Any = None
    headers: dict[str, str] = field(default_factory=dict)

    def to_httpx_kwargs(self) -> dict[str, Any]:
        """Build keyword arguments for ``httpx.AsyncClient.stream``."""
        kwargs: dict[str, Any] = {
            "method": self.method.upper(),
            "url": self.url,
        }
        if self.headers:
            kwargs["headers"] = dict(self.headers)
        if self.payload is not None:
            if self.method.lower() in QUERY_PAYLOAD_METHODS:
                kwargs["params"] = self.payload
            else:
                kwargs["json"] = self.payload
        return kwargs


@dataclass(eq=False)
class SourceHandle:
    """Identifies one delivery started by a byte source."""

    id: int = field(default_factory=lambda: next(_handle_ids))
    aborted: bool = False
    task: asyncio.Task[None] | None = None


class ChunkListener(Protocol):
    def on_open(self, handle: SourceHandle) -> None: ...

    def on_chunk(self, handle: SourceHandle, data: bytes) -> None: ...

    def on_end(self, handle: SourceHandle) -> None: ...

    def on_error(self, handle: SourceHandle, error: StreamError) -> None: ...


class ByteSource(Protocol):
    def start(self, descriptor: RequestDescriptor, listener: ChunkListener) -> SourceHandle: ...

    def abort(self, handle: SourceHandle) -> None: ...
