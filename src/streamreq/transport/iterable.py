"""Byte source that replays an in-memory or async iterable of chunks.

Used for local files, stdin and test fixtures. Delivery runs in an asyncio
task and yields to the event loop between chunks, so a listener can cancel
mid-stream exactly as it would against a live connection.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterable, AsyncIterator, Iterable

import structlog

from streamreq.errors import TransportError
from streamreq.transport.source import ChunkListener, RequestDescriptor, SourceHandle

log = structlog.get_logger()

Chunks = Iterable[bytes | str] | AsyncIterable[bytes | str]


class IterableByteSource:
    """Replays a fixed sequence of chunks as a response body."""

    def __init__(self, chunks: Chunks) -> None:
        self.chunks = chunks

    def start(self, descriptor: RequestDescriptor, listener: ChunkListener) -> SourceHandle:
        handle = SourceHandle()
        handle.task = asyncio.get_running_loop().create_task(self._run(listener, handle))
        return handle

    def abort(self, handle: SourceHandle) -> None:
        handle.aborted = True
        if handle.task is not None and not handle.task.done():
            handle.task.cancel()

    async def _run(self, listener: ChunkListener, handle: SourceHandle) -> None:
        listener.on_open(handle)
        try:
            async for chunk in self._iterate():
                if handle.aborted:
                    return
                if isinstance(chunk, str):
                    chunk = chunk.encode()
                if chunk:
                    listener.on_chunk(handle, chunk)
                await asyncio.sleep(0)
        except OSError as exc:
            log.error("replay_read_error", handle=handle.id, error=str(exc))
            listener.on_error(handle, TransportError(f"Read failed: {exc}", exc))
            return
        except Exception as exc:
            if handle.aborted:
                return
            log.exception("replay_source_error", handle=handle.id)
            listener.on_error(handle, TransportError(f"Chunk source failed: {exc}", exc))
            return

        if not handle.aborted:
            listener.on_end(handle)

    async def _iterate(self) -> AsyncIterator[bytes | str]:
        if isinstance(self.chunks, AsyncIterable):
            async for chunk in self.chunks:
                yield chunk
        else:
            for chunk in self.chunks:
                yield chunk
