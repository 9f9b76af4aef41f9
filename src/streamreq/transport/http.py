"""httpx-backed byte source: streams a response body into a ChunkListener.

Each ``start()`` schedules one asyncio task that opens the request with
``httpx.AsyncClient.stream`` and forwards ``aiter_bytes()`` chunks. It must be
called from a running event loop.
"""

from __future__ import annotations

import asyncio

import httpx
import structlog

from streamreq.config import StreamConfig
from streamreq.errors import TransportError, UpstreamStatusError
from streamreq.transport.source import ChunkListener, RequestDescriptor, SourceHandle

log = structlog.get_logger()


class HttpxByteSource:
    """Delivers an HTTP response body chunk by chunk."""

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        config: StreamConfig | None = None,
    ) -> None:
        self.config = config or StreamConfig()
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(
            base_url=self.config.base_url,
            timeout=self.config.timeout_seconds,
            follow_redirects=True,
        )

    def start(self, descriptor: RequestDescriptor, listener: ChunkListener) -> SourceHandle:
        handle = SourceHandle()
        handle.task = asyncio.get_running_loop().create_task(
            self._run(descriptor, listener, handle)
        )
        return handle

    def abort(self, handle: SourceHandle) -> None:
        if handle.aborted:
            return
        handle.aborted = True
        if handle.task is not None and not handle.task.done():
            handle.task.cancel()
        log.debug("source_aborted", handle=handle.id)

    async def aclose(self) -> None:
        """Close the underlying client if this source created it."""
        if self._owns_client:
            await self.client.aclose()

    async def _run(
        self,
        descriptor: RequestDescriptor,
        listener: ChunkListener,
        handle: SourceHandle,
    ) -> None:
        log.debug("request_sent", handle=handle.id, url=descriptor.url, method=descriptor.method)
        try:
            async with self.client.stream(**descriptor.to_httpx_kwargs()) as response:
                if response.status_code >= 400:
                    # Read error body while response is still open
                    await response.aread()
                    error_body = response.text[:500]
                    log.error(
                        "upstream_error",
                        handle=handle.id,
                        status=response.status_code,
                        body=error_body,
                    )
                    listener.on_error(handle, UpstreamStatusError(response.status_code, error_body))
                    return

                listener.on_open(handle)
                total_bytes = 0
                async for chunk in response.aiter_bytes():
                    if handle.aborted:
                        return
                    if not chunk:
                        continue
                    total_bytes += len(chunk)
                    listener.on_chunk(handle, chunk)

            if handle.aborted:
                return
            log.debug("upstream_stream_complete", handle=handle.id, total_bytes=total_bytes)
            listener.on_end(handle)
        except httpx.HTTPError as exc:
            if handle.aborted:
                return
            log.error("upstream_connection_error", handle=handle.id, error=str(exc))
            listener.on_error(handle, TransportError(f"Upstream connection failed: {exc}", exc))
        except Exception as exc:
            if handle.aborted:
                return
            log.exception("upstream_request_error", handle=handle.id, url=descriptor.url)
            listener.on_error(handle, TransportError(f"Upstream request failed: {exc}", exc))
