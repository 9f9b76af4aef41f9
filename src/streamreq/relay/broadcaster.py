"""WebSocket broadcaster that relays session events to live viewers.

Session callbacks are synchronous, so events are queued and a single pump
task writes them out. Viewers therefore see events in sink order.
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Callable
from typing import Any

import structlog
from aiohttp import web

from streamreq.errors import FallbackUnavailable, StreamError, UpstreamStatusError
from streamreq.session.controller import StreamSession

log = structlog.get_logger()


def error_payload(error: StreamError) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "type": "error",
        "error_type": type(error).__name__,
        "message": str(error),
    }
    if isinstance(error, UpstreamStatusError):
        payload["status"] = error.status
        payload["body"] = error.body[:1000]
    return payload


class Broadcaster:
    """Manages WebSocket connections and relays session events in order."""

    def __init__(self) -> None:
        self._connections: set[web.WebSocketResponse] = set()
        self._queue: asyncio.Queue[dict[str, Any] | None] = asyncio.Queue()
        self._pump: asyncio.Task[None] | None = None
        # Held while a viewer joins so its initial state precedes live events.
        self._lock = asyncio.Lock()

    def add(self, ws: web.WebSocketResponse) -> None:
        self._connections.add(ws)
        log.debug("ws_client_connected", total=len(self._connections))

    async def join(self, ws: web.WebSocketResponse, snapshot: Callable[[], dict[str, Any]]) -> None:
        """Send a viewer its initial state, then start relaying live events to it."""
        async with self._lock:
            await ws.send_str(json.dumps(snapshot()))
            self.add(ws)

    def remove(self, ws: web.WebSocketResponse) -> None:
        self._connections.discard(ws)
        log.debug("ws_client_disconnected", total=len(self._connections))

    def attach(self, session: StreamSession) -> None:
        """Subscribe to every event kind of a session."""
        def on_message(record: Any) -> None:
            # Records are appended before their message event fires.
            self.publish({"type": "message", "index": len(session.records) - 1, "record": record})

        session.events.on_message(on_message)
        session.events.on_parse_error(self._on_parse_error)
        session.events.on_error(self._on_error)
        session.events.on_complete(self._on_complete)

    def publish(self, data: dict[str, Any]) -> None:
        """Queue a JSON message for all connected clients."""
        self._queue.put_nowait(data)

    def start(self) -> None:
        if self._pump is None:
            self._pump = asyncio.get_running_loop().create_task(self._run())

    async def stop(self) -> None:
        """Drain queued events, then stop the pump task."""
        if self._pump is None:
            return
        self._queue.put_nowait(None)
        await self._pump
        self._pump = None

    async def broadcast(self, data: dict[str, Any]) -> None:
        """Send a JSON message to all connected WebSocket clients."""
        if not self._connections:
            return

        message = json.dumps(data)
        dead: list[web.WebSocketResponse] = []

        for ws in self._connections:
            try:
                await ws.send_str(message)
            except (ConnectionResetError, RuntimeError):
                dead.append(ws)

        for ws in dead:
            self._connections.discard(ws)

    async def _run(self) -> None:
        while True:
            data = await self._queue.get()
            if data is None:
                return
            async with self._lock:
                await self.broadcast(data)

    def _on_parse_error(self, raw_text: str, detail: FallbackUnavailable) -> None:
        self.publish({"type": "parse_error", "text": raw_text[:1000], "reason": detail.reason})

    def _on_error(self, detail: StreamError) -> None:
        self.publish(error_payload(detail))

    def _on_complete(self, records: tuple[Any, ...]) -> None:
        self.publish({"type": "complete", "count": len(records)})

    @property
    def connection_count(self) -> int:
        return len(self._connections)
