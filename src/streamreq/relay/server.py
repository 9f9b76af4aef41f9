"""aiohttp application that exposes a running session to WebSocket viewers."""

from __future__ import annotations

import json
from typing import Any

import structlog
from aiohttp import WSMsgType, web

from streamreq.config import StreamConfig
from streamreq.relay.broadcaster import Broadcaster
from streamreq.session.controller import StreamSession

log = structlog.get_logger()


def create_relay_app(
    session: StreamSession,
    broadcaster: Broadcaster | None = None,
) -> web.Application:
    """Create the relay application for one session.

    Args:
        session: The session whose events are relayed. Viewers get a
            snapshot on connect; message events carry the record index so
            records already in the snapshot can be skipped.
        broadcaster: Optional pre-built broadcaster (for testing).
    """
    if broadcaster is None:
        broadcaster = Broadcaster()
    broadcaster.attach(session)

    app = web.Application()
    app["session"] = session
    app["broadcaster"] = broadcaster

    app.router.add_get("/ws", websocket_handler)
    app.router.add_get("/health", handle_health)

    app.on_startup.append(on_startup)
    app.on_cleanup.append(on_cleanup)
    return app


async def on_startup(app: web.Application) -> None:
    app["broadcaster"].start()
    log.info("relay_started", session_id=app["session"].session_id)


async def on_cleanup(app: web.Application) -> None:
    await app["broadcaster"].stop()
    log.info("relay_stopped")


def session_snapshot(session: StreamSession) -> dict[str, Any]:
    return {
        "session_id": session.session_id,
        "url": session.descriptor.url,
        "state": session.state.value,
        "records": len(session.records),
    }


async def handle_health(request: web.Request) -> web.Response:
    """GET /health — relay and session status."""
    session: StreamSession = request.app["session"]
    broadcaster: Broadcaster = request.app["broadcaster"]
    return web.json_response({
        "status": "ok",
        "session": session_snapshot(session),
        "viewers": broadcaster.connection_count,
    })


async def websocket_handler(request: web.Request) -> web.WebSocketResponse:
    """Stream session events to one WebSocket viewer."""
    ws = web.WebSocketResponse()
    await ws.prepare(request)

    session: StreamSession = request.app["session"]
    broadcaster: Broadcaster = request.app["broadcaster"]
    try:
        await broadcaster.join(ws, lambda: {
            "type": "initial_state",
            "session": session_snapshot(session),
            "records": list(session.records),
        })

        async for msg in ws:
            if msg.type == WSMsgType.TEXT:
                try:
                    data = json.loads(msg.data)
                    _handle_ws_message(session, data)
                except (json.JSONDecodeError, ValueError) as exc:
                    log.warning("ws_invalid_message", error=str(exc))
            elif msg.type in (WSMsgType.ERROR, WSMsgType.CLOSE):
                break
    finally:
        broadcaster.remove(ws)

    return ws


def _handle_ws_message(session: StreamSession, data: dict) -> None:
    """Handle a control message from a WebSocket viewer."""
    if not isinstance(data, dict):
        raise ValueError("control message must be a JSON object")
    msg_type = data.get("type", "")

    if msg_type == "cancel":
        log.info("relay_cancel_requested", session_id=session.session_id)
        session.cancel()


async def serve_relay(
    session: StreamSession,
    config: StreamConfig,
) -> web.AppRunner:
    """Start serving the relay in the background; caller owns ``runner.cleanup()``."""
    app = create_relay_app(session)
    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, host=config.relay_host, port=config.relay_port)
    await site.start()
    log.info("relay_listening", host=config.relay_host, port=config.relay_port)
    return runner
