"""Factory functions that build and start streaming sessions.

``sse`` uses blank-line framing, ``chunked`` and ``realtime`` use one record
per line. All of them must be called from a running event loop unless a
custom byte source that does not need one is supplied.
"""

from __future__ import annotations

from typing import Any

from streamreq.config import StreamConfig, StreamOptions
from streamreq.session.controller import CancelSignal, StreamSession
from streamreq.session.events import (
    CompleteCallback,
    ErrorCallback,
    MessageCallback,
    ParseErrorCallback,
    StreamHooks,
)
from streamreq.transport.http import HttpxByteSource
from streamreq.transport.source import ByteSource, RequestDescriptor


def create_stream(
    url: str,
    payload: Any = None,
    *,
    method: str = "get",
    mode: str | None = None,
    delimiter: str | None = None,
    headers: dict[str, str] | None = None,
    on_message: MessageCallback | None = None,
    on_parse_error: ParseErrorCallback | None = None,
    on_error: ErrorCallback | None = None,
    on_complete: CompleteCallback | None = None,
    source: ByteSource | None = None,
    config: StreamConfig | None = None,
    signal: CancelSignal | None = None,
) -> StreamSession:
    """Create and start a streaming session.

    Args:
        url: Target URL, absolute or relative to ``config.base_url``.
        payload: Query parameters for get/delete, JSON body otherwise.
        method: One of get, post, put, patch, delete.
        mode: ``sse``, ``chunked`` or ``realtime``; picks the default delimiter.
            Defaults to ``config.mode``.
        delimiter: Explicit record separator, overriding the mode default.
        source: Byte source to read from. Defaults to an httpx source.
        config: Client configuration. Defaults to StreamConfig().
        signal: Shared cancel signal. A session linked to a signal that has
            already fired is returned CANCELLED without contacting the source.
    """
    config = config or StreamConfig()
    options = StreamOptions(
        method=method,
        mode=mode or config.mode,
        delimiter=delimiter,
        payload=payload,
        headers=headers or {},
    )
    descriptor = RequestDescriptor(
        url=url,
        method=options.method,
        payload=options.payload,
        headers=options.headers,
    )
    hooks = StreamHooks(
        on_message=on_message,
        on_parse_error=on_parse_error,
        on_error=on_error,
        on_complete=on_complete,
    )
    session = StreamSession(
        descriptor,
        source or HttpxByteSource(config=config),
        delimiter=options.delimiter or config.delimiter_for(options.mode),
        hooks=hooks,
        max_buffer_bytes=config.max_buffer_bytes,
        max_line_bytes=config.max_line_bytes,
    )
    if signal is not None:
        signal.link(session)
        if session.cancelled:
            return session
    return session.start()


def sse(url: str, payload: Any = None, **kwargs: Any) -> StreamSession:
    """Server-Sent Events stream: records separated by a blank line."""
    kwargs.pop("delimiter", None)
    return create_stream(url, payload, mode="sse", delimiter="\n\n", **_without_mode(kwargs))


def chunked(url: str, payload: Any = None, **kwargs: Any) -> StreamSession:
    """Chunked transfer stream: one record per line unless a delimiter is given."""
    return create_stream(url, payload, mode="chunked", **_without_mode(kwargs))


def realtime(url: str, payload: Any = None, **kwargs: Any) -> StreamSession:
    """Line-delimited live feed, for dashboards and page state."""
    return create_stream(url, payload, mode="realtime", **_without_mode(kwargs))


def _without_mode(kwargs: dict[str, Any]) -> dict[str, Any]:
    kwargs.pop("mode", None)
    return kwargs
