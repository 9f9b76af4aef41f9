"""Typed, synchronous event fan-out for a single streaming session.

Four event kinds exist, each with a fixed payload:

    message      (record)
    parse_error  (raw_text, detail)
    error        (detail)
    complete     (records)

Direct hooks run first, then subscribers in registration order.
"""

from __future__ import annotations

import enum
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import structlog

from streamreq.errors import FallbackUnavailable, StreamError

log = structlog.get_logger()

MessageCallback = Callable[[Any], None]
ParseErrorCallback = Callable[[str, FallbackUnavailable], None]
ErrorCallback = Callable[[StreamError], None]
CompleteCallback = Callable[[tuple[Any, ...]], None]


class EventKind(enum.Enum):
    MESSAGE = "message"
    PARSE_ERROR = "parse_error"
    ERROR = "error"
    COMPLETE = "complete"


@dataclass(frozen=True)
class StreamHooks:
    """Optional direct callbacks supplied when a session is created."""

    on_message: MessageCallback | None = None
    on_parse_error: ParseErrorCallback | None = None
    on_error: ErrorCallback | None = None
    on_complete: CompleteCallback | None = None

    def for_kind(self, kind: EventKind) -> Callable[..., None] | None:
        return {
            EventKind.MESSAGE: self.on_message,
            EventKind.PARSE_ERROR: self.on_parse_error,
            EventKind.ERROR: self.on_error,
            EventKind.COMPLETE: self.on_complete,
        }[kind]


class EventSink:
    """Dispatches session events to hooks and subscribers, in order."""

    def __init__(self, hooks: StreamHooks | None = None, session_id: str = "") -> None:
        self.hooks = hooks or StreamHooks()
        self.session_id = session_id
        self._listeners: dict[EventKind, list[Callable[..., None]]] = {
            kind: [] for kind in EventKind
        }

    def subscribe(self, kind: EventKind, callback: Callable[..., None]) -> Callable[[], None]:
        """Register a callback for one event kind. Returns an unsubscribe function."""
        self._listeners[kind].append(callback)

        def unsubscribe() -> None:
            try:
                self._listeners[kind].remove(callback)
            except ValueError:
                pass

        return unsubscribe

    def on_message(self, callback: MessageCallback) -> Callable[[], None]:
        return self.subscribe(EventKind.MESSAGE, callback)

    def on_parse_error(self, callback: ParseErrorCallback) -> Callable[[], None]:
        return self.subscribe(EventKind.PARSE_ERROR, callback)

    def on_error(self, callback: ErrorCallback) -> Callable[[], None]:
        return self.subscribe(EventKind.ERROR, callback)

    def on_complete(self, callback: CompleteCallback) -> Callable[[], None]:
        return self.subscribe(EventKind.COMPLETE, callback)

    def subscriber_count(self, kind: EventKind) -> int:
        return len(self._listeners[kind])

    def emit_message(self, record: Any) -> None:
        self._dispatch(EventKind.MESSAGE, record)

    def emit_parse_error(self, raw_text: str, detail: FallbackUnavailable) -> None:
        self._dispatch(EventKind.PARSE_ERROR, raw_text, detail)

    def emit_error(self, detail: StreamError) -> None:
        self._dispatch(EventKind.ERROR, detail)

    def emit_complete(self, records: tuple[Any, ...]) -> None:
        self._dispatch(EventKind.COMPLETE, records)

    def _dispatch(self, kind: EventKind, *payload: Any) -> None:
        hook = self.hooks.for_kind(kind)
        callbacks = ([hook] if hook else []) + list(self._listeners[kind])
        for callback in callbacks:
            try:
                callback(*payload)
            except Exception:
                log.exception(
                    "subscriber_error",
                    session_id=self.session_id,
                    event=kind.value,
                )
