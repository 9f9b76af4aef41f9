"""Streaming session controller — drives one request from connect to a terminal state.

Chunks flow through FrameSplitter → RecordDecoder → records → EventSink
inside the byte source's callback, one chunk at a time. Cancellation is
cooperative: ``cancel()`` moves the session to CANCELLED and asks the source
to abort, and the state is checked before every chunk, frame and line.
"""

from __future__ import annotations

import asyncio
import itertools
import weakref
from collections.abc import Iterator, Sequence
from typing import Any, overload

import structlog

from streamreq.decode.frame_splitter import FrameSplitter
from streamreq.decode.record_decoder import DecodeFailure, RecordDecoder
from streamreq.errors import BufferOverflowError, StreamError, TransportError
from streamreq.session.events import EventSink, StreamHooks
from streamreq.session.state_machine import SessionState, transition
from streamreq.transport.source import ByteSource, RequestDescriptor, SourceHandle

log = structlog.get_logger()

_session_ids = itertools.count(1)


class RecordView(Sequence[Any]):
    """Live, read-only view over a session's decoded records."""

    def __init__(self, records: list[Any]) -> None:
        self._records = records

    @overload
    def __getitem__(self, index: int) -> Any: ...

    @overload
    def __getitem__(self, index: slice) -> list[Any]: ...

    def __getitem__(self, index: int | slice) -> Any:
        return self._records[index]

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[Any]:
        return iter(self._records)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, RecordView):
            return self._records == other._records
        if isinstance(other, (list, tuple)):
            return self._records == list(other)
        return NotImplemented

    def __repr__(self) -> str:
        return f"RecordView({self._records!r})"


class StreamSession:
    """Owns the buffer, records and lifecycle of one streaming request."""

    def __init__(
        self,
        descriptor: RequestDescriptor,
        source: ByteSource,
        delimiter: str = "\n\n",
        hooks: StreamHooks | None = None,
        max_buffer_bytes: int | None = None,
        max_line_bytes: int | None = None,
    ) -> None:
        self.descriptor = descriptor
        self.source = source
        self.delimiter = delimiter
        self.session_id = f"s{next(_session_ids)}"

        self.events = EventSink(hooks, session_id=self.session_id)
        self._splitter = FrameSplitter(delimiter.encode(), max_buffer_bytes=max_buffer_bytes)
        self._decoder = RecordDecoder(max_line_bytes=max_line_bytes)
        self._records: list[Any] = []
        self._view = RecordView(self._records)

        self.state = SessionState.IDLE
        self.cancelled = False
        self.error: StreamError | None = None
        self._handle: SourceHandle | None = None
        self._done = asyncio.Event()

    @property
    def records(self) -> RecordView:
        """Everything decoded so far, in stream order."""
        return self._view

    @property
    def is_terminal(self) -> bool:
        return self.state.is_terminal

    def start(self) -> StreamSession:
        """Begin delivery from the byte source."""
        self.state = transition(self.state, SessionState.CONNECTING, self.session_id, "start")
        log.debug(
            "session_started",
            session_id=self.session_id,
            url=self.descriptor.url,
            method=self.descriptor.method,
        )
        try:
            handle = self.source.start(self.descriptor, self)
        except Exception as exc:
            if not self.is_terminal:
                self._fail(TransportError(f"Byte source failed to start: {exc}", exc), "transport_error")
            raise
        # A source that signals synchronously has already bound its handle.
        if self._handle is None:
            self._handle = handle
        if self.cancelled and not self._handle.aborted:
            self._abort_source()
        return self

    def cancel(self) -> None:
        """Stop the session. Safe to call repeatedly and after termination."""
        if self.is_terminal:
            return
        self.cancelled = True
        self._enter(SessionState.CANCELLED, "cancel")
        self._abort_source()

    async def wait(self) -> SessionState:
        """Wait until the session reaches a terminal state and return it."""
        await self._done.wait()
        return self.state

    # -- ChunkListener --------------------------------------------------------

    def on_open(self, handle: SourceHandle) -> None:
        if not self._accepts(handle, "open"):
            return
        if self.state == SessionState.CONNECTING:
            self._enter(SessionState.STREAMING, "open")

    def on_chunk(self, handle: SourceHandle, data: bytes) -> None:
        if not self._accepts(handle, "chunk"):
            return
        if self.state == SessionState.CONNECTING:
            self._enter(SessionState.STREAMING, "first_chunk")

        frames = self._splitter.feed(data)
        log.debug(
            "chunk_received",
            session_id=self.session_id,
            bytes=len(data),
            frames=len(frames),
            pending=self._splitter.pending,
        )
        for frame in frames:
            if self.is_terminal:
                return
            self._process_frame(frame)

        # Frames completed by this chunk are decoded before the cap is enforced.
        if not self.is_terminal and self._splitter.overflowed:
            self._fail(
                BufferOverflowError(self._splitter.pending, self._splitter.max_buffer_bytes),
                "decode_failure",
            )

    def on_end(self, handle: SourceHandle) -> None:
        if not self._accepts(handle, "end"):
            return
        if self.state == SessionState.CONNECTING:
            self._enter(SessionState.STREAMING, "open")

        final = self._splitter.flush()
        if final is not None:
            self._process_frame(final)
        if self.is_terminal:
            return

        self._enter(SessionState.COMPLETED, "end_of_stream")
        log.info(
            "session_complete",
            session_id=self.session_id,
            records=len(self._records),
        )
        self.events.emit_complete(tuple(self._records))

    def on_error(self, handle: SourceHandle, error: StreamError) -> None:
        if not self._accepts(handle, "error"):
            return
        self._fail(error, "transport_error")

    # -- internals ------------------------------------------------------------

    def _accepts(self, handle: SourceHandle, signal: str) -> bool:
        """Whether a source signal should be processed."""
        if self._handle is not None and handle is not self._handle:
            log.debug(
                "stale_signal_ignored",
                session_id=self.session_id,
                signal=signal,
                handle=handle.id,
            )
            return False
        if self.is_terminal or self.state == SessionState.IDLE:
            log.debug(
                "signal_ignored",
                session_id=self.session_id,
                signal=signal,
                state=self.state.value,
            )
            return False
        if self._handle is None:
            self._handle = handle
        return True

    def _process_frame(self, frame: bytes) -> None:
        for result in self._decoder.decode(frame):
            if self.is_terminal:
                return
            if isinstance(result, DecodeFailure):
                log.warning(
                    "record_parse_error",
                    session_id=self.session_id,
                    error=str(result.error),
                )
                self.events.emit_parse_error(result.text, result.error)
                continue
            self._records.append(result.value)
            self.events.emit_message(result.value)

    def _fail(self, error: StreamError, trigger: str) -> None:
        self.error = error
        self._enter(SessionState.FAILED, trigger)
        log.error(
            "session_failed",
            session_id=self.session_id,
            error=str(error),
            error_type=type(error).__name__,
            records=len(self._records),
        )
        self.events.emit_error(error)
        if trigger != "transport_error":
            self._abort_source()

    def _enter(self, target: SessionState, trigger: str) -> None:
        self.state = transition(self.state, target, self.session_id, trigger)
        if target.is_terminal:
            self._done.set()

    def _abort_source(self) -> None:
        if self._handle is None:
            return
        try:
            self.source.abort(self._handle)
        except Exception:
            log.exception("source_abort_failed", session_id=self.session_id)


class CancelSignal:
    """Cancels every session linked to it at once.

    A session linked after the signal has fired is cancelled on the spot.
    """

    def __init__(self) -> None:
        self.cancelled = False
        self._sessions: weakref.WeakSet[StreamSession] = weakref.WeakSet()

    def link(self, session: StreamSession) -> None:
        if self.cancelled:
            session.cancel()
            return
        self._sessions.add(session)

    def cancel(self) -> None:
        if self.cancelled:
            return
        self.cancelled = True
        sessions = list(self._sessions)
        self._sessions.clear()
        log.info("cancel_signal_fired", sessions=len(sessions))
        for session in sessions:
            session.cancel()
