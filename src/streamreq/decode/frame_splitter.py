"""Incremental delimiter framing over a raw byte stream.

Bytes are buffered as they arrive and cut into frames at every occurrence of
the delimiter. Whatever follows the last delimiter stays buffered until more
bytes arrive or the stream ends. The cap on that remainder is reported
through ``overflowed`` rather than raised, so frames completed by the same
chunk are still returned to the caller.
"""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class FrameSplitter:
    """Accumulates chunks and yields complete delimiter-bound frames."""

    delimiter: bytes | str = b"\n\n"
    max_buffer_bytes: int | None = None
    _buffer: bytearray = field(default_factory=bytearray)

    def __post_init__(self) -> None:
        if isinstance(self.delimiter, str):
            self.delimiter = self.delimiter.encode()
        if not self.delimiter:
            raise ValueError("delimiter must not be empty")

    @property
    def pending(self) -> int:
        """Number of buffered bytes not yet resolved into a frame."""
        return len(self._buffer)

    @property
    def overflowed(self) -> bool:
        """Whether the unresolved remainder is over ``max_buffer_bytes``."""
        return self.max_buffer_bytes is not None and len(self._buffer) > self.max_buffer_bytes

    def feed(self, chunk: bytes) -> list[bytes]:
        """Feed a chunk of bytes, return every frame it completes."""
        self._buffer += chunk
        frames: list[bytes] = []

        start = 0
        while True:
            index = self._buffer.find(self.delimiter, start)
            if index == -1:
                break
            frames.append(bytes(self._buffer[start:index]))
            start = index + len(self.delimiter)

        if start:
            del self._buffer[:start]

        return frames

    def flush(self) -> bytes | None:
        """Return the trailing remainder as a final frame, if it has content."""
        remainder = bytes(self._buffer)
        self._buffer.clear()
        if not remainder.strip():
            return None
        return remainder
