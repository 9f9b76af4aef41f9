"""Frame → record decoding with SSE prefix stripping and raw-text fallback.

Each line of a frame becomes one record. Lines that are not valid JSON are
kept as ``{"raw": True, "message": <line>}`` so no visible text is lost.
Only ``data: `` single-line payloads are unwrapped; consecutive ``data:``
lines are not joined into one event.
"""

from __future__ import annotations

import json
from collections.abc import Iterator
from dataclasses import dataclass
from typing import Any

from streamreq.errors import FallbackUnavailable

SSE_DATA_PREFIX = "data: "


@dataclass(frozen=True)
class Record:
    """One decoded unit of the stream."""

    value: Any
    raw: bool = False


@dataclass(frozen=True)
class DecodeFailure:
    """A line that produced no record at all."""

    text: str
    error: FallbackUnavailable


def strip_sse_prefix(line: str) -> str:
    """Drop the SSE ``data: `` field prefix, if present."""
    if line.startswith(SSE_DATA_PREFIX):
        return line[len(SSE_DATA_PREFIX):].strip()
    return line


def fallback_record(line: str) -> dict[str, Any]:
    return {"raw": True, "message": line}


_UNPARSED = object()


def _reject_constant(name: str) -> Any:
    raise ValueError(f"{name} is not valid JSON")


def parse_payload(line: str) -> Any:
    """Parse a line as JSON after SSE prefix stripping, or return _UNPARSED."""
    payload = strip_sse_prefix(line)
    if not payload:
        return _UNPARSED
    try:
        return json.loads(payload, parse_constant=_reject_constant)
    except (json.JSONDecodeError, ValueError, RecursionError):
        return _UNPARSED


def decode_line(line: str) -> Any:
    """Decode one trimmed, non-empty line into a record value."""
    value = parse_payload(line)
    if value is _UNPARSED:
        return fallback_record(line)
    return value


class RecordDecoder:
    """Turns frames into records, one per non-blank line."""

    def __init__(self, max_line_bytes: int | None = None) -> None:
        self.max_line_bytes = max_line_bytes

    def decode(self, frame: bytes) -> Iterator[Record | DecodeFailure]:
        """Yield a Record or DecodeFailure for every non-blank line, in order."""
        text = frame.decode("utf-8", errors="replace")
        for line in text.split("\n"):
            line = line.strip()
            if not line:
                continue
            yield self._decode(line)

    def _decode(self, line: str) -> Record | DecodeFailure:
        value = parse_payload(line)
        if value is not _UNPARSED:
            return Record(value)

        try:
            return Record(self._build_fallback(line), raw=True)
        except FallbackUnavailable as exc:
            return DecodeFailure(line, exc)

    def _build_fallback(self, line: str) -> dict[str, Any]:
        if self.max_line_bytes is not None:
            size = len(line.encode())
            if size > self.max_line_bytes:
                raise FallbackUnavailable(
                    line, f"line is {size} bytes, limit {self.max_line_bytes}"
                )
        return fallback_record(line)
