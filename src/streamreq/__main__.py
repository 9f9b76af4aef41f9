"""Entry point: uv run -m streamreq URL"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from collections.abc import AsyncIterator
from typing import Any

import structlog

from .client import create_stream
from .config import StreamConfig
from .logging_config import setup_logging
from .session.state_machine import SessionState
from .transport.http import HttpxByteSource
from .transport.iterable import IterableByteSource

log = structlog.get_logger()

EXIT_FAILED = 1
EXIT_CANCELLED = 130


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Decode a streaming HTTP response into JSON records")
    parser.add_argument("url", nargs="?", default="", help="URL to stream from (omit with --file)")
    parser.add_argument("--method", default="get", choices=["get", "post", "put", "patch", "delete"])
    parser.add_argument("--mode", default=None, choices=["sse", "chunked", "realtime"],
                        help="Framing mode (default: sse)")
    parser.add_argument("--delimiter", default=None, help="Record delimiter, e.g. '\\n' (escapes allowed)")
    parser.add_argument("--data", default=None, help="JSON request payload")
    parser.add_argument("--file", default=None, help="Replay a local file ('-' for stdin) instead of HTTP")
    parser.add_argument("--relay-port", type=int, default=None, help="Relay events over WebSocket on this port")
    parser.add_argument("--log-level", default=None, help="Log level (default: INFO)")
    return parser


def _unescape(value: str) -> str:
    return value.encode().decode("unicode_escape")


async def _read_file(path: str, chunk_size: int = 65536) -> AsyncIterator[bytes]:
    stream = sys.stdin.buffer if path == "-" else open(path, "rb")  # noqa: SIM115
    try:
        while True:
            chunk = await asyncio.to_thread(stream.read1, chunk_size)
            if not chunk:
                return
            yield chunk
    finally:
        if stream is not sys.stdin.buffer:
            stream.close()


def _print_record(record: Any) -> None:
    sys.stdout.write(json.dumps(record, ensure_ascii=False) + "\n")
    sys.stdout.flush()


async def run(args: argparse.Namespace, config: StreamConfig) -> int:
    payload = json.loads(args.data) if args.data else None
    source: IterableByteSource | HttpxByteSource
    if args.file:
        source = IterableByteSource(_read_file(args.file))
    else:
        source = HttpxByteSource(config=config)

    session = create_stream(
        args.url or (args.file or ""),
        payload,
        method=args.method,
        mode=args.mode,
        delimiter=_unescape(args.delimiter) if args.delimiter else None,
        on_message=_print_record,
        source=source,
        config=config,
    )

    runner = None
    if args.relay_port is not None:
        from .relay.server import serve_relay
        config.relay_port = args.relay_port
        runner = await serve_relay(session, config)

    try:
        state = await session.wait()
    except asyncio.CancelledError:
        session.cancel()
        state = SessionState.CANCELLED
    finally:
        if runner is not None:
            await runner.cleanup()
        if isinstance(source, HttpxByteSource):
            await source.aclose()

    log.info("cli_session_finished", state=state.value, records=len(session.records))

    if state == SessionState.FAILED:
        print(f"stream failed: {session.error}", file=sys.stderr)
        return EXIT_FAILED
    if state == SessionState.CANCELLED:
        return EXIT_CANCELLED
    return 0


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not args.url and not args.file:
        parser.error("a URL or --file is required")
    if args.data:
        try:
            json.loads(args.data)
        except ValueError as exc:
            parser.error(f"--data is not valid JSON: {exc}")

    config = StreamConfig()
    if args.log_level:
        config.log_level = args.log_level

    setup_logging(config.log_dir, config.log_level)

    try:
        code = asyncio.run(run(args, config))
    except KeyboardInterrupt:
        code = EXIT_CANCELLED
    sys.exit(code)


if __name__ == "__main__":
    main()
