"""Tests for the client factory functions."""

import asyncio

import pydantic
import pytest

from streamreq import client
from streamreq.config import StreamConfig
from streamreq.session.controller import CancelSignal
from streamreq.session.state_machine import SessionState
from streamreq.transport.iterable import IterableByteSource


class TestFactories:
    @pytest.mark.asyncio
    async def test_create_stream_defaults_to_sse_framing(self):
        received = []
        session = client.create_stream(
            "replay",
            source=IterableByteSource([b'data: {"a":1}\n\ndata: {"b":2}\n\n']),
            on_message=received.append,
        )
        assert session.delimiter == "\n\n"
        assert session.descriptor.method == "get"
        assert await session.wait() == SessionState.COMPLETED
        assert received == [{"a": 1}, {"b": 2}]

    @pytest.mark.asyncio
    async def test_sse_forces_blank_line_delimiter(self):
        session = client.sse("replay", source=IterableByteSource([b"1\n2\n\n"]), delimiter="\n")
        assert session.delimiter == "\n\n"
        await session.wait()
        assert session.records == [1, 2]

    @pytest.mark.asyncio
    async def test_chunked_uses_newline(self):
        session = client.chunked("replay", source=IterableByteSource([b"1\n2\n3"]))
        assert session.delimiter == "\n"
        await session.wait()
        assert session.records == [1, 2, 3]

    @pytest.mark.asyncio
    async def test_chunked_accepts_custom_delimiter(self):
        session = client.chunked("replay", source=IterableByteSource([b"1;2;"]), delimiter=";")
        await session.wait()
        assert session.records == [1, 2]

    @pytest.mark.asyncio
    async def test_realtime_uses_newline(self):
        session = client.realtime("replay", source=IterableByteSource([b'{"cpu":0.5}\n']))
        assert session.delimiter == "\n"
        await session.wait()
        assert session.records == [{"cpu": 0.5}]

    @pytest.mark.asyncio
    async def test_hooks_wired(self):
        completed, errors = [], []
        session = client.create_stream(
            "replay",
            source=IterableByteSource([b"1\n\n"]),
            on_complete=completed.append,
            on_error=errors.append,
        )
        await session.wait()
        assert completed == [(1,)]
        assert errors == []

    @pytest.mark.asyncio
    async def test_method_and_payload_in_descriptor(self):
        session = client.create_stream(
            "replay",
            {"topic": "chat"},
            method="POST",
            source=IterableByteSource([]),
        )
        assert session.descriptor.method == "post"
        assert session.descriptor.payload == {"topic": "chat"}
        await session.wait()

    @pytest.mark.asyncio
    async def test_config_caps_applied(self):
        session = client.chunked(
            "replay",
            source=IterableByteSource([b"123456789"]),
            config=StreamConfig(max_buffer_bytes=4),
        )
        assert await session.wait() == SessionState.FAILED

    def test_invalid_method_rejected(self):
        with pytest.raises(pydantic.ValidationError):
            client.create_stream("replay", method="head", source=IterableByteSource([]))

    def test_empty_delimiter_rejected(self):
        with pytest.raises(pydantic.ValidationError):
            client.chunked("replay", delimiter="", source=IterableByteSource([]))

    @pytest.mark.asyncio
    async def test_mode_delimiter_comes_from_config(self):
        class PipeConfig(StreamConfig):
            def delimiter_for(self, mode=None):
                return "|"

        session = client.create_stream(
            "replay", source=IterableByteSource([b"1|2|"]), config=PipeConfig(),
        )
        assert session.delimiter == "|"
        await session.wait()
        assert session.records == [1, 2]

    @pytest.mark.asyncio
    async def test_default_mode_follows_config(self):
        session = client.create_stream(
            "replay",
            source=IterableByteSource([b"1\n2\n"]),
            config=StreamConfig(mode="chunked"),
        )
        assert session.delimiter == "\n"
        await session.wait()
        assert session.records == [1, 2]


class TestCancelSignal:
    @pytest.mark.asyncio
    async def test_signal_cancels_every_linked_session(self):
        async def endless():
            yield b"1\n"
            await asyncio.sleep(10)
            yield b"2\n"

        signal = CancelSignal()
        first = client.chunked("replay", source=IterableByteSource(endless()), signal=signal)
        second = client.chunked("replay", source=IterableByteSource(endless()), signal=signal)
        await asyncio.sleep(0.05)

        signal.cancel()
        assert signal.cancelled
        assert await asyncio.wait_for(first.wait(), timeout=5) == SessionState.CANCELLED
        assert await asyncio.wait_for(second.wait(), timeout=5) == SessionState.CANCELLED
        assert first.records == [1]
        assert second.records == [1]

    @pytest.mark.asyncio
    async def test_fired_signal_skips_the_request(self):
        class RecordingSource(IterableByteSource):
            starts = 0

            def start(self, descriptor, listener):
                RecordingSource.starts += 1
                return super().start(descriptor, listener)

        signal = CancelSignal()
        signal.cancel()
        session = client.chunked("replay", source=RecordingSource([b"1\n"]), signal=signal)
        assert session.state == SessionState.CANCELLED
        assert await session.wait() == SessionState.CANCELLED
        assert RecordingSource.starts == 0
        assert session.records == []

    @pytest.mark.asyncio
    async def test_signal_does_not_touch_finished_sessions(self):
        signal = CancelSignal()
        done = client.chunked("replay", source=IterableByteSource([b"1\n"]), signal=signal)
        assert await done.wait() == SessionState.COMPLETED
        signal.cancel()
        assert done.state == SessionState.COMPLETED
        assert not done.cancelled
