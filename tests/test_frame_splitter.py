"""Tests for delimiter framing."""

import pytest

from streamreq.decode.frame_splitter import FrameSplitter


class TestFeed:
    def test_single_frame(self):
        splitter = FrameSplitter(b"\n\n")
        assert splitter.feed(b'{"a":1}\n\n') == [b'{"a":1}']
        assert splitter.pending == 0

    def test_multiple_frames_in_one_chunk(self):
        splitter = FrameSplitter(b"\n\n")
        frames = splitter.feed(b'{"a":1}\n\n{"b":2}\n\n')
        assert frames == [b'{"a":1}', b'{"b":2}']

    def test_incremental_feed(self):
        splitter = FrameSplitter(b"\n\n")
        assert splitter.feed(b'{"a":1') == []
        assert splitter.feed(b"}\n") == []
        assert splitter.feed(b"\n") == [b'{"a":1}']

    def test_remainder_retained(self):
        splitter = FrameSplitter(b"\n")
        assert splitter.feed(b"one\ntw") == [b"one"]
        assert splitter.pending == 2
        assert splitter.feed(b"o\n") == [b"two"]

    def test_empty_frame_passed_through(self):
        splitter = FrameSplitter(b"\n")
        assert splitter.feed(b"a\n\nb\n") == [b"a", b"", b"b"]

    def test_str_delimiter_accepted(self):
        splitter = FrameSplitter("||")
        assert splitter.feed(b"x||y||") == [b"x", b"y"]

    def test_multibyte_delimiter_split_across_chunks(self):
        splitter = FrameSplitter(b"\r\n\r\n")
        assert splitter.feed(b"a\r\n") == []
        assert splitter.feed(b"\r\nb") == [b"a"]

    def test_utf8_character_split_across_chunks(self):
        encoded = "héllo\n".encode()
        splitter = FrameSplitter(b"\n")
        assert splitter.feed(encoded[:2]) == []
        frames = splitter.feed(encoded[2:])
        assert frames[0].decode() == "héllo"

    def test_empty_delimiter_rejected(self):
        with pytest.raises(ValueError):
            FrameSplitter(b"")

    def test_buffer_cap_reported_not_raised(self):
        splitter = FrameSplitter(b"\n", max_buffer_bytes=8)
        assert splitter.feed(b"12345678\n") == [b"12345678"]
        assert not splitter.overflowed
        assert splitter.feed(b"123456789") == []
        assert splitter.overflowed
        assert splitter.pending == 9

    def test_frames_returned_with_overflowing_remainder(self):
        splitter = FrameSplitter(b"\n\n", max_buffer_bytes=10)
        assert splitter.feed(b'{"a":1}\n\n' + b"x" * 50) == [b'{"a":1}']
        assert splitter.overflowed

    def test_no_cap_never_overflows(self):
        splitter = FrameSplitter(b"\n")
        splitter.feed(b"x" * 1000)
        assert not splitter.overflowed


class TestFlush:
    def test_flush_remainder(self):
        splitter = FrameSplitter(b"\n\n")
        splitter.feed(b'{"a":1}\n\n{"b":2}')
        assert splitter.flush() == b'{"b":2}'
        assert splitter.pending == 0

    def test_flush_whitespace_only(self):
        splitter = FrameSplitter(b"\n\n")
        splitter.feed(b'{"a":1}\n\n  \n')
        assert splitter.flush() is None

    def test_flush_empty(self):
        assert FrameSplitter(b"\n").flush() is None
