"""Tests for frame → record decoding."""

from streamreq.decode.record_decoder import (
    DecodeFailure,
    Record,
    RecordDecoder,
    decode_line,
    strip_sse_prefix,
)


def _values(results):
    return [r.value for r in results]


class TestDecodeLine:
    def test_json_object(self):
        assert decode_line('{"a": 1}') == {"a": 1}

    def test_json_scalar_and_array(self):
        assert decode_line("42") == 42
        assert decode_line("[1, 2]") == [1, 2]
        assert decode_line('"text"') == "text"

    def test_sse_prefix_stripped(self):
        assert decode_line('data: {"x":5}') == {"x": 5}

    def test_fallback_keeps_original_line(self):
        assert decode_line("hello world") == {"raw": True, "message": "hello world"}

    def test_fallback_keeps_prefix_when_payload_invalid(self):
        assert decode_line("data: not json") == {"raw": True, "message": "data: not json"}

    def test_empty_data_field_is_fallback(self):
        assert decode_line("data: ") == {"raw": True, "message": "data: "}

    def test_prefix_requires_space(self):
        assert strip_sse_prefix("data:{}") == "data:{}"
        assert decode_line("data:{}") == {"raw": True, "message": "data:{}"}

    def test_deeply_nested_is_fallback(self):
        line = "[" * 100_000 + "]" * 100_000
        assert decode_line(line) == {"raw": True, "message": line}

    def test_non_json_constants_are_fallback(self):
        for line in ("NaN", "Infinity", "-Infinity", "data: NaN"):
            assert decode_line(line) == {"raw": True, "message": line}

    def test_nested_non_json_constant_is_fallback(self):
        assert decode_line("[1, NaN]") == {"raw": True, "message": "[1, NaN]"}


class TestRecordDecoder:
    def test_single_line_frame(self):
        results = list(RecordDecoder().decode(b'{"a":1}'))
        assert results == [Record({"a": 1})]

    def test_multi_line_frame_in_order(self):
        frame = b'event: update\ndata: {"n":1}\ndata: {"n":2}'
        results = list(RecordDecoder().decode(frame))
        assert _values(results) == [
            {"raw": True, "message": "event: update"},
            {"n": 1},
            {"n": 2},
        ]
        assert [r.raw for r in results] == [True, False, False]

    def test_blank_lines_skipped(self):
        results = list(RecordDecoder().decode(b'\n  \n{"a":1}\r\n\n'))
        assert _values(results) == [{"a": 1}]

    def test_empty_frame(self):
        assert list(RecordDecoder().decode(b"")) == []

    def test_whitespace_trimmed_in_fallback(self):
        results = list(RecordDecoder().decode(b"   plain text  \t"))
        assert _values(results) == [{"raw": True, "message": "plain text"}]

    def test_invalid_utf8_replaced(self):
        results = list(RecordDecoder().decode(b"bad \xff byte"))
        assert results[0].value["raw"] is True
        assert "�" in results[0].value["message"]

    def test_multi_line_data_not_joined(self):
        frame = b'data: {"a":\ndata: 1}'
        results = list(RecordDecoder().decode(frame))
        assert len(results) == 2
        assert all(r.raw for r in results)

    def test_line_cap_produces_failure(self):
        decoder = RecordDecoder(max_line_bytes=10)
        results = list(decoder.decode(b'this line is too long\n{"ok":true}'))
        assert isinstance(results[0], DecodeFailure)
        assert results[0].text == "this line is too long"
        assert "limit 10" in results[0].error.reason
        assert results[1] == Record({"ok": True})

    def test_line_cap_does_not_apply_to_valid_json(self):
        decoder = RecordDecoder(max_line_bytes=4)
        results = list(decoder.decode(b'{"long": "value"}'))
        assert results == [Record({"long": "value"})]

    def test_lazy_decoding(self):
        gen = RecordDecoder().decode(b"1\n2\n3")
        assert next(gen) == Record(1)
        assert next(gen) == Record(2)
