"""Tests for the line-oriented wire framing and the error taxonomy."""

import pytest
from chat_relay.errors import (
    ChatRelayError,
    MalformedRequest,
    RelayTimeout,
    UpstreamFailure,
    error_from_kind,
)
from chat_relay.framing import (
    decode_frame,
    encode_error,
    encode_finish,
    encode_text,
    iter_text_deltas,
)


class TestEncoding:
    def test_text_frame_is_one_line(self):
        frame = encode_text("line one\nline two")
        assert frame.endswith("\n")
        assert frame.count("\n") == 1
        assert frame.startswith("0:")

    def test_finish_frame(self):
        assert encode_finish() == 'd:{"finishReason": "stop"}\n'

    def test_error_frame_carries_kind(self):
        decoded = decode_frame(encode_error("Timeout", "exceeded 30s"))
        assert decoded.code == "3"
        assert decoded.value == {"kind": "Timeout", "message": "exceeded 30s"}

    def test_decode_accepts_bytes(self):
        decoded = decode_frame(encode_text("héllo").encode("utf-8"))
        assert decoded.code == "0"
        assert decoded.value == "héllo"

    @pytest.mark.parametrize("line", ["", "   ", "no-colon-here", "0:{not json"])
    def test_decode_skips_unusable_lines(self, line):
        assert decode_frame(line) is None


class TestIterTextDeltas:
    def test_yields_deltas_in_order_until_finish(self):
        lines = [encode_text("We're"), encode_text(" open"), encode_text(" 9–5."), encode_finish()]
        assert list(iter_text_deltas(lines)) == ["We're", " open", " 9–5."]

    def test_stops_at_finish_marker(self):
        lines = [encode_text("a"), encode_finish(), encode_text("ignored")]
        assert list(iter_text_deltas(lines)) == ["a"]

    def test_error_frame_raises_matching_error_after_partial_output(self):
        received = []
        with pytest.raises(UpstreamFailure) as exc_info:
            for delta in iter_text_deltas([encode_text("We'r"), encode_error("UpstreamFailure", "dropped")]):
                received.append(delta)
        assert received == ["We'r"]
        assert exc_info.value.message == "dropped"
        assert not isinstance(exc_info.value, RelayTimeout)

    def test_timeout_frame_raises_relay_timeout(self):
        with pytest.raises(RelayTimeout):
            list(iter_text_deltas([encode_error("Timeout", "exceeded 30s")]))

    def test_missing_terminal_marker_is_truncation(self):
        with pytest.raises(UpstreamFailure, match="terminal marker"):
            list(iter_text_deltas([encode_text("half")]))

    def test_unknown_codes_and_blank_lines_are_skipped(self):
        lines = ["", '9:{"extra": true}', encode_text("ok"), encode_finish()]
        assert list(iter_text_deltas(lines)) == ["ok"]


class TestErrorFromKind:
    @pytest.mark.parametrize(
        "kind, expected",
        [
            ("MalformedRequest", MalformedRequest),
            ("UpstreamFailure", UpstreamFailure),
            ("Timeout", RelayTimeout),
        ],
    )
    def test_known_kinds(self, kind, expected):
        error = error_from_kind(kind, "msg")
        assert type(error) is expected
        assert error.kind == kind

    def test_unknown_kind_is_upstream_failure(self):
        error = error_from_kind("Mystery", "msg")
        assert type(error) is UpstreamFailure

    def test_timeout_is_an_upstream_failure(self):
        assert issubclass(RelayTimeout, UpstreamFailure)
        assert issubclass(UpstreamFailure, ChatRelayError)

    def test_default_message_is_kind(self):
        assert str(UpstreamFailure()) == "UpstreamFailure"
