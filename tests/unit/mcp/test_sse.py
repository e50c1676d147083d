"""Unit tests for SSE parsing."""

import pytest

from riotplan.mcp.errors import TransportError
from riotplan.mcp.sse import (
    SSEFrameBuffer,
    extract_data,
    parse_event_frame,
    parse_sse_response,
)


class TestExtractData:
    """Tests for extract_data()."""

    def test_single_data_line(self):
        assert extract_data('data: {"a": 1}') == '{"a": 1}'

    def test_multi_line_data_is_concatenated(self):
        payload = 'event: message\ndata: {"jsonrpc": "2.0",\ndata: "result": {}}\n'
        assert extract_data(payload) == '{"jsonrpc": "2.0","result": {}}'

    def test_other_fields_ignored(self):
        payload = ": keepalive\nid: 7\nevent: message\ndata: {}\n"
        assert extract_data(payload) == "{}"

    def test_no_data_returns_none(self):
        assert extract_data("event: ping\n: comment\n") is None

    def test_data_without_space(self):
        assert extract_data("data:{}") == "{}"


class TestParseSSEResponse:
    """Tests for parse_sse_response()."""

    def test_parses_jsonrpc_message(self):
        body = 'data: {"jsonrpc":"2.0","id":"1","result":{"ok":true}}\n\n'
        assert parse_sse_response(body) == {"jsonrpc": "2.0", "id": "1", "result": {"ok": True}}

    def test_no_data_raises(self):
        with pytest.raises(TransportError, match="no data"):
            parse_sse_response("event: message\n\n")

    def test_invalid_json_raises(self):
        with pytest.raises(TransportError, match="Failed to parse SSE response"):
            parse_sse_response("data: not json\n\n")

    def test_non_object_raises(self):
        with pytest.raises(TransportError, match="Expected JSON object"):
            parse_sse_response("data: [1, 2]\n\n")


class TestParseEventFrame:
    """Tests for parse_event_frame()."""

    def test_valid_frame(self):
        frame = 'data: {"method": "notifications/resource_changed", "params": {"uri": "x"}}'
        assert parse_event_frame(frame) == {
            "method": "notifications/resource_changed",
            "params": {"uri": "x"},
        }

    def test_heartbeat_returns_none(self):
        assert parse_event_frame(": ping") is None

    def test_non_json_returns_none(self):
        assert parse_event_frame("data: hello") is None

    def test_non_object_returns_none(self):
        assert parse_event_frame("data: 42") is None


class TestSSEFrameBuffer:
    """Tests for SSEFrameBuffer."""

    def test_splits_complete_frames(self):
        buffer = SSEFrameBuffer()
        assert buffer.feed("data: 1\n\ndata: 2\n\n") == ["data: 1", "data: 2"]
        assert buffer.pending == ""

    def test_frame_split_across_chunks(self):
        buffer = SSEFrameBuffer()
        assert buffer.feed('data: {"a"') == []
        assert buffer.pending == 'data: {"a"'
        assert buffer.feed(": 1}\n") == []
        assert buffer.feed("\ndata: 2") == ['data: {"a": 1}']
        assert buffer.pending == "data: 2"

    def test_crlf_delimiters(self):
        buffer = SSEFrameBuffer()
        assert buffer.feed("data: 1\r\n\r\ndata: 2\r\n\r\n") == ["data: 1", "data: 2"]

    def test_blank_frames_dropped(self):
        buffer = SSEFrameBuffer()
        assert buffer.feed("\n\n\n\ndata: 1\n\n") == ["data: 1"]
