"""Tests for orca.agents.protocol module."""

import json

from orca.agents.protocol import EventType, FrameDecoder
from orca.lib.errors import AgentProcessFailure, MalformedFrame


def line(frame) -> str:
    return json.dumps(frame) + "\n"


def types(events):
    return [e.type for e in events]


class TestLineBuffering:
    """Tests for splitting the stream into lines."""

    def test_partial_line_waits_for_newline(self):
        decoder = FrameDecoder()
        text = line({"type": "system", "session_id": "abc"})
        assert decoder.feed(text[:10]) == []
        events = decoder.feed(text[10:])
        assert types(events) == [EventType.SESSION_ID]
        assert events[0].session_id == "abc"

    def test_finish_decodes_trailing_line(self):
        decoder = FrameDecoder()
        assert decoder.feed('{"type": "system", "session_id": "x"}') == []
        assert types(decoder.finish()) == [EventType.SESSION_ID]

    def test_blank_lines_ignored(self):
        assert FrameDecoder().feed("\n\n   \n") == []


class TestMessages:
    """Tests for assistant text."""

    def test_text_deltas_joined_at_message_stop(self):
        decoder = FrameDecoder()
        stream = "".join([
            line({"type": "message_start"}),
            line({"type": "content_block_start", "content_block": {"type": "text"}}),
            line({"type": "content_block_delta", "delta": {"type": "text_delta", "text": "Hello "}}),
            line({"type": "content_block_delta", "delta": {"type": "text_delta", "text": "world"}}),
            line({"type": "content_block_stop"}),
            line({"type": "message_stop"}),
        ])
        events = decoder.feed(stream)
        assert types(events) == [
            EventType.TEXT, EventType.TEXT, EventType.BLOCK_STOP, EventType.MESSAGE_STOP,
        ]
        assert [e.text for e in events[:2]] == ["Hello ", "world"]
        assert events[-1].text == "Hello world"

    def test_message_text_resets_between_messages(self):
        decoder = FrameDecoder()
        decoder.feed(line({"type": "content_block_delta", "delta": {"type": "text_delta", "text": "one"}}))
        first = decoder.feed(line({"type": "message_stop"}))
        decoder.feed(line({"type": "content_block_delta", "delta": {"type": "text_delta", "text": "two"}}))
        second = decoder.feed(line({"type": "message_stop"}))
        assert first[0].text == "one"
        assert second[0].text == "two"

    def test_content_list_frame(self):
        events = FrameDecoder().feed(line({
            "role": "assistant",
            "content": [{"type": "text", "text": "a"}, {"type": "image"}, {"type": "text", "text": "b"}],
        }))
        assert types(events) == [EventType.TEXT]
        assert events[0].text == "ab"


class TestTools:
    """Tests for tool blocks."""

    def test_tool_input_assembled_at_block_stop(self):
        decoder = FrameDecoder()
        events = decoder.feed("".join([
            line({"type": "content_block_start", "content_block": {"type": "tool_use", "name": "Edit", "id": "t1"}}),
            line({"type": "content_block_delta", "delta": {"type": "input_json_delta", "partial_json": '{"path": "a'}}),
            line({"type": "content_block_delta", "delta": {"type": "input_json_delta", "partial_json": '.py"}'}}),
            line({"type": "content_block_stop"}),
        ]))
        assert types(events) == [EventType.TOOL_START, EventType.TOOL_USE, EventType.BLOCK_STOP]
        assert events[0].tool_name == "Edit"
        assert events[1].tool_id == "t1"
        assert events[1].tool_input == {"path": "a.py"}

    def test_unparseable_tool_input_kept_raw(self):
        decoder = FrameDecoder()
        decoder.feed(line({"type": "content_block_start", "content_block": {"type": "tool_use", "name": "Run", "id": "t2"}}))
        decoder.feed(line({"type": "content_block_delta", "delta": {"type": "input_json_delta", "partial_json": "{oops"}}))
        events = decoder.feed(line({"type": "content_block_stop"}))
        assert events[0].tool_input == "{oops"

    def test_tool_calls_frame(self):
        events = FrameDecoder().feed(line({"tool_calls": [{"name": "Read", "id": "c1", "input": {"path": "x"}}]}))
        assert types(events) == [EventType.TOOL_USE]
        assert events[0].tool_input == {"path": "x"}


class TestErrors:
    """Tests for malformed and error frames."""

    def test_malformed_line_reported_and_decoding_continues(self):
        decoder = FrameDecoder()
        events = decoder.feed("not json\n[1, 2]\n" + line({"type": "system", "session_id": "s"}))
        assert types(events) == [EventType.ERROR, EventType.ERROR, EventType.SESSION_ID]
        assert isinstance(events[0].error, MalformedFrame)
        assert events[0].error.line == "not json"
        assert isinstance(events[1].error, MalformedFrame)

    def test_error_frame(self):
        events = FrameDecoder().feed(line({"type": "error", "error": {"message": "rate limited"}}))
        assert types(events) == [EventType.ERROR]
        assert isinstance(events[0].error, AgentProcessFailure)
        assert str(events[0].error) == "rate limited"

    def test_unknown_frame_ignored(self):
        assert FrameDecoder().feed(line({"type": "ping"})) == []
