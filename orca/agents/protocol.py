"""
Decoder for the droid stream-json protocol.

The droid writes one JSON object per line. `FrameDecoder` turns those lines
into typed `SessionEvent`s. It keeps just enough state to:

- join text deltas into a single assistant message, emitted with MESSAGE_STOP
- collect a tool block's streamed input and emit it as one TOOL_USE
- hold a partial line until its newline arrives

Events come out in the order their frames arrived.
"""

import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any

from orca.lib.errors import AgentProcessFailure, MalformedFrame

logger = logging.getLogger(__name__)


class EventType(Enum):
    STARTED = "started"
    TEXT = "text"
    TOOL_START = "tool_start"
    TOOL_USE = "tool_use"
    BLOCK_STOP = "block_stop"
    MESSAGE_STOP = "message_stop"
    SESSION_ID = "session_id"
    STDERR = "stderr"
    ERROR = "error"
    CLOSE = "close"


@dataclass(frozen=True)
class SessionEvent:
    type: EventType
    text: str = ""  # TEXT delta, MESSAGE_STOP message, STDERR line
    tool_name: str = ""
    tool_id: str = ""
    tool_input: Any = None
    session_id: str = ""
    exit_code: int | None = None
    error: Exception | None = None


class FrameDecoder:
    """Stateful line decoder for one session's stdout."""

    def __init__(self):
        self._buffer = ""
        self._pending_text: list[str] = []
        self._tool: dict | None = None  # Open tool_use block: name, id, partial input

    def feed(self, chunk: str) -> list[SessionEvent]:
        """Decode every complete line in chunk. Partial lines are kept for later."""
        self._buffer += chunk
        events: list[SessionEvent] = []
        while "\n" in self._buffer:
            line, self._buffer = self._buffer.split("\n", 1)
            events.extend(self.decode_line(line))
        return events

    def finish(self) -> list[SessionEvent]:
        """Decode whatever is left after the stream ended."""
        line, self._buffer = self._buffer, ""
        return self.decode_line(line)

    def decode_line(self, line: str) -> list[SessionEvent]:
        line = line.strip()
        if not line:
            return []
        try:
            frame = json.loads(line)
        except json.JSONDecodeError:
            return [SessionEvent(EventType.ERROR, error=MalformedFrame(line))]
        if not isinstance(frame, dict):
            return [SessionEvent(EventType.ERROR, error=MalformedFrame(line))]
        return self.decode_frame(frame)

    def decode_frame(self, frame: dict) -> list[SessionEvent]:
        kind = frame.get("type")

        if kind == "message_start":
            return []

        if kind == "content_block_start":
            block = frame.get("content_block") or {}
            if block.get("type") == "tool_use":
                self._tool = {"name": block.get("name", ""), "id": block.get("id", ""), "input": []}
                return [SessionEvent(EventType.TOOL_START, tool_name=self._tool["name"], tool_id=self._tool["id"])]
            return []

        if kind == "content_block_delta":
            delta = frame.get("delta") or {}
            if delta.get("type") == "text_delta":
                return [self._text(delta.get("text", ""))]
            if delta.get("type") == "input_json_delta" and self._tool is not None:
                self._tool["input"].append(delta.get("partial_json", ""))
            return []

        if kind == "content_block_stop":
            events = []
            if self._tool is not None:
                events.append(self._close_tool())
            events.append(SessionEvent(EventType.BLOCK_STOP))
            return events

        if kind == "message_stop":
            message = "".join(self._pending_text)
            self._pending_text = []
            return [SessionEvent(EventType.MESSAGE_STOP, text=message)]

        if kind == "message_delta":
            if frame.get("usage"):
                logger.debug(f"[SESSION] usage: {frame['usage']}")
            return []

        if kind == "error":
            detail = frame.get("error") or {}
            message = detail.get("message") if isinstance(detail, dict) else str(detail)
            return [SessionEvent(EventType.ERROR, error=AgentProcessFailure(message or "Unknown error"))]

        if frame.get("session_id"):
            return [SessionEvent(EventType.SESSION_ID, session_id=str(frame["session_id"]))]

        if frame.get("content"):
            content = frame["content"]
            if isinstance(content, list):
                content = "".join(
                    part.get("text", "") for part in content
                    if isinstance(part, dict) and part.get("type") == "text"
                )
            return [self._text(str(content))] if content else []

        if frame.get("tool_calls") or frame.get("tool_use"):
            tools = frame.get("tool_calls") or [frame["tool_use"]]
            return [
                SessionEvent(
                    EventType.TOOL_USE,
                    tool_name=tool.get("name", ""),
                    tool_id=tool.get("id", ""),
                    tool_input=tool.get("input"),
                )
                for tool in tools if isinstance(tool, dict)
            ]

        logger.debug(f"[SESSION] ignoring frame: {str(frame)[:200]}")
        return []

    def _text(self, delta: str) -> SessionEvent:
        self._pending_text.append(delta)
        return SessionEvent(EventType.TEXT, text=delta)

    def _close_tool(self) -> SessionEvent:
        tool, self._tool = self._tool, None
        raw = "".join(tool["input"])
        try:
            tool_input = json.loads(raw) if raw else {}
        except json.JSONDecodeError:
            tool_input = raw
        return SessionEvent(EventType.TOOL_USE, tool_name=tool["name"], tool_id=tool["id"], tool_input=tool_input)
