"""Tests for passepartout.engine.events: typed decoding of agent events."""

import json

import pytest

from passepartout.engine.errors import StreamDecodeError
from passepartout.engine.events import (
    PartUpdatedEvent,
    SessionIdleEvent,
    SessionStatusEvent,
    ToolState,
    UnknownEvent,
    decode_event,
    decode_event_json,
)

from fakes import idle_event, part_event, status_event, tool_event


class TestDecodeEvent:
    def test_session_status_busy(self):
        event = decode_event(status_event("s1", "busy"))
        assert isinstance(event, SessionStatusEvent)
        assert event.session_id == "s1"
        assert event.status == "busy"
        assert event.attempt is None

    def test_session_status_retry_attempt(self):
        event = decode_event(status_event("s1", "retry", attempt=3))
        assert event.status == "retry"
        assert event.attempt == 3

    def test_session_idle(self):
        event = decode_event(idle_event("s1"))
        assert isinstance(event, SessionIdleEvent)
        assert event.session_id == "s1"

    def test_tool_part(self):
        event = decode_event(tool_event(
            "s1", "bash", "completed",
            title="List files", input={"command": "ls"}, output="a\nb",
            start=1000, end=1120,
        ))
        assert isinstance(event, PartUpdatedEvent)
        assert event.part_type == "tool"
        assert event.tool == "bash"
        assert event.state.status == "completed"
        assert event.state.title == "List files"
        assert event.state.input == {"command": "ls"}
        assert event.state.output == "a\nb"
        assert event.state.duration == 120

    def test_reasoning_part_has_no_state(self):
        event = decode_event(part_event("s1", "reasoning"))
        assert isinstance(event, PartUpdatedEvent)
        assert event.part_type == "reasoning"
        assert event.state is None

    def test_unknown_type(self):
        event = decode_event({"type": "unknown.kind"})
        assert isinstance(event, UnknownEvent)
        assert event.event_type == "unknown.kind"
        assert event.session_id is None

    def test_missing_type_raises(self):
        with pytest.raises(StreamDecodeError):
            decode_event({"properties": {}})

    def test_non_object_raises(self):
        with pytest.raises(StreamDecodeError):
            decode_event(["session.idle"])

    def test_properties_wrong_shape_raises(self):
        with pytest.raises(StreamDecodeError):
            decode_event({"type": "session.status", "properties": "busy"})

    def test_bad_field_types_are_dropped(self):
        raw = tool_event("s1", "read", "running", input={"path": "/x"})
        raw["properties"]["part"]["state"]["time"] = {"start": "soon", "end": True}
        event = decode_event(raw)
        assert event.state.start is None
        assert event.state.end is None
        assert event.state.duration is None


class TestToolStateDuration:
    def test_equal_timestamps_give_zero(self):
        assert ToolState(start=500, end=500).duration == 0

    def test_missing_start_gives_none(self):
        assert ToolState(end=500).duration is None

    def test_missing_end_gives_none(self):
        assert ToolState(start=500).duration is None


class TestDecodeEventJson:
    def test_valid_json(self):
        event = decode_event_json(json.dumps(idle_event("abc")))
        assert isinstance(event, SessionIdleEvent)

    def test_invalid_json_keeps_raw_excerpt(self):
        with pytest.raises(StreamDecodeError) as exc_info:
            decode_event_json("{not json")
        assert exc_info.value.raw == "{not json"

    def test_structural_error_keeps_raw_excerpt(self):
        with pytest.raises(StreamDecodeError) as exc_info:
            decode_event_json('"just a string"')
        assert exc_info.value.raw == '"just a string"'
