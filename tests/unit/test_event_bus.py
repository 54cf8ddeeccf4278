"""Unit tests for the event bus module."""

from __future__ import annotations

import json
from io import StringIO

import pytest

from chatpilot.monitoring.event_bus import (
    Event,
    EventBus,
    EventSink,
    EventType,
    InMemorySink,
    JsonlSink,
    LoggingSink,
)


# ===================================================================
# Event model tests
# ===================================================================


class TestEvent:
    """Tests for the Event Pydantic model."""

    def test_create_event(self) -> None:
        """Event is created with all fields populated."""
        event = Event(
            event_type=EventType.ADAPTER_STATE_CHANGED,
            source="claude_1_abc",
            data={"old_state": "ready", "new_state": "sending"},
        )
        assert event.event_type == EventType.ADAPTER_STATE_CHANGED
        assert event.source == "claude_1_abc"
        assert event.data["new_state"] == "sending"
        assert event.timestamp  # auto-set

    def test_event_to_jsonl(self) -> None:
        """to_jsonl produces valid JSON without newlines."""
        event = Event(event_type=EventType.LOG, data={"msg": "test"})
        line = event.to_jsonl()
        assert "\n" not in line
        parsed = json.loads(line)
        assert parsed["event_type"] == "log"
        assert parsed["data"]["msg"] == "test"

    def test_event_default_timestamp(self) -> None:
        """Events get an ISO timestamp by default."""
        event = Event(event_type=EventType.LOG)
        assert "T" in event.timestamp  # ISO format


class TestEventType:
    """Tests for the EventType enum."""

    def test_expected_event_types_exist(self) -> None:
        """Core event types exist."""
        names = {et.value for et in EventType}
        expected = {
            "connection_status",
            "adapter_state_changed",
            "request_retry",
            "request_failed",
            "anti_automation_detected",
            "recovery_attempted",
            "log",
            "error",
        }
        assert expected.issubset(names)


# ===================================================================
# Built-in sink tests
# ===================================================================


class TestInMemorySink:
    """Tests for the InMemorySink."""

    @pytest.mark.anyio
    async def test_collects_events(self) -> None:
        """InMemorySink stores events in order."""
        sink = InMemorySink()
        await sink.handle_event(Event(event_type=EventType.LOG, data={"x": 1}))
        await sink.handle_event(Event(event_type=EventType.ERROR, data={"x": 2}))
        assert sink.count == 2
        assert sink.events[0].data["x"] == 1
        assert [e.data["x"] for e in sink.of_type(EventType.ERROR)] == [2]

    @pytest.mark.anyio
    async def test_clear(self) -> None:
        """clear() empties the event list."""
        sink = InMemorySink()
        await sink.handle_event(Event(event_type=EventType.LOG))
        sink.clear()
        assert sink.count == 0

    def test_satisfies_sink_protocol(self) -> None:
        assert isinstance(InMemorySink(), EventSink)
        assert isinstance(LoggingSink(), EventSink)


class TestJsonlSink:
    """Tests for the JsonlSink."""

    @pytest.mark.anyio
    async def test_writes_jsonl_lines(self) -> None:
        """JsonlSink writes one JSON line per event."""
        buf = StringIO()
        sink = JsonlSink(buf)
        await sink.handle_event(Event(event_type=EventType.CONNECTION_STATUS, data={"status": "connected"}))
        await sink.handle_event(Event(event_type=EventType.LOG))
        lines = buf.getvalue().strip().split("\n")
        assert len(lines) == 2
        assert json.loads(lines[0])["event_type"] == "connection_status"


class TestLoggingSink:
    """Tests for the LoggingSink."""

    @pytest.mark.anyio
    async def test_logs_at_debug(self, caplog) -> None:
        sink = LoggingSink()
        with caplog.at_level("DEBUG", logger="chatpilot.events"):
            await sink.handle_event(Event(event_type=EventType.LOG, source="network", data={"msg": "test"}))
        assert "[network] log" in caplog.text


# ===================================================================
# EventBus tests
# ===================================================================


class TestEventBus:
    """Tests for the EventBus core functionality."""

    @pytest.mark.anyio
    async def test_emit_to_multiple_sinks(self) -> None:
        """Events are broadcast to all sinks."""
        bus = EventBus()
        s1 = InMemorySink()
        s2 = InMemorySink()
        bus.add_sink(s1)
        bus.add_sink(s2)
        await bus.emit(EventType.LOG, {"msg": "hello"})
        assert s1.count == 1
        assert s2.count == 1

    @pytest.mark.anyio
    async def test_source_defaults_to_bus_label(self) -> None:
        bus = EventBus(source="cli")
        sink = InMemorySink()
        bus.add_sink(sink)
        await bus.emit(EventType.LOG)
        await bus.emit(EventType.LOG, source="network")
        assert [e.source for e in sink.events] == ["cli", "network"]

    @pytest.mark.anyio
    async def test_remove_sink(self) -> None:
        """Removed sinks no longer receive events."""
        bus = EventBus()
        sink = InMemorySink()
        bus.add_sink(sink)
        await bus.emit(EventType.LOG)
        bus.remove_sink(sink)
        await bus.emit(EventType.LOG)
        assert sink.count == 1
        assert bus.sink_count == 0

    @pytest.mark.anyio
    async def test_emit_string_event_type(self) -> None:
        """String event types are normalized to EventType enum."""
        bus = EventBus()
        sink = InMemorySink()
        bus.add_sink(sink)
        await bus.emit("request_retry", {"url": "https://chat.example.com"})
        await bus.emit("some_unknown_type", {"info": "test"})
        assert sink.events[0].event_type == EventType.REQUEST_RETRY
        assert sink.events[1].event_type == EventType.LOG

    @pytest.mark.anyio
    async def test_sink_error_does_not_propagate(self) -> None:
        """A failing sink doesn't stop other sinks from receiving events."""
        bus = EventBus()

        class BrokenSink:
            async def handle_event(self, event: Event) -> None:
                raise RuntimeError("boom")

        good_sink = InMemorySink()
        bus.add_sink(BrokenSink())  # type: ignore[arg-type]
        bus.add_sink(good_sink)
        await bus.emit(EventType.LOG, {"msg": "test"})
        assert good_sink.count == 1


# ===================================================================
# Snapshot tests
# ===================================================================


class TestEventBusSnapshot:
    """Tests for the EventBus snapshot caching."""

    @pytest.mark.anyio
    async def test_snapshot_tracks_connection_status(self) -> None:
        bus = EventBus()
        await bus.emit(EventType.CONNECTION_STATUS, {"status": "error", "text": "Network disconnected"})
        snap = bus.get_snapshot()
        assert snap["connection_status"] == "error"
        assert snap["connection_text"] == "Network disconnected"

    @pytest.mark.anyio
    async def test_snapshot_tracks_adapter_states(self) -> None:
        bus = EventBus()
        await bus.emit(EventType.ADAPTER_STATE_CHANGED, {"new_state": "ready"}, source="claude_1")
        await bus.emit(EventType.ADAPTER_STATE_CHANGED, {"new_state": "blocked"}, source="gemini_2")
        assert bus.get_snapshot()["adapters"] == {"claude_1": "ready", "gemini_2": "blocked"}

        bus.forget_adapter("claude_1")
        assert bus.get_snapshot()["adapters"] == {"gemini_2": "blocked"}

    def test_snapshot_has_uptime(self) -> None:
        """Snapshot includes uptime_sec."""
        snap = EventBus().get_snapshot()
        assert snap["uptime_sec"] >= 0.0
        assert snap["connection_status"] == "unknown"
