"""Event bus — decouples the automation core from status consumers.

* Type-safe event types via ``EventType`` enum.
* Multiple sink pattern: a single bus emits to all registered
  ``EventSink`` implementations (JSONL stream, logger, in-memory buffer).
* Snapshot caching so late subscribers receive the current connection
  status and adapter states immediately.
"""

from __future__ import annotations

import json
import logging
import time
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Protocol, runtime_checkable

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Event types
# ---------------------------------------------------------------------------


class EventType(str, Enum):
    """All event types emitted by the automation core."""

    # Connectivity
    CONNECTION_STATUS = "connection_status"

    # Adapter lifecycle
    ADAPTER_STATE_CHANGED = "adapter_state_changed"

    # Network resilience
    REQUEST_RETRY = "request_retry"
    REQUEST_FAILED = "request_failed"

    # Anti-automation / recovery
    ANTI_AUTOMATION_DETECTED = "anti_automation_detected"
    RECOVERY_ATTEMPTED = "recovery_attempted"

    # Progress / info
    LOG = "log"
    ERROR = "error"


# ---------------------------------------------------------------------------
# Event payload model
# ---------------------------------------------------------------------------


class Event(BaseModel):
    """Structured event emitted by the event bus."""

    event_type: EventType
    timestamp: str = Field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    source: str = ""
    data: dict[str, Any] = Field(default_factory=dict)

    def to_jsonl(self) -> str:
        """Serialize to a single JSON line (no trailing newline)."""
        return self.model_dump_json()


# ---------------------------------------------------------------------------
# Sink protocol
# ---------------------------------------------------------------------------


@runtime_checkable
class EventSink(Protocol):
    """Protocol for event consumers."""

    async def handle_event(self, event: Event) -> None:
        """Process a single event."""
        ...


# ---------------------------------------------------------------------------
# Built-in sinks
# ---------------------------------------------------------------------------


class LoggingSink:
    """Emit events to the Python logger at DEBUG level."""

    def __init__(self, logger_name: str = "chatpilot.events") -> None:
        self._logger = logging.getLogger(logger_name)

    async def handle_event(self, event: Event) -> None:
        """Log the event."""
        self._logger.debug(
            "[%s] %s: %s",
            event.source or "?",
            event.event_type.value,
            json.dumps(event.data, default=str)[:200],
        )


class InMemorySink:
    """Collect events in a list — useful for testing."""

    def __init__(self) -> None:
        self.events: list[Event] = []

    async def handle_event(self, event: Event) -> None:
        """Append the event to the in-memory list."""
        self.events.append(event)

    def clear(self) -> None:
        """Clear all collected events."""
        self.events.clear()

    def of_type(self, event_type: EventType) -> list[Event]:
        """Return collected events of one type, in emission order."""
        return [e for e in self.events if e.event_type == event_type]

    @property
    def count(self) -> int:
        """Return the number of collected events."""
        return len(self.events)


class JsonlSink:
    """Write events as JSONL lines to a file-like object.

    Works with ``sys.stdout``, ``sys.stderr``, or an open file handle.
    """

    def __init__(self, stream: Any) -> None:
        self._stream = stream

    async def handle_event(self, event: Event) -> None:
        """Write one JSON line to the stream."""
        self._stream.write(event.to_jsonl() + "\n")
        if hasattr(self._stream, "flush"):
            self._stream.flush()


# ---------------------------------------------------------------------------
# Event bus
# ---------------------------------------------------------------------------


class EventBus:
    """Central event dispatcher for core-to-consumer communication.

    Args:
        source: Optional default source label attached to all events.
    """

    def __init__(self, source: str = "") -> None:
        self._source = source
        self._sinks: list[EventSink] = []

        # Snapshot for late subscribers
        self._connection_status: str = "unknown"
        self._connection_text: str = ""
        self._adapter_states: dict[str, str] = {}
        self._started_at: float = time.monotonic()

    # ------------------------------------------------------------------
    # Sink management
    # ------------------------------------------------------------------

    def add_sink(self, sink: EventSink) -> None:
        """Register an event sink."""
        self._sinks.append(sink)

    def remove_sink(self, sink: EventSink) -> None:
        """Remove a previously registered sink."""
        self._sinks = [s for s in self._sinks if s is not sink]

    @property
    def sink_count(self) -> int:
        """Return the number of registered sinks."""
        return len(self._sinks)

    # ------------------------------------------------------------------
    # Emit
    # ------------------------------------------------------------------

    async def emit(
        self,
        event_type: EventType | str,
        data: dict[str, Any] | None = None,
        *,
        source: str = "",
    ) -> None:
        """Emit an event to all registered sinks.

        Args:
            event_type: The event type (``EventType`` enum or raw string).
            data: Optional payload data.
            source: Emitter label (adapter id, ``network``...).
        """
        # Normalise string → enum
        if isinstance(event_type, str):
            try:
                event_type = EventType(event_type)
            except ValueError:
                event_type = EventType.LOG

        payload = data or {}
        self._update_snapshot(event_type, payload, source)

        event = Event(event_type=event_type, source=source or self._source, data=payload)

        for sink in self._sinks:
            try:
                await sink.handle_event(event)
            except Exception as exc:
                logger.warning("EventBus sink error (%s): %s", type(sink).__name__, exc)

    def _update_snapshot(self, event_type: EventType, data: dict[str, Any], source: str) -> None:
        """Update internal snapshot cache."""
        if event_type == EventType.CONNECTION_STATUS:
            self._connection_status = data.get("status", self._connection_status)
            self._connection_text = data.get("text", "")
        elif event_type == EventType.ADAPTER_STATE_CHANGED and source:
            self._adapter_states[source] = data.get("new_state", "")

    def forget_adapter(self, adapter_id: str) -> None:
        """Drop a disposed adapter from the snapshot."""
        self._adapter_states.pop(adapter_id, None)

    # ------------------------------------------------------------------
    # Snapshot
    # ------------------------------------------------------------------

    def get_snapshot(self) -> dict[str, Any]:
        """Return the latest state for new subscribers."""
        return {
            "connection_status": self._connection_status,
            "connection_text": self._connection_text,
            "adapters": dict(self._adapter_states),
            "uptime_sec": round(time.monotonic() - self._started_at, 1),
        }
