"""Status broadcasting for UI and notification collaborators.

Usage::

    from chatpilot.monitoring.event_bus import EventBus, EventType, LoggingSink

    bus = EventBus(source="cli")
    bus.add_sink(LoggingSink())
    await bus.emit(EventType.CONNECTION_STATUS, {"status": "connected", "text": "Network connected"})
"""
