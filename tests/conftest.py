"""chatpilot test configuration — shared fixtures for unit tests."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable

import pytest

from chatpilot.browser.surface import AutomationSurface


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_settings_cache():
    """Clear the settings LRU cache between tests."""
    from chatpilot.settings.config import get_settings

    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture()
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture()
def fast_adapter_settings():
    """Adapter timing windows shrunk to tens of milliseconds."""
    from chatpilot.settings.config import AdapterSettings

    return AdapterSettings(
        element_timeout_ms=50,
        element_poll_ms=10,
        page_ready_timeout_ms=50,
        response_start_timeout_ms=100,
        response_start_poll_ms=10,
        response_timeout_ms=200,
        response_poll_ms=10,
        settle_delay_ms=0,
        input_delay_ms=0,
        clear_settle_ms=0,
        challenge_wait_ms=100,
        challenge_poll_ms=10,
    )


@pytest.fixture()
def fast_network_settings():
    """Network settings with millisecond delays so retry loops finish quickly."""
    from chatpilot.settings.config import NetworkSettings

    return NetworkSettings(
        timeout_ms=200,
        retry_delay_ms=1,
        max_retries=3,
        connection_check_interval_ms=10,
        anti_automation_retry_delay_ms=1,
        max_anti_automation_retries=2,
        recovery_poll_ms=1,
        recovery_max_polls=3,
        request_retention_ms=60_000,
    )


@pytest.fixture()
def sink():
    """An in-memory event sink."""
    from chatpilot.monitoring.event_bus import InMemorySink

    return InMemorySink()


@pytest.fixture()
def bus(sink):
    """An event bus that records into ``sink``."""
    from chatpilot.monitoring.event_bus import EventBus

    event_bus = EventBus(source="test")
    event_bus.add_sink(sink)
    return event_bus


# ---------------------------------------------------------------------------
# In-memory automation surface
# ---------------------------------------------------------------------------


@dataclass(eq=False)
class FakeElement:
    """A node of the fake page."""

    text: str = ""
    attrs: dict[str, str] = field(default_factory=dict)
    visible: bool = True
    enabled: bool = True
    value: str = ""
    children: dict[str, list["FakeElement"]] = field(default_factory=dict)
    events: list[str] = field(default_factory=list)
    clicks: int = 0
    on_click: Callable[["FakeSurface"], None] | None = None
    on_enter: Callable[["FakeSurface"], None] | None = None


def _match(index: dict[str, list[FakeElement]], selector: str) -> list[FakeElement]:
    if selector in index:
        return list(index[selector])
    found: list[FakeElement] = []
    for part in selector.split(", "):
        for element in index.get(part.strip(), []):
            if element not in found:
                found.append(element)
    return found


class FakeSurface(AutomationSurface):
    """Selector → element map standing in for a hosted page.

    Selectors match by exact string; a ``", "``-joined union matches each
    part in turn.
    """

    def __init__(self, url: str = "https://chat.example.com/c/1", title: str = "Chat") -> None:
        self.elements: dict[str, list[FakeElement]] = {}
        self.url = url
        self.page_title = title
        self.document_ready = True
        self.reloads = 0
        self.on_reload: Callable[[FakeSurface], None] | None = None
        self.queries: list[str] = []

    # -- page construction -------------------------------------------------

    def add(self, selector: str, element: FakeElement | None = None, **kwargs: Any) -> FakeElement:
        element = element or FakeElement(**kwargs)
        self.elements.setdefault(selector, []).append(element)
        return element

    def remove(self, selector: str) -> None:
        self.elements.pop(selector, None)

    # -- primitives --------------------------------------------------------

    async def query(self, selector: str) -> FakeElement | None:
        self.queries.append(selector)
        matches = _match(self.elements, selector)
        return matches[0] if matches else None

    async def query_all(self, selector: str) -> list[FakeElement]:
        return _match(self.elements, selector)

    async def query_within(self, handle: FakeElement, selector: str) -> list[FakeElement]:
        return _match(handle.children, selector)

    async def read_text(self, handle: FakeElement) -> str:
        return handle.text.strip()

    async def get_attribute(self, handle: FakeElement, name: str) -> str | None:
        return handle.attrs.get(name)

    async def set_value(self, handle: FakeElement, text: str) -> bool:
        if not handle.enabled:
            return False
        handle.value = text
        handle.events.extend(["input", "change"])
        return True

    async def click(self, handle: FakeElement) -> bool:
        if not (handle.visible and handle.enabled):
            return False
        handle.clicks += 1
        if handle.on_click is not None:
            handle.on_click(self)
        return True

    async def press_enter(self, handle: FakeElement) -> bool:
        handle.events.append("enter")
        if handle.on_enter is not None:
            handle.on_enter(self)
        return True

    async def is_interactable(self, handle: FakeElement) -> bool:
        return handle.visible and handle.enabled

    async def wait_for_document_ready(self, timeout_ms: int) -> bool:
        return self.document_ready

    async def reload(self) -> None:
        self.reloads += 1
        if self.on_reload is not None:
            self.on_reload(self)

    def current_url(self) -> str:
        return self.url

    async def title(self) -> str:
        return self.page_title


@pytest.fixture()
def surface() -> FakeSurface:
    """An empty fake page."""
    return FakeSurface()


@pytest.fixture()
def chat_config():
    """A small generic service configuration used across adapter tests."""
    from chatpilot.models.adapter import AdapterConfig

    return AdapterConfig(
        service_id="testchat",
        display_name="TestChat",
        home_url="https://chat.example.com/",
        selectors={
            "input": ["#prompt", "textarea.chat"],
            "send_button": "button.send",
            "response_container": ".reply",
            "user_message": ".mine",
            "loading_indicator": ".spinner",
            "error_indicator": ".error",
            "new_chat_button": "button.new-chat",
            "login_indicator": "button.sign-in",
        },
        content_selectors=(".markdown", "p"),
    )


@pytest.fixture()
def ready_surface(surface: FakeSurface) -> FakeSurface:
    """A fake page with an interactable input and send control."""
    surface.add("#prompt")
    surface.add("button.send")
    return surface


@pytest.fixture()
def make_element():
    """Factory for standalone fake elements (children of other elements)."""
    return FakeElement
