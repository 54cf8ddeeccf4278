"""Adapter configuration and runtime data models.

``AdapterConfig`` is the immutable, selector-level description of one chat
service. Selectors are configuration rather than protocol: each logical role
maps to a single selector or an ordered list of candidates.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class SelectorRole(str, Enum):
    """Logical page roles an adapter looks up."""

    INPUT = "input"
    SEND_BUTTON = "send_button"
    RESPONSE_CONTAINER = "response_container"
    LOADING_INDICATOR = "loading_indicator"
    ERROR_INDICATOR = "error_indicator"
    NEW_CHAT_BUTTON = "new_chat_button"
    LOGIN_INDICATOR = "login_indicator"
    PAGE_READY = "page_ready"
    STOP_BUTTON = "stop_button"
    USER_MESSAGE = "user_message"
    USAGE_LIMIT = "usage_limit"


class Capability(str, Enum):
    """Optional capabilities an adapter variant declares at class level."""

    CLEAR_CONVERSATION = "clear_conversation"
    HISTORY_EXTRACTION = "history_extraction"
    ANTI_AUTOMATION_RECOVERY = "anti_automation_recovery"


DEFAULT_CONTENT_SELECTORS: tuple[str, ...] = (
    ".message-content",
    '[data-testid="message-content"]',
    ".markdown",
    ".prose",
    "p",
    "div",
)


class AdapterConfig(BaseModel):
    """Immutable per-service configuration.

    Attributes:
        service_id: Short machine identifier (``claude``, ``chatgpt``...).
        display_name: Human-readable service name used in messages.
        home_url: Landing page of the chat front end.
        selectors: Logical role → selector or ordered candidate list.
        content_selectors: Priority list used to extract reply text.
        login_paths: URL path fragments that indicate a login barrier.
        extra_indicators: Service-specific anti-automation selectors.
    """

    model_config = ConfigDict(frozen=True)

    service_id: str
    display_name: str
    home_url: str = ""
    selectors: dict[str, tuple[str, ...]] = Field(default_factory=dict)
    content_selectors: tuple[str, ...] = DEFAULT_CONTENT_SELECTORS
    login_paths: tuple[str, ...] = ("/login", "/auth")
    extra_indicators: tuple[str, ...] = ()

    @field_validator("selectors", mode="before")
    @classmethod
    def _normalize_selectors(cls, value: Any) -> dict[str, tuple[str, ...]]:
        """Accept a bare string or a list per role and key by role value."""
        normalized: dict[str, tuple[str, ...]] = {}
        for role, selector in dict(value or {}).items():
            key = role.value if isinstance(role, SelectorRole) else str(role)
            if isinstance(selector, str):
                candidates = (selector,)
            else:
                candidates = tuple(selector)
            candidates = tuple(s.strip() for s in candidates if s and s.strip())
            if candidates:
                normalized[key] = candidates
        return normalized

    def candidates(self, role: SelectorRole) -> tuple[str, ...]:
        """Return the ordered candidate selectors for *role* (may be empty)."""
        return self.selectors.get(role.value, ())

    def selector(self, role: SelectorRole) -> str:
        """Return all candidates for *role* as one CSS selector union."""
        return ", ".join(self.candidates(role))

    def has(self, role: SelectorRole) -> bool:
        return bool(self.candidates(role))


@dataclass
class ConversationTurn:
    """One extracted message of the visible conversation."""

    role: str  # "user" | "assistant"
    content: str
    index: int
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> dict[str, Any]:
        return {"role": self.role, "content": self.content, "index": self.index}


@dataclass
class AdapterStatus:
    """Point-in-time snapshot of an adapter for diagnostics and the CLI."""

    adapter_id: str
    service_id: str
    display_name: str
    state: str
    retry_count: int
    last_activity: float | None
    current_input_selector: str | None
    page_url: str = ""
    capabilities: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.adapter_id,
            "service": self.service_id,
            "name": self.display_name,
            "state": self.state,
            "retry_count": self.retry_count,
            "last_activity": self.last_activity,
            "current_input_selector": self.current_input_selector,
            "page_url": self.page_url,
            "capabilities": self.capabilities,
        }
