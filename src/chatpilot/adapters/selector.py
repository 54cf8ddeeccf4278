"""Selector-driven adapter: the generic chat-page state machine.

Every supported service is a ``SelectorAdapter`` with a different
``AdapterConfig``. The flow per operation:

1. ``initialize``: document ready, access barrier, anti-automation scan,
   optional page-ready marker, then input candidates in configured order.
2. ``send_message``: safe input, short input delay, send control or Enter.
3. ``get_response``: start window, completion window, settle delay, then
   content extraction from the latest non-user response element.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, ClassVar
from urllib.parse import urlparse

from chatpilot.adapters.base import BaseAdapter
from chatpilot.browser.anti_automation import BLOCKING_KINDS, Detection, detect_anti_automation, is_waitable
from chatpilot.browser.waiting import wait_until
from chatpilot.exceptions import (
    AccessRequired,
    AdapterError,
    AdapterStateError,
    AntiAutomationDetected,
    ElementNotFound,
    ResponseTimeout,
    ServiceReportedError,
)
from chatpilot.models.adapter import AdapterConfig, Capability, ConversationTurn, SelectorRole
from chatpilot.models.states import AdapterState

if TYPE_CHECKING:
    from chatpilot.adapters.recovery import RetryBudget
    from chatpilot.browser.surface import ElementHandle

logger = logging.getLogger(__name__)

_USER_ROLE_ATTRIBUTES = ("data-message-author-role", "data-role")
_DEFAULT_USER_MARKERS = ('[data-role="user"]', ".user-avatar", '[data-testid="user-message"]')

# Consecutive identical polls before a reply counts as finished.
_STABLE_POLLS = 3


@dataclass(frozen=True)
class _ReplyMark:
    """Assistant reply count and latest reply text at one moment."""

    count: int
    text: str

    def differs(self, other: _ReplyMark) -> bool:
        return other.count > self.count or other.text != self.text


class SelectorAdapter(BaseAdapter):
    """Adapter for any chat front end described by an ``AdapterConfig``.

    Subclasses only provide ``variant_id`` and ``default_config``. A
    ``config`` passed at construction replaces the default entirely; use
    :meth:`merge_config` for partial overrides.
    """

    variant_id: ClassVar[str] = "generic"
    default_config: ClassVar[AdapterConfig | None] = None
    capabilities = frozenset(
        {
            Capability.CLEAR_CONVERSATION,
            Capability.HISTORY_EXTRACTION,
            Capability.ANTI_AUTOMATION_RECOVERY,
        }
    )

    def __init__(self, adapter_id: str, config: AdapterConfig | None, surface: Any, **kwargs: Any) -> None:
        resolved = config or self.default_config
        if resolved is None:
            raise AdapterError(
                f"{type(self).__name__} requires an AdapterConfig",
                detail=self.variant_id,
            )
        super().__init__(adapter_id, resolved, surface, **kwargs)
        self._reply_mark: _ReplyMark | None = None

    @classmethod
    def merge_config(cls, overrides: dict[str, Any]) -> AdapterConfig:
        """Return ``default_config`` with *overrides* applied (selectors merged per role)."""
        if cls.default_config is None:
            return AdapterConfig.model_validate(overrides)
        base = cls.default_config.model_dump()
        selectors = {**base["selectors"], **dict(overrides.get("selectors") or {})}
        return AdapterConfig.model_validate({**base, **overrides, "selectors": selectors})

    # ------------------------------------------------------------------
    # Initialize
    # ------------------------------------------------------------------

    async def initialize(self, *, budget: RetryBudget | None = None) -> None:
        if self.state is AdapterState.FAILED:
            raise AdapterStateError(f"Adapter {self.id} has failed and must be recreated", detail=self.state.value)
        if self.state in (AdapterState.SENDING, AdapterState.AWAITING_RESPONSE):
            raise AdapterStateError(f"Adapter {self.id} is busy ({self.state.value})", detail=self.state.value)
        if self.state is AdapterState.BLOCKED and not await self.handle_anti_automation():
            raise self.blocked_by or AntiAutomationDetected("unknown")

        budget = budget or self.new_budget()
        await self._set_state(AdapterState.INITIALIZING)
        await self._run_with_recovery("initialize", self._initialize_once, budget)
        await self._set_state(AdapterState.READY)
        logger.info("%s adapter %s ready (input: %s)", self.config.display_name, self.id, self.current_input_selector)

    async def _initialize_once(self) -> None:
        s = self.settings
        if not await self.surface.wait_for_document_ready(s.page_ready_timeout_ms):
            logger.warning("Document ready signal not seen within %dms on %s", s.page_ready_timeout_ms, self.config.service_id)

        await self._check_access()
        await self._raise_if_challenged()

        if self.config.has(SelectorRole.USAGE_LIMIT):
            limit = await self.surface.detect_pattern(self.config.candidates(SelectorRole.USAGE_LIMIT))
            if limit.detected:
                logger.warning("%s usage limit warning: %s", self.config.display_name, limit.text[:200])

        try:
            if self.config.has(SelectorRole.PAGE_READY):
                await self.surface.wait_for_element(
                    self.config.selector(SelectorRole.PAGE_READY),
                    s.page_ready_timeout_ms,
                    interval_ms=s.element_poll_ms,
                )
            await self._locate_input()
        except ElementNotFound:
            # A challenge that rendered late hides the composer.
            await self._raise_if_challenged()
            raise

    async def _check_access(self) -> None:
        path = urlparse(self.surface.current_url()).path
        for fragment in self.config.login_paths:
            if fragment and fragment in path:
                raise AccessRequired(self.config.display_name, f"login page {path}")
        if self.config.has(SelectorRole.LOGIN_INDICATOR):
            match = await self.surface.detect_pattern(self.config.candidates(SelectorRole.LOGIN_INDICATOR))
            if match.detected:
                raise AccessRequired(self.config.display_name, match.matched_selector)

    async def _detect(self) -> Detection:
        return await detect_anti_automation(self.surface, extra_indicators=self.config.extra_indicators)

    async def _raise_if_challenged(self) -> None:
        detection = await self._detect()
        if detection.detected:
            raise AntiAutomationDetected(detection.matched_indicator, detection.text)

    async def _locate_input(self) -> None:
        """Try input candidates in order; cache the first interactable one."""
        s = self.settings
        if self.current_input_selector:
            candidates: tuple[str, ...] = (self.current_input_selector,)
        else:
            candidates = self.config.candidates(SelectorRole.INPUT)
        if not candidates:
            raise ElementNotFound(f"<{SelectorRole.INPUT.value}>")

        for selector in candidates:
            try:
                handle = await self.surface.wait_for_element(selector, s.element_timeout_ms, interval_ms=s.element_poll_ms)
            except ElementNotFound:
                logger.debug("Input candidate %s not found", selector)
                continue
            if await self.surface.is_interactable(handle):
                self.current_input_selector = selector
                logger.debug("Found input element with selector: %s", selector)
                return
        raise ElementNotFound(", ".join(candidates), s.element_timeout_ms)

    async def check_ready(self) -> bool:
        if self.state is not AdapterState.READY or not self.current_input_selector:
            return False
        handle = await self.surface.query(self.current_input_selector)
        return handle is not None and await self.surface.is_interactable(handle)

    # ------------------------------------------------------------------
    # Send
    # ------------------------------------------------------------------

    async def _submit(self, text: str) -> None:
        s = self.settings
        self._reply_mark = await self._mark_replies()
        selector = self.current_input_selector or self.config.selector(SelectorRole.INPUT)
        handle = await self.surface.wait_for_element(selector, s.element_timeout_ms, interval_ms=s.element_poll_ms)
        if not await self.surface.set_value(handle, text):
            raise AdapterError(f"Could not write message into {selector}", detail=selector)

        await asyncio.sleep(s.input_delay_ms / 1000)

        if self.config.has(SelectorRole.SEND_BUTTON):
            found = await self.surface.first_present(self.config.candidates(SelectorRole.SEND_BUTTON))
            if found is not None and await self.surface.click(found[1]):
                logger.debug("Message submitted via %s", found[0])
                return
            logger.debug("Send control unavailable — falling back to Enter")

        if not await self.surface.press_enter(handle):
            raise AdapterError(f"Could not submit message from {selector}", detail=selector)

    # ------------------------------------------------------------------
    # Response
    # ------------------------------------------------------------------

    async def get_response(self, timeout_ms: int | None = None) -> str:
        if self.state is not AdapterState.READY:
            raise AdapterStateError(
                f"get_response requires a ready adapter, {self.id} is {self.state.value}",
                detail=self.state.value,
            )
        timeout_ms = timeout_ms or self.settings.response_timeout_ms
        await self._set_state(AdapterState.AWAITING_RESPONSE)

        try:
            await self._wait_for_response_start()
            await self._wait_for_response_complete(timeout_ms)
            await asyncio.sleep(self.settings.settle_delay_ms / 1000)
            text = await self._extract_latest_response()
        except asyncio.CancelledError:
            await self._settle_after_cancel("get_response")
            raise
        except ResponseTimeout as exc:
            detection = await self._detect()
            if detection.detected:
                blocked = AntiAutomationDetected(detection.matched_indicator, detection.text)
                await self._mark_blocked(blocked)
                raise blocked from exc
            await self._set_state(AdapterState.READY, reason=f"response timeout ({exc.phase})")
            raise
        except ServiceReportedError as exc:
            await self._set_state(AdapterState.READY, reason="service error")
            logger.warning("%s reported an error: %s", self.config.display_name, exc.text)
            raise
        except Exception as exc:
            await self._set_state(AdapterState.FAILED, reason=f"{type(exc).__name__}: {exc}")
            raise

        self._reply_mark = None
        self.last_activity = time.time()
        await self._set_state(AdapterState.READY)
        return text

    async def _wait_for_response_start(self) -> None:
        """Wait for a visible loading indicator or a reply newer than the last send."""
        s = self.settings
        loading = self.config.candidates(SelectorRole.LOADING_INDICATOR)
        replies = self.config.candidates(SelectorRole.RESPONSE_CONTAINER)
        mark = self._reply_mark

        async def probe() -> bool:
            if await self.surface.first_visible(loading) is not None:
                return True
            if mark is None:
                return await self.surface.first_present(replies) is not None
            return mark.differs(await self._mark_replies())

        result = await wait_until(probe, timeout_ms=s.response_start_timeout_ms, interval_ms=s.response_start_poll_ms)
        if result.timed_out:
            raise ResponseTimeout("start", s.response_start_timeout_ms, ", ".join(replies + loading))

    async def _wait_for_response_complete(self, timeout_ms: int) -> None:
        """Wait until no busy indicator is shown and the reply text holds still."""
        busy = self.config.candidates(SelectorRole.LOADING_INDICATOR) + self.config.candidates(
            SelectorRole.STOP_BUTTON
        )
        errors = self.config.candidates(SelectorRole.ERROR_INDICATOR)
        mark = self._reply_mark
        last: _ReplyMark | None = None
        stable = 0

        async def probe() -> tuple[str, str, ElementHandle | None] | None:
            nonlocal last, stable
            found = await self.surface.first_visible(errors)
            if found is not None:
                return ("error", found[0], found[1])
            current = None
            if await self.surface.first_visible(busy) is None:
                current = await self._mark_replies()
                if mark is not None and not mark.differs(current):
                    current = None
            if current is None or current != last:
                last, stable = current, 1 if current is not None else 0
            else:
                stable += 1
            return ("done", "", None) if stable >= _STABLE_POLLS else None

        result = await wait_until(probe, timeout_ms=timeout_ms, interval_ms=self.settings.response_poll_ms)
        if result.timed_out or result.value is None:
            raise ResponseTimeout("complete", timeout_ms, ", ".join(busy))

        outcome, selector, handle = result.value
        if outcome == "error":
            text = await self.surface.read_text(handle)
            raise ServiceReportedError(self.config.display_name, text or "unspecified error", selector)

    async def _assistant_replies(self) -> list[ElementHandle]:
        elements = await self.surface.query_all(self.config.selector(SelectorRole.RESPONSE_CONTAINER))
        return [e for e in elements if await self.surface.read_text(e) and not await self._is_user_element(e)]

    async def _mark_replies(self) -> _ReplyMark:
        replies = await self._assistant_replies()
        return _ReplyMark(len(replies), await self._content_of(replies[-1]) if replies else "")

    async def _extract_latest_response(self) -> str:
        replies = await self._assistant_replies()
        if replies:
            return await self._content_of(replies[-1])
        elements = await self.surface.query_all(self.config.selector(SelectorRole.RESPONSE_CONTAINER))
        if not elements:
            logger.warning("No response element found for %s", self.config.service_id)
            return ""
        return await self._content_of(elements[-1])

    async def _content_of(self, element: ElementHandle) -> str:
        for selector in self.config.content_selectors:
            nodes = await self.surface.query_within(element, selector)
            texts = [t for t in [await self.surface.read_text(n) for n in nodes] if t]
            if texts:
                return "\n".join(texts)
        return await self.surface.read_text(element)

    async def _is_user_element(self, element: ElementHandle) -> bool:
        for name in _USER_ROLE_ATTRIBUTES:
            if (await self.surface.get_attribute(element, name) or "").lower() == "user":
                return True
        if "user-message" in (await self.surface.get_attribute(element, "class") or ""):
            return True
        markers = self.config.candidates(SelectorRole.USER_MESSAGE) or _DEFAULT_USER_MARKERS
        return bool(await self.surface.query_within(element, ", ".join(markers)))

    # ------------------------------------------------------------------
    # Optional capabilities
    # ------------------------------------------------------------------

    async def clear_conversation(self) -> bool:
        """Start a fresh conversation; never raises."""
        try:
            found = None
            if self.config.has(SelectorRole.NEW_CHAT_BUTTON):
                found = await self.surface.first_present(self.config.candidates(SelectorRole.NEW_CHAT_BUTTON))
            if found is not None and await self.surface.click(found[1]):
                await asyncio.sleep(self.settings.clear_settle_ms / 1000)
            else:
                logger.info("No new-chat control on %s — reloading", self.config.service_id)
                await self.surface.reload()
            await self.initialize()
            return True
        except Exception as exc:
            logger.warning("Clearing conversation on %s failed: %s", self.id, exc)
            return False

    async def get_conversation_history(self) -> list[ConversationTurn]:
        """Extract the visible conversation in document order; ``[]`` on failure."""
        union = ", ".join(
            self.config.candidates(SelectorRole.USER_MESSAGE) + self.config.candidates(SelectorRole.RESPONSE_CONTAINER)
        )
        if not union:
            return []
        try:
            elements = await self.surface.query_all(union)
            turns: list[ConversationTurn] = []
            for position, element in enumerate(elements):
                content = await self.surface.read_text(element)
                if not content:
                    continue
                role = await self._role_of(element, position)
                turns.append(ConversationTurn(role=role, content=content, index=len(turns)))
            return turns
        except Exception as exc:
            logger.warning("History extraction on %s failed: %s", self.id, exc)
            return []

    async def _role_of(self, element: ElementHandle, position: int) -> str:
        for name in _USER_ROLE_ATTRIBUTES:
            value = (await self.surface.get_attribute(element, name) or "").lower()
            if value in ("user", "assistant"):
                return value
        if await self._is_user_element(element):
            return "user"
        return "user" if position % 2 == 0 else "assistant"

    async def handle_anti_automation(self) -> bool:
        """Wait out verification interstitials; reload on hard blocks.

        Returns:
            True if the page no longer shows a barrier (a ``Blocked`` adapter
            is moved back to ``Ready``), False otherwise.
        """
        s = self.settings
        try:
            detection = await self._detect()
            if not detection.detected:
                cleared = True
            elif is_waitable(detection):
                logger.info("Waiting up to %dms for %s to clear", s.challenge_wait_ms, detection.matched_indicator)
                result = await wait_until(
                    self._challenge_cleared,
                    timeout_ms=s.challenge_wait_ms,
                    interval_ms=s.challenge_poll_ms,
                )
                cleared = result.ok
                if not cleared:
                    logger.warning("Challenge %s still present after %dms", detection.matched_indicator, s.challenge_wait_ms)
            elif detection.kind in BLOCKING_KINDS:
                logger.info("Access blocked (%s) — reloading page", detection.matched_indicator)
                await self.surface.reload()
                cleared = False
            else:
                logger.warning("Manual action required for %s on %s", detection.matched_indicator, self.config.service_id)
                cleared = False
        except Exception as exc:
            logger.warning("Anti-automation handling on %s failed: %s", self.id, exc)
            return False

        if cleared and self.state is AdapterState.BLOCKED:
            await self._set_state(AdapterState.READY, reason="anti-automation cleared")
        return cleared

    async def _challenge_cleared(self) -> bool:
        if not (await self._detect()).detected:
            return True
        selector = self.current_input_selector or self.config.selector(SelectorRole.INPUT)
        if not selector:
            return False
        handle = await self.surface.query(selector)
        return handle is not None and await self.surface.is_interactable(handle)
