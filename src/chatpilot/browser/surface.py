"""Automation Surface: the primitive page operations an adapter consumes.

``AutomationSurface`` is the abstract interface; ``PlaywrightSurface`` drives
an async Playwright ``Page`` through locators only. No method evaluates
caller-supplied script: every interaction is a fixed Playwright call.
"""

from __future__ import annotations

import abc
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Sequence

from playwright.async_api import Error as PlaywrightError, TimeoutError as PlaywrightTimeout

from chatpilot.browser.waiting import wait_until
from chatpilot.exceptions import ElementNotFound

if TYPE_CHECKING:
    from playwright.async_api import Locator, Page

logger = logging.getLogger(__name__)

ElementHandle = Any

_ACTION_TIMEOUT_MS = 5_000


@dataclass
class PatternMatch:
    """Result of :meth:`AutomationSurface.detect_pattern`."""

    detected: bool = False
    matched_selector: str = ""
    text: str = ""


class AutomationSurface(abc.ABC):
    """Primitive element-location and interaction operations on one hosted page."""

    # ------------------------------------------------------------------
    # Required primitives
    # ------------------------------------------------------------------

    @abc.abstractmethod
    async def query(self, selector: str) -> ElementHandle | None:
        """Return the first element matching *selector*, or ``None``."""

    @abc.abstractmethod
    async def query_all(self, selector: str) -> list[ElementHandle]:
        """Return every element matching *selector*, in document order."""

    @abc.abstractmethod
    async def query_within(self, handle: ElementHandle, selector: str) -> list[ElementHandle]:
        """Return descendants of *handle* matching *selector*."""

    @abc.abstractmethod
    async def read_text(self, handle: ElementHandle) -> str:
        """Return the visible text of *handle* (empty string if unreadable)."""

    @abc.abstractmethod
    async def get_attribute(self, handle: ElementHandle, name: str) -> str | None:
        """Return attribute *name* of *handle*."""

    @abc.abstractmethod
    async def set_value(self, handle: ElementHandle, text: str) -> bool:
        """Clear *handle*, set *text* and raise the page's input/change signals."""

    @abc.abstractmethod
    async def click(self, handle: ElementHandle) -> bool:
        """Click *handle*; ``False`` if it is not interactable."""

    @abc.abstractmethod
    async def press_enter(self, handle: ElementHandle) -> bool:
        """Synthesize an Enter key submission on *handle*."""

    @abc.abstractmethod
    async def is_interactable(self, handle: ElementHandle) -> bool:
        """Return True if *handle* is visible and enabled."""

    @abc.abstractmethod
    async def wait_for_document_ready(self, timeout_ms: int) -> bool:
        """Wait for the document-ready signal; ``False`` on timeout."""

    @abc.abstractmethod
    async def reload(self) -> None:
        """Reload the hosted page."""

    @abc.abstractmethod
    def current_url(self) -> str:
        """Return the page URL."""

    @abc.abstractmethod
    async def title(self) -> str:
        """Return the document title."""

    # ------------------------------------------------------------------
    # Helpers built on the primitives
    # ------------------------------------------------------------------

    async def wait_for_element(
        self,
        selector: str,
        timeout_ms: int,
        *,
        interval_ms: int = 100,
    ) -> ElementHandle:
        """Wait for *selector* to match.

        Raises:
            ElementNotFound: If nothing matched within *timeout_ms*.
        """
        result = await wait_until(
            lambda: self.query(selector),
            timeout_ms=timeout_ms,
            interval_ms=interval_ms,
        )
        if result.timed_out:
            raise ElementNotFound(selector, timeout_ms)
        return result.value

    async def detect_pattern(self, selectors: Sequence[str]) -> PatternMatch:
        """Return the first selector in *selectors* that matches anything."""
        for selector in selectors:
            handle = await self.query(selector)
            if handle is not None:
                return PatternMatch(
                    detected=True,
                    matched_selector=selector,
                    text=await self.read_text(handle),
                )
        return PatternMatch()

    async def first_present(self, selectors: Sequence[str]) -> tuple[str, ElementHandle] | None:
        """Return ``(selector, handle)`` for the first selector that matches."""
        for selector in selectors:
            handle = await self.query(selector)
            if handle is not None:
                return selector, handle
        return None

    async def first_visible(self, selectors: Sequence[str]) -> tuple[str, ElementHandle] | None:
        """Like :meth:`first_present`, but only interactable matches count.

        Front ends keep empty live regions and idle spinners in the DOM, so
        indicators are only meaningful while they are shown.
        """
        for selector in selectors:
            for handle in await self.query_all(selector):
                if await self.is_interactable(handle):
                    return selector, handle
        return None


class PlaywrightSurface(AutomationSurface):
    """``AutomationSurface`` over an async Playwright ``Page``.

    Args:
        page: The Playwright page hosting the chat front end.
        action_timeout_ms: Timeout for individual locator actions.
    """

    def __init__(self, page: Page, *, action_timeout_ms: int = _ACTION_TIMEOUT_MS) -> None:
        self._page = page
        self._timeout = action_timeout_ms

    @property
    def page(self) -> Page:
        return self._page

    async def query(self, selector: str) -> Locator | None:
        try:
            locator = self._page.locator(selector)
            if await locator.count() == 0:
                return None
            return locator.first
        except PlaywrightError as exc:
            logger.debug("query(%s) failed: %s", selector, exc)
            return None

    async def query_all(self, selector: str) -> list[Locator]:
        try:
            return await self._page.locator(selector).all()
        except PlaywrightError as exc:
            logger.debug("query_all(%s) failed: %s", selector, exc)
            return []

    async def query_within(self, handle: Locator, selector: str) -> list[Locator]:
        try:
            return await handle.locator(selector).all()
        except PlaywrightError as exc:
            logger.debug("query_within(%s) failed: %s", selector, exc)
            return []

    async def read_text(self, handle: Locator) -> str:
        try:
            return (await handle.inner_text(timeout=self._timeout)).strip()
        except PlaywrightError:
            try:
                return ((await handle.text_content(timeout=self._timeout)) or "").strip()
            except PlaywrightError as exc:
                logger.debug("read_text failed: %s", exc)
                return ""

    async def get_attribute(self, handle: Locator, name: str) -> str | None:
        try:
            return await handle.get_attribute(name, timeout=self._timeout)
        except PlaywrightError:
            return None

    async def set_value(self, handle: Locator, text: str) -> bool:
        try:
            await handle.fill("", timeout=self._timeout)
            # fill() raises the input event; some front ends listen for change.
            await handle.fill(text, timeout=self._timeout)
            await handle.dispatch_event("change")
            return True
        except PlaywrightError as exc:
            logger.warning("Input failed: %s", exc)
            return False

    async def click(self, handle: Locator) -> bool:
        if not await self.is_interactable(handle):
            logger.debug("Element is not interactable — click skipped")
            return False
        try:
            await handle.click(timeout=self._timeout)
            return True
        except PlaywrightError as exc:
            logger.warning("Click failed: %s", exc)
            return False

    async def press_enter(self, handle: Locator) -> bool:
        try:
            await handle.press("Enter", timeout=self._timeout)
            return True
        except PlaywrightError as exc:
            logger.warning("Enter key submission failed: %s", exc)
            return False

    async def is_interactable(self, handle: Locator) -> bool:
        try:
            return await handle.is_visible() and await handle.is_enabled()
        except PlaywrightError:
            return False

    async def wait_for_document_ready(self, timeout_ms: int) -> bool:
        try:
            await self._page.wait_for_load_state("load", timeout=timeout_ms)
            return True
        except PlaywrightTimeout:
            return False

    async def reload(self) -> None:
        from chatpilot.browser.navigation import resilient_reload

        await resilient_reload(self._page)

    def current_url(self) -> str:
        return self._page.url

    async def title(self) -> str:
        try:
            return await self._page.title()
        except PlaywrightError:
            return ""
