"""Browser session setup for one hosted chat page.

Launches Chromium through ``playwright.async_api``, applies the stealth
profile, optionally routes page traffic through the network engine and
navigates to the service.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import TYPE_CHECKING, AsyncIterator

from playwright.async_api import async_playwright

from chatpilot.browser.navigation import resilient_goto
from chatpilot.browser.stealth import apply_stealth_scripts, build_browser_profile
from chatpilot.browser.surface import PlaywrightSurface

if TYPE_CHECKING:
    from playwright.async_api import Browser, BrowserContext, Page

    from chatpilot.network.engine import NetworkResilienceEngine
    from chatpilot.settings.config import Settings

logger = logging.getLogger(__name__)


@dataclass
class BrowserSession:
    """Live handles for one hosted page."""

    browser: Browser
    context: BrowserContext
    page: Page
    surface: PlaywrightSurface


@asynccontextmanager
async def open_session(
    settings: Settings,
    url: str,
    *,
    network: NetworkResilienceEngine | None = None,
) -> AsyncIterator[BrowserSession]:
    """Open a browser on *url* and close it on exit.

    Args:
        settings: Browser and stealth settings are read from here.
        url: The chat service landing page.
        network: When given and ``browser.intercept_requests`` is on, every
            page request is routed through the engine's retry pipeline.
    """
    profile = build_browser_profile(
        headless=settings.browser.headless,
        channel=settings.browser.channel,
        explicit_proxy=settings.browser.proxy,
        explicit_user_agent=settings.browser.user_agent,
        randomize_fingerprint=settings.stealth.randomize_fingerprint,
    )

    async with async_playwright() as pw:
        browser = await pw.chromium.launch(**profile.launch_args)
        try:
            context = await browser.new_context(**profile.context_args)
            if settings.stealth.apply_stealth_scripts:
                await apply_stealth_scripts(context)
            page = await context.new_page()
            page.set_default_timeout(settings.browser.timeout_ms)

            if network is not None and settings.browser.intercept_requests:
                await network.attach(page)

            logger.info("Opening %s", url)
            await resilient_goto(page, url, timeout_ms=settings.browser.timeout_ms)
            yield BrowserSession(browser=browser, context=context, page=page, surface=PlaywrightSurface(page))
        finally:
            await browser.close()
