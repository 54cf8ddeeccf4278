"""Browser anti-detection: fingerprint randomization and stealth patches.

Provides a ``BrowserProfile`` that configures Playwright's ``launch()`` and
``new_context()`` calls with:

- Randomized browser fingerprints (viewport, locale, timezone, user-agent)
- Stealth patches (hide ``navigator.webdriver``, mimic ``chrome.runtime``)

Usage::

    from chatpilot.browser.stealth import build_browser_profile, apply_stealth_scripts

    profile = build_browser_profile()
    browser = await pw.chromium.launch(**profile.launch_args)
    context = await browser.new_context(**profile.context_args)
    await apply_stealth_scripts(context)
"""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from playwright.async_api import BrowserContext

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Common user-agent strings (Chrome on desktop, recent versions)
# ---------------------------------------------------------------------------

_USER_AGENTS: list[str] = [
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/128.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/128.0.0.0 Safari/537.36",
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/128.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/127.0.0.0 Safari/537.36",
]

# Chat front ends need room for the sidebar plus the composer.
_VIEWPORTS: list[dict[str, int]] = [
    {"width": 1920, "height": 1080},
    {"width": 1536, "height": 864},
    {"width": 1440, "height": 900},
    {"width": 1366, "height": 768},
]

_LOCALE_TIMEZONE_PAIRS: list[tuple[str, str]] = [
    ("en-US", "America/New_York"),
    ("en-US", "America/Chicago"),
    ("en-US", "America/Los_Angeles"),
    ("en-GB", "Europe/London"),
    ("en-CA", "America/Toronto"),
]

# Fixed init script; installed once per context before any page loads.
_STEALTH_SCRIPTS: str = """
Object.defineProperty(navigator, 'webdriver', { get: () => undefined });
if (!window.chrome) window.chrome = {};
if (!window.chrome.runtime) window.chrome.runtime = {};
Object.defineProperty(navigator, 'languages', { get: () => ['en-US', 'en'] });
"""


@dataclass
class BrowserProfile:
    """All Playwright launch + context arguments for a single session."""

    launch_args: dict[str, Any] = field(default_factory=dict)
    context_args: dict[str, Any] = field(default_factory=dict)

    # Metadata for logging
    user_agent: str = ""
    viewport: dict[str, int] = field(default_factory=dict)
    locale: str = ""
    timezone_id: str = ""
    proxy_url: str = ""


def build_browser_profile(
    *,
    headless: bool = True,
    channel: str = "",
    explicit_proxy: str = "",
    explicit_user_agent: str = "",
    randomize_fingerprint: bool = True,
) -> BrowserProfile:
    """Build a ``BrowserProfile`` with optional proxy and fingerprint randomization.

    Args:
        headless: Run browser in headless mode.
        channel: Browser channel (``chrome``, ``msedge``); empty for bundled Chromium.
        explicit_proxy: A single proxy URL.
        explicit_user_agent: Force this user-agent (overrides random).
        randomize_fingerprint: Randomize viewport, locale and timezone.
    """
    profile = BrowserProfile()

    profile.launch_args["headless"] = headless
    if channel:
        profile.launch_args["channel"] = channel

    proxy_url = explicit_proxy.strip()
    if proxy_url:
        profile.launch_args["proxy"] = {"server": proxy_url}
        profile.proxy_url = proxy_url
        logger.debug("Using proxy: %s", proxy_url)

    ctx = profile.context_args

    if explicit_user_agent:
        ctx["user_agent"] = explicit_user_agent
        profile.user_agent = explicit_user_agent
    elif randomize_fingerprint:
        ua = random.choice(_USER_AGENTS)
        ctx["user_agent"] = ua
        profile.user_agent = ua

    if randomize_fingerprint:
        vp = random.choice(_VIEWPORTS)
        ctx["viewport"] = vp
        profile.viewport = vp

        locale, tz = random.choice(_LOCALE_TIMEZONE_PAIRS)
        ctx["locale"] = locale
        ctx["timezone_id"] = tz
        profile.locale = locale
        profile.timezone_id = tz

    return profile


async def apply_stealth_scripts(context: BrowserContext) -> None:
    """Install the stealth init script on every page of *context*.

    Call this **before** opening the first page so the patches run in every
    frame from the start.
    """
    await context.add_init_script(_STEALTH_SCRIPTS)
    logger.debug("Stealth scripts installed")
