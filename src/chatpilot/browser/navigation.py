"""Resilient page navigation with automatic wait-strategy fallback.

Chat front ends rarely reach ``networkidle``: they hold streaming
connections and analytics beacons open indefinitely. This module wraps
Playwright's ``page.goto`` / ``page.reload`` with a fallback chain: try
``networkidle`` first, then ``load``, then ``domcontentloaded``.
"""

from __future__ import annotations

import logging
from typing import Literal

from playwright.async_api import Error as PlaywrightError, Page, Response, TimeoutError as PlaywrightTimeout

from chatpilot.exceptions import NavigationError

logger = logging.getLogger(__name__)

# Playwright error substrings that indicate non-retryable navigation failures.
_NON_RETRYABLE_ERRORS: tuple[str, ...] = (
    "ERR_NAME_NOT_RESOLVED",
    "ERR_CONNECTION_REFUSED",
    "ERR_CONNECTION_RESET",
    "ERR_CONNECTION_CLOSED",
    "ERR_SSL_PROTOCOL_ERROR",
    "ERR_CERT_AUTHORITY_INVALID",
    "ERR_CERT_COMMON_NAME_INVALID",
    "ERR_ADDRESS_UNREACHABLE",
)

WaitUntil = Literal["commit", "domcontentloaded", "load", "networkidle"]

_FALLBACK_STRATEGY: list[WaitUntil] = ["networkidle", "load", "domcontentloaded"]


async def resilient_goto(
    page: Page,
    url: str,
    *,
    timeout_ms: int = 30_000,
    wait_until: WaitUntil = "networkidle",
) -> Response | None:
    """Navigate to *url* with automatic wait-strategy fallback.

    Args:
        page: Playwright page instance.
        url: Target URL to navigate to.
        timeout_ms: Timeout per attempt in milliseconds.
        wait_until: Preferred initial wait strategy.

    Returns:
        The main-frame ``Response``, or ``None``.

    Raises:
        NavigationError: On DNS, connection or certificate failures.
        PlaywrightTimeout: If all fallback strategies time out.
    """
    last_error: PlaywrightTimeout | None = None
    for strategy in _build_fallback_chain(wait_until):
        try:
            logger.debug("goto %s (wait_until=%s, timeout=%dms)", url, strategy, timeout_ms)
            return await page.goto(url, wait_until=strategy, timeout=timeout_ms)
        except PlaywrightError as exc:
            _raise_if_non_retryable(exc, url)
            if not isinstance(exc, PlaywrightTimeout):
                raise
            logger.warning(
                "Navigation to %s timed out with wait_until=%s — retrying with weaker strategy",
                url,
                strategy,
            )
            last_error = exc

    raise last_error  # type: ignore[misc]


async def resilient_reload(
    page: Page,
    *,
    timeout_ms: int = 15_000,
    wait_until: WaitUntil = "networkidle",
) -> Response | None:
    """Reload the current page with the same fallback as :func:`resilient_goto`."""
    last_error: PlaywrightTimeout | None = None
    for strategy in _build_fallback_chain(wait_until):
        try:
            logger.debug("reload (wait_until=%s, timeout=%dms)", strategy, timeout_ms)
            return await page.reload(wait_until=strategy, timeout=timeout_ms)
        except PlaywrightError as exc:
            _raise_if_non_retryable(exc, page.url)
            if not isinstance(exc, PlaywrightTimeout):
                raise
            logger.warning("Reload timed out with wait_until=%s — retrying with weaker strategy", strategy)
            last_error = exc

    raise last_error  # type: ignore[misc]


def _raise_if_non_retryable(exc: PlaywrightError, url: str) -> None:
    error_msg = str(exc)
    for pattern in _NON_RETRYABLE_ERRORS:
        if pattern in error_msg:
            reason = pattern.replace("ERR_", "").replace("_", " ").lower()
            logger.warning("Navigation to %s failed (non-retryable): %s", url, pattern)
            raise NavigationError(url, reason) from exc


def _build_fallback_chain(preferred: WaitUntil) -> list[WaitUntil]:
    """Return the fallback chain starting from *preferred*.

    If *preferred* is in the default chain, returns from that point onward.
    Otherwise returns ``[preferred]`` followed by the full default chain.
    """
    if preferred in _FALLBACK_STRATEGY:
        idx = _FALLBACK_STRATEGY.index(preferred)
        return _FALLBACK_STRATEGY[idx:]
    return [preferred, *_FALLBACK_STRATEGY]
