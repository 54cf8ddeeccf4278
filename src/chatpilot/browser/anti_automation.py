"""Anti-automation challenge detection.

Stateless scan of the current page for bot-detection barriers:

1. **Selectors**: an ordered list of provider signatures and text markers,
   first match wins.
2. **Title**: the document title is checked for verification/challenge words
   once the selector list is exhausted.

Used by adapters during initialization (a match moves them to ``Blocked``)
and by the network engine after delegating anti-automation recovery.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Sequence

if TYPE_CHECKING:
    from chatpilot.browser.surface import AutomationSurface

logger = logging.getLogger(__name__)


class IndicatorKind(str, Enum):
    """Families of anti-automation barriers."""

    CAPTCHA = "captcha"
    CHALLENGE = "challenge"
    CLOUDFLARE = "cloudflare"
    VERIFICATION = "verification"
    ACCESS_DENIED = "access_denied"
    RATE_LIMITED = "rate_limited"


# Kinds that usually clear by themselves after some in-page script runs.
WAITABLE_KINDS = frozenset({IndicatorKind.CHALLENGE, IndicatorKind.VERIFICATION, IndicatorKind.CLOUDFLARE})

# Kinds where waiting does not help; a reload is the only automatic option.
BLOCKING_KINDS = frozenset({IndicatorKind.ACCESS_DENIED, IndicatorKind.RATE_LIMITED})


@dataclass
class Detection:
    """Result of scanning a page for anti-automation barriers."""

    detected: bool = False
    matched_indicator: str = ""
    kind: IndicatorKind | None = None
    text: str = ""
    page_url: str = ""

    def to_dict(self) -> dict[str, str | bool | None]:
        return {
            "detected": self.detected,
            "matched_indicator": self.matched_indicator,
            "kind": self.kind.value if self.kind else None,
            "text": self.text[:200],
            "page_url": self.page_url,
        }


# Signatures: (selector, kind). Text markers use Playwright's :has-text().
DEFAULT_INDICATORS: list[tuple[str, IndicatorKind]] = [
    ('iframe[src*="captcha"]', IndicatorKind.CAPTCHA),
    ('[class*="captcha"]', IndicatorKind.CAPTCHA),
    ('[id*="captcha"]', IndicatorKind.CAPTCHA),
    ('[data-testid*="captcha"]', IndicatorKind.CAPTCHA),
    ('iframe[src*="challenges.cloudflare.com"]', IndicatorKind.CLOUDFLARE),
    ('[class*="cloudflare"]', IndicatorKind.CLOUDFLARE),
    ('[id*="cloudflare"]', IndicatorKind.CLOUDFLARE),
    ('[class*="challenge"]', IndicatorKind.CHALLENGE),
    ('[id*="challenge"]', IndicatorKind.CHALLENGE),
    ('[data-testid*="challenge"]', IndicatorKind.CHALLENGE),
    ('[data-testid="verification"]', IndicatorKind.VERIFICATION),
    ('[aria-label*="verification"]', IndicatorKind.VERIFICATION),
    ('div:has-text("Verifying you are human")', IndicatorKind.VERIFICATION),
    ('div:has-text("Please verify")', IndicatorKind.VERIFICATION),
    ('div:has-text("Security check")', IndicatorKind.CHALLENGE),
    ('div:has-text("Checking your browser")', IndicatorKind.CLOUDFLARE),
    ('div:has-text("DDoS protection")', IndicatorKind.CLOUDFLARE),
    ('[class*="blocked"]', IndicatorKind.ACCESS_DENIED),
    ('[class*="forbidden"]', IndicatorKind.ACCESS_DENIED),
    ('[class*="access-denied"]', IndicatorKind.ACCESS_DENIED),
    ('div:has-text("Access denied")', IndicatorKind.ACCESS_DENIED),
    ('div:has-text("Forbidden")', IndicatorKind.ACCESS_DENIED),
    ('div:has-text("Rate limited")', IndicatorKind.RATE_LIMITED),
]

_TITLE_WORDS: list[tuple[str, IndicatorKind]] = [
    ("verification", IndicatorKind.VERIFICATION),
    ("challenge", IndicatorKind.CHALLENGE),
    ("captcha", IndicatorKind.CAPTCHA),
    ("security", IndicatorKind.CHALLENGE),
]

# Substring → kind, for service-specific indicators supplied as bare selectors.
_KIND_HINTS: list[tuple[str, IndicatorKind]] = [
    ("captcha", IndicatorKind.CAPTCHA),
    ("cloudflare", IndicatorKind.CLOUDFLARE),
    ("checking your browser", IndicatorKind.CLOUDFLARE),
    ("verif", IndicatorKind.VERIFICATION),
    ("验证", IndicatorKind.VERIFICATION),
    ("challenge", IndicatorKind.CHALLENGE),
    ("rate", IndicatorKind.RATE_LIMITED),
    ("limit", IndicatorKind.RATE_LIMITED),
    ("blocked", IndicatorKind.ACCESS_DENIED),
    ("forbidden", IndicatorKind.ACCESS_DENIED),
    ("denied", IndicatorKind.ACCESS_DENIED),
]


def indicator_kind(selector: str) -> IndicatorKind:
    """Infer the barrier kind of a bare indicator selector."""
    lowered = selector.lower()
    for hint, kind in _KIND_HINTS:
        if hint in lowered:
            return kind
    return IndicatorKind.CHALLENGE


def build_indicators(extra: Sequence[str] = ()) -> list[tuple[str, IndicatorKind]]:
    """Return the default indicator list followed by *extra* service indicators."""
    known = {selector for selector, _ in DEFAULT_INDICATORS}
    indicators = list(DEFAULT_INDICATORS)
    for selector in extra:
        if selector not in known:
            indicators.append((selector, indicator_kind(selector)))
            known.add(selector)
    return indicators


async def detect_anti_automation(
    surface: AutomationSurface,
    *,
    extra_indicators: Sequence[str] = (),
) -> Detection:
    """Scan the page behind *surface* for anti-automation barriers.

    Args:
        surface: The automation surface of the page to inspect.
        extra_indicators: Service-specific selectors appended to the defaults.

    Returns:
        A ``Detection``; ``detected`` is False when nothing matched.
    """
    page_url = surface.current_url()

    for selector, kind in build_indicators(extra_indicators):
        handle = await surface.query(selector)
        if handle is None:
            continue
        text = await surface.read_text(handle)
        logger.info("Anti-automation indicator detected: %s (%s) on %s", kind.value, selector, page_url)
        return Detection(
            detected=True,
            matched_indicator=selector,
            kind=kind,
            text=text,
            page_url=page_url,
        )

    title = await surface.title()
    lowered = title.lower()
    for word, kind in _TITLE_WORDS:
        if word in lowered:
            logger.info("Anti-automation title detected: %r on %s", title, page_url)
            return Detection(
                detected=True,
                matched_indicator="page_title",
                kind=kind,
                text=title,
                page_url=page_url,
            )

    return Detection(page_url=page_url)


def is_waitable(detection: Detection) -> bool:
    """Return True if *detection* is a barrier that may clear by waiting."""
    if detection.kind in WAITABLE_KINDS:
        return True
    # Some interstitials only expose their purpose in text.
    return "verifying" in detection.text.lower()
