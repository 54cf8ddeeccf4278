"""Tests for anti-automation challenge detection."""

from __future__ import annotations

import pytest

from chatpilot.adapters.services import CLAUDE_CONFIG
from chatpilot.browser.anti_automation import (
    DEFAULT_INDICATORS,
    Detection,
    IndicatorKind,
    build_indicators,
    detect_anti_automation,
    indicator_kind,
    is_waitable,
)


class TestDetectAntiAutomation:
    """Tests for detect_anti_automation() against the fake surface."""

    @pytest.mark.anyio
    async def test_clean_page_is_not_detected(self, surface) -> None:
        """No indicator and a neutral title yields no detection."""
        detection = await detect_anti_automation(surface)

        assert not detection.detected
        assert detection.page_url == surface.url

    @pytest.mark.anyio
    async def test_captcha_iframe_detected(self, surface) -> None:
        """A captcha iframe is reported with its selector and kind."""
        surface.add('iframe[src*="captcha"]', text="solve me")

        detection = await detect_anti_automation(surface)

        assert detection.detected
        assert detection.matched_indicator == 'iframe[src*="captcha"]'
        assert detection.kind is IndicatorKind.CAPTCHA
        assert detection.text == "solve me"

    @pytest.mark.anyio
    async def test_first_matching_indicator_wins(self, surface) -> None:
        """Indicators are scanned in list order."""
        surface.add('div:has-text("Access denied")')
        surface.add('[class*="challenge"]')

        detection = await detect_anti_automation(surface)

        assert detection.matched_indicator == '[class*="challenge"]'
        assert detection.kind is IndicatorKind.CHALLENGE

    @pytest.mark.anyio
    async def test_title_fallback(self, surface) -> None:
        """A verification word in the title counts when no selector matches."""
        surface.page_title = "Human Verification Required"

        detection = await detect_anti_automation(surface)

        assert detection.detected
        assert detection.matched_indicator == "page_title"
        assert detection.kind is IndicatorKind.VERIFICATION

    @pytest.mark.anyio
    async def test_extra_service_indicators(self, surface) -> None:
        """Service-specific selectors are scanned after the defaults."""
        surface.add(".access-denied", text="Not available in your region")

        detection = await detect_anti_automation(surface, extra_indicators=(".access-denied",))

        assert detection.detected
        assert detection.kind is IndicatorKind.ACCESS_DENIED

    @pytest.mark.anyio
    async def test_localized_claude_interstitial(self, surface) -> None:
        """The Chinese "verifying you are human" page is a waitable verification."""
        marker = 'div:has-text("正在验证您是否是真人")'
        surface.add(marker, text="正在验证您是否是真人。这可能需要几秒钟时间。")

        detection = await detect_anti_automation(surface, extra_indicators=CLAUDE_CONFIG.extra_indicators)

        assert detection.matched_indicator == marker
        assert detection.kind is IndicatorKind.VERIFICATION
        assert is_waitable(detection)


class TestIndicatorHelpers:
    """Tests for kind inference and indicator list building."""

    def test_indicator_kind_inference(self) -> None:
        assert indicator_kind('div:has-text("Checking your browser")') is IndicatorKind.CLOUDFLARE
        assert indicator_kind('[data-testid="verification"]') is IndicatorKind.VERIFICATION
        assert indicator_kind(".rate-limit") is IndicatorKind.RATE_LIMITED
        assert indicator_kind("#something-else") is IndicatorKind.CHALLENGE

    def test_build_indicators_dedupes_defaults(self) -> None:
        """Extras already in the default list are not appended twice."""
        indicators = build_indicators(['[data-testid="verification"]', ".new-barrier", ".new-barrier"])

        assert len(indicators) == len(DEFAULT_INDICATORS) + 1
        assert indicators[-1][0] == ".new-barrier"

    def test_waitable_kinds(self) -> None:
        assert is_waitable(Detection(detected=True, kind=IndicatorKind.CLOUDFLARE))
        assert is_waitable(Detection(detected=True, kind=IndicatorKind.VERIFICATION))
        assert not is_waitable(Detection(detected=True, kind=IndicatorKind.CAPTCHA))
        assert not is_waitable(Detection(detected=True, kind=IndicatorKind.ACCESS_DENIED))

    def test_verifying_text_is_waitable(self) -> None:
        """Interstitial text mentioning verification is waitable regardless of kind."""
        detection = Detection(detected=True, kind=IndicatorKind.ACCESS_DENIED, text="Verifying your browser...")
        assert is_waitable(detection)

    def test_to_dict_truncates_text(self) -> None:
        detection = Detection(detected=True, matched_indicator="x", kind=IndicatorKind.CAPTCHA, text="a" * 500)
        data = detection.to_dict()
        assert data["kind"] == "captcha"
        assert len(data["text"]) == 200
