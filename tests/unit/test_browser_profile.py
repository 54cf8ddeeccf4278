"""Tests for browser hardening, logging setup and built-in service configs.

Covers:
- Browser stealth (fingerprint randomization, stealth scripts)
- JSON log formatting
- Built-in variant configs and partial selector overrides
"""

from __future__ import annotations

import json
import logging
import sys
from unittest.mock import AsyncMock

import pytest

from chatpilot.adapters.services import BUILTIN_VARIANTS, ClaudeAdapter
from chatpilot.adapters.selector import SelectorAdapter
from chatpilot.browser.stealth import apply_stealth_scripts, build_browser_profile
from chatpilot.exceptions import AdapterError
from chatpilot.logging_setup import JsonFormatter
from chatpilot.models.adapter import SelectorRole


# ===========================================================================
# Stealth
# ===========================================================================


class TestBuildBrowserProfile:
    """build_browser_profile produces correct Playwright args."""

    def test_default_headless(self):
        profile = build_browser_profile(headless=True)
        assert profile.launch_args["headless"] is True
        assert "proxy" not in profile.launch_args
        assert "channel" not in profile.launch_args

    def test_channel_and_proxy(self):
        profile = build_browser_profile(headless=False, channel="chrome", explicit_proxy=" http://my-proxy:3128 ")
        assert profile.launch_args["channel"] == "chrome"
        assert profile.launch_args["proxy"] == {"server": "http://my-proxy:3128"}
        assert profile.proxy_url == "http://my-proxy:3128"

    def test_explicit_user_agent(self):
        profile = build_browser_profile(headless=True, explicit_user_agent="MyBot/1.0")
        assert profile.context_args["user_agent"] == "MyBot/1.0"

    def test_randomize_fingerprint_sets_fields(self):
        profile = build_browser_profile(headless=True, randomize_fingerprint=True)
        for key in ("user_agent", "viewport", "locale", "timezone_id"):
            assert key in profile.context_args

    def test_no_fingerprint_randomization(self):
        profile = build_browser_profile(headless=True, randomize_fingerprint=False)
        assert profile.context_args == {}


class TestApplyStealthScripts:
    """apply_stealth_scripts installs the init script on the context."""

    @pytest.mark.anyio
    async def test_injects_scripts(self):
        context = AsyncMock()
        await apply_stealth_scripts(context)
        context.add_init_script.assert_awaited_once()
        assert "webdriver" in context.add_init_script.await_args.args[0]


# ===========================================================================
# Logging
# ===========================================================================


class TestJsonFormatter:
    def test_formats_record_as_json(self):
        record = logging.LogRecord("chatpilot.network", logging.WARNING, __file__, 1, "retry %d", (2,), None)
        entry = json.loads(JsonFormatter().format(record))
        assert entry["severity"] == "WARNING"
        assert entry["message"] == "retry 2"
        assert entry["logger"] == "chatpilot.network"
        assert "exception" not in entry

    def test_includes_exception(self):
        try:
            raise ValueError("bad selector")
        except ValueError:
            record = logging.LogRecord("chatpilot", logging.ERROR, __file__, 1, "failed", (), sys.exc_info())
        entry = json.loads(JsonFormatter().format(record))
        assert "ValueError: bad selector" in entry["exception"]


# ===========================================================================
# Service configs
# ===========================================================================


class TestServiceConfigs:
    """Built-in variants carry a usable default config."""

    @pytest.mark.parametrize("variant", ["chatgpt", "claude", "gemini", "copilot"])
    def test_default_config_has_core_roles(self, variant):
        config = BUILTIN_VARIANTS[variant].default_config
        assert config.service_id == variant
        assert config.home_url.startswith("https://")
        assert config.has(SelectorRole.INPUT)
        assert config.has(SelectorRole.RESPONSE_CONTAINER)

    def test_generic_requires_config(self, surface):
        with pytest.raises(AdapterError):
            SelectorAdapter("generic_1_abc", None, surface)

    def test_merge_config_overrides_one_role(self):
        config = ClaudeAdapter.merge_config({"selectors": {"input": "#composer"}})

        assert config.candidates(SelectorRole.INPUT) == ("#composer",)
        assert config.candidates(SelectorRole.SEND_BUTTON) == ClaudeAdapter.default_config.candidates(
            SelectorRole.SEND_BUTTON
        )
        assert config.service_id == "claude"

    def test_merge_config_without_default(self):
        config = SelectorAdapter.merge_config(
            {"service_id": "acme", "display_name": "Acme", "selectors": {"input": ["#a", " ", "#b"]}}
        )
        assert config.candidates(SelectorRole.INPUT) == ("#a", "#b")
        assert config.selector(SelectorRole.INPUT) == "#a, #b"
