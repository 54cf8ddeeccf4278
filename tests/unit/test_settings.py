"""Unit tests for chatpilot settings.

Covers default loading, env var overrides, the dev profile and the
adapter, network and recovery sections.
"""

from __future__ import annotations

import os


class TestSettings:
    """Core settings loading and override mechanics."""

    def test_default_settings_load(self, monkeypatch):
        """Settings should load without any env overrides."""
        monkeypatch.delenv("CHATPILOT_ENV", raising=False)
        from chatpilot.settings import get_settings

        s = get_settings()
        assert s.env == "local"
        assert s.log_level == "INFO"
        assert s.browser.headless is True

    def test_get_settings_is_cached(self):
        from chatpilot.settings import get_settings

        assert get_settings() is get_settings()

    def test_env_override(self, monkeypatch):
        """CHATPILOT_NETWORK__MAX_RETRIES should override the default."""
        monkeypatch.setenv("CHATPILOT_NETWORK__MAX_RETRIES", "5")
        from chatpilot.settings.config import Settings

        s = Settings()
        assert s.network.max_retries == 5

    def test_multiple_section_overrides(self, monkeypatch):
        """Multiple env overrides across sections should all apply."""
        monkeypatch.setenv("CHATPILOT_ADAPTER__ELEMENT_TIMEOUT_MS", "2500")
        monkeypatch.setenv("CHATPILOT_RECOVERY__ENABLED", "false")
        monkeypatch.setenv("CHATPILOT_BROWSER__HEADLESS", "false")
        from chatpilot.settings.config import Settings

        s = Settings()
        assert s.adapter.element_timeout_ms == 2500
        assert s.recovery.enabled is False
        assert s.browser.headless is False

    def test_dev_profile(self, monkeypatch):
        """CHATPILOT_ENV=dev should load settings.dev.toml."""
        monkeypatch.setenv("CHATPILOT_ENV", "dev")
        from chatpilot.settings.config import Settings

        s = Settings()
        assert s.env == "dev"
        assert s.debug is True
        assert s.log_level == "DEBUG"
        assert s.browser.headless is False
        # Sections the profile does not touch keep the defaults.
        assert s.network.timeout_ms == 30_000

    def test_log_level_normalized(self):
        from chatpilot.settings.config import Settings

        assert Settings(log_level="warning").log_level == "WARNING"

    def test_project_root_is_absolute(self):
        from chatpilot.settings.config import Settings

        assert os.path.isabs(Settings().project_root)


class TestAdapterSettings:
    """Adapter timing windows."""

    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("CHATPILOT_ENV", raising=False)
        from chatpilot.settings.config import Settings

        s = Settings()
        assert s.adapter.element_timeout_ms == 5_000
        assert s.adapter.response_start_timeout_ms == 10_000
        assert s.adapter.response_timeout_ms == 30_000
        assert s.adapter.response_poll_ms == 500
        assert s.adapter.settle_delay_ms == 1_000
        assert s.adapter.challenge_wait_ms == 30_000
        assert s.adapter.challenge_poll_ms == 2_000


class TestNetworkSettings:
    """Network resilience section."""

    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("CHATPILOT_ENV", raising=False)
        from chatpilot.settings.config import Settings

        s = Settings()
        assert s.network.timeout_ms == 30_000
        assert s.network.retry_delay_ms == 2_000
        assert s.network.max_retries == 3
        assert s.network.connection_check_interval_ms == 5_000
        assert s.network.anti_automation_retry_delay_ms == 10_000
        assert s.network.max_anti_automation_retries == 2
        assert s.network.request_retention_ms == 60_000


class TestRecoverySettings:
    """Recovery collaborator section."""

    def test_defaults(self):
        from chatpilot.settings.config import Settings

        s = Settings()
        assert s.recovery.max_retries == 2
        assert s.recovery.enabled is True
