"""Configuration loader for chatpilot using Pydantic settings.

Config precedence (highest wins):
  1. CLI flags / explicit constructor values
  2. Environment variables (CHATPILOT_* with __ for nesting)
  3. settings.local.toml
  4. settings.<env>.toml
  5. settings.default.toml
"""

from __future__ import annotations

import os
import tomllib
from functools import lru_cache
from pathlib import Path
from typing import Any

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# ---------------------------------------------------------------------------
# Path helpers
# ---------------------------------------------------------------------------

_THIS_DIR = Path(__file__).resolve().parent
PROJECT_ROOT = Path(os.getenv("CHATPILOT_PROJECT_ROOT", _THIS_DIR.parents[2]))
CONFIG_DIR = PROJECT_ROOT / "config"

ENV_VAR_NAME = "CHATPILOT_ENV"
DEFAULT_ENV = "local"


def _resolve_env() -> str:
    return (os.getenv(ENV_VAR_NAME) or DEFAULT_ENV).strip()


def _load_toml(path: Path) -> dict[str, Any]:
    if path.is_file():
        with open(path, "rb") as f:
            return tomllib.load(f)
    return {}


# ---------------------------------------------------------------------------
# Section models
# ---------------------------------------------------------------------------


class AdapterSettings(BaseSettings):
    """Bounded-wait windows used by every adapter (milliseconds)."""

    model_config = SettingsConfigDict(env_prefix="CHATPILOT_ADAPTER__")

    element_timeout_ms: int = 5_000
    element_poll_ms: int = 100
    page_ready_timeout_ms: int = 10_000
    response_start_timeout_ms: int = 10_000
    response_start_poll_ms: int = 100
    response_timeout_ms: int = 30_000
    response_poll_ms: int = 500
    settle_delay_ms: int = 1_000
    input_delay_ms: int = 500
    clear_settle_ms: int = 3_000
    challenge_wait_ms: int = 30_000
    challenge_poll_ms: int = 2_000


class NetworkSettings(BaseSettings):
    """Request timeout, retry budgets and connectivity probing."""

    model_config = SettingsConfigDict(env_prefix="CHATPILOT_NETWORK__")

    timeout_ms: int = 30_000
    retry_delay_ms: int = 2_000
    max_retries: int = 3
    connection_check_interval_ms: int = 5_000
    anti_automation_retry_delay_ms: int = 10_000
    max_anti_automation_retries: int = 2
    recovery_poll_ms: int = 1_000
    recovery_max_polls: int = 10
    request_retention_ms: int = 60_000
    probe_url: str = "https://www.google.com/favicon.ico"
    probe_timeout_ms: int = 5_000


class RecoverySettings(BaseSettings):
    """Error-recovery collaborator policy."""

    model_config = SettingsConfigDict(env_prefix="CHATPILOT_RECOVERY__")

    # Combined ceiling for self-heal plus resumptions within one operation.
    max_retries: int = 2
    enabled: bool = True


class BrowserSettings(BaseSettings):
    """Playwright browser settings."""

    model_config = SettingsConfigDict(env_prefix="CHATPILOT_BROWSER__")

    headless: bool = True
    timeout_ms: int = 30_000
    user_agent: str = ""
    proxy: str = ""
    channel: str = ""
    intercept_requests: bool = True


class StealthSettings(BaseSettings):
    """Anti-detection configuration."""

    model_config = SettingsConfigDict(env_prefix="CHATPILOT_STEALTH__")

    randomize_fingerprint: bool = True
    apply_stealth_scripts: bool = True


# ---------------------------------------------------------------------------
# Root settings
# ---------------------------------------------------------------------------


class Settings(BaseSettings):
    """Root chatpilot settings with nested sections."""

    model_config = SettingsConfigDict(
        env_prefix="CHATPILOT_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    env: str = Field(default_factory=_resolve_env)
    project_root: Path = Field(default=PROJECT_ROOT)
    debug: bool = False
    log_level: str = "INFO"
    log_json: bool = False

    adapter: AdapterSettings = Field(default_factory=AdapterSettings)
    network: NetworkSettings = Field(default_factory=NetworkSettings)
    recovery: RecoverySettings = Field(default_factory=RecoverySettings)
    browser: BrowserSettings = Field(default_factory=BrowserSettings)
    stealth: StealthSettings = Field(default_factory=StealthSettings)

    @model_validator(mode="before")
    @classmethod
    def _merge_toml_files(cls, values: dict[str, Any]) -> dict[str, Any]:
        """Layer TOML config files before env var overrides."""
        defaults = _load_toml(CONFIG_DIR / "settings.default.toml")
        env_name = (values.get("env") or os.getenv(ENV_VAR_NAME) or DEFAULT_ENV).strip()
        env_overrides = _load_toml(CONFIG_DIR / f"settings.{env_name}.toml")
        local_overrides = _load_toml(CONFIG_DIR / "settings.local.toml")

        # Merge: defaults < env-specific < local < explicit values
        merged: dict[str, Any] = {}
        for layer in (defaults, env_overrides, local_overrides, values):
            for key, val in layer.items():
                if isinstance(val, dict) and isinstance(merged.get(key), dict):
                    merged[key] = {**merged[key], **val}
                else:
                    merged[key] = val
        return merged

    @model_validator(mode="after")
    def _normalize(self) -> "Settings":
        """Normalize the log level name."""
        self.log_level = self.log_level.upper()
        return self


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return the singleton settings instance (cached)."""
    return Settings()
