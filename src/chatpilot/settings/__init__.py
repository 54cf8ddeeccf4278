"""Layered configuration (TOML files + environment variables)."""

from chatpilot.settings.config import Settings, get_settings

__all__ = ["Settings", "get_settings"]
