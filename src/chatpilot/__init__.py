"""chatpilot — resilient automation of chat-style AI web front ends."""

from __future__ import annotations

try:
    from importlib.metadata import version

    __version__ = version("chatpilot")
except Exception:
    __version__ = "0.0.0"
