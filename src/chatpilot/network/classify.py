"""Failure classification and per-category retry policies."""

from __future__ import annotations

from chatpilot.exceptions import NetworkError
from chatpilot.models.network import ErrorCategory, RetryPolicy
from chatpilot.settings.config import NetworkSettings

# Ordered: first match wins.
_CATEGORY_MARKERS: list[tuple[ErrorCategory, tuple[str, ...]]] = [
    (ErrorCategory.TIMEOUT, ("timeout",)),
    (ErrorCategory.CONNECTION, ("network", "connection")),
    (ErrorCategory.ANTI_AUTOMATION, ("blocked", "forbidden", "captcha", "verification")),
]


_OPAQUE_MODULES = frozenset({"builtins", "chatpilot.exceptions"})


def describe_error(exc: BaseException) -> str:
    """Return the text classification matches against.

    The message is prefixed with the exception type name and the names of its
    third-party base classes, so ``httpx.ConnectError`` (a ``NetworkError``)
    or a bare ``TimeoutError`` classify even when their message is empty.
    """
    mro = type(exc).__mro__
    names = [mro[0].__name__] + [cls.__name__ for cls in mro[1:] if cls.__module__ not in _OPAQUE_MODULES]
    return f"{' '.join(names)}: {exc}".lower()


def classify_error(exc: BaseException) -> ErrorCategory:
    """Map *exc* onto an ``ErrorCategory``.

    Errors raised by the engine itself carry their category and are never
    re-read from text, so a URL such as ``/network/status`` cannot change the
    outcome. Everything else is matched case-insensitively by substring.
    """
    if isinstance(exc, NetworkError):
        try:
            return ErrorCategory(exc.category)
        except ValueError:
            pass
    text = describe_error(exc)
    for category, markers in _CATEGORY_MARKERS:
        if any(marker in text for marker in markers):
            return category
    return ErrorCategory.UNKNOWN


def build_policies(settings: NetworkSettings) -> dict[ErrorCategory, RetryPolicy]:
    """Return the retry policy table for *settings*."""
    return {
        ErrorCategory.TIMEOUT: RetryPolicy(ErrorCategory.TIMEOUT, settings.max_retries, settings.retry_delay_ms),
        ErrorCategory.CONNECTION: RetryPolicy(ErrorCategory.CONNECTION, settings.max_retries, settings.recovery_poll_ms),
        ErrorCategory.ANTI_AUTOMATION: RetryPolicy(
            ErrorCategory.ANTI_AUTOMATION,
            settings.max_anti_automation_retries,
            settings.anti_automation_retry_delay_ms,
        ),
        ErrorCategory.UNKNOWN: RetryPolicy(ErrorCategory.UNKNOWN, 0),
    }
