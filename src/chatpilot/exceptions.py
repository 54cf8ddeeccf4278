"""chatpilot exception hierarchy.

Every terminal error carries a ``category`` and a ``detail`` (the offending
selector or URL) so a notification layer can render a specific message
instead of a generic failure.
"""

from __future__ import annotations

from typing import Any


class ChatPilotError(Exception):
    """Base exception for all chatpilot errors."""

    category: str = "error"

    def __init__(self, message: str, *, detail: str = "") -> None:
        self.detail = detail
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """Serialize for status broadcasts and CLI output."""
        return {
            "error": type(self).__name__,
            "category": self.category,
            "detail": self.detail,
            "message": str(self),
        }


# ---------------------------------------------------------------------------
# Adapter errors
# ---------------------------------------------------------------------------


class AdapterError(ChatPilotError):
    """Base class for failures raised while driving a hosted page."""

    category = "adapter"


class ElementNotFound(AdapterError):
    """Raised when no candidate selector resolved within its timeout.

    Attributes:
        selector: The selector (or joined candidate list) that never matched.
        timeout_ms: The per-candidate wait window.
    """

    category = "element_not_found"

    def __init__(self, selector: str, timeout_ms: int | None = None) -> None:
        self.selector = selector
        self.timeout_ms = timeout_ms
        window = f" within {timeout_ms}ms" if timeout_ms is not None else ""
        super().__init__(f"Element {selector!r} not found{window}", detail=selector)


class AccessRequired(AdapterError):
    """Raised when the page shows a login or access barrier."""

    category = "access_required"

    def __init__(self, service: str, reason: str) -> None:
        self.service = service
        self.reason = reason
        super().__init__(f"Please log in to {service} first ({reason})", detail=reason)


class AntiAutomationDetected(AdapterError):
    """Raised when a bot-detection challenge is present on the page."""

    category = "anti_automation"

    def __init__(self, indicator: str, text: str = "") -> None:
        self.indicator = indicator
        self.text = text
        super().__init__(f"Anti-automation detected: {indicator}", detail=indicator)


class ResponseTimeout(AdapterError):
    """Raised when a response did not start or complete within its window."""

    category = "response_timeout"

    def __init__(self, phase: str, timeout_ms: int, selector: str = "") -> None:
        self.phase = phase
        self.timeout_ms = timeout_ms
        super().__init__(
            f"Response did not {phase} within {timeout_ms}ms",
            detail=selector,
        )


class ServiceReportedError(AdapterError):
    """Raised when the service renders an error indicator instead of a reply."""

    category = "service_error"

    def __init__(self, service: str, text: str, selector: str = "") -> None:
        self.service = service
        self.text = text
        super().__init__(f"{service} error: {text}", detail=selector)


class AdapterStateError(AdapterError):
    """Raised for an operation or transition the current state forbids."""

    category = "invalid_state"


# ---------------------------------------------------------------------------
# Registry errors
# ---------------------------------------------------------------------------


class UnknownAdapterType(ChatPilotError):
    """Raised when creating an adapter for an unregistered variant."""

    category = "unknown_adapter"

    def __init__(self, variant_id: str) -> None:
        self.variant_id = variant_id
        super().__init__(f"Unknown adapter type: {variant_id}", detail=variant_id)


class RegistryReentryError(ChatPilotError):
    """Raised when a cleanup hook re-enters the registry."""

    category = "registry_reentry"


# ---------------------------------------------------------------------------
# Network errors
# ---------------------------------------------------------------------------


class NetworkError(ChatPilotError):
    """Base class for classified network failures.

    Attributes:
        url: The request URL.
        attempts: Retry attempts spent before the error surfaced.
    """

    category = "network"

    def __init__(self, message: str, url: str, *, attempts: int = 0) -> None:
        self.url = url
        self.attempts = attempts
        super().__init__(message, detail=url)


class RequestTimeout(NetworkError):
    """A single request attempt lost its timeout race."""

    category = "timeout"

    def __init__(self, url: str, timeout_ms: int) -> None:
        self.timeout_ms = timeout_ms
        super().__init__(f"Request timeout ({timeout_ms}ms)", url)


class BlockedResponseError(NetworkError):
    """A response status indicating the client was blocked (403/429)."""

    category = "anti_automation"

    def __init__(self, url: str, status_code: int) -> None:
        self.status_code = status_code
        super().__init__(f"Request blocked (HTTP {status_code})", url)


class NetworkTimeoutError(NetworkError):
    """Timeout retries exhausted."""

    category = "timeout"

    def __init__(self, url: str, attempts: int) -> None:
        super().__init__(f"Network request retries failed: {url}", url, attempts=attempts)


class NetworkConnectionError(NetworkError):
    """Connection retries exhausted."""

    category = "connection"

    def __init__(self, url: str, attempts: int) -> None:
        super().__init__(f"Network connection retries failed: {url}", url, attempts=attempts)


class AntiAutomationError(NetworkError):
    """Anti-automation retries exhausted; manual action is required."""

    category = "anti_automation"

    def __init__(self, url: str, attempts: int) -> None:
        super().__init__(
            f"Anti-automation handling failed, manual action required: {url}",
            url,
            attempts=attempts,
        )


class UnclassifiedNetworkError(NetworkError):
    """A failure no category matched; surfaced without retry."""

    category = "unknown"

    def __init__(self, url: str, reason: str) -> None:
        self.reason = reason
        super().__init__(f"Unclassified network error for {url}: {reason}", url)


class NavigationError(NetworkError):
    """Non-retryable navigation failure (DNS, refused connection, TLS)."""

    category = "navigation"

    def __init__(self, url: str, reason: str) -> None:
        self.reason = reason
        super().__init__(f"Navigation to {url} failed: {reason}", url)


# ---------------------------------------------------------------------------
# Command errors
# ---------------------------------------------------------------------------


class UnknownCommand(ChatPilotError):
    """Raised when a page command name is not on the whitelist."""

    category = "unknown_command"

    def __init__(self, action: str) -> None:
        self.action = action
        super().__init__(f"Unknown page command: {action}", detail=action)
