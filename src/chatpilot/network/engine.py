"""Network resilience engine: timeout race, failure classification and retry.

Every request the automation layer issues (``request``) or the hosted page
issues (``attach``) goes through :meth:`NetworkResilienceEngine.execute`:

1. **Race**: the send coroutine is raced against the request timeout.
2. **Classify**: a failure is mapped to ``timeout``, ``connection``,
   ``anti_automation`` or ``unknown``.
3. **Retry**: attempts are counted per ``(category, url)``; each category
   waits in its own way before the next attempt, and an exhausted budget
   clears the key and surfaces a category-specific error.

The engine also owns the process-wide ``ConnectionStatus`` and broadcasts
it on the event bus whenever it changes. ``AutomationContext`` starts the
periodic connectivity probe when entered; hosts that learn about
connectivity from the OS report it through ``handle_online`` and
``handle_offline``.
"""

from __future__ import annotations

import asyncio
import logging
import secrets
import time
from typing import TYPE_CHECKING, Any, Awaitable, Callable, TypeVar

import httpx

from chatpilot.browser.anti_automation import detect_anti_automation
from chatpilot.browser.waiting import wait_until
from chatpilot.exceptions import (
    AntiAutomationError,
    BlockedResponseError,
    NetworkConnectionError,
    NetworkError,
    NetworkTimeoutError,
    RequestTimeout,
    UnclassifiedNetworkError,
)
from chatpilot.models.network import (
    ConnectionStatus,
    ErrorCategory,
    NetworkRequestRecord,
    NetworkStats,
    RequestStatus,
)
from chatpilot.monitoring.event_bus import EventType
from chatpilot.network.classify import build_policies, classify_error, describe_error
from chatpilot.settings.config import NetworkSettings

if TYPE_CHECKING:
    from playwright.async_api import Page, Route

    from chatpilot.adapters.base import BaseAdapter
    from chatpilot.monitoring.event_bus import EventBus

logger = logging.getLogger(__name__)

T = TypeVar("T")

RetryKey = tuple[ErrorCategory, str]

# HTTP statuses that indicate the client was blocked rather than failed.
_BLOCKED_STATUS_CODES = frozenset({403, 429})

# Page resources that are never worth retrying.
_PASSTHROUGH_RESOURCE_TYPES = frozenset({"image", "media", "font"})


class NetworkResilienceEngine:
    """Wrap outbound requests with a timeout race and category retry policies.

    Args:
        settings: Timeouts, retry budgets and probe configuration.
        bus: Event bus for connection-status and retry broadcasts.
        active_adapter: Returns the adapter whose anti-automation hook
            handles ``anti_automation`` failures (``None`` if there is none).
        probe: Connectivity probe; defaults to an HTTP ``HEAD`` of
            ``settings.probe_url``.
        client: ``httpx.AsyncClient`` used by :meth:`request`; created lazily
            when omitted.
    """

    def __init__(
        self,
        settings: NetworkSettings | None = None,
        *,
        bus: EventBus | None = None,
        active_adapter: Callable[[], BaseAdapter | None] | None = None,
        probe: Callable[[], Awaitable[bool]] | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._settings = settings or NetworkSettings()
        self._bus = bus
        self._active_adapter = active_adapter or (lambda: None)
        self._probe = probe or self._http_probe
        self._client = client
        self._owns_client = client is None

        self._policies = build_policies(self._settings)
        self._retry_attempts: dict[RetryKey, int] = {}
        self._records: dict[str, NetworkRequestRecord] = {}
        self._expiry_handles: dict[str, asyncio.TimerHandle] = {}
        self._monitor_task: asyncio.Task[None] | None = None

        self.connection_status = ConnectionStatus.UNKNOWN
        self.status_text = ""
        self.is_online = True

    def bind_active_adapter(self, provider: Callable[[], BaseAdapter | None]) -> None:
        """Set the callable that returns the adapter handling anti-automation."""
        self._active_adapter = provider

    # ------------------------------------------------------------------
    # Request wrapping
    # ------------------------------------------------------------------

    async def execute(
        self,
        url: str,
        send: Callable[[], Awaitable[T]],
        *,
        timeout_ms: int | None = None,
    ) -> T:
        """Run *send* under the timeout race and retry pipeline.

        Args:
            url: Request URL; half of the retry-state key.
            send: Zero-argument coroutine factory performing one attempt.
            timeout_ms: Per-attempt timeout (defaults to ``settings.timeout_ms``).

        Returns:
            The result of the first successful attempt.

        Raises:
            NetworkTimeoutError: Timeout retries exhausted.
            NetworkConnectionError: Connection retries exhausted.
            AntiAutomationError: Anti-automation retries exhausted.
            UnclassifiedNetworkError: Failure matched no category (never retried).
        """
        timeout_ms = timeout_ms or self._settings.timeout_ms
        touched: set[RetryKey] = set()

        while True:
            try:
                result = await self._attempt(url, send, timeout_ms)
            except Exception as exc:
                category = classify_error(exc)
                if category is ErrorCategory.UNKNOWN:
                    await self._emit_failed(url, category, 0, exc)
                    raise UnclassifiedNetworkError(url, describe_error(exc)) from exc

                key = (category, url)
                attempts = self._retry_attempts.get(key, 0)
                if attempts >= self._policies[category].max_attempts:
                    self._retry_attempts.pop(key, None)
                    await self._emit_failed(url, category, attempts, exc)
                    raise await self._exhausted_error(category, url, attempts) from exc

                self._retry_attempts[key] = attempts + 1
                touched.add(key)
                logger.info(
                    "%s error, retrying (%d/%d): %s",
                    category.value,
                    attempts + 1,
                    self._policies[category].max_attempts,
                    url,
                )
                if self._bus is not None:
                    await self._bus.emit(
                        EventType.REQUEST_RETRY,
                        {"url": url, "category": category.value, "attempt": attempts + 1, "error": str(exc)},
                        source="network",
                    )
                await self._prepare_retry(category, attempts)
                continue

            for key in touched:
                self._retry_attempts.pop(key, None)
            return result

    async def _attempt(self, url: str, send: Callable[[], Awaitable[T]], timeout_ms: int) -> T:
        record = NetworkRequestRecord(request_id=self._new_request_id(), url=url)
        self._records[record.request_id] = record
        try:
            try:
                result = await asyncio.wait_for(send(), timeout=timeout_ms / 1000)
            except asyncio.TimeoutError as exc:
                raise RequestTimeout(url, timeout_ms) from exc
        except Exception as exc:
            record.status = RequestStatus.FAILED
            record.success = False
            record.error = str(exc)
            raise
        else:
            record.status = RequestStatus.COMPLETED
            status_code = getattr(result, "status", getattr(result, "status_code", None))
            record.success = not isinstance(status_code, int) or status_code < 400
            return result
        finally:
            record.finished_at = time.time()
            self._schedule_expiry(record.request_id)

    async def _prepare_retry(self, category: ErrorCategory, attempt: int) -> None:
        s = self._settings
        if category is ErrorCategory.TIMEOUT:
            await asyncio.sleep(s.retry_delay_ms * (attempt + 1) / 1000)
        elif category is ErrorCategory.CONNECTION:
            await self.wait_for_network_recovery()
        elif category is ErrorCategory.ANTI_AUTOMATION:
            await self._handle_anti_automation()

    async def _handle_anti_automation(self) -> None:
        await self._set_status(ConnectionStatus.CONNECTING, "Handling verification...")
        await asyncio.sleep(self._settings.anti_automation_retry_delay_ms / 1000)

        adapter = self._active_adapter()
        if adapter is None:
            logger.info("No active adapter to handle anti-automation")
            return
        try:
            await adapter.handle_anti_automation()
        except Exception as exc:
            logger.warning("Anti-automation handling failed: %s", exc)

        try:
            detection = await detect_anti_automation(
                adapter.surface,
                extra_indicators=adapter.config.extra_indicators,
            )
        except Exception as exc:
            logger.warning("Anti-automation re-check failed: %s", exc)
            return
        if detection.detected:
            logger.warning("Anti-automation barrier still present: %s", detection.matched_indicator)
        else:
            logger.info("Anti-automation barrier cleared on adapter %s", adapter.id)

    async def _exhausted_error(self, category: ErrorCategory, url: str, attempts: int) -> NetworkError:
        logger.warning("%s retries exhausted after %d attempts: %s", category.value, attempts, url)
        if category is ErrorCategory.TIMEOUT:
            return NetworkTimeoutError(url, attempts)
        if category is ErrorCategory.CONNECTION:
            return NetworkConnectionError(url, attempts)
        await self._set_status(ConnectionStatus.ERROR, "Verification failed, manual action required")
        return AntiAutomationError(url, attempts)

    async def _emit_failed(self, url: str, category: ErrorCategory, attempts: int, exc: Exception) -> None:
        if self._bus is None:
            return
        await self._bus.emit(
            EventType.REQUEST_FAILED,
            {"url": url, "category": category.value, "attempts": attempts, "error": str(exc)},
            source="network",
        )

    # ------------------------------------------------------------------
    # Convenience wrappers
    # ------------------------------------------------------------------

    async def request(
        self,
        method: str,
        url: str,
        *,
        timeout_ms: int | None = None,
        **kwargs: Any,
    ) -> httpx.Response:
        """Issue an HTTP request through the retry pipeline.

        ``403`` and ``429`` responses are treated as blocked (anti-automation)
        failures.
        """
        client = self._get_client()

        async def send() -> httpx.Response:
            response = await client.request(method, url, **kwargs)
            if response.status_code in _BLOCKED_STATUS_CODES:
                raise BlockedResponseError(url, response.status_code)
            return response

        return await self.execute(url, send, timeout_ms=timeout_ms)

    async def attach(self, page: Page) -> None:
        """Route every request the hosted *page* issues through :meth:`execute`.

        Requests are fetched by Playwright and fulfilled with the result; a
        terminal failure aborts the request.
        """

        async def handle(route: Route) -> None:
            request = route.request
            if request.resource_type in _PASSTHROUGH_RESOURCE_TYPES:
                await route.continue_()
                return
            try:
                response = await self.execute(request.url, route.fetch)
            except NetworkError as exc:
                logger.warning("Aborting page request %s: %s", request.url, exc)
                await route.abort("failed")
                return
            await route.fulfill(response=response)

        await page.route("**/*", handle)
        logger.debug("Network engine attached to page")

    # ------------------------------------------------------------------
    # Connectivity
    # ------------------------------------------------------------------

    async def handle_online(self) -> None:
        """Host reported connectivity: clear every retry counter."""
        self.is_online = True
        self._retry_attempts.clear()
        logger.info("Network recovered, cleared retry counters")
        await self._set_status(ConnectionStatus.CONNECTED, "Network connected")

    async def handle_offline(self) -> None:
        self.is_online = False
        await self._set_status(ConnectionStatus.ERROR, "Network disconnected")

    async def check_network_status(self) -> bool:
        """Run one connectivity probe and update the status."""
        try:
            reachable = await self._probe()
        except Exception as exc:
            logger.debug("Connectivity probe raised: %s", exc)
            reachable = False
        if reachable:
            await self._set_status(ConnectionStatus.CONNECTED, "Network connection OK")
        else:
            await self._set_status(ConnectionStatus.ERROR, "Network connection problem")
        return reachable

    async def wait_for_network_recovery(self) -> bool:
        """Poll connectivity until it returns or the polling budget runs out."""
        s = self._settings

        async def recovered() -> bool:
            return self.is_online and await self.check_network_status()

        result = await wait_until(
            recovered,
            timeout_ms=s.recovery_poll_ms * s.recovery_max_polls,
            interval_ms=s.recovery_poll_ms,
        )
        if result.timed_out:
            logger.warning("Network did not recover after %d probes", result.polls)
        return result.ok

    def start_monitoring(self) -> None:
        """Start the periodic connectivity probe on the running loop."""
        if self._monitor_task is not None and not self._monitor_task.done():
            return
        self._monitor_task = asyncio.get_running_loop().create_task(self._monitor_loop())

    @property
    def monitoring(self) -> bool:
        return self._monitor_task is not None and not self._monitor_task.done()

    async def stop_monitoring(self) -> None:
        task, self._monitor_task = self._monitor_task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _monitor_loop(self) -> None:
        interval = self._settings.connection_check_interval_ms / 1000
        while True:
            await self.check_network_status()
            await asyncio.sleep(interval)

    async def _http_probe(self) -> bool:
        s = self._settings
        try:
            async with httpx.AsyncClient(timeout=s.probe_timeout_ms / 1000) as client:
                await client.head(s.probe_url)
            return True
        except httpx.HTTPError as exc:
            logger.debug("Connectivity probe failed: %s", exc)
            return False

    # ------------------------------------------------------------------
    # Status and diagnostics
    # ------------------------------------------------------------------

    async def _set_status(self, status: ConnectionStatus, text: str) -> None:
        """Record the status; broadcast only when it changed."""
        if status is self.connection_status and text == self.status_text:
            return
        self.connection_status = status
        self.status_text = text
        logger.info("Connection status: %s (%s)", status.value, text)
        if self._bus is not None:
            await self._bus.emit(
                EventType.CONNECTION_STATUS,
                {"status": status.value, "text": text},
                source="network",
            )

    def get_network_stats(self) -> NetworkStats:
        return NetworkStats(
            connection_status=self.connection_status,
            active_requests=sum(1 for r in self._records.values() if r.status is RequestStatus.PENDING),
            tracked_requests=len(self._records),
            pending_retries=len(self._retry_attempts),
            is_online=self.is_online,
        )

    def retry_attempts(self, category: ErrorCategory, url: str) -> int:
        """Current attempt count for one retry-state key."""
        return self._retry_attempts.get((category, url), 0)

    def get_request(self, request_id: str) -> NetworkRequestRecord | None:
        return self._records.get(request_id)

    async def reset(self) -> None:
        """Clear retry state and request records, then broadcast ``ready``."""
        self._retry_attempts.clear()
        self._drop_records()
        logger.info("Network engine reset")
        await self._set_status(ConnectionStatus.READY, "Ready")

    async def close(self) -> None:
        await self.stop_monitoring()
        self._retry_attempts.clear()
        self._drop_records()
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(follow_redirects=True)
            self._owns_client = True
        return self._client

    def _schedule_expiry(self, request_id: str) -> None:
        loop = asyncio.get_running_loop()
        self._expiry_handles[request_id] = loop.call_later(
            self._settings.request_retention_ms / 1000,
            self._expire_record,
            request_id,
        )

    def _expire_record(self, request_id: str) -> None:
        self._records.pop(request_id, None)
        self._expiry_handles.pop(request_id, None)

    def _drop_records(self) -> None:
        for handle in self._expiry_handles.values():
            handle.cancel()
        self._expiry_handles.clear()
        self._records.clear()

    @staticmethod
    def _new_request_id() -> str:
        return f"req_{int(time.time() * 1000)}_{secrets.token_hex(5)}"
