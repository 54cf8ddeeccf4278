"""Abstract adapter interface: one state machine per chat service.

Subclasses implement the page-specific primitives (``initialize``,
``check_ready``, ``_submit``, ``get_response``). The base class owns the
lifecycle: legal state transitions, the self-heal policy of
``send_message``, routing initialize/send failures through the recovery
collaborator, and state-change broadcasts.
"""

from __future__ import annotations

import abc
import asyncio
import logging
import time
from typing import TYPE_CHECKING, Any, Awaitable, Callable, ClassVar, TypeVar

from chatpilot.exceptions import AdapterStateError, AntiAutomationDetected
from chatpilot.models.adapter import AdapterConfig, AdapterStatus, Capability, ConversationTurn
from chatpilot.models.states import AdapterState, can_transition
from chatpilot.monitoring.event_bus import EventType
from chatpilot.settings.config import AdapterSettings

if TYPE_CHECKING:
    from chatpilot.adapters.recovery import RecoveryCoordinator, RetryBudget
    from chatpilot.browser.surface import AutomationSurface
    from chatpilot.monitoring.event_bus import EventBus

logger = logging.getLogger(__name__)

T = TypeVar("T")

# States in which a failed attempt may be replayed without a transition.
_REPLAYABLE_STATES = frozenset({AdapterState.INITIALIZING, AdapterState.SENDING})
_BUSY_STATES = _REPLAYABLE_STATES | {AdapterState.AWAITING_RESPONSE}


class BaseAdapter(abc.ABC):
    """Per-service automation state machine.

    Args:
        adapter_id: Registry-assigned unique id.
        config: Immutable service configuration.
        surface: Automation surface of the hosted page.
        settings: Adapter timing windows.
        bus: Event bus for state-change broadcasts.
        recovery: Error-recovery collaborator for initialize/send failures.
    """

    variant_id: ClassVar[str] = "base"
    capabilities: ClassVar[frozenset[Capability]] = frozenset()

    def __init__(
        self,
        adapter_id: str,
        config: AdapterConfig,
        surface: AutomationSurface,
        *,
        settings: AdapterSettings | None = None,
        bus: EventBus | None = None,
        recovery: RecoveryCoordinator | None = None,
    ) -> None:
        self.id = adapter_id
        self.config = config
        self.surface = surface
        self.settings = settings or AdapterSettings()
        self._bus = bus
        self._recovery = recovery

        self.state = AdapterState.UNINITIALIZED
        self.retry_count = 0
        self.last_activity: float | None = None
        self.current_input_selector: str | None = None
        self.state_history: list[tuple[AdapterState, float]] = [(self.state, time.time())]
        self.blocked_by: AntiAutomationDetected | None = None

    # ------------------------------------------------------------------
    # Capabilities
    # ------------------------------------------------------------------

    @classmethod
    def supports(cls, capability: Capability) -> bool:
        """Return True if this variant implements the optional *capability*."""
        return capability in cls.capabilities

    # ------------------------------------------------------------------
    # Required primitives
    # ------------------------------------------------------------------

    @abc.abstractmethod
    async def initialize(self, *, budget: RetryBudget | None = None) -> None:
        """Bring the page to ``Ready``.

        Raises:
            ElementNotFound: No input candidate resolved.
            AccessRequired: A login or access barrier is shown.
            AntiAutomationDetected: A challenge is shown; the adapter is ``Blocked``.
        """

    @abc.abstractmethod
    async def check_ready(self) -> bool:
        """Return True if the cached input control is still usable."""

    @abc.abstractmethod
    async def _submit(self, text: str) -> None:
        """Write *text* into the input and trigger submission."""

    @abc.abstractmethod
    async def get_response(self, timeout_ms: int | None = None) -> str:
        """Wait for and extract the reply to the last submitted message."""

    # ------------------------------------------------------------------
    # Optional capabilities (no-op defaults)
    # ------------------------------------------------------------------

    async def clear_conversation(self) -> bool:
        return False

    async def get_conversation_history(self) -> list[ConversationTurn]:
        return []

    async def handle_anti_automation(self) -> bool:
        """Try to clear an anti-automation barrier; True if the page is usable."""
        return False

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    async def send_message(self, text: str) -> None:
        """Submit *text* to the service.

        Self-heals first: a ``Blocked`` adapter goes through
        ``handle_anti_automation``; an adapter that is not ``Ready`` or whose
        input went stale is initialized once. Self-heal and recovery
        resumptions share one retry budget.
        """
        if self.state in (AdapterState.SENDING, AdapterState.AWAITING_RESPONSE):
            raise AdapterStateError(f"Adapter {self.id} is busy ({self.state.value})", detail=self.state.value)
        if self.state is AdapterState.FAILED:
            raise AdapterStateError(f"Adapter {self.id} has failed and must be recreated", detail=self.state.value)

        budget = self.new_budget()

        if self.state is AdapterState.BLOCKED:
            if not budget.try_consume() or not await self.handle_anti_automation():
                raise self.blocked_by or AntiAutomationDetected("unknown")

        if self.state is not AdapterState.READY or not await self.check_ready():
            if not budget.try_consume():
                raise AdapterStateError(
                    f"Adapter {self.id} is not ready and has no retries left",
                    detail=self.state.value,
                )
            logger.info("Adapter %s not ready (%s) — re-initializing before send", self.id, self.state.value)
            await self.initialize(budget=budget)

        await self._set_state(AdapterState.SENDING)
        await self._run_with_recovery("send_message", lambda: self._submit(text), budget)
        self.last_activity = time.time()
        await self._set_state(AdapterState.READY)

    def status(self) -> AdapterStatus:
        """Return a diagnostics snapshot."""
        try:
            page_url = self.surface.current_url()
        except Exception:
            page_url = ""
        return AdapterStatus(
            adapter_id=self.id,
            service_id=self.config.service_id,
            display_name=self.config.display_name,
            state=self.state.value,
            retry_count=self.retry_count,
            last_activity=self.last_activity,
            current_input_selector=self.current_input_selector,
            page_url=page_url,
            capabilities=sorted(c.value for c in self.capabilities),
        )

    def cleanup(self) -> None:
        """Synchronous disposal hook invoked by the registry."""
        logger.debug("Adapter %s disposed in state %s", self.id, self.state.value)
        self.current_input_selector = None

    # ------------------------------------------------------------------
    # Lifecycle internals
    # ------------------------------------------------------------------

    def new_budget(self) -> RetryBudget:
        from chatpilot.adapters.recovery import RetryBudget

        if self._recovery is not None:
            return self._recovery.new_budget()
        return RetryBudget(limit=1)

    async def _set_state(self, new_state: AdapterState, *, reason: str = "") -> None:
        """Apply a transition from the state table and broadcast it.

        Raises:
            AdapterStateError: If the transition is not in the table.
        """
        old_state = self.state
        if new_state is old_state:
            return
        if not can_transition(old_state, new_state):
            raise AdapterStateError(
                f"Illegal adapter transition {old_state.value} -> {new_state.value}",
                detail=f"{old_state.value}->{new_state.value}",
            )
        self.state = new_state
        self.state_history.append((new_state, time.time()))
        if new_state is not AdapterState.BLOCKED:
            self.blocked_by = None
        logger.debug("Adapter %s: %s -> %s %s", self.id, old_state.value, new_state.value, reason)

        if self._bus is not None:
            data: dict[str, Any] = {
                "old_state": old_state.value,
                "new_state": new_state.value,
                "service": self.config.service_id,
            }
            if reason:
                data["reason"] = reason
            await self._bus.emit(EventType.ADAPTER_STATE_CHANGED, data, source=self.id)

    async def _mark_blocked(self, exc: AntiAutomationDetected) -> None:
        self.blocked_by = exc
        await self._set_state(AdapterState.BLOCKED, reason=exc.indicator)
        if self._bus is not None:
            await self._bus.emit(
                EventType.ANTI_AUTOMATION_DETECTED,
                {"indicator": exc.indicator, "text": exc.text[:200], "service": self.config.service_id},
                source=self.id,
            )

    async def _settle_after_cancel(self, operation: str) -> None:
        """Return a busy adapter to ``Ready`` when its caller cancelled the operation."""
        if self.state in _BUSY_STATES:
            logger.info("Adapter %s: %s cancelled in state %s", self.id, operation, self.state.value)
            await self._set_state(AdapterState.READY, reason=f"{operation} cancelled")

    async def _run_with_recovery(
        self,
        operation: str,
        attempt: Callable[[], Awaitable[T]],
        budget: RetryBudget,
    ) -> T:
        """Run *attempt*, routing failures to the recovery collaborator.

        The state stays ``Initializing`` / ``Sending`` while resumptions run,
        so the replay needs no transition. Anti-automation moves the adapter
        to ``Blocked``; any other final failure moves it to ``Failed``.
        """

        async def resume() -> T:
            self.retry_count += 1
            return await attempt()

        try:
            try:
                return await attempt()
            except Exception as exc:
                if self._recovery is None or self.state not in _REPLAYABLE_STATES:
                    raise
                return await self._recovery.recover(self, operation, exc, resume, budget)
        except asyncio.CancelledError:
            await self._settle_after_cancel(operation)
            raise
        except AntiAutomationDetected as exc:
            await self._mark_blocked(exc)
            raise
        except Exception as exc:
            if self.state in _REPLAYABLE_STATES:
                await self._set_state(AdapterState.FAILED, reason=f"{type(exc).__name__}: {exc}")
            raise
