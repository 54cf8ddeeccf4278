"""Error-recovery collaborator for adapter initialize/send failures.

Adapters hand a failed operation to ``RecoveryCoordinator.recover`` together
with a replayable resumption callback. The coordinator owns the retry policy:
it decides whether the failure class is resumable and draws from a
``RetryBudget`` that the adapter opened for the whole public operation. The
same budget also pays for the adapter's self-heal, so nested retries share
one ceiling.

Usage::

    budget = coordinator.new_budget()
    result = await coordinator.recover(adapter, "initialize", exc, resume, budget)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Awaitable, Callable, TypeVar

from chatpilot.exceptions import AccessRequired, AdapterStateError, AntiAutomationDetected
from chatpilot.monitoring.event_bus import EventType

if TYPE_CHECKING:
    from chatpilot.adapters.base import BaseAdapter
    from chatpilot.monitoring.event_bus import EventBus
    from chatpilot.settings.config import RecoverySettings

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Failures that replaying the same operation cannot fix.
_NON_RESUMABLE: tuple[type[BaseException], ...] = (
    AccessRequired,
    AntiAutomationDetected,
    AdapterStateError,
)


@dataclass
class RetryBudget:
    """Combined retry allowance for one public adapter operation."""

    limit: int
    used: int = 0

    @property
    def remaining(self) -> int:
        return max(self.limit - self.used, 0)

    @property
    def exhausted(self) -> bool:
        return self.used >= self.limit

    def try_consume(self) -> bool:
        """Take one unit; ``False`` if none is left."""
        if self.exhausted:
            return False
        self.used += 1
        return True


class RecoveryCoordinator:
    """Decide whether and how often a failed adapter operation is resumed.

    Args:
        settings: Recovery policy (combined ceiling, enabled flag).
        bus: Optional event bus; every decision is broadcast as
            ``recovery_attempted``.
    """

    def __init__(self, settings: RecoverySettings, bus: EventBus | None = None) -> None:
        self._settings = settings
        self._bus = bus

    @property
    def enabled(self) -> bool:
        return self._settings.enabled

    def new_budget(self) -> RetryBudget:
        """Open a budget for one public operation."""
        return RetryBudget(limit=self._settings.max_retries)

    def is_resumable(self, error: BaseException) -> bool:
        return self.enabled and not isinstance(error, _NON_RESUMABLE)

    async def recover(
        self,
        adapter: BaseAdapter,
        operation: str,
        error: Exception,
        resume: Callable[[], Awaitable[T]],
        budget: RetryBudget,
    ) -> T:
        """Resume *operation* until it succeeds or the budget runs out.

        Returns:
            The result of the first successful resumption.

        Raises:
            Exception: The last failure, once it is not resumable or the
                budget is exhausted.
        """
        while True:
            if not self.is_resumable(error):
                await self._broadcast(adapter, operation, error, budget, resumed=False, reason="not_resumable")
                raise error
            if not budget.try_consume():
                logger.warning(
                    "Adapter %s %s failed after %d retries: %s",
                    adapter.id,
                    operation,
                    budget.used,
                    error,
                )
                await self._broadcast(adapter, operation, error, budget, resumed=False, reason="budget_exhausted")
                raise error

            logger.info(
                "Resuming %s on adapter %s (retry %d/%d) after %s: %s",
                operation,
                adapter.id,
                budget.used,
                budget.limit,
                type(error).__name__,
                error,
            )
            await self._broadcast(adapter, operation, error, budget, resumed=True, reason="resuming")
            try:
                return await resume()
            except Exception as exc:
                error = exc

    async def _broadcast(
        self,
        adapter: BaseAdapter,
        operation: str,
        error: BaseException,
        budget: RetryBudget,
        *,
        resumed: bool,
        reason: str,
    ) -> None:
        if self._bus is None:
            return
        await self._bus.emit(
            EventType.RECOVERY_ATTEMPTED,
            {
                "operation": operation,
                "error": type(error).__name__,
                "message": str(error),
                "resumed": resumed,
                "reason": reason,
                "retries_used": budget.used,
                "retry_limit": budget.limit,
            },
            source=adapter.id,
        )
