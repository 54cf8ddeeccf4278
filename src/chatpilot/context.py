"""Automation context: explicit wiring of the core components.

One ``AutomationContext`` holds the settings, event bus, adapter registry,
recovery coordinator and network engine for a process (or a test). Nothing
in the package reaches for a module-level singleton; components receive the
collaborators they need from here.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from chatpilot.adapters.recovery import RecoveryCoordinator
from chatpilot.adapters.registry import AdapterRegistry
from chatpilot.monitoring.event_bus import EventBus, LoggingSink
from chatpilot.network.engine import NetworkResilienceEngine

if TYPE_CHECKING:
    from chatpilot.adapters.base import BaseAdapter
    from chatpilot.browser.surface import AutomationSurface
    from chatpilot.models.adapter import AdapterConfig
    from chatpilot.settings.config import Settings

logger = logging.getLogger(__name__)


@dataclass
class AutomationContext:
    """Container for one isolated set of core components."""

    settings: Settings
    bus: EventBus
    registry: AdapterRegistry
    recovery: RecoveryCoordinator
    network: NetworkResilienceEngine
    active_adapter_id: str | None = field(default=None)

    @classmethod
    def create(cls, settings: Settings | None = None, *, bus: EventBus | None = None) -> AutomationContext:
        """Build a fully wired context.

        Args:
            settings: Explicit settings; defaults to the cached ``get_settings()``.
            bus: Explicit event bus; defaults to one with a ``LoggingSink``.
        """
        if settings is None:
            from chatpilot.settings import get_settings

            settings = get_settings()
        if bus is None:
            bus = EventBus(source="chatpilot")
            bus.add_sink(LoggingSink())

        recovery = RecoveryCoordinator(settings.recovery, bus)
        registry = AdapterRegistry(settings=settings.adapter, bus=bus, recovery=recovery)
        registry.register_defaults()

        ctx = cls(
            settings=settings,
            bus=bus,
            registry=registry,
            recovery=recovery,
            network=NetworkResilienceEngine(settings.network, bus=bus),
        )
        ctx.network.bind_active_adapter(ctx.get_active_adapter)
        return ctx

    # ------------------------------------------------------------------
    # Active adapter
    # ------------------------------------------------------------------

    def get_active_adapter(self) -> BaseAdapter | None:
        if self.active_adapter_id is None:
            return None
        return self.registry.get_adapter(self.active_adapter_id)

    def set_active_adapter(self, adapter_id: str | None) -> None:
        if adapter_id is not None and adapter_id not in self.registry:
            raise KeyError(adapter_id)
        self.active_adapter_id = adapter_id

    def open_adapter(
        self,
        variant_id: str,
        surface: AutomationSurface,
        config: AdapterConfig | None = None,
        *,
        activate: bool = True,
    ) -> tuple[str, BaseAdapter]:
        """Create an adapter and optionally make it the active one."""
        adapter_id, adapter = self.registry.create_adapter(variant_id, config, surface=surface)
        if activate:
            self.active_adapter_id = adapter_id
        return adapter_id, adapter

    def close_adapter(self, adapter_id: str) -> bool:
        if self.active_adapter_id == adapter_id:
            self.active_adapter_id = None
        return self.registry.remove_adapter(adapter_id)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def aclose(self) -> None:
        """Dispose every adapter and shut the network engine down."""
        self.active_adapter_id = None
        self.registry.cleanup()
        await self.network.close()
        logger.debug("Automation context closed")

    async def __aenter__(self) -> AutomationContext:
        self.network.start_monitoring()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()
