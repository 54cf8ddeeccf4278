"""Adapter registry: variant lookup plus ownership of live adapter instances.

The registry is the only writer of the id → adapter map and the sole
authority for adapter identity. All of its operations are synchronous, so
within one event loop each call is an atomic unit.
"""

from __future__ import annotations

import logging
import secrets
import string
import time
from collections import Counter
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any, Iterator

from chatpilot.adapters.base import BaseAdapter
from chatpilot.exceptions import RegistryReentryError, UnknownAdapterType

if TYPE_CHECKING:
    from chatpilot.adapters.recovery import RecoveryCoordinator
    from chatpilot.browser.surface import AutomationSurface
    from chatpilot.models.adapter import AdapterConfig
    from chatpilot.monitoring.event_bus import EventBus
    from chatpilot.settings.config import AdapterSettings

logger = logging.getLogger(__name__)

BASE_VARIANT = "base"

_SUFFIX_ALPHABET = string.ascii_lowercase + string.digits


class AdapterRegistry:
    """Create, track and dispose adapter instances.

    Args:
        settings: Timing windows handed to every adapter it creates.
        bus: Event bus handed to every adapter.
        recovery: Recovery collaborator handed to every adapter.
    """

    def __init__(
        self,
        *,
        settings: AdapterSettings | None = None,
        bus: EventBus | None = None,
        recovery: RecoveryCoordinator | None = None,
    ) -> None:
        self._settings = settings
        self._bus = bus
        self._recovery = recovery
        self._classes: dict[str, type[BaseAdapter]] = {}
        self._adapters: dict[str, BaseAdapter] = {}
        self._issued_ids: set[str] = set()
        self._in_cleanup = False

    # ------------------------------------------------------------------
    # Variant registration
    # ------------------------------------------------------------------

    def register(self, variant_id: str, adapter_cls: type[BaseAdapter]) -> None:
        """Map *variant_id* to *adapter_cls* (replacing any previous mapping)."""
        if variant_id in self._classes:
            logger.debug("Replacing adapter variant %s", variant_id)
        self._classes[variant_id] = adapter_cls

    def register_defaults(self) -> None:
        """Register the abstract base and every built-in service variant."""
        from chatpilot.adapters.services import BUILTIN_VARIANTS

        self.register(BASE_VARIANT, BaseAdapter)
        for variant_id, adapter_cls in BUILTIN_VARIANTS.items():
            self.register(variant_id, adapter_cls)
        logger.debug("Registered adapter variants: %s", ", ".join(self.get_supported_types()))

    def get_supported_types(self) -> list[str]:
        """Return registered variant ids, excluding the abstract base."""
        return [v for v in self._classes if v != BASE_VARIANT]

    def is_supported(self, variant_id: str) -> bool:
        return variant_id in self._classes and variant_id != BASE_VARIANT

    # ------------------------------------------------------------------
    # Instances
    # ------------------------------------------------------------------

    def create_adapter(
        self,
        variant_id: str,
        config: AdapterConfig | None = None,
        *,
        surface: AutomationSurface,
    ) -> tuple[str, BaseAdapter]:
        """Construct a new, not yet initialized adapter.

        Returns:
            ``(adapter_id, adapter)``; the id is unique for this registry's lifetime.

        Raises:
            UnknownAdapterType: If *variant_id* is not registered (or is the base).
            RegistryReentryError: If called from inside a cleanup hook.
        """
        self._guard_reentry("create_adapter")
        if not self.is_supported(variant_id):
            raise UnknownAdapterType(variant_id)

        adapter_cls = self._classes[variant_id]
        adapter_id = self._new_id(variant_id)
        adapter = adapter_cls(
            adapter_id,
            config,
            surface,
            settings=self._settings,
            bus=self._bus,
            recovery=self._recovery,
        )
        self._adapters[adapter_id] = adapter
        logger.info("Created adapter instance: %s (%s)", adapter_id, variant_id)
        return adapter_id, adapter

    def get_adapter(self, adapter_id: str) -> BaseAdapter | None:
        return self._adapters.get(adapter_id)

    def get_all_adapters(self) -> dict[str, BaseAdapter]:
        """Return a copy of the id → adapter map."""
        return dict(self._adapters)

    def remove_adapter(self, adapter_id: str) -> bool:
        """Dispose and forget *adapter_id*; cleanup errors are logged, not raised.

        Returns:
            True if the adapter existed.
        """
        self._guard_reentry("remove_adapter")
        adapter = self._adapters.get(adapter_id)
        if adapter is None:
            return False
        with self._cleanup_scope():
            self._dispose(adapter_id, adapter)
        del self._adapters[adapter_id]
        if self._bus is not None:
            self._bus.forget_adapter(adapter_id)
        logger.info("Removed adapter: %s", adapter_id)
        return True

    def get_stats(self) -> dict[str, Any]:
        by_type = Counter(type(a).variant_id for a in self._adapters.values())
        by_state = Counter(a.state.value for a in self._adapters.values())
        return {
            "total_adapters": len(self._adapters),
            "supported_types": len(self.get_supported_types()),
            "adapters_by_type": dict(by_type),
            "adapters_by_state": dict(by_state),
        }

    def cleanup(self) -> None:
        """Dispose every adapter, isolating per-instance failures."""
        self._guard_reentry("cleanup")
        logger.info("Cleaning up %d adapters", len(self._adapters))
        with self._cleanup_scope():
            for adapter_id, adapter in list(self._adapters.items()):
                self._dispose(adapter_id, adapter)
                if self._bus is not None:
                    self._bus.forget_adapter(adapter_id)
        self._adapters.clear()

    def reset(self) -> None:
        """Dispose every adapter and forget all variants.

        ``register`` / ``register_defaults`` must be called again before the
        next ``create_adapter``. Issued ids stay reserved.
        """
        self.cleanup()
        self._classes.clear()
        logger.info("Adapter registry reset")

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _new_id(self, variant_id: str) -> str:
        while True:
            suffix = "".join(secrets.choice(_SUFFIX_ALPHABET) for _ in range(9))
            adapter_id = f"{variant_id}_{int(time.time() * 1000)}_{suffix}"
            if adapter_id not in self._issued_ids:
                self._issued_ids.add(adapter_id)
                return adapter_id

    @staticmethod
    def _dispose(adapter_id: str, adapter: BaseAdapter) -> None:
        try:
            adapter.cleanup()
        except RegistryReentryError:
            logger.warning("Adapter %s cleanup re-entered the registry", adapter_id)
        except Exception as exc:
            logger.warning("Error cleaning up adapter %s: %s", adapter_id, exc)

    @contextmanager
    def _cleanup_scope(self) -> Iterator[None]:
        self._in_cleanup = True
        try:
            yield
        finally:
            self._in_cleanup = False

    def _guard_reentry(self, operation: str) -> None:
        if self._in_cleanup:
            raise RegistryReentryError(f"{operation} called from inside an adapter cleanup hook", detail=operation)

    def __len__(self) -> int:
        return len(self._adapters)

    def __contains__(self, adapter_id: object) -> bool:
        return adapter_id in self._adapters
