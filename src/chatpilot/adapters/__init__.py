"""Per-service adapters, their registry and the recovery collaborator.

Usage::

    from chatpilot.adapters import AdapterRegistry

    registry = AdapterRegistry()
    registry.register_defaults()
    adapter_id, adapter = registry.create_adapter("claude", surface=surface)
    await adapter.initialize()
"""

from chatpilot.adapters.base import BaseAdapter
from chatpilot.adapters.recovery import RecoveryCoordinator, RetryBudget
from chatpilot.adapters.registry import AdapterRegistry
from chatpilot.adapters.selector import SelectorAdapter

__all__ = [
    "AdapterRegistry",
    "BaseAdapter",
    "RecoveryCoordinator",
    "RetryBudget",
    "SelectorAdapter",
]
