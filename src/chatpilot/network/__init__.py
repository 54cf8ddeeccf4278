"""Network resilience: failure classification and the retrying request engine."""

from chatpilot.network.classify import classify_error
from chatpilot.network.engine import NetworkResilienceEngine

__all__ = ["NetworkResilienceEngine", "classify_error"]
