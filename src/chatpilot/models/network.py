"""Network resilience data models."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ConnectionStatus(str, Enum):
    """Process-wide connectivity status broadcast to UI collaborators."""

    UNKNOWN = "unknown"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    ERROR = "error"
    READY = "ready"


class ErrorCategory(str, Enum):
    """Failure classes, each with its own retry policy."""

    TIMEOUT = "timeout"
    CONNECTION = "connection"
    ANTI_AUTOMATION = "anti_automation"
    UNKNOWN = "unknown"


class RequestStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class NetworkRequestRecord:
    """Diagnostic record of one request attempt, retained briefly after completion."""

    request_id: str
    url: str
    start_time: float = field(default_factory=time.time)
    status: RequestStatus = RequestStatus.PENDING
    success: bool | None = None
    error: str = ""
    finished_at: float | None = None


@dataclass(frozen=True)
class RetryPolicy:
    """Retry budget and delay base for one error category."""

    category: ErrorCategory
    max_attempts: int
    delay_ms: int = 0


@dataclass
class NetworkStats:
    """Result of ``NetworkResilienceEngine.get_network_stats()``."""

    connection_status: ConnectionStatus
    active_requests: int
    tracked_requests: int
    pending_retries: int
    is_online: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "connection_status": self.connection_status.value,
            "active_requests": self.active_requests,
            "tracked_requests": self.tracked_requests,
            "pending_retries": self.pending_retries,
            "is_online": self.is_online,
        }
