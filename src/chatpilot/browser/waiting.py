"""Bounded polling wait shared by every suspension point.

Element waits, response start/completion polling, challenge waits and
network-recovery waits all go through :func:`wait_until`, which returns a
``WaitResult`` instead of raising so each caller maps a timeout onto its own
typed error.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Generic, TypeVar

T = TypeVar("T")


@dataclass
class WaitResult(Generic[T]):
    """Outcome of a bounded wait."""

    value: T | None
    timed_out: bool
    elapsed_ms: float
    polls: int

    @property
    def ok(self) -> bool:
        return not self.timed_out


async def wait_until(
    probe: Callable[[], Awaitable[T | None]],
    *,
    timeout_ms: int,
    interval_ms: int,
) -> WaitResult[T]:
    """Poll *probe* until it returns a truthy value or *timeout_ms* elapses.

    The probe runs immediately, then every *interval_ms*. The last sleep is
    clipped to the remaining window and followed by one final probe, so a
    timeout is reported no earlier than *timeout_ms* and no later than
    *timeout_ms* plus one interval (plus probe latency).

    Args:
        probe: Async callable returning the awaited value or a falsy value.
        timeout_ms: Total wait window in milliseconds.
        interval_ms: Delay between probes in milliseconds.

    Returns:
        A ``WaitResult`` with the probe's value, or ``timed_out=True``.
    """
    start = time.monotonic()
    deadline = start + timeout_ms / 1000
    polls = 0

    while True:
        polls += 1
        value = await probe()
        now = time.monotonic()
        if value:
            return WaitResult(value=value, timed_out=False, elapsed_ms=(now - start) * 1000, polls=polls)
        if now >= deadline:
            return WaitResult(value=None, timed_out=True, elapsed_ms=(now - start) * 1000, polls=polls)
        await asyncio.sleep(min(interval_ms / 1000, deadline - now))
