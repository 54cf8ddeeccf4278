"""Adapter lifecycle state machine definitions."""

from enum import Enum


class AdapterState(str, Enum):
    """States of a per-service automation session."""

    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"
    SENDING = "sending"
    AWAITING_RESPONSE = "awaiting_response"
    BLOCKED = "blocked"
    FAILED = "failed"


# Failed is terminal: the caller must recreate the adapter.
TERMINAL_STATES = {AdapterState.FAILED}

# States reached only through a failure path
ERROR_STATES = {AdapterState.BLOCKED, AdapterState.FAILED}

STATE_TRANSITIONS: dict[AdapterState, frozenset[AdapterState]] = {
    AdapterState.UNINITIALIZED: frozenset({AdapterState.INITIALIZING}),
    AdapterState.INITIALIZING: frozenset(
        {AdapterState.READY, AdapterState.BLOCKED, AdapterState.FAILED}
    ),
    AdapterState.READY: frozenset(
        {AdapterState.SENDING, AdapterState.AWAITING_RESPONSE, AdapterState.INITIALIZING}
    ),
    AdapterState.SENDING: frozenset(
        {AdapterState.READY, AdapterState.BLOCKED, AdapterState.FAILED}
    ),
    AdapterState.AWAITING_RESPONSE: frozenset(
        {AdapterState.READY, AdapterState.BLOCKED, AdapterState.FAILED}
    ),
    # Only the anti-automation recovery hook leaves Blocked.
    AdapterState.BLOCKED: frozenset({AdapterState.READY}),
    AdapterState.FAILED: frozenset(),
}


def can_transition(current: AdapterState, target: AdapterState) -> bool:
    """Return True if *target* is a legal next state from *current*."""
    return target in STATE_TRANSITIONS[current]
