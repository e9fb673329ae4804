"""Session lifecycle state machine."""

from enum import Enum
from typing import Set


class SessionStatus(str, Enum):
    """States a messaging session moves through."""

    # Initial
    UNINITIALIZED = "uninitialized"

    # Pairing
    INITIALIZING = "initializing"
    QR_GENERATED = "qr_generated"
    AUTHENTICATED = "authenticated"

    # Operational
    READY = "ready"

    # Failures
    AUTH_FAILED = "auth_failed"
    DISCONNECTED = "disconnected"
    TIMEOUT = "timeout"
    ERROR = "error"


# No transitions out; the session is no longer registered
TERMINAL_STATES = {
    SessionStatus.DISCONNECTED,
    SessionStatus.ERROR,
}

# Reachable from every state
_ALWAYS_ALLOWED = {
    SessionStatus.AUTH_FAILED,
    SessionStatus.DISCONNECTED,
    SessionStatus.ERROR,
}

# Valid state transitions
VALID_TRANSITIONS: dict[SessionStatus, Set[SessionStatus]] = {
    SessionStatus.UNINITIALIZED: {
        SessionStatus.INITIALIZING,
    },
    SessionStatus.INITIALIZING: {
        SessionStatus.QR_GENERATED,
        SessionStatus.AUTHENTICATED,
        SessionStatus.TIMEOUT,
    },
    SessionStatus.QR_GENERATED: {
        SessionStatus.QR_GENERATED,  # Pairing code re-emitted
        SessionStatus.AUTHENTICATED,
    },
    SessionStatus.AUTHENTICATED: {
        SessionStatus.READY,
    },
    SessionStatus.READY: set(),
    # Timeout is non-authoritative: later real events overwrite it
    SessionStatus.TIMEOUT: {
        SessionStatus.QR_GENERATED,
        SessionStatus.AUTHENTICATED,
        SessionStatus.READY,
    },
    # Client restarts pairing after a rejected credential
    SessionStatus.AUTH_FAILED: {
        SessionStatus.QR_GENERATED,
    },
    SessionStatus.DISCONNECTED: set(),  # Terminal state
    SessionStatus.ERROR: set(),  # Terminal state
}


def can_transition(from_state: SessionStatus, to_state: SessionStatus) -> bool:
    """Check if a state transition is valid."""
    if to_state in _ALWAYS_ALLOWED and from_state not in TERMINAL_STATES:
        return True
    return to_state in VALID_TRANSITIONS.get(from_state, set())


def get_valid_transitions(state: SessionStatus) -> Set[SessionStatus]:
    """Get all valid transitions from a state."""
    if state in TERMINAL_STATES:
        return set()
    return VALID_TRANSITIONS.get(state, set()) | _ALWAYS_ALLOWED


def is_terminal_state(state: SessionStatus) -> bool:
    """Check if state is terminal (the session is no longer registered)."""
    return state in TERMINAL_STATES
