"""
Session management.

Maps caller-supplied session names onto live messaging client handles and
tracks each session through its lifecycle.
"""

from .naming import normalize_session_name
from .state import SessionStatus, can_transition, get_valid_transitions, is_terminal_state
from .models import Session
from .registry import SessionRegistry, load_aliases
from .lifecycle import SessionLifecycleController

__all__ = [
    # Naming
    "normalize_session_name",
    # State machine
    "SessionStatus",
    "can_transition",
    "get_valid_transitions",
    "is_terminal_state",
    # Models
    "Session",
    # Registry
    "SessionRegistry",
    "load_aliases",
    # Lifecycle
    "SessionLifecycleController",
]
