"""Multi-session HTTP gateway over a messaging client."""

__version__ = "1.0.0"
