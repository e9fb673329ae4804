"""Session data model."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from session_gateway.infra.messaging_client import MessagingClient
from .state import SessionStatus


def _utcnow() -> datetime:
    """Get current UTC time as timezone-aware datetime."""
    return datetime.now(timezone.utc)


@dataclass(eq=False)
class Session:
    """
    One tenant's connection to the messaging network.

    The session exclusively owns its client handle. Sessions compare by
    identity so a stale event for a replaced session can be told apart
    from the one currently registered under the same id.
    """

    # Identifiers
    requested_name: str
    internal_id: str

    # Client handle and its persisted auth material
    client: MessagingClient
    storage_path: Path

    # Lifecycle
    status: SessionStatus = SessionStatus.UNINITIALIZED
    previous_status: Optional[SessionStatus] = None
    qr_code: Optional[str] = None  # Last pairing code emitted
    last_error: Optional[str] = None

    # Metadata
    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)

    @property
    def is_ready(self) -> bool:
        """Check if the session can send messages."""
        return self.status == SessionStatus.READY

    def set_status(self, status: SessionStatus) -> None:
        """Record a status change (validation is the caller's job)."""
        self.previous_status = self.status
        self.status = status
        self.updated_at = _utcnow()

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "requested_name": self.requested_name,
            "internal_id": self.internal_id,
            "status": self.status.value,
            "previous_status": self.previous_status.value if self.previous_status else None,
            "storage_path": str(self.storage_path),
            "last_error": self.last_error,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }
