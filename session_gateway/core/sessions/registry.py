"""In-memory registry of live messaging sessions."""

import asyncio
import json
import logging
from pathlib import Path
from typing import Mapping, Optional

from session_gateway.core.errors import SessionAlreadyExistsError
from .models import Session
from .naming import normalize_session_name
from .state import SessionStatus

logger = logging.getLogger(__name__)


def load_aliases(
    inline: Optional[Mapping[str, str]] = None,
    path: Optional[Path] = None,
) -> dict[str, str]:
    """
    Build the legacy alias table.

    Args:
        inline: Aliases from configuration (SESSION_ALIASES)
        path: Optional JSON file whose entries override inline ones

    Returns:
        Mapping of requested name to historical internal id

    Raises:
        ValueError: If the file does not hold a JSON object of strings
    """
    aliases = dict(inline or {})

    if path is not None:
        data = json.loads(Path(path).read_text(encoding="utf-8"))
        if not isinstance(data, dict) or not all(
            isinstance(k, str) and isinstance(v, str) for k, v in data.items()
        ):
            raise ValueError(f"Alias file {path} must contain a JSON object of strings")
        aliases.update(data)
        logger.info(f"Loaded {len(data)} session aliases from {path}")

    return aliases


class SessionRegistry:
    """
    Authoritative mapping of internal session id to Session.

    Lookups are synchronous and never yield to the event loop. Mutations go
    through an asyncio.Lock so check-and-insert stays atomic even when callers
    await between steps.

    Resolution order for a requested name:
    1. Exact registry key
    2. Normalized name
    3. Legacy alias, only if its target is registered
    """

    def __init__(self, aliases: Optional[Mapping[str, str]] = None):
        """Initialize registry.

        Args:
            aliases: Legacy requested-name to internal-id table
        """
        self._sessions: dict[str, Session] = {}
        self._aliases: dict[str, str] = dict(aliases or {})
        self._lock = asyncio.Lock()

    @property
    def aliases(self) -> dict[str, str]:
        """Copy of the legacy alias table."""
        return dict(self._aliases)

    def resolve(self, requested_name: str) -> Optional[str]:
        """Map a caller-supplied name to a registered internal id."""
        if requested_name in self._sessions:
            return requested_name

        normalized = normalize_session_name(requested_name)
        if normalized in self._sessions:
            return normalized

        alias = self._aliases.get(requested_name)
        if alias is not None and alias in self._sessions:
            return alias

        return None

    def lookup(self, requested_name: str) -> Optional[Session]:
        """Resolve a name and return its session."""
        internal_id = self.resolve(requested_name)
        if internal_id is None:
            return None
        return self._sessions[internal_id]

    def get(self, internal_id: str) -> Optional[Session]:
        """Get session by internal id."""
        return self._sessions.get(internal_id)

    async def register(self, session: Session) -> None:
        """
        Insert a session unless one already resolves for it.

        Raises:
            SessionAlreadyExistsError: If the requested name or the
                internal id is already taken
        """
        async with self._lock:
            existing = self.resolve(session.requested_name)
            if existing is None and session.internal_id in self._sessions:
                existing = session.internal_id
            if existing is not None:
                raise SessionAlreadyExistsError(existing)

            self._sessions[session.internal_id] = session
            logger.debug(f"Session registered: {session.internal_id}")

    async def remove(
        self,
        internal_id: str,
        expected: Optional[Session] = None,
    ) -> Optional[Session]:
        """
        Remove a session.

        Args:
            internal_id: Registry key
            expected: Only remove if this exact session is registered

        Returns:
            The removed session, or None if nothing was removed
        """
        async with self._lock:
            current = self._sessions.get(internal_id)
            if current is None:
                return None
            if expected is not None and current is not expected:
                logger.debug(f"Skipping removal of replaced session {internal_id}")
                return None

            del self._sessions[internal_id]
            logger.debug(f"Session removed: {internal_id}")
            return current

    async def drain(self) -> list[Session]:
        """Remove and return every session."""
        async with self._lock:
            sessions = list(self._sessions.values())
            self._sessions.clear()
            return sessions

    def ids(self) -> list[str]:
        """Registered internal ids."""
        return list(self._sessions)

    def statuses(self) -> dict[str, SessionStatus]:
        """Last known status per registered session."""
        return {
            internal_id: session.status
            for internal_id, session in self._sessions.items()
        }

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, internal_id: object) -> bool:
        return internal_id in self._sessions
