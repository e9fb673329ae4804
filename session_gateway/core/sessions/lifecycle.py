"""
Session lifecycle controller.

Creates, tears down and logs out sessions, and moves them through the state
machine as their client handles report progress.
"""

import asyncio
import logging
import shutil
from functools import partial
from pathlib import Path
from typing import Any, Coroutine, Optional

from session_gateway.config import Settings, get_settings
from session_gateway.core.errors import (
    ExternalClientError,
    GatewayError,
    SessionAlreadyExistsError,
    SessionNotFoundError,
    ShuttingDownError,
    ValidationError,
)
from session_gateway.infra.messaging_client import ClientEvent, ClientFactory
from session_gateway.infra.qr import render_ascii_qr
from .models import Session
from .naming import normalize_session_name
from .registry import SessionRegistry
from .state import SessionStatus, can_transition

logger = logging.getLogger(__name__)


class SessionLifecycleController:
    """
    Drives sessions from creation to teardown.

    Protocol work is delegated to client handles built by the factory. The
    controller only reacts to their events and keeps the registry current.
    Creation returns as soon as initialization has been requested; callers
    poll the registry for progress.
    """

    def __init__(
        self,
        registry: SessionRegistry,
        client_factory: ClientFactory,
        settings: Optional[Settings] = None,
    ):
        """
        Initialize controller.

        Args:
            registry: Session registry to keep current
            client_factory: Builds client handles
            settings: Application settings (defaults to cached settings)
        """
        settings = settings or get_settings()
        self._registry = registry
        self._client_factory = client_factory
        self._sessions_dir = Path(settings.sessions_dir)
        self._init_timeout = settings.session_init_timeout
        self._qr_terminal_output = settings.qr_terminal_output
        self._tasks: set[asyncio.Task] = set()
        self._shutting_down = False

    @property
    def is_shutting_down(self) -> bool:
        """Check if shutdown has begun."""
        return self._shutting_down

    def storage_path_for(self, internal_id: str) -> Path:
        """Directory holding a session's auth material."""
        return self._sessions_dir / internal_id

    # === Operations ===

    async def create(self, requested_name: str) -> Session:
        """
        Create a session and start initializing it in the background.

        Args:
            requested_name: Caller-supplied session name

        Returns:
            The registered session, in initializing status

        Raises:
            ShuttingDownError: Shutdown has begun
            ValidationError: Name has no usable characters
            SessionAlreadyExistsError: A session already resolves for the name
            ExternalClientError: The client handle could not be constructed
        """
        if self._shutting_down:
            raise ShuttingDownError()

        internal_id = normalize_session_name(requested_name)
        if not internal_id:
            raise ValidationError(
                f"Session name {requested_name!r} contains no usable characters"
            )

        # Fail fast before building a handle; register() re-checks atomically
        existing = self._registry.resolve(requested_name)
        if existing is not None:
            raise SessionAlreadyExistsError(existing)

        logger.info(f"Creating session {requested_name} (client id {internal_id})")
        storage_path = self.storage_path_for(internal_id)

        try:
            storage_path.mkdir(parents=True, exist_ok=True)
            client = self._client_factory.create(internal_id, storage_path)
        except Exception as e:
            logger.exception(f"Failed to create session {requested_name}: {e}")
            raise ExternalClientError(
                f"Failed to create session {requested_name}: {e}"
            ) from e

        session = Session(
            requested_name=requested_name,
            internal_id=internal_id,
            client=client,
            storage_path=storage_path,
        )
        self._transition(session, SessionStatus.INITIALIZING)
        await self._registry.register(session)
        self._subscribe(session)
        logger.debug(f"Session state: {session.to_dict()}")

        self._spawn(self._initialize(session), f"init-{internal_id}")
        self._spawn(self._watch_init_timeout(session), f"init-timeout-{internal_id}")

        return session

    async def delete(self, requested_name: str) -> Session:
        """
        Delete a session, its handle and its stored credentials.

        Handle teardown is best-effort; failures are logged.

        Raises:
            SessionNotFoundError: No session resolves for the name
        """
        session = self._require(requested_name)

        removed = await self._registry.remove(session.internal_id, expected=session)
        if removed is None:
            # Removed concurrently (disconnect or another delete)
            raise SessionNotFoundError(requested_name, self._registry.ids())

        await self._teardown(session)

        try:
            await self._remove_storage(session.storage_path)
        except OSError as e:
            logger.error(f"Failed to remove storage for {session.internal_id}: {e}")
            raise GatewayError(
                f"Session {requested_name} deleted but its storage could not be removed: {e}"
            ) from e

        logger.info(f"Session {session.internal_id} deleted")
        return session

    async def logout(self, requested_name: str) -> Session:
        """
        Invalidate a session's credentials, keeping its entry and storage.

        Raises:
            SessionNotFoundError: No session resolves for the name
            ExternalClientError: The client failed to log out
        """
        session = self._require(requested_name)

        try:
            await session.client.logout()
        except Exception as e:
            logger.error(f"Logout failed for session {session.internal_id}: {e}")
            raise ExternalClientError(str(e)) from e

        logger.info(f"Session {session.internal_id} logged out")
        return session

    def status(self, requested_name: str) -> Session:
        """
        Get a session by requested name.

        Raises:
            SessionNotFoundError: No session resolves for the name
        """
        return self._require(requested_name)

    async def shutdown(self) -> list[tuple[str, Exception]]:
        """
        Refuse new sessions and tear down every registered one.

        Teardown failures are collected and logged; the drain never stops
        early.

        Returns:
            (internal_id, error) for each handle that failed to close
        """
        self._shutting_down = True
        sessions = await self._registry.drain()
        failures: list[tuple[str, Exception]] = []

        for session in sessions:
            logger.info(f"Closing session: {session.internal_id}")
            error = await self._teardown(session)
            if error is not None:
                failures.append((session.internal_id, error))

        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

        if failures:
            logger.warning(
                f"{len(failures)} of {len(sessions)} sessions failed to close cleanly: "
                + ", ".join(internal_id for internal_id, _ in failures)
            )
        else:
            logger.info(f"Closed {len(sessions)} sessions")

        return failures

    # === Internals ===

    def _require(self, requested_name: str) -> Session:
        """Resolve a session or raise SessionNotFoundError."""
        session = self._registry.lookup(requested_name)
        if session is None:
            raise SessionNotFoundError(requested_name, self._registry.ids())
        return session

    def _spawn(self, coro: Coroutine[Any, Any, None], name: str) -> asyncio.Task:
        """Run a background task, keeping a reference until it finishes."""
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def _is_current(self, session: Session) -> bool:
        """Check if this exact session is still registered."""
        return self._registry.get(session.internal_id) is session

    def _transition(self, session: Session, new_status: SessionStatus) -> bool:
        """Apply a validated status change."""
        if not can_transition(session.status, new_status):
            logger.warning(
                f"Invalid transition for {session.internal_id}: "
                f"{session.status.value} -> {new_status.value}"
            )
            return False

        session.set_status(new_status)
        logger.debug(f"Session {session.internal_id} transitioned to {new_status.value}")
        return True

    async def _initialize(self, session: Session) -> None:
        """
        Initialize the handle; on failure mark error and unregister.

        A session deleted while initialize() was in flight is torn down
        again once it returns, since the earlier teardown ran before the
        client existed.
        """
        try:
            await session.client.initialize()
        except Exception as e:
            logger.exception(f"Failed to initialize session {session.internal_id}: {e}")
            session.last_error = str(e)
            self._transition(session, SessionStatus.ERROR)

            removed = await self._registry.remove(session.internal_id, expected=session)
            if removed is not None:
                await self._teardown(session)
            return

        if not self._is_current(session):
            logger.info(
                f"Session {session.internal_id} was removed during initialization, closing it"
            )
            await self._teardown(session)

    async def _watch_init_timeout(self, session: Session) -> None:
        """Mark the session timed out if pairing never starts."""
        await asyncio.sleep(self._init_timeout)

        if self._is_current(session) and session.status == SessionStatus.INITIALIZING:
            logger.error(f"Session {session.internal_id} initialization timeout")
            self._transition(session, SessionStatus.TIMEOUT)

    async def _teardown(self, session: Session) -> Optional[Exception]:
        """Destroy a handle. Errors are logged and returned, never raised."""
        try:
            await session.client.destroy()
        except Exception as e:
            logger.error(f"Error closing session {session.internal_id}: {e}")
            return e
        return None

    async def _remove_storage(self, path: Path) -> None:
        """Delete a session's storage directory if present."""
        if path.exists():
            await asyncio.to_thread(shutil.rmtree, path)
            logger.debug(f"Removed session storage {path}")

    # === Client events ===

    def _subscribe(self, session: Session) -> None:
        """Route the handle's lifecycle events to this controller."""
        client = session.client
        client.on(ClientEvent.QR, partial(self._on_qr, session))
        client.on(ClientEvent.AUTHENTICATED, partial(self._on_authenticated, session))
        client.on(ClientEvent.READY, partial(self._on_ready, session))
        client.on(ClientEvent.AUTH_FAILURE, partial(self._on_auth_failure, session))
        client.on(ClientEvent.DISCONNECTED, partial(self._on_disconnected, session))
        client.on(ClientEvent.MESSAGE, partial(self._on_message, session))

    async def _on_qr(self, session: Session, qr: Any) -> None:
        if not self._is_current(session):
            return
        if self._transition(session, SessionStatus.QR_GENERATED):
            session.qr_code = str(qr) if qr is not None else None
            logger.info(f"QR Code for session {session.internal_id} generated")
            if self._qr_terminal_output and session.qr_code:
                logger.info("\n" + render_ascii_qr(session.qr_code))

    async def _on_authenticated(self, session: Session, _payload: Any) -> None:
        if not self._is_current(session):
            return
        if self._transition(session, SessionStatus.AUTHENTICATED):
            session.qr_code = None
            logger.info(f"Session {session.internal_id} authenticated successfully")

    async def _on_ready(self, session: Session, _payload: Any) -> None:
        if not self._is_current(session):
            return
        if self._transition(session, SessionStatus.READY):
            logger.info(f"Session {session.internal_id} is ready")

    async def _on_auth_failure(self, session: Session, message: Any) -> None:
        if not self._is_current(session):
            return
        if self._transition(session, SessionStatus.AUTH_FAILED):
            session.last_error = str(message) if message is not None else None
            logger.error(f"Authentication failed for session {session.internal_id}: {message}")

    async def _on_disconnected(self, session: Session, reason: Any) -> None:
        if not self._is_current(session):
            return
        logger.info(f"Session {session.internal_id} disconnected: {reason}")
        self._transition(session, SessionStatus.DISCONNECTED)

        removed = await self._registry.remove(session.internal_id, expected=session)
        if removed is not None:
            await self._teardown(session)

    async def _on_message(self, session: Session, message: Any) -> None:
        if isinstance(message, dict):
            sender = message.get("from")
            body = message.get("body")
        else:
            sender, body = None, message
        logger.info(f"[{session.internal_id}] Received message from {sender}: {body}")
