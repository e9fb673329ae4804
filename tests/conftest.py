"""Shared fixtures: an in-memory messaging client and isolated services."""

import asyncio
from pathlib import Path
from typing import Callable, Optional, Union

import pytest

from session_gateway.config import Settings
from session_gateway.core.sessions.lifecycle import SessionLifecycleController
from session_gateway.core.sessions.models import Session
from session_gateway.core.sessions.registry import SessionRegistry
from session_gateway.core.sessions.state import SessionStatus
from session_gateway.infra.messaging_client import (
    ClientFactory,
    MediaPayload,
    MessagingClient,
    MessagingClientError,
    SendOptions,
)


class FakeMessagingClient(MessagingClient):
    """Messaging client that records calls instead of talking to a network."""

    def __init__(self, client_id: str, data_path: Path):
        super().__init__(client_id, data_path)
        self.initialized = False
        self.destroyed = False
        self.logged_out = False
        self.registered_numbers: Optional[set[str]] = None  # None = all registered
        self.sent: list[tuple[str, Union[str, MediaPayload], Optional[SendOptions]]] = []
        self.send_delay = 0.0
        self.initialize_gate: Optional[asyncio.Event] = None  # blocks initialize() until set
        self.calls: list[str] = []

        self.initialize_error: Optional[Exception] = None
        self.destroy_error: Optional[Exception] = None
        self.logout_error: Optional[Exception] = None
        self.check_error: Optional[Exception] = None
        self.send_error: Optional[Exception] = None

    async def initialize(self) -> None:
        if self.initialize_gate is not None:
            await self.initialize_gate.wait()
        if self.initialize_error:
            raise self.initialize_error
        self.initialized = True
        self.calls.append("initialize")

    async def destroy(self) -> None:
        if self.destroy_error:
            raise self.destroy_error
        self.destroyed = True
        self.calls.append("destroy")

    async def logout(self) -> None:
        if self.logout_error:
            raise self.logout_error
        self.logged_out = True

    async def is_registered_user(self, chat_id: str) -> bool:
        if self.check_error:
            raise self.check_error
        if self.registered_numbers is None:
            return True
        return chat_id in self.registered_numbers

    async def send_message(self, chat_id, content, options=None) -> None:
        if self.send_delay:
            await asyncio.sleep(self.send_delay)
        if self.send_error:
            raise self.send_error
        self.sent.append((chat_id, content, options))


class FakeClientFactory(ClientFactory):
    """Factory handing out FakeMessagingClient instances."""

    def __init__(self, configure: Optional[Callable[[FakeMessagingClient], None]] = None):
        self.configure = configure
        self.created: list[FakeMessagingClient] = []
        self.closed = False

    def create(self, client_id: str, data_path: Path) -> FakeMessagingClient:
        client = FakeMessagingClient(client_id, data_path)
        if self.configure:
            self.configure(client)
        self.created.append(client)
        return client

    @property
    def last(self) -> FakeMessagingClient:
        return self.created[-1]

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture
def settings(tmp_path):
    """Settings pointing at a temporary sessions directory."""
    return Settings(
        sessions_dir=tmp_path / "sessions",
        session_init_timeout=60.0,
        qr_terminal_output=False,
        media_max_bytes=1024,
        media_download_timeout=5.0,
        send_timeout=5.0,
    )


@pytest.fixture
def registry():
    """Empty registry with one legacy alias."""
    return SessionRegistry(aliases={"legacy@example.com": "support_at_example_dot_com"})


@pytest.fixture
def factory():
    """Fake client factory."""
    return FakeClientFactory()


@pytest.fixture
def lifecycle(registry, factory, settings):
    """Lifecycle controller over the fake factory."""
    return SessionLifecycleController(registry, factory, settings)


def make_session(
    internal_id: str,
    requested_name: Optional[str] = None,
    status: SessionStatus = SessionStatus.INITIALIZING,
    storage_root: Path = Path("sessions"),
) -> Session:
    """Build a session with a fake client, not yet registered."""
    storage_path = storage_root / internal_id
    return Session(
        requested_name=requested_name or internal_id,
        internal_id=internal_id,
        client=FakeMessagingClient(internal_id, storage_path),
        storage_path=storage_path,
        status=status,
    )


def client_error(message: str = "bridge unavailable") -> MessagingClientError:
    """Build a messaging client error."""
    return MessagingClientError(message)
