"""Tests for the session lifecycle controller."""

import asyncio
from unittest.mock import patch

import pytest

from session_gateway.core.errors import (
    ExternalClientError,
    SessionAlreadyExistsError,
    SessionNotFoundError,
    ShuttingDownError,
    ValidationError,
)
from session_gateway.core.sessions.lifecycle import SessionLifecycleController
from session_gateway.core.sessions.state import SessionStatus
from session_gateway.infra.messaging_client import ClientEvent
from tests.conftest import FakeClientFactory, client_error


async def settle():
    """Let background initialization tasks run."""
    await asyncio.sleep(0.01)


class TestCreate:
    """Test session creation."""

    @pytest.mark.asyncio
    async def test_create_registers_initializing(self, lifecycle, registry, factory, settings):
        """Test a new session is registered and initialization requested."""
        session = await lifecycle.create("sales@example.com")

        assert session.internal_id == "sales_at_example_dot_com"
        assert session.requested_name == "sales@example.com"
        assert session.status == SessionStatus.INITIALIZING
        assert registry.get("sales_at_example_dot_com") is session
        assert session.storage_path == settings.sessions_dir / "sales_at_example_dot_com"
        assert session.storage_path.is_dir()

        await settle()
        assert factory.last.initialized is True
        await lifecycle.shutdown()

    @pytest.mark.asyncio
    async def test_create_duplicate(self, lifecycle):
        """Test creating the same name twice fails."""
        await lifecycle.create("sales@example.com")

        with pytest.raises(SessionAlreadyExistsError) as exc_info:
            await lifecycle.create("sales@example.com")

        assert exc_info.value.to_dict()["existingSessionName"] == "sales_at_example_dot_com"
        await lifecycle.shutdown()

    @pytest.mark.asyncio
    async def test_create_duplicate_after_normalization(self, lifecycle, registry):
        """Test names normalizing to the same id collide."""
        await lifecycle.create("a.b")

        with pytest.raises(SessionAlreadyExistsError):
            await lifecycle.create("a_dot_b")

        assert len(registry) == 1
        await lifecycle.shutdown()

    @pytest.mark.asyncio
    async def test_concurrent_create_single_winner(self, lifecycle, registry):
        """Test concurrent creates for one id yield exactly one session."""
        results = await asyncio.gather(
            lifecycle.create("a.b"),
            lifecycle.create("a_dot_b"),
            lifecycle.create("a.b"),
            return_exceptions=True,
        )

        created = [r for r in results if not isinstance(r, Exception)]
        rejected = [r for r in results if isinstance(r, SessionAlreadyExistsError)]
        assert len(created) == 1
        assert len(rejected) == 2
        assert registry.ids() == ["a_dot_b"]
        await lifecycle.shutdown()

    @pytest.mark.asyncio
    async def test_create_unusable_name(self, lifecycle, registry):
        """Test a name normalizing to empty is rejected."""
        with pytest.raises(ValidationError):
            await lifecycle.create("!!!")

        assert len(registry) == 0

    @pytest.mark.asyncio
    async def test_create_factory_failure(self, registry, settings):
        """Test handle construction errors leave nothing registered."""

        class BrokenFactory(FakeClientFactory):
            def create(self, client_id, data_path):
                raise RuntimeError("no browser")

        lifecycle = SessionLifecycleController(registry, BrokenFactory(), settings)

        with pytest.raises(ExternalClientError):
            await lifecycle.create("one")

        assert len(registry) == 0

    @pytest.mark.asyncio
    async def test_initialize_failure_unregisters(self, registry, settings):
        """Test a failed initialize marks error and removes the entry."""
        factory = FakeClientFactory(
            configure=lambda c: setattr(c, "initialize_error", client_error("boom"))
        )
        lifecycle = SessionLifecycleController(registry, factory, settings)

        session = await lifecycle.create("one")
        await settle()

        assert session.status == SessionStatus.ERROR
        assert session.last_error == "boom"
        assert "one" not in registry
        assert factory.last.destroyed is True
        await lifecycle.shutdown()


class TestEvents:
    """Test client events driving the state machine."""

    @pytest.mark.asyncio
    async def test_pairing_flow(self, lifecycle, factory):
        """Test qr, authenticated and ready events in order."""
        session = await lifecycle.create("one")
        client = factory.last

        await client.emit(ClientEvent.QR, "2@abc,def")
        assert session.status == SessionStatus.QR_GENERATED
        assert session.qr_code == "2@abc,def"

        await client.emit(ClientEvent.QR, "2@refreshed")
        assert session.qr_code == "2@refreshed"

        await client.emit(ClientEvent.AUTHENTICATED)
        assert session.status == SessionStatus.AUTHENTICATED
        assert session.qr_code is None

        await client.emit(ClientEvent.READY)
        assert session.status == SessionStatus.READY
        assert session.is_ready
        await lifecycle.shutdown()

    @pytest.mark.asyncio
    async def test_invalid_transition_ignored(self, lifecycle, factory):
        """Test a late qr event does not regress a ready session."""
        session = await lifecycle.create("one")
        client = factory.last
        await client.emit(ClientEvent.AUTHENTICATED)
        await client.emit(ClientEvent.READY)

        await client.emit(ClientEvent.QR, "late")

        assert session.status == SessionStatus.READY
        assert session.qr_code is None
        await lifecycle.shutdown()

    @pytest.mark.asyncio
    async def test_qr_rendered_to_terminal(self, registry, factory, settings):
        """Test the pairing code is printed when terminal output is on."""
        settings = settings.model_copy(update={"qr_terminal_output": True})
        lifecycle = SessionLifecycleController(registry, factory, settings)
        await lifecycle.create("one")

        with patch(
            "session_gateway.core.sessions.lifecycle.render_ascii_qr",
            return_value="##",
        ) as render:
            await factory.last.emit(ClientEvent.QR, "2@abc")

        render.assert_called_once_with("2@abc")
        await lifecycle.shutdown()

    @pytest.mark.asyncio
    async def test_init_timeout(self, registry, factory, settings):
        """Test silence during initialization marks the session timed out."""
        settings = settings.model_copy(update={"session_init_timeout": 0.01})
        lifecycle = SessionLifecycleController(registry, factory, settings)

        session = await lifecycle.create("one")
        await asyncio.sleep(0.05)

        assert session.status == SessionStatus.TIMEOUT
        assert "one" in registry

        # A later event still wins
        await factory.last.emit(ClientEvent.QR, "2@late")
        assert session.status == SessionStatus.QR_GENERATED
        await lifecycle.shutdown()

    @pytest.mark.asyncio
    async def test_timeout_not_applied_after_progress(self, registry, factory, settings):
        """Test the watchdog leaves a session that already progressed."""
        settings = settings.model_copy(update={"session_init_timeout": 0.01})
        lifecycle = SessionLifecycleController(registry, factory, settings)

        session = await lifecycle.create("one")
        await factory.last.emit(ClientEvent.QR, "2@abc")
        await asyncio.sleep(0.05)

        assert session.status == SessionStatus.QR_GENERATED
        await lifecycle.shutdown()

    @pytest.mark.asyncio
    async def test_auth_failure_keeps_entry(self, lifecycle, registry, factory):
        """Test auth failure records the error without unregistering."""
        session = await lifecycle.create("one")

        await factory.last.emit(ClientEvent.AUTH_FAILURE, "bad credentials")

        assert session.status == SessionStatus.AUTH_FAILED
        assert session.last_error == "bad credentials"
        assert registry.get("one") is session
        await lifecycle.shutdown()

    @pytest.mark.asyncio
    async def test_rejected_auth_failure_keeps_error(self, lifecycle, factory):
        """Test an auth failure after a terminal state leaves the recorded error."""
        session = await lifecycle.create("one")
        session.last_error = "page crashed"
        session.set_status(SessionStatus.ERROR)

        await factory.last.emit(ClientEvent.AUTH_FAILURE, "late failure")

        assert session.status == SessionStatus.ERROR
        assert session.last_error == "page crashed"
        await lifecycle.shutdown()

    @pytest.mark.asyncio
    async def test_disconnect_removes_entry_keeps_storage(self, lifecycle, registry, factory):
        """Test disconnect unregisters and destroys but leaves auth files."""
        session = await lifecycle.create("one")
        (session.storage_path / "creds.json").write_text("{}")
        client = factory.last
        await client.emit(ClientEvent.AUTHENTICATED)
        await client.emit(ClientEvent.READY)

        await client.emit(ClientEvent.DISCONNECTED, "NAVIGATION")

        assert session.status == SessionStatus.DISCONNECTED
        assert "one" not in registry
        assert client.destroyed is True
        assert (session.storage_path / "creds.json").exists()
        await lifecycle.shutdown()

    @pytest.mark.asyncio
    async def test_stale_client_events_ignored(self, lifecycle, registry, factory):
        """Test events from a deleted session's handle do not touch its successor."""
        await lifecycle.create("one")
        old_client = factory.last
        await lifecycle.delete("one")

        new_session = await lifecycle.create("one")
        await old_client.emit(ClientEvent.READY)
        await old_client.emit(ClientEvent.DISCONNECTED, "late")

        assert registry.get("one") is new_session
        assert new_session.status == SessionStatus.INITIALIZING
        await lifecycle.shutdown()

    @pytest.mark.asyncio
    async def test_incoming_message_logged(self, lifecycle, factory, caplog):
        """Test incoming messages are only logged."""
        session = await lifecycle.create("one")

        with caplog.at_level("INFO"):
            await factory.last.emit(ClientEvent.MESSAGE, {"from": "123@c.us", "body": "hi"})

        assert "Received message from 123@c.us: hi" in caplog.text
        assert session.status == SessionStatus.INITIALIZING
        await lifecycle.shutdown()


class TestDeleteAndLogout:
    """Test teardown operations."""

    @pytest.mark.asyncio
    async def test_delete(self, lifecycle, registry, factory):
        """Test delete unregisters, destroys and removes storage."""
        session = await lifecycle.create("one")
        (session.storage_path / "creds.json").write_text("{}")

        await lifecycle.delete("one")

        assert "one" not in registry
        assert factory.last.destroyed is True
        assert not session.storage_path.exists()
        await lifecycle.shutdown()

    @pytest.mark.asyncio
    async def test_delete_by_requested_name(self, lifecycle, registry):
        """Test delete accepts the un-normalized name."""
        await lifecycle.create("sales@example.com")

        await lifecycle.delete("sales@example.com")

        assert len(registry) == 0
        await lifecycle.shutdown()

    @pytest.mark.asyncio
    async def test_delete_via_alias(self, lifecycle, registry):
        """Test delete resolves legacy aliases."""
        await lifecycle.create("support_at_example_dot_com")

        await lifecycle.delete("legacy@example.com")

        assert len(registry) == 0
        await lifecycle.shutdown()

    @pytest.mark.asyncio
    async def test_delete_survives_destroy_error(self, registry, settings):
        """Test a failing handle teardown does not block deletion."""
        factory = FakeClientFactory(
            configure=lambda c: setattr(c, "destroy_error", client_error("browser gone"))
        )
        lifecycle = SessionLifecycleController(registry, factory, settings)
        session = await lifecycle.create("one")

        await lifecycle.delete("one")

        assert "one" not in registry
        assert not session.storage_path.exists()
        await lifecycle.shutdown()

    @pytest.mark.asyncio
    async def test_delete_during_initialize(self, registry, settings):
        """Test a handle whose initialize finishes after delete is closed again."""
        gate = asyncio.Event()
        factory = FakeClientFactory(configure=lambda c: setattr(c, "initialize_gate", gate))
        lifecycle = SessionLifecycleController(registry, factory, settings)
        await lifecycle.create("one")
        await settle()

        await lifecycle.delete("one")
        assert factory.last.calls == ["destroy"]

        gate.set()
        await settle()

        assert factory.last.calls == ["destroy", "initialize", "destroy"]
        assert "one" not in registry
        await lifecycle.shutdown()

    @pytest.mark.asyncio
    async def test_delete_unknown(self, lifecycle):
        """Test deleting an unknown session fails with the available list."""
        await lifecycle.create("one")

        with pytest.raises(SessionNotFoundError) as exc_info:
            await lifecycle.delete("two")

        assert exc_info.value.details["available"] == ["one"]
        assert "Available sessions: one" in exc_info.value.message
        await lifecycle.shutdown()

    @pytest.mark.asyncio
    async def test_logout(self, lifecycle, registry, factory):
        """Test logout keeps the entry and its storage."""
        session = await lifecycle.create("one")

        await lifecycle.logout("one")

        assert factory.last.logged_out is True
        assert registry.get("one") is session
        assert session.storage_path.exists()
        await lifecycle.shutdown()

    @pytest.mark.asyncio
    async def test_logout_failure(self, registry, settings):
        """Test client logout errors surface as external errors."""
        factory = FakeClientFactory(
            configure=lambda c: setattr(c, "logout_error", client_error("not paired"))
        )
        lifecycle = SessionLifecycleController(registry, factory, settings)
        await lifecycle.create("one")

        with pytest.raises(ExternalClientError) as exc_info:
            await lifecycle.logout("one")

        assert exc_info.value.message == "not paired"
        await lifecycle.shutdown()

    @pytest.mark.asyncio
    async def test_status(self, lifecycle):
        """Test status resolves through normalization."""
        session = await lifecycle.create("a.b")

        assert lifecycle.status("a.b") is session
        with pytest.raises(SessionNotFoundError):
            lifecycle.status("c.d")
        await lifecycle.shutdown()


class TestShutdown:
    """Test graceful shutdown."""

    @pytest.mark.asyncio
    async def test_shutdown_drains_everything(self, lifecycle, registry, factory):
        """Test every handle is destroyed and the registry emptied."""
        await lifecycle.create("one")
        await lifecycle.create("two")

        failures = await lifecycle.shutdown()

        assert failures == []
        assert len(registry) == 0
        assert all(client.destroyed for client in factory.created)
        assert lifecycle.is_shutting_down

    @pytest.mark.asyncio
    async def test_shutdown_collects_failures(self, registry, settings):
        """Test one failing handle does not stop the drain."""
        calls = {"n": 0}

        def configure(client):
            calls["n"] += 1
            if calls["n"] == 1:
                client.destroy_error = client_error("stuck")

        factory = FakeClientFactory(configure=configure)
        lifecycle = SessionLifecycleController(registry, factory, settings)
        await lifecycle.create("one")
        await lifecycle.create("two")

        failures = await lifecycle.shutdown()

        assert [internal_id for internal_id, _ in failures] == ["one"]
        assert factory.created[1].destroyed is True
        assert len(registry) == 0

    @pytest.mark.asyncio
    async def test_create_refused_after_shutdown(self, lifecycle, registry):
        """Test no sessions can be created once shutdown began."""
        await lifecycle.shutdown()

        with pytest.raises(ShuttingDownError):
            await lifecycle.create("one")

        assert len(registry) == 0


class TestRenderAsciiQr:
    """Test console rendering of pairing codes."""

    def test_renders_block_characters(self):
        from session_gateway.infra.qr import render_ascii_qr

        rendered = render_ascii_qr("2@abc,def,ghi")

        lines = rendered.splitlines()
        assert len(lines) > 10
        assert any(ch in rendered for ch in "█▀▄")
