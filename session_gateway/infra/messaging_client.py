"""
Messaging client interface.

The messaging network (pairing, authentication, transmission) is owned by an
external library. The gateway drives it through MessagingClient handles and
learns about lifecycle progress through callbacks registered with ``on()``.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional, Union

logger = logging.getLogger(__name__)


class ClientEvent(str, Enum):
    """Lifecycle events emitted by a messaging client."""

    QR = "qr"
    AUTHENTICATED = "authenticated"
    READY = "ready"
    AUTH_FAILURE = "auth_failure"
    DISCONNECTED = "disconnected"
    MESSAGE = "message"


EventHandler = Callable[[Any], Awaitable[None]]


class MessagingClientError(Exception):
    """Raised when the messaging client or its transport fails."""
    pass


@dataclass
class MediaPayload:
    """Downloaded media ready to hand to the client."""

    mimetype: str
    data: bytes
    filename: Optional[str] = None


@dataclass
class SendOptions:
    """Per-message delivery options."""

    caption: Optional[str] = None
    send_audio_as_voice: bool = False
    link_preview: bool = False

    def to_dict(self) -> dict:
        """Convert to the bridge wire format."""
        options: dict = {}
        if self.caption:
            options["caption"] = self.caption
        if self.send_audio_as_voice:
            options["sendAudioAsVoice"] = True
        if self.link_preview:
            options["linkPreview"] = True
        return options


class MessagingClient(ABC):
    """
    Base class for messaging client handles.

    One instance is bound to one session. Subclasses implement the
    protocol calls and report progress by awaiting ``emit()``.
    """

    def __init__(self, client_id: str, data_path: Path):
        self.client_id = client_id
        self.data_path = data_path
        self._handlers: dict[ClientEvent, list[EventHandler]] = {}

    def on(self, event: ClientEvent, handler: EventHandler) -> None:
        """Register an async handler for a lifecycle event."""
        self._handlers.setdefault(event, []).append(handler)

    async def emit(self, event: ClientEvent, payload: Any = None) -> None:
        """
        Deliver an event to every registered handler.

        A failing handler is logged and does not stop delivery to the rest.
        """
        for handler in list(self._handlers.get(event, [])):
            try:
                await handler(payload)
            except Exception as e:
                logger.exception(
                    f"Handler for {event.value} on client {self.client_id} failed: {e}"
                )

    @abstractmethod
    async def initialize(self) -> None:
        """Start the connection. Progress arrives as events."""
        pass

    @abstractmethod
    async def destroy(self) -> None:
        """Tear the connection down and release the handle."""
        pass

    @abstractmethod
    async def logout(self) -> None:
        """Invalidate the stored credentials."""
        pass

    @abstractmethod
    async def is_registered_user(self, chat_id: str) -> bool:
        """Check whether a chat id is an account on the network."""
        pass

    @abstractmethod
    async def send_message(
        self,
        chat_id: str,
        content: Union[str, MediaPayload],
        options: Optional[SendOptions] = None,
    ) -> None:
        """Send text or media to a chat id."""
        pass


class ClientFactory(ABC):
    """Builds client handles bound to a session's storage."""

    @abstractmethod
    def create(self, client_id: str, data_path: Path) -> MessagingClient:
        """Construct (but do not initialize) a client handle."""
        pass

    async def aclose(self) -> None:
        """Release resources shared between handles."""
        return None
