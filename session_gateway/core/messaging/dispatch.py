"""
Message dispatch.

Resolves the sending session, checks it can send, validates the destination
and hands the message to the session's client.

Flow:
1. Resolve session (not found -> error)
2. Require ready status (anything else -> error naming the status)
3. Normalize the destination number
4. Check the destination exists on the network
5. Fetch media for media intents
6. Send with a timeout
"""

import asyncio
import logging
from typing import Optional, Union

from session_gateway.config import Settings, get_settings
from session_gateway.core.errors import (
    ExternalClientError,
    SessionNotFoundError,
    SessionNotReadyError,
    UnregisteredDestinationError,
)
from session_gateway.core.sessions.models import Session
from session_gateway.core.sessions.registry import SessionRegistry
from session_gateway.infra.messaging_client import MediaPayload, SendOptions
from .intents import LinkIntent, MediaIntent, MessageIntent, TextIntent
from .media import MediaDownloader
from .phone import format_phone_number

logger = logging.getLogger(__name__)


class MessageDispatcher:
    """Sends messages through registered sessions."""

    def __init__(
        self,
        registry: SessionRegistry,
        media_downloader: Optional[MediaDownloader] = None,
        settings: Optional[Settings] = None,
    ):
        """
        Initialize dispatcher.

        Args:
            registry: Session registry to resolve senders from
            media_downloader: Fetches media for media intents
            settings: Application settings (defaults to cached settings)
        """
        settings = settings or get_settings()
        self._registry = registry
        self._media = media_downloader or MediaDownloader(
            max_bytes=settings.media_max_bytes,
            timeout=settings.media_download_timeout,
        )
        self._country_code = settings.default_country_code
        self._national_length = settings.phone_national_length
        self._send_timeout = settings.send_timeout

    async def close(self) -> None:
        """Release the media downloader's HTTP client."""
        await self._media.close()

    def get_ready_session(self, requested_name: str) -> Session:
        """
        Resolve a session that is able to send.

        Raises:
            SessionNotFoundError: Name does not resolve
            SessionNotReadyError: Session is in any status but ready
        """
        session = self._registry.lookup(requested_name)
        if session is None:
            raise SessionNotFoundError(requested_name, self._registry.ids())

        if not session.is_ready:
            raise SessionNotReadyError(requested_name, session.status.value)

        return session

    async def send(
        self,
        requested_name: str,
        number: Union[str, int],
        intent: MessageIntent,
    ) -> str:
        """
        Send one message.

        Args:
            requested_name: Caller-supplied session name
            number: Destination phone number
            intent: What to send

        Returns:
            The chat id the message was sent to

        Raises:
            SessionNotFoundError, SessionNotReadyError, InvalidPhoneNumberError,
            UnregisteredDestinationError, MediaDownloadError, ExternalClientError
        """
        session = self.get_ready_session(requested_name)
        chat_id = format_phone_number(
            number,
            country_code=self._country_code,
            national_length=self._national_length,
        )

        try:
            registered = await session.client.is_registered_user(chat_id)
        except Exception as e:
            logger.error(f"Destination check failed for {chat_id}: {e}")
            raise ExternalClientError(str(e)) from e

        if not registered:
            raise UnregisteredDestinationError(chat_id)

        content, options = await self._build_message(intent)

        try:
            await asyncio.wait_for(
                session.client.send_message(chat_id, content, options),
                timeout=self._send_timeout,
            )
        except asyncio.TimeoutError as e:
            raise ExternalClientError(
                f"Sending to {chat_id} timed out after {self._send_timeout}s"
            ) from e
        except Exception as e:
            logger.error(f"Error sending {intent.type.value} message to {chat_id}: {e}")
            raise ExternalClientError(str(e)) from e

        logger.info(
            f"Sent {intent.type.value} message via {session.internal_id} to {chat_id}"
        )
        return chat_id

    async def _build_message(
        self,
        intent: MessageIntent,
    ) -> tuple[Union[str, MediaPayload], Optional[SendOptions]]:
        """Turn an intent into client content and options."""
        if isinstance(intent, TextIntent):
            return intent.message, None

        if isinstance(intent, LinkIntent):
            return intent.text, SendOptions(link_preview=True)

        if isinstance(intent, MediaIntent):
            media = await self._media.download(intent.file_url)
            if intent.as_voice_note:
                return media, SendOptions(send_audio_as_voice=True)
            return media, SendOptions(caption=intent.caption or "")

        raise TypeError(f"Unknown intent: {intent!r}")
