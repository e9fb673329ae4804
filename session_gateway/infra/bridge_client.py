"""
HTTP client for the messaging bridge.

The bridge runs the WhatsApp Web automation library in a separate process and
exposes a REST API:
- POST /clients - Create and initialize a client
- GET /clients/{id}/events - Long-poll lifecycle events
- DELETE /clients/{id} - Destroy a client
- POST /clients/{id}/logout - Invalidate credentials
- GET /clients/{id}/registered/{chat_id} - Destination check
- POST /clients/{id}/messages - Send text or media
"""

import asyncio
import base64
import logging
from pathlib import Path
from typing import Any, Optional, Union

import httpx

from session_gateway.config import Settings, get_settings
from session_gateway.infra.messaging_client import (
    ClientEvent,
    ClientFactory,
    MediaPayload,
    MessagingClient,
    MessagingClientError,
    SendOptions,
)

logger = logging.getLogger(__name__)

# Seconds to wait before polling again after a transport error
POLL_RETRY_DELAY = 2.0

BASE_BROWSER_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-accelerated-2d-canvas",
    "--no-first-run",
    "--no-zygote",
    "--disable-gpu",
]

PRODUCTION_BROWSER_ARGS = BASE_BROWSER_ARGS + [
    "--single-process",
    "--disable-background-timer-throttling",
    "--disable-backgrounding-occluded-windows",
    "--disable-renderer-backgrounding",
    "--disable-features=TranslateUI",
    "--disable-ipc-flooding-protection",
    "--memory-pressure-off",
]


def build_browser_config(settings: Settings) -> dict[str, Any]:
    """
    Browser options for the bridge's headless Chrome.

    Browserless takes priority when configured, then the production
    profile, then development defaults.
    """
    if settings.browser_ws_endpoint:
        return {
            "headless": True,
            "args": list(BASE_BROWSER_ARGS),
            "browserWSEndpoint": settings.browser_ws_endpoint,
        }

    if settings.is_production:
        return {
            "headless": True,
            "executablePath": settings.chrome_executable_path,
            "args": list(PRODUCTION_BROWSER_ARGS),
        }

    return {
        "headless": True,
        "args": list(BASE_BROWSER_ARGS),
    }


class BridgeMessagingClient(MessagingClient):
    """
    Messaging client handle backed by the bridge.

    Lifecycle events are fetched by a background task that long-polls the
    bridge and re-emits them to registered handlers.
    """

    def __init__(
        self,
        client_id: str,
        data_path: Path,
        http: httpx.AsyncClient,
        settings: Settings,
    ):
        super().__init__(client_id, data_path)
        self._http = http
        self._settings = settings
        self._cursor = 0
        self._poll_task: Optional[asyncio.Task] = None
        self._closed = False

    async def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        """Issue a bridge request, mapping transport and HTTP errors."""
        try:
            response = await self._http.request(method, url, **kwargs)
            response.raise_for_status()
            return response
        except httpx.HTTPStatusError as e:
            detail = _error_detail(e.response)
            raise MessagingClientError(
                f"Bridge returned {e.response.status_code} for {method} {url}: {detail}"
            ) from e
        except httpx.HTTPError as e:
            raise MessagingClientError(f"Bridge request failed: {e}") from e

    async def initialize(self) -> None:
        """Create the client on the bridge and start the event poller."""
        payload = {
            "clientId": self.client_id,
            "dataPath": str(self.data_path),
            "puppeteer": build_browser_config(self._settings),
            "qrMaxRetries": self._settings.qr_max_retries,
            "authTimeoutMs": int(self._settings.session_init_timeout * 1000),
            "restartOnAuthFail": True,
        }
        await self._request("POST", "/clients", json=payload)
        logger.debug(f"Bridge client {self.client_id} created")

        if self._closed:
            # destroy() ran while the create was in flight
            logger.info(f"Bridge client {self.client_id} closed during creation, removing it")
            await self._delete_remote()
            return

        if self._poll_task is None:
            self._poll_task = asyncio.create_task(
                self._poll_events(), name=f"bridge-events-{self.client_id}"
            )
            self._poll_task.add_done_callback(self._on_poll_done)

    def _on_poll_done(self, task: asyncio.Task) -> None:
        """Log an event poller that stopped on an unexpected error."""
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(
                f"Event poller for {self.client_id} stopped unexpectedly: {error!r}"
            )

    async def _poll_events(self) -> None:
        """Long-poll the bridge for events until the handle is closed."""
        while not self._closed:
            try:
                response = await self._http.get(
                    f"/clients/{self.client_id}/events",
                    params={"after": self._cursor, "wait": self._settings.bridge_poll_wait},
                    timeout=self._settings.bridge_poll_wait + self._settings.bridge_timeout,
                )
            except httpx.HTTPError as e:
                logger.warning(f"Event poll for {self.client_id} failed: {e}")
                await asyncio.sleep(POLL_RETRY_DELAY)
                continue

            if response.status_code == 404:
                logger.warning(f"Bridge no longer knows client {self.client_id}")
                self._closed = True
                await self.emit(ClientEvent.DISCONNECTED, "bridge_lost")
                return

            if response.is_error:
                logger.warning(
                    f"Event poll for {self.client_id} returned {response.status_code}"
                )
                await asyncio.sleep(POLL_RETRY_DELAY)
                continue

            try:
                batch = [
                    (int(item.get("seq", self._cursor)), item.get("type"), item.get("data"))
                    for item in response.json().get("events", [])
                ]
            except (ValueError, TypeError, AttributeError) as e:
                logger.warning(f"Malformed event batch for {self.client_id}: {e}")
                await asyncio.sleep(POLL_RETRY_DELAY)
                continue

            for seq, event_type, data in batch:
                self._cursor = max(self._cursor, seq)
                try:
                    event = ClientEvent(event_type)
                except ValueError:
                    logger.debug(f"Ignoring bridge event {event_type!r}")
                    continue
                await self.emit(event, data)

    async def _stop_polling(self) -> None:
        """Stop the event poller."""
        self._closed = True
        task = self._poll_task
        self._poll_task = None
        if task is None or task is asyncio.current_task():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def destroy(self) -> None:
        """Stop polling and remove the client from the bridge."""
        await self._stop_polling()
        await self._delete_remote()

    async def _delete_remote(self) -> None:
        """Delete the bridge client; an unknown client counts as deleted."""
        try:
            await self._request("DELETE", f"/clients/{self.client_id}")
        except MessagingClientError as e:
            cause = e.__cause__
            if isinstance(cause, httpx.HTTPStatusError) and cause.response.status_code == 404:
                logger.debug(f"Bridge client {self.client_id} already gone")
                return
            raise

    async def logout(self) -> None:
        """Ask the bridge to log the client out."""
        await self._request("POST", f"/clients/{self.client_id}/logout")

    async def is_registered_user(self, chat_id: str) -> bool:
        """Check a chat id against the network."""
        response = await self._request(
            "GET", f"/clients/{self.client_id}/registered/{chat_id}"
        )
        return bool(response.json().get("registered"))

    async def send_message(
        self,
        chat_id: str,
        content: Union[str, MediaPayload],
        options: Optional[SendOptions] = None,
    ) -> None:
        """Send text or media through the bridge."""
        payload: dict[str, Any] = {"chatId": chat_id}

        if isinstance(content, MediaPayload):
            payload["media"] = {
                "mimetype": content.mimetype,
                "data": base64.b64encode(content.data).decode("ascii"),
                "filename": content.filename,
            }
        else:
            payload["text"] = content

        if options:
            payload["options"] = options.to_dict()

        await self._request(
            "POST", f"/clients/{self.client_id}/messages", json=payload
        )


def _error_detail(response: httpx.Response) -> str:
    """Extract an error message from a bridge response."""
    try:
        data = response.json()
    except ValueError:
        return response.text[:200]
    if isinstance(data, dict):
        return str(data.get("error") or data.get("message") or data)
    return str(data)


class BridgeClientFactory(ClientFactory):
    """Creates bridge-backed handles sharing one HTTP connection pool."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        http: Optional[httpx.AsyncClient] = None,
    ):
        self._settings = settings or get_settings()
        self._http = http

    def _get_http(self) -> httpx.AsyncClient:
        """Get or create the shared HTTP client."""
        if self._http is None:
            headers = {}
            if self._settings.bridge_token:
                headers["Authorization"] = f"Bearer {self._settings.bridge_token}"
            self._http = httpx.AsyncClient(
                base_url=self._settings.bridge_url,
                timeout=self._settings.bridge_timeout,
                headers=headers,
            )
        return self._http

    def create(self, client_id: str, data_path: Path) -> BridgeMessagingClient:
        """Construct a handle for one session."""
        return BridgeMessagingClient(
            client_id=client_id,
            data_path=data_path,
            http=self._get_http(),
            settings=self._settings,
        )

    async def aclose(self) -> None:
        """Close the shared HTTP client."""
        if self._http is not None:
            await self._http.aclose()
            self._http = None
