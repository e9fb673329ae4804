"""
Media download for outgoing messages.

Files referenced by fileUrl are fetched into memory, bounded in size and
time, before being handed to the messaging client.
"""

import logging
from pathlib import PurePosixPath
from typing import Optional
from urllib.parse import unquote, urlparse

import httpx

from session_gateway.config import get_settings
from session_gateway.core.errors import MediaDownloadError
from session_gateway.infra.messaging_client import MediaPayload

logger = logging.getLogger(__name__)

DEFAULT_MIMETYPE = "application/octet-stream"


def filename_from_url(url: str) -> Optional[str]:
    """Last path segment of a URL, if any."""
    name = PurePosixPath(unquote(urlparse(url).path)).name
    return name or None


class MediaDownloader:
    """Fetches media over HTTP with a size cap and timeout."""

    def __init__(
        self,
        max_bytes: Optional[int] = None,
        timeout: Optional[float] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """Initialize downloader.

        Args:
            max_bytes: Largest accepted body (defaults to settings)
            timeout: Fetch timeout in seconds (defaults to settings)
            client: HTTP client to use (created lazily if None)
        """
        settings = get_settings()
        self.max_bytes = max_bytes if max_bytes is not None else settings.media_max_bytes
        self.timeout = timeout if timeout is not None else settings.media_download_timeout
        self._client = client

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                follow_redirects=True,
            )
        return self._client

    async def close(self) -> None:
        """Close HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def download(self, url: str) -> MediaPayload:
        """
        Download a file.

        Args:
            url: File URL

        Returns:
            MediaPayload with the body, its content type and filename

        Raises:
            MediaDownloadError: Timeout, oversize body, network error or non-2xx
        """
        client = await self._get_client()

        try:
            async with client.stream("GET", url, timeout=self.timeout) as response:
                response.raise_for_status()

                declared = response.headers.get("content-length")
                if declared and declared.isdigit() and int(declared) > self.max_bytes:
                    raise MediaDownloadError(
                        f"Failed to download media: {declared} bytes exceeds "
                        f"the {self.max_bytes} byte limit"
                    )

                chunks: list[bytes] = []
                received = 0
                async for chunk in response.aiter_bytes():
                    received += len(chunk)
                    if received > self.max_bytes:
                        raise MediaDownloadError(
                            f"Failed to download media: body exceeds "
                            f"the {self.max_bytes} byte limit"
                        )
                    chunks.append(chunk)

                content_type = response.headers.get("content-type", DEFAULT_MIMETYPE)

        except httpx.TimeoutException as e:
            raise MediaDownloadError(f"Failed to download media: timed out ({e})") from e
        except httpx.HTTPStatusError as e:
            raise MediaDownloadError(
                f"Failed to download media: HTTP {e.response.status_code}"
            ) from e
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise MediaDownloadError(f"Failed to download media: {e}") from e

        mimetype = content_type.split(";")[0].strip() or DEFAULT_MIMETYPE
        logger.debug(f"Downloaded {received} bytes ({mimetype}) from {url}")

        return MediaPayload(
            mimetype=mimetype,
            data=b"".join(chunks),
            filename=filename_from_url(url),
        )
