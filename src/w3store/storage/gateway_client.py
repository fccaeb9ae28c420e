"""
Gateway Client - HTTP reads of published content.

Published trees are readable through a subdomain gateway as
``https://<root>.ipfs.w3s.link/<path>``.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional
from urllib.parse import quote

import httpx

from w3store.errors.storage import (
    ContentNotFoundError,
    FileSizeLimitError,
    GatewayDownloadError,
    StoreTimeoutError,
)
from w3store.storage.content_id import parse_locator
from w3store.storage.tree import split_path
from w3store.storage.types import DownloadResult, GatewayConfig
from w3store.utils.logging import get_logger

_logger = get_logger(__name__)


class GatewayClient:
    """
    Read-only client for published content.

    Example:
        ```python
        client = GatewayClient()
        result = await client.fetch("ipfs://bafybei...", "video/hls/seg0.ts")
        print(result.size)
        ```
    """

    def __init__(self, config: Optional[GatewayConfig] = None) -> None:
        self._config = config or GatewayConfig()

    @property
    def config(self) -> GatewayConfig:
        return self._config

    def get_url(self, locator: str, path: str = "") -> str:
        """
        Build the gateway URL of a published file.

        Args:
            locator: ``ipfs://<root>`` or a bare root id
            path: Slash-separated path below the root

        Raises:
            InvalidIdentifierError: If the locator does not hold a valid id
        """
        root = parse_locator(locator)
        base = self._config.gateway_url.format(cid=root).rstrip("/")
        segments = split_path(path)
        if not segments:
            return f"{base}/"
        return f"{base}/" + "/".join(quote(segment) for segment in segments)

    async def fetch(self, locator: str, path: str = "") -> DownloadResult:
        """
        Download a published file.

        Returns:
            DownloadResult with data and metadata

        Raises:
            ContentNotFoundError: On HTTP 404
            GatewayDownloadError: On any other non-200 status or transport error
            FileSizeLimitError: If content exceeds max_download_size
            StoreTimeoutError: If the request times out
        """
        url = self.get_url(locator, path)
        limit = self._config.max_download_size

        try:
            async with httpx.AsyncClient(
                timeout=httpx.Timeout(self._config.timeout / 1000),
                follow_redirects=True,
            ) as client:
                async with client.stream("GET", url) as response:
                    if response.status_code == 404:
                        raise ContentNotFoundError(url)

                    if response.status_code != 200:
                        raise GatewayDownloadError(
                            f"Download failed: HTTP {response.status_code}",
                            url=url,
                            status_code=response.status_code,
                        )

                    content_length = response.headers.get("Content-Length")
                    if content_length:
                        size = int(content_length)
                        if size > limit:
                            raise FileSizeLimitError(
                                f"Content size {size} exceeds limit {limit}",
                                file_size=size,
                                max_size=limit,
                            )

                    chunks = []
                    total_size = 0
                    async for chunk in response.aiter_bytes(chunk_size=8192):
                        total_size += len(chunk)
                        if total_size > limit:
                            raise FileSizeLimitError(
                                f"Content size exceeds limit {limit}",
                                file_size=total_size,
                                max_size=limit,
                            )
                        chunks.append(chunk)
        except httpx.TimeoutException:
            raise StoreTimeoutError(self._config.timeout, operation="gateway fetch") from None
        except httpx.HTTPError as e:
            raise GatewayDownloadError(f"Download failed: {e}", url=url) from e

        data = b"".join(chunks)
        _logger.debug("Fetched from gateway", extra={"url": url, "size": len(data)})
        return DownloadResult(
            data=data,
            size=len(data),
            downloaded_at=datetime.now(timezone.utc),
        )
