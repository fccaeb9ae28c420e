"""
Publisher - content-addressed publish pipeline entry point.

Saves files of a campaign into a shared directory tree and publishes the
tree as one addressable unit:

1. save_file packs the input into a single-file archive, stores it with
   the remote service and grafts the file into the campaign's tree.
2. finalize archives every directory level, binds all archives under
   the root identifier and returns ``ipfs://<root>``.

Sessions are always fetched from the registry by campaign id; handles
never hold on to a session between calls.
"""

from __future__ import annotations

import asyncio
import inspect
from typing import Any, Optional, Union

from w3store.errors.base import W3StoreError
from w3store.errors.storage import SessionFinalizingError, StoreTimeoutError
from w3store.storage.packer import ArchivePacker
from w3store.storage.remote import RemoteStore
from w3store.storage.session import SessionRegistry
from w3store.storage.types import PublisherConfig
from w3store.utils.logging import get_logger

_logger = get_logger(__name__)

Readable = Union[bytes, bytearray, memoryview, Any]


async def read_all(reader: Readable) -> bytes:
    """
    Read the whole input.

    Args:
        reader: bytes-like object, or an object with a ``read()`` method
            (plain or coroutine) returning bytes

    Returns:
        Input bytes
    """
    if isinstance(reader, (bytes, bytearray, memoryview)):
        return bytes(reader)

    read = getattr(reader, "read", None)
    if read is None:
        raise TypeError(f"Unsupported reader type: {type(reader).__name__}")
    data = read()
    if inspect.isawaitable(data):
        data = await data
    return bytes(data)


class Publisher:
    """
    Owns the session registry and the injected packer and archive service.

    Example:
        ```python
        from w3store.storage import InMemoryRemoteStore, InProcessPacker, Publisher

        publisher = Publisher(InProcessPacker(), InMemoryRemoteStore())
        handle = publisher.new_session("stream-42")

        await handle.save_file("/video/hls/", "seg0.ts", segment_bytes)
        locator = await handle.finalize()
        print(locator)  # ipfs://bafybei...
        ```
    """

    def __init__(
        self,
        packer: ArchivePacker,
        remote: RemoteStore,
        registry: Optional[SessionRegistry] = None,
        config: Optional[PublisherConfig] = None,
    ) -> None:
        self._packer = packer
        self._remote = remote
        self._registry = registry if registry is not None else SessionRegistry()
        self._config = config or PublisherConfig()

    @property
    def registry(self) -> SessionRegistry:
        return self._registry

    @property
    def remote(self) -> RemoteStore:
        return self._remote

    @property
    def config(self) -> PublisherConfig:
        return self._config

    def new_session(self, campaign_id: str) -> PublishHandle:
        """
        Get a handle for a campaign.

        The underlying session is created lazily on first save.
        """
        if not campaign_id:
            raise ValueError("campaign_id is required")
        return PublishHandle(self, campaign_id)

    async def save_file(
        self,
        campaign_id: str,
        path: Optional[str],
        name: str,
        reader: Readable,
        timeout_ms: Optional[int] = None,
    ) -> str:
        """
        Pack, store and graft one file.

        Args:
            campaign_id: Campaign the file belongs to
            path: Slash-separated directory of the file
            name: File name
            reader: File content (see :func:`read_all`)
            timeout_ms: Deadline for the whole save

        Returns:
            Content id of the file

        Raises:
            SessionFinalizingError: If the campaign is being finalized
            StoreTimeoutError: If the deadline expires
            StoreFailureError: If packing or storing fails
        """
        timeout = timeout_ms or self._config.save_timeout
        try:
            return await asyncio.wait_for(
                self._save(campaign_id, path, name, reader, timeout),
                timeout=timeout / 1000,
            )
        except asyncio.TimeoutError:
            raise StoreTimeoutError(timeout, operation="save_file") from None

    async def _save(
        self,
        campaign_id: str,
        path: Optional[str],
        name: str,
        reader: Readable,
        timeout_ms: int,
    ) -> str:
        existing = self._registry.get(campaign_id)
        if existing is not None and existing.is_finalizing:
            raise SessionFinalizingError(campaign_id)

        data = await read_all(reader)
        packed = await self._packer.pack(data, timeout_ms=timeout_ms)
        archive_id = await self._remote.store_archive(packed.archive, timeout_ms=timeout_ms)

        while True:
            session = self._registry.get_or_create(campaign_id)
            try:
                await session.add_file(
                    path, name, packed.content_id, archive_id, packed.dag_size
                )
            except SessionFinalizingError:
                if not session.is_published:
                    raise
                # Published but not yet dropped: the file opens the next session.
                self._registry.remove(campaign_id, session)
                continue
            return str(packed.content_id)

    async def finalize(self, campaign_id: str, timeout_ms: Optional[int] = None) -> str:
        """
        Publish a campaign and drop its session.

        A campaign with no saved files publishes an empty directory. On
        failure the session stays registered with its tree intact.

        Returns:
            Locator ``<scheme>://<root id>``

        Raises:
            StoreTimeoutError: If the deadline expires
            StoreFailureError: If storing or binding fails
        """
        timeout = timeout_ms or self._config.publish_timeout
        session = self._registry.get(campaign_id)
        if session is None:
            session = self._registry.detached(campaign_id)
        try:
            root = await asyncio.wait_for(
                session.finalize(self._remote, timeout_ms=timeout),
                timeout=timeout / 1000,
            )
        except asyncio.TimeoutError:
            _logger.warning(
                "Publish timed out",
                extra={"campaign_id": campaign_id, "timeout_ms": timeout},
            )
            raise StoreTimeoutError(timeout, operation="finalize") from None
        except W3StoreError as e:
            _logger.warning(
                "Publish failed, session kept for retry",
                extra={"campaign_id": campaign_id, "error": str(e)},
            )
            raise

        self._registry.remove(campaign_id, session)
        return f"{self._config.locator_scheme}://{root}"


class PublishHandle:
    """Campaign-scoped view of a Publisher."""

    def __init__(self, publisher: Publisher, campaign_id: str) -> None:
        self._publisher = publisher
        self.campaign_id = campaign_id

    async def save_file(
        self,
        path: Optional[str],
        name: str,
        reader: Readable,
        timeout_ms: Optional[int] = None,
    ) -> str:
        return await self._publisher.save_file(
            self.campaign_id, path, name, reader, timeout_ms
        )

    async def finalize(self, timeout_ms: Optional[int] = None) -> str:
        return await self._publisher.finalize(self.campaign_id, timeout_ms)
