"""
Publish Sessions

A publish session accumulates the files of one campaign into a
content-addressed directory tree and, on finalize, archives every
directory level and binds all archives under the root identifier.

Locking is two-level:
- SessionRegistry holds one lock around its campaign map only.
- Each PublishSession holds an asyncio lock for a whole ``add_file`` and
  for the whole finalize walk (including archive uploads), so the root
  reference is never read and replaced concurrently.
"""

from __future__ import annotations

import asyncio
import threading
from typing import Callable, Dict, List, Optional

from w3store.errors.storage import ContentNotFoundError, SessionFinalizingError
from w3store.storage.block_store import BlockStore, MemoryBlockStore
from w3store.storage.car import ArchiveBuilder
from w3store.storage.content_id import ContentId
from w3store.storage.dag import DirectoryNode, Link
from w3store.storage.remote import RemoteStore
from w3store.storage.tree import add_file_to_node, reachable_ids, split_path
from w3store.utils.logging import get_logger

_logger = get_logger(__name__)


class PublishSession:
    """
    Mutable per-campaign publish state.

    Attributes:
        campaign_id: Caller-supplied campaign identifier
        root: Current root directory node
        archive_ids: Archive ids stored so far, in append order
    """

    def __init__(self, campaign_id: str, store: Optional[BlockStore] = None) -> None:
        self.campaign_id = campaign_id
        self._store: BlockStore = store if store is not None else MemoryBlockStore()
        self._root = DirectoryNode()
        self._archive_ids: List[str] = []
        self._lock = asyncio.Lock()
        self._finalizing = False
        self._published = False

    @property
    def root(self) -> DirectoryNode:
        return self._root

    @property
    def root_id(self) -> ContentId:
        return self._root.cid

    @property
    def archive_ids(self) -> List[str]:
        return list(self._archive_ids)

    @property
    def store(self) -> BlockStore:
        return self._store

    @property
    def is_finalizing(self) -> bool:
        return self._finalizing

    @property
    def is_published(self) -> bool:
        return self._published

    def _check_open(self) -> None:
        if self._published or self._finalizing:
            raise SessionFinalizingError(self.campaign_id, published=self._published)

    async def add_file(
        self,
        dir_path: Optional[str],
        filename: str,
        file_cid: ContentId,
        archive_id: str,
        file_size: int = 0,
    ) -> ContentId:
        """
        Graft a stored file into the tree.

        Args:
            dir_path: Slash-separated directory path; empty segments are ignored
            filename: Entry name of the file
            file_cid: Content id of the file DAG
            archive_id: Id of the archive already holding the file
            file_size: Cumulative size of the file DAG

        Returns:
            The new root identifier

        Raises:
            SessionFinalizingError: If finalize has started or completed
        """
        self._check_open()
        async with self._lock:
            self._check_open()
            self._root = await add_file_to_node(
                self._store,
                self._root,
                split_path(dir_path),
                filename,
                file_cid,
                file_size,
            )
            # Only archives linked from the tree are bound.
            self._archive_ids.append(archive_id)
            _logger.debug(
                "Added file to session",
                extra={
                    "campaign_id": self.campaign_id,
                    "path": f"{dir_path or ''}/{filename}",
                    "root": str(self._root.cid),
                },
            )
            return self._root.cid

    async def finalize(self, remote: RemoteStore, *, timeout_ms: Optional[int] = None) -> ContentId:
        """
        Archive every directory level and bind all archives under the root.

        Directory archives are appended to the session only after the
        bind succeeds; on failure the tree and the pending file archives
        are left as they were so a retry can start over.

        Args:
            remote: Archive service used to store and bind
            timeout_ms: Per-command deadline forwarded to ``remote``

        Returns:
            Root identifier of the published tree

        Raises:
            SessionFinalizingError: If the session was already published
            StoreFailureError: If storing or binding fails
        """
        if self._published:
            raise SessionFinalizingError(self.campaign_id, published=True)

        async with self._lock:
            if self._published:
                raise SessionFinalizingError(self.campaign_id, published=True)
            self._finalizing = True
            try:
                directory_archives: List[str] = []
                root_link = await self._archive_directory(
                    self._root, "", remote, directory_archives, timeout_ms
                )
                archive_ids = self._archive_ids + directory_archives
                await remote.bind_upload(root_link.cid, archive_ids, timeout_ms=timeout_ms)
            finally:
                self._finalizing = False

            self._archive_ids = archive_ids
            self._published = True
            _logger.info(
                "Published session",
                extra={
                    "campaign_id": self.campaign_id,
                    "root": str(root_link.cid),
                    "archives": len(archive_ids),
                },
            )
            return root_link.cid

    async def _archive_directory(
        self,
        node: DirectoryNode,
        name: str,
        remote: RemoteStore,
        archive_ids: List[str],
        timeout_ms: Optional[int],
    ) -> Link:
        links: List[Link] = []
        for link in node.links:
            try:
                child_block = await self._store.get(link.cid)
            except ContentNotFoundError:
                # Not a directory in this session: a file link, kept as is.
                links.append(link)
                continue
            child = DirectoryNode.decode(child_block)
            links.append(
                await self._archive_directory(child, link.name, remote, archive_ids, timeout_ms)
            )

        rebuilt = DirectoryNode(tuple(links))
        encoded = rebuilt.encode()
        cid = await self._store.put(encoded)
        archive = ArchiveBuilder([cid]).add_block(cid, encoded).build()
        archive_ids.append(await remote.store_archive(archive, timeout_ms=timeout_ms))
        return Link(name, cid, rebuilt.total_size)

    async def sweep(self) -> int:
        """
        Remove nodes no longer reachable from the root.

        Returns:
            Number of removed nodes
        """
        async with self._lock:
            live = set(await reachable_ids(self._store, self._root.cid))
            removed = 0
            for cid in await self._store.keys():
                if cid not in live:
                    await self._store.remove(cid)
                    removed += 1
            return removed


class SessionRegistry:
    """
    Campaign id to PublishSession map.

    Sessions are created lazily and removed only after a successful
    finalize. Campaigns that never finalize stay resident for the life of
    the registry.

    Example:
        ```python
        registry = SessionRegistry()
        session = registry.get_or_create("campaign-1")
        assert "campaign-1" in registry
        ```
    """

    def __init__(
        self,
        store_factory: Optional[Callable[[], BlockStore]] = None,
    ) -> None:
        self._store_factory = store_factory or MemoryBlockStore
        self._sessions: Dict[str, PublishSession] = {}
        self._lock = threading.Lock()

    def get_or_create(self, campaign_id: str) -> PublishSession:
        with self._lock:
            session = self._sessions.get(campaign_id)
            if session is None:
                session = PublishSession(campaign_id, self._store_factory())
                self._sessions[campaign_id] = session
                _logger.debug("Created publish session", extra={"campaign_id": campaign_id})
            return session

    def detached(self, campaign_id: str) -> PublishSession:
        """Build a session with this registry's store factory without registering it."""
        return PublishSession(campaign_id, self._store_factory())

    def get(self, campaign_id: str) -> Optional[PublishSession]:
        with self._lock:
            return self._sessions.get(campaign_id)

    def remove(self, campaign_id: str, session: Optional[PublishSession] = None) -> bool:
        """
        Drop a campaign.

        Args:
            campaign_id: Campaign to drop
            session: When given, only drop the entry if it is this instance

        Returns:
            True if an entry was removed
        """
        with self._lock:
            current = self._sessions.get(campaign_id)
            if current is None or (session is not None and current is not session):
                return False
            del self._sessions[campaign_id]
            return True

    def campaign_ids(self) -> List[str]:
        with self._lock:
            return list(self._sessions)

    def __contains__(self, campaign_id: object) -> bool:
        with self._lock:
            return campaign_id in self._sessions

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)
