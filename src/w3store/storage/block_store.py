"""
Block Stores

Content-addressed key/value stores holding encoded nodes. Every publish
session owns one store; stores are never shared between sessions.
"""

from __future__ import annotations

from typing import Dict, List, Protocol, runtime_checkable

from w3store.errors.storage import ContentNotFoundError
from w3store.storage.content_id import DAG_PB, ContentId


@runtime_checkable
class BlockStore(Protocol):
    """Content-addressed block storage used by publish sessions."""

    async def put(self, data: bytes, codec: int = DAG_PB) -> ContentId:
        """Store ``data`` and return its identifier. Idempotent."""
        ...

    async def get(self, cid: ContentId) -> bytes:
        """Return the block for ``cid`` or raise ContentNotFoundError."""
        ...

    async def remove(self, cid: ContentId) -> None:
        """Delete the block for ``cid`` or raise ContentNotFoundError."""
        ...

    async def has(self, cid: ContentId) -> bool:
        ...

    async def keys(self) -> List[ContentId]:
        ...


class MemoryBlockStore:
    """
    Process-memory block store.

    Example:
        ```python
        store = MemoryBlockStore()
        cid = await store.put(DirectoryNode().encode())
        data = await store.get(cid)
        ```
    """

    def __init__(self) -> None:
        self._blocks: Dict[ContentId, bytes] = {}

    async def put(self, data: bytes, codec: int = DAG_PB) -> ContentId:
        cid = ContentId.of(data, codec)
        self._blocks[cid] = bytes(data)
        return cid

    async def get(self, cid: ContentId) -> bytes:
        try:
            return self._blocks[cid]
        except KeyError:
            raise ContentNotFoundError(str(cid)) from None

    async def remove(self, cid: ContentId) -> None:
        try:
            del self._blocks[cid]
        except KeyError:
            raise ContentNotFoundError(str(cid)) from None

    async def has(self, cid: ContentId) -> bool:
        return cid in self._blocks

    async def keys(self) -> List[ContentId]:
        return list(self._blocks)

    def __len__(self) -> int:
        return len(self._blocks)
