"""
Directory Tree Updates

Grafts file links into a content-addressed directory tree. Every update
rebuilds the nodes on the path from the insertion point up to the root,
because each node's identifier depends on its full link set. Nodes off
that path keep their identifiers.
"""

from __future__ import annotations

from typing import List, Optional, Sequence

from w3store.errors.storage import ContentNotFoundError
from w3store.storage.block_store import BlockStore
from w3store.storage.content_id import ContentId
from w3store.storage.dag import DirectoryNode, Link
from w3store.utils.logging import get_logger

_logger = get_logger(__name__)


def split_path(dir_path: Optional[str]) -> List[str]:
    """
    Split a slash-separated directory path, dropping empty segments.

    ``"/bar//video/hls/"`` and ``"bar/video/hls"`` both yield
    ``["bar", "video", "hls"]``.
    """
    if not dir_path:
        return []
    return [segment for segment in dir_path.split("/") if segment]


async def load_directory(store: BlockStore, cid: ContentId) -> DirectoryNode:
    """
    Fetch and decode a directory node.

    Raises:
        ContentNotFoundError: If ``cid`` is not in the store
    """
    return DirectoryNode.decode(await store.get(cid))


async def add_file_to_node(
    store: BlockStore,
    node: DirectoryNode,
    path_segments: Sequence[str],
    filename: str,
    file_cid: ContentId,
    file_size: int = 0,
) -> DirectoryNode:
    """
    Add a file link below ``node`` and return the rebuilt node.

    Missing intermediate directories are created. A file already present
    at the same full path is overwritten. Each rebuilt node is persisted
    to ``store``; superseded nodes are left in place.

    Args:
        store: Block store holding ``node`` and its descendants
        node: Directory to update
        path_segments: Directory names from ``node`` down to the file's parent
        filename: Name of the file entry
        file_cid: Identifier of the file content
        file_size: Cumulative size of the file DAG

    Returns:
        New node with a new identifier

    Raises:
        StoreFailureError: Propagated from the block store
    """
    segments = [segment for segment in path_segments if segment]

    if not segments:
        updated = node.with_link(Link(filename, file_cid, file_size))
        await store.put(updated.encode())
        return updated

    head, rest = segments[0], segments[1:]
    child = await _get_or_create_child(store, node, head)
    child = await add_file_to_node(store, child, rest, filename, file_cid, file_size)

    updated = node.with_link(Link(head, child.cid, child.total_size))
    await store.put(updated.encode())
    return updated


async def _get_or_create_child(
    store: BlockStore,
    node: DirectoryNode,
    name: str,
) -> DirectoryNode:
    link = node.get_link(name)
    if link is None:
        return DirectoryNode()

    try:
        return await load_directory(store, link.cid)
    except ContentNotFoundError:
        # A file occupies the name; the new directory replaces it.
        _logger.debug(
            "Replacing file link with directory",
            extra={"entry": name, "cid": str(link.cid)},
        )
        return DirectoryNode()


async def reachable_ids(store: BlockStore, root: ContentId) -> List[ContentId]:
    """
    List the directory identifiers reachable from ``root`` through ``store``.

    Links that do not resolve in the store (files) are skipped.
    """
    seen: List[ContentId] = []
    visited = set()
    pending = [root]
    while pending:
        cid = pending.pop()
        if cid in visited:
            continue
        visited.add(cid)
        try:
            node = await load_directory(store, cid)
        except ContentNotFoundError:
            continue
        seen.append(cid)
        pending.extend(link.cid for link in node.links)
    return seen
