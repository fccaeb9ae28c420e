"""
Tests for directory tree updates and the block store.

Tests cover:
- Path normalization
- Update locality (siblings keep their ids)
- Overwrite of an existing file
- A file replaced by a directory of the same name
- Reachability
"""

import logging

import pytest

from w3store.errors.storage import ContentNotFoundError
from w3store.storage.block_store import BlockStore, MemoryBlockStore
from w3store.storage.dag import DirectoryNode, Link
from w3store.storage.tree import (
    add_file_to_node,
    load_directory,
    reachable_ids,
    split_path,
)
from w3store.utils.logging import ROOT_LOGGER_NAME

from .conftest import file_id


# =============================================================================
# MemoryBlockStore Tests
# =============================================================================


class TestMemoryBlockStore:
    """Tests for the in-memory block store."""

    def test_satisfies_protocol(self) -> None:
        """Test MemoryBlockStore implements BlockStore."""
        assert isinstance(MemoryBlockStore(), BlockStore)

    @pytest.mark.asyncio
    async def test_put_get(self, block_store: MemoryBlockStore) -> None:
        """Test stored blocks are returned by id."""
        cid = await block_store.put(b"node bytes")
        assert await block_store.get(cid) == b"node bytes"
        assert await block_store.has(cid)

    @pytest.mark.asyncio
    async def test_put_idempotent(self, block_store: MemoryBlockStore) -> None:
        """Test storing the same bytes twice keeps one block."""
        first = await block_store.put(b"same")
        second = await block_store.put(b"same")
        assert first == second
        assert len(block_store) == 1

    @pytest.mark.asyncio
    async def test_get_missing(self, block_store: MemoryBlockStore) -> None:
        """Test a missing id raises ContentNotFoundError."""
        with pytest.raises(ContentNotFoundError):
            await block_store.get(file_id("missing"))

    @pytest.mark.asyncio
    async def test_remove(self, block_store: MemoryBlockStore) -> None:
        """Test removal and removal of a missing id."""
        cid = await block_store.put(b"gone soon")
        await block_store.remove(cid)
        assert not await block_store.has(cid)
        with pytest.raises(ContentNotFoundError):
            await block_store.remove(cid)


# =============================================================================
# split_path Tests
# =============================================================================


class TestSplitPath:
    """Tests for path normalization."""

    @pytest.mark.parametrize(
        "path,expected",
        [
            (None, []),
            ("", []),
            ("/", []),
            ("bar", ["bar"]),
            ("/bar/video/hls/", ["bar", "video", "hls"]),
            ("bar//video///hls", ["bar", "video", "hls"]),
        ],
    )
    def test_split(self, path, expected) -> None:
        """Test empty segments are ignored."""
        assert split_path(path) == expected


# =============================================================================
# add_file_to_node Tests
# =============================================================================


async def _add(store, node, path, name, content=None):
    return await add_file_to_node(
        store, node, split_path(path), name, file_id(content or name), 10
    )


async def _resolve(store, root: DirectoryNode, path: str) -> Link:
    segments = split_path(path)
    node = root
    for segment in segments[:-1]:
        node = await load_directory(store, node.get_link(segment).cid)
    return node.get_link(segments[-1])


class TestAddFileToNode:
    """Tests for grafting files into the tree."""

    @pytest.mark.asyncio
    async def test_add_at_root(self, block_store: MemoryBlockStore) -> None:
        """Test a file with an empty path lands at the root."""
        root = await _add(block_store, DirectoryNode(), "", "root.txt")
        assert root.get_link("root.txt").cid == file_id("root.txt")
        assert await block_store.has(root.cid)

    @pytest.mark.asyncio
    async def test_intermediate_directories_created(
        self, block_store: MemoryBlockStore
    ) -> None:
        """Test missing directories are created and stored."""
        root = await _add(block_store, DirectoryNode(), "/foo/video/hls/", "seg0.ts")

        link = await _resolve(block_store, root, "foo/video/hls/seg0.ts")
        assert link.cid == file_id("seg0.ts")
        assert root.names == ["foo"]

    @pytest.mark.asyncio
    async def test_path_normalization(self) -> None:
        """Test equivalent paths yield the same root id."""
        store_a, store_b = MemoryBlockStore(), MemoryBlockStore()
        root_a = await _add(store_a, DirectoryNode(), "/bar/video/hls/", "seg0.ts")
        root_b = await _add(store_b, DirectoryNode(), "bar//video/hls", "seg0.ts")
        assert root_a.cid == root_b.cid

    @pytest.mark.asyncio
    async def test_update_locality(self, block_store: MemoryBlockStore) -> None:
        """Test only ancestors of the new file get new ids."""
        root = await _add(block_store, DirectoryNode(), "/foo/video/hls/", "seg0.ts")
        root = await _add(block_store, root, "/bar/video/hls/", "seg0.ts")
        foo_before = root.get_link("foo")
        bar_before = root.get_link("bar")

        updated = await _add(block_store, root, "/bar/video/hls/", "seg1.ts")

        assert updated.cid != root.cid
        assert updated.get_link("foo") == foo_before
        assert updated.get_link("bar").cid != bar_before.cid

    @pytest.mark.asyncio
    async def test_order_independent_root(self) -> None:
        """Test the same files in any order give the same root."""
        files = [("/a/", "1"), ("/b/c/", "2"), ("", "3")]
        roots = []
        for ordering in (files, list(reversed(files))):
            store = MemoryBlockStore()
            root = DirectoryNode()
            for path, name in ordering:
                root = await _add(store, root, path, name)
            roots.append(root.cid)
        assert roots[0] == roots[1]

    @pytest.mark.asyncio
    async def test_overwrite_same_path(self, block_store: MemoryBlockStore) -> None:
        """Test a second file at the same path replaces the first."""
        root = await _add(block_store, DirectoryNode(), "/bar/", "index.m3u8", "v1")
        root = await _add(block_store, root, "/bar/", "index.m3u8", "v2")

        bar = await load_directory(block_store, root.get_link("bar").cid)
        assert bar.names == ["index.m3u8"]
        assert bar.get_link("index.m3u8").cid == file_id("v2")

    @pytest.mark.asyncio
    async def test_file_replaced_by_directory(self, block_store: MemoryBlockStore) -> None:
        """Test a file link is replaced when its name is needed as a directory."""
        root = await _add(block_store, DirectoryNode(), "", "video")
        root = await _add(block_store, root, "/video/", "seg0.ts")

        video = await load_directory(block_store, root.get_link("video").cid)
        assert video.names == ["seg0.ts"]

    @pytest.mark.asyncio
    async def test_file_replaced_by_directory_with_debug_logging(
        self,
        block_store: MemoryBlockStore,
        caplog,
    ) -> None:
        """Test the replacement is logged when debug logging is enabled."""
        with caplog.at_level(logging.DEBUG, logger=ROOT_LOGGER_NAME):
            root = await _add(block_store, DirectoryNode(), "", "video")
            root = await _add(block_store, root, "/video/", "seg0.ts")

        video = await load_directory(block_store, root.get_link("video").cid)
        assert video.names == ["seg0.ts"]
        replaced = [r for r in caplog.records if r.getMessage().startswith("Replacing file link")]
        assert len(replaced) == 1
        assert replaced[0].entry == "video"
        assert replaced[0].cid == str(file_id("video"))

    @pytest.mark.asyncio
    async def test_parent_link_size(self, block_store: MemoryBlockStore) -> None:
        """Test parent links carry the child's cumulative size."""
        root = await _add(block_store, DirectoryNode(), "/foo/", "a")
        foo = await load_directory(block_store, root.get_link("foo").cid)
        assert root.get_link("foo").size == foo.total_size


# =============================================================================
# reachable_ids Tests
# =============================================================================


class TestReachableIds:
    """Tests for walking live directory nodes."""

    @pytest.mark.asyncio
    async def test_lists_directories_only(self, block_store: MemoryBlockStore) -> None:
        """Test file links are skipped and every directory is listed."""
        root = await _add(block_store, DirectoryNode(), "/foo/video/", "seg0.ts")
        root = await _add(block_store, root, "", "root.txt")

        live = await reachable_ids(block_store, root.cid)

        assert root.cid in live
        assert len(live) == 3
        assert file_id("root.txt") not in live
