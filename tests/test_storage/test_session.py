"""
Tests for publish sessions and the session registry.

Tests cover:
- Concurrent adds to one campaign
- Finalize: per-directory archives, file/directory discrimination, bind set
- Finalizing guard
- Failure keeps the session retryable
- Garbage sweep
- Registry lifecycle
"""

import asyncio
from typing import Optional
from unittest.mock import AsyncMock, patch

import pytest

from w3store.errors.storage import SessionFinalizingError, StoreFailureError
from w3store.storage.block_store import MemoryBlockStore
from w3store.storage.car import read_archive
from w3store.storage.dag import EMPTY_DIRECTORY, DirectoryNode
from w3store.storage.packer import InProcessPacker
from w3store.storage.remote import InMemoryRemoteStore
from w3store.storage.session import PublishSession, SessionRegistry
from w3store.storage.tree import load_directory

from .conftest import file_id


async def _add(
    session: PublishSession,
    path: str,
    name: str,
    remote: Optional[InMemoryRemoteStore] = None,
) -> None:
    """Add a file whose content is its own path; store it when a remote is given."""
    data = f"{path}/{name}".encode("utf-8")
    archive_id = f"bag-{path}-{name}"
    if remote is not None:
        packed = await InProcessPacker().pack(data)
        archive_id = await remote.store_archive(packed.archive)
    await session.add_file(path, name, file_id(f"{path}/{name}"), archive_id, len(data))


# =============================================================================
# add_file Tests
# =============================================================================


class TestAddFile:
    """Tests for grafting files into a session."""

    @pytest.mark.asyncio
    async def test_returns_new_root(self, session: PublishSession) -> None:
        """Test add_file returns and records the new root id."""
        root = await session.add_file("/a/", "x", file_id("x"), "bag-x")
        assert root == session.root_id
        assert root != EMPTY_DIRECTORY.cid
        assert session.archive_ids == ["bag-x"]

    @pytest.mark.asyncio
    async def test_concurrent_adds_all_present(self, session: PublishSession) -> None:
        """Test concurrent adds to one campaign are all reflected."""
        names = [f"seg{i}.ts" for i in range(20)]

        await asyncio.gather(*(_add(session, "/video/hls/", name) for name in names))

        video = await load_directory(session.store, session.root.get_link("video").cid)
        hls = await load_directory(session.store, video.get_link("hls").cid)
        assert sorted(hls.names) == sorted(names)
        assert len(session.archive_ids) == 20

    @pytest.mark.asyncio
    async def test_concurrent_adds_match_sequential(self) -> None:
        """Test concurrent adds give the same root as sequential adds."""
        files = [("/foo/", "a"), ("/bar/", "b"), ("", "c"), ("/foo/x/", "d")]

        concurrent = PublishSession("c1")
        await asyncio.gather(*(_add(concurrent, path, name) for path, name in files))

        sequential = PublishSession("c2")
        for path, name in files:
            await _add(sequential, path, name)

        assert concurrent.root_id == sequential.root_id

    @pytest.mark.asyncio
    async def test_add_after_publish_rejected(self, session: PublishSession) -> None:
        """Test a published session refuses new files."""
        await session.finalize(InMemoryRemoteStore())

        with pytest.raises(SessionFinalizingError) as exc_info:
            await _add(session, "", "late")
        assert exc_info.value.published is True

    @pytest.mark.asyncio
    async def test_failed_graft_records_no_archive(self, session: PublishSession) -> None:
        """Test an archive is only recorded once its file is linked into the tree."""
        with patch(
            "w3store.storage.session.add_file_to_node",
            new=AsyncMock(side_effect=StoreFailureError("put failed")),
        ):
            with pytest.raises(StoreFailureError):
                await _add(session, "/foo/", "a")

        assert session.archive_ids == []
        assert session.root_id == EMPTY_DIRECTORY.cid


# =============================================================================
# finalize Tests
# =============================================================================


class TestFinalize:
    """Tests for archiving and binding a session."""

    @pytest.mark.asyncio
    async def test_empty_session(self, session: PublishSession) -> None:
        """Test an empty session publishes the empty directory."""
        remote = InMemoryRemoteStore()
        root = await session.finalize(remote)

        assert root == EMPTY_DIRECTORY.cid
        assert remote.uploads == {str(root): session.archive_ids}
        assert len(session.archive_ids) == 1

    @pytest.mark.asyncio
    async def test_one_archive_per_directory(self, session: PublishSession) -> None:
        """Test every directory level is stored as its own archive."""
        remote = InMemoryRemoteStore()
        await _add(session, "/foo/video/hls/", "seg0.ts", remote)
        await _add(session, "", "root.txt", remote)
        file_archives = session.archive_ids

        root = await session.finalize(remote)

        # 2 files, then root, foo, video, hls
        assert remote.store_calls == 6
        assert remote.bind_calls == 1
        assert root == session.root_id

        bound = remote.uploads[str(root)]
        assert bound[:2] == file_archives
        assert len(bound) == 6

        # Root archive is stored last
        root_archive = read_archive(remote._archives[bound[-1]])
        assert root_archive.root == root
        assert len(root_archive.blocks) == 1

    @pytest.mark.asyncio
    async def test_file_links_not_archived(self, session: PublishSession) -> None:
        """Test file links stay as they are in the published tree."""
        remote = InMemoryRemoteStore()
        await _add(session, "/foo/", "seg0.ts", remote)

        await session.finalize(remote)

        bound = remote.uploads[str(session.root_id)]
        file_links = []
        for archive_id in bound[1:]:
            archive = read_archive(remote._archives[archive_id])
            node = DirectoryNode.decode(archive.blocks[archive.root])
            file_links.extend(link for link in node if link.name == "seg0.ts")
        assert [link.cid for link in file_links] == [file_id("/foo//seg0.ts")]
        assert await remote.resolve(f"ipfs://{session.root_id}", "foo/seg0.ts") == b"/foo//seg0.ts"

    @pytest.mark.asyncio
    async def test_adds_during_finalize_rejected(self, session: PublishSession) -> None:
        """Test files cannot be added while finalize is running."""
        remote = InMemoryRemoteStore()
        await _add(session, "/foo/", "a", remote)
        started = asyncio.Event()
        release = asyncio.Event()
        store_archive = remote.store_archive

        async def slow_store(archive, **kwargs):
            started.set()
            await release.wait()
            return await store_archive(archive, **kwargs)

        with patch.object(remote, "store_archive", side_effect=slow_store):
            task = asyncio.create_task(session.finalize(remote))
            await started.wait()

            assert session.is_finalizing
            with pytest.raises(SessionFinalizingError) as exc_info:
                await _add(session, "/foo/", "b")
            assert exc_info.value.code == "SESSION_FINALIZING"

            release.set()
            await task

        assert session.is_published
        assert not session.is_finalizing

    @pytest.mark.asyncio
    async def test_bind_failure_keeps_state(self, session: PublishSession) -> None:
        """Test a failed bind leaves the session retryable and unchanged."""
        remote = InMemoryRemoteStore()
        await _add(session, "/foo/", "a", remote)
        root_before = session.root_id
        archives_before = session.archive_ids

        with patch.object(
            remote, "bind_upload", new=AsyncMock(side_effect=StoreFailureError("bind failed"))
        ):
            with pytest.raises(StoreFailureError):
                await session.finalize(remote)

        assert session.root_id == root_before
        assert session.archive_ids == archives_before
        assert not session.is_finalizing
        assert not session.is_published

        # Retry succeeds and adds are accepted again before it
        await _add(session, "/foo/", "b", remote)
        root = await session.finalize(remote)
        assert str(root) in remote.uploads

    @pytest.mark.asyncio
    async def test_finalize_twice_rejected(self, session: PublishSession) -> None:
        """Test a published session cannot be finalized again."""
        remote = InMemoryRemoteStore()
        await session.finalize(remote)
        with pytest.raises(SessionFinalizingError):
            await session.finalize(remote)


# =============================================================================
# sweep Tests
# =============================================================================


class TestSweep:
    """Tests for removing superseded nodes."""

    @pytest.mark.asyncio
    async def test_sweep_removes_stale_nodes(self) -> None:
        """Test nodes replaced by later adds are removed."""
        store = MemoryBlockStore()
        session = PublishSession("c", store)
        await _add(session, "/foo/", "a")
        await _add(session, "/foo/", "b")
        before = len(store)

        removed = await session.sweep()

        assert removed > 0
        assert len(store) == before - removed
        # live tree: root and foo
        assert len(store) == 2
        assert await store.has(session.root_id)

    @pytest.mark.asyncio
    async def test_sweep_on_fresh_session(self, session: PublishSession) -> None:
        """Test sweeping an empty session removes nothing."""
        assert await session.sweep() == 0


# =============================================================================
# SessionRegistry Tests
# =============================================================================


class TestSessionRegistry:
    """Tests for the campaign registry."""

    def test_get_or_create_is_lazy_and_stable(self, registry: SessionRegistry) -> None:
        """Test the same campaign always maps to one session."""
        assert registry.get("c1") is None
        first = registry.get_or_create("c1")
        assert registry.get_or_create("c1") is first
        assert "c1" in registry
        assert len(registry) == 1

    def test_sessions_do_not_share_stores(self, registry: SessionRegistry) -> None:
        """Test each session gets its own block store."""
        assert registry.get_or_create("a").store is not registry.get_or_create("b").store

    def test_store_factory(self) -> None:
        """Test a custom store factory is used for new sessions."""
        store = MemoryBlockStore()
        registry = SessionRegistry(store_factory=lambda: store)
        assert registry.get_or_create("c").store is store

    def test_detached_is_not_registered(self) -> None:
        """Test detached sessions use the store factory and stay out of the map."""
        store = MemoryBlockStore()
        registry = SessionRegistry(store_factory=lambda: store)

        session = registry.detached("c")

        assert session.store is store
        assert session.campaign_id == "c"
        assert "c" not in registry

    def test_remove(self, registry: SessionRegistry) -> None:
        """Test removal by id."""
        registry.get_or_create("c1")
        assert registry.remove("c1")
        assert not registry.remove("c1")
        assert registry.campaign_ids() == []

    def test_remove_only_matching_instance(self, registry: SessionRegistry) -> None:
        """Test removal with an instance skips a replaced entry."""
        old = registry.get_or_create("c1")
        registry.remove("c1")
        current = registry.get_or_create("c1")

        assert not registry.remove("c1", old)
        assert registry.get("c1") is current
        assert registry.remove("c1", current)
