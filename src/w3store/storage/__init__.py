"""
Storage Module - content-addressed publish pipeline.

Files of a campaign are packed into single-file CAR archives, stored with
a remote archive service and grafted into a shared directory tree. On
finalize every directory level is archived and all archives are bound
under the tree's root identifier.

Example:
    ```python
    from w3store.storage import (
        InMemoryRemoteStore,
        InProcessPacker,
        Publisher,
    )

    remote = InMemoryRemoteStore()
    publisher = Publisher(InProcessPacker(), remote)
    handle = publisher.new_session("stream-42")

    await handle.save_file("/video/hls/", "seg0.ts", segment_bytes)
    await handle.save_file("/video/hls/", "index.m3u8", playlist_bytes)
    locator = await handle.finalize()

    data = await remote.resolve(locator, "video/hls/seg0.ts")
    ```
"""

from __future__ import annotations

# ============================================================================
# Pipeline
# ============================================================================

from w3store.storage.publisher import PublishHandle, Publisher, read_all
from w3store.storage.session import PublishSession, SessionRegistry

# ============================================================================
# Packers and remote services
# ============================================================================

from w3store.storage.packer import ArchivePacker, InProcessPacker, IpfsCarPacker
from w3store.storage.remote import (
    InMemoryRemoteStore,
    RemoteStore,
    W3CliClient,
    base64url_to_base64,
)
from w3store.storage.gateway_client import GatewayClient

# ============================================================================
# Drivers
# ============================================================================

from w3store.storage.base import FileInfo, FileProperties, OSDriver, OSSession
from w3store.storage.w3s_driver import W3sDriver, W3sSession, parse_os_url

# ============================================================================
# Content addressing and archives
# ============================================================================

from w3store.storage.block_store import BlockStore, MemoryBlockStore
from w3store.storage.car import ArchiveBuilder, CarArchive, archive_id_of, read_archive
from w3store.storage.content_id import (
    CAR,
    DAG_PB,
    RAW,
    ContentId,
    id_of,
    parse_locator,
    validate_cid,
)
from w3store.storage.dag import EMPTY_DIRECTORY, DirectoryNode, Link, PBNode

# ============================================================================
# Types
# ============================================================================

from w3store.storage.types import (
    DEFAULT_PUBLISH_TIMEOUT_MS,
    DEFAULT_SAVE_TIMEOUT_MS,
    ChunkerConfig,
    DownloadResult,
    GatewayConfig,
    IpfsCarConfig,
    PackedFile,
    PublisherConfig,
    SaveDataOutput,
    W3CliConfig,
)

__all__ = [
    # Pipeline
    "Publisher",
    "PublishHandle",
    "PublishSession",
    "SessionRegistry",
    "read_all",
    # Packers and remote services
    "ArchivePacker",
    "InProcessPacker",
    "IpfsCarPacker",
    "RemoteStore",
    "W3CliClient",
    "InMemoryRemoteStore",
    "base64url_to_base64",
    "GatewayClient",
    # Drivers
    "OSDriver",
    "OSSession",
    "FileInfo",
    "FileProperties",
    "W3sDriver",
    "W3sSession",
    "parse_os_url",
    # Content addressing and archives
    "ContentId",
    "RAW",
    "DAG_PB",
    "CAR",
    "id_of",
    "parse_locator",
    "validate_cid",
    "Link",
    "PBNode",
    "DirectoryNode",
    "EMPTY_DIRECTORY",
    "BlockStore",
    "MemoryBlockStore",
    "ArchiveBuilder",
    "CarArchive",
    "archive_id_of",
    "read_archive",
    # Types
    "ChunkerConfig",
    "IpfsCarConfig",
    "PackedFile",
    "W3CliConfig",
    "PublisherConfig",
    "GatewayConfig",
    "SaveDataOutput",
    "DownloadResult",
    "DEFAULT_SAVE_TIMEOUT_MS",
    "DEFAULT_PUBLISH_TIMEOUT_MS",
]
