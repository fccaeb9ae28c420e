"""
Shared fixtures for storage module tests.
"""

from unittest.mock import AsyncMock

import pytest

from w3store.storage.block_store import MemoryBlockStore
from w3store.storage.content_id import ContentId, RAW
from w3store.storage.packer import InProcessPacker
from w3store.storage.publisher import Publisher
from w3store.storage.remote import InMemoryRemoteStore
from w3store.storage.session import PublishSession, SessionRegistry
from w3store.storage.types import ChunkerConfig, PublisherConfig, W3CliConfig
from w3store.utils.process import CommandResult


# =============================================================================
# Test Constants
# =============================================================================

# Valid CIDs
VALID_CID_V0 = "QmYwAPJzv5CZsnA625s3Xf2nemtYgPpHdWEz79ojWnPbdG"  # 46 chars
VALID_CID_V1 = "bafybeigdyrzt5sfp7udm7hu76uh7y26nf3efuylqabf3oclgtqy55fbzdi"  # 59 chars

# Empty UnixFS directory
EMPTY_DIR_CID_V0 = "QmUNLLsPACCz1vLxQVkXqqLX5R1X345qqfHbsf67hvA3Nn"
EMPTY_DIR_CID_V1 = "bafybeiczsscdsbs7ffqz55asqdf3smv6klcw3gofszvwlyarci47bgf354"

# base64url UCAN proof as carried in w3s:// URLs
TEST_UCAN_PROOF = "eSK_-HCmI596rRX4xY"
TEST_PRINCIPAL_KEY = "MgCYtest-principal-key"

# The five files of the multi-directory publish scenario
SCENARIO_FILES = [
    ("/foo/video/hls/", "seg0.ts", b"foo segment 0"),
    ("/bar/video/hls/", "seg0.ts", b"bar segment 0"),
    ("/bar/video/hls/", "index.m3u8", b"#EXTM3U\n#EXTINF:2.0,\nseg0.ts\n"),
    ("/bar/", "manifest.json", b'{"renditions": ["720p"]}'),
    ("", "root.txt", b"top level file"),
]


def file_id(name: str) -> ContentId:
    """Deterministic raw id for a file stand-in."""
    return ContentId.of(name.encode("utf-8"), RAW)


# =============================================================================
# Fixtures - Configurations
# =============================================================================


@pytest.fixture
def chunker_config() -> ChunkerConfig:
    """Small chunks so multi-leaf files stay small in tests."""
    return ChunkerConfig(chunk_size=16, max_links=4)


@pytest.fixture
def w3cli_config() -> W3CliConfig:
    """Create a test W3CliConfig."""
    return W3CliConfig(
        ucan_proof=TEST_UCAN_PROOF,
        principal_key=TEST_PRINCIPAL_KEY,
        command="livepeer-w3",
        timeout=5000,
    )


@pytest.fixture
def publisher_config() -> PublisherConfig:
    """Create a test PublisherConfig with short deadlines."""
    return PublisherConfig(save_timeout=5000, publish_timeout=5000)


# =============================================================================
# Fixtures - Pipeline Components
# =============================================================================


@pytest.fixture
def block_store() -> MemoryBlockStore:
    return MemoryBlockStore()


@pytest.fixture
def remote() -> InMemoryRemoteStore:
    return InMemoryRemoteStore()


@pytest.fixture
def registry() -> SessionRegistry:
    return SessionRegistry()


@pytest.fixture
def session(block_store: MemoryBlockStore) -> PublishSession:
    return PublishSession("campaign-1", block_store)


@pytest.fixture
def publisher(
    remote: InMemoryRemoteStore,
    registry: SessionRegistry,
    publisher_config: PublisherConfig,
) -> Publisher:
    """Publisher wired to in-memory packing and storage."""
    return Publisher(InProcessPacker(), remote, registry, publisher_config)


# =============================================================================
# Helpers - Subprocess Mocks
# =============================================================================


def command_results(*results: CommandResult) -> AsyncMock:
    """AsyncMock for run_command returning the given results in order."""
    return AsyncMock(side_effect=list(results))


def ok(output: str = "") -> CommandResult:
    return CommandResult(returncode=0, output=output)


def failed(output: str = "error", returncode: int = 1) -> CommandResult:
    return CommandResult(returncode=returncode, output=output)
