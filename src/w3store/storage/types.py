"""
Storage Types

Configuration and result models for the content-addressed publish
pipeline:
- Packing files into archives (in-process or via ``ipfs-car``)
- Storing and binding archives on web3.storage (``livepeer-w3``)
- Reading published content back through an HTTP gateway
"""

from __future__ import annotations

from datetime import datetime
from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

from w3store.storage.content_id import ContentId


DEFAULT_SAVE_TIMEOUT_MS = 5 * 60 * 1000
"""Default deadline for a single save (pack + store + graft)."""

DEFAULT_PUBLISH_TIMEOUT_MS = 5 * 60 * 1000
"""Default deadline for finalizing a campaign."""


# ============================================================================
# Packing
# ============================================================================

class ChunkerConfig(BaseModel):
    """
    UnixFS import parameters for the in-process packer.

    Defaults match ``ipfs-car``: 256 KiB raw leaves, balanced layout with
    up to 1024 links per node.
    """

    model_config = ConfigDict(frozen=True)

    chunk_size: int = Field(
        default=262144,
        ge=1,
        description="Leaf size in bytes",
    )
    max_links: int = Field(
        default=1024,
        ge=2,
        description="Maximum number of children per file node",
    )


class IpfsCarConfig(BaseModel):
    """Configuration for the external ``ipfs-car`` packer."""

    model_config = ConfigDict(frozen=True)

    command: str = Field(
        default="ipfs-car",
        description="Executable used to pack files into CARs",
    )
    timeout: int = Field(
        default=DEFAULT_SAVE_TIMEOUT_MS,
        ge=1,
        description="Command timeout in milliseconds",
    )


class PackedFile(BaseModel):
    """A file converted into a single-file archive."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    archive: bytes = Field(
        ...,
        description="CAR v1 bytes rooted at the file",
    )
    content_id: ContentId = Field(
        ...,
        description="Identifier of the file DAG root",
    )
    size: int = Field(
        ...,
        ge=0,
        description="Size of the original file in bytes",
    )
    dag_size: int = Field(
        ...,
        ge=0,
        description="Cumulative size of every block in the file DAG",
    )


# ============================================================================
# Remote Archive Service
# ============================================================================

class W3CliConfig(BaseModel):
    """
    Configuration for the ``livepeer-w3`` command line client.

    Example:
        ```python
        config = W3CliConfig(
            ucan_proof=proof_from_url,
            principal_key=os.environ["W3_PRINCIPAL_KEY"],
        )
        ```
    """

    model_config = ConfigDict(frozen=True)

    ucan_proof: str = Field(
        ...,
        description="UCAN delegation proof, base64url encoded",
    )
    principal_key: Optional[str] = Field(
        default=None,
        description="UCAN principal key. Falls back to W3_PRINCIPAL_KEY",
    )
    command: str = Field(
        default="livepeer-w3",
        description="Executable used to store and bind archives",
    )
    timeout: int = Field(
        default=DEFAULT_SAVE_TIMEOUT_MS,
        ge=1,
        description="Command timeout in milliseconds",
    )


# ============================================================================
# Publisher
# ============================================================================

class PublisherConfig(BaseModel):
    """Deadlines applied by the publisher when callers pass none."""

    model_config = ConfigDict(frozen=True)

    save_timeout: int = Field(
        default=DEFAULT_SAVE_TIMEOUT_MS,
        ge=1,
        description="Deadline for save_file in milliseconds",
    )
    publish_timeout: int = Field(
        default=DEFAULT_PUBLISH_TIMEOUT_MS,
        ge=1,
        description="Deadline for finalize in milliseconds",
    )
    locator_scheme: str = Field(
        default="ipfs",
        description="URL scheme of published locators",
    )


# ============================================================================
# Gateway
# ============================================================================

class GatewayConfig(BaseModel):
    """
    Configuration for reading published content over HTTP.

    ``gateway_url`` is a template; ``{cid}`` is replaced with the root
    identifier of the published directory.
    """

    model_config = ConfigDict(frozen=True)

    gateway_url: str = Field(
        default="https://{cid}.ipfs.w3s.link",
        description="Subdomain gateway URL template",
    )
    timeout: int = Field(
        default=30000,
        ge=1000,
        description="Request timeout in milliseconds",
    )
    max_download_size: int = Field(
        default=52428800,  # 50MB
        ge=1,
        description="Maximum download size in bytes",
    )


# ============================================================================
# Driver Results
# ============================================================================

class SaveDataOutput(BaseModel):
    """Result of saving data through a driver session."""

    model_config = ConfigDict(frozen=True)

    url: str = Field(
        ...,
        description="Location of the saved data (content id for w3s)",
    )
    uploader_response_headers: Dict[str, str] = Field(
        default_factory=dict,
        description="Headers returned by the backend, if any",
    )


class DownloadResult(BaseModel):
    """Result of downloading content."""

    model_config = ConfigDict(frozen=True)

    data: bytes = Field(
        ...,
        description="Downloaded content as bytes",
    )
    size: int = Field(
        ...,
        ge=0,
        description="Size of downloaded content in bytes",
    )
    downloaded_at: datetime = Field(
        ...,
        description="Download timestamp",
    )
