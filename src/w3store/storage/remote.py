"""
Remote Archive Service Clients

A remote archive service stores CAR archives and binds a set of stored
archives under a root identifier, making the tree addressable by that
root. Two clients share one protocol:

- W3CliClient: web3.storage through the ``livepeer-w3`` command
- InMemoryRemoteStore: process-local service for tests and dry runs
"""

from __future__ import annotations

import base64
import os
import re
from typing import Dict, List, Optional, Protocol, Sequence, runtime_checkable

from w3store.errors.storage import (
    ArchiveFormatError,
    ContentNotFoundError,
    CredentialsError,
    RemoteStoreError,
    StoreFailureError,
)
from w3store.storage.car import archive_id_of, read_archive
from w3store.storage.content_id import ContentId, parse_locator
from w3store.storage.dag import DirectoryNode, read_unixfs_file
from w3store.storage.tree import split_path
from w3store.storage.types import W3CliConfig
from w3store.utils.logging import get_logger
from w3store.utils.process import run_command, temporary_path

_logger = get_logger(__name__)

PRINCIPAL_KEY_ENV = "W3_PRINCIPAL_KEY"
DELEGATION_PROOF_ENV = "W3_DELEGATION_PROOF"

_BASE64URL_PATTERN = re.compile(r"^[A-Za-z0-9_-]*$")


@runtime_checkable
class RemoteStore(Protocol):
    """Stores archives and binds them under a root identifier."""

    async def store_archive(self, archive: bytes, *, timeout_ms: Optional[int] = None) -> str:
        """Store one archive; return its archive id. Idempotent by content."""
        ...

    async def bind_upload(
        self,
        root: ContentId,
        archive_ids: Sequence[str],
        *,
        timeout_ms: Optional[int] = None,
    ) -> None:
        """Publish ``root`` as the union of the given archives."""
        ...


def base64url_to_base64(proof: str) -> str:
    """
    Convert an unpadded base64url string to padded standard base64.

    Args:
        proof: base64url text (as carried in driver URLs)

    Returns:
        Standard base64 text

    Raises:
        CredentialsError: If ``proof`` is not valid unpadded base64url
    """
    if not _BASE64URL_PATTERN.match(proof) or len(proof) % 4 == 1:
        raise CredentialsError("invalid UCAN proof format")
    try:
        raw = base64.urlsafe_b64decode(proof + "=" * (-len(proof) % 4))
    except ValueError as e:
        raise CredentialsError(f"invalid UCAN proof format: {e}") from e
    return base64.b64encode(raw).decode("ascii")


# ============================================================================
# web3.storage CLI
# ============================================================================


class W3CliClient:
    """
    web3.storage client driving the ``livepeer-w3`` command.

    Credentials are passed to the child process only, through
    ``W3_DELEGATION_PROOF`` (standard base64) and ``W3_PRINCIPAL_KEY``.

    Example:
        ```python
        client = W3CliClient(W3CliConfig(ucan_proof=proof))
        car_id = await client.store_archive(packed.archive)
        await client.bind_upload(root_cid, [car_id])
        ```
    """

    def __init__(self, config: W3CliConfig) -> None:
        self._config = config

    @property
    def command(self) -> str:
        return self._config.command

    def _environment(self) -> Dict[str, str]:
        if not self._config.ucan_proof:
            raise CredentialsError("UCAN proof not found")

        principal_key = self._config.principal_key or os.environ.get(PRINCIPAL_KEY_ENV)
        if not principal_key:
            raise CredentialsError(f"env variable '{PRINCIPAL_KEY_ENV}' is not defined")

        env = dict(os.environ)
        env[DELEGATION_PROOF_ENV] = base64url_to_base64(self._config.ucan_proof)
        env[PRINCIPAL_KEY_ENV] = principal_key
        return env

    async def store_archive(self, archive: bytes, *, timeout_ms: Optional[int] = None) -> str:
        """
        Store an archive with ``livepeer-w3 can store add``.

        Returns:
            Archive id printed by the command

        Raises:
            CredentialsError: If the proof or principal key is missing
            RemoteStoreError: If the command fails
            StoreTimeoutError: If the command exceeds its deadline
        """
        env = self._environment()
        with temporary_path("car", archive) as car_path:
            args = [self._config.command, "can", "store", "add", car_path]
            result = await run_command(
                args,
                timeout_ms=timeout_ms or self._config.timeout,
                env=env,
                operation="livepeer-w3 can store add",
            )

        if not result.ok:
            raise RemoteStoreError(
                "executing 'livepeer-w3 can store add' failed",
                command=args,
                output=result.output,
                returncode=result.returncode,
            )

        lines = [line.strip() for line in result.output.splitlines() if line.strip()]
        if not lines:
            raise StoreFailureError("'livepeer-w3 can store add' printed no archive id")
        return lines[-1]

    async def bind_upload(
        self,
        root: ContentId,
        archive_ids: Sequence[str],
        *,
        timeout_ms: Optional[int] = None,
    ) -> None:
        """
        Bind archives under ``root`` with ``livepeer-w3 can upload add``.

        Raises:
            CredentialsError: If the proof or principal key is missing
            RemoteStoreError: If the command fails
            StoreTimeoutError: If the command exceeds its deadline
        """
        env = self._environment()
        args = [self._config.command, "can", "upload", "add", str(root), *archive_ids]
        result = await run_command(
            args,
            timeout_ms=timeout_ms or self._config.timeout,
            env=env,
            operation="livepeer-w3 can upload add",
        )
        if not result.ok:
            raise RemoteStoreError(
                "executing 'livepeer-w3 can upload add' failed",
                command=args,
                output=result.output,
                returncode=result.returncode,
            )


# ============================================================================
# In-memory service
# ============================================================================


class InMemoryRemoteStore:
    """
    Process-local archive service.

    Archives are validated on store and keyed by their CAR identifier.
    Bound uploads can be read back with :meth:`resolve`, which walks the
    directory tree across every archive bound under the root.

    Example:
        ```python
        remote = InMemoryRemoteStore()
        publisher = Publisher(InProcessPacker(), remote)
        ...
        data = await remote.resolve(locator, "video/hls/seg0.ts")
        ```
    """

    def __init__(self) -> None:
        self._archives: Dict[str, bytes] = {}
        self._uploads: Dict[str, List[str]] = {}
        self.store_calls = 0
        self.bind_calls = 0

    @property
    def archive_ids(self) -> List[str]:
        return list(self._archives)

    @property
    def uploads(self) -> Dict[str, List[str]]:
        return {root: list(ids) for root, ids in self._uploads.items()}

    async def store_archive(self, archive: bytes, *, timeout_ms: Optional[int] = None) -> str:
        self.store_calls += 1
        try:
            read_archive(archive)
        except ArchiveFormatError as e:
            raise StoreFailureError(f"Rejected malformed archive: {e.message}") from e

        archive_id = str(archive_id_of(archive))
        self._archives.setdefault(archive_id, bytes(archive))
        return archive_id

    async def bind_upload(
        self,
        root: ContentId,
        archive_ids: Sequence[str],
        *,
        timeout_ms: Optional[int] = None,
    ) -> None:
        self.bind_calls += 1
        unknown = [archive_id for archive_id in archive_ids if archive_id not in self._archives]
        if unknown:
            raise StoreFailureError(
                f"Unknown archive ids: {', '.join(unknown)}",
                cid=str(root),
            )

        blocks = self._blocks(archive_ids)
        if root not in blocks:
            raise StoreFailureError("Root block not found in bound archives", cid=str(root))

        self._uploads[str(root)] = list(archive_ids)
        _logger.debug(
            "Bound upload",
            extra={"root": str(root), "archives": len(archive_ids)},
        )

    def _blocks(self, archive_ids: Sequence[str]) -> Dict[ContentId, bytes]:
        blocks: Dict[ContentId, bytes] = {}
        for archive_id in archive_ids:
            for cid, data in read_archive(self._archives[archive_id]).blocks.items():
                blocks.setdefault(cid, data)
        return blocks

    async def resolve(self, locator: str, path: str) -> bytes:
        """
        Read a published file by locator and relative path.

        Args:
            locator: ``ipfs://<root>`` as returned by finalize
            path: Slash-separated path of the file below the root

        Returns:
            File content

        Raises:
            ContentNotFoundError: If the upload, a directory or the file is missing
        """
        root = parse_locator(locator)
        archive_ids = self._uploads.get(str(root))
        if archive_ids is None:
            raise ContentNotFoundError(str(root))

        blocks = self._blocks(archive_ids)

        async def get_block(cid: ContentId) -> bytes:
            try:
                return blocks[cid]
            except KeyError:
                raise ContentNotFoundError(str(cid)) from None

        segments = split_path(path)
        if not segments:
            raise ContentNotFoundError(f"{root}/")

        current = root
        for segment in segments:
            node = DirectoryNode.decode(await get_block(current))
            link = node.get_link(segment)
            if link is None:
                raise ContentNotFoundError(f"{root}/{path}")
            current = link.cid

        return await read_unixfs_file(get_block, current)
