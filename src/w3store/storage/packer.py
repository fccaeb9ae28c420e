"""
Archive Packers

Convert a file into a single-file CAR archive and report the file's
content identifier. Two implementations share one protocol:

- InProcessPacker: UnixFS import done in Python
- IpfsCarPacker: delegates to the ``ipfs-car`` command line tool
"""

from __future__ import annotations

import re
from typing import List, Optional, Protocol, Tuple, runtime_checkable

from w3store.errors.storage import (
    ArchiveFormatError,
    InvalidIdentifierError,
    RemoteStoreError,
    StoreFailureError,
)
from w3store.storage.car import ArchiveBuilder, read_archive
from w3store.storage.content_id import DAG_PB, RAW, ContentId
from w3store.storage.dag import UNIXFS_FILE, Link, PBNode, encode_unixfs_data
from w3store.storage.types import ChunkerConfig, IpfsCarConfig, PackedFile
from w3store.utils.logging import get_logger
from w3store.utils.process import run_command, temporary_path

_logger = get_logger(__name__)

_ROOT_CID_PATTERN = re.compile(r"root CID: ([A-Za-z0-9]+)")


@runtime_checkable
class ArchivePacker(Protocol):
    """Packs file content into a self-contained archive."""

    async def pack(self, data: bytes, *, timeout_ms: Optional[int] = None) -> PackedFile:
        ...


class _Child:
    __slots__ = ("cid", "file_size", "dag_size")

    def __init__(self, cid: ContentId, file_size: int, dag_size: int) -> None:
        self.cid = cid
        self.file_size = file_size
        self.dag_size = dag_size


class InProcessPacker:
    """
    UnixFS file importer producing CAR v1 archives.

    Files are split into raw leaves of ``chunk_size`` bytes and linked
    through a balanced tree of dag-pb file nodes. A file that fits in a
    single leaf is addressed by the raw leaf itself.

    Example:
        ```python
        packer = InProcessPacker()
        packed = await packer.pack(b"segment bytes")
        print(packed.content_id)
        ```
    """

    def __init__(self, config: Optional[ChunkerConfig] = None) -> None:
        self._config = config or ChunkerConfig()

    @property
    def chunk_size(self) -> int:
        return self._config.chunk_size

    async def pack(self, data: bytes, *, timeout_ms: Optional[int] = None) -> PackedFile:
        """
        Pack ``data`` into an archive.

        Args:
            data: File content
            timeout_ms: Unused; packing happens in memory

        Returns:
            PackedFile with archive bytes and file content id
        """
        blocks: List[Tuple[ContentId, bytes]] = []
        root = self._build(data, blocks)

        # Root block first, as ipfs-car writes it
        blocks.reverse()
        archive = ArchiveBuilder([root.cid]).add_blocks(blocks).build()
        return PackedFile(
            archive=archive,
            content_id=root.cid,
            size=len(data),
            dag_size=root.dag_size,
        )

    def _build(self, data: bytes, blocks: List[Tuple[ContentId, bytes]]) -> _Child:
        size = self._config.chunk_size
        chunks = [data[i:i + size] for i in range(0, len(data), size)] or [b""]

        level: List[_Child] = []
        for chunk in chunks:
            cid = ContentId.of(chunk, RAW)
            blocks.append((cid, chunk))
            level.append(_Child(cid, len(chunk), len(chunk)))

        while len(level) > 1:
            level = [
                self._file_node(level[i:i + self._config.max_links], blocks)
                for i in range(0, len(level), self._config.max_links)
            ]
        return level[0]

    @staticmethod
    def _file_node(children: List[_Child], blocks: List[Tuple[ContentId, bytes]]) -> _Child:
        file_size = sum(child.file_size for child in children)
        node = PBNode(
            links=tuple(Link("", child.cid, child.dag_size) for child in children),
            data=encode_unixfs_data(
                UNIXFS_FILE,
                filesize=file_size,
                blocksizes=[child.file_size for child in children],
            ),
        )
        encoded = node.encode()
        cid = ContentId.of(encoded, DAG_PB)
        blocks.append((cid, encoded))
        return _Child(cid, file_size, len(encoded) + sum(c.dag_size for c in children))


class IpfsCarPacker:
    """
    Packer backed by the external ``ipfs-car`` binary.

    The file is written to a temporary path, packed with
    ``ipfs-car --wrapWithDirectory false --pack <file> --output <car>`` and
    the root CID is parsed from the command output. Temporary files are
    removed on every exit path and the process is killed on timeout or
    cancellation.
    """

    def __init__(self, config: Optional[IpfsCarConfig] = None) -> None:
        self._config = config or IpfsCarConfig()

    async def pack(self, data: bytes, *, timeout_ms: Optional[int] = None) -> PackedFile:
        """
        Pack ``data`` with ``ipfs-car``.

        Raises:
            RemoteStoreError: If the command fails
            StoreFailureError: If the output carries no root CID
            StoreTimeoutError: If the command exceeds its deadline
        """
        timeout = timeout_ms or self._config.timeout

        with temporary_path("w3s-raw", data) as raw_path, temporary_path("w3s-car") as car_path:
            args = [
                self._config.command,
                "--wrapWithDirectory", "false",
                "--pack", raw_path,
                "--output", car_path,
            ]
            result = await run_command(args, timeout_ms=timeout, operation="ipfs-car pack")
            if not result.ok:
                raise RemoteStoreError(
                    "executing 'ipfs-car' failed",
                    command=args,
                    output=result.output,
                    returncode=result.returncode,
                )

            match = _ROOT_CID_PATTERN.search(result.output)
            if match is None:
                raise StoreFailureError(
                    f"cannot find root file CID in the output: {result.output.strip()}"
                )

            with open(car_path, "rb") as f:
                archive = f.read()

        try:
            content_id = ContentId.parse(match.group(1))
            dag_size = sum(len(block) for block in read_archive(archive).blocks.values())
        except (InvalidIdentifierError, ArchiveFormatError) as e:
            raise StoreFailureError(f"ipfs-car produced an unusable archive: {e.message}") from e

        _logger.debug(
            "Packed file",
            extra={"cid": str(content_id), "size": len(data), "archive_size": len(archive)},
        )
        return PackedFile(
            archive=archive,
            content_id=content_id,
            size=len(data),
            dag_size=dag_size,
        )
