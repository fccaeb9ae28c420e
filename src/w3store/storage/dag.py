"""
MerkleDAG Nodes (dag-pb / UnixFS)

Immutable directory nodes and the dag-pb wire format used to address
them. A node's identifier is always computed from its canonical encoding,
so any change to its link set yields a new identifier.

Canonical encoding: PBNode with links (field 2) first, then data
(field 1). Links are serialized sorted by the UTF-8 bytes of their name;
the in-memory insertion order never affects the identifier.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Awaitable, Callable, Iterator, List, Optional, Sequence, Tuple

from w3store.errors.storage import ArchiveFormatError, InvalidIdentifierError
from w3store.storage.content_id import (
    DAG_PB,
    RAW,
    ContentId,
    decode_varint,
    encode_varint,
)


# ============================================================================
# UnixFS Data Types
# ============================================================================

UNIXFS_RAW = 0
UNIXFS_DIRECTORY = 1
UNIXFS_FILE = 2

_WIRE_VARINT = 0
_WIRE_BYTES = 2


def _key(field_number: int, wire_type: int) -> bytes:
    return encode_varint((field_number << 3) | wire_type)


def _bytes_field(field_number: int, value: bytes) -> bytes:
    return _key(field_number, _WIRE_BYTES) + encode_varint(len(value)) + value


def _varint_field(field_number: int, value: int) -> bytes:
    return _key(field_number, _WIRE_VARINT) + encode_varint(value)


def _iter_fields(data: bytes) -> Iterator[Tuple[int, int, object]]:
    """Yield (field number, wire type, value) for a protobuf message."""
    pos = 0
    while pos < len(data):
        try:
            key, pos = decode_varint(data, pos)
            field_number, wire_type = key >> 3, key & 0x07
            if wire_type == _WIRE_VARINT:
                value, pos = decode_varint(data, pos)
                yield field_number, wire_type, value
            elif wire_type == _WIRE_BYTES:
                length, pos = decode_varint(data, pos)
                if pos + length > len(data):
                    raise ArchiveFormatError("Truncated length-delimited field", offset=pos)
                yield field_number, wire_type, data[pos:pos + length]
                pos += length
            else:
                raise ArchiveFormatError(
                    f"Unsupported protobuf wire type {wire_type}", offset=pos
                )
        except ValueError as e:
            raise ArchiveFormatError(str(e), offset=pos) from e


def encode_unixfs_data(
    data_type: int,
    *,
    data: Optional[bytes] = None,
    filesize: Optional[int] = None,
    blocksizes: Sequence[int] = (),
) -> bytes:
    """
    Encode a UnixFS Data record.

    Args:
        data_type: One of UNIXFS_RAW, UNIXFS_DIRECTORY, UNIXFS_FILE
        data: Inline file bytes
        filesize: Total file size (files only)
        blocksizes: Size of each child block (files only)

    Returns:
        Protobuf bytes
    """
    out = _varint_field(1, data_type)
    if data is not None:
        out += _bytes_field(2, data)
    if filesize is not None:
        out += _varint_field(3, filesize)
    for size in blocksizes:
        out += _varint_field(4, size)
    return out


@dataclass(frozen=True)
class UnixFSData:
    """Decoded UnixFS Data record."""

    data_type: int
    data: bytes = b""
    filesize: Optional[int] = None
    blocksizes: Tuple[int, ...] = ()

    @classmethod
    def decode(cls, raw: bytes) -> UnixFSData:
        data_type: Optional[int] = None
        data = b""
        filesize: Optional[int] = None
        blocksizes: List[int] = []
        for number, _, value in _iter_fields(raw):
            if number == 1:
                data_type = value  # type: ignore[assignment]
            elif number == 2:
                data = value  # type: ignore[assignment]
            elif number == 3:
                filesize = value  # type: ignore[assignment]
            elif number == 4:
                blocksizes.append(value)  # type: ignore[arg-type]
        if data_type is None:
            raise ArchiveFormatError("UnixFS data record has no type")
        return cls(
            data_type=data_type,
            data=data,
            filesize=filesize,
            blocksizes=tuple(blocksizes),
        )


# ============================================================================
# Links and Nodes
# ============================================================================


@dataclass(frozen=True)
class Link:
    """
    Named pointer from a node to a file or a child directory.

    Attributes:
        name: Entry name inside the parent directory
        cid: Target content identifier
        size: Cumulative size of the target DAG (dag-pb Tsize)
    """

    name: str
    cid: ContentId
    size: int = 0

    def encode(self) -> bytes:
        return (
            _bytes_field(1, self.cid.to_bytes())
            + _bytes_field(2, self.name.encode("utf-8"))
            + _varint_field(3, self.size)
        )

    @classmethod
    def decode(cls, raw: bytes) -> Link:
        cid: Optional[ContentId] = None
        name = ""
        size = 0
        for number, _, value in _iter_fields(raw):
            if number == 1:
                try:
                    cid, end = ContentId.from_bytes(value)  # type: ignore[arg-type]
                except InvalidIdentifierError as e:
                    raise ArchiveFormatError(f"Invalid link hash: {e.reason}") from e
                if end != len(value):  # type: ignore[arg-type]
                    raise ArchiveFormatError("Trailing bytes after link hash")
            elif number == 2:
                name = value.decode("utf-8")  # type: ignore[union-attr]
            elif number == 3:
                size = value  # type: ignore[assignment]
        if cid is None:
            raise ArchiveFormatError("Link has no hash")
        return cls(name=name, cid=cid, size=size)


def _sort_key(link: Link) -> bytes:
    return link.name.encode("utf-8")


@dataclass(frozen=True)
class PBNode:
    """Generic dag-pb node: ordered links plus an opaque data payload."""

    links: Tuple[Link, ...] = ()
    data: Optional[bytes] = None

    def encode(self) -> bytes:
        out = b"".join(_bytes_field(2, link.encode()) for link in self.links)
        if self.data is not None:
            out += _bytes_field(1, self.data)
        return out

    @classmethod
    def decode(cls, raw: bytes) -> PBNode:
        links: List[Link] = []
        data: Optional[bytes] = None
        for number, wire_type, value in _iter_fields(raw):
            if wire_type != _WIRE_BYTES:
                raise ArchiveFormatError(f"Unexpected varint field {number} in dag-pb node")
            if number == 2:
                links.append(Link.decode(value))  # type: ignore[arg-type]
            elif number == 1:
                data = value  # type: ignore[assignment]
        return cls(links=tuple(links), data=data)

    @property
    def cid(self) -> ContentId:
        return ContentId.of(self.encode(), DAG_PB)


_DIRECTORY_DATA = encode_unixfs_data(UNIXFS_DIRECTORY)


@dataclass(frozen=True)
class DirectoryNode:
    """
    Immutable UnixFS directory.

    Links are kept in insertion order; updating an entry keeps its
    position. ``with_link`` and ``without_link`` return new nodes.

    Example:
        ```python
        node = DirectoryNode().with_link(Link("a.ts", file_cid, 1024))
        assert node.get_link("a.ts").cid == file_cid
        ```
    """

    links: Tuple[Link, ...] = field(default=())

    def get_link(self, name: str) -> Optional[Link]:
        for link in self.links:
            if link.name == name:
                return link
        return None

    def with_link(self, link: Link) -> DirectoryNode:
        """Return a copy with ``link`` added, replacing any same-named entry."""
        links = list(self.links)
        for index, existing in enumerate(links):
            if existing.name == link.name:
                links[index] = link
                return DirectoryNode(tuple(links))
        links.append(link)
        return DirectoryNode(tuple(links))

    def without_link(self, name: str) -> DirectoryNode:
        return DirectoryNode(tuple(link for link in self.links if link.name != name))

    @property
    def names(self) -> List[str]:
        return [link.name for link in self.links]

    def encode(self) -> bytes:
        """Canonical dag-pb bytes (links sorted by name)."""
        return PBNode(
            links=tuple(sorted(self.links, key=_sort_key)),
            data=_DIRECTORY_DATA,
        ).encode()

    @classmethod
    def decode(cls, raw: bytes) -> DirectoryNode:
        """
        Parse a stored directory node.

        Raises:
            ArchiveFormatError: If ``raw`` is not a UnixFS directory
        """
        node = PBNode.decode(raw)
        if node.data is None:
            raise ArchiveFormatError("dag-pb node has no UnixFS data")
        unixfs = UnixFSData.decode(node.data)
        if unixfs.data_type != UNIXFS_DIRECTORY:
            raise ArchiveFormatError(
                f"Expected a UnixFS directory, got type {unixfs.data_type}"
            )
        return cls(node.links)

    @property
    def cid(self) -> ContentId:
        return ContentId.of(self.encode(), DAG_PB)

    @property
    def total_size(self) -> int:
        """Encoded size plus the cumulative size of every linked DAG."""
        return len(self.encode()) + sum(link.size for link in self.links)

    def __len__(self) -> int:
        return len(self.links)

    def __iter__(self) -> Iterator[Link]:
        return iter(self.links)


EMPTY_DIRECTORY = DirectoryNode()


# ============================================================================
# Reading
# ============================================================================

BlockGetter = Callable[[ContentId], Awaitable[bytes]]


async def read_unixfs_file(get_block: BlockGetter, cid: ContentId) -> bytes:
    """
    Reassemble a UnixFS file from its blocks.

    Args:
        get_block: Coroutine returning the bytes of a block
        cid: File root identifier (raw leaf or dag-pb file node)

    Returns:
        File content

    Raises:
        ArchiveFormatError: If the DAG is not a UnixFS file
    """
    block = await get_block(cid)
    if cid.codec == RAW:
        return block
    if cid.codec != DAG_PB:
        raise ArchiveFormatError(f"Unsupported codec 0x{cid.codec:x} in file DAG")

    node = PBNode.decode(block)
    if node.data is None:
        raise ArchiveFormatError("dag-pb node has no UnixFS data")
    unixfs = UnixFSData.decode(node.data)
    if unixfs.data_type not in (UNIXFS_FILE, UNIXFS_RAW):
        raise ArchiveFormatError(f"Expected a UnixFS file, got type {unixfs.data_type}")

    parts = [unixfs.data]
    for link in node.links:
        parts.append(await read_unixfs_file(get_block, link.cid))
    return b"".join(parts)
