"""
Content Archives (CAR v1)

Serializes content-addressed blocks into self-contained CAR v1 archives
and reads them back. An archive is a varint-prefixed dag-cbor header
``{"roots": [...], "version": 1}`` followed by varint-prefixed
``<cid><block>`` sections. Every block is verified against its
identifier on read, so an archive can be checked independently.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Sequence, Tuple

from w3store.errors.storage import ArchiveFormatError, InvalidIdentifierError
from w3store.storage.content_id import (
    CAR,
    SHA2_256,
    ContentId,
    decode_varint,
    encode_varint,
)

CAR_VERSION = 1

_CBOR_UINT = 0
_CBOR_BYTES = 2
_CBOR_TEXT = 3
_CBOR_ARRAY = 4
_CBOR_MAP = 5
_CBOR_TAG = 6
_CID_TAG = 42


# ============================================================================
# Minimal dag-cbor (header only)
# ============================================================================


def _cbor_head(major: int, value: int) -> bytes:
    if value < 24:
        return bytes([(major << 5) | value])
    if value < 0x100:
        return bytes([(major << 5) | 24, value])
    if value < 0x10000:
        return bytes([(major << 5) | 25]) + value.to_bytes(2, "big")
    if value < 0x100000000:
        return bytes([(major << 5) | 26]) + value.to_bytes(4, "big")
    return bytes([(major << 5) | 27]) + value.to_bytes(8, "big")


def _cbor_text(value: str) -> bytes:
    raw = value.encode("utf-8")
    return _cbor_head(_CBOR_TEXT, len(raw)) + raw


def _cbor_cid(cid: ContentId) -> bytes:
    # dag-cbor CIDs carry a leading identity-multibase zero byte
    raw = b"\x00" + cid.to_bytes()
    return _cbor_head(_CBOR_TAG, _CID_TAG) + _cbor_head(_CBOR_BYTES, len(raw)) + raw


def _encode_header(roots: Sequence[ContentId]) -> bytes:
    # dag-cbor map keys sort by length first: "roots" < "version"
    out = _cbor_head(_CBOR_MAP, 2)
    out += _cbor_text("roots")
    out += _cbor_head(_CBOR_ARRAY, len(roots))
    for root in roots:
        out += _cbor_cid(root)
    out += _cbor_text("version")
    out += _cbor_head(_CBOR_UINT, CAR_VERSION)
    return out


def _cbor_decode(data: bytes, pos: int) -> Tuple[Any, int]:
    if pos >= len(data):
        raise ArchiveFormatError("Truncated CAR header", offset=pos)

    initial = data[pos]
    major, info = initial >> 5, initial & 0x1F
    pos += 1
    if info < 24:
        value = info
    elif info in (24, 25, 26, 27):
        width = 1 << (info - 24)
        if pos + width > len(data):
            raise ArchiveFormatError("Truncated CAR header", offset=pos)
        value = int.from_bytes(data[pos:pos + width], "big")
        pos += width
    else:
        raise ArchiveFormatError(f"Unsupported CBOR length encoding {info}", offset=pos)

    if major == _CBOR_UINT:
        return value, pos
    if major in (_CBOR_BYTES, _CBOR_TEXT):
        end = pos + value
        if end > len(data):
            raise ArchiveFormatError("Truncated CAR header", offset=pos)
        raw = data[pos:end]
        return (raw.decode("utf-8") if major == _CBOR_TEXT else raw), end
    if major == _CBOR_ARRAY:
        items = []
        for _ in range(value):
            item, pos = _cbor_decode(data, pos)
            items.append(item)
        return items, pos
    if major == _CBOR_MAP:
        mapping = {}
        for _ in range(value):
            key, pos = _cbor_decode(data, pos)
            mapping[key], pos = _cbor_decode(data, pos)
        return mapping, pos
    if major == _CBOR_TAG and value == _CID_TAG:
        raw, pos = _cbor_decode(data, pos)
        if not isinstance(raw, bytes) or not raw.startswith(b"\x00"):
            raise ArchiveFormatError("Malformed CID in CAR header", offset=pos)
        try:
            cid, end = ContentId.from_bytes(raw, 1)
        except InvalidIdentifierError as e:
            raise ArchiveFormatError(f"Invalid root CID: {e.reason}", offset=pos) from e
        if end != len(raw):
            raise ArchiveFormatError("Trailing bytes after root CID", offset=pos)
        return cid, pos
    raise ArchiveFormatError(f"Unsupported CBOR major type {major}", offset=pos)


# ============================================================================
# Archive
# ============================================================================


@dataclass
class CarArchive:
    """Decoded archive: its roots and blocks in archive order."""

    roots: List[ContentId]
    blocks: Dict[ContentId, bytes] = field(default_factory=dict)

    @property
    def root(self) -> ContentId:
        if not self.roots:
            raise ArchiveFormatError("Archive has no root")
        return self.roots[0]


class ArchiveBuilder:
    """
    Builds a CAR v1 archive from blocks.

    Blocks are written in insertion order; adding the same identifier
    twice keeps the first copy.

    Example:
        ```python
        node = DirectoryNode()
        archive = (
            ArchiveBuilder([node.cid])
            .add_block(node.cid, node.encode())
            .build()
        )
        ```
    """

    def __init__(self, roots: Iterable[ContentId]) -> None:
        self._roots = list(roots)
        if not self._roots:
            raise ArchiveFormatError("Archive needs at least one root")
        self._blocks: Dict[ContentId, bytes] = {}

    @property
    def roots(self) -> List[ContentId]:
        return list(self._roots)

    def add_block(self, cid: ContentId, data: bytes) -> ArchiveBuilder:
        if cid not in self._blocks:
            self._blocks[cid] = bytes(data)
        return self

    def add_blocks(self, blocks: Iterable[Tuple[ContentId, bytes]]) -> ArchiveBuilder:
        for cid, data in blocks:
            self.add_block(cid, data)
        return self

    def build(self) -> bytes:
        header = _encode_header(self._roots)
        parts = [encode_varint(len(header)), header]
        for cid, data in self._blocks.items():
            raw_cid = cid.to_bytes()
            parts.append(encode_varint(len(raw_cid) + len(data)))
            parts.append(raw_cid)
            parts.append(data)
        return b"".join(parts)


def archive_id_of(archive: bytes) -> ContentId:
    """Identifier of an archive as a whole (CAR multicodec)."""
    return ContentId.of(archive, CAR)


def read_archive(archive: bytes, *, verify: bool = True) -> CarArchive:
    """
    Parse a CAR v1 archive.

    Args:
        archive: Archive bytes
        verify: Check every sha2-256 block against its identifier

    Returns:
        Decoded archive

    Raises:
        ArchiveFormatError: If the archive is malformed or a block does not
            match its identifier
    """
    try:
        header_length, pos = decode_varint(archive)
    except ValueError as e:
        raise ArchiveFormatError(str(e), offset=0) from e

    header_end = pos + header_length
    if header_length == 0 or header_end > len(archive):
        raise ArchiveFormatError("Truncated CAR header", offset=pos)

    header, end = _cbor_decode(archive[:header_end], pos)
    if end != header_end or not isinstance(header, dict):
        raise ArchiveFormatError("Malformed CAR header", offset=pos)
    if header.get("version") != CAR_VERSION:
        raise ArchiveFormatError(f"Unsupported CAR version {header.get('version')!r}")
    roots = header.get("roots")
    if not isinstance(roots, list) or not all(isinstance(r, ContentId) for r in roots):
        raise ArchiveFormatError("CAR header has no valid roots")

    result = CarArchive(roots=roots)
    pos = header_end
    while pos < len(archive):
        section_start = pos
        try:
            length, pos = decode_varint(archive, pos)
        except ValueError as e:
            raise ArchiveFormatError(str(e), offset=section_start) from e
        section_end = pos + length
        if section_end > len(archive):
            raise ArchiveFormatError("Truncated block section", offset=section_start)
        try:
            cid, data_start = ContentId.from_bytes(archive[:section_end], pos)
        except InvalidIdentifierError as e:
            raise ArchiveFormatError(
                f"Invalid block CID: {e.reason}", offset=section_start
            ) from e

        data = archive[data_start:section_end]
        if verify and cid.multihash[0] == SHA2_256 and ContentId.of(data, cid.codec) != cid:
            raise ArchiveFormatError(
                f"Block does not match its identifier {cid}", offset=section_start
            )
        result.blocks.setdefault(cid, data)
        pos = section_end

    return result
