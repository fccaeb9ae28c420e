"""
Content Identifiers (CIDv1)

Deterministic, content-derived identifiers for raw bytes, encoded
directory/file nodes and archives. Identifiers follow the IPFS CIDv1
layout: ``<version><multicodec><multihash>``, rendered as multibase
base32 (lower case, ``b`` prefix).
"""

from __future__ import annotations

import base64
import hashlib
from dataclasses import dataclass
from typing import Tuple

from w3store.errors.storage import InvalidIdentifierError


# ============================================================================
# Multicodec / Multihash Constants
# ============================================================================

RAW = 0x55
"""Raw bytes (UnixFS raw leaves)."""

DAG_PB = 0x70
"""MerkleDAG protobuf (UnixFS directories and file roots)."""

CAR = 0x0202
"""Content archive (CAR) as stored by web3.storage."""

SHA2_256 = 0x12
SHA2_256_LENGTH = 32

_BASE58_ALPHABET = "123456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz"


# ============================================================================
# Varints (unsigned LEB128)
# ============================================================================


def encode_varint(value: int) -> bytes:
    """
    Encode a non-negative integer as an unsigned varint.

    Args:
        value: Integer to encode

    Returns:
        Varint bytes
    """
    if value < 0:
        raise ValueError(f"varint cannot encode negative value {value}")

    out = bytearray()
    while True:
        byte = value & 0x7F
        value >>= 7
        if value:
            out.append(byte | 0x80)
        else:
            out.append(byte)
            return bytes(out)


def decode_varint(data: bytes, offset: int = 0) -> Tuple[int, int]:
    """
    Decode an unsigned varint.

    Args:
        data: Buffer to read from
        offset: Position of the first varint byte

    Returns:
        Tuple of (value, offset just past the varint)

    Raises:
        ValueError: If the buffer ends mid-varint or the varint is too long
    """
    value = 0
    shift = 0
    pos = offset
    while True:
        if pos >= len(data):
            raise ValueError(f"truncated varint at offset {offset}")
        byte = data[pos]
        pos += 1
        value |= (byte & 0x7F) << shift
        if not byte & 0x80:
            return value, pos
        shift += 7
        if shift > 63:
            raise ValueError(f"varint too long at offset {offset}")


def _b58decode(value: str) -> bytes:
    num = 0
    for char in value:
        index = _BASE58_ALPHABET.find(char)
        if index < 0:
            raise ValueError(f"invalid base58 character {char!r}")
        num = num * 58 + index

    body = num.to_bytes((num.bit_length() + 7) // 8, "big") if num else b""
    leading = len(value) - len(value.lstrip("1"))
    return b"\x00" * leading + body


# ============================================================================
# ContentId
# ============================================================================


@dataclass(frozen=True)
class ContentId:
    """
    CIDv1 content identifier.

    Two identifiers are equal when both their codec and their multihash
    are equal, so ids computed from equal inputs always compare equal.

    Example:
        ```python
        from w3store.storage.content_id import ContentId, RAW

        cid = ContentId.of(b"hello", RAW)
        assert ContentId.parse(str(cid)) == cid
        ```
    """

    codec: int
    multihash: bytes

    @classmethod
    def of(cls, data: bytes, codec: int = RAW) -> ContentId:
        """
        Compute the identifier of a byte sequence.

        Args:
            data: Content to address
            codec: Multicodec describing how ``data`` is encoded

        Returns:
            sha2-256 based CIDv1
        """
        digest = hashlib.sha256(data).digest()
        multihash = bytes([SHA2_256, SHA2_256_LENGTH]) + digest
        return cls(codec=codec, multihash=multihash)

    @classmethod
    def parse(cls, value: str) -> ContentId:
        """
        Parse a textual identifier.

        Accepts CIDv1 in multibase base32 (``b...``) and CIDv0 in base58btc
        (``Qm...``). CIDv0 is upgraded to the equivalent CIDv1 dag-pb id.

        Args:
            value: Identifier string

        Returns:
            Parsed ContentId

        Raises:
            InvalidIdentifierError: If the string is not a valid identifier
        """
        if not value or not isinstance(value, str):
            raise InvalidIdentifierError(str(value), reason="empty identifier")

        if value.startswith("Qm"):
            if len(value) != 46:
                raise InvalidIdentifierError(value, reason="CIDv0 must be 46 characters")
            try:
                raw = _b58decode(value)
            except ValueError as e:
                raise InvalidIdentifierError(value, reason=str(e)) from e
            return cls._from_multihash_bytes(value, raw, DAG_PB)

        if not value.startswith("b"):
            raise InvalidIdentifierError(value, reason="unsupported multibase prefix")

        body = value[1:].upper()
        try:
            raw = base64.b32decode(body + "=" * (-len(body) % 8))
        except ValueError as e:
            raise InvalidIdentifierError(value, reason="invalid base32 encoding") from e

        try:
            cid, end = cls.from_bytes(raw)
        except InvalidIdentifierError as e:
            raise InvalidIdentifierError(value, reason=e.reason) from e
        if end != len(raw):
            raise InvalidIdentifierError(value, reason="trailing bytes after multihash")
        return cid

    @classmethod
    def from_bytes(cls, data: bytes, offset: int = 0) -> Tuple[ContentId, int]:
        """
        Decode a binary identifier.

        Args:
            data: Buffer holding the binary CID
            offset: Position where the CID starts

        Returns:
            Tuple of (ContentId, offset just past the CID)

        Raises:
            InvalidIdentifierError: If the bytes are not a valid CID
        """
        # Binary CIDv0 is a bare sha2-256 multihash
        if data[offset:offset + 2] == bytes([SHA2_256, SHA2_256_LENGTH]):
            end = offset + 2 + SHA2_256_LENGTH
            cid = cls._from_multihash_bytes(data[offset:end].hex(), data[offset:end], DAG_PB)
            return cid, end

        try:
            version, pos = decode_varint(data, offset)
            if version != 1:
                raise InvalidIdentifierError(
                    data[offset:offset + 8].hex(),
                    reason=f"unsupported CID version {version}",
                )
            codec, pos = decode_varint(data, pos)
            hash_code, hash_start = decode_varint(data, pos)
            length, digest_start = decode_varint(data, hash_start)
        except ValueError as e:
            raise InvalidIdentifierError(
                data[offset:offset + 8].hex(), reason=str(e)
            ) from e

        end = digest_start + length
        if end > len(data):
            raise InvalidIdentifierError(
                data[offset:offset + 8].hex(), reason="truncated multihash digest"
            )
        if hash_code == SHA2_256 and length != SHA2_256_LENGTH:
            raise InvalidIdentifierError(
                data[offset:offset + 8].hex(), reason="sha2-256 digest must be 32 bytes"
            )
        return cls(codec=codec, multihash=bytes(data[pos:end])), end

    @classmethod
    def _from_multihash_bytes(cls, value: str, raw: bytes, codec: int) -> ContentId:
        if len(raw) != 2 + SHA2_256_LENGTH or raw[0] != SHA2_256 or raw[1] != SHA2_256_LENGTH:
            raise InvalidIdentifierError(value, reason="expected a sha2-256 multihash")
        return cls(codec=codec, multihash=bytes(raw))

    @property
    def digest(self) -> bytes:
        """Raw hash digest without the multihash prefix."""
        _, pos = decode_varint(self.multihash)
        _, pos = decode_varint(self.multihash, pos)
        return self.multihash[pos:]

    def to_bytes(self) -> bytes:
        """Binary CIDv1 form."""
        return encode_varint(1) + encode_varint(self.codec) + self.multihash

    def encode(self) -> str:
        """Multibase base32 string form."""
        body = base64.b32encode(self.to_bytes()).decode("ascii")
        return "b" + body.rstrip("=").lower()

    def __str__(self) -> str:
        return self.encode()

    def __repr__(self) -> str:
        return f"ContentId({self.encode()!r})"


def id_of(data: bytes, codec: int = RAW) -> ContentId:
    """
    Compute the identifier of a byte sequence.

    Shorthand for :meth:`ContentId.of`.
    """
    return ContentId.of(data, codec)


def validate_cid(value: str) -> bool:
    """
    Check whether a string is a parseable content identifier.

    Args:
        value: Candidate identifier

    Returns:
        True if ``ContentId.parse`` accepts it
    """
    try:
        ContentId.parse(value)
    except InvalidIdentifierError:
        return False
    return True


def parse_locator(locator: str) -> ContentId:
    """
    Extract the root identifier from a published locator.

    Accepts ``ipfs://<cid>``, ``ipfs://<cid>/<path>`` and a bare ``<cid>``.

    Raises:
        InvalidIdentifierError: If no valid identifier is present
    """
    value = locator or ""
    if value.startswith("ipfs://"):
        value = value[len("ipfs://"):]
    return ContentId.parse(value.split("/", 1)[0])
