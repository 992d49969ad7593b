"""Sorted table file format: constants, block handles, varints and block checksums.

A table holds data blocks, an optional filter block, a metaindex block, an
index block and a 48-byte footer. Every block is followed by a 5-byte
trailer made of a compression type byte and a little-endian CRC-32C
(Castagnoli) checksum that covers the block data and the type byte.
The footer holds the metaindex and index block handles, zero padding and
an 8-byte magic number.
"""

from __future__ import annotations

from dataclasses import dataclass

BLOCK_TRAILER_LEN = 5
FOOTER_LEN = 48
MAGIC = b"\x57\xfb\x80\x8b\x24\x75\x47\xdb"

BLOCK_TYPE_NO_COMPRESSION = 0
BLOCK_TYPE_SNAPPY_COMPRESSION = 1

# A new filter is generated for every 2KB of data.
FILTER_BASE_LG = 11
FILTER_BASE = 1 << FILTER_BASE_LG

_MAX_VARINT_LEN = 10
_UINT64_LIMIT = 1 << 64


def put_uvarint(out: bytearray, x: int) -> int:
    """Append x as an unsigned varint to out; return the number of bytes written."""
    if x < 0 or x >= _UINT64_LIMIT:
        raise ValueError("value out of range for uvarint")
    n = 0
    while x >= 0x80:
        out.append((x & 0x7F) | 0x80)
        x >>= 7
        n += 1
    out.append(x)
    return n + 1


def uvarint(src: bytes, pos: int = 0) -> tuple[int, int]:
    """Decode an unsigned varint at src[pos:].

    Return (value, n): n > 0 is the number of bytes read, 0 means the
    input was too short and -1 means the value overflows 64 bits.
    """
    x = 0
    shift = 0
    for i in range(_MAX_VARINT_LEN):
        if pos + i >= len(src):
            return 0, 0
        b = src[pos + i]
        if b < 0x80:
            if i == _MAX_VARINT_LEN - 1 and b > 1:
                return 0, -1
            return x | (b << shift), i + 1
        x |= (b & 0x7F) << shift
        shift += 7
    return 0, -1


@dataclass(frozen=True)
class BlockHandle:
    """Position and length (without trailer) of a block within a table."""

    offset: int = 0
    length: int = 0


def decode_block_handle(src: bytes) -> tuple[BlockHandle, int]:
    """Decode a block handle; return it with its encoded size, or size 0 on failure."""
    offset, n = uvarint(src, 0)
    if n <= 0:
        return BlockHandle(), 0
    length, m = uvarint(src, n)
    if m <= 0:
        return BlockHandle(), 0
    return BlockHandle(offset, length), n + m


def encode_block_handle(handle: BlockHandle) -> bytes:
    """Encode a block handle as two varints."""
    out = bytearray()
    put_uvarint(out, handle.offset)
    put_uvarint(out, handle.length)
    return bytes(out)


def _make_crc32c_table() -> tuple[int, ...]:
    poly = 0x82F63B78
    table = []
    for i in range(256):
        crc = i
        for _ in range(8):
            crc = (crc >> 1) ^ poly if crc & 1 else crc >> 1
        table.append(crc)
    return tuple(table)


_CRC32C_TABLE = _make_crc32c_table()


def block_checksum(data: bytes) -> int:
    """Return the CRC-32C (Castagnoli) checksum of data."""
    crc = 0xFFFFFFFF
    table = _CRC32C_TABLE
    for b in data:
        crc = table[(crc ^ b) & 0xFF] ^ (crc >> 8)
    return crc ^ 0xFFFFFFFF