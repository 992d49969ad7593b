"""Sorted table writer: data, filter, metaindex and index blocks plus the footer."""

from __future__ import annotations

import struct
from typing import Any, BinaryIO

from tydb.table.format import (
    BLOCK_TYPE_NO_COMPRESSION,
    BlockHandle,
    FILTER_BASE,
    FILTER_BASE_LG,
    FOOTER_LEN,
    MAGIC,
    block_checksum,
    encode_block_handle,
    put_uvarint,
)

DEFAULT_BLOCK_SIZE = 4096
DEFAULT_RESTART_INTERVAL = 16


def shared_prefix_len(a: bytes, b: bytes) -> int:
    """Return the length of the common prefix of a and b."""
    n = min(len(a), len(b))
    i = 0
    while i < n and a[i] == b[i]:
        i += 1
    return i


class _BytewiseComparer:
    """Bytewise ordering; index keys are not shortened."""

    name = "leveldb.BytewiseComparator"

    @staticmethod
    def compare(a: bytes, b: bytes) -> int:
        return (a > b) - (a < b)


class BlockWriter:
    """Builds one block of prefix-compressed entries with restart points."""

    def __init__(self, restart_interval: int = DEFAULT_RESTART_INTERVAL) -> None:
        if restart_interval < 1:
            raise ValueError("restart interval must be positive")
        self.restart_interval = restart_interval
        self._buf = bytearray()
        self.n_entries = 0
        self.prev_key = b""
        self.restarts: list[int] = []

    def append(self, key: bytes, value: bytes) -> None:
        """Add an entry, sharing its key prefix with the previous key."""
        key, value = bytes(key), bytes(value)
        n_shared = 0
        if self.n_entries % self.restart_interval == 0:
            self.restarts.append(len(self._buf))
        else:
            n_shared = shared_prefix_len(self.prev_key, key)
        put_uvarint(self._buf, n_shared)
        put_uvarint(self._buf, len(key) - n_shared)
        put_uvarint(self._buf, len(value))
        self._buf += key[n_shared:]
        self._buf += value
        self.prev_key = key
        self.n_entries += 1

    def finish(self) -> None:
        """Write the restart points and their count."""
        if self.n_entries == 0:
            # A block must have at least one restart point.
            self.restarts.append(0)
        self.restarts.append(len(self.restarts))
        for x in self.restarts:
            self._buf += struct.pack("<I", x)

    def reset(self) -> None:
        """Clear the entries; the previous key is kept."""
        self._buf.clear()
        self.n_entries = 0
        self.restarts.clear()

    def bytes_len(self) -> int:
        """Size the block will have once finished."""
        restarts_len = len(self.restarts) or 1
        return len(self._buf) + 4 * restarts_len + 4

    def data(self) -> bytes:
        return bytes(self._buf)


class FilterWriter:
    """Builds the filter block from keys grouped by data offset."""

    def __init__(self, generator: Any = None) -> None:
        self.generator = generator
        self._buf = bytearray()
        self.n_keys = 0
        self.offsets: list[int] = []

    def add(self, key: bytes) -> None:
        if self.generator is None:
            return
        self.generator.add(bytes(key))
        self.n_keys += 1

    def flush(self, offset: int) -> None:
        """Generate filters until one exists for every FILTER_BASE bytes up to offset."""
        if self.generator is None:
            return
        target = offset // FILTER_BASE
        while target > len(self.offsets):
            self._generate()

    def finish(self) -> None:
        if self.generator is None:
            return
        if self.n_keys > 0:
            self._generate()
        self.offsets.append(len(self._buf))
        for x in self.offsets:
            self._buf += struct.pack("<I", x)
        self._buf.append(FILTER_BASE_LG)

    def _generate(self) -> None:
        self.offsets.append(len(self._buf))
        if self.n_keys > 0:
            self._buf += self.generator.generate()
            self.n_keys = 0

    def data(self) -> bytes:
        return bytes(self._buf)


class TableWriter:
    """Writes a sorted table to a binary stream; blocks are stored uncompressed.

    The optional comparer provides compare(a, b) and may provide
    separator(a, b) and successor(a), each returning a shortened key or
    None. The optional table_filter has a ``name`` and a
    ``new_generator()`` whose result provides add(key) and generate() -> bytes.
    """

    def __init__(
        self,
        writer: BinaryIO,
        *,
        block_size: int = DEFAULT_BLOCK_SIZE,
        restart_interval: int = DEFAULT_RESTART_INTERVAL,
        comparer: Any = None,
        table_filter: Any = None,
    ) -> None:
        self._writer = writer
        self._err: Exception | None = None
        self._cmp = comparer if comparer is not None else _BytewiseComparer()
        self._filter = table_filter
        self._block_size = block_size
        self._data_block = BlockWriter(restart_interval)
        self._index_block = BlockWriter(1)
        self._filter_block = FilterWriter(
            table_filter.new_generator() if table_filter is not None else None
        )
        self._filter_block.flush(0)
        self._pending = BlockHandle()
        self._offset = 0
        self._n_entries = 0

    def _write_block(self, content: bytes) -> BlockHandle:
        body = bytearray(content)
        body.append(BLOCK_TYPE_NO_COMPRESSION)
        body += struct.pack("<I", block_checksum(body))
        self._writer.write(bytes(body))
        handle = BlockHandle(self._offset, len(body) - 5)
        self._offset += len(body)
        return handle

    def _flush_pending(self, key: bytes | None) -> None:
        if self._pending.length == 0:
            return
        prev = self._data_block.prev_key
        separator = None
        if not key:
            successor = getattr(self._cmp, "successor", None)
            if successor is not None:
                separator = successor(prev)
        else:
            shorten = getattr(self._cmp, "separator", None)
            if shorten is not None:
                separator = shorten(prev, key)
        if separator is None:
            separator = prev
        self._index_block.append(separator, encode_block_handle(self._pending))
        self._data_block.prev_key = b""
        self._pending = BlockHandle()

    def _finish_block(self) -> None:
        self._data_block.finish()
        self._pending = self._write_block(self._data_block.data())
        self._data_block.reset()
        self._filter_block.flush(self._offset)

    def append(self, key: bytes, value: bytes) -> None:
        """Add a pair; keys must be strictly increasing."""
        if self._err is not None:
            raise self._err
        key, value = bytes(key), bytes(value)
        if self._n_entries > 0 and self._cmp.compare(self._data_block.prev_key, key) >= 0:
            self._err = ValueError(
                "table writer: keys are not in increasing order: "
                f"{self._data_block.prev_key!r}, {key!r}"
            )
            raise self._err
        self._flush_pending(key)
        self._data_block.append(key, value)
        self._filter_block.add(key)
        if self._data_block.bytes_len() >= self._block_size:
            try:
                self._finish_block()
            except Exception as err:
                self._err = err
                raise
        self._n_entries += 1

    def blocks_len(self) -> int:
        """Number of data blocks written so far."""
        n = self._index_block.n_entries
        if self._pending.length > 0:
            n += 1
        return n

    def entries_len(self) -> int:
        return self._n_entries

    def bytes_len(self) -> int:
        return self._offset

    def close(self) -> None:
        """Finish the table; append is not possible afterwards."""
        if self._err is not None:
            raise self._err
        try:
            if self._data_block.n_entries > 0 or self._n_entries == 0:
                self._finish_block()
            self._flush_pending(None)

            filter_handle = BlockHandle()
            self._filter_block.finish()
            filter_data = self._filter_block.data()
            if filter_data:
                filter_handle = self._write_block(filter_data)

            if filter_handle.length > 0:
                meta_key = b"filter." + self._filter.name.encode()
                self._data_block.append(meta_key, encode_block_handle(filter_handle))
            self._data_block.finish()
            metaindex_handle = self._write_block(self._data_block.data())

            self._index_block.finish()
            index_handle = self._write_block(self._index_block.data())

            footer = bytearray(FOOTER_LEN)
            handles = encode_block_handle(metaindex_handle) + encode_block_handle(index_handle)
            footer[: len(handles)] = handles
            footer[FOOTER_LEN - len(MAGIC):] = MAGIC
            self._writer.write(bytes(footer))
            self._offset += FOOTER_LEN
        except Exception as err:
            self._err = err
            raise
        self._err = RuntimeError("table writer: writer is closed")