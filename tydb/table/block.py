"""Reading table blocks: prefix-compressed entries with restart points, and filter blocks."""

from __future__ import annotations

import enum
import struct
from collections.abc import Callable, Iterator
from typing import Any

from tydb.storage.base import FileDesc, StorageCorruptedError
from tydb.table.format import BlockHandle, uvarint


class TableCorruptedError(StorageCorruptedError):
    """A table block holds corrupted content."""

    def __init__(
        self,
        reason: str,
        pos: int = 0,
        size: int = 0,
        kind: str = "",
        fd: FileDesc | None = None,
    ) -> None:
        self.reason = reason
        self.pos = pos
        self.size = size
        self.kind = kind
        super().__init__(f"table: corruption on {kind} (pos={pos}): {reason}", fd)


class IteratorReleasedError(Exception):
    """The iterator was used after being released."""

    def __init__(self) -> None:
        super().__init__("table: iterator released")


class _Bytewise:
    @staticmethod
    def compare(a: bytes, b: bytes) -> int:
        return (a > b) - (a < b)


def _u32(data: bytes, pos: int) -> int:
    return struct.unpack_from("<I", data, pos)[0]


def _search(n: int, pred: Callable[[int], bool]) -> int:
    """Smallest i in [0, n) for which pred(i) is true, or n."""
    lo, hi = 0, n
    while lo < hi:
        mid = (lo + hi) // 2
        if pred(mid):
            hi = mid
        else:
            lo = mid + 1
    return lo


class Block:
    """A decoded block: entries followed by restart offsets and their count."""

    def __init__(
        self,
        data: bytes,
        handle: BlockHandle | None = None,
        comparer: Any = None,
        kind: str = "data-block",
    ) -> None:
        self.data = bytes(data)
        self.handle = handle if handle is not None else BlockHandle()
        self.comparer = comparer if comparer is not None else _Bytewise()
        self.kind = kind
        if len(self.data) < 4:
            raise self._corrupted("block too short")
        self.restarts_len = _u32(self.data, len(self.data) - 4)
        self.restarts_offset = len(self.data) - (self.restarts_len + 1) * 4
        if self.restarts_offset < 0:
            raise self._corrupted("bad restart points")

    @classmethod
    def from_bytes(cls, data: bytes, handle: BlockHandle | None = None) -> "Block":
        """Decode a data block with bytewise ordering from its raw contents."""
        return cls(data, handle)

    def _corrupted(self, reason: str) -> TableCorruptedError:
        return TableCorruptedError(
            reason, pos=self.handle.offset, size=self.handle.length, kind=self.kind
        )

    def compare(self, a: bytes, b: bytes) -> int:
        return self.comparer.compare(a, b)

    def _restart_key(self, index: int) -> bytes:
        # Shared length is always zero at a restart point.
        offset = self.restart_offset(index) + 1
        key_len, n1 = uvarint(self.data, offset)
        _, n2 = uvarint(self.data, offset + n1)
        m = offset + n1 + n2
        return self.data[m:m + key_len]

    def seek(self, rstart: int, rlimit: int, key: bytes) -> tuple[int, int]:
        """Return (restart index, offset) of the restart range that may hold key."""
        count = self.restarts_len - rstart - (self.restarts_len - rlimit)
        index = _search(
            count, lambda i: self.compare(self._restart_key(rstart + i), key) > 0
        ) + rstart - 1
        if index < rstart:
            # The smallest key is greater than the key sought.
            index = rstart
        return index, self.restart_offset(index)

    def restart_index(self, rstart: int, rlimit: int, offset: int) -> int:
        """Index of the last restart point in [rstart, rlimit) at or before offset."""
        count = self.restarts_len - rstart - (self.restarts_len - rlimit)
        return _search(
            count, lambda i: self.restart_offset(rstart + i) > offset
        ) + rstart - 1

    def restart_offset(self, index: int) -> int:
        return _u32(self.data, self.restarts_offset + 4 * index)

    def entry(self, offset: int) -> tuple[bytes, bytes, int, int]:
        """Decode the entry at offset: (key suffix, value, shared length, entry size).

        An entry size of 0 means the end of the entries was reached.
        """
        if offset >= self.restarts_offset:
            if offset != self.restarts_offset:
                raise self._corrupted("entries offset not aligned")
            return b"", b"", 0, 0
        shared, n0 = uvarint(self.data, offset)
        key_len, n1 = uvarint(self.data, offset + max(n0, 0))
        value_len, n2 = uvarint(self.data, offset + max(n0, 0) + max(n1, 0))
        if n0 <= 0 or n1 <= 0 or n2 <= 0:
            raise self._corrupted("entries corrupted")
        m = n0 + n1 + n2
        n = m + key_len + value_len
        if offset + n > self.restarts_offset:
            raise self._corrupted("entries corrupted")
        key = self.data[offset + m:offset + m + key_len]
        value = self.data[offset + m + key_len:offset + n]
        return key, value, shared, n

    def iterator(self, key_range: Any = None, include_limit: bool = False) -> "BlockIterator":
        """Return an iterator over the block, optionally limited to key_range.

        key_range has ``start`` and ``limit`` attributes; None means unbounded.
        """
        it = BlockIterator(self)
        if key_range is None:
            return it
        start = getattr(key_range, "start", None)
        limit = getattr(key_range, "limit", None)
        if start is not None:
            if it.seek(start):
                it._ri_start = self.restart_index(
                    it._restart_index, self.restarts_len, it._prev_offset
                )
                it._offset_start = self.restart_offset(it._ri_start)
                it._offset_real_start = it._prev_offset
            else:
                it._ri_start = self.restarts_len
                it._offset_start = self.restarts_offset
                it._offset_real_start = self.restarts_offset
        if limit is not None:
            if it.seek(limit) and (not include_limit or it.next()):
                it._offset_limit = it._prev_offset
                it._ri_limit = it._restart_index + 1
        it._reset()
        if it._offset_start > it._offset_limit:
            raise ValueError("table: invalid slice range")
        return it


class _Dir(enum.IntEnum):
    RELEASED = -1
    SOI = 0
    EOI = 1
    BACKWARD = 2
    FORWARD = 3


class BlockIterator:
    """Bidirectional iterator over the entries of a block."""

    def __init__(self, block: Block, releaser: Callable[[], None] | None = None) -> None:
        self._block: Block | None = block
        self._releaser = releaser
        self._key: bytearray | None = bytearray()
        self._value: bytes | None = None
        self._offset = 0
        self._prev_offset = 0
        self._prev_node: list[int] = []
        self._prev_keys = bytearray()
        self._restart_index = 0
        self._dir = _Dir.SOI
        self._ri_start = 0
        self._ri_limit = block.restarts_len
        self._offset_start = 0
        self._offset_real_start = 0
        self._offset_limit = block.restarts_offset
        self._err: Exception | None = None

    @property
    def error(self) -> Exception | None:
        return self._err

    def _fail(self, err: Exception) -> None:
        self._err = err
        self._key = None
        self._value = None
        self._prev_node = []
        self._prev_keys = bytearray()
        raise err

    def _guard(self) -> None:
        if self._err is not None:
            raise self._err
        if self._dir == _Dir.RELEASED:
            self._err = IteratorReleasedError()
            raise self._err

    def _entry(self, offset: int) -> tuple[bytes, bytes, int, int]:
        assert self._block is not None
        try:
            return self._block.entry(offset)
        except TableCorruptedError as err:
            self._fail(err)
            raise

    def _clear_prev(self) -> None:
        self._prev_node.clear()
        del self._prev_keys[:]

    def _reset(self) -> None:
        if self._dir == _Dir.BACKWARD:
            self._clear_prev()
        self._restart_index = self._ri_start
        self._offset = self._offset_start
        self._dir = _Dir.SOI
        self._key = bytearray()
        self._value = None

    def _set_key(self, shared: int, suffix: bytes) -> None:
        assert self._key is not None
        del self._key[shared:]
        self._key += suffix

    def is_first(self) -> bool:
        if self._dir == _Dir.FORWARD:
            return self._prev_offset == self._offset_real_start
        if self._dir == _Dir.BACKWARD:
            return len(self._prev_node) == 1 and self._restart_index == self._ri_start
        return False

    def is_last(self) -> bool:
        if self._dir in (_Dir.FORWARD, _Dir.BACKWARD):
            return self._offset == self._offset_limit
        return False

    def first(self) -> bool:
        self._guard()
        if self._dir == _Dir.BACKWARD:
            self._clear_prev()
        self._dir = _Dir.SOI
        return self.next()

    def last(self) -> bool:
        self._guard()
        if self._dir == _Dir.BACKWARD:
            self._clear_prev()
        self._dir = _Dir.EOI
        return self.prev()

    def seek(self, key: bytes) -> bool:
        """Move to the first entry whose key is >= key."""
        self._guard()
        block = self._block
        assert block is not None
        ri, offset = block.seek(self._ri_start, self._ri_limit, key)
        self._restart_index = ri
        self._offset = max(self._offset_start, offset)
        if self._dir in (_Dir.SOI, _Dir.EOI):
            self._dir = _Dir.FORWARD
        while self.next():
            if block.compare(bytes(self._key), key) >= 0:
                return True
        return False

    def next(self) -> bool:
        self._guard()
        if self._dir == _Dir.EOI:
            return False
        if self._dir == _Dir.SOI:
            self._restart_index = self._ri_start
            self._offset = self._offset_start
        elif self._dir == _Dir.BACKWARD:
            self._clear_prev()
        while self._offset < self._offset_real_start:
            key, value, shared, n = self._entry(self._offset)
            if n == 0:
                self._dir = _Dir.EOI
                return False
            self._set_key(shared, key)
            self._value = value
            self._offset += n
        if self._offset >= self._offset_limit:
            self._dir = _Dir.EOI
            if self._offset != self._offset_limit:
                assert self._block is not None
                self._fail(self._block._corrupted("entries offset not aligned"))
            return False
        key, value, shared, n = self._entry(self._offset)
        if n == 0:
            self._dir = _Dir.EOI
            return False
        self._set_key(shared, key)
        self._value = value
        self._prev_offset = self._offset
        self._offset += n
        self._dir = _Dir.FORWARD
        return True

    def prev(self) -> bool:
        self._guard()
        if self._dir == _Dir.SOI:
            return False
        block = self._block
        assert block is not None
        if self._dir == _Dir.FORWARD:
            self._offset = self._prev_offset
            if self._offset == self._offset_real_start:
                self._dir = _Dir.SOI
                return False
            ri = block.restart_index(self._restart_index, self._ri_limit, self._offset)
            self._dir = _Dir.BACKWARD
        elif self._dir == _Dir.EOI:
            self._restart_index = self._ri_limit
            self._offset = self._offset_limit
            if self._offset == self._offset_real_start:
                self._dir = _Dir.SOI
                return False
            ri = self._ri_limit - 1
            self._dir = _Dir.BACKWARD
        elif len(self._prev_node) == 1:
            # End of a restart range.
            self._offset = self._prev_node[0]
            self._prev_node.clear()
            if self._restart_index == self._ri_start:
                self._dir = _Dir.SOI
                return False
            self._restart_index -= 1
            ri = self._restart_index
        else:
            # Inside a restart range: take the entry from the cache.
            n = len(self._prev_node) - 3
            key_off, value_off, value_len = self._prev_node[n:]
            del self._prev_node[n:]
            self._key = bytearray(self._prev_keys[key_off:])
            del self._prev_keys[key_off:]
            self._value = block.data[value_off:value_off + value_len]
            self._offset = value_off + value_len
            return True

        # Rebuild the entry cache for the restart range.
        self._key = bytearray()
        self._value = None
        offset = block.restart_offset(ri)
        if offset == self._offset:
            ri -= 1
            if ri < 0:
                self._dir = _Dir.SOI
                return False
            offset = block.restart_offset(ri)
        self._prev_node.append(offset)
        while True:
            key, value, shared, n = self._entry(offset)
            if offset >= self._offset_real_start:
                if self._value is not None:
                    self._prev_node.extend(
                        (len(self._prev_keys), offset - len(self._value), len(self._value))
                    )
                    self._prev_keys += self._key
                self._value = value
            self._set_key(shared, key)
            offset += n
            if offset >= self._offset:
                if offset != self._offset:
                    self._fail(block._corrupted("entries offset not aligned"))
                break
        self._restart_index = ri
        self._offset = offset
        return True

    def key(self) -> bytes | None:
        if self._err is not None or self._dir <= _Dir.EOI or self._key is None:
            return None
        return bytes(self._key)

    def value(self) -> bytes | None:
        if self._err is not None or self._dir <= _Dir.EOI:
            return None
        return self._value

    def valid(self) -> bool:
        return self._err is None and self._dir in (_Dir.BACKWARD, _Dir.FORWARD)

    def release(self) -> None:
        if self._dir == _Dir.RELEASED:
            return
        self._block = None
        self._prev_node = []
        self._prev_keys = bytearray()
        self._key = None
        self._value = None
        self._dir = _Dir.RELEASED
        if self._releaser is not None:
            releaser, self._releaser = self._releaser, None
            releaser()

    def __iter__(self) -> Iterator[tuple[bytes, bytes]]:
        """Yield every (key, value) pair from the first entry onwards."""
        ok = self.first()
        while ok:
            yield bytes(self._key or b""), self._value or b""
            ok = self.next()

    def __enter__(self) -> "BlockIterator":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.release()


class FilterBlock:
    """A decoded filter block: filter data, their offsets and the base lg."""

    def __init__(self, data: bytes, o_offset: int, base_lg: int, filters_num: int) -> None:
        self.data = data
        self.o_offset = o_offset
        self.base_lg = base_lg
        self.filters_num = filters_num

    @classmethod
    def from_bytes(cls, data: bytes) -> "FilterBlock":
        data = bytes(data)
        n = len(data)
        if n < 5:
            raise TableCorruptedError("too short", size=n, kind="filter-block")
        m = n - 5
        o_offset = _u32(data, m)
        if o_offset > m:
            raise TableCorruptedError(
                "invalid data-offsets offset", size=n, kind="filter-block"
            )
        return cls(data, o_offset, data[n - 1], (m - o_offset) // 4)

    def contains(self, table_filter: Any, offset: int, key: bytes) -> bool:
        """Return False only if the filter for the data at offset rules out key."""
        i = offset >> self.base_lg
        if i < self.filters_num:
            o = self.o_offset + i * 4
            start = _u32(self.data, o)
            end = _u32(self.data, o + 4)
            if start < end <= self.o_offset:
                return table_filter.contains(self.data[start:end], key)
            if start == end:
                return False
        return True