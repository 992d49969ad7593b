"""Manifest session records: the edits that move a database from one version to the next."""

from __future__ import annotations

import enum
import io
from dataclasses import dataclass, field
from typing import BinaryIO, Union

from tydb.storage.base import StorageCorruptedError

_MAX_VARINT_LEN = 10
_UINT64_LIMIT = 1 << 64
_INT64_LIMIT = 1 << 63


class RecordType(enum.IntEnum):
    """Field tags written to disk; these numbers must not change."""

    COMPARER = 1
    JOURNAL_NUM = 2
    NEXT_FILE_NUM = 3
    SEQ_NUM = 4
    COMP_PTR = 5
    DEL_TABLE = 6
    ADD_TABLE = 7
    # 8 was used for large value refs.
    PREV_JOURNAL_NUM = 9


class ManifestCorruptedError(StorageCorruptedError):
    """A manifest record field could not be decoded."""

    def __init__(self, field_name: str, reason: str) -> None:
        self.field = field_name
        self.reason = reason
        super().__init__(f"manifest corrupted (field '{field_name}'): {reason}")


@dataclass
class CompPtr:
    level: int
    ikey: bytes


@dataclass
class AddedTable:
    level: int
    num: int
    size: int
    imin: bytes
    imax: bytes


@dataclass
class DeletedTable:
    level: int
    num: int


class _EndOfStream(Exception):
    """Clean end of input before a field header."""


def _put_uvarint(out: bytearray, x: int) -> None:
    if x < 0 or x >= _UINT64_LIMIT:
        raise ValueError("value out of range for uvarint")
    while x >= 0x80:
        out.append((x & 0x7F) | 0x80)
        x >>= 7
    out.append(x)


def _put_varint(out: bytearray, x: int) -> None:
    if x < 0:
        raise ValueError("invalid negative value")
    _put_uvarint(out, x)


def _put_bytes(out: bytearray, data: bytes) -> None:
    _put_uvarint(out, len(data))
    out += data


def _read_uvarint(stream: BinaryIO, field_name: str, may_eof: bool = False) -> int:
    x = 0
    shift = 0
    for i in range(_MAX_VARINT_LEN):
        chunk = stream.read(1)
        if not chunk:
            if i == 0 and may_eof:
                raise _EndOfStream()
            raise ManifestCorruptedError(field_name, "short read")
        b = chunk[0]
        if b < 0x80:
            if i == _MAX_VARINT_LEN - 1 and b > 1:
                break
            return x | (b << shift)
        x |= (b & 0x7F) << shift
        shift += 7
    raise ManifestCorruptedError(field_name, "binary: varint overflows a 64-bit integer")


def _read_varint(stream: BinaryIO, field_name: str) -> int:
    x = _read_uvarint(stream, field_name)
    if x >= _INT64_LIMIT:
        raise ManifestCorruptedError(field_name, "invalid negative value")
    return x


def _read_bytes(stream: BinaryIO, field_name: str) -> bytes:
    n = _read_uvarint(stream, field_name)
    data = stream.read(n) if n else b""
    if len(data) != n:
        raise ManifestCorruptedError(field_name, "short read")
    return bytes(data)


@dataclass
class SessionRecord:
    """A set of changes to the session state, as stored in the manifest."""

    has_rec: int = 0
    comparer: str = ""
    journal_num: int = 0
    prev_journal_num: int = 0
    next_file_num: int = 0
    seq_num: int = 0
    comp_ptrs: list[CompPtr] = field(default_factory=list)
    added_tables: list[AddedTable] = field(default_factory=list)
    deleted_tables: list[DeletedTable] = field(default_factory=list)

    def has(self, rec: int) -> bool:
        """Return True if the field of the given record type is set."""
        return bool(self.has_rec & (1 << int(rec)))

    def _mark(self, rec: RecordType) -> None:
        self.has_rec |= 1 << rec

    def _unmark(self, rec: RecordType) -> None:
        self.has_rec &= ~(1 << rec)

    def set_comparer(self, name: str) -> None:
        self._mark(RecordType.COMPARER)
        self.comparer = name

    def set_journal_num(self, num: int) -> None:
        self._mark(RecordType.JOURNAL_NUM)
        self.journal_num = num

    def set_prev_journal_num(self, num: int) -> None:
        self._mark(RecordType.PREV_JOURNAL_NUM)
        self.prev_journal_num = num

    def set_next_file_num(self, num: int) -> None:
        self._mark(RecordType.NEXT_FILE_NUM)
        self.next_file_num = num

    def set_seq_num(self, num: int) -> None:
        self._mark(RecordType.SEQ_NUM)
        self.seq_num = num

    def add_comp_ptr(self, level: int, ikey: bytes) -> None:
        self._mark(RecordType.COMP_PTR)
        self.comp_ptrs.append(CompPtr(level, bytes(ikey)))

    def reset_comp_ptrs(self) -> None:
        self._unmark(RecordType.COMP_PTR)
        self.comp_ptrs.clear()

    def add_table(self, level: int, num: int, size: int, imin: bytes, imax: bytes) -> None:
        self._mark(RecordType.ADD_TABLE)
        self.added_tables.append(AddedTable(level, num, size, bytes(imin), bytes(imax)))

    def reset_added_tables(self) -> None:
        self._unmark(RecordType.ADD_TABLE)
        self.added_tables.clear()

    def del_table(self, level: int, num: int) -> None:
        self._mark(RecordType.DEL_TABLE)
        self.deleted_tables.append(DeletedTable(level, num))

    def reset_deleted_tables(self) -> None:
        self._unmark(RecordType.DEL_TABLE)
        self.deleted_tables.clear()

    def encode(self) -> bytes:
        """Serialize the record; raise ValueError for negative numbers."""
        out = bytearray()
        if self.has(RecordType.COMPARER):
            _put_uvarint(out, RecordType.COMPARER)
            _put_bytes(out, self.comparer.encode("utf-8", "surrogateescape"))
        if self.has(RecordType.JOURNAL_NUM):
            _put_uvarint(out, RecordType.JOURNAL_NUM)
            _put_varint(out, self.journal_num)
        if self.has(RecordType.NEXT_FILE_NUM):
            _put_uvarint(out, RecordType.NEXT_FILE_NUM)
            _put_varint(out, self.next_file_num)
        if self.has(RecordType.SEQ_NUM):
            _put_uvarint(out, RecordType.SEQ_NUM)
            _put_uvarint(out, self.seq_num)
        for ptr in self.comp_ptrs:
            _put_uvarint(out, RecordType.COMP_PTR)
            _put_uvarint(out, ptr.level)
            _put_bytes(out, ptr.ikey)
        for dt in self.deleted_tables:
            _put_uvarint(out, RecordType.DEL_TABLE)
            _put_uvarint(out, dt.level)
            _put_varint(out, dt.num)
        for at in self.added_tables:
            _put_uvarint(out, RecordType.ADD_TABLE)
            _put_uvarint(out, at.level)
            _put_varint(out, at.num)
            _put_varint(out, at.size)
            _put_bytes(out, at.imin)
            _put_bytes(out, at.imax)
        return bytes(out)

    def decode(self, stream: Union[bytes, bytearray, memoryview, BinaryIO]) -> None:
        """Read fields from bytes or a binary stream into this record."""
        if isinstance(stream, (bytes, bytearray, memoryview)):
            stream = io.BytesIO(bytes(stream))
        while True:
            try:
                rec = _read_uvarint(stream, "field-header", may_eof=True)
            except _EndOfStream:
                return
            if rec == RecordType.COMPARER:
                name = _read_bytes(stream, "comparer")
                self.set_comparer(name.decode("utf-8", "surrogateescape"))
            elif rec == RecordType.JOURNAL_NUM:
                self.set_journal_num(_read_varint(stream, "journal-num"))
            elif rec == RecordType.PREV_JOURNAL_NUM:
                self.set_prev_journal_num(_read_varint(stream, "prev-journal-num"))
            elif rec == RecordType.NEXT_FILE_NUM:
                self.set_next_file_num(_read_varint(stream, "next-file-num"))
            elif rec == RecordType.SEQ_NUM:
                self.set_seq_num(_read_uvarint(stream, "seq-num"))
            elif rec == RecordType.COMP_PTR:
                level = _read_uvarint(stream, "comp-ptr.level")
                ikey = _read_bytes(stream, "comp-ptr.ikey")
                self.add_comp_ptr(level, ikey)
            elif rec == RecordType.ADD_TABLE:
                level = _read_uvarint(stream, "add-table.level")
                num = _read_varint(stream, "add-table.num")
                size = _read_varint(stream, "add-table.size")
                imin = _read_bytes(stream, "add-table.imin")
                imax = _read_bytes(stream, "add-table.imax")
                self.add_table(level, num, size, imin, imax)
            elif rec == RecordType.DEL_TABLE:
                level = _read_uvarint(stream, "del-table.level")
                num = _read_varint(stream, "del-table.num")
                self.del_table(level, num)