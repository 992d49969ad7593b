import pytest

from tydb.iostats import CountingStorage
from tydb.storage.base import FileDesc, FileType
from tydb.storage.memory import MemStorage


def test_counts_writes_and_reads():
    stor = CountingStorage(MemStorage())
    fd = FileDesc(FileType.TABLE, 1)
    payload = b"some table data"
    with stor.create(fd) as w:
        w.write(payload)
        w.write(payload)
    assert stor.writes() == 2 * len(payload)
    assert stor.reads() == 0

    with stor.open(fd) as r:
        data = r.read()
    assert data == payload * 2
    assert stor.reads() == len(data)


def test_read_at_counted():
    stor = CountingStorage(MemStorage())
    fd = FileDesc(FileType.TABLE, 2)
    with stor.create(fd) as w:
        w.write(b"abcdef")
    with stor.open(fd) as r:
        chunk = r.read_at(3, 2)
    assert chunk == b"cde"
    assert stor.reads() == len(chunk)


def test_delegates_other_operations():
    inner = MemStorage()
    stor = CountingStorage(inner)
    fd = FileDesc(FileType.MANIFEST, 5)
    stor.create(fd).close()
    stor.set_meta(fd)
    assert stor.get_meta() == fd
    assert stor.list(FileType.ALL) == inner.list(FileType.ALL) == [fd]
    stor.remove(fd)
    assert inner.list(FileType.ALL) == []


def test_open_missing_raises():
    stor = CountingStorage(MemStorage())
    with pytest.raises(FileNotFoundError):
        stor.open(FileDesc(FileType.TABLE, 9))
    assert stor.reads() == 0