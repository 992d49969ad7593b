import pytest

from tydb.storage.base import (
    ClosedError,
    FileDesc,
    FileOpenError,
    FileType,
    InvalidFileError,
    LockedError,
    file_desc_ok,
)
from tydb.storage.memory import MemStorage


def test_mem_storage():
    m = MemStorage()
    lock = m.lock()
    with pytest.raises(LockedError):
        m.lock()
    lock.unlock()
    m.lock()

    w = m.create(FileDesc(FileType.TABLE, 1))
    w.write(b"abc")
    w.close()
    assert len(m.list(FileType.ALL)) == 1

    r = m.open(FileDesc(FileType.TABLE, 1))
    data = r.read()
    r.close()
    assert data == b"abc"

    m.open(FileDesc(FileType.TABLE, 1))
    with pytest.raises(FileOpenError):
        m.open(FileDesc(FileType.TABLE, 1))

    m.remove(FileDesc(FileType.TABLE, 1))
    assert m.list(FileType.ALL) == []
    with pytest.raises(FileNotFoundError):
        m.open(FileDesc(FileType.TABLE, 1))


def test_mem_storage_rename():
    fd1 = FileDesc(FileType.TABLE, 1)
    fd2 = FileDesc(FileType.TABLE, 2)
    m = MemStorage()
    w = m.create(fd1)
    w.write(b"abc")
    w.close()

    m.open(fd1).close()
    fds = m.list(FileType.ALL)
    assert fds == [fd1]
    assert all(file_desc_ok(fd) for fd in fds)

    m.rename(fd1, fd2)
    with m.open(fd2) as rd:
        assert rd.read() == b"abc"

    fds = m.list(FileType.ALL)
    assert fds == [fd2]
    assert all(file_desc_ok(fd) for fd in fds)


def test_meta_round_trip():
    m = MemStorage()
    with pytest.raises(FileNotFoundError):
        m.get_meta()
    fd = FileDesc(FileType.MANIFEST, 3)
    m.set_meta(fd)
    assert m.get_meta() == fd


def test_set_meta_invalid():
    m = MemStorage()
    with pytest.raises(InvalidFileError):
        m.set_meta(FileDesc())


def test_invalid_fd_rejected():
    m = MemStorage()
    with pytest.raises(InvalidFileError):
        m.create(FileDesc(FileType.TABLE, -1))


def test_create_truncates():
    m = MemStorage()
    fd = FileDesc(FileType.JOURNAL, 4)
    with m.create(fd) as w:
        w.write(b"first content")
    with m.create(fd) as w:
        w.write(b"x")
    with m.open(fd) as r:
        assert r.read() == b"x"


def test_create_while_open():
    m = MemStorage()
    fd = FileDesc(FileType.JOURNAL, 4)
    m.create(fd)
    with pytest.raises(FileOpenError):
        m.create(fd)


def test_rename_onto_open_file():
    m = MemStorage()
    fd1 = FileDesc(FileType.TABLE, 1)
    fd2 = FileDesc(FileType.TABLE, 2)
    m.create(fd1).close()
    m.create(fd2)
    with pytest.raises(FileOpenError):
        m.rename(fd1, fd2)


def test_rename_missing():
    m = MemStorage()
    with pytest.raises(FileNotFoundError):
        m.rename(FileDesc(FileType.TABLE, 1), FileDesc(FileType.TABLE, 2))


def test_remove_missing():
    m = MemStorage()
    with pytest.raises(FileNotFoundError):
        m.remove(FileDesc(FileType.TABLE, 1))


def test_double_close():
    m = MemStorage()
    w = m.create(FileDesc(FileType.TEMP, 1))
    w.close()
    with pytest.raises(ClosedError):
        w.close()


def test_list_filters_types():
    m = MemStorage()
    table = FileDesc(FileType.TABLE, 1)
    journal = FileDesc(FileType.JOURNAL, 2)
    m.create(table).close()
    m.create(journal).close()
    assert m.list(FileType.TABLE) == [table]
    assert sorted(m.list(FileType.TABLE | FileType.JOURNAL), key=lambda fd: fd.num) == [table, journal]


def test_read_at_and_seek():
    m = MemStorage()
    fd = FileDesc(FileType.TABLE, 7)
    with m.create(fd) as w:
        w.write(b"hello world")
    with m.open(fd) as r:
        assert r.read_at(5, 6) == b"world"
        r.seek(6)
        assert r.read(5) == b"world"