"""Memory-backed storage."""

from __future__ import annotations

import io
import threading
from typing import Any

from tydb.storage.base import (
    ClosedError,
    FileDesc,
    FileOpenError,
    FileType,
    InvalidFileError,
    LockedError,
    Storage,
    file_desc_ok,
)

_TYPE_SHIFT = 4


def _pack(fd: FileDesc) -> int:
    return (fd.num << _TYPE_SHIFT) | int(fd.type)


def _unpack(x: int) -> FileDesc:
    return FileDesc(FileType(x & int(FileType.ALL)), x >> _TYPE_SHIFT)


class _MemFile:
    def __init__(self) -> None:
        self.data = bytearray()
        self.open = False


class MemLock:
    """Lock handed out by MemStorage.lock()."""

    def __init__(self, storage: "MemStorage") -> None:
        self._storage = storage

    def unlock(self) -> None:
        storage = self._storage
        with storage._mu:
            if storage._slock is self:
                storage._slock = None


class MemReader:
    """Read-only view of a file held in memory."""

    def __init__(self, storage: "MemStorage", mfile: _MemFile, data: bytes) -> None:
        self._storage = storage
        self._file = mfile
        self._data = data
        self._buf = io.BytesIO(data)
        self.closed = False

    def read(self, size: int = -1) -> bytes:
        return self._buf.read(size)

    def read_at(self, size: int, offset: int) -> bytes:
        if offset < 0:
            raise ValueError("negative offset")
        return self._data[offset:offset + size]

    def seek(self, offset: int, whence: int = io.SEEK_SET) -> int:
        return self._buf.seek(offset, whence)

    def tell(self) -> int:
        return self._buf.tell()

    def close(self) -> None:
        with self._storage._mu:
            if self.closed:
                raise ClosedError()
            self.closed = True
            self._file.open = False

    def __enter__(self) -> "MemReader":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()


class MemWriter:
    """Writer appending to a file held in memory."""

    def __init__(self, storage: "MemStorage", mfile: _MemFile) -> None:
        self._storage = storage
        self._file = mfile
        self.closed = False

    def write(self, data: bytes) -> int:
        if self.closed:
            raise ClosedError()
        self._file.data += data
        return len(data)

    def sync(self) -> None:
        """Nothing to commit for memory files."""

    def close(self) -> None:
        with self._storage._mu:
            if self.closed:
                raise ClosedError()
            self.closed = True
            self._file.open = False

    def __enter__(self) -> "MemWriter":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()


class MemStorage(Storage):
    """A storage whose files live in memory."""

    def __init__(self) -> None:
        self._mu = threading.Lock()
        self._slock: MemLock | None = None
        self._files: dict[int, _MemFile] = {}
        self._meta = FileDesc()

    def lock(self) -> MemLock:
        with self._mu:
            if self._slock is not None:
                raise LockedError()
            self._slock = MemLock(self)
            return self._slock

    def log(self, message: str) -> None:
        """Log lines are discarded."""

    def set_meta(self, fd: FileDesc) -> None:
        if not file_desc_ok(fd):
            raise InvalidFileError()
        with self._mu:
            self._meta = fd

    def get_meta(self) -> FileDesc:
        with self._mu:
            if self._meta.is_zero():
                raise FileNotFoundError("meta is not set")
            return self._meta

    def list(self, file_type: FileType) -> list[FileDesc]:
        with self._mu:
            fds = [_unpack(x) for x in self._files]
        return [fd for fd in fds if fd.type & file_type]

    def open(self, fd: FileDesc) -> MemReader:
        if not file_desc_ok(fd):
            raise InvalidFileError()
        with self._mu:
            mfile = self._files.get(_pack(fd))
            if mfile is None:
                raise FileNotFoundError(str(fd))
            if mfile.open:
                raise FileOpenError()
            mfile.open = True
            return MemReader(self, mfile, bytes(mfile.data))

    def create(self, fd: FileDesc) -> MemWriter:
        if not file_desc_ok(fd):
            raise InvalidFileError()
        key = _pack(fd)
        with self._mu:
            mfile = self._files.get(key)
            if mfile is not None:
                if mfile.open:
                    raise FileOpenError()
                mfile.data = bytearray()
            else:
                mfile = _MemFile()
                self._files[key] = mfile
            mfile.open = True
            return MemWriter(self, mfile)

    def remove(self, fd: FileDesc) -> None:
        if not file_desc_ok(fd):
            raise InvalidFileError()
        with self._mu:
            try:
                del self._files[_pack(fd)]
            except KeyError:
                raise FileNotFoundError(str(fd)) from None

    def rename(self, old_fd: FileDesc, new_fd: FileDesc) -> None:
        if not file_desc_ok(old_fd) or not file_desc_ok(new_fd):
            raise InvalidFileError()
        if old_fd == new_fd:
            return
        old_key, new_key = _pack(old_fd), _pack(new_fd)
        with self._mu:
            old_file = self._files.get(old_key)
            if old_file is None:
                raise FileNotFoundError(str(old_fd))
            new_file = self._files.get(new_key)
            if (new_file is not None and new_file.open) or old_file.open:
                raise FileOpenError()
            del self._files[old_key]
            self._files[new_key] = old_file

    def close(self) -> None:
        """Nothing to release."""