"""Storage wrapper counting bytes read and written."""

from __future__ import annotations

import io
import threading
from typing import Any

from tydb.storage.base import FileDesc, FileType, Storage


class _CountingReader:
    def __init__(self, reader: Any, owner: "CountingStorage") -> None:
        self._reader = reader
        self._owner = owner

    def read(self, size: int = -1) -> bytes:
        data = self._reader.read(size)
        self._owner._add_read(len(data))
        return data

    def read_at(self, size: int, offset: int) -> bytes:
        data = self._reader.read_at(size, offset)
        self._owner._add_read(len(data))
        return data

    def seek(self, offset: int, whence: int = io.SEEK_SET) -> int:
        return self._reader.seek(offset, whence)

    def tell(self) -> int:
        return self._reader.tell()

    def close(self) -> None:
        self._reader.close()

    def __enter__(self) -> "_CountingReader":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()


class _CountingWriter:
    def __init__(self, writer: Any, owner: "CountingStorage") -> None:
        self._writer = writer
        self._owner = owner

    def write(self, data: bytes) -> int:
        n = self._writer.write(data)
        self._owner._add_write(n)
        return n

    def sync(self) -> None:
        self._writer.sync()

    def close(self) -> None:
        self._writer.close()

    def __enter__(self) -> "_CountingWriter":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()


class CountingStorage(Storage):
    """Wraps a storage and counts the bytes passing through its files."""

    def __init__(self, inner: Storage) -> None:
        self._inner = inner
        self._mu = threading.Lock()
        self._read = 0
        self._write = 0

    def _add_read(self, n: int) -> None:
        with self._mu:
            self._read += n

    def _add_write(self, n: int) -> None:
        with self._mu:
            self._write += n

    def reads(self) -> int:
        with self._mu:
            return self._read

    def writes(self) -> int:
        with self._mu:
            return self._write

    def open(self, fd: FileDesc) -> _CountingReader:
        return _CountingReader(self._inner.open(fd), self)

    def create(self, fd: FileDesc) -> _CountingWriter:
        return _CountingWriter(self._inner.create(fd), self)

    def lock(self) -> Any:
        return self._inner.lock()

    def log(self, message: str) -> None:
        self._inner.log(message)

    def set_meta(self, fd: FileDesc) -> None:
        self._inner.set_meta(fd)

    def get_meta(self) -> FileDesc:
        return self._inner.get_meta()

    def list(self, file_type: FileType) -> list[FileDesc]:
        return self._inner.list(file_type)

    def remove(self, fd: FileDesc) -> None:
        self._inner.remove(fd)

    def rename(self, old_fd: FileDesc, new_fd: FileDesc) -> None:
        self._inner.rename(old_fd, new_fd)

    def close(self) -> None:
        self._inner.close()