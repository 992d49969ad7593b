"""Storage abstraction: file types, file descriptors, errors and the storage interface."""

from __future__ import annotations

import abc
import enum
from dataclasses import dataclass
from typing import Any


class FileType(enum.IntFlag):
    """Kind of file kept by a storage; values may be OR'ed together."""

    MANIFEST = 1
    JOURNAL = 2
    TABLE = 4
    TEMP = 8
    ALL = 15

    def __str__(self) -> str:
        value = int(self)
        return _TYPE_NAMES.get(value, f"<unknown:{value}>")


_TYPE_NAMES = {
    int(FileType.MANIFEST): "manifest",
    int(FileType.JOURNAL): "journal",
    int(FileType.TABLE): "table",
    int(FileType.TEMP): "temp",
}

_VALID_TYPES = (FileType.MANIFEST, FileType.JOURNAL, FileType.TABLE, FileType.TEMP)


@dataclass(frozen=True)
class FileDesc:
    """Identifies a file by its type and number."""

    type: FileType = FileType(0)
    num: int = 0

    def __str__(self) -> str:
        if self.type == FileType.MANIFEST:
            return f"MANIFEST-{self.num:06d}"
        if self.type == FileType.JOURNAL:
            return f"{self.num:06d}.log"
        if self.type == FileType.TABLE:
            return f"{self.num:06d}.ldb"
        if self.type == FileType.TEMP:
            return f"{self.num:06d}.tmp"
        return f"{int(self.type):#x}-{self.num}"

    def is_zero(self) -> bool:
        """Return True if this is the empty descriptor."""
        return self == FileDesc()


def file_desc_ok(fd: FileDesc) -> bool:
    """Return True if fd has a known type and a non-negative number."""
    return fd.type in _VALID_TYPES and fd.num >= 0


class StorageError(Exception):
    """Base class of storage errors."""

    default_message = "storage: error"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.default_message)


class InvalidFileError(StorageError):
    default_message = "storage: invalid file for argument"


class LockedError(StorageError):
    default_message = "storage: already locked"


class ClosedError(StorageError):
    default_message = "storage: closed"


class ReadOnlyError(StorageError):
    default_message = "storage: storage is read-only"


class FileOpenError(StorageError):
    default_message = "storage: file still open"


class StorageCorruptedError(StorageError):
    """A file holds corrupted content."""

    def __init__(self, err: Any, fd: FileDesc | None = None) -> None:
        self.err = err
        self.fd = fd if fd is not None else FileDesc()
        if self.fd.is_zero():
            message = str(err)
        else:
            message = f"{err} [file={self.fd}]"
        super().__init__(message)


class Storage(abc.ABC):
    """A storage of numbered files; implementations are safe for concurrent use."""

    @abc.abstractmethod
    def lock(self) -> Any:
        """Lock the storage; the returned object has an unlock() method."""

    @abc.abstractmethod
    def log(self, message: str) -> None:
        """Record a log line."""

    @abc.abstractmethod
    def set_meta(self, fd: FileDesc) -> None:
        """Atomically store fd as the current manifest descriptor."""

    @abc.abstractmethod
    def get_meta(self) -> FileDesc:
        """Return the stored descriptor; raise FileNotFoundError if none."""

    @abc.abstractmethod
    def list(self, file_type: FileType) -> list[FileDesc]:
        """Return descriptors of files matching the given types."""

    @abc.abstractmethod
    def open(self, fd: FileDesc) -> Any:
        """Open the file read-only."""

    @abc.abstractmethod
    def create(self, fd: FileDesc) -> Any:
        """Create or truncate the file and open it for writing."""

    @abc.abstractmethod
    def remove(self, fd: FileDesc) -> None:
        """Remove the file."""

    @abc.abstractmethod
    def rename(self, old_fd: FileDesc, new_fd: FileDesc) -> None:
        """Rename a file."""

    @abc.abstractmethod
    def close(self) -> None:
        """Close the storage."""

    def __enter__(self) -> "Storage":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()