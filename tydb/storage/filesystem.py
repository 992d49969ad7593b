"""File-system backed storage."""

from __future__ import annotations

import errno
import os
import re
import stat
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from tydb.storage.base import (
    ClosedError,
    FileDesc,
    FileType,
    InvalidFileError,
    LockedError,
    ReadOnlyError,
    Storage,
    StorageCorruptedError,
    file_desc_ok,
)

try:
    import fcntl
except ImportError:  # pragma: no cover - platforms without flock
    fcntl = None  # type: ignore[assignment]

LOG_SIZE_THRESHOLD = 1024 * 1024

_INT64_MIN = -(1 << 63)
_INT64_MAX = (1 << 63) - 1

_TABLE_NAME = re.compile(r"\s*([+-]?\d+)\.\s*(\S+)")
_MANIFEST_NAME = re.compile(r"MANIFEST-\s*([+-]?\d+)\s*")
_PENDING_NUM = re.compile(r"[+-]?\d+")

_TAIL_TYPES = {
    "log": FileType.JOURNAL,
    "ldb": FileType.TABLE,
    "sst": FileType.TABLE,
    "tmp": FileType.TEMP,
}


def gen_name(fd: FileDesc) -> str:
    """Return the file name used for fd."""
    if fd.type == FileType.MANIFEST:
        return f"MANIFEST-{fd.num:06d}"
    if fd.type == FileType.JOURNAL:
        return f"{fd.num:06d}.log"
    if fd.type == FileType.TABLE:
        return f"{fd.num:06d}.ldb"
    if fd.type == FileType.TEMP:
        return f"{fd.num:06d}.tmp"
    raise ValueError("invalid file type")


def has_old_name(fd: FileDesc) -> bool:
    """Return True if files of this type may carry a legacy name."""
    return fd.type == FileType.TABLE


def gen_old_name(fd: FileDesc) -> str:
    """Return the legacy file name for fd."""
    if fd.type == FileType.TABLE:
        return f"{fd.num:06d}.sst"
    return gen_name(fd)


def _int64(text: str) -> int | None:
    value = int(text)
    if _INT64_MIN <= value <= _INT64_MAX:
        return value
    return None


def parse_name(name: str) -> FileDesc | None:
    """Parse a storage file name; return None if it is not one."""
    match = _TABLE_NAME.match(name)
    if match is not None:
        num = _int64(match.group(1))
        if num is None:
            return None
        file_type = _TAIL_TYPES.get(match.group(2))
        if file_type is None:
            return None
        return FileDesc(file_type, num)
    match = _MANIFEST_NAME.fullmatch(name)
    if match is not None:
        num = _int64(match.group(1))
        if num is not None:
            return FileDesc(FileType.MANIFEST, num)
    return None


def _write_file_synced(filename: str, data: bytes) -> None:
    fd = os.open(filename, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o644)
    try:
        view = memoryview(data)
        while view:
            n = os.write(fd, view)
            view = view[n:]
        os.fsync(fd)
    finally:
        os.close(fd)


def _sync_dir(name: str) -> None:
    if os.name == "nt":
        return
    fd = os.open(name, os.O_RDONLY)
    try:
        os.fsync(fd)
    except OSError as err:
        if err.errno != errno.EINVAL:
            raise
    finally:
        os.close(fd)


class _FileLock:
    """Advisory lock on the LOCK file of a storage directory."""

    def __init__(self, path: str, read_only: bool) -> None:
        flags = os.O_RDONLY if read_only else os.O_RDWR
        try:
            fd = os.open(path, flags)
        except FileNotFoundError:
            fd = os.open(path, flags | os.O_CREAT, 0o644)
        if fcntl is not None:
            how = fcntl.LOCK_SH if read_only else fcntl.LOCK_EX
            try:
                fcntl.flock(fd, how | fcntl.LOCK_NB)
            except OSError:
                os.close(fd)
                raise
        self._fd = fd

    def release(self) -> None:
        if fcntl is not None:
            fcntl.flock(self._fd, fcntl.LOCK_UN)
        os.close(self._fd)


@dataclass
class _Current:
    name: str
    fd: FileDesc


class FileStorageLock:
    """Lock handed out by FileStorage.lock()."""

    def __init__(self, storage: "FileStorage | None") -> None:
        self._storage = storage

    def unlock(self) -> None:
        storage = self._storage
        if storage is None:
            return
        with storage._mu:
            if storage._slock is self:
                storage._slock = None


class FileWrapper:
    """An open file of a FileStorage."""

    def __init__(self, file: Any, storage: "FileStorage", fd: FileDesc) -> None:
        self._file = file
        self._storage = storage
        self.fd = fd
        self.closed = False
        self._pos_lock = threading.Lock()

    def read(self, size: int = -1) -> bytes:
        return self._file.read(size)

    def read_at(self, size: int, offset: int) -> bytes:
        if offset < 0:
            raise ValueError("negative offset")
        if hasattr(os, "pread"):
            return os.pread(self._file.fileno(), size, offset)
        with self._pos_lock:
            pos = self._file.tell()
            try:
                self._file.seek(offset)
                return self._file.read(size)
            finally:
                self._file.seek(pos)

    def seek(self, offset: int, whence: int = os.SEEK_SET) -> int:
        return self._file.seek(offset, whence)

    def tell(self) -> int:
        return self._file.tell()

    def write(self, data: bytes) -> int:
        view = memoryview(data)
        total = len(view)
        while view:
            n = self._file.write(view)
            view = view[n:]
        return total

    def sync(self) -> None:
        """Commit the file contents, and the directory for manifests."""
        self._file.flush()
        os.fsync(self._file.fileno())
        if self.fd.type == FileType.MANIFEST:
            try:
                _sync_dir(self._storage.path)
            except OSError as err:
                self._storage._log(f"syncDir: {err}")
                raise

    def close(self) -> None:
        storage = self._storage
        with storage._mu:
            if self.closed:
                raise ClosedError()
            self.closed = True
            storage._open -= 1
            try:
                self._file.close()
            except OSError as err:
                storage._log(f"close {self.fd}: {err}")
                raise

    def __enter__(self) -> "FileWrapper":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()


class FileStorage(Storage):
    """A storage kept as files in one directory."""

    def __init__(
        self,
        path: str,
        read_only: bool,
        flock: _FileLock,
        log_fd: int | None,
        log_size: int,
    ) -> None:
        self.path = path
        self.read_only = read_only
        self._mu = threading.RLock()
        self._flock = flock
        self._slock: FileStorageLock | None = None
        self._log_fd = log_fd
        self._log_size = log_size
        self._open = 0
        self._day = 0

    def __del__(self) -> None:
        try:
            self.close()
        except Exception:
            pass

    def _join(self, name: str) -> str:
        return os.path.join(self.path, name)

    def _check_open(self) -> None:
        if self._open < 0:
            raise ClosedError()

    def lock(self) -> FileStorageLock:
        with self._mu:
            self._check_open()
            if self.read_only:
                return FileStorageLock(None)
            if self._slock is not None:
                raise LockedError()
            self._slock = FileStorageLock(self)
            return self._slock

    def _print_day(self, t: datetime) -> None:
        if self._day == t.day:
            return
        self._day = t.day
        header = f"=============== {t:%b} {t.day}, {t.year} ({t.strftime('%Z')}) ===============\n"
        try:
            os.write(self._log_fd, header.encode())
        except OSError:
            pass

    def _do_log(self, t: datetime, message: str) -> None:
        log_path = self._join("LOG")
        if self._log_size > LOG_SIZE_THRESHOLD:
            if self._log_fd is not None:
                os.close(self._log_fd)
            self._log_fd = None
            self._log_size = 0
            try:
                os.replace(log_path, self._join("LOG.old"))
            except OSError:
                pass
        if self._log_fd is None:
            try:
                self._log_fd = os.open(log_path, os.O_WRONLY | os.O_CREAT, 0o644)
            except OSError:
                return
            self._day = 0
        self._print_day(t)
        line = (
            f"{t.hour:02d}:{t.minute:02d}:{t.second:02d}.{t.microsecond:06d} "
            f"{message}\n"
        )
        try:
            n = os.write(self._log_fd, line.encode("utf-8", "replace"))
        except OSError:
            return
        self._log_size += n

    def _log(self, message: str) -> None:
        if not self.read_only:
            self._do_log(datetime.now().astimezone(), message)

    def log(self, message: str) -> None:
        if self.read_only:
            return
        t = datetime.now().astimezone()
        with self._mu:
            if self._open < 0:
                return
            self._do_log(t, message)

    def _set_meta(self, fd: FileDesc) -> None:
        content = (gen_name(fd) + "\n").encode()
        current_path = self._join("CURRENT")
        if os.path.exists(current_path):
            try:
                with open(current_path, "rb") as f:
                    old = f.read()
            except OSError as err:
                self._log(f"backup CURRENT: {err}")
                raise
            if old == content:
                return
            try:
                _write_file_synced(current_path + ".bak", old)
            except OSError as err:
                self._log(f"backup CURRENT: {err}")
                raise
        pending = f"{current_path}.{fd.num}"
        try:
            _write_file_synced(pending, content)
        except OSError as err:
            self._log(f"create CURRENT.{fd.num}: {err}")
            raise
        try:
            os.replace(pending, current_path)
        except OSError as err:
            self._log(f"rename CURRENT.{fd.num}: {err}")
            raise
        try:
            _sync_dir(self.path)
        except OSError as err:
            self._log(f"syncDir: {err}")
            raise

    def set_meta(self, fd: FileDesc) -> None:
        if not file_desc_ok(fd):
            raise InvalidFileError()
        if self.read_only:
            raise ReadOnlyError()
        with self._mu:
            self._check_open()
            self._set_meta(fd)

    def _try_current(self, name: str) -> _Current:
        with open(self._join(name), "rb") as f:
            content = f.read()
        fd = None
        if content.endswith(b"\n"):
            fd = parse_name(content[:-1].decode("latin-1"))
        if fd is None:
            self._log(f"{name}: corrupted content: {content!r}")
            raise StorageCorruptedError(
                "storage: corrupted or incomplete CURRENT file"
            )
        if not os.path.exists(self._join(gen_name(fd))):
            self._log(f"{name}: missing target file: {fd}")
            raise FileNotFoundError(f"{name}: missing target file: {fd}")
        return _Current(name, fd)

    def _try_currents(self, names: list[str]) -> _Current:
        last_corrupted: StorageCorruptedError | None = None
        for name in names:
            try:
                return self._try_current(name)
            except FileNotFoundError:
                continue
            except StorageCorruptedError as err:
                last_corrupted = err
        if last_corrupted is not None:
            raise last_corrupted
        raise FileNotFoundError("no valid CURRENT file")

    def get_meta(self) -> FileDesc:
        with self._mu:
            self._check_open()
            names = os.listdir(self.path)

            nums = []
            for name in names:
                if name.startswith("CURRENT.") and name != "CURRENT.bak":
                    tail = name[8:]
                    if _PENDING_NUM.fullmatch(tail):
                        num = _int64(tail)
                        if num is not None:
                            nums.append(num)

            pend_cur: _Current | None = None
            pend_err: Exception = FileNotFoundError("no pending CURRENT file")
            pend_names: list[str] = []
            if nums:
                nums.sort(reverse=True)
                pend_names = [f"CURRENT.{num}" for num in nums]
                try:
                    pend_cur = self._try_currents(pend_names)
                except (FileNotFoundError, StorageCorruptedError) as err:
                    pend_err = err

            cur: _Current | None = None
            cur_err: Exception = FileNotFoundError("no CURRENT file")
            try:
                cur = self._try_currents(["CURRENT", "CURRENT.bak"])
            except (FileNotFoundError, StorageCorruptedError) as err:
                cur_err = err

            if pend_cur is not None and (cur is None or pend_cur.fd.num > cur.fd.num):
                cur = pend_cur

            if cur is not None:
                if not self.read_only and (cur.name != "CURRENT" or pend_names):
                    try:
                        self._set_meta(cur.fd)
                    except (OSError, ValueError):
                        pass
                    else:
                        for name in pend_names:
                            try:
                                os.remove(self._join(name))
                            except OSError as err:
                                self._log(f"remove {name}: {err}")
                return cur.fd

            if isinstance(pend_err, StorageCorruptedError):
                raise pend_err
            raise cur_err

    def list(self, file_type: FileType) -> list[FileDesc]:
        with self._mu:
            self._check_open()
            fds = []
            for name in os.listdir(self.path):
                fd = parse_name(name)
                if fd is not None and fd.type & file_type:
                    fds.append(fd)
            return fds

    def open(self, fd: FileDesc) -> FileWrapper:
        if not file_desc_ok(fd):
            raise InvalidFileError()
        with self._mu:
            self._check_open()
            try:
                file = open(self._join(gen_name(fd)), "rb", buffering=0)
            except FileNotFoundError:
                if not has_old_name(fd):
                    raise
                file = open(self._join(gen_old_name(fd)), "rb", buffering=0)
            self._open += 1
            return FileWrapper(file, self, fd)

    def create(self, fd: FileDesc) -> FileWrapper:
        if not file_desc_ok(fd):
            raise InvalidFileError()
        if self.read_only:
            raise ReadOnlyError()
        with self._mu:
            self._check_open()
            raw = os.open(
                self._join(gen_name(fd)), os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o644
            )
            file = os.fdopen(raw, "wb", buffering=0)
            self._open += 1
            return FileWrapper(file, self, fd)

    def remove(self, fd: FileDesc) -> None:
        if not file_desc_ok(fd):
            raise InvalidFileError()
        if self.read_only:
            raise ReadOnlyError()
        with self._mu:
            self._check_open()
            try:
                os.remove(self._join(gen_name(fd)))
            except FileNotFoundError as err:
                if not has_old_name(fd):
                    self._log(f"remove {fd}: {err}")
                    raise
                try:
                    os.remove(self._join(gen_old_name(fd)))
                except FileNotFoundError:
                    raise err from None
                except OSError as old_err:
                    self._log(f"remove {fd}: {err} (old name)")
                    raise old_err
                self._log(f"remove {fd}: {err} (old name)")
            except OSError as err:
                self._log(f"remove {fd}: {err}")
                raise

    def rename(self, old_fd: FileDesc, new_fd: FileDesc) -> None:
        if not file_desc_ok(old_fd) or not file_desc_ok(new_fd):
            raise InvalidFileError()
        if old_fd == new_fd:
            return
        if self.read_only:
            raise ReadOnlyError()
        with self._mu:
            self._check_open()
            os.replace(self._join(gen_name(old_fd)), self._join(gen_name(new_fd)))

    def close(self) -> None:
        with self._mu:
            self._check_open()
            if self._open > 0:
                self._log(f"close: warning, {self._open} files still open")
            self._open = -1
            if self._log_fd is not None:
                os.close(self._log_fd)
                self._log_fd = None
            self._flock.release()


def open_file(path: str | os.PathLike, read_only: bool = False) -> FileStorage:
    """Open a file-system storage at path, taking its directory lock."""
    path = os.fspath(path)
    try:
        st = os.stat(path)
    except FileNotFoundError:
        if read_only:
            raise
        os.makedirs(path, 0o755, exist_ok=True)
    else:
        if not stat.S_ISDIR(st.st_mode):
            raise NotADirectoryError(f"storage: open {path}: not a directory")

    flock = _FileLock(os.path.join(path, "LOCK"), read_only)
    log_fd: int | None = None
    log_size = 0
    if not read_only:
        try:
            log_fd = os.open(os.path.join(path, "LOG"), os.O_WRONLY | os.O_CREAT, 0o644)
            try:
                log_size = os.lseek(log_fd, 0, os.SEEK_END)
            except OSError:
                os.close(log_fd)
                raise
        except BaseException:
            flock.release()
            raise
    return FileStorage(path, read_only, flock, log_fd, log_size)