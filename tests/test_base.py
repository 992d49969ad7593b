import pytest

from tydb.storage.base import (
    FileDesc,
    FileType,
    Storage,
    StorageCorruptedError,
    file_desc_ok,
)


@pytest.mark.parametrize(
    "ftype, name",
    [
        (FileType.MANIFEST, "manifest"),
        (FileType.JOURNAL, "journal"),
        (FileType.TABLE, "table"),
        (FileType.TEMP, "temp"),
    ],
)
def test_file_type_names(ftype, name):
    assert str(ftype) == name


def test_unknown_file_type_name():
    assert str(FileType(15)) == "<unknown:15>"


@pytest.mark.parametrize(
    "ftype", [FileType.MANIFEST, FileType.JOURNAL, FileType.TABLE, FileType.TEMP]
)
def test_all_covers_every_type(ftype):
    masked = FileType(FileType.ALL & ftype)
    assert masked == ftype
    assert file_desc_ok(FileDesc(masked, 1)) is True


@pytest.mark.parametrize(
    "ftype, num, name",
    [
        (FileType.JOURNAL, 100, "000100.log"),
        (FileType.JOURNAL, 0, "000000.log"),
        (FileType.TABLE, 0, "000000.ldb"),
        (FileType.MANIFEST, 2, "MANIFEST-000002"),
        (FileType.MANIFEST, 7, "MANIFEST-000007"),
        (FileType.JOURNAL, 9223372036854775807, "9223372036854775807.log"),
        (FileType.TEMP, 100, "000100.tmp"),
    ],
)
def test_file_desc_str(ftype, num, name):
    assert str(FileDesc(ftype, num)) == name


def test_unknown_file_desc_str():
    assert str(FileDesc(FileType(16), 3)) == "0x10-3"


def test_zero():
    assert FileDesc().is_zero()
    assert not FileDesc(FileType.TABLE, 0).is_zero()
    assert not FileDesc(FileType(0), 1).is_zero()


@pytest.mark.parametrize(
    "fd, ok",
    [
        (FileDesc(FileType.MANIFEST, 1), True),
        (FileDesc(FileType.JOURNAL, 0), True),
        (FileDesc(FileType.TABLE, 5), True),
        (FileDesc(FileType.TEMP, 9), True),
        (FileDesc(FileType.TABLE, -1), False),
        (FileDesc(), False),
        (FileDesc(FileType.ALL, 1), False),
    ],
)
def test_file_desc_ok(fd, ok):
    assert file_desc_ok(fd) is ok


def test_corrupted_error_without_file():
    err = StorageCorruptedError("broken content")
    assert str(err) == "broken content"
    assert err.fd.is_zero()


def test_corrupted_error_with_file():
    fd = FileDesc(FileType.TABLE, 1)
    err = StorageCorruptedError("broken content", fd)
    assert str(err) == f"broken content [file={fd}]"
    assert err.fd == fd


def test_storage_is_abstract():
    with pytest.raises(TypeError):
        Storage()