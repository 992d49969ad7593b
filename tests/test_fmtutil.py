import pytest

from tydb.fmtutil import shorten, shortenb, sint, sort_fds, sshortenb
from tydb.storage.base import FileDesc, FileType


def test_shorten_keeps_short_strings():
    assert shorten("abcdefgh") == "abcdefgh"
    assert shorten("") == ""


def test_shorten_long_string():
    text = "abcdefghijklmnop"
    result = shorten(text)
    assert result == text[:3] + ".." + text[-3:]
    assert len(result) == 8


@pytest.mark.parametrize("n", [0, 1, 1000, 1024])
def test_shortenb_small(n):
    assert shortenb(n) == f"{n}B"


def test_shortenb_units():
    assert shortenb(2048) == "2KiB"


def test_shortenb_caps_at_largest_unit():
    assert shortenb(5 * 1024 ** 6).endswith("TiB")


@pytest.mark.parametrize("n", [1, 100, 2048, 3 * 1024 ** 3])
def test_sshortenb_signs(n):
    assert sshortenb(n) == "+" + shortenb(n)
    assert sshortenb(-n) == "-" + shortenb(n)


def test_zero_is_tilde():
    assert sshortenb(0) == "~"
    assert sint(0) == "~"


@pytest.mark.parametrize("x", [1, 42, 100000])
def test_sint(x):
    assert sint(x) == f"+{x}"
    assert sint(-x) == f"-{x}"


def test_sort_fds():
    fds = [
        FileDesc(FileType.TABLE, 9),
        FileDesc(FileType.JOURNAL, 2),
        FileDesc(FileType.MANIFEST, 5),
    ]
    original = list(fds)
    sort_fds(fds)
    assert [fd.num for fd in fds] == sorted(fd.num for fd in original)
    assert set(fds) == set(original)