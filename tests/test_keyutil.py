import random

import pytest

from tydb.keyutil import (
    bytes_after,
    bytes_separator,
    random_index,
    random_range,
    shuffled_index,
)

SORTED_KEYS = [
    b"a",
    b"aa",
    b"aaa",
    b"aaacccccccccc",
    b"aaaccccccccccd",
    b"aaaccccccccccf",
    b"aaaccccccccccfg",
    b"ab",
    b"abc",
    b"abcd",
    b"accccccccccccccc",
    b"b",
    b"bb",
    b"bc",
    b"c",
    b"c1",
    b"czzzzzzzzzzzzzz",
    b"fffffffffffffff",
    b"g11",
    b"g111",
    b"g111\xff",
    b"zz",
    b"zzzzzzz",
    b"zzzzzzzzzzzzzzzz",
]


@pytest.mark.parametrize("a, b", list(zip(SORTED_KEYS, SORTED_KEYS[1:])))
def test_separator_between(a, b):
    sep = bytes_separator(a, b)
    assert a < sep <= b


def test_separator_of_equal_keys():
    assert bytes_separator(b"abc", b"abc") == b"abc"


def test_separator_from_nothing():
    sep = bytes_separator(None, b"a")
    assert sep < b"a"
    assert sep == b"`"


@pytest.mark.parametrize("key", [b"", b"abc", b"\xff\xff", b"a\xff", b"zz"])
def test_bytes_after(key):
    assert bytes_after(key) > key


def test_bytes_after_all_ff():
    assert bytes_after(b"\xff\xff") == b"\xff\xffx"


def test_shuffled_index_is_permutation():
    out = list(shuffled_index(random.Random(1), 10, 3))
    assert len(out) == 30
    for r in range(3):
        assert sorted(out[r * 10:(r + 1) * 10]) == list(range(10))


def test_random_index_in_bounds():
    out = list(random_index(random.Random(2), 7, 50))
    assert len(out) == 50
    assert all(0 <= i < 7 for i in out)


def test_random_range_in_bounds():
    out = list(random_range(random.Random(3), 12, 40))
    assert len(out) == 40
    for start, limit in out:
        assert 0 <= start <= limit < 12


def test_seeded_walks_repeat():
    a = list(shuffled_index(random.Random(7), 20, 2))
    b = list(shuffled_index(random.Random(7), 20, 2))
    assert a == b


def test_random_index_empty_raises():
    with pytest.raises(ValueError):
        list(random_index(random.Random(0), 0, 1))