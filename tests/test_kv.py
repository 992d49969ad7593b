import random

import pytest

from tydb.keyutil import KeyRange, bytes_after
from tydb.kv import (
    KeyValue,
    big_value,
    empty_key,
    empty_value,
    generate,
    multiple_key_value,
    one_key_value,
    special_key,
)


def _sample() -> KeyValue:
    kv = KeyValue()
    kv.put(b"a", b"1")
    kv.put(b"c", b"33")
    kv.put(b"e", b"555")
    return kv


def _sum_sizes(kv: KeyValue) -> int:
    return sum(len(k) + len(v) for k, v in kv)


def test_put_requires_increasing_order():
    kv = _sample()
    with pytest.raises(ValueError):
        kv.put(b"b", b"x")
    with pytest.raises(ValueError):
        kv.put(b"e", b"x")
    assert len(kv) == 3


def test_put_u_inserts_and_updates():
    kv = _sample()
    assert kv.put_u(b"b", b"22") is True
    assert kv.put_u(b"c", b"9") is False
    assert [k for k, _ in kv] == [b"a", b"b", b"c", b"e"]
    assert kv.value_at(2) == b"9"
    assert kv.size() == _sum_sizes(kv)


def test_delete():
    kv = _sample()
    assert kv.delete(b"c") == (True, b"33")
    assert kv.delete(b"c") == (False, None)
    assert kv.delete_index(10) is False
    assert kv.delete_index(0) is True
    assert [k for k, _ in kv] == [b"e"]
    assert kv.size() == _sum_sizes(kv)


def test_index_and_search():
    kv = _sample()
    assert kv.index(1) == (b"c", b"33")
    with pytest.raises(IndexError):
        kv.index(3)
    with pytest.raises(IndexError):
        kv.index(-1)
    assert kv.index_or_none(5) == (None, None)
    assert kv.search(b"b") == 1
    assert kv.get(b"c") == (1, True)
    assert kv.get(b"d") == (2, False)
    assert kv.search(b"z") == len(kv)


def test_index_inexact_separates_neighbours():
    kv = multiple_key_value()
    for i, sep, key, value in kv.iterate_inexact():
        assert sep <= key
        assert kv.value_at(i) == value
        if i > 0:
            assert sep > kv.key_at(i - 1)
            assert kv.search(sep) == i


def test_iterate_shuffled_visits_every_entry_once():
    kv = multiple_key_value()
    seen = sorted(i for i, _, _ in kv.iterate_shuffled(random.Random(1)))
    assert seen == list(range(len(kv)))


def test_clone_is_independent():
    kv = _sample()
    copy = kv.clone()
    copy.put_u(b"b", b"x")
    assert len(kv) == 3
    assert len(copy) == 4


def test_slice():
    kv = _sample()
    part = kv.slice(1, 3)
    assert [k for k, _ in part] == [b"c", b"e"]
    assert part.size() == _sum_sizes(part)
    with pytest.raises(IndexError):
        kv.slice(0, 4)
    with pytest.raises(ValueError):
        kv.slice(2, 1)


def test_slice_key_and_range():
    kv = _sample()
    assert [k for k, _ in kv.slice_key(b"b", b"e")] == [b"c"]
    assert [k for k, _ in kv.slice_key(None, None)] == [b"a", b"c", b"e"]
    assert len(kv.slice_range(None)) == 3
    assert [k for k, _ in kv.slice_range(KeyRange(b"c", None))] == [b"c", b"e"]


def test_range():
    kv = _sample()
    r = kv.range(1, 2)
    assert r == KeyRange(b"c", b"e")
    r = kv.range(3, 3)
    assert r.start == bytes_after(b"e")
    assert r.limit is None
    assert KeyValue().range(0, 0) == KeyRange()


def test_fixtures():
    assert list(empty_key()) == [(b"", b"v")]
    assert list(empty_value()) == [(b"abc", b""), (b"abcd", b"")]
    assert list(one_key_value()) == [(b"abc", b"v")]
    assert list(special_key()) == [(b"\xff\xff", b"v3")]
    big = big_value()
    assert big.key_at(0) == b"big1"
    assert big.value_at(0) == b"1" * 200000
    kv = multiple_key_value()
    keys = [k for k, _ in kv]
    assert keys == sorted(keys)
    assert keys[0] == b"a"
    assert keys[-1] == b"zzzzzzzzzzzzzzzz"
    assert kv.size() == _sum_sizes(kv)


@pytest.mark.parametrize("incr", [1, 2, 3])
def test_generate(incr):
    kv = generate(random.Random(7), 120, incr, 1, 50, 10, 120)
    assert len(kv) == 120
    keys = [k for k, _ in kv]
    assert all(a < b for a, b in zip(keys, keys[1:]))
    for i, (key, value) in enumerate(kv):
        assert 1 <= len(key) <= 50
        assert 10 <= len(value) <= 120
        assert value.startswith(f"v{i}".encode())
        assert set(value[len(f"v{i}"):]) <= {ord("x")}


def test_generate_rejects_bad_lengths():
    with pytest.raises(ValueError):
        generate(random.Random(0), 1, 1, 5, 4, 1, 1)


def test_generate_runs_out_of_keys():
    with pytest.raises(ValueError):
        generate(random.Random(0), 100, 1, 1, 1, 1, 1)