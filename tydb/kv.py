"""An ordered in-memory list of key/value pairs, plus sample data sets."""

from __future__ import annotations

import bisect
import random
from collections.abc import Iterator
from dataclasses import dataclass

from tydb.keyutil import KeyRange, bytes_after, bytes_separator, shuffled_index


@dataclass
class _Entry:
    key: bytes
    value: bytes


class KeyValue:
    """Key/value pairs kept sorted by key (bytewise)."""

    def __init__(self) -> None:
        self._entries: list[_Entry] = []
        self._nbytes = 0

    def _keys(self) -> list[bytes]:
        return [e.key for e in self._entries]

    def put(self, key: bytes, value: bytes) -> None:
        """Append a pair; keys must arrive in increasing order."""
        key, value = bytes(key), bytes(value)
        if self._entries and self._entries[-1].key >= key:
            raise ValueError(
                f"put: keys are not in increasing order: {self._entries[-1].key!r}, {key!r}"
            )
        self._entries.append(_Entry(key, value))
        self._nbytes += len(key) + len(value)

    def put_u(self, key: bytes, value: bytes) -> bool:
        """Insert or update a pair; return True if the key was new."""
        key, value = bytes(key), bytes(value)
        i, exist = self.get(key)
        if exist:
            self._nbytes += len(value) - len(self._entries[i].value)
            self._entries[i].value = value
            return False
        self._entries.insert(i, _Entry(key, value))
        self._nbytes += len(key) + len(value)
        return True

    def delete(self, key: bytes) -> tuple[bool, bytes | None]:
        """Remove a key; return whether it existed and its value."""
        i, exist = self.get(key)
        if not exist:
            return False, None
        value = self._entries[i].value
        self.delete_index(i)
        return True, value

    def delete_index(self, i: int) -> bool:
        if 0 <= i < len(self._entries):
            entry = self._entries.pop(i)
            self._nbytes -= len(entry.key) + len(entry.value)
            return True
        return False

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[tuple[bytes, bytes]]:
        for e in self._entries:
            yield e.key, e.value

    def size(self) -> int:
        """Total bytes of keys and values."""
        return self._nbytes

    def key_at(self, i: int) -> bytes:
        return self._entries[i].key

    def value_at(self, i: int) -> bytes:
        return self._entries[i].value

    def index(self, i: int) -> tuple[bytes, bytes]:
        if i < 0 or i >= len(self._entries):
            raise IndexError(f"Index #{i}: out of range")
        e = self._entries[i]
        return e.key, e.value

    def index_inexact(self, i: int) -> tuple[bytes, bytes, bytes]:
        """Return (separator before key i, key, value)."""
        key, value = self.index(i)
        prev = self.key_at(i - 1) if i > 0 else None
        return bytes_separator(prev, key), key, value

    def index_or_none(self, i: int) -> tuple[bytes | None, bytes | None]:
        if 0 <= i < len(self._entries):
            e = self._entries[i]
            return e.key, e.value
        return None, None

    def search(self, key: bytes) -> int:
        """Smallest index whose key is >= key."""
        return bisect.bisect_left(self._keys(), bytes(key))

    def get(self, key: bytes) -> tuple[int, bool]:
        i = self.search(key)
        return i, i < len(self._entries) and self._entries[i].key == bytes(key)

    def iterate_shuffled(
        self, rnd: random.Random | None
    ) -> Iterator[tuple[int, bytes, bytes]]:
        for i in shuffled_index(rnd, len(self._entries), 1):
            e = self._entries[i]
            yield i, e.key, e.value

    def iterate_inexact(self) -> Iterator[tuple[int, bytes, bytes, bytes]]:
        for i in range(len(self._entries)):
            sep, key, value = self.index_inexact(i)
            yield i, sep, key, value

    def _from_entries(self, entries: list[_Entry]) -> "KeyValue":
        kv = KeyValue()
        kv._entries = [_Entry(e.key, e.value) for e in entries]
        kv._nbytes = sum(len(e.key) + len(e.value) for e in entries)
        return kv

    def clone(self) -> "KeyValue":
        return self._from_entries(self._entries)

    def slice(self, start: int, limit: int) -> "KeyValue":
        if start < 0 or limit > len(self._entries):
            raise IndexError(f"Slice {start} .. {limit}: out of range")
        if limit < start:
            raise ValueError(f"Slice {start} .. {limit}: invalid range")
        return self._from_entries(self._entries[start:limit])

    def slice_key(self, start: bytes | None, limit: bytes | None) -> "KeyValue":
        s = self.search(start) if start is not None else 0
        e = self.search(limit) if limit is not None else len(self._entries)
        return self.slice(s, e)

    def slice_range(self, key_range: KeyRange | None) -> "KeyValue":
        if key_range is None:
            return self.clone()
        return self.slice_key(key_range.start, key_range.limit)

    def range(self, start: int, limit: int) -> KeyRange:
        """Return the key range covering entries [start, limit)."""
        r = KeyRange()
        n = len(self._entries)
        if n > 0:
            if start == n:
                r.start = bytes_after(self.key_at(start - 1))
            else:
                r.start = self.key_at(start)
        if limit < n:
            r.limit = self.key_at(limit)
        return r


def _from_pairs(*pairs: tuple[str, str]) -> KeyValue:
    kv = KeyValue()
    for key, value in pairs:
        kv.put(key.encode("latin-1"), value.encode("latin-1"))
    return kv


def empty_key() -> KeyValue:
    return _from_pairs(("", "v"))


def empty_value() -> KeyValue:
    return _from_pairs(("abc", ""), ("abcd", ""))


def one_key_value() -> KeyValue:
    return _from_pairs(("abc", "v"))


def big_value() -> KeyValue:
    return _from_pairs(("big1", "1" * 200000))


def special_key() -> KeyValue:
    return _from_pairs(("\xff\xff", "v3"))


def multiple_key_value() -> KeyValue:
    return _from_pairs(
        ("a", "v"),
        ("aa", "v1"),
        ("aaa", "v2"),
        ("aaacccccccccc", "v2"),
        ("aaaccccccccccd", "v3"),
        ("aaaccccccccccf", "v4"),
        ("aaaccccccccccfg", "v5"),
        ("ab", "v6"),
        ("abc", "v7"),
        ("abcd", "v8"),
        ("accccccccccccccc", "v9"),
        ("b", "v10"),
        ("bb", "v11"),
        ("bc", "v12"),
        ("c", "v13"),
        ("c1", "v13"),
        ("czzzzzzzzzzzzzz", "v14"),
        ("fffffffffffffff", "v15"),
        ("g11", "v15"),
        ("g111", "v15"),
        ("g111\xff", "v15"),
        ("zz", "v16"),
        ("zzzzzzz", "v16"),
        ("zzzzzzzzzzzzzzzz", "v16"),
    )


_KEYMAP = b"012345678ABCDEFGHIJKLMNOPQRSTUVWXYabcdefghijklmnopqrstuvwxy"


def generate(
    rnd: random.Random | None,
    n: int,
    incr: int,
    minlen: int,
    maxlen: int,
    vminlen: int,
    vmaxlen: int,
) -> KeyValue:
    """Generate n sorted keys with lengths in [minlen, maxlen] and filler values."""
    rnd = rnd or random.Random()
    if maxlen < minlen:
        raise ValueError("max len should >= min len")

    def rrand(low: int, high: int) -> int:
        if low == high:
            return high
        return rnd.randrange(low, high)

    kv = KeyValue()
    end_c = len(_KEYMAP) - incr
    gen: list[int] = []
    for i in range(n):
        m = rrand(minlen, maxlen)
        last = gen
        while True:
            k = len(last)
            if m > k:
                gen = last[:] + [0] * (m - k)
                break
            gen = last[:m]
            for j in range(m - 1, -1, -1):
                c = last[j]
                if c >= end_c:
                    continue
                gen[j] = c + incr
                gen[j + 1:] = [0] * (m - j - 1)
                break
            else:
                if m < maxlen:
                    m += 1
                    continue
                raise ValueError(
                    f"only able to generate {len(kv)} keys out of {n} keys, "
                    "try increasing max len"
                )
            break
        key = bytes(_KEYMAP[g] for g in gen)
        vlen = rrand(vminlen, vmaxlen)
        value = (f"v{i}".encode() + b"x" * vlen)[:vlen]
        kv.put(key, value)
    return kv