"""Key helpers: key ranges, separators and randomized index walks."""

from __future__ import annotations

import random
from collections.abc import Iterator
from dataclasses import dataclass


@dataclass
class KeyRange:
    """A key range; None start is before all keys, None limit is after all."""

    start: bytes | None = None
    limit: bytes | None = None


def bytes_separator(a: bytes | None, b: bytes | None) -> bytes:
    """Return a key that sorts after a and no later than b (for a < b)."""
    a = a or b""
    b = b or b""
    if a == b:
        return b
    n = min(len(a), len(b))
    i = 0
    while i < n and a[i] == b[i]:
        i += 1
    out = bytearray(a[:i])
    if i < n:
        c = (a[i] + 1) & 0xFF
        if c < b[i]:
            out.append(c)
            return bytes(out)
        out.append(a[i])
        i += 1
    for c in a[i:]:
        if c < 0xFF:
            out.append(c + 1)
            return bytes(out)
        out.append(c)
    i = len(a)
    if len(b) > i and b[i] > 0:
        out.append(b[i] - 1)
    else:
        out.append(ord("x"))
    return bytes(out)


def bytes_after(b: bytes) -> bytes:
    """Return a key that sorts after b."""
    out = bytearray()
    for c in b:
        if c < 0xFF:
            out.append(c + 1)
            return bytes(out)
        out.append(c)
    out.append(ord("x"))
    return bytes(out)


def random_index(rnd: random.Random | None, n: int, rounds: int) -> Iterator[int]:
    """Yield `rounds` random indexes in [0, n)."""
    rnd = rnd or random.Random()
    for _ in range(rounds):
        yield rnd.randrange(n)


def shuffled_index(rnd: random.Random | None, n: int, rounds: int) -> Iterator[int]:
    """Yield a fresh permutation of range(n), `rounds` times."""
    rnd = rnd or random.Random()
    for _ in range(rounds):
        perm = list(range(n))
        rnd.shuffle(perm)
        yield from perm


def random_range(
    rnd: random.Random | None, n: int, rounds: int
) -> Iterator[tuple[int, int]]:
    """Yield `rounds` random (start, limit) pairs with start <= limit < n."""
    rnd = rnd or random.Random()
    for _ in range(rounds):
        start = rnd.randrange(n)
        length = rnd.randrange(n - start)
        yield start, start + length