"""Short human-readable formatting helpers for log lines."""

from __future__ import annotations

from tydb.storage.base import FileDesc

_UNITS = ("", "Ki", "Mi", "Gi", "Ti")


def shorten(text: str) -> str:
    """Abbreviate strings longer than 8 characters."""
    if len(text) <= 8:
        return text
    return text[:3] + ".." + text[-3:]


def _scale(size: int) -> str:
    i = 0
    while size > 1024 and i < 4:
        size //= 1024
        i += 1
    return f"{size}{_UNITS[i]}B"


def shortenb(size: int) -> str:
    """Format a byte count with a binary unit."""
    return _scale(size)


def sshortenb(size: int) -> str:
    """Format a signed byte count; zero is shown as '~'."""
    if size == 0:
        return "~"
    sign = "-" if size < 0 else "+"
    return sign + _scale(abs(size))


def sint(x: int) -> str:
    """Format a signed integer; zero is shown as '~'."""
    if x == 0:
        return "~"
    sign = "-" if x < 0 else "+"
    return f"{sign}{abs(x)}"


def sort_fds(fds: list[FileDesc]) -> None:
    """Sort file descriptors in place by number."""
    fds.sort(key=lambda fd: fd.num)