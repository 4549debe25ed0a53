"""Shared helpers: hashing, dates, natural ordering."""

from __future__ import annotations

import hashlib
import re
from datetime import date
from pathlib import Path

_DIGIT_RUN_RE = re.compile(r"(\d+)")


def sha256_file(path: Path) -> str:
    """Return the hex SHA-256 digest of *path*."""
    h = hashlib.sha256()
    with open(path, "rb") as fh:
        for chunk in iter(lambda: fh.read(8192), b""):
            h.update(chunk)
    return h.hexdigest()


def today_iso(today: date | None = None) -> str:
    """Return the local date as ``YYYY-MM-DD``."""
    return (today or date.today()).isoformat()


def natural_sort_key(name: str) -> tuple[tuple[int, int | str], ...]:
    """Sort key where digit runs compare by value: ``file2`` < ``file10``."""
    parts: list[tuple[int, int | str]] = []
    for chunk in _DIGIT_RUN_RE.split(name.casefold()):
        if not chunk:
            continue
        if chunk.isdecimal():
            parts.append((0, int(chunk)))
        else:
            parts.append((1, chunk))
    return tuple(parts)
