"""Utility helpers for working with files and path patterns."""

from __future__ import annotations

import hashlib
import re
from functools import lru_cache
from pathlib import Path
from typing import Iterable, Iterator, Sequence


def compute_sha256(data: bytes) -> str:
    """Compute SHA256 hash for a byte payload."""
    return hashlib.sha256(data).hexdigest()


@lru_cache(maxsize=256)
def _compile_glob(pattern: str) -> re.Pattern[str]:
    """Translate a slash-aware glob into a regular expression.

    ``*`` and ``?`` never cross a ``/``; ``**/`` matches zero or more
    directories and a trailing ``**`` matches anything.
    """
    parts: list[str] = []
    index = 0
    while index < len(pattern):
        char = pattern[index]
        if pattern.startswith("**/", index):
            parts.append("(?:.*/)?")
            index += 3
            continue
        if pattern.startswith("**", index):
            parts.append(".*")
            index += 2
            continue
        if char == "*":
            parts.append("[^/]*")
        elif char == "?":
            parts.append("[^/]")
        else:
            parts.append(re.escape(char))
        index += 1
    return re.compile("".join(parts) + r"\Z")


def match_glob(path: str, pattern: str) -> bool:
    """Return True when the slash-separated ``path`` matches ``pattern``."""
    return _compile_glob(pattern.lstrip("/")).match(path.lstrip("/")) is not None


def matches_any(path: str, patterns: Sequence[str]) -> bool:
    """Match against a pattern list where ``!pattern`` entries exclude."""
    included = False
    for pattern in patterns:
        if pattern.startswith("!"):
            if match_glob(path, pattern[1:]):
                return False
        elif not included and match_glob(path, pattern):
            included = True
    return included


def iter_source_paths(root: Path, *, ignore: Iterable[str] = ()) -> Iterator[Path]:
    """Yield files under ``root`` in sorted order, skipping ignored patterns."""
    ignore = list(ignore)
    for item in sorted(root.rglob("*")):
        if not item.is_file():
            continue
        relative = item.relative_to(root).as_posix()
        if ignore and matches_any(relative, ignore):
            continue
        yield item
