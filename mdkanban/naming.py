"""Filename slugs and stable id minting."""
import re
import threading
import time
from typing import Iterable

MAX_SLUG_LENGTH = 50

_NON_ALNUM = re.compile(r"[^a-z0-9]+")
_PRIORITY_PREFIX = re.compile(r"^\d+-")


def slugify(title: str, max_length: int = MAX_SLUG_LENGTH) -> str:
    """'Fix the Login bug!' -> 'fix-the-login-bug'"""
    slug = _NON_ALNUM.sub("-", title.lower()).strip("-")
    slug = slug[:max_length].strip("-")
    return slug or "task"


def strip_priority_prefix(filename: str) -> str:
    """'03-fix-bug.md' -> 'fix-bug' (the slug without the old position)."""
    stem = filename[:-3] if filename.endswith(".md") else filename
    return _PRIORITY_PREFIX.sub("", stem) or stem


def unique_filename(slug: str, taken: Iterable[str]) -> str:
    """First of slug.md, slug-2.md, slug-3.md, ... not in `taken`."""
    taken = set(taken)
    candidate = f"{slug}.md"
    n = 2
    while candidate in taken:
        candidate = f"{slug}-{n}.md"
        n += 1
    return candidate


class IdClock:
    """Millisecond timestamp ids, strictly increasing within one process."""

    def __init__(self):
        self._last = 0
        self._lock = threading.Lock()

    def next_id(self) -> str:
        with self._lock:
            value = int(time.time() * 1000)
            if value <= self._last:
                value = self._last + 1
            self._last = value
            return str(value)
