"""Small helpers for working with string lists and digests."""

from __future__ import annotations

import hashlib
from collections.abc import Iterable


def contain_string(items: Iterable[str] | None, s: str) -> bool:
    """Return True if ``s`` occurs in ``items``."""
    return s in (items or ())


def remove_string(items: Iterable[str] | None, s: str) -> list[str]:
    """Return the items with every occurrence of ``s`` removed."""
    return [item for item in (items or ()) if item != s]


def concat_string(items: Iterable[str] | None, sep: str) -> str:
    """Join the items with ``sep``; an empty or missing list gives ``""``."""
    return sep.join(items or ())


def hash_code(msg: str) -> bytes:
    """Return the raw MD5 digest of ``msg``."""
    return hashlib.md5(msg.encode("utf-8")).digest()