"""SHA-256 content hashing for upload dedup and the embedding cache."""

from __future__ import annotations

import hashlib

_READ_BLOCK = 8192


def sha256_bytes(data: bytes) -> str:
    """Return the hex SHA-256 digest of *data*, hashed in 8 KiB blocks."""
    digest = hashlib.sha256()
    view = memoryview(data)
    for start in range(0, len(view), _READ_BLOCK):
        digest.update(view[start : start + _READ_BLOCK])
    return digest.hexdigest()


def sha256_text(text: str) -> str:
    """Return the hex SHA-256 digest of the UTF-8 encoding of *text*."""
    return hashlib.sha256(text.encode("utf-8")).hexdigest()
