"""Content hashing utilities for deduplication.

Provides SHA-256 hashing of normalized content for exact-match duplicate
suppression of notifications.
"""

from __future__ import annotations

import hashlib


def compute_content_hash(content: str) -> str:
    """Compute SHA-256 hash of normalized content.

    Normalization: strip whitespace + lowercase, so two notifications that
    differ only in trailing newlines or capitalisation collapse to one key.

    Args:
        content: Raw content string.

    Returns:
        Hex-encoded SHA-256 hash string.
    """
    normalized = content.strip().lower() if content else ""
    return hashlib.sha256(normalized.encode("utf-8")).hexdigest()


def compute_fingerprint(*parts: str) -> str:
    """Hash an ordered tuple of key parts into one hex digest.

    Parts are joined with a NUL separator so ``("a|b", "c")`` and
    ``("a", "b|c")`` never collide.
    """
    joined = "\x00".join(parts)
    return hashlib.sha256(joined.encode("utf-8")).hexdigest()
