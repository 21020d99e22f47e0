"""Shared utility functions for the permission hook.

Time handling and small filesystem helpers used by the session store, the
dedup coordinator and the decision log.

Design Principles:
    - Persisted timestamps are float epoch seconds (comparable across processes)
    - Human-facing timestamps are timezone-aware UTC
    - Every persisted JSON file is written via tmp + ``os.replace``
"""

from __future__ import annotations

import json
import os
import threading
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any


def utc_now() -> datetime:
    """Get current UTC datetime (timezone-aware).

    Returns:
        A timezone-aware datetime object representing the current time in UTC.

    Example:
        >>> from permission_hook.core.utils import utc_now
        >>> now = utc_now()
        >>> now.tzinfo is not None
        True
    """
    return datetime.now(timezone.utc)


def epoch_now() -> float:
    """Current wall-clock time as epoch seconds."""
    return time.time()


def atomic_write_json(path: Path, payload: dict[str, Any]) -> None:
    """Write *payload* to *path* so readers never observe a partial file.

    The temp file lives next to the target (same filesystem) and carries the
    writer's pid and thread id so concurrent writers never share a temp name.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_name(f"{path.name}.{os.getpid()}.{threading.get_ident()}.tmp")
    try:
        tmp_path.write_text(json.dumps(payload, ensure_ascii=False), encoding="utf-8")
        os.replace(str(tmp_path), str(path))
    finally:
        if tmp_path.exists():
            tmp_path.unlink(missing_ok=True)


def truncate(text: str, limit: int) -> str:
    """Cut *text* to at most *limit* characters, marking the cut with ``...``."""
    if len(text) <= limit:
        return text
    if limit <= 3:
        return text[:limit]
    return text[: limit - 3] + "..."
