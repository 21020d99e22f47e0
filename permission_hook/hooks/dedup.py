"""Cross-process at-most-once delivery of notifications.

Several hook processes may react to the same moment (a Stop and a
Notification for one question, or a host that fires an event twice).  Each
candidate notification gets a fingerprint of ``(session, status, content)``
and a marker file ``<root>/<session-key>/dedup/<fingerprint>.json``.

Two phases:

1. ``check``: a read-only early exit when a fresh marker already exists.
2. ``acquire``: exclusive creation of the marker.  The marker is written to a
   temp file and hard-linked into place; ``os.link`` fails when the target
   exists, so among N racing processes exactly one sees ``PROCEED``.

An expired marker is taken over under a per-fingerprint ``FileLock`` so that
only one racer replaces it.  Expired markers never cause a duplicate.
"""

from __future__ import annotations

import json
import logging
import os
import threading
from enum import Enum
from pathlib import Path
from typing import Any

from filelock import FileLock
from filelock import Timeout as FileLockTimeout

from permission_hook.core.hashing import compute_content_hash, compute_fingerprint
from permission_hook.core.utils import epoch_now
from permission_hook.hooks.hook_helpers import session_key
from permission_hook.hooks.models import Status

logger = logging.getLogger(__name__)

DEDUP_DIR = "dedup"
MARKER_SUFFIX = ".json"
LOCK_SUFFIX = ".lock"


class DedupOutcome(str, Enum):
    PROCEED = "proceed"
    DUPLICATE = "duplicate"


class DedupCoordinator:
    """Decide whether this process delivers a given notification.

    Example:
        dedup = DedupCoordinator(Path("/tmp/permission-hook/sessions"), ttl_seconds=5.0)
        if dedup.acquire("abc123", Status.TASK_COMPLETE, summary) is DedupOutcome.PROCEED:
            notifier.notify(...)
    """

    def __init__(
        self,
        root: Path,
        ttl_seconds: float = 5.0,
        lock_timeout: float = 2.0,
    ) -> None:
        """Initialize the coordinator.

        Args:
            root: Directory holding one sub-directory per session.
            ttl_seconds: How long a delivered notification suppresses
                identical ones.
            lock_timeout: Seconds to wait for a marker's takeover lock.
        """
        self.root = root
        self.ttl_seconds = ttl_seconds
        self.lock_timeout = lock_timeout

    # -------------------------------------------------------------------------
    # Paths and keys
    # -------------------------------------------------------------------------

    def fingerprint(self, session_id: str, status: Status, content: str) -> str:
        return compute_fingerprint(session_id, status.value, compute_content_hash(content))

    def dedup_dir(self, session_id: str) -> Path:
        return self.root / session_key(session_id) / DEDUP_DIR

    def marker_path(self, session_id: str, key: str) -> Path:
        return self.dedup_dir(session_id) / f"{key}{MARKER_SUFFIX}"

    # -------------------------------------------------------------------------
    # Marker inspection
    # -------------------------------------------------------------------------

    def _created_at(self, path: Path) -> float | None:
        """Creation time recorded in a marker, falling back to its mtime.

        Returns ``None`` when the marker does not exist.
        """
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
            created = data.get("created_at") if isinstance(data, dict) else None
            if isinstance(created, (int, float)) and not isinstance(created, bool):
                return float(created)
        except FileNotFoundError:
            return None
        except (OSError, json.JSONDecodeError, UnicodeDecodeError):
            pass

        try:
            return path.stat().st_mtime
        except OSError:
            return None

    def _is_fresh(self, path: Path, now: float) -> bool:
        created = self._created_at(path)
        if created is None:
            return False
        return now - created < self.ttl_seconds

    # -------------------------------------------------------------------------
    # Phase 1 / Phase 2
    # -------------------------------------------------------------------------

    def check(
        self,
        session_id: str,
        status: Status,
        content: str,
        now: float | None = None,
    ) -> DedupOutcome:
        """Read-only early check.

        Returns ``DUPLICATE`` if an unexpired marker exists, else ``PROCEED``.
        ``PROCEED`` here is only a hint; delivery still needs ``acquire``.
        """
        ts = epoch_now() if now is None else now
        key = self.fingerprint(session_id, status, content)
        if self._is_fresh(self.marker_path(session_id, key), ts):
            return DedupOutcome.DUPLICATE
        return DedupOutcome.PROCEED

    def acquire(
        self,
        session_id: str,
        status: Status,
        content: str,
        now: float | None = None,
    ) -> DedupOutcome:
        """Claim delivery of a notification.

        Among concurrent callers with the same fingerprint and no fresh
        marker, exactly one receives ``PROCEED``.  Store failures other than
        a lock timeout degrade to ``PROCEED``: a duplicate notification is
        preferred over a lost one.
        """
        ts = epoch_now() if now is None else now
        key = self.fingerprint(session_id, status, content)
        path = self.marker_path(session_id, key)
        record = {
            "key": key,
            "session_id": session_id,
            "status": status.value,
            "created_at": ts,
            "ttl": self.ttl_seconds,
        }

        try:
            if self._is_fresh(path, ts):
                return DedupOutcome.DUPLICATE

            if self._create_exclusive(path, record):
                return DedupOutcome.PROCEED

            if self._is_fresh(path, ts):
                return DedupOutcome.DUPLICATE

            return self._take_over(path, record, ts)
        except OSError as e:
            logger.warning(f"Dedup store unavailable, delivering anyway: {e}")
            return DedupOutcome.PROCEED

    def _create_exclusive(self, path: Path, record: dict[str, Any]) -> bool:
        """Create *path* with *record* unless it already exists.

        Returns ``True`` if this call created the marker.
        """
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = path.with_name(f"{path.name}.{os.getpid()}.{threading.get_ident()}.tmp")
        try:
            tmp_path.write_text(json.dumps(record), encoding="utf-8")
            os.link(str(tmp_path), str(path))
            return True
        except FileExistsError:
            return False
        finally:
            tmp_path.unlink(missing_ok=True)

    def _take_over(self, path: Path, record: dict[str, Any], now: float) -> DedupOutcome:
        """Replace an expired marker; one racer wins, the others see it fresh."""
        lock = FileLock(str(path.with_suffix(LOCK_SUFFIX)), timeout=self.lock_timeout)
        try:
            with lock:
                if self._is_fresh(path, now):
                    return DedupOutcome.DUPLICATE
                path.unlink(missing_ok=True)
                if self._create_exclusive(path, record):
                    return DedupOutcome.PROCEED
                return DedupOutcome.DUPLICATE
        except FileLockTimeout:
            logger.debug(f"Dedup takeover lock busy for {path.stem[:12]}")
            return DedupOutcome.DUPLICATE

    # -------------------------------------------------------------------------
    # Cleanup
    # -------------------------------------------------------------------------

    def purge_expired(self, session_id: str, now: float | None = None) -> int:
        """Delete expired markers for a session.

        Returns:
            Number of markers removed.
        """
        ts = epoch_now() if now is None else now
        directory = self.dedup_dir(session_id)
        try:
            markers = sorted(directory.glob(f"*{MARKER_SUFFIX}"))
        except OSError:
            return 0

        removed = 0
        for marker in markers:
            lock_path = marker.with_suffix(LOCK_SUFFIX)
            try:
                with FileLock(str(lock_path), timeout=0):
                    if self._is_fresh(marker, ts):
                        continue
                    marker.unlink(missing_ok=True)
                    removed += 1
            except FileLockTimeout:
                continue
            except OSError as e:
                logger.debug(f"Could not purge dedup marker {marker.name}: {e}")
                continue
        if removed:
            logger.debug(f"Purged {removed} expired dedup marker(s)")
        return removed
