"""Append-only log of PreToolUse decisions.

``decisions.log`` gets one CSV row per decision::

    timestamp,tool,code,reason,details

Ask decisions are also written to ``recent_prompts.log``, a short rolling
file (last ``limit`` lines) that answers "what did it just ask me about?".
Logging failures are reported on the diagnostic logger and never affect the
decision itself.
"""

from __future__ import annotations

import csv
import io
import logging
import os
import threading
from datetime import datetime
from pathlib import Path

from filelock import FileLock
from filelock import Timeout as FileLockTimeout

from permission_hook.core.utils import truncate, utc_now

logger = logging.getLogger(__name__)

DECISIONS_FILE = "decisions.log"
RECENT_PROMPTS_FILE = "recent_prompts.log"
RECENT_PROMPTS_LOCK = "recent_prompts.lock"

MAX_REASON_LENGTH = 150
MAX_DETAILS_LENGTH = 100
DEFAULT_RECENT_PROMPTS = 50


class DecisionLog:
    """Writes decision rows under *log_dir*."""

    def __init__(
        self,
        log_dir: Path,
        enabled: bool = True,
        recent_prompts_limit: int = DEFAULT_RECENT_PROMPTS,
        lock_timeout: float = 2.0,
    ) -> None:
        self.log_dir = log_dir
        self.enabled = enabled
        self.recent_prompts_limit = recent_prompts_limit
        self.lock_timeout = lock_timeout

    @property
    def decisions_path(self) -> Path:
        return self.log_dir / DECISIONS_FILE

    @property
    def recent_prompts_path(self) -> Path:
        return self.log_dir / RECENT_PROMPTS_FILE

    def log_decision(
        self,
        timestamp: datetime | None,
        tool_name: str,
        decision_code: str,
        reason: str,
        details: str = "",
    ) -> None:
        """Append one decision row; Ask rows also go to the recent prompts."""
        if not self.enabled:
            return

        ts = timestamp or utc_now()
        row = [
            ts.isoformat(),
            tool_name,
            decision_code,
            truncate(reason, MAX_REASON_LENGTH),
            truncate(details, MAX_DETAILS_LENGTH),
        ]
        buffer = io.StringIO()
        csv.writer(buffer, lineterminator="\n").writerow(row)

        try:
            self.log_dir.mkdir(parents=True, exist_ok=True)
            with open(self.decisions_path, "a", encoding="utf-8", newline="") as f:
                f.write(buffer.getvalue())
        except OSError as e:
            logger.warning(f"Could not write decision log: {e}")

        if decision_code == "ASK":
            self.log_prompt(ts, tool_name, details)

    def log_prompt(self, timestamp: datetime, tool_name: str, details: str = "") -> None:
        """Append one line to the rolling recent prompts file.

        The read-trim-replace cycle runs under ``recent_prompts.lock``; a
        lock that cannot be taken in time skips the line with a warning.
        """
        line = f"{timestamp.strftime('%H:%M:%S')} | {tool_name} | {details or '-'}"
        try:
            self.log_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.warning(f"Could not write recent prompts: {e}")
            return

        lock = FileLock(str(self.log_dir / RECENT_PROMPTS_LOCK), timeout=self.lock_timeout)
        try:
            with lock:
                self._append_prompt(line)
        except FileLockTimeout:
            logger.warning(f"Could not lock recent prompts within {self.lock_timeout}s")

    def _append_prompt(self, line: str) -> None:
        path = self.recent_prompts_path
        try:
            existing = path.read_text(encoding="utf-8").splitlines()
        except FileNotFoundError:
            existing = []
        except OSError as e:
            logger.warning(f"Could not read recent prompts: {e}")
            return

        lines = [*existing, line][-self.recent_prompts_limit:]
        tmp_path = path.with_name(f"{path.name}.{os.getpid()}.{threading.get_ident()}.tmp")
        try:
            tmp_path.write_text("\n".join(lines) + "\n", encoding="utf-8")
            os.replace(str(tmp_path), str(path))
        except OSError as e:
            logger.warning(f"Could not write recent prompts: {e}")
        finally:
            tmp_path.unlink(missing_ok=True)
