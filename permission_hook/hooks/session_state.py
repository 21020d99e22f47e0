"""Durable per-session state.

One JSON record per session at ``<root>/<session-key>/state.json``.  Every
read-modify-write runs under a per-session ``FileLock`` and the new record
replaces the old one atomically (tmp + ``os.replace``), so a killed process
never leaves a half-written record behind.

Records are never deleted here; stale session directories are a
housekeeping concern.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from pathlib import Path

from filelock import FileLock
from filelock import Timeout as FileLockTimeout
from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from permission_hook.core.errors import FileLockError, StateStoreError
from permission_hook.core.utils import atomic_write_json, epoch_now
from permission_hook.hooks.hook_helpers import session_key
from permission_hook.hooks.models import Status

logger = logging.getLogger(__name__)

STATE_FILE = "state.json"
LOCK_FILE = "state.lock"


class SessionState(BaseModel):
    """Persisted bookkeeping for one session."""

    session_id: str
    last_status: Status | None = None
    last_notified_at: dict[str, float] = Field(default_factory=dict)
    last_interactive_tool: str | None = None
    last_interactive_at: float | None = None
    cwd: str = ""
    updated_at: float = 0.0


class SessionStateStore:
    """Load, update and query ``SessionState`` records on disk.

    Example:
        store = SessionStateStore(Path("/tmp/permission-hook/sessions"))
        store.update("abc123", Status.TASK_COMPLETE)
        store.should_suppress_question("abc123", time.time(), 12.0)
    """

    def __init__(self, root: Path, lock_timeout: float = 2.0) -> None:
        """Initialize the store.

        Args:
            root: Directory holding one sub-directory per session.
            lock_timeout: Seconds to wait for a session's lock.
        """
        self.root = root
        self.lock_timeout = lock_timeout

    def session_dir(self, session_id: str) -> Path:
        return self.root / session_key(session_id)

    def _state_path(self, session_id: str) -> Path:
        return self.session_dir(session_id) / STATE_FILE

    @contextmanager
    def _locked(self, session_id: str) -> Iterator[None]:
        lock_path = self.session_dir(session_id) / LOCK_FILE
        try:
            lock_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StateStoreError(f"Cannot create session directory: {e}") from e

        lock = FileLock(str(lock_path), timeout=self.lock_timeout)
        try:
            lock.acquire()
        except FileLockTimeout:
            raise FileLockError(
                lock_path=str(lock_path),
                timeout=self.lock_timeout,
                message=(
                    f"Timed out waiting {self.lock_timeout}s for session lock. "
                    "Another hook process may be holding it."
                ),
            )
        try:
            yield
        finally:
            lock.release()

    def load(self, session_id: str) -> SessionState:
        """Return the stored record, or a fresh default.

        A corrupt record is logged and treated as absent.
        """
        path = self._state_path(session_id)
        try:
            raw = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return SessionState(session_id=session_id)
        except OSError as e:
            logger.warning(f"Could not read session state: {e}")
            return SessionState(session_id=session_id)

        try:
            return SessionState.model_validate(json.loads(raw))
        except (json.JSONDecodeError, PydanticValidationError) as e:
            logger.warning(f"Discarding corrupt session state for {session_key(session_id)}: {e}")
            return SessionState(session_id=session_id)

    def _save(self, state: SessionState) -> None:
        try:
            atomic_write_json(self._state_path(state.session_id), state.model_dump(mode="json"))
        except OSError as e:
            raise StateStoreError(f"Cannot persist session state: {e}") from e

    def _modify(
        self, session_id: str, change: Callable[[SessionState], SessionState]
    ) -> SessionState:
        with self._locked(session_id):
            state = change(self.load(session_id))
            self._save(state)
            return state

    def update(
        self,
        session_id: str,
        status: Status,
        now: float | None = None,
        cwd: str = "",
    ) -> SessionState:
        """Record that *status* was notified at *now*.

        Raises:
            FileLockError: If the session lock cannot be acquired in time.
            StateStoreError: If the record cannot be written.
        """
        ts = epoch_now() if now is None else now

        def change(state: SessionState) -> SessionState:
            notified = dict(state.last_notified_at)
            notified[status.value] = ts
            return state.model_copy(
                update={
                    "last_status": status,
                    "last_notified_at": notified,
                    "cwd": cwd or state.cwd,
                    "updated_at": ts,
                }
            )

        return self._modify(session_id, change)

    def record_interactive_tool(
        self,
        session_id: str,
        tool_name: str,
        now: float | None = None,
        cwd: str = "",
    ) -> SessionState:
        """Remember that an AskUserQuestion / ExitPlanMode call is in flight."""
        ts = epoch_now() if now is None else now

        def change(state: SessionState) -> SessionState:
            return state.model_copy(
                update={
                    "last_interactive_tool": tool_name,
                    "last_interactive_at": ts,
                    "cwd": cwd or state.cwd,
                    "updated_at": ts,
                }
            )

        return self._modify(session_id, change)

    def should_suppress_question(
        self,
        session_id: str,
        now: float,
        window_seconds: float,
    ) -> bool:
        """True iff any notification was recorded less than *window_seconds* ago.

        A non-positive window disables the cooldown.
        """
        if window_seconds <= 0:
            return False
        state = self.load(session_id)
        return any(now - ts < window_seconds for ts in state.last_notified_at.values())
