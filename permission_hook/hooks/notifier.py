"""Notification delivery boundary.

The dispatcher hands a notification to a ``Notifier`` only after the dedup
coordinator granted delivery.  Desktop toasts, sounds and webhooks live
behind this protocol; the default implementation writes the notification to
the diagnostic log.
"""

from __future__ import annotations

import logging
from typing import Protocol

from permission_hook.hooks.models import Status
from permission_hook.hooks.summary import session_name, status_title

logger = logging.getLogger(__name__)


class Notifier(Protocol):
    """Structural type for notification sinks."""

    def notify(
        self,
        status: Status,
        session_id: str,
        summary_text: str,
        cwd: str = "",
        git_branch: str | None = None,
    ) -> None: ...


class LoggingNotifier:
    """Writes each notification as one INFO line on the diagnostic logger."""

    def notify(
        self,
        status: Status,
        session_id: str,
        summary_text: str,
        cwd: str = "",
        git_branch: str | None = None,
    ) -> None:
        name = session_name(session_id, cwd, git_branch)
        body = f"{name}: {summary_text}" if summary_text else name
        logger.info(f"{status_title(status)} | {body}")
