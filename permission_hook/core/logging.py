"""Secure structured logging for the permission hook.

The hook's stdout is the decision channel, so every handler configured here
writes to stderr.

Features:
    - Sensitive data masking (API keys, tokens, passwords)
    - JSON structured logging format
    - Session context prefix ([session=xxx])
"""

from __future__ import annotations

import json
import logging
import re
import sys
from contextvars import ContextVar
from datetime import datetime, timezone

# Patterns to mask in logs
SENSITIVE_PATTERNS = [
    (re.compile(r'api[_-]?key["\']?\s*[:=]\s*["\']?[\w-]+', re.I), "api_key=***MASKED***"),
    (re.compile(r"sk-[a-zA-Z0-9]{20,}"), "***API_KEY***"),
    (re.compile(r"gh[pousr]_[A-Za-z0-9]{20,}"), "***GITHUB_TOKEN***"),
    (re.compile(r'password["\']?\s*[:=]\s*["\']?[^\s"\']+', re.I), "password=***MASKED***"),
    (re.compile(r"(Authorization:\s*Bearer\s+)[\w.-]+", re.I), r"\1***MASKED***"),
]

_session_context: ContextVar[str | None] = ContextVar("permission_hook_session", default=None)


def set_session_context(session_id: str | None) -> None:
    """Attach a session id to every subsequent log line of this run."""
    _session_context.set(session_id or None)


def get_session_context() -> str | None:
    return _session_context.get()


def mask_secrets(message: str) -> str:
    for pattern, replacement in SENSITIVE_PATTERNS:
        message = pattern.sub(replacement, message)
    return message


class SecureFormatter(logging.Formatter):
    """Formatter that masks sensitive data and includes the session context."""

    def __init__(
        self,
        fmt: str | None = None,
        datefmt: str | None = None,
        include_session_context: bool = True,
    ) -> None:
        """Initialize the secure formatter.

        Args:
            fmt: Format string for log messages.
            datefmt: Date format string.
            include_session_context: Whether to include a [session=xxx] prefix.
        """
        super().__init__(fmt=fmt, datefmt=datefmt)
        self.include_session_context = include_session_context

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)

        if self.include_session_context:
            session_id = get_session_context()
            if session_id:
                prefix = f"[session={session_id}] "
                # "2024-01-15 10:30:00 - logger - LEVEL - message"
                parts = message.split(" - ", 3)
                if len(parts) == 4:
                    message = f"{parts[0]} - {parts[1]} - {parts[2]} - {prefix}{parts[3]}"
                else:
                    message = prefix + message

        return mask_secrets(message)


class JSONFormatter(logging.Formatter):
    """JSON formatter for structured logging with session context."""

    def __init__(self, include_session_context: bool = True) -> None:
        super().__init__()
        self.include_session_context = include_session_context

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON with sensitive data masked.

        Args:
            record: The log record to format.

        Returns:
            JSON-formatted log message with sensitive data masked.
        """
        log_data: dict[str, str | None] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if self.include_session_context:
            session_id = get_session_context()
            if session_id:
                log_data["session_id"] = session_id

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return mask_secrets(json.dumps(log_data))


def configure_logging(
    level: str = "WARNING",
    json_format: bool = False,
    mask_sensitive: bool = True,
    include_session_context: bool = True,
) -> None:
    """Configure logging for the hook process.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR).
        json_format: Use JSON format for structured logging.
        mask_sensitive: Mask sensitive data in logs.
        include_session_context: Include [session=xxx] in log messages.
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(level)

    if json_format:
        formatter: logging.Formatter = JSONFormatter(
            include_session_context=include_session_context
        )
    elif mask_sensitive:
        formatter = SecureFormatter(
            fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
            include_session_context=include_session_context,
        )
    else:
        formatter = logging.Formatter(
            fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)
