"""Shared utilities for the hook entrypoint.

Input sanitization, stdin/stdout handling and the crash log used by the
dispatcher.  Session ids and transcript paths come from the host process and
are validated before they are used to build filesystem paths.
"""

from __future__ import annotations

import codecs
import json
import os
import re
import sys
import time
from pathlib import Path
from typing import IO, Any

from permission_hook.core.errors import InputParseError
from permission_hook.core.hashing import compute_fingerprint

# ---------------------------------------------------------------------------
# Input sanitization
# ---------------------------------------------------------------------------

_SESSION_ID_RE = re.compile(r"^[a-zA-Z0-9_-]+$")
"""Safe characters for session IDs used as filenames."""

_WINDOWS_DEVICE_RE = re.compile(r"^(CON|NUL|PRN|AUX|COM[1-9]|LPT[1-9])(\..+)?$", re.IGNORECASE)
"""Windows reserved device names that must not be used as filenames."""

_MAX_SESSION_ID_LENGTH = 128

_MAX_CWD_LENGTH = 4096
"""Maximum allowed length for a CWD path."""

_MAX_LOG_SIZE = 1_048_576
"""Maximum log file size in bytes before rotation (1MB)."""

MAX_STDIN_BYTES = 524_288
"""Hook payloads above this size are truncated (and then fail to parse)."""

UNKNOWN_SESSION = "unknown"


def sanitize_session_id(session_id: str) -> str:
    """Sanitize a session ID for safe use as a filename component.

    Args:
        session_id: Raw session ID from stdin JSON.

    Returns:
        The validated session ID, or ``""`` if invalid.
    """
    if not session_id:
        return ""

    if len(session_id) > _MAX_SESSION_ID_LENGTH:
        return ""

    if not _SESSION_ID_RE.match(session_id):
        return ""

    if _WINDOWS_DEVICE_RE.match(session_id):
        return ""

    return session_id


def session_key(session_id: str) -> str:
    """Directory name under which a session's state lives.

    Safe ids are used verbatim.  Anything else is hashed, so two different
    unsafe ids never share a directory, and a missing id maps to
    ``unknown``.
    """
    if not session_id:
        return UNKNOWN_SESSION
    safe = sanitize_session_id(session_id)
    if safe:
        return safe
    return "sid-" + compute_fingerprint(session_id)[:32]


def validate_transcript_path(path: str) -> str:
    """Validate a transcript path for safe use.

    Rejects paths containing traversal sequences (``..``) or relative
    paths.

    Returns:
        The validated path, or ``""`` if invalid.
    """
    if not path:
        return ""

    if ".." in path:
        return ""

    if not os.path.isabs(path):
        return ""

    return path


def validate_cwd(cwd: str) -> str:
    """Validate a working directory path from hook stdin.

    Returns:
        The validated path, or ``""`` if invalid.
    """
    if not cwd:
        return ""

    if len(cwd) > _MAX_CWD_LENGTH:
        return ""

    if ".." in cwd:
        return ""

    if not os.path.isabs(cwd):
        return ""

    basename = os.path.basename(cwd)
    if basename and _WINDOWS_DEVICE_RE.match(basename):
        return ""

    return cwd


# ---------------------------------------------------------------------------
# Error logging
# ---------------------------------------------------------------------------


def log_hook_error(exc: BaseException, hook_name: str, log_dir: str | Path = "") -> None:
    """Append an error entry to ``hook-errors.log`` in *log_dir*.

    Rotates the log file when it exceeds ``_MAX_LOG_SIZE`` (1MB).
    This function **must never raise**; all exceptions are swallowed.

    Args:
        exc: The exception to log.
        hook_name: Name of the hook that failed.
        log_dir: Directory for the log (skipped when empty).
    """
    try:
        if not log_dir:
            return

        os.makedirs(log_dir, exist_ok=True)
        log_path = os.path.join(log_dir, "hook-errors.log")

        try:
            if os.path.exists(log_path) and os.path.getsize(log_path) > _MAX_LOG_SIZE:
                rotated = log_path + ".1"
                if os.path.exists(rotated):
                    os.remove(rotated)
                os.rename(log_path, rotated)
        except OSError:
            pass

        timestamp = time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime())
        line = f"[{timestamp}] {hook_name}: {type(exc).__name__}: {exc}\n"
        with open(log_path, "a", encoding="utf-8") as f:
            f.write(line)
    except Exception:
        pass  # Logger must never raise


# ---------------------------------------------------------------------------
# stdin / stdout helpers
# ---------------------------------------------------------------------------


def parse_payload(raw: bytes | str) -> dict[str, Any]:
    """Decode one hook payload.

    A UTF-8 byte-order mark is tolerated.

    Raises:
        InputParseError: If the payload is empty, not JSON, or not an object.
    """
    if isinstance(raw, bytes):
        if raw.startswith(codecs.BOM_UTF8):
            raw = raw[len(codecs.BOM_UTF8):]
        try:
            text = raw.decode("utf-8")
        except UnicodeDecodeError as e:
            raise InputParseError(f"Hook input is not UTF-8: {e}") from e
    else:
        text = raw.lstrip("\ufeff")

    if not text.strip():
        raise InputParseError("Hook input is empty")

    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise InputParseError(f"Hook input is not valid JSON: {e}") from e

    if not isinstance(data, dict):
        raise InputParseError(f"Hook input must be a JSON object, got {type(data).__name__}")
    return data


def read_stdin(stream: IO[bytes] | None = None) -> dict[str, Any]:
    """Read and parse the hook payload from stdin (512KB limit).

    Raises:
        InputParseError: See ``parse_payload``.
    """
    source = stream if stream is not None else sys.stdin.buffer
    return parse_payload(source.read(MAX_STDIN_BYTES))


def write_stdout_response(payload: dict[str, object], stream: IO[str] | None = None) -> None:
    """Write one JSON line to stdout and flush."""
    out = stream if stream is not None else sys.stdout
    json.dump(payload, out)
    out.write("\n")
    out.flush()
