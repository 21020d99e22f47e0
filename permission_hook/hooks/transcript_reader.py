"""JSONL transcript reader for status analysis.

Reads the tail of a Claude Code session transcript and returns the messages
of the current turn: everything after the last genuine user prompt, capped
to the most recent *max_messages*.

Uses binary ``readline`` so oversized lines (base64 images, huge tool
results) can be skipped without decoding them, and seeks to the last
``MAX_TAIL_BYTES`` of very large transcripts.
"""

from __future__ import annotations

import json
import logging
from collections import deque
from pathlib import Path
from typing import Any

from permission_hook.hooks.hook_helpers import validate_transcript_path
from permission_hook.hooks.models import ToolCall, TranscriptMessage

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

MAX_LINE_BYTES: int = 1_048_576  # 1MB, oversized lines are skipped
MAX_TAIL_BYTES: int = 8_388_608  # 8MB, only the end of the transcript is read

_ROLES = frozenset({"user", "assistant"})


# ---------------------------------------------------------------------------
# Entry parsing
# ---------------------------------------------------------------------------


def _content_blocks(message: dict[str, Any]) -> list[Any]:
    content = message.get("content")
    if isinstance(content, str):
        return [{"type": "text", "text": content}]
    if isinstance(content, list):
        return content
    return []


def parse_entry(data: dict[str, Any]) -> TranscriptMessage | None:
    """Parse a single JSONL entry dict into a TranscriptMessage.

    Returns ``None`` for non-message entries (summaries, snapshots,
    progress) and for sidechain (subagent) entries.
    """
    if data.get("isSidechain", False):
        return None

    message = data.get("message")
    if not isinstance(message, dict):
        return None

    role = str(data.get("type") or message.get("role") or "")
    if role not in _ROLES:
        role = str(message.get("role", ""))
    if role not in _ROLES:
        return None

    text_parts: list[str] = []
    tool_calls: list[ToolCall] = []
    tool_results = 0

    for block in _content_blocks(message):
        if not isinstance(block, dict):
            continue
        block_type = block.get("type")
        if block_type == "text":
            text = block.get("text", "")
            if isinstance(text, str) and text.strip():
                text_parts.append(text.strip())
        elif block_type == "tool_use":
            name = block.get("name", "")
            tool_input = block.get("input")
            if isinstance(name, str) and name:
                tool_calls.append(
                    ToolCall(name=name, tool_input=tool_input if isinstance(tool_input, dict) else {})
                )
        elif block_type == "tool_result":
            tool_results += 1

    return TranscriptMessage(
        role=role,
        text="\n".join(text_parts),
        tool_calls=tuple(tool_calls),
        is_tool_result=role == "user" and tool_results > 0 and not text_parts,
        timestamp=str(data.get("timestamp", "")),
    )


# ---------------------------------------------------------------------------
# Transcript reading
# ---------------------------------------------------------------------------


def read_window(transcript_path: str, max_messages: int = 20) -> list[TranscriptMessage]:
    """Read the current turn's messages from a transcript.

    Args:
        transcript_path: Absolute path to the JSONL transcript.
        max_messages: Cap on the number of returned messages (most recent kept).

    Returns:
        Assistant messages after the last genuine user prompt, oldest first.  Returns
        ``[]`` for invalid paths, missing files and read errors.
    """
    transcript_path = validate_transcript_path(transcript_path)
    if not transcript_path or max_messages <= 0:
        return []

    path = Path(transcript_path)
    try:
        file_size = path.stat().st_size
    except OSError:
        return []

    if file_size == 0:
        return []

    window: deque[TranscriptMessage] = deque(maxlen=max_messages)

    try:
        with open(path, "rb") as f:
            if file_size > MAX_TAIL_BYTES:
                f.seek(file_size - MAX_TAIL_BYTES)
                f.readline()  # discard the partial first line

            while True:
                line_bytes = f.readline()
                if not line_bytes:
                    break

                if len(line_bytes) > MAX_LINE_BYTES:
                    continue

                stripped = line_bytes.strip()
                if not stripped:
                    continue

                try:
                    data = json.loads(stripped.decode("utf-8"))
                except (UnicodeDecodeError, json.JSONDecodeError):
                    continue

                if not isinstance(data, dict):
                    continue

                entry = parse_entry(data)
                if entry is None:
                    continue
                if entry.is_user_prompt:
                    window.clear()
                elif entry.role == "assistant":
                    window.append(entry)
    except OSError as e:
        logger.warning(f"Could not read transcript {path.name}: {e}")
        return []

    return list(window)
