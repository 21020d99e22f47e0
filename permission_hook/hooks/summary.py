"""Notification text: summary, title and session display name.

The summary is derived from the same transcript window the status analyzer
looked at, stripped of markdown and cut to ``MAX_SUMMARY_LENGTH`` characters
at a word boundary.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Sequence
from pathlib import Path

from permission_hook.hooks.models import Status, TranscriptMessage

logger = logging.getLogger(__name__)

MAX_SUMMARY_LENGTH = 150
RECENT_MESSAGES = 3

_STATUS_TITLES: dict[Status, str] = {
    Status.TASK_COMPLETE: "Task Complete",
    Status.REVIEW_COMPLETE: "Review Complete",
    Status.QUESTION: "Question",
    Status.PLAN_READY: "Plan Ready",
    Status.SESSION_LIMIT_REACHED: "Session Limit",
    Status.API_ERROR: "Auth Error",
}

_FIXED_TEXT: dict[Status, str] = {
    Status.SESSION_LIMIT_REACHED: "Session limit reached - please start a new conversation",
    Status.API_ERROR: "API authentication error - please log in again",
}

PLAN_READY_FALLBACK = "Plan is ready for review"

_CODE_BLOCK_RE = re.compile(r"```[\s\S]*?```")
_INLINE_CODE_RE = re.compile(r"`[^`]+`")
_LINK_RE = re.compile(r"\[([^\]]+)\]\([^)]+\)")
_HEADER_RE = re.compile(r"^#{1,6}\s*", re.MULTILINE)
_BULLET_RE = re.compile(r"^\s*[-*+]\s+", re.MULTILINE)
_WHITESPACE_RE = re.compile(r"\s+")

_HEAD_REF_PREFIX = "ref: refs/heads/"


def clean_markdown(text: str) -> str:
    """Flatten markdown to a single line of plain text.

    Code blocks become ``[code]``, inline code is dropped, links keep their
    label, and emphasis, headers and bullets are removed.
    """
    result = _CODE_BLOCK_RE.sub("[code]", text)
    result = _INLINE_CODE_RE.sub("", result)
    result = _LINK_RE.sub(r"\1", result)
    result = _HEADER_RE.sub("", result)
    result = _BULLET_RE.sub("", result)
    result = result.replace("**", "").replace("__", "").replace("*", "")
    result = result.replace("_", " ")
    return _WHITESPACE_RE.sub(" ", result).strip()


def truncate_smart(text: str, max_len: int = MAX_SUMMARY_LENGTH) -> str:
    """Cut *text* to *max_len* characters plus ``...``.

    Prefers the last space in the second half of the kept text so words are
    not split.
    """
    if len(text) <= max_len:
        return text
    if max_len <= 0:
        return "..."

    kept = text[:max_len]
    last_space = kept.rfind(" ")
    if last_space > max_len // 2:
        return text[:last_space] + "..."
    return kept + "..."


def _question_text(message: TranscriptMessage) -> str:
    for call in message.tool_calls:
        if call.name != "AskUserQuestion":
            continue
        questions = call.tool_input.get("questions")
        if isinstance(questions, list) and questions:
            first = questions[0]
            if isinstance(first, dict) and isinstance(first.get("question"), str):
                return first["question"]
        question = call.tool_input.get("question")
        if isinstance(question, str):
            return question
    return ""


def _last_text(messages: Sequence[TranscriptMessage]) -> str:
    for message in reversed(messages):
        if message.text:
            return message.text
    return ""


def _relevant_text(window: Sequence[TranscriptMessage], status: Status) -> str:
    if status in _FIXED_TEXT:
        return _FIXED_TEXT[status]

    recent = [m for m in window if m.role == "assistant"][-RECENT_MESSAGES:]

    if status is Status.QUESTION:
        for message in reversed(recent):
            question = _question_text(message)
            if question:
                return question
    elif status is Status.PLAN_READY:
        return _last_text(recent) or PLAN_READY_FALLBACK

    return _last_text(recent)


def generate_summary(window: Sequence[TranscriptMessage], status: Status) -> str:
    """One-line notification body for *status*.

    Args:
        window: Transcript window returned by the status analyzer.
        status: The detected status.

    Returns:
        Cleaned, truncated text; may be empty when the window has no text.
    """
    return truncate_smart(clean_markdown(_relevant_text(window, status)))


def status_title(status: Status) -> str:
    return _STATUS_TITLES.get(status, "Notification")


def session_name(session_id: str, cwd: str = "", git_branch: str | None = None) -> str:
    """Human-friendly label: ``[branch] folder``, else ``Session <id8>``."""
    parts: list[str] = []
    if git_branch:
        parts.append(f"[{git_branch}]")

    if cwd:
        folder = re.split(r"[\\/]", cwd.rstrip("\\/"))[-1]
        if folder:
            parts.append(folder)

    if not parts:
        parts.append(f"Session {session_id[:8]}")
    return " ".join(parts)


def read_git_branch(cwd: str) -> str | None:
    """Current branch of the repository rooted at *cwd*.

    Reads ``.git/HEAD`` directly (no subprocess).  Worktrees whose ``.git``
    is a ``gitdir:`` file are followed.  A detached HEAD yields the short
    commit hash.
    """
    if not cwd:
        return None

    git_path = Path(cwd) / ".git"
    try:
        if git_path.is_file():
            content = git_path.read_text(encoding="utf-8").strip()
            if not content.startswith("gitdir:"):
                return None
            git_path = (git_path.parent / content[len("gitdir:"):].strip()).resolve()

        head = (git_path / "HEAD").read_text(encoding="utf-8").strip()
    except OSError as e:
        logger.debug(f"No git HEAD under {cwd}: {e}")
        return None

    if head.startswith(_HEAD_REF_PREFIX):
        return head[len(_HEAD_REF_PREFIX):] or None
    return head[:7] or None
