"""Session status detection from a transcript window.

The status is decided by an ordered rule table: each rule is a
``(guard, status)`` pair and the first guard that holds wins.  Order is
priority: an auth failure or a session limit must never be reported as an
ordinary "task complete".

The analyzer is pure.  Reading the transcript is ``transcript_reader``'s job;
an empty window (missing or unreadable transcript) falls through to
``TASK_COMPLETE``.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass
from enum import Enum

from permission_hook.core.patterns import PatternSet
from permission_hook.hooks.models import (
    ACTIVE_TOOLS,
    BASH_TOOLS,
    INTERACTIVE_TOOLS,
    PASSIVE_TOOLS,
    Status,
    ToolCall,
    TranscriptMessage,
    Verdict,
    is_mcp_read_only,
)
from permission_hook.hooks.permission import classify_command
from permission_hook.hooks.transcript_reader import read_window

PERMISSION_PROMPT = "permission_prompt"

RECENT_TEXT_MESSAGES = 3
"""How many of the latest assistant messages are searched for error banners."""

DEFAULT_REVIEW_MIN_CHARS = 200


class ToolKind(str, Enum):
    ACTIVE = "active"
    PASSIVE = "passive"
    INTERACTIVE = "interactive"
    OTHER = "other"


def categorize_tool(call: ToolCall, patterns: PatternSet | None = None) -> ToolKind:
    """Fixed tool-name mapping.

    A ``Bash`` call counts as passive only when its command would be
    auto-approved under *patterns* (``git status``, ``ls``...).
    """
    name = call.name
    if name in INTERACTIVE_TOOLS:
        return ToolKind.INTERACTIVE
    if name in BASH_TOOLS:
        command = call.tool_input.get("command", "")
        if patterns is not None and isinstance(command, str):
            if classify_command(command, patterns).verdict is Verdict.ALLOW:
                return ToolKind.PASSIVE
        return ToolKind.ACTIVE
    if name in PASSIVE_TOOLS or is_mcp_read_only(name):
        return ToolKind.PASSIVE
    if name in ACTIVE_TOOLS:
        return ToolKind.ACTIVE
    return ToolKind.OTHER


def is_api_error(text: str) -> bool:
    lower = text.lower()
    return "api error: 401" in lower and "/login" in lower


def is_session_limit(text: str) -> bool:
    lower = text.lower()
    return "session limit reached" in lower or "session limit has been reached" in lower


@dataclass(frozen=True)
class AnalysisContext:
    """Everything a rule may look at."""

    messages: tuple[TranscriptMessage, ...]
    kinds: tuple[tuple[str, ToolKind], ...]  # (tool name, kind) in call order
    notification_subtype: str = ""
    review_min_chars: int = DEFAULT_REVIEW_MIN_CHARS

    @property
    def recent_texts(self) -> list[str]:
        assistant = [m.text for m in self.messages if m.role == "assistant"]
        return assistant[-RECENT_TEXT_MESSAGES:]

    @property
    def final_text(self) -> str:
        for message in reversed(self.messages):
            if message.role == "assistant" and message.text:
                return message.text
        return ""

    def pending(self, tool_name: str) -> bool:
        """*tool_name* was called and no non-interactive tool ran after it."""
        last = None
        for idx, (name, _) in enumerate(self.kinds):
            if name == tool_name:
                last = idx
        if last is None:
            return False
        return all(kind is ToolKind.INTERACTIVE for _, kind in self.kinds[last + 1:])


def build_context(
    window: Sequence[TranscriptMessage],
    patterns: PatternSet | None = None,
    notification_subtype: str = "",
    review_min_chars: int = DEFAULT_REVIEW_MIN_CHARS,
) -> AnalysisContext:
    kinds = tuple(
        (call.name, categorize_tool(call, patterns))
        for message in window
        for call in message.tool_calls
    )
    return AnalysisContext(
        messages=tuple(window),
        kinds=kinds,
        notification_subtype=notification_subtype,
        review_min_chars=review_min_chars,
    )


# ---------------------------------------------------------------------------
# Rules
# ---------------------------------------------------------------------------


def _api_error(ctx: AnalysisContext) -> bool:
    return any(is_api_error(text) for text in ctx.recent_texts)


def _session_limit(ctx: AnalysisContext) -> bool:
    return any(is_session_limit(text) for text in ctx.recent_texts)


def _question(ctx: AnalysisContext) -> bool:
    return ctx.notification_subtype == PERMISSION_PROMPT or ctx.pending("AskUserQuestion")


def _plan_ready(ctx: AnalysisContext) -> bool:
    return ctx.pending("ExitPlanMode")


def _review_complete(ctx: AnalysisContext) -> bool:
    if not ctx.kinds:
        return False
    if any(kind is not ToolKind.PASSIVE for _, kind in ctx.kinds):
        return False
    return len(ctx.final_text) > ctx.review_min_chars


Rule = tuple[Callable[[AnalysisContext], bool], Status]

RULES: tuple[Rule, ...] = (
    (_api_error, Status.API_ERROR),
    (_session_limit, Status.SESSION_LIMIT_REACHED),
    (_question, Status.QUESTION),
    (_plan_ready, Status.PLAN_READY),
    (_review_complete, Status.REVIEW_COMPLETE),
)


def analyze(
    window: Sequence[TranscriptMessage],
    patterns: PatternSet | None = None,
    notification_subtype: str = "",
    review_min_chars: int = DEFAULT_REVIEW_MIN_CHARS,
) -> Status:
    """Derive the session status for a transcript window.

    Args:
        window: Assistant messages of the current turn, oldest first.
        patterns: Policy used to tell read-only ``Bash`` calls from mutating ones.
        notification_subtype: Subtype of a triggering Notification event.
        review_min_chars: Final-text length a read-only turn must exceed to
            count as a review.

    Returns:
        The first matching rule's status, else ``Status.TASK_COMPLETE``.
    """
    ctx = build_context(window, patterns, notification_subtype, review_min_chars)
    for guard, status in RULES:
        if guard(ctx):
            return status
    return Status.TASK_COMPLETE


def analyze_transcript(
    transcript_path: str,
    patterns: PatternSet | None = None,
    notification_subtype: str = "",
    max_messages: int = 20,
    review_min_chars: int = DEFAULT_REVIEW_MIN_CHARS,
) -> tuple[Status, list[TranscriptMessage]]:
    """Read the transcript window and analyze it.

    Returns:
        ``(status, window)``; the window is reused for the summary text.
    """
    window = read_window(transcript_path, max_messages) if transcript_path else []
    status = analyze(window, patterns, notification_subtype, review_min_chars)
    return status, window


def status_for_interactive_tool(tool_name: str) -> Status | None:
    """Status a PreToolUse of an interactive tool will lead to."""
    if tool_name == "AskUserQuestion":
        return Status.QUESTION
    if tool_name == "ExitPlanMode":
        return Status.PLAN_READY
    return None
