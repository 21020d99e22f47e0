"""Tiered Allow / Deny / Ask classification for PreToolUse events.

Tool-level rules run first (allow-listed tools, protected file paths, MCP
verbs).  ``Bash`` commands are parsed into segments and each segment is
evaluated with a fixed precedence::

    deny pattern / protected path  ->  Denied
    dangerous inline script        ->  Denied
    approve pattern / cd / safe script  ->  Approved
    anything else                  ->  Unclassified

Any Denied segment denies the command, even when another (or the same)
segment also matches an approve pattern.  Only a command whose segments are
all Approved is allowed; everything in between is left to the user.

Classification is a pure function of the tool call and the ``PatternSet``.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from permission_hook.core.patterns import CompiledPattern, PatternSet, first_match
from permission_hook.hooks.command_parser import (
    parse_command,
    split_words,
    strip_heredoc_bodies,
)
from permission_hook.hooks.models import (
    BASH_TOOLS,
    FILE_PATH_KEYS,
    FILE_WRITE_TOOLS,
    MCP_DESTRUCTIVE_VERBS,
    Decision,
    Segment,
    is_mcp_destructive,
    is_mcp_read_only,
    mcp_operation,
)
from permission_hook.hooks.script_scanner import scan_script

SAFE_BUILTINS: frozenset[str] = frozenset({"cd"})

REASON_TOOL_ALLOWED = "tool in allow list"
REASON_SAFE_PATTERN = "safe pattern"
REASON_NO_MATCH = "no matching pattern"
REASON_EMPTY = "empty command"
REASON_SUBSTITUTION = "command substitution needs review"


class SegmentVerdict(str, Enum):
    DENIED = "denied"
    APPROVED = "approved"
    UNCLASSIFIED = "unclassified"


@dataclass(frozen=True)
class SegmentResult:
    verdict: SegmentVerdict
    reason: str
    matched_pattern: str | None = None


_EMPTY_SEGMENT = SegmentResult(SegmentVerdict.APPROVED, REASON_EMPTY)


def _leading_words(text: str, count: int = 2) -> str:
    return " ".join(text.split()[:count])


def _deny_by_pattern(text: str, patterns: tuple[CompiledPattern, ...]) -> SegmentResult | None:
    for pattern in patterns:
        match = pattern.find(text)
        if match:
            shown = _leading_words(text[match.start():]) or pattern.source
            return SegmentResult(
                SegmentVerdict.DENIED, f"dangerous pattern: {shown}", pattern.source
            )
    return None


def _check_denied(segment: Segment, patterns: PatternSet) -> SegmentResult | None:
    """Tier 2 for one segment: deny patterns, then protected paths."""
    for candidate in (segment.text, segment.raw):
        result = _deny_by_pattern(candidate, patterns.denied_commands)
        if result is not None:
            return result

    for word in (*split_words(segment.args), *segment.redirect_targets):
        hit = first_match(patterns.protected_paths, word)
        if hit is not None:
            return SegmentResult(SegmentVerdict.DENIED, f"protected path: {word}", hit.source)
    return None


def evaluate_segment(segment: Segment, patterns: PatternSet) -> SegmentResult:
    """Classify one segment (Denied, Approved or Unclassified)."""
    if segment.is_empty:
        return _EMPTY_SEGMENT

    denied = _check_denied(segment, patterns)
    if denied is not None:
        return denied

    script = segment.script if patterns.inline_scripts_enabled else None
    if script is not None:
        scan = scan_script(script, patterns)
        if scan.dangerous:
            return SegmentResult(
                SegmentVerdict.DENIED,
                f"dangerous {script.interpreter} script: {scan.pattern}",
                scan.pattern,
            )

    if segment.has_substitution:
        return SegmentResult(SegmentVerdict.UNCLASSIFIED, REASON_SUBSTITUTION)

    approved = first_match(patterns.approved_commands, segment.text)
    if approved is not None:
        return SegmentResult(SegmentVerdict.APPROVED, REASON_SAFE_PATTERN, approved.source)
    if segment.program in SAFE_BUILTINS:
        return SegmentResult(SegmentVerdict.APPROVED, f"safe builtin: {segment.program}")
    if script is not None:
        return SegmentResult(SegmentVerdict.APPROVED, f"safe {script.interpreter} script")

    return SegmentResult(SegmentVerdict.UNCLASSIFIED, REASON_NO_MATCH)


def classify_command(command: str, patterns: PatternSet) -> Decision:
    """Classify a shell command line.

    Args:
        command: Raw ``Bash`` tool command.
        patterns: Compiled policy.

    Returns:
        Deny on the first denying segment (segment order), else Deny if the
        heredoc-free line as a whole matches a deny pattern (``curl … | sh``
        spans two segments), else Allow if every segment is Approved, else Ask.
    """
    if not command or not command.strip():
        return Decision.ask(REASON_EMPTY)

    top_level: list[SegmentResult] = []
    for segment in parse_command(command):
        result = evaluate_segment(segment, patterns)
        if result.verdict is SegmentVerdict.DENIED:
            return Decision.deny(result.reason, result.matched_pattern)
        # Nested segments can deny but never approve.
        if not segment.nested and not segment.is_empty:
            top_level.append(result)

    whole = _deny_by_pattern(strip_heredoc_bodies(command), patterns.denied_commands)
    if whole is not None:
        return Decision.deny(whole.reason, whole.matched_pattern)

    if not top_level:
        return Decision.ask(REASON_EMPTY)

    for result in top_level:
        if result.verdict is not SegmentVerdict.APPROVED:
            return Decision.ask(result.reason)

    primary = next(
        (r for r in top_level if not r.reason.startswith("safe builtin")),
        top_level[0],
    )
    return Decision.allow(primary.reason, primary.matched_pattern)


def _file_target(tool_input: dict[str, Any]) -> str:
    for key in FILE_PATH_KEYS:
        value = tool_input.get(key)
        if isinstance(value, str) and value:
            return value
    return ""


def classify(tool_name: str, tool_input: dict[str, Any], patterns: PatternSet) -> Decision:
    """Classify one PreToolUse tool call.

    Args:
        tool_name: Tool requested by the assistant.
        tool_input: The tool's arguments.
        patterns: Compiled policy.

    Returns:
        The Decision.  Never raises for well-formed dict input.
    """
    if tool_name in BASH_TOOLS:
        command = tool_input.get("command", "")
        return classify_command(command if isinstance(command, str) else "", patterns)

    if tool_name in FILE_WRITE_TOOLS:
        target = _file_target(tool_input)
        hit = first_match(patterns.protected_paths, target) if target else None
        if hit is not None:
            return Decision.deny(f"protected path: {target}", hit.source)

    if is_mcp_destructive(tool_name):
        op = mcp_operation(tool_name)
        verb = next(v for v in MCP_DESTRUCTIVE_VERBS if v in op)
        return Decision.deny("destructive MCP", verb)

    if tool_name in patterns.approved_tools:
        return Decision.allow(REASON_TOOL_ALLOWED)

    if is_mcp_read_only(tool_name):
        return Decision.allow("read-only MCP")

    return Decision.ask(REASON_NO_MATCH)


def extract_details(tool_input: dict[str, Any]) -> str:
    """Most descriptive single field of a tool input, for logs."""
    for key in ("command", "file_path", "pattern", "url"):
        value = tool_input.get(key)
        if isinstance(value, str) and value:
            return value
    return ""
