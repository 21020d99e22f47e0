"""Unit tests for permission_hook.hooks.status_analyzer.

Tests cover:
1. Rule priority (ApiError > SessionLimit > Question > PlanReady > Review)
2. Pending interactive tools
3. ReviewComplete length threshold
4. Tool categorization (Bash commands, MCP verbs)
5. Transcript failures default to TaskComplete
"""

from __future__ import annotations

from typing import Any

import pytest

from permission_hook.core.patterns import PatternSet
from permission_hook.hooks.models import Status, ToolCall, TranscriptMessage
from permission_hook.hooks.status_analyzer import (
    PERMISSION_PROMPT,
    ToolKind,
    analyze,
    analyze_transcript,
    categorize_tool,
    is_api_error,
    is_session_limit,
    status_for_interactive_tool,
)


def msg(text: str = "", *tools: tuple[str, dict[str, Any]]) -> TranscriptMessage:
    return TranscriptMessage(
        role="assistant",
        text=text,
        tool_calls=tuple(ToolCall(name, tool_input) for name, tool_input in tools),
    )


# =============================================================================
# Rule order
# =============================================================================


@pytest.mark.unit
class TestAnalyze:
    def test_read_only_turn_with_long_text_is_review(self, patterns: PatternSet) -> None:
        window = [
            msg("", ("Read", {"file_path": "/a.py"}), ("Grep", {"pattern": "foo"})),
            msg("x" * 500),
        ]
        assert analyze(window, patterns) is Status.REVIEW_COMPLETE

    def test_read_only_turn_with_short_text_is_task_complete(self, patterns: PatternSet) -> None:
        window = [
            msg("", ("Read", {"file_path": "/a.py"}), ("Grep", {"pattern": "foo"})),
            msg("x" * 10),
        ]
        assert analyze(window, patterns) is Status.TASK_COMPLETE

    def test_active_tool_is_task_complete(self, patterns: PatternSet) -> None:
        window = [msg("", ("Edit", {"file_path": "/a.py"})), msg("y" * 500)]
        assert analyze(window, patterns) is Status.TASK_COMPLETE

    def test_no_tools_is_task_complete(self, patterns: PatternSet) -> None:
        assert analyze([msg("z" * 500)], patterns) is Status.TASK_COMPLETE

    def test_empty_window_is_task_complete(self) -> None:
        assert analyze([]) is Status.TASK_COMPLETE

    def test_api_error(self) -> None:
        window = [msg("API Error: 401 Unauthorized. Please run /login")]
        assert analyze(window) is Status.API_ERROR

    def test_session_limit(self) -> None:
        window = [msg("", ("Edit", {})), msg("Session limit reached. Resets at 5pm.")]
        assert analyze(window) is Status.SESSION_LIMIT_REACHED

    def test_api_error_beats_question(self) -> None:
        window = [
            msg("", ("AskUserQuestion", {"questions": []})),
            msg("API Error: 401 - run /login"),
        ]
        assert analyze(window) is Status.API_ERROR

    def test_old_error_banner_outside_recent_texts_ignored(self) -> None:
        window = [msg("API Error: 401 run /login")] + [msg("fine") for _ in range(3)]
        assert analyze(window) is Status.TASK_COMPLETE

    def test_pending_question(self) -> None:
        window = [msg("Which one?", ("AskUserQuestion", {"questions": []}))]
        assert analyze(window) is Status.QUESTION

    def test_answered_question_is_not_pending(self) -> None:
        window = [
            msg("", ("AskUserQuestion", {"questions": []})),
            msg("", ("Edit", {"file_path": "/a.py"})),
            msg("done"),
        ]
        assert analyze(window) is Status.TASK_COMPLETE

    def test_permission_prompt_notification(self) -> None:
        window = [msg("", ("Edit", {}))]
        assert analyze(window, notification_subtype=PERMISSION_PROMPT) is Status.QUESTION

    def test_question_beats_plan(self) -> None:
        window = [msg("", ("ExitPlanMode", {}), ("AskUserQuestion", {}))]
        assert analyze(window) is Status.QUESTION

    def test_plan_ready(self) -> None:
        window = [msg("Here is the plan", ("ExitPlanMode", {"plan": "1. do it"}))]
        assert analyze(window) is Status.PLAN_READY

    def test_review_threshold_is_strict(self) -> None:
        window = [msg("", ("Read", {})), msg("a" * 200)]
        assert analyze(window, review_min_chars=200) is Status.TASK_COMPLETE
        assert analyze(window, review_min_chars=199) is Status.REVIEW_COMPLETE


# =============================================================================
# Categorization
# =============================================================================


@pytest.mark.unit
class TestCategorizeTool:
    def test_fixed_mapping(self) -> None:
        assert categorize_tool(ToolCall("Read")) is ToolKind.PASSIVE
        assert categorize_tool(ToolCall("Write")) is ToolKind.ACTIVE
        assert categorize_tool(ToolCall("AskUserQuestion")) is ToolKind.INTERACTIVE
        assert categorize_tool(ToolCall("Mystery")) is ToolKind.OTHER

    def test_read_only_bash_is_passive(self, patterns: PatternSet) -> None:
        call = ToolCall("Bash", {"command": "git status"})
        assert categorize_tool(call, patterns) is ToolKind.PASSIVE

    def test_mutating_bash_is_active(self, patterns: PatternSet) -> None:
        call = ToolCall("Bash", {"command": "npm install"})
        assert categorize_tool(call, patterns) is ToolKind.ACTIVE

    def test_bash_without_policy_is_active(self) -> None:
        assert categorize_tool(ToolCall("Bash", {"command": "ls"})) is ToolKind.ACTIVE

    def test_mcp_verbs(self) -> None:
        assert categorize_tool(ToolCall("mcp__github__get_issue")) is ToolKind.PASSIVE
        assert categorize_tool(ToolCall("mcp__db__drop_table")) is ToolKind.OTHER

    def test_review_with_read_only_bash(self, patterns: PatternSet) -> None:
        window = [msg("", ("Bash", {"command": "git log"}), ("Read", {})), msg("r" * 300)]
        assert analyze(window, patterns) is Status.REVIEW_COMPLETE


# =============================================================================
# Signatures and helpers
# =============================================================================


@pytest.mark.unit
class TestSignatures:
    def test_api_error_needs_login_hint(self) -> None:
        assert is_api_error("API Error: 401 {...} · Please run /login")
        assert not is_api_error("API Error: 401")
        assert not is_api_error("we discussed /login pages")

    def test_session_limit_variants(self) -> None:
        assert is_session_limit("Session limit reached ∙ resets 3am")
        assert is_session_limit("Your session limit has been reached")
        assert not is_session_limit("no limits here")

    def test_status_for_interactive_tool(self) -> None:
        assert status_for_interactive_tool("AskUserQuestion") is Status.QUESTION
        assert status_for_interactive_tool("ExitPlanMode") is Status.PLAN_READY
        assert status_for_interactive_tool("Read") is None


@pytest.mark.unit
class TestAnalyzeTranscript:
    def test_missing_transcript(self, temp_storage) -> None:
        status, window = analyze_transcript(str(temp_storage / "missing.jsonl"))
        assert status is Status.TASK_COMPLETE
        assert window == []

    def test_empty_path(self) -> None:
        assert analyze_transcript("") == (Status.TASK_COMPLETE, [])

    def test_reads_window(self, transcript, patterns: PatternSet) -> None:
        path = transcript.write(
            [
                transcript.user_prompt("review the module"),
                transcript.assistant("", [("Read", {"file_path": "/a.py"})]),
                transcript.tool_result(),
                transcript.assistant("w" * 400),
            ]
        )
        status, window = analyze_transcript(path, patterns)
        assert status is Status.REVIEW_COMPLETE
        assert len(window) == 2
