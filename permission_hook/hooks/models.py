"""Domain types and tool classification constants for hook handling.

Provides the parsed hook event, the immutable value types flowing through
the parser/classifier/analyzer, and the fixed tool-name categories.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

# ---------------------------------------------------------------------------
# Tool categories
# ---------------------------------------------------------------------------

BASH_TOOLS: frozenset[str] = frozenset({"Bash"})

ACTIVE_TOOLS: frozenset[str] = frozenset(
    {
        "Write",
        "Edit",
        "MultiEdit",
        "NotebookEdit",
        "Bash",
        "SlashCommand",
        "KillShell",
        "Task",
    }
)
"""Tools that mutate the workspace or delegate work."""

PASSIVE_TOOLS: frozenset[str] = frozenset(
    {
        "Read",
        "Grep",
        "Glob",
        "LS",
        "WebFetch",
        "WebSearch",
    }
)
"""Read-like tools.  A turn that only used these may be a review."""

INTERACTIVE_TOOLS: frozenset[str] = frozenset({"AskUserQuestion", "ExitPlanMode"})
"""Tools that hand control back to the user."""

FILE_WRITE_TOOLS: frozenset[str] = frozenset({"Write", "Edit", "MultiEdit", "NotebookEdit"})

FILE_PATH_KEYS: tuple[str, ...] = ("file_path", "path", "notebook_path")

MCP_PREFIX: str = "mcp__"

MCP_READ_ONLY_VERBS: tuple[str, ...] = (
    "get",
    "list",
    "read",
    "fetch",
    "search",
    "find",
    "query",
    "view",
    "show",
    "describe",
    "inspect",
    "status",
    "health",
)

MCP_DESTRUCTIVE_VERBS: tuple[str, ...] = (
    "delete",
    "remove",
    "destroy",
    "drop",
    "clear",
    "wipe",
    "purge",
    "erase",
    "reset",
    "truncate",
)


def mcp_operation(tool_name: str) -> str:
    """Return the lower-cased operation part of ``mcp__<server>__<op>``."""
    return tool_name.rsplit("__", 1)[-1].lower()


def is_mcp_destructive(tool_name: str) -> bool:
    if not tool_name.startswith(MCP_PREFIX):
        return False
    op = mcp_operation(tool_name)
    return any(verb in op for verb in MCP_DESTRUCTIVE_VERBS)


def is_mcp_read_only(tool_name: str) -> bool:
    """Read-only MCP call: read verb in the name and no destructive verb."""
    if not tool_name.startswith(MCP_PREFIX) or is_mcp_destructive(tool_name):
        return False
    op = mcp_operation(tool_name)
    return any(verb in op for verb in MCP_READ_ONLY_VERBS)


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class Verdict(str, Enum):
    """Permission tier."""

    ALLOW = "allow"
    DENY = "deny"
    ASK = "ask"


_DECISION_CODES: dict[Verdict, str] = {
    Verdict.ALLOW: "Y",
    Verdict.DENY: "N",
    Verdict.ASK: "ASK",
}


class Status(str, Enum):
    """Session lifecycle status derived from a transcript window."""

    TASK_COMPLETE = "task_complete"
    REVIEW_COMPLETE = "review_complete"
    QUESTION = "question"
    PLAN_READY = "plan_ready"
    SESSION_LIMIT_REACHED = "session_limit_reached"
    API_ERROR = "api_error"


class EventType(str, Enum):
    PRE_TOOL_USE = "PreToolUse"
    STOP = "Stop"
    SUBAGENT_STOP = "SubagentStop"
    NOTIFICATION = "Notification"


# ---------------------------------------------------------------------------
# Hook input
# ---------------------------------------------------------------------------


class HookEvent(BaseModel):
    """Parsed hook stdin payload.

    Accepts both the canonical field names and the host's alternates
    (``hook_event_name``, ``tool``, ``input``, ``notification_type``).
    Frozen: never mutated after parsing.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    event_type: str = Field(
        default=EventType.PRE_TOOL_USE.value,
        validation_alias=AliasChoices("event_type", "hook_event_name"),
    )
    session_id: str = ""
    tool_name: str = Field(default="", validation_alias=AliasChoices("tool_name", "tool"))
    tool_input: dict[str, Any] = Field(
        default_factory=dict,
        validation_alias=AliasChoices("tool_input", "input"),
    )
    transcript_path: str = ""
    notification_subtype: str = Field(
        default="",
        validation_alias=AliasChoices("notification_subtype", "notification_type"),
    )
    message: str = ""
    cwd: str = ""
    stop_hook_active: bool = False

    @field_validator(
        "event_type",
        "session_id",
        "tool_name",
        "transcript_path",
        "notification_subtype",
        "message",
        "cwd",
        mode="before",
    )
    @classmethod
    def _none_to_empty(cls, value: Any) -> Any:
        return "" if value is None else value

    @field_validator("event_type", mode="after")
    @classmethod
    def _default_event_type(cls, value: str) -> str:
        return value or EventType.PRE_TOOL_USE.value

    @field_validator("tool_input", mode="before")
    @classmethod
    def _coerce_tool_input(cls, value: Any) -> Any:
        return value if isinstance(value, dict) else {}


# ---------------------------------------------------------------------------
# Parser output
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class InlineScript:
    """Script body handed to an interpreter.  Extracted, never executed."""

    interpreter: str  # "python" | "node" | "powershell" | "cmd" | "shell"
    body: str
    origin: str  # "inline-flag" | "heredoc"


@dataclass(frozen=True)
class Segment:
    """One operator-delimited slice of a command line."""

    program: str
    args: str = ""
    raw: str = ""
    redirect_targets: tuple[str, ...] = ()
    script: InlineScript | None = None
    nested: bool = False
    has_substitution: bool = False

    @property
    def text(self) -> str:
        """Normalized ``program args`` string used for pattern matching."""
        if not self.args:
            return self.program
        return f"{self.program} {self.args}"

    @property
    def is_empty(self) -> bool:
        return not self.program and not self.args


# ---------------------------------------------------------------------------
# Classifier output
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Decision:
    """Permission verdict for one PreToolUse event."""

    verdict: Verdict
    reason: str
    matched_pattern: str | None = None

    @property
    def code(self) -> str:
        """Decision-log code: ``Y``, ``N`` or ``ASK``."""
        return _DECISION_CODES[self.verdict]

    @classmethod
    def allow(cls, reason: str, matched_pattern: str | None = None) -> Decision:
        return cls(Verdict.ALLOW, reason, matched_pattern)

    @classmethod
    def deny(cls, reason: str, matched_pattern: str | None = None) -> Decision:
        return cls(Verdict.DENY, reason, matched_pattern)

    @classmethod
    def ask(cls, reason: str = "no matching pattern") -> Decision:
        return cls(Verdict.ASK, reason)

    def to_response(self) -> dict[str, object]:
        """Hook stdout payload."""
        return {
            "decision": self.verdict.value,
            "reason": self.reason,
            "hookSpecificOutput": {
                "hookEventName": EventType.PRE_TOOL_USE.value,
                "permissionDecision": self.verdict.value,
                "permissionDecisionReason": self.reason,
            },
        }


# ---------------------------------------------------------------------------
# Transcript data types
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ToolCall:
    name: str
    tool_input: dict[str, Any] = field(default_factory=dict, hash=False)


@dataclass(frozen=True)
class TranscriptMessage:
    """One parsed transcript entry.

    ``is_tool_result`` marks ``user`` entries that only carry tool results;
    those are plumbing, not a new user prompt.
    """

    role: str  # "user" | "assistant"
    text: str = ""
    tool_calls: tuple[ToolCall, ...] = ()
    is_tool_result: bool = False
    timestamp: str = ""

    @property
    def is_user_prompt(self) -> bool:
        return self.role == "user" and not self.is_tool_result
