"""Event router for hook invocations.

Routes one parsed hook payload to the handler for its event type:

* ``PreToolUse``: classify the tool call and return the Decision payload.
* ``Stop`` / ``SubagentStop`` / ``Notification``: analyze the transcript,
  apply the question cooldown and the dedup coordinator, then hand the
  notification to the ``Notifier``.

Collaborators (policy, stores, notifier) are bundled in a ``HookRuntime`` so
tests can inject temporary directories and recording notifiers.

Event names are accepted in PascalCase (canonical), camelCase and
kebab-case.  Unknown events are ignored.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from permission_hook.config import HookConfig, Settings, get_settings
from permission_hook.core.errors import InputParseError, StateStoreError
from permission_hook.core.logging import set_session_context
from permission_hook.core.patterns import PatternSet
from permission_hook.core.utils import epoch_now, utc_now
from permission_hook.hooks.decision_log import DecisionLog
from permission_hook.hooks.dedup import DedupCoordinator, DedupOutcome
from permission_hook.hooks.hook_helpers import (
    log_hook_error,
    session_key,
    validate_cwd,
    validate_transcript_path,
)
from permission_hook.hooks.models import (
    Decision,
    EventType,
    HookEvent,
    Status,
)
from permission_hook.hooks.notifier import LoggingNotifier, Notifier
from permission_hook.hooks.permission import classify, extract_details
from permission_hook.hooks.session_state import SessionStateStore
from permission_hook.hooks.status_analyzer import analyze_transcript, status_for_interactive_tool
from permission_hook.hooks.summary import generate_summary, read_git_branch

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_EVENT_ALIASES: dict[str, str] = {
    # PascalCase (canonical)
    "PreToolUse": EventType.PRE_TOOL_USE.value,
    "Stop": EventType.STOP.value,
    "SubagentStop": EventType.SUBAGENT_STOP.value,
    "Notification": EventType.NOTIFICATION.value,
    # camelCase
    "preToolUse": EventType.PRE_TOOL_USE.value,
    "stop": EventType.STOP.value,
    "subagentStop": EventType.SUBAGENT_STOP.value,
    "notification": EventType.NOTIFICATION.value,
    # kebab-case (CLI)
    "pre-tool-use": EventType.PRE_TOOL_USE.value,
    "subagent-stop": EventType.SUBAGENT_STOP.value,
}

REASON_INTERNAL_ERROR = "internal error, deferring to user"


# ---------------------------------------------------------------------------
# Runtime
# ---------------------------------------------------------------------------


@dataclass
class HookRuntime:
    """Everything a handler needs for one invocation."""

    settings: Settings
    hook_config: HookConfig
    patterns: PatternSet
    state_store: SessionStateStore
    dedup: DedupCoordinator
    decision_log: DecisionLog
    notifier: Notifier = field(default_factory=LoggingNotifier)
    clock: Callable[[], float] = epoch_now

    @classmethod
    def from_settings(
        cls,
        settings: Settings | None = None,
        hook_config: HookConfig | None = None,
        notifier: Notifier | None = None,
    ) -> HookRuntime:
        """Build the runtime from process settings and the policy file."""
        settings = settings or get_settings()
        hook_config = hook_config or settings.load_hook_config()
        sessions_dir = settings.sessions_dir
        return cls(
            settings=settings,
            hook_config=hook_config,
            patterns=PatternSet.from_config(hook_config),
            state_store=SessionStateStore(sessions_dir, settings.lock_timeout_seconds),
            dedup=DedupCoordinator(
                sessions_dir,
                ttl_seconds=settings.dedup_ttl_seconds,
                lock_timeout=settings.lock_timeout_seconds,
            ),
            decision_log=DecisionLog(
                settings.config_dir,
                enabled=settings.decision_log_enabled and hook_config.logging.enabled,
                recent_prompts_limit=settings.recent_prompts_limit,
                lock_timeout=settings.lock_timeout_seconds,
            ),
            notifier=notifier or LoggingNotifier(),
        )


# ---------------------------------------------------------------------------
# Event normalization
# ---------------------------------------------------------------------------


def normalize_event(raw: str) -> str | None:
    """Canonical event name, ``PreToolUse`` for an empty name, ``None`` if unknown."""
    if not raw:
        return EventType.PRE_TOOL_USE.value
    return _EVENT_ALIASES.get(raw)


def _sanitized(event: HookEvent) -> HookEvent:
    """Drop transcript paths and working directories that fail validation."""
    return event.model_copy(
        update={
            "transcript_path": validate_transcript_path(event.transcript_path),
            "cwd": validate_cwd(event.cwd),
        }
    )


# ---------------------------------------------------------------------------
# PreToolUse
# ---------------------------------------------------------------------------


def _handle_pre_tool_use(event: HookEvent, runtime: HookRuntime) -> dict[str, object] | None:
    details = extract_details(event.tool_input)
    try:
        decision = classify(event.tool_name, event.tool_input, runtime.patterns)
    except Exception as exc:
        logger.exception(f"Classification failed for {event.tool_name or 'unknown tool'}")
        log_hook_error(exc, "PreToolUse", runtime.settings.config_dir)
        decision = Decision.ask(REASON_INTERNAL_ERROR)

    logger.debug(f"{decision.verdict.value.upper()}: {event.tool_name} - {decision.reason}")
    runtime.decision_log.log_decision(
        utc_now(), event.tool_name, decision.code, decision.reason, details
    )

    expected = status_for_interactive_tool(event.tool_name)
    if expected is not None:
        logger.debug(f"{event.tool_name} waits on the user: expecting {expected.value}")
        try:
            runtime.state_store.record_interactive_tool(
                event.session_id, event.tool_name, runtime.clock(), event.cwd
            )
        except StateStoreError as e:
            logger.warning(f"Failed to record interactive tool: {e}")

    return decision.to_response()


# ---------------------------------------------------------------------------
# Lifecycle events
# ---------------------------------------------------------------------------


def _notify(event: HookEvent, runtime: HookRuntime) -> Status | None:
    """Shared lifecycle flow.

    Returns the delivered status, or ``None`` when the notification was
    suppressed (cooldown or duplicate).
    """
    settings = runtime.settings
    status, window = analyze_transcript(
        event.transcript_path,
        runtime.patterns,
        notification_subtype=event.notification_subtype,
        max_messages=settings.transcript_window,
        review_min_chars=settings.review_min_chars,
    )
    summary = generate_summary(window, status) or event.message
    now = runtime.clock()
    logger.debug(f"{event.event_type}: detected {status.value}")

    notifications = runtime.hook_config.notifications
    text_only = bool(window) and not any(m.tool_calls for m in window)
    if status is Status.TASK_COMPLETE and text_only and not notifications.notify_on_text_response:
        logger.debug("Text-only response, notification disabled")
        return None

    if status is Status.QUESTION:
        window_seconds = notifications.suppress_question_after_any_notification_seconds
        if runtime.state_store.should_suppress_question(event.session_id, now, window_seconds):
            logger.debug("Question suppressed by cooldown")
            return None

    if runtime.dedup.check(event.session_id, status, summary, now) is DedupOutcome.DUPLICATE:
        logger.debug("Duplicate notification (early check)")
        return None
    if runtime.dedup.acquire(event.session_id, status, summary, now) is DedupOutcome.DUPLICATE:
        logger.debug("Duplicate notification (lost the race)")
        return None

    try:
        runtime.state_store.update(event.session_id, status, now, event.cwd)
    except StateStoreError as e:
        logger.warning(f"Failed to update session state: {e}")

    runtime.notifier.notify(
        status,
        event.session_id,
        summary,
        cwd=event.cwd,
        git_branch=read_git_branch(event.cwd),
    )
    runtime.decision_log.log_decision(
        utc_now(), event.event_type, "NOTIFY", status.value, session_key(event.session_id)
    )
    runtime.dedup.purge_expired(event.session_id, now)
    return status


def _handle_stop(event: HookEvent, runtime: HookRuntime) -> dict[str, object] | None:
    """Handle Stop, with the loop guard."""
    if event.stop_hook_active:
        return None
    _notify(event, runtime)
    return None


def _handle_subagent_stop(event: HookEvent, runtime: HookRuntime) -> dict[str, object] | None:
    if not runtime.hook_config.notifications.notify_on_subagent_stop:
        logger.debug("SubagentStop notifications disabled")
        return None
    return _handle_stop(event, runtime)


def _handle_notification(event: HookEvent, runtime: HookRuntime) -> dict[str, object] | None:
    _notify(event, runtime)
    return None


# ---------------------------------------------------------------------------
# Handler registry
# ---------------------------------------------------------------------------

_HandlerFn = Callable[[HookEvent, HookRuntime], dict[str, object] | None]

_HANDLER_MAP: dict[str, _HandlerFn] = {
    EventType.PRE_TOOL_USE.value: _handle_pre_tool_use,
    EventType.STOP.value: _handle_stop,
    EventType.SUBAGENT_STOP.value: _handle_subagent_stop,
    EventType.NOTIFICATION.value: _handle_notification,
}


# ---------------------------------------------------------------------------
# Primary dispatch function (testable surface)
# ---------------------------------------------------------------------------


def dispatch(data: dict[str, Any], runtime: HookRuntime | None = None) -> dict[str, object] | None:
    """Route one hook payload to its handler.

    Args:
        data: Parsed stdin JSON.
        runtime: Collaborators; built from the process settings when omitted.

    Returns:
        The stdout payload for PreToolUse, ``None`` for lifecycle and unknown
        events.

    Raises:
        InputParseError: If *data* cannot be read as a hook event.
    """
    try:
        event = HookEvent.model_validate(data)
    except PydanticValidationError as e:
        raise InputParseError(f"Hook input is not a valid event: {e}") from e

    canonical = normalize_event(event.event_type)
    if canonical is None:
        logger.debug(f"Ignoring unknown hook event: {event.event_type}")
        return None

    runtime = runtime or HookRuntime.from_settings()
    event = _sanitized(event.model_copy(update={"event_type": canonical}))
    set_session_context(session_key(event.session_id))
    try:
        return _HANDLER_MAP[canonical](event, runtime)
    except Exception as exc:
        if canonical == EventType.PRE_TOOL_USE.value:
            raise
        # Lifecycle failures never reach the host.
        logger.exception(f"{canonical} handler failed")
        log_hook_error(exc, canonical, runtime.settings.config_dir)
        return None
    finally:
        set_session_context(None)
