"""Pytest fixtures for permission hook tests."""

from __future__ import annotations

import json
import tempfile
from collections.abc import Generator
from pathlib import Path
from typing import Any

import pytest

from permission_hook.config import HookConfig, Settings, override_settings, reset_settings
from permission_hook.core.patterns import PatternSet
from permission_hook.hooks.dispatcher import HookRuntime
from permission_hook.hooks.models import Status

# ---------------------------------------------------------------------------
# Basic fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def temp_storage() -> Generator[Path, None, None]:
    """Provide temporary storage directory."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def test_settings(temp_storage: Path) -> Generator[Settings, None, None]:
    """Provide test settings with temp config and state directories."""
    settings = Settings(
        config_dir=temp_storage / "config",
        state_dir=temp_storage / "state",
        log_level="DEBUG",
    )
    override_settings(settings)
    yield settings
    reset_settings()


@pytest.fixture
def patterns() -> PatternSet:
    """Built-in default policy."""
    return PatternSet.default()


# ---------------------------------------------------------------------------
# Transcripts
# ---------------------------------------------------------------------------


def user_prompt(text: str) -> dict[str, Any]:
    return {"type": "user", "message": {"role": "user", "content": text}}


def tool_result(tool_use_id: str = "toolu_1", content: str = "ok") -> dict[str, Any]:
    return {
        "type": "user",
        "message": {
            "role": "user",
            "content": [{"type": "tool_result", "tool_use_id": tool_use_id, "content": content}],
        },
    }


def assistant(text: str = "", tools: list[tuple[str, dict[str, Any]]] | None = None) -> dict[str, Any]:
    content: list[dict[str, Any]] = []
    if text:
        content.append({"type": "text", "text": text})
    for i, (name, tool_input) in enumerate(tools or []):
        content.append({"type": "tool_use", "id": f"toolu_{i}", "name": name, "input": tool_input})
    return {"type": "assistant", "message": {"role": "assistant", "content": content}}


class TranscriptWriter:
    """Writes JSONL transcripts under a temp directory."""

    def __init__(self, root: Path) -> None:
        self.root = root
        self._count = 0

    def write(self, entries: list[dict[str, Any]], raw_lines: list[str] | None = None) -> str:
        self._count += 1
        path = self.root / f"transcript-{self._count}.jsonl"
        lines = [json.dumps(entry) for entry in entries] + list(raw_lines or [])
        path.write_text("\n".join(lines) + "\n", encoding="utf-8")
        return str(path)

    user_prompt = staticmethod(user_prompt)
    tool_result = staticmethod(tool_result)
    assistant = staticmethod(assistant)


@pytest.fixture
def transcript(temp_storage: Path) -> TranscriptWriter:
    """Factory for JSONL transcript files."""
    directory = temp_storage / "transcripts"
    directory.mkdir()
    return TranscriptWriter(directory)


# ---------------------------------------------------------------------------
# Runtime
# ---------------------------------------------------------------------------


class RecordingNotifier:
    """Notifier that keeps every delivered notification."""

    def __init__(self) -> None:
        self.calls: list[tuple[Status, str, str]] = []

    def notify(
        self,
        status: Status,
        session_id: str,
        summary_text: str,
        cwd: str = "",
        git_branch: str | None = None,
    ) -> None:
        self.calls.append((status, session_id, summary_text))


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


class FakeClock:
    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def runtime(
    test_settings: Settings,
    notifier: RecordingNotifier,
    clock: FakeClock,
) -> HookRuntime:
    """Runtime over temp directories with a recording notifier and fake clock."""
    rt = HookRuntime.from_settings(test_settings, HookConfig(), notifier=notifier)
    rt.clock = clock
    return rt
