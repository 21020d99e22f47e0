"""Unit tests for the command line entry point."""

from __future__ import annotations

import io
import json
import logging
from collections.abc import Generator

import pytest

from permission_hook import __version__
from permission_hook.__main__ import build_parser, main, run_hook
from permission_hook.config import Settings


@pytest.fixture(autouse=True)
def restore_root_logger() -> Generator[None, None, None]:
    """main() reconfigures the root logger; put it back afterwards."""
    root = logging.getLogger()
    handlers = root.handlers[:]
    level = root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


def run(payload: dict | bytes) -> tuple[int, str]:
    raw = payload if isinstance(payload, bytes) else json.dumps(payload).encode("utf-8")
    out = io.StringIO()
    code = run_hook(io.BytesIO(raw), out)
    return code, out.getvalue()


# =============================================================================
# hook
# =============================================================================


@pytest.mark.unit
class TestRunHook:
    def test_pre_tool_use_writes_decision(self, test_settings: Settings) -> None:
        code, output = run(
            {"hook_event_name": "PreToolUse", "tool_name": "Bash", "tool_input": {"command": "git status"}}
        )
        assert code == 0
        response = json.loads(output)
        assert response["decision"] == "allow"
        assert response["hookSpecificOutput"]["permissionDecision"] == "allow"

    def test_ask_is_emitted(self, test_settings: Settings) -> None:
        code, output = run({"tool_name": "Bash", "tool_input": {"command": "npm install"}})
        assert code == 0
        assert json.loads(output)["decision"] == "ask"

    def test_lifecycle_event_writes_nothing(self, test_settings: Settings) -> None:
        code, output = run({"hook_event_name": "Stop", "session_id": "s1"})
        assert code == 0
        assert output == ""

    def test_unknown_event(self, test_settings: Settings) -> None:
        assert run({"hook_event_name": "SessionStart"}) == (0, "")

    @pytest.mark.parametrize("raw", [b"", b"{oops", b'"just a string"'])
    def test_unparseable_input(self, test_settings: Settings, raw: bytes) -> None:
        assert run(raw) == (1, "")

    def test_invalid_event(self, test_settings: Settings) -> None:
        assert run({"hook_event_name": "PreToolUse", "tool_name": ["Bash"]}) == (1, "")

    def test_policy_file_used(self, test_settings: Settings) -> None:
        test_settings.config_dir.mkdir(parents=True)
        test_settings.config_file.write_text(
            json.dumps({"auto_approve": {"bash_patterns": [r"^npm\s+install$"]}})
        )
        _, output = run({"tool_name": "Bash", "tool_input": {"command": "npm install"}})
        assert json.loads(output)["decision"] == "allow"


# =============================================================================
# CLI
# =============================================================================


@pytest.mark.unit
class TestCli:
    def test_version(self, capsys: pytest.CaptureFixture[str]) -> None:
        with pytest.raises(SystemExit) as exc_info:
            main(["--version"])
        assert exc_info.value.code == 0
        assert capsys.readouterr().out.strip() == f"permission-hook {__version__}"

    def test_check(self, test_settings: Settings, capsys: pytest.CaptureFixture[str]) -> None:
        with pytest.raises(SystemExit) as exc_info:
            main(["check", "git status"])
        assert exc_info.value.code == 0
        assert capsys.readouterr().out.startswith("ALLOW: safe pattern [")

    def test_check_json(self, test_settings: Settings, capsys: pytest.CaptureFixture[str]) -> None:
        with pytest.raises(SystemExit):
            main(["check", "--json", "rm -rf /"])
        result = json.loads(capsys.readouterr().out)
        assert result["decision"] == "deny"
        assert result["reason"] == "dangerous pattern: rm -rf"

    def test_check_other_tool(
        self, test_settings: Settings, capsys: pytest.CaptureFixture[str]
    ) -> None:
        with pytest.raises(SystemExit):
            main(["check", "--tool", "Read", "anything"])
        assert capsys.readouterr().out.startswith("ALLOW: tool in allow list")

    def test_parser_defaults(self) -> None:
        args = build_parser().parse_args(["check", "ls"])
        assert args.tool == "Bash"
        assert not args.json
        assert build_parser().parse_args([]).command is None
