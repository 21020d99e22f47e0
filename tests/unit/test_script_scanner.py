"""Unit tests for permission_hook.hooks.script_scanner."""

from __future__ import annotations

import pytest

from permission_hook.config import HookConfig
from permission_hook.core.patterns import PatternSet
from permission_hook.hooks.models import InlineScript
from permission_hook.hooks.script_scanner import SAFE, scan_script


@pytest.mark.unit
class TestScanScript:
    def test_dangerous_python(self, patterns: PatternSet) -> None:
        script = InlineScript("python", "import os\nos.remove('x')", "heredoc")
        result = scan_script(script, patterns)
        assert result.dangerous
        assert result.pattern == r"os\.remove"

    def test_safe_python(self, patterns: PatternSet) -> None:
        script = InlineScript("python", "print('hello')", "inline-flag")
        assert scan_script(script, patterns) == SAFE

    def test_first_pattern_in_list_order_wins(self, patterns: PatternSet) -> None:
        script = InlineScript("python", "import subprocess, shutil\nshutil.rmtree('x')", "heredoc")
        assert scan_script(script, patterns).pattern == r"shutil\.rmtree"

    def test_dangerous_node(self, patterns: PatternSet) -> None:
        script = InlineScript("node", "require('child_process').exec('ls')", "inline-flag")
        assert scan_script(script, patterns).dangerous

    def test_powershell_case_insensitive(self, patterns: PatternSet) -> None:
        script = InlineScript("powershell", "remove-item C:\\temp -recurse", "inline-flag")
        assert scan_script(script, patterns).dangerous

    def test_cmd_word_boundary(self, patterns: PatternSet) -> None:
        assert scan_script(InlineScript("cmd", "del /q file.txt", "inline-flag"), patterns).dangerous
        assert not scan_script(InlineScript("cmd", "model list", "inline-flag"), patterns).dangerous

    def test_unknown_interpreter_is_safe(self, patterns: PatternSet) -> None:
        assert scan_script(InlineScript("ruby", "File.delete('x')", "heredoc"), patterns) == SAFE

    def test_custom_pattern_list(self) -> None:
        config = HookConfig.model_validate(
            {"inline_scripts": {"dangerous_python_patterns": [r"open\("]}}
        )
        custom = PatternSet.from_config(config)
        assert scan_script(InlineScript("python", "open('f', 'w')", "heredoc"), custom).dangerous
        assert not scan_script(
            InlineScript("python", "os.remove('x')", "heredoc"), custom
        ).dangerous
