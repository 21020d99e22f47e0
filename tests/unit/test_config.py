"""Unit tests for permission_hook.config."""

from __future__ import annotations

import json
import logging
from pathlib import Path

import pytest

from permission_hook.config import (
    DEFAULT_APPROVED_TOOLS,
    HookConfig,
    Settings,
    get_settings,
    load_hook_config,
    override_settings,
    parse_hook_config,
    reset_settings,
)
from permission_hook.core.errors import ConfigurationError
from permission_hook.core.patterns import PatternSet

# =============================================================================
# config.json
# =============================================================================


@pytest.mark.unit
class TestLoadHookConfig:
    def test_missing_file_gives_defaults(self, temp_storage: Path) -> None:
        config = load_hook_config(temp_storage / "config.json")
        assert config.auto_approve.tools == DEFAULT_APPROVED_TOOLS
        assert config.notifications.suppress_question_after_any_notification_seconds == 12.0

    def test_partial_file_keeps_other_defaults(self, temp_storage: Path) -> None:
        path = temp_storage / "config.json"
        path.write_text(json.dumps({"notifications": {"notify_on_subagent_stop": True}}))
        config = load_hook_config(path)
        assert config.notifications.notify_on_subagent_stop
        assert config.notifications.notify_on_text_response
        assert config.inline_scripts.enabled

    def test_bom_and_unknown_keys(self, temp_storage: Path) -> None:
        path = temp_storage / "config.json"
        path.write_text(
            json.dumps({"llm_fallback": {"enabled": True}, "logging": {"verbose": True}}),
            encoding="utf-8-sig",
        )
        assert load_hook_config(path).logging.verbose

    @pytest.mark.parametrize(
        "content",
        ["{broken", "[1, 2]", json.dumps({"auto_approve": {"tools": "Read"}})],
    )
    def test_invalid_file_falls_back(
        self, temp_storage: Path, content: str, caplog: pytest.LogCaptureFixture
    ) -> None:
        path = temp_storage / "config.json"
        path.write_text(content)
        with caplog.at_level(logging.WARNING):
            config = load_hook_config(path)
        assert config == HookConfig()
        assert "Using default policy" in caplog.text

    def test_parse_rejects_non_object(self) -> None:
        with pytest.raises(ConfigurationError):
            parse_hook_config("nope")

    def test_negative_cooldown_rejected(self) -> None:
        with pytest.raises(ConfigurationError):
            parse_hook_config(
                {"notifications": {"suppress_question_after_any_notification_seconds": -1}}
            )


@pytest.mark.unit
class TestPatternSet:
    def test_from_config(self) -> None:
        config = HookConfig.model_validate(
            {
                "auto_approve": {"tools": ["Read"], "bash_patterns": [r"^make\b"]},
                "auto_deny": {"bash_patterns": [], "protected_paths": [r"^/srv/"]},
            }
        )
        patterns = PatternSet.from_config(config)
        assert patterns.approved_tools == frozenset({"Read"})
        assert [p.source for p in patterns.approved_commands] == [r"^make\b"]
        assert patterns.denied_commands == ()
        assert patterns.protected_paths[0].search("/srv/data")

    def test_powershell_patterns_case_insensitive(self) -> None:
        (pattern, *_) = PatternSet.default().script_patterns("powershell")
        assert pattern.search("REMOVE-ITEM x")

    def test_unknown_interpreter_has_no_patterns(self) -> None:
        assert PatternSet.default().script_patterns("ruby") == ()


# =============================================================================
# Settings
# =============================================================================


@pytest.mark.unit
class TestSettings:
    def test_env_prefix(self, monkeypatch: pytest.MonkeyPatch, temp_storage: Path) -> None:
        monkeypatch.setenv("PERMISSION_HOOK_DEDUP_TTL_SECONDS", "9")
        monkeypatch.setenv("PERMISSION_HOOK_STATE_DIR", str(temp_storage))
        settings = Settings()
        assert settings.dedup_ttl_seconds == 9.0
        assert settings.sessions_dir == temp_storage / "sessions"

    def test_config_file_location(self, temp_storage: Path) -> None:
        settings = Settings(config_dir=temp_storage)
        assert settings.config_file == temp_storage / "config.json"
        assert settings.load_hook_config() == HookConfig()

    def test_singleton_override(self, temp_storage: Path) -> None:
        custom = Settings(config_dir=temp_storage)
        override_settings(custom)
        try:
            assert get_settings() is custom
        finally:
            reset_settings()
