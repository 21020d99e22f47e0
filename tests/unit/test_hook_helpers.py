"""Unit tests for permission_hook.hooks.hook_helpers."""

from __future__ import annotations

import codecs
import io
import json
from pathlib import Path

import pytest

from permission_hook.core.errors import InputParseError
from permission_hook.hooks.hook_helpers import (
    MAX_STDIN_BYTES,
    log_hook_error,
    parse_payload,
    read_stdin,
    sanitize_session_id,
    session_key,
    validate_cwd,
    validate_transcript_path,
    write_stdout_response,
)

# =============================================================================
# Sanitization
# =============================================================================


@pytest.mark.unit
class TestSanitizeSessionId:
    def test_valid(self) -> None:
        assert sanitize_session_id("abc-123_XYZ") == "abc-123_XYZ"

    @pytest.mark.parametrize(
        "session_id",
        ["", "../etc", "a/b", "a b", "CON", "nul.txt", "x" * 129],
    )
    def test_rejected(self, session_id: str) -> None:
        assert sanitize_session_id(session_id) == ""

    def test_session_key(self) -> None:
        assert session_key("abc") == "abc"
        assert session_key("") == "unknown"
        assert session_key("a/b").startswith("sid-")
        assert session_key("a/b") != session_key("a\\b")
        assert session_key("a/b") == session_key("a/b")


@pytest.mark.unit
class TestValidatePaths:
    def test_transcript_path(self, temp_storage: Path) -> None:
        good = str(temp_storage / "t.jsonl")
        assert validate_transcript_path(good) == good
        assert validate_transcript_path("t.jsonl") == ""
        assert validate_transcript_path("/a/../b.jsonl") == ""

    def test_cwd(self) -> None:
        assert validate_cwd("/home/me/proj") == "/home/me/proj"
        assert validate_cwd("proj") == ""
        assert validate_cwd("/home/../etc") == ""
        assert validate_cwd("/" + "a" * 5000) == ""


# =============================================================================
# stdin / stdout
# =============================================================================


@pytest.mark.unit
class TestParsePayload:
    def test_object(self) -> None:
        assert parse_payload(b'{"tool_name": "Bash"}') == {"tool_name": "Bash"}

    def test_bom_tolerated(self) -> None:
        assert parse_payload(codecs.BOM_UTF8 + b'{"a": 1}') == {"a": 1}
        assert parse_payload('\ufeff{"a": 1}') == {"a": 1}

    @pytest.mark.parametrize("raw", [b"", b"   \n", b"not json", b"[1, 2]", b"\xff\xfe"])
    def test_rejected(self, raw: bytes) -> None:
        with pytest.raises(InputParseError):
            parse_payload(raw)

    def test_read_stdin(self) -> None:
        assert read_stdin(io.BytesIO(b'{"session_id": "s1"}')) == {"session_id": "s1"}

    def test_oversized_input_fails(self) -> None:
        payload = json.dumps({"pad": "x" * MAX_STDIN_BYTES}).encode()
        with pytest.raises(InputParseError):
            read_stdin(io.BytesIO(payload))

    def test_write_stdout_response(self) -> None:
        out = io.StringIO()
        write_stdout_response({"decision": "allow"}, out)
        assert out.getvalue() == '{"decision": "allow"}\n'


@pytest.mark.unit
class TestLogHookError:
    def test_appends_line(self, temp_storage: Path) -> None:
        log_hook_error(ValueError("boom"), "Stop", temp_storage)
        content = (temp_storage / "hook-errors.log").read_text()
        assert "Stop: ValueError: boom" in content

    def test_no_dir_is_noop(self) -> None:
        log_hook_error(ValueError("boom"), "Stop", "")

    def test_never_raises(self, temp_storage: Path) -> None:
        blocker = temp_storage / "blocker"
        blocker.write_text("")
        log_hook_error(RuntimeError("x"), "Stop", blocker)
