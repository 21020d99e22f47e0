"""Configuration system for the permission hook.

Two layers:

* ``Settings`` (pydantic-settings): process-level knobs read from
  ``PERMISSION_HOOK_*`` environment variables / ``.env``: where state and
  logs live, TTLs, lock timeouts, log level.
* ``HookConfig`` (pydantic): the user's policy file ``config.json`` in the
  config directory: approve/deny patterns, protected paths, inline-script
  rules, notification preferences.  Every key is optional; missing keys take
  the built-in defaults below.
"""

from __future__ import annotations

import json
import logging
import tempfile
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError
from pydantic_settings import BaseSettings

from permission_hook.core.errors import ConfigurationError

logger = logging.getLogger(__name__)

CONFIG_FILE_NAME = "config.json"

# =============================================================================
# Built-in policy defaults
# =============================================================================

DEFAULT_APPROVED_TOOLS: list[str] = [
    "Read",
    "Glob",
    "Grep",
    "WebFetch",
    "WebSearch",
    "Task",
    "TaskList",
    "TaskGet",
    "TaskCreate",
    "TaskUpdate",
]

DEFAULT_APPROVED_BASH_PATTERNS: list[str] = [
    r"^git\s+(status|log|diff|branch|show|remote|fetch)",
    r"^ls(\s|$)",
    r"^pwd$",
    r"^echo\s",
    r"^cat\s",
    r"^head\s",
    r"^tail\s",
    r"^grep\s",
    r"^wc\s",
    r"^which\s",
    r"^npm\s+(list|ls|outdated|view|info|search)",
    r"^node\s+--version",
    r"^python3?\s+--version",
    r"^pip3?\s+(list|show|search)",
    r"^docker\s+(ps|images|inspect|logs)",
    r"^adb\s+(logcat|devices|version|get-state|get-serialno)",
    r"^gh\s+(repo|pr|issue|release|run|workflow)\s+(view|list|status|diff|checks)",
    r"^gh\s+api\s",
    r"^gh\s+auth\s+status",
    r"^(whoami|hostname|date|uname|env)$",
]

DEFAULT_DENIED_BASH_PATTERNS: list[str] = [
    r"rm\s+(-rf?|--recursive)?\s*[/~]",
    r"rm\s+-rf?\s+\*",
    r"git\s+push.*--force",
    r"git\s+reset\s+--hard",
    r"curl.*\|\s*(ba)?sh",
    r"wget.*\|\s*(ba)?sh",
    r"sudo\s+rm",
    r"npm\s+publish",
    r"yarn\s+publish",
    r"mkfs\.",
    r"dd\s+.*of=/dev",
    r">\s*/etc/",
    r"chmod\s+(-R\s+)?777\s+/",
]

DEFAULT_PROTECTED_PATHS: list[str] = [
    r"^/etc/",
    r"^/usr/",
    r"^/bin/",
    r"^/sbin/",
    r"(?i)^C:\\Windows",
    r"(?i)^C:\\Program Files",
]

DEFAULT_DANGEROUS_PYTHON: list[str] = [
    r"os\.remove",
    r"os\.unlink",
    r"os\.rmdir",
    r"os\.system",
    r"shutil\.rmtree",
    r"subprocess",
]

DEFAULT_DANGEROUS_NODE: list[str] = [
    r"child_process",
    r"fs\.unlink",
    r"fs\.rmdir",
    r"fs\.rm\(",
    r"rimraf",
]

# PowerShell and cmd patterns are compiled case-insensitive.
DEFAULT_DANGEROUS_POWERSHELL: list[str] = [
    r"Remove-Item",
    r"rm\s+-r",
    r"del\s+-r",
    r"Stop-Process",
    r"Kill",
    r"Format-Volume",
    r"Clear-Disk",
    r"Initialize-Disk",
    r"Invoke-Expression",
    r"iex\s",
    r"Start-Process.*-Verb\s+RunAs",
    r"Set-ExecutionPolicy",
    r"Disable-",
    r"Stop-Service",
    r"Uninstall-",
]

DEFAULT_DANGEROUS_CMD: list[str] = [
    r"\bdel\s",
    r"\berase\s",
    r"\brd\s+/s",
    r"\brmdir\s+/s",
    r"\bformat\s",
    r"\breg\s+delete",
    r"\bshutdown\b",
    r"\btaskkill\b",
]


# =============================================================================
# Policy file models (config.json)
# =============================================================================


class _PolicySection(BaseModel):
    model_config = ConfigDict(extra="ignore")


class AutoApproveConfig(_PolicySection):
    """Tier 1: tools and command shapes that never need a prompt."""

    tools: list[str] = Field(default_factory=lambda: list(DEFAULT_APPROVED_TOOLS))
    bash_patterns: list[str] = Field(
        default_factory=lambda: list(DEFAULT_APPROVED_BASH_PATTERNS)
    )


class AutoDenyConfig(_PolicySection):
    """Tier 2: command shapes and paths that are always blocked."""

    bash_patterns: list[str] = Field(default_factory=lambda: list(DEFAULT_DENIED_BASH_PATTERNS))
    protected_paths: list[str] = Field(default_factory=lambda: list(DEFAULT_PROTECTED_PATHS))


class InlineScriptsConfig(_PolicySection):
    """Dangerous-call patterns for script bodies passed to interpreters."""

    enabled: bool = True
    dangerous_python_patterns: list[str] = Field(
        default_factory=lambda: list(DEFAULT_DANGEROUS_PYTHON)
    )
    dangerous_node_patterns: list[str] = Field(
        default_factory=lambda: list(DEFAULT_DANGEROUS_NODE)
    )
    dangerous_powershell_patterns: list[str] = Field(
        default_factory=lambda: list(DEFAULT_DANGEROUS_POWERSHELL)
    )
    dangerous_cmd_patterns: list[str] = Field(default_factory=lambda: list(DEFAULT_DANGEROUS_CMD))


class LoggingConfig(_PolicySection):
    enabled: bool = True
    verbose: bool = False


class NotificationsConfig(_PolicySection):
    suppress_question_after_any_notification_seconds: float = Field(default=12.0, ge=0.0)
    notify_on_subagent_stop: bool = False
    notify_on_text_response: bool = True


class HookConfig(_PolicySection):
    """Parsed ``config.json``."""

    auto_approve: AutoApproveConfig = Field(default_factory=AutoApproveConfig)
    auto_deny: AutoDenyConfig = Field(default_factory=AutoDenyConfig)
    inline_scripts: InlineScriptsConfig = Field(default_factory=InlineScriptsConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    notifications: NotificationsConfig = Field(default_factory=NotificationsConfig)


def parse_hook_config(data: Any) -> HookConfig:
    """Validate a decoded ``config.json`` payload.

    Raises:
        ConfigurationError: If the payload is not an object or a field has
            the wrong type.
    """
    if not isinstance(data, dict):
        raise ConfigurationError("config.json must contain a JSON object")
    try:
        return HookConfig.model_validate(data)
    except PydanticValidationError as e:
        raise ConfigurationError(f"Invalid config.json: {e}") from e


def load_hook_config(path: Path) -> HookConfig:
    """Load the policy file, falling back to defaults.

    A missing file is normal (fresh install).  An unreadable or invalid file
    is reported once and replaced by the defaults so the hook keeps working.
    """
    try:
        raw = path.read_text(encoding="utf-8-sig")
    except FileNotFoundError:
        return HookConfig()
    except OSError as e:
        logger.warning(f"Could not read {path}: {e}. Using default policy.")
        return HookConfig()

    try:
        return parse_hook_config(json.loads(raw))
    except json.JSONDecodeError as e:
        logger.warning(f"{path} is not valid JSON ({e}). Using default policy.")
    except ConfigurationError as e:
        logger.warning(f"{e}. Using default policy.")
    return HookConfig()


# =============================================================================
# Process settings (environment)
# =============================================================================


def _default_config_dir() -> Path:
    return Path.home() / ".claude-permission-hook"


def _default_state_dir() -> Path:
    return Path(tempfile.gettempdir()) / "permission-hook"


class Settings(BaseSettings):
    """Permission hook process configuration."""

    # Storage
    config_dir: Path = Field(
        default_factory=_default_config_dir,
        description="Directory holding config.json and the decision logs",
    )
    state_dir: Path = Field(
        default_factory=_default_state_dir,
        description="Directory for per-session state and dedup markers",
    )

    # Logging
    log_level: str = Field(
        default="WARNING",
        description="Logging level (DEBUG, INFO, WARNING, ERROR)",
    )
    log_json: bool = Field(
        default=False,
        description="Emit diagnostic logs on stderr as JSON lines",
    )
    decision_log_enabled: bool = Field(
        default=True,
        description="Append every PreToolUse decision to decisions.log",
    )
    recent_prompts_limit: int = Field(
        default=50,
        ge=1,
        description="Lines kept in recent_prompts.log",
    )

    # Coordination
    dedup_ttl_seconds: float = Field(
        default=5.0,
        gt=0.0,
        description="How long a delivered notification suppresses identical ones",
    )
    lock_timeout_seconds: float = Field(
        default=2.0,
        ge=0.0,
        description="Timeout for per-session and per-marker file locks",
    )

    # Status analysis
    transcript_window: int = Field(
        default=20,
        ge=1,
        le=200,
        description="Maximum transcript messages considered for status analysis",
    )
    review_min_chars: int = Field(
        default=200,
        ge=0,
        description="Final text length above which a read-only turn counts as a review",
    )

    model_config = {
        "env_prefix": "PERMISSION_HOOK_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    @property
    def config_file(self) -> Path:
        return self.config_dir / CONFIG_FILE_NAME

    @property
    def sessions_dir(self) -> Path:
        return self.state_dir / "sessions"

    def load_hook_config(self) -> HookConfig:
        return load_hook_config(self.config_file)


# Settings singleton with dependency injection support
_settings: Settings | None = None


def get_settings() -> Settings:
    """Get the settings instance (lazy-loaded singleton).

    Returns:
        The Settings instance.

    Example:
        from permission_hook.config import get_settings
        settings = get_settings()
        print(settings.state_dir)
    """
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def override_settings(new_settings: Settings) -> None:
    """Override the settings instance (for testing).

    Args:
        new_settings: The new Settings instance to use.
    """
    global _settings
    _settings = new_settings


def reset_settings() -> None:
    """Reset settings to None (forces reload on next get_settings call)."""
    global _settings
    _settings = None
