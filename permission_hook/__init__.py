"""Permission Hook - command gatekeeper and session notifier for Claude Code."""

__version__ = "0.3.0"

from permission_hook.config import HookConfig, Settings, get_settings
from permission_hook.core import (
    ConfigurationError,
    FileLockError,
    InputParseError,
    PermissionHookError,
    StateStoreError,
)
from permission_hook.core.patterns import PatternSet
from permission_hook.hooks.models import Decision, HookEvent, Status, Verdict

__all__ = [
    # Version info
    "__version__",
    # Configuration
    "HookConfig",
    "PatternSet",
    "Settings",
    "get_settings",
    # Models
    "Decision",
    "HookEvent",
    "Status",
    "Verdict",
    # Errors
    "ConfigurationError",
    "FileLockError",
    "InputParseError",
    "PermissionHookError",
    "StateStoreError",
]
