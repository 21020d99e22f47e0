"""Core components for the permission hook."""

from permission_hook.core.errors import (
    ConfigurationError,
    FileLockError,
    InputParseError,
    PermissionHookError,
    StateStoreError,
)

__all__ = [
    "ConfigurationError",
    "FileLockError",
    "InputParseError",
    "PermissionHookError",
    "StateStoreError",
]
