"""Custom exceptions for the permission hook."""

from pathlib import Path


def sanitize_path_for_error(path: str | Path) -> str:
    """Extract only the filename from a path for safe error messages.

    Args:
        path: Full path or filename.

    Returns:
        Just the filename portion.
    """
    if isinstance(path, Path):
        return path.name
    return Path(path).name


class PermissionHookError(Exception):
    """Base exception for all permission hook errors."""

    pass


class InputParseError(PermissionHookError):
    """Raised when the hook input cannot be parsed as an event."""

    pass


class ConfigurationError(PermissionHookError):
    """Raised when configuration is invalid."""

    pass


class StateStoreError(PermissionHookError):
    """Raised when the on-disk session store cannot be read or written."""

    pass


class FileLockError(StateStoreError):
    """Raised when a cross-process file lock cannot be acquired."""

    def __init__(
        self,
        lock_path: str,
        timeout: float,
        message: str | None = None,
    ) -> None:
        self.lock_path = lock_path
        self.timeout = timeout
        safe_name = sanitize_path_for_error(lock_path)
        self.message = message or f"Failed to acquire file lock at {safe_name} after {timeout}s"
        super().__init__(self.message)
