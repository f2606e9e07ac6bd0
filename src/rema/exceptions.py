"""Custom exceptions for rema."""

from pathlib import Path


class RemaError(Exception):
    """Base exception for all rema errors."""

    pass


class ConfigError(RemaError):
    """Raised when the global configuration is invalid.

    Always fatal: nothing is pulled or built with a broken config.
    """

    def __init__(
        self,
        message: str,
        *,
        config_path: Path | None = None,
        field: str = "",
    ) -> None:
        super().__init__(message)
        self.config_path = config_path
        self.field = field


class RepoConfigError(RemaError):
    """Raised when a repository's rema.toml exists but cannot be used."""

    def __init__(
        self,
        message: str,
        *,
        repo_path: Path | None = None,
        config_path: Path | None = None,
    ) -> None:
        super().__init__(message)
        self.repo_path = repo_path
        self.config_path = config_path


class CommandError(RemaError):
    """Raised when a subprocess command cannot be run or fails."""

    def __init__(
        self,
        message: str,
        *,
        command: list[str] | None = None,
        returncode: int | None = None,
        cwd: Path | None = None,
    ) -> None:
        super().__init__(message)
        self.command = command or []
        self.returncode = returncode
        self.cwd = cwd


class PendingError(RemaError):
    """Raised when the pending file cannot be read or written."""

    def __init__(self, message: str, *, pending_path: Path | None = None) -> None:
        super().__init__(message)
        self.pending_path = pending_path
