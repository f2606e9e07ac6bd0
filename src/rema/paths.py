"""Path expansion and default file locations for rema."""

from __future__ import annotations

import os
import re
from pathlib import Path

APP_NAME = "rema"
CONFIG_FILENAME = "config.toml"
PENDING_FILENAME = "pending.json"

_UNRESOLVED_VAR = re.compile(r"\$(\{[A-Za-z_][A-Za-z0-9_]*\}|[A-Za-z_][A-Za-z0-9_]*)")


def expand_path(value: str | Path) -> Path:
    """Expand ``~`` and environment variables in a configured path.

    Args:
        value: Path string as written in a config file.

    Returns:
        The expanded path. It is not resolved against the working directory,
        so a relative input stays relative.

    Raises:
        ValueError: If the path references an undefined environment variable.

    Example:
        >>> os.environ["SRC"] = "/home/me/src"
        >>> expand_path("$SRC/dwm")
        PosixPath('/home/me/src/dwm')
    """
    expanded = os.path.expandvars(os.path.expanduser(str(value)))
    match = _UNRESOLVED_VAR.search(expanded)
    if match:
        msg = f"undefined variable {match.group(0)!r} in path {str(value)!r}"
        raise ValueError(msg)
    return Path(expanded)


def _xdg_dir(env_var: str, fallback: str) -> Path:
    value = os.environ.get(env_var)
    if value and Path(value).is_absolute():
        return Path(value)
    return Path.home() / fallback


def default_config_path() -> Path:
    """Global config location: ``$XDG_CONFIG_HOME/rema/config.toml``."""
    return _xdg_dir("XDG_CONFIG_HOME", ".config") / APP_NAME / CONFIG_FILENAME


def default_pending_path() -> Path:
    """Pending file location: ``$XDG_STATE_HOME/rema/pending.json``."""
    return _xdg_dir("XDG_STATE_HOME", ".local/state") / APP_NAME / PENDING_FILENAME
