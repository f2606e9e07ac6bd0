"""Global configuration schema for rema."""

from __future__ import annotations

import tomllib
from pathlib import Path
from typing import Any

import structlog
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StrictBool,
    ValidationError,
    field_validator,
    model_validator,
)

from rema.exceptions import ConfigError
from rema.paths import expand_path

logger = structlog.get_logger()


class BaseDirEntry(BaseModel):
    """A directory whose immediate subdirectories are candidate repositories.

    Attributes:
        label: Name of the ``[dir.<label>]`` table.
        path: Absolute, expanded path of an existing directory.
        include: If non-empty, only these entry names are considered.
        ignore: Entry names that are never considered.
        autoclean: Default autoclean policy for repositories in this directory.
        autoupdate: Default autoupdate policy for repositories in this directory.
    """

    model_config = ConfigDict(frozen=True)

    label: str
    path: Path
    include: frozenset[str] = Field(default_factory=frozenset)
    ignore: frozenset[str] = Field(default_factory=frozenset)
    autoclean: StrictBool = False
    autoupdate: StrictBool = False

    @field_validator("path", mode="before")
    @classmethod
    def expand(cls, v: Any) -> Any:
        """Expand ``~`` and environment variables."""
        if isinstance(v, str | Path):
            return expand_path(v)
        return v

    @field_validator("path")
    @classmethod
    def validate_base_dir(cls, v: Path) -> Path:
        """Base directories are never resolved against the working directory."""
        if not v.is_absolute():
            msg = f"base directory cannot be relative: {v}"
            raise ValueError(msg)
        if not v.is_dir():
            msg = f"base directory must be an existing directory: {v}"
            raise ValueError(msg)
        return v

    def accepts(self, name: str) -> bool:
        """Check an entry name against the ignore and include sets."""
        if name in self.ignore:
            return False
        return not self.include or name in self.include

    def rejection_reason(self, name: str) -> str | None:
        """Return why ``name`` is filtered out, or None if it is accepted."""
        if name in self.ignore:
            return "ignored"
        if self.include and name not in self.include:
            return "not included"
        return None


class GlobalConfig(BaseModel):
    """Complete rema configuration.

    Top-level ``autoclean`` / ``autoupdate`` are inherited by every
    ``[dir.<label>]`` table that does not set its own value.

    Example:
        >>> config = GlobalConfig.from_toml('''
        ... autoupdate = true
        ... [dir.src]
        ... path = "/usr/src"
        ... ''')
        >>> config.dirs["src"].autoupdate
        True
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    dirs: dict[str, BaseDirEntry] = Field(alias="dir")
    autoclean: StrictBool = False
    autoupdate: StrictBool = False

    @model_validator(mode="before")
    @classmethod
    def inherit_defaults(cls, data: Any) -> Any:
        """Push top-level flags and table labels down into each dir table."""
        if not isinstance(data, dict):
            return data
        key = "dir" if "dir" in data else "dirs"
        tables = data.get(key)
        if not isinstance(tables, dict):
            return data

        merged: dict[str, Any] = {}
        for label, table in tables.items():
            if not isinstance(table, dict):
                merged[label] = table
                continue
            entry = dict(table)
            entry.setdefault("label", label)
            for flag in ("autoclean", "autoupdate"):
                if flag in data:
                    entry.setdefault(flag, data[flag])
            merged[label] = entry
        return {**data, key: merged}

    @field_validator("dirs")
    @classmethod
    def validate_has_dirs(cls, v: dict[str, BaseDirEntry]) -> dict[str, BaseDirEntry]:
        """At least one base directory must be configured."""
        if not v:
            msg = "at least one [dir.<label>] table is required"
            raise ValueError(msg)
        return v

    @property
    def entries(self) -> list[BaseDirEntry]:
        """Base directories in config file order."""
        return list(self.dirs.values())

    def entry_for(self, repo_path: Path) -> BaseDirEntry | None:
        """Find the base directory that directly contains ``repo_path``.

        Args:
            repo_path: Working tree path of a repository.

        Returns:
            The matching entry, or None if the repository is not inside any
            configured base directory.
        """
        parent = repo_path.parent.resolve()
        for entry in self.dirs.values():
            if entry.path.resolve() == parent:
                return entry
        return None

    @classmethod
    def from_toml(cls, content: str, *, source: Path | None = None) -> GlobalConfig:
        """Parse config from TOML content.

        Args:
            content: TOML document.
            source: File the content came from, for error messages.

        Returns:
            Parsed GlobalConfig instance.

        Raises:
            ConfigError: If the TOML is invalid or fails validation.
        """
        try:
            data = tomllib.loads(content)
        except tomllib.TOMLDecodeError as e:
            msg = f"error in config file: {e}"
            raise ConfigError(msg, config_path=source) from e

        try:
            return cls.model_validate(data)
        except ValidationError as e:
            first = e.errors()[0]
            field = ".".join(str(part) for part in first["loc"])
            msg = f"error in config file at {field or '<root>'}: {first['msg']}"
            raise ConfigError(msg, config_path=source, field=field) from e

    @classmethod
    def load(cls, path: Path) -> GlobalConfig:
        """Load config from a TOML file.

        Args:
            path: Path to the config file.

        Returns:
            Parsed GlobalConfig instance.

        Raises:
            ConfigError: If the file can't be read or is invalid.
        """
        log = logger.bind(config=str(path))
        try:
            content = path.read_text(encoding="utf-8")
        except OSError as e:
            msg = f"could not read config file {path}: {e.strerror or e}"
            raise ConfigError(msg, config_path=path) from e
        except UnicodeDecodeError as e:
            msg = (
                f"config file {path} is not valid UTF-8: {e.reason} at byte {e.start}"
            )
            raise ConfigError(msg, config_path=path) from e

        config = cls.from_toml(content, source=path)
        log.debug("Loaded config", dirs=sorted(config.dirs))
        return config
