"""Per-repository build configuration (``rema.toml``)."""

from __future__ import annotations

import tomllib
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

import structlog
from pydantic import BaseModel, ConfigDict, StrictBool, ValidationError

from rema.exceptions import RepoConfigError
from rema.repository import Repository

logger = structlog.get_logger()

REPO_CONFIG_FILENAME = "rema.toml"


class ConfigSource(str, Enum):
    """Where a RepoConfig came from."""

    DEFAULT = "default"
    FILE = "file"


@dataclass(frozen=True)
class RepoDefaults:
    """Policy flags a repository gets when its rema.toml does not set them."""

    autoclean: bool = False
    autoupdate: bool = False


class RepoConfigFile(BaseModel):
    """Schema of ``rema.toml``. Every key is optional; unknown keys are errors."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str | None = None
    build: list[str] | None = None
    clean: list[str] | None = None
    autoclean: StrictBool | None = None
    autoupdate: StrictBool | None = None


@dataclass(frozen=True)
class RepoConfig:
    """Resolved build plan for one repository.

    Attributes:
        path: Working tree the commands run in.
        name: Display name (the path, unless rema.toml names it).
        build: Command lines run by a build, in order.
        clean: Command lines run by a clean, in order.
        autoclean: Run ``clean`` after every completed build.
        autoupdate: Build as soon as a pull brings new content.
        source: Whether a rema.toml was found.
    """

    path: Path
    name: str
    build: tuple[str, ...] = ()
    clean: tuple[str, ...] = ()
    autoclean: bool = False
    autoupdate: bool = False
    source: ConfigSource = ConfigSource.DEFAULT

    @classmethod
    def default(cls, path: Path, defaults: RepoDefaults | None = None) -> RepoConfig:
        """Plan for a repository without rema.toml: nothing to build or clean."""
        defaults = defaults or RepoDefaults()
        return cls(
            path=path,
            name=str(path),
            autoclean=defaults.autoclean,
            autoupdate=defaults.autoupdate,
        )

    @classmethod
    def from_file(
        cls,
        path: Path,
        parsed: RepoConfigFile,
        defaults: RepoDefaults | None = None,
    ) -> RepoConfig:
        """Collapse a parsed rema.toml into a plan, filling unset keys."""
        base = cls.default(path, defaults)
        return cls(
            path=path,
            name=parsed.name if parsed.name is not None else base.name,
            build=tuple(parsed.build or ()),
            clean=tuple(parsed.clean or ()),
            autoclean=(
                parsed.autoclean if parsed.autoclean is not None else base.autoclean
            ),
            autoupdate=(
                parsed.autoupdate if parsed.autoupdate is not None else base.autoupdate
            ),
            source=ConfigSource.FILE,
        )

    def to_dict(self) -> dict[str, object]:
        """Convert to dictionary for JSON output."""
        return {
            "path": str(self.path),
            "name": self.name,
            "build": list(self.build),
            "clean": list(self.clean),
            "autoclean": self.autoclean,
            "autoupdate": self.autoupdate,
            "source": self.source.value,
        }


def resolve_repo_config(
    repo: Repository, defaults: RepoDefaults | None = None
) -> RepoConfig:
    """Resolve the build plan of a repository.

    Args:
        repo: The repository.
        defaults: Policy flags for keys rema.toml leaves unset (both False
            when omitted).

    Returns:
        The plan from ``<repo>/rema.toml``, or the default plan if there is
        no such file.

    Raises:
        RepoConfigError: If rema.toml exists but cannot be read or parsed.
            A broken file is never treated as a missing one.
    """
    config_path = repo.path / REPO_CONFIG_FILENAME
    if not config_path.exists():
        return RepoConfig.default(repo.path, defaults)

    try:
        data = tomllib.loads(config_path.read_text(encoding="utf-8"))
    except OSError as e:
        msg = f"could not read {config_path}: {e.strerror or e}"
        raise RepoConfigError(msg, repo_path=repo.path, config_path=config_path) from e
    except UnicodeDecodeError as e:
        msg = f"{config_path} is not valid UTF-8: {e.reason} at byte {e.start}"
        raise RepoConfigError(msg, repo_path=repo.path, config_path=config_path) from e
    except tomllib.TOMLDecodeError as e:
        msg = f"error in {config_path}: {e}"
        raise RepoConfigError(msg, repo_path=repo.path, config_path=config_path) from e

    try:
        parsed = RepoConfigFile.model_validate(data)
    except ValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(part) for part in first["loc"])
        msg = f"error in {config_path} at {field}: {first['msg']}"
        raise RepoConfigError(msg, repo_path=repo.path, config_path=config_path) from e

    config = RepoConfig.from_file(repo.path, parsed, defaults)
    logger.debug("Loaded repository config", repo=str(repo.path), name=config.name)
    return config
