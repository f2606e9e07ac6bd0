"""Environment-driven settings for rema."""

from __future__ import annotations

from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings

from rema.paths import default_config_path, default_pending_path, expand_path


class RemaSettings(BaseSettings):
    """Where rema reads its config and keeps the pending file.

    Environment variables:
        REMA_CONFIG: Path to the global config file.
        REMA_PENDING_FILE: Path to the pending file written by ``rema pull``.

    Command line options take precedence; see ``with_overrides``.
    """

    config_path: Path = Field(
        default_factory=default_config_path,
        validation_alias="REMA_CONFIG",
        description="Global config file",
    )
    pending_path: Path = Field(
        default_factory=default_pending_path,
        validation_alias="REMA_PENDING_FILE",
        description="Repositories pulled but not yet built",
    )

    model_config = {
        "env_prefix": "",
        "extra": "ignore",
    }

    @field_validator("config_path", "pending_path", mode="before")
    @classmethod
    def expand(cls, v: str | Path) -> Path:
        """Allow ``~`` and ``$VAR`` in path overrides."""
        return expand_path(v)

    def with_overrides(
        self,
        *,
        config_path: Path | None = None,
        pending_path: Path | None = None,
    ) -> RemaSettings:
        """Return a copy with CLI-provided paths applied."""
        update: dict[str, Path] = {}
        if config_path is not None:
            update["config_path"] = expand_path(config_path)
        if pending_path is not None:
            update["pending_path"] = expand_path(pending_path)
        return self.model_copy(update=update)
