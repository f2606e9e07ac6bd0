"""Persistence of repositories waiting to be built.

``rema pull`` writes the set, ``rema update`` reads it, possibly much later
and from another process. The file has a single writer and a single reader;
concurrent ``pull`` / ``update`` runs on the same file are not supported.
"""

from __future__ import annotations

import json
import os
import tempfile
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import structlog

from rema.exceptions import PendingError

logger = structlog.get_logger()


@dataclass
class PendingSet:
    """Repositories that pulled new content but were not built yet.

    Attributes:
        repos: Working tree paths, in the order they were pulled.
        written_at: When the set was written.
    """

    repos: list[Path] = field(default_factory=list)
    written_at: str = field(default_factory=lambda: datetime.now(tz=UTC).isoformat())

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "repos": [str(p) for p in self.repos],
            "written_at": self.written_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PendingSet:
        """Create from dictionary."""
        repos = data["repos"]
        if not isinstance(repos, list) or not all(isinstance(p, str) for p in repos):
            msg = "'repos' must be a list of paths"
            raise ValueError(msg)
        return cls(
            repos=[Path(p) for p in repos],
            written_at=data.get("written_at", ""),
        )


class PendingStore:
    """Reads and writes the pending file.

    Example:
        >>> store = PendingStore(Path("~/.local/state/rema/pending.json"))
        >>> store.save([Path("/home/me/src/dwm")])
        >>> store.load().repos
        [PosixPath('/home/me/src/dwm')]
    """

    def __init__(self, path: Path) -> None:
        """Initialize the store.

        Args:
            path: Location of the pending file.
        """
        self.path = path

    def load(self) -> PendingSet:
        """Load the pending set.

        Returns:
            The persisted set; empty if ``rema pull`` never wrote one.

        Raises:
            PendingError: If the file exists but cannot be read or parsed.
        """
        log = logger.bind(pending=str(self.path))
        if not self.path.exists():
            log.info("No pending file, nothing to build")
            return PendingSet(repos=[], written_at="")

        try:
            data = json.loads(self.path.read_text())
            pending = PendingSet.from_dict(data)
        except OSError as e:
            msg = f"could not read pending file {self.path}: {e.strerror or e}"
            raise PendingError(msg, pending_path=self.path) from e
        except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
            msg = f"invalid pending file {self.path}: {e}"
            raise PendingError(msg, pending_path=self.path) from e

        log.debug("Loaded pending set", repos=len(pending.repos))
        return pending

    def save(self, repos: list[Path]) -> PendingSet:
        """Replace the pending set.

        An empty list is written too, so a stale set never survives a pull.
        The file is written to a temporary sibling and renamed into place.

        Args:
            repos: Working tree paths to persist.

        Returns:
            The PendingSet that was written.

        Raises:
            PendingError: If the file cannot be written.
        """
        pending = PendingSet(repos=[p.absolute() for p in repos])
        content = json.dumps(pending.to_dict(), indent=2)

        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp = tempfile.mkstemp(
                prefix=f".{self.path.name}.", suffix=".tmp", dir=self.path.parent
            )
            try:
                with os.fdopen(fd, "w") as f:
                    f.write(content)
                    f.flush()
                    os.fsync(f.fileno())
                os.replace(tmp, self.path)
            except BaseException:
                Path(tmp).unlink(missing_ok=True)
                raise
        except OSError as e:
            msg = f"could not write pending file {self.path}: {e.strerror or e}"
            raise PendingError(msg, pending_path=self.path) from e

        logger.info("Saved pending set", pending=str(self.path), repos=len(repos))
        return pending
