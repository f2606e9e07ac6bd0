"""Version-controlled repository handles."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

import structlog

from rema.infra.command import CommandResult, CommandRunner

logger = structlog.get_logger()

# What `git pull` prints first when there was nothing to merge.
UP_TO_DATE_MARKER = "Already up to date."


class PullStatus(str, Enum):
    """Outcome of pulling one repository."""

    UP_TO_DATE = "up-to-date"
    UPDATED = "updated"
    FAILED = "failed"


@dataclass(frozen=True)
class PullResult:
    """Result of ``git pull`` in one repository.

    Attributes:
        status: Classification of the pull.
        returncode: Exit code of git.
        stdout: What git printed on stdout.
        stderr: What git printed on stderr.
    """

    status: PullStatus
    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def has_new_content(self) -> bool:
        """Whether the pull merged something new."""
        return self.status is PullStatus.UPDATED


def classify_pull(returncode: int, stdout: str) -> PullStatus:
    """Decide whether a pull produced new content.

    Output starting with the up-to-date marker means nothing changed, whatever
    the exit status. Otherwise a zero exit means new content and a non-zero
    exit means the pull failed.
    """
    if stdout.startswith(UP_TO_DATE_MARKER):
        return PullStatus.UP_TO_DATE
    if returncode == 0:
        return PullStatus.UPDATED
    return PullStatus.FAILED


@dataclass(frozen=True)
class Repository:
    """A git working tree, identified by its absolute path.

    Example:
        >>> repo = Repository.open(Path("/home/me/src/dwm"), CommandRunner())
        >>> repo.pull().status
        <PullStatus.UP_TO_DATE: 'up-to-date'>
    """

    path: Path
    cmd: CommandRunner = field(compare=False, repr=False)

    @property
    def name(self) -> str:
        """Directory name of the working tree."""
        return self.path.name

    @classmethod
    def open(cls, path: Path, cmd: CommandRunner) -> Repository | None:
        """Open ``path`` as a repository.

        Only the top level of a working tree counts: a plain directory inside
        some enclosing repository is not a repository of its own.

        Args:
            path: Candidate directory.
            cmd: CommandRunner used for git.

        Returns:
            A Repository, or None if ``path`` is not a readable working tree.

        Raises:
            CommandError: If git itself cannot be run.
        """
        path = path.absolute()
        if not path.is_dir() or not os.access(path, os.R_OK | os.X_OK):
            return None

        result = cmd.run_git(["rev-parse", "--show-toplevel"], cwd=path)
        if not result.ok:
            return None

        toplevel = Path(result.stdout.strip())
        if toplevel.resolve() != path.resolve():
            logger.debug(
                "Directory is inside another repository",
                path=str(path),
                toplevel=str(toplevel),
            )
            return None
        return cls(path=path, cmd=cmd)

    def pull(self) -> PullResult:
        """Run ``git pull`` in the working tree.

        Returns:
            PullResult describing whether anything new arrived.

        Raises:
            CommandError: If git cannot be run at all.
        """
        log = logger.bind(repo=str(self.path))
        result: CommandResult = self.cmd.run_git(["pull"], cwd=self.path)
        status = classify_pull(result.returncode, result.stdout)

        if status is PullStatus.FAILED:
            log.warning(
                "Pull failed",
                returncode=result.returncode,
                stderr=result.stderr.strip(),
            )
        else:
            log.info("Pulled", status=status.value)

        return PullResult(
            status=status,
            returncode=result.returncode,
            stdout=result.stdout,
            stderr=result.stderr,
        )
