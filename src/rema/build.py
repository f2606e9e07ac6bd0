"""Running a repository's build and clean command sequences."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

import structlog

from rema.exceptions import CommandError
from rema.infra.command import CommandRunner
from rema.repo_config import RepoConfig

logger = structlog.get_logger()


class SequenceKind(str, Enum):
    """Which command list of a RepoConfig is being run."""

    BUILD = "build"
    CLEAN = "clean"


def split_command_line(line: str) -> list[str]:
    """Split a configured command line into program and arguments.

    Splitting is on plain whitespace. Quotes have no special meaning, so
    ``echo "a b"`` yields ``['echo', '"a', 'b"']``.

    Raises:
        ValueError: If the line is blank.
    """
    parts = line.split()
    if not parts:
        msg = "empty command line"
        raise ValueError(msg)
    return parts


@dataclass
class SequenceResult:
    """Result of running one command sequence.

    Attributes:
        kind: Build or clean.
        commands_run: Commands that were started, in order.
        failed_index: Position of the command that stopped the sequence.
        failed_command: The command line that stopped the sequence.
        returncode: Its exit code, if it ran at all.
        error: Human-readable failure description.
    """

    kind: SequenceKind
    commands_run: list[list[str]] = field(default_factory=list)
    failed_index: int | None = None
    failed_command: str | None = None
    returncode: int | None = None
    error: str | None = None

    @property
    def completed(self) -> bool:
        """True when every command in the sequence exited with status 0."""
        return self.failed_index is None


@dataclass
class BuildOutcome:
    """A build and, when autoclean applied, the clean that followed it."""

    build: SequenceResult
    clean: SequenceResult | None = None

    @property
    def ok(self) -> bool:
        """Whether the build and any follow-up clean completed."""
        return self.build.completed and (self.clean is None or self.clean.completed)

    @property
    def error(self) -> str | None:
        """Failure description of whichever sequence failed."""
        if not self.build.completed:
            return self.build.error
        if self.clean is not None and not self.clean.completed:
            return self.clean.error
        return None


class BuildRunner:
    """Runs build and clean sequences in a repository's working tree.

    Commands run one at a time, in order. The first command that exits
    non-zero or cannot be started ends the sequence; the failure is returned,
    not raised, so the caller can move on to the next repository.

    Example:
        >>> runner = BuildRunner(CommandRunner())
        >>> outcome = runner.build(repo_config)
        >>> outcome.ok
        True
    """

    def __init__(self, cmd: CommandRunner) -> None:
        """Initialize the build runner.

        Args:
            cmd: CommandRunner instance.
        """
        self.cmd = cmd

    def run_sequence(self, kind: SequenceKind, config: RepoConfig) -> SequenceResult:
        """Run the build or clean command lines of a repository.

        Args:
            kind: Which sequence to run.
            config: The repository's resolved config.

        Returns:
            SequenceResult describing how far the sequence got.
        """
        lines = config.build if kind is SequenceKind.BUILD else config.clean
        log = logger.bind(repo=config.name, sequence=kind.value)
        result = SequenceResult(kind=kind)

        for index, line in enumerate(lines):
            try:
                command = split_command_line(line)
            except ValueError as e:
                result.failed_index = index
                result.failed_command = line
                result.error = f"{kind.value} command #{index + 1}: {e}"
                log.error("Invalid command line", index=index, line=line)
                return result

            log.info("exec", command=command, cwd=str(config.path))
            result.commands_run.append(command)
            try:
                outcome = self.cmd.run(command, cwd=config.path)
            except CommandError as e:
                result.failed_index = index
                result.failed_command = line
                result.error = f"{kind.value} command #{index + 1} ({line!r}): {e}"
                log.error("Command could not be started", index=index, error=str(e))
                return result

            if outcome.returncode != 0:
                result.failed_index = index
                result.failed_command = line
                result.returncode = outcome.returncode
                result.error = (
                    f"{kind.value} command #{index + 1} ({line!r}) "
                    f"exited with status {outcome.returncode}"
                )
                log.error(
                    "Command failed",
                    index=index,
                    returncode=outcome.returncode,
                    remaining=len(lines) - index - 1,
                )
                return result

        log.debug("Sequence completed", commands=len(result.commands_run))
        return result

    def build(self, config: RepoConfig) -> BuildOutcome:
        """Build a repository, then clean it if autoclean is set.

        An aborted build never triggers the clean sequence.
        """
        build = self.run_sequence(SequenceKind.BUILD, config)
        outcome = BuildOutcome(build=build)
        if build.completed and config.autoclean:
            outcome.clean = self.run_sequence(SequenceKind.CLEAN, config)
        return outcome

    def clean(self, config: RepoConfig) -> SequenceResult:
        """Run the clean sequence of a repository."""
        return self.run_sequence(SequenceKind.CLEAN, config)
