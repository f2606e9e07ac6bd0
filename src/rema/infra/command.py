"""Subprocess command runner with logging."""

from __future__ import annotations

import os
import subprocess
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import structlog

from rema.exceptions import CommandError

logger = structlog.get_logger()

# git output is parsed, so it must not be localized.
GIT_ENV = {"LC_ALL": "C"}


@dataclass
class CommandResult:
    """Result of a command execution.

    Attributes:
        returncode: Exit code of the process.
        command: The command that was run.
        cwd: Working directory where command ran.
        stdout: Captured stdout (empty unless captured).
        stderr: Captured stderr (empty unless captured).
    """

    returncode: int
    command: list[str]
    cwd: Path | None
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        """Whether the command exited with status 0."""
        return self.returncode == 0


class CommandRunner:
    """Single entry point for every subprocess rema starts.

    Build and clean commands go through ``run`` and write straight to the
    terminal. git goes through ``run_git`` and is captured, since its output
    decides what happens next. Tests swap in ``MagicMock(spec=CommandRunner)``
    and assert on the exact commands.

    Example:
        >>> runner = CommandRunner()
        >>> runner.run(["make"], cwd=Path("/home/me/src/dwm")).returncode
        0
    """

    def __init__(self, dry_run: bool = False, heartbeat_interval: int = 60) -> None:
        """Initialize the command runner.

        Args:
            dry_run: If True, ``run`` logs commands instead of executing them.
            heartbeat_interval: Seconds between "still running" log lines
                for ``run`` (0 to disable).
        """
        self.dry_run = dry_run
        self.heartbeat_interval = heartbeat_interval

    @contextmanager
    def _heartbeat(self, log: structlog.BoundLogger) -> Iterator[None]:
        if self.heartbeat_interval <= 0:
            yield
            return

        done = threading.Event()
        interval = self.heartbeat_interval

        def beat() -> None:
            elapsed = 0
            while not done.wait(timeout=interval):
                elapsed += interval
                log.info("Command still running", elapsed_seconds=elapsed)

        thread = threading.Thread(target=beat, daemon=True)
        thread.start()
        try:
            yield
        finally:
            done.set()
            thread.join(timeout=1)

    @staticmethod
    def _spawn(
        log: structlog.BoundLogger,
        command: list[str],
        cwd: Path | None,
        env: dict[str, str] | None,
        **kwargs: Any,
    ) -> subprocess.CompletedProcess[Any]:
        try:
            return subprocess.run(
                command,
                cwd=cwd,
                env={**os.environ, **(env or {})},
                check=False,
                **kwargs,
            )
        except FileNotFoundError as e:
            log.error("Command not found", program=command[0])
            msg = f"Command not found: {command[0]}"
            raise CommandError(msg, command=command, cwd=cwd) from e
        except OSError as e:
            log.error("Failed to start command", error=str(e))
            msg = f"Failed to start {command[0]}: {e.strerror or e}"
            raise CommandError(msg, command=command, cwd=cwd) from e

    @staticmethod
    def _check(result: CommandResult) -> CommandResult:
        if not result.ok:
            msg = (
                f"{' '.join(result.command)} exited with status {result.returncode}"
            )
            raise CommandError(
                msg,
                command=result.command,
                returncode=result.returncode,
                cwd=result.cwd,
            )
        return result

    def run(
        self,
        command: list[str],
        *,
        cwd: Path | None = None,
        env: dict[str, str] | None = None,
        check: bool = False,
    ) -> CommandResult:
        """Run a command to completion with inherited stdout/stderr.

        Args:
            command: Program and arguments to run.
            cwd: Working directory for the command.
            env: Extra environment variables.
            check: If True, raise on non-zero exit code.

        Returns:
            CommandResult with the exit code.

        Raises:
            CommandError: If the program cannot be started, or if check=True
                and it exits non-zero.
        """
        log = logger.bind(command=command, cwd=str(cwd) if cwd else None)

        if self.dry_run:
            log.info("Dry run, not running command")
            return CommandResult(returncode=0, command=command, cwd=cwd)

        log.info("Running command")
        with self._heartbeat(log):
            proc = self._spawn(log, command, cwd, env)

        log.info("Command completed", returncode=proc.returncode)
        result = CommandResult(returncode=proc.returncode, command=command, cwd=cwd)
        return self._check(result) if check else result

    def run_capture(
        self,
        command: list[str],
        *,
        cwd: Path | None = None,
        env: dict[str, str] | None = None,
        check: bool = False,
    ) -> CommandResult:
        """Run a command and capture its output as text.

        Runs even on a dry-run runner.

        Raises:
            CommandError: If the program cannot be started, or if check=True
                and it exits non-zero.
        """
        log = logger.bind(command=command, cwd=str(cwd) if cwd else None)
        proc = self._spawn(log, command, cwd, env, capture_output=True, text=True)
        log.debug("Captured command output", returncode=proc.returncode)

        result = CommandResult(
            returncode=proc.returncode,
            command=command,
            cwd=cwd,
            stdout=proc.stdout,
            stderr=proc.stderr,
        )
        return self._check(result) if check else result

    def run_git(
        self,
        args: list[str],
        *,
        cwd: Path,
        check: bool = False,
    ) -> CommandResult:
        """Run a git subcommand in ``cwd`` with captured, untranslated output."""
        return self.run_capture(["git", *args], cwd=cwd, env=GIT_ENV, check=check)
