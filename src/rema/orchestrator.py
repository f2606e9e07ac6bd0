"""Pull, update and clean passes over all configured repositories."""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterator
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

import structlog

from rema.build import BuildOutcome, BuildRunner
from rema.config import BaseDirEntry, GlobalConfig
from rema.discovery import discover
from rema.exceptions import RepoConfigError
from rema.infra.command import CommandRunner
from rema.pending import PendingStore
from rema.repo_config import RepoConfig, RepoDefaults, resolve_repo_config
from rema.repository import PullStatus, Repository

logger = structlog.get_logger()


class Action(str, Enum):
    """What happened to a repository during a pass."""

    UP_TO_DATE = "up-to-date"
    PENDING = "pending"
    BUILT = "built"
    CLEANED = "cleaned"
    BUILD_FAILED = "build-failed"
    CLEAN_FAILED = "clean-failed"
    PULL_FAILED = "pull-failed"
    SKIPPED = "skipped"
    CONFIG_ERROR = "config-error"


FAILURE_ACTIONS = frozenset(
    {
        Action.BUILD_FAILED,
        Action.CLEAN_FAILED,
        Action.PULL_FAILED,
        Action.CONFIG_ERROR,
    }
)


@dataclass(frozen=True)
class RepoReport:
    """Outcome for one repository (or skipped directory entry)."""

    path: Path
    action: Action
    detail: str = ""

    def to_dict(self) -> dict[str, str]:
        """Convert to dictionary."""
        return {
            "path": str(self.path),
            "action": self.action.value,
            "detail": self.detail,
        }


@dataclass
class RunReport:
    """Everything a pass did, in order.

    Attributes:
        command: The pass that produced the report (pull, update, clean).
        entries: One entry per repository or skipped directory entry.
        pending: Paths persisted as pending at the end of the pass.
    """

    command: str
    entries: list[RepoReport] = field(default_factory=list)
    pending: list[Path] = field(default_factory=list)

    def add(self, path: Path, action: Action, detail: str = "") -> None:
        """Record an outcome."""
        self.entries.append(RepoReport(path=path, action=action, detail=detail))

    @property
    def failed(self) -> bool:
        """Whether any repository failed."""
        return any(e.action in FAILURE_ACTIONS for e in self.entries)

    @property
    def failures(self) -> list[RepoReport]:
        """Entries describing failures."""
        return [e for e in self.entries if e.action in FAILURE_ACTIONS]

    def count(self) -> Counter[Action]:
        """Number of entries per action."""
        return Counter(e.action for e in self.entries)

    def with_action(self, action: Action) -> list[RepoReport]:
        """Entries with the given action."""
        return [e for e in self.entries if e.action is action]

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON output."""
        return {
            "command": self.command,
            "entries": [e.to_dict() for e in self.entries],
            "pending": [str(p) for p in self.pending],
        }


@dataclass(frozen=True)
class ListedRepo:
    """A discovered repository and its resolved config (or why it has none)."""

    label: str
    path: Path
    config: RepoConfig | None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON output."""
        return {
            "dir": self.label,
            "path": str(self.path),
            "config": self.config.to_dict() if self.config else None,
            "error": self.error,
        }


class Orchestrator:
    """Runs rema's passes against one immutable GlobalConfig.

    Repositories are processed one at a time. Failures of one repository are
    logged and reported, and the pass continues with the next one. A git
    binary that cannot be started aborts the pass with CommandError.

    Example:
        >>> orch = Orchestrator(config, CommandRunner(), PendingStore(path))
        >>> report = orch.pull()
        >>> [str(p) for p in report.pending]
        ['/home/me/src/dwm']
    """

    def __init__(
        self,
        config: GlobalConfig,
        cmd: CommandRunner,
        store: PendingStore,
        *,
        dry_run: bool = False,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            config: Loaded global config.
            cmd: CommandRunner for git and build commands.
            store: Where the pending set lives.
            dry_run: If True, the pending set is left untouched by ``update``.
        """
        self.config = config
        self.cmd = cmd
        self.store = store
        self.dry_run = dry_run
        self.builder = BuildRunner(cmd)

    def defaults_for(self, entry: BaseDirEntry | None) -> RepoDefaults:
        """Policy flags for repositories without their own settings."""
        if entry is None:
            return RepoDefaults(
                autoclean=self.config.autoclean,
                autoupdate=self.config.autoupdate,
            )
        return RepoDefaults(autoclean=entry.autoclean, autoupdate=entry.autoupdate)

    def _repositories(
        self, report: RunReport
    ) -> Iterator[tuple[BaseDirEntry, Repository]]:
        for entry in self.config.entries:
            result = discover(entry, self.cmd)
            for skip in result.skipped:
                report.add(skip.path, Action.SKIPPED, skip.reason)
            for repo in result.repos:
                yield entry, repo

    def _resolve(
        self,
        repo: Repository,
        defaults: RepoDefaults,
        report: RunReport,
    ) -> RepoConfig | None:
        try:
            return resolve_repo_config(repo, defaults)
        except RepoConfigError as e:
            logger.warning(
                "Skipping repository with invalid rema.toml",
                repo=str(repo.path),
                error=str(e),
            )
            report.add(repo.path, Action.CONFIG_ERROR, str(e))
            return None

    def _record_build(
        self, report: RunReport, config: RepoConfig, outcome: BuildOutcome
    ) -> None:
        if not outcome.build.completed:
            report.add(config.path, Action.BUILD_FAILED, outcome.build.error or "")
        elif outcome.clean is not None and not outcome.clean.completed:
            report.add(config.path, Action.CLEAN_FAILED, outcome.clean.error or "")
        elif not config.build:
            report.add(config.path, Action.BUILT, "no build commands")
        else:
            report.add(config.path, Action.BUILT)

    def pull(self) -> RunReport:
        """Pull every repository and persist the ones that need a build.

        Repositories with autoupdate are built right away and are not
        persisted. Repositories whose rema.toml is broken are not pulled,
        since their new content could not be built.

        Returns:
            RunReport of the pass; ``pending`` holds the persisted paths.

        Raises:
            CommandError: If git cannot be started.
            PendingError: If the pending file cannot be written.
        """
        report = RunReport(command="pull")
        pending: list[Path] = []

        for entry, repo in self._repositories(report):
            log = logger.bind(repo=str(repo.path))
            config = self._resolve(repo, self.defaults_for(entry), report)
            if config is None:
                continue

            result = repo.pull()
            if result.status is PullStatus.FAILED:
                detail = (
                    result.stderr.strip()
                    or f"git exited with status {result.returncode}"
                )
                report.add(repo.path, Action.PULL_FAILED, detail)
                continue
            if result.status is PullStatus.UP_TO_DATE:
                report.add(repo.path, Action.UP_TO_DATE)
                continue

            if config.autoupdate:
                log.info("New content, building (autoupdate)", name=config.name)
                self._record_build(report, config, self.builder.build(config))
            else:
                log.info("New content, build pending", name=config.name)
                pending.append(repo.path)
                report.add(repo.path, Action.PENDING)

        self.store.save(pending)
        report.pending = pending
        return report

    def update(self) -> RunReport:
        """Build every repository in the pending set.

        Paths that no longer hold a repository are dropped. Repositories
        whose build failed, or whose rema.toml is broken, stay pending for
        the next ``update``.

        Returns:
            RunReport of the pass; ``pending`` holds what is still pending.

        Raises:
            PendingError: If the pending file is unreadable or unwritable.
        """
        report = RunReport(command="update")
        pending = self.store.load()
        retry: list[Path] = []

        for path in pending.repos:
            repo = Repository.open(path, self.cmd)
            if repo is None:
                logger.warning("Pending repository is gone", repo=str(path))
                report.add(path, Action.SKIPPED, "no longer a repository")
                continue

            defaults = self.defaults_for(self.config.entry_for(repo.path))
            config = self._resolve(repo, defaults, report)
            if config is None:
                retry.append(repo.path)
                continue

            outcome = self.builder.build(config)
            self._record_build(report, config, outcome)
            if not outcome.build.completed:
                retry.append(repo.path)

        if pending.repos and not self.dry_run:
            self.store.save(retry)
        report.pending = retry if not self.dry_run else list(pending.repos)
        return report

    def clean(self) -> RunReport:
        """Run the clean sequence of every discovered repository.

        autoclean and autoupdate play no part here.

        Returns:
            RunReport of the pass.
        """
        report = RunReport(command="clean")

        for _entry, repo in self._repositories(report):
            config = self._resolve(repo, RepoDefaults(), report)
            if config is None:
                continue

            result = self.builder.clean(config)
            if not result.completed:
                report.add(repo.path, Action.CLEAN_FAILED, result.error or "")
            elif not config.clean:
                report.add(repo.path, Action.CLEANED, "no clean commands")
            else:
                report.add(repo.path, Action.CLEANED)

        return report

    def list_repositories(self) -> list[ListedRepo]:
        """Discover repositories and resolve their configs without running anything."""
        listed: list[ListedRepo] = []
        for entry in self.config.entries:
            for repo in discover(entry, self.cmd).repos:
                try:
                    config = resolve_repo_config(repo, self.defaults_for(entry))
                except RepoConfigError as e:
                    listed.append(
                        ListedRepo(
                            label=entry.label, path=repo.path, config=None, error=str(e)
                        )
                    )
                    continue
                listed.append(
                    ListedRepo(label=entry.label, path=repo.path, config=config)
                )
        return listed
