"""Repository discovery under configured base directories."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

import structlog

from rema.config import BaseDirEntry
from rema.exceptions import ConfigError
from rema.infra.command import CommandRunner
from rema.repository import Repository

logger = structlog.get_logger()


@dataclass(frozen=True)
class Skip:
    """A directory entry that discovery passed over, and why."""

    path: Path
    reason: str


@dataclass
class DiscoveryResult:
    """Repositories found in one base directory.

    Attributes:
        entry: The base directory that was scanned.
        repos: Repositories that survived filtering.
        skipped: Entries that did not, with the reason.
    """

    entry: BaseDirEntry
    repos: list[Repository] = field(default_factory=list)
    skipped: list[Skip] = field(default_factory=list)


def discover(entry: BaseDirEntry, cmd: CommandRunner) -> DiscoveryResult:
    """Find the repositories that are immediate children of a base directory.

    Files, names filtered out by ``ignore`` / ``include``, and directories that
    are not repositories are skipped. Nothing below the first level is
    examined. Entries are visited in name order.

    Args:
        entry: The base directory to scan.
        cmd: CommandRunner used to query git.

    Returns:
        DiscoveryResult with repositories and skips.

    Raises:
        ConfigError: If the base directory cannot be listed.
        CommandError: If git cannot be run.
    """
    log = logger.bind(base_dir=str(entry.path), label=entry.label)
    result = DiscoveryResult(entry=entry)

    try:
        children = sorted(entry.path.iterdir(), key=lambda p: p.name)
    except OSError as e:
        log.error("Cannot list base directory", error=str(e))
        msg = f"cannot list base directory {entry.path}: {e.strerror or e}"
        raise ConfigError(msg, field=f"dir.{entry.label}.path") from e

    for child in children:
        reason = None
        if not child.is_dir():
            reason = "not a directory"
        else:
            reason = entry.rejection_reason(child.name)

        if reason is None:
            repo = Repository.open(child, cmd)
            if repo is None:
                reason = "not a repository"
            else:
                result.repos.append(repo)
                continue

        log.debug("Skipping entry", entry=child.name, reason=reason)
        result.skipped.append(Skip(path=child, reason=reason))

    log.info(
        "Discovered repositories",
        found=len(result.repos),
        skipped=len(result.skipped),
    )
    return result
