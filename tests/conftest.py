"""Pytest fixtures for rema tests."""

from __future__ import annotations

import subprocess
import sys
from collections.abc import Callable
from pathlib import Path
from unittest.mock import MagicMock

PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_DIR = PROJECT_ROOT / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

import pytest

from rema.config import BaseDirEntry, GlobalConfig
from rema.infra.command import CommandResult, CommandRunner
from rema.repository import UP_TO_DATE_MARKER


def git(*args: str, cwd: Path) -> str:
    """Run git for test setup and return stdout."""
    result = subprocess.run(
        ["git", *args],
        cwd=cwd,
        check=True,
        capture_output=True,
        text=True,
    )
    return result.stdout


def init_git_repo(path: Path) -> Path:
    """Create a git repository with one commit at ``path``."""
    path.mkdir(parents=True, exist_ok=True)
    git("init", cwd=path)
    git("config", "user.email", "test@test.com", cwd=path)
    git("config", "user.name", "Test User", cwd=path)
    (path / "README").write_text("initial\n")
    git("add", "-A", cwd=path)
    git("commit", "-m", "Initial commit", cwd=path)
    git("branch", "-M", "main", cwd=path)
    return path


class FakeGit:
    """Stands in for ``CommandRunner.run_git``.

    A directory is a repository when it contains a ``.git`` directory.
    ``git pull`` answers with whatever was registered for the repository,
    defaulting to the up-to-date marker.
    """

    def __init__(self) -> None:
        self.pulls: dict[Path, tuple[int, str, str]] = {}
        self.calls: list[tuple[tuple[str, ...], Path]] = []

    def set_pull(
        self, repo: Path, *, returncode: int = 0, stdout: str = "", stderr: str = ""
    ) -> None:
        self.pulls[repo] = (returncode, stdout, stderr)

    def new_content(self, repo: Path) -> None:
        self.set_pull(repo, stdout="Updating 1111111..2222222\nFast-forward\n")

    def __call__(
        self, args: list[str], *, cwd: Path, check: bool = False
    ) -> CommandResult:
        self.calls.append((tuple(args), cwd))
        command = ["git", *args]
        if args[:2] == ["rev-parse", "--show-toplevel"]:
            if (cwd / ".git").is_dir():
                return CommandResult(0, command, cwd, stdout=f"{cwd}\n")
            return CommandResult(
                128, command, cwd, stderr="fatal: not a git repository"
            )
        if args == ["pull"]:
            rc, out, err = self.pulls.get(cwd, (0, f"{UP_TO_DATE_MARKER}\n", ""))
            return CommandResult(rc, command, cwd, stdout=out, stderr=err)
        msg = f"unexpected git call: {args}"
        raise AssertionError(msg)

    @property
    def pulled(self) -> list[Path]:
        return [cwd for args, cwd in self.calls if args == ("pull",)]


@pytest.fixture
def fake_git() -> FakeGit:
    """Create a FakeGit."""
    return FakeGit()


@pytest.fixture
def mock_cmd(fake_git: FakeGit) -> MagicMock:
    """CommandRunner mock: git answers from fake_git, every command exits 0."""
    mock = MagicMock(spec=CommandRunner)
    mock.run_git.side_effect = fake_git
    mock.run.side_effect = lambda command, *, cwd=None, env=None, check=False: (
        CommandResult(returncode=0, command=command, cwd=cwd)
    )
    return mock


@pytest.fixture
def base_dir(tmp_path: Path) -> Path:
    """Create an empty base directory."""
    path = tmp_path / "src"
    path.mkdir()
    return path


@pytest.fixture
def make_repo(base_dir: Path) -> Callable[..., Path]:
    """Create a fake repository (a directory with .git) in base_dir."""

    def _make(name: str, rema_toml: str | None = None) -> Path:
        repo = base_dir / name
        (repo / ".git").mkdir(parents=True)
        if rema_toml is not None:
            (repo / "rema.toml").write_text(rema_toml)
        return repo

    return _make


@pytest.fixture
def global_config(base_dir: Path) -> GlobalConfig:
    """GlobalConfig with base_dir as its only base directory."""
    return GlobalConfig(dirs={"src": BaseDirEntry(label="src", path=base_dir)})


@pytest.fixture
def command_runner() -> CommandRunner:
    """Create a CommandRunner instance without heartbeat."""
    return CommandRunner(heartbeat_interval=0)


def commit_file(repo: Path, name: str, content: str) -> None:
    """Write a file in ``repo`` and commit it."""
    (repo / name).write_text(content)
    git("add", "-A", cwd=repo)
    git("commit", "-m", f"Update {name}", cwd=repo)


@pytest.fixture
def cloned_repo(tmp_path: Path, base_dir: Path) -> Callable[..., tuple[Path, Path]]:
    """Create an upstream repository and clone it into base_dir.

    Returns a factory taking the repository name and returning
    ``(upstream, clone)``.
    """

    def _clone(name: str, rema_toml: str | None = None) -> tuple[Path, Path]:
        upstream = init_git_repo(tmp_path / "upstream" / name)
        if rema_toml is not None:
            commit_file(upstream, "rema.toml", rema_toml)
        clone = base_dir / name
        git("clone", str(upstream), str(clone), cwd=tmp_path)
        return upstream, clone

    return _clone
