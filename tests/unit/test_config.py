"""Unit tests for the global configuration schema."""

from __future__ import annotations

from pathlib import Path

import pytest

from rema.config import BaseDirEntry, GlobalConfig
from rema.exceptions import ConfigError


@pytest.fixture
def home(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Path:
    """Point $HOME at a temporary directory."""
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    return home


def test_config_full(home: Path) -> None:
    """Test every key is parsed."""
    config = GlobalConfig.from_toml(
        """
        autoclean = true
        autoupdate = true

        [dir.home]
        path = "~"
        ignore = ["a", "b", "c"]
        autoclean = true
        autoupdate = true
        """
    )

    entry = config.dirs["home"]
    assert config.autoclean is True
    assert config.autoupdate is True
    assert entry.label == "home"
    assert entry.path == home
    assert entry.include == frozenset()
    assert entry.ignore == frozenset({"a", "b", "c"})
    assert entry.autoclean is True
    assert entry.autoupdate is True


def test_config_minimal(home: Path) -> None:
    """Test defaults when only a path is given."""
    config = GlobalConfig.from_toml('[dir.home]\npath = "~"\n')

    entry = config.dirs["home"]
    assert config.autoclean is False
    assert config.autoupdate is False
    assert entry.path == home
    assert entry.include == frozenset()
    assert entry.ignore == frozenset()
    assert entry.autoclean is False
    assert entry.autoupdate is False


def test_dir_tables_inherit_top_level_flags(home: Path) -> None:
    """Tables without their own flags take the top-level values."""
    (home / "forks").mkdir()
    config = GlobalConfig.from_toml(
        """
        autoupdate = true

        [dir.home]
        path = "~"

        [dir.forks]
        path = "~/forks"
        autoupdate = false
        autoclean = true
        """
    )

    assert config.dirs["home"].autoupdate is True
    assert config.dirs["home"].autoclean is False
    assert config.dirs["forks"].autoupdate is False
    assert config.dirs["forks"].autoclean is True
    assert [e.label for e in config.entries] == ["home", "forks"]


def test_relative_base_dir_is_fatal(home: Path) -> None:
    """Relative paths are rejected, not resolved against the cwd."""
    with pytest.raises(ConfigError, match="relative") as exc_info:
        GlobalConfig.from_toml('[dir.rel]\npath = "src"\n')

    assert exc_info.value.field == "dir.rel.path"


def test_missing_base_dir_is_fatal(home: Path) -> None:
    """Test a base directory that does not exist."""
    with pytest.raises(ConfigError, match="existing directory"):
        GlobalConfig.from_toml('[dir.gone]\npath = "~/does-not-exist"\n')


def test_base_dir_that_is_a_file_is_fatal(home: Path) -> None:
    """Test a base directory that is a regular file."""
    (home / "file").write_text("")

    with pytest.raises(ConfigError, match="existing directory"):
        GlobalConfig.from_toml('[dir.file]\npath = "~/file"\n')


def test_undefined_variable_in_path_is_fatal(
    home: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    """Test unexpandable paths are configuration errors."""
    monkeypatch.delenv("REMA_SURELY_UNSET", raising=False)

    with pytest.raises(ConfigError, match="REMA_SURELY_UNSET"):
        GlobalConfig.from_toml('[dir.x]\npath = "$REMA_SURELY_UNSET"\n')


def test_dir_tables_are_required() -> None:
    """Test a config without any [dir.*] table."""
    with pytest.raises(ConfigError):
        GlobalConfig.from_toml("autoclean = true\n")

    with pytest.raises(ConfigError, match="at least one"):
        GlobalConfig.from_toml("dir = {}\n")


def test_non_boolean_flag_is_rejected(home: Path) -> None:
    """Test flags must be TOML booleans."""
    with pytest.raises(ConfigError):
        GlobalConfig.from_toml('[dir.home]\npath = "~"\nautoclean = "yes"\n')


def test_invalid_toml() -> None:
    """Test a syntactically broken file."""
    with pytest.raises(ConfigError, match="error in config file"):
        GlobalConfig.from_toml("[dir.home\npath = ")


def test_load_missing_file(tmp_path: Path) -> None:
    """Test loading a config file that does not exist."""
    missing = tmp_path / "nonexistantfile"

    with pytest.raises(ConfigError, match="could not read") as exc_info:
        GlobalConfig.load(missing)

    assert exc_info.value.config_path == missing


def test_load_file_that_is_not_utf8(tmp_path: Path) -> None:
    """Test a config file with bytes that do not decode."""
    config_file = tmp_path / "config.toml"
    config_file.write_bytes(b'[dir.a]\npath = "\xff"\n')

    with pytest.raises(ConfigError, match="not valid UTF-8") as exc_info:
        GlobalConfig.load(config_file)

    assert exc_info.value.config_path == config_file


def test_load_file(tmp_path: Path) -> None:
    """Test loading a config file from disk."""
    src = tmp_path / "src"
    src.mkdir()
    config_file = tmp_path / "config.toml"
    config_file.write_text(f'[dir.src]\npath = "{src}"\ninclude = ["dwm"]\n')

    config = GlobalConfig.load(config_file)

    assert config.dirs["src"].path == src
    assert config.dirs["src"].include == frozenset({"dwm"})


def test_entry_for(tmp_path: Path) -> None:
    """Test mapping a repository path back to its base directory."""
    src = tmp_path / "src"
    forks = tmp_path / "forks"
    src.mkdir()
    forks.mkdir()
    config = GlobalConfig(
        dirs={
            "src": BaseDirEntry(label="src", path=src),
            "forks": BaseDirEntry(label="forks", path=forks, autoupdate=True),
        }
    )

    assert config.entry_for(forks / "st") == config.dirs["forks"]
    assert config.entry_for(src / "dwm") == config.dirs["src"]
    assert config.entry_for(tmp_path / "elsewhere" / "x") is None


class TestBaseDirEntryFilters:
    """Tests for include/ignore filtering."""

    def test_empty_filters_accept_everything(self, tmp_path: Path) -> None:
        entry = BaseDirEntry(label="x", path=tmp_path)

        assert entry.accepts("anything")
        assert entry.rejection_reason("anything") is None

    def test_ignore(self, tmp_path: Path) -> None:
        entry = BaseDirEntry(label="x", path=tmp_path, ignore={"junk"})

        assert not entry.accepts("junk")
        assert entry.accepts("dwm")
        assert entry.rejection_reason("junk") == "ignored"

    def test_include(self, tmp_path: Path) -> None:
        entry = BaseDirEntry(label="x", path=tmp_path, include={"dwm", "st"})

        assert entry.accepts("dwm")
        assert not entry.accepts("slock")
        assert entry.rejection_reason("slock") == "not included"

    def test_ignore_beats_include(self, tmp_path: Path) -> None:
        entry = BaseDirEntry(
            label="x", path=tmp_path, include={"dwm", "st"}, ignore={"st"}
        )

        assert entry.accepts("dwm")
        assert not entry.accepts("st")
