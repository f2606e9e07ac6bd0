"""Tests for path expansion and default locations."""

from pathlib import Path

import pytest

from rema.paths import default_config_path, default_pending_path, expand_path


def test_expand_home(monkeypatch: pytest.MonkeyPatch) -> None:
    """Test that ~ expands to $HOME."""
    monkeypatch.setenv("HOME", "/home/randomuser")

    assert expand_path("~") == Path("/home/randomuser")
    assert expand_path("~/src") == Path("/home/randomuser/src")


def test_expand_variables(monkeypatch: pytest.MonkeyPatch) -> None:
    """Test $VAR and ${VAR} expansion."""
    monkeypatch.setenv("SRC", "/opt/src")

    assert expand_path("$SRC/dwm") == Path("/opt/src/dwm")
    assert expand_path("${SRC}/st") == Path("/opt/src/st")


def test_undefined_variable_is_an_error(monkeypatch: pytest.MonkeyPatch) -> None:
    """An unset variable is reported rather than left in the path."""
    monkeypatch.delenv("REMA_SURELY_UNSET", raising=False)

    with pytest.raises(ValueError, match="REMA_SURELY_UNSET"):
        expand_path("$REMA_SURELY_UNSET/src")


def test_relative_path_stays_relative() -> None:
    """Expansion never resolves against the working directory."""
    assert expand_path("src/repos") == Path("src/repos")
    assert not expand_path("src/repos").is_absolute()


def test_default_paths_follow_xdg(monkeypatch: pytest.MonkeyPatch) -> None:
    """Test XDG base directories are honoured."""
    monkeypatch.setenv("XDG_CONFIG_HOME", "/xdg/config")
    monkeypatch.setenv("XDG_STATE_HOME", "/xdg/state")

    assert default_config_path() == Path("/xdg/config/rema/config.toml")
    assert default_pending_path() == Path("/xdg/state/rema/pending.json")


def test_default_paths_fallback(monkeypatch: pytest.MonkeyPatch) -> None:
    """Without XDG variables, fall back to dot directories in $HOME."""
    monkeypatch.setenv("HOME", "/home/randomuser")
    monkeypatch.delenv("XDG_CONFIG_HOME", raising=False)
    monkeypatch.delenv("XDG_STATE_HOME", raising=False)

    assert default_config_path() == Path("/home/randomuser/.config/rema/config.toml")
    assert default_pending_path() == Path(
        "/home/randomuser/.local/state/rema/pending.json"
    )
