"""Tests for the configuration management subsystem."""

from pathlib import Path
from unittest.mock import MagicMock

import pytest

from dotsync.config import Config, parse_size, parse_time


@pytest.fixture(autouse=True)
def no_env_override(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("DOTSYNC_WATCH_DIR", raising=False)


def test_config_defaults() -> None:
    """Verifies that the configuration initializes with sensible defaults."""
    conf = Config()
    assert conf.core.remote_name == "origin"
    assert conf.core.branch == "main"
    assert conf.core.watch_path == Path.home() / ".claude"
    assert conf.daemon.debounce_interval == 30
    assert conf.daemon.push_interval == 300
    assert conf.daemon.alert_after == 3
    assert conf.files.ignore == []


def test_config_presets() -> None:
    """Verifies that applying a preset updates the daemon intervals correctly."""
    conf = Config()

    conf.daemon.preset = "eager"
    conf.daemon.apply_preset()
    assert conf.daemon.debounce_interval == 10
    assert conf.daemon.push_interval == 60

    conf.daemon.preset = "lazy"
    conf.daemon.apply_preset()
    assert conf.daemon.debounce_interval == 120
    assert conf.daemon.push_interval == 1800


def test_config_load_from_file(tmp_path: Path) -> None:
    """Verifies that file values override defaults and ignore lists are merged."""
    config_path = tmp_path / "config.toml"
    config_path.write_text(
        '[core]\nwatch_dir = "~/dotfiles"\nremote_name = "upstream"\n'
        '[daemon]\ndebounce_interval = "45s"\npush_interval = "10m"\n'
        '[files]\nignore = ["*.tmp", "*.tmp"]\n'
    )

    conf = Config.load(config_path)

    assert conf.core.remote_name == "upstream"
    assert conf.core.watch_path == Path.home() / "dotfiles"
    assert conf.daemon.debounce_interval == 45
    assert conf.daemon.push_interval == 600
    assert conf.files.ignore == ["*.tmp"]


def test_config_load_uses_global_file(tmp_path: Path, mocker: MagicMock) -> None:
    """Verifies that `load()` without arguments reads CONFIG_FILE."""
    global_config_path = tmp_path / "global_config.toml"
    global_config_path.write_text('[core]\nbranch = "trunk"\n')
    mocker.patch("dotsync.config.CONFIG_FILE", global_config_path)

    assert Config.load().core.branch == "trunk"


def test_config_env_overrides_watch_dir(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    """Verifies that DOTSYNC_WATCH_DIR wins over the file."""
    config_path = tmp_path / "config.toml"
    config_path.write_text('[core]\nwatch_dir = "/somewhere/else"\n')
    monkeypatch.setenv("DOTSYNC_WATCH_DIR", str(tmp_path))

    assert Config.load(config_path).core.watch_path == tmp_path


def test_config_syntax_error_falls_back_to_defaults(
    tmp_path: Path, caplog: pytest.LogCaptureFixture
) -> None:
    config_path = tmp_path / "config.toml"
    config_path.write_text("[daemon\npush_interval = 1")

    conf = Config.load(config_path)

    assert conf.daemon.push_interval == 300
    assert "Config syntax error" in caplog.text


def test_parse_size() -> None:
    """Verifies that human-readable sizes are correctly converted to bytes."""
    assert parse_size(100) == 100
    assert parse_size("100kb") == 102400
    assert parse_size("10 MB") == 10485760
    assert parse_size("1.5gb") == int(1.5 * 1024**3)

    with pytest.raises(ValueError, match=r"Invalid size format '100 bits'"):
        parse_size("100 bits")


def test_parse_time() -> None:
    """Verifies that human-readable times are correctly converted to seconds."""
    assert parse_time(50) == 50
    assert parse_time("30s") == 30
    assert parse_time("10 min") == 600
    assert parse_time("2 hrs") == 7200
    assert parse_time("1.5h") == 5400

    with pytest.raises(ValueError, match=r"Invalid time format '10 lightyears'"):
        parse_time("10 lightyears")


def test_config_invalid_keys_and_values(
    tmp_path: Path, caplog: pytest.LogCaptureFixture
) -> None:
    """Verifies that unknown keys are ignored and invalid values fallback to defaults.

    Args:
        tmp_path (Path): Pytest fixture for a temporary directory.
        caplog (pytest.LogCaptureFixture): Pytest fixture for capturing logs.
    """
    import logging

    caplog.set_level(logging.WARNING)

    config_path = tmp_path / "config.toml"
    config_path.write_text(
        "[daemon]\n"
        'debounce_interval = "fast"\n'
        "alert_after = -1\n"
        'fake_setting = "ignored"\n'
        "[limits]\n"
        'max_log_size = "10 gallons"\n'
    )

    conf = Config.load(config_path)

    # Assert fallbacks to defaults
    assert conf.daemon.debounce_interval == 30
    assert conf.daemon.alert_after == 3
    assert conf.limits.max_log_size == 5242880

    # Assert warnings were logged
    assert "Unknown config keys in [daemon]: fake_setting" in caplog.text
    assert (
        "Config error in [daemon].debounce_interval: Invalid time format" in caplog.text
    )
    assert "Config error in [daemon].alert_after" in caplog.text
    assert "Config error in [limits].max_log_size: Invalid size format" in caplog.text
