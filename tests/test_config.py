"""Tests for the configuration management subsystem."""

import dataclasses
import logging
from pathlib import Path
from typing import Any
from unittest.mock import MagicMock

import pytest

from git_mirror.config import (
    Config,
    parse_bool,
    parse_schedule,
    parse_size,
    parse_time,
)
from git_mirror.errors import ConfigError


@pytest.fixture(autouse=True)
def no_global_config(tmp_path: Path, mocker: MagicMock) -> Any:
    """Ensures the developer's own config file never leaks into a test."""
    mocker.patch("git_mirror.config.CONFIG_FILE", tmp_path / "absent.toml")


def test_config_defaults() -> None:
    """Verifies that the configuration initializes with the service defaults."""
    conf = Config.load(environ={})
    assert conf.sync.repo_url == ""
    assert conf.sync.branch == "main"
    assert conf.sync.source_path == "/"
    assert conf.sync.target_path == "/data"
    assert conf.sync.schedule == 300
    assert conf.sync.once is False
    assert conf.server.port == 8080
    assert conf.logging.level == "INFO"


def test_config_env_overrides_file(tmp_path: Path) -> None:
    """Verifies the layering Defaults -> TOML file -> environment.

    Args:
        tmp_path (Path): Pytest fixture for a temporary directory.
    """
    config_file = tmp_path / "config.toml"
    config_file.write_text(
        "[sync]\n"
        'repo_url = "https://example.com/from-file.git"\n'
        'branch = "release"\n'
        'schedule = "*/10 * * * *"\n'
        "[server]\n"
        "port = 9000\n"
    )
    environ = {
        "GIT_REPO_URL": "https://example.com/r.git",
        "TARGET_PATH": "/out",
        "SYNC_ONCE": "true",
        "PORT": "9100",
    }

    conf = Config.load(config_file, environ=environ)

    assert conf.sync.repo_url == "https://example.com/r.git"  # Env wins
    assert conf.sync.branch == "release"  # From file
    assert conf.sync.interval == 600  # Cron step parsed
    assert conf.sync.target_path == "/out"
    assert conf.sync.once is True
    assert conf.server.port == 9100


def test_config_empty_env_counts_as_unset() -> None:
    """Verifies that blank variables fall back to defaults like the original service."""
    conf = Config.load(environ={"GIT_BRANCH": "", "TARGET_PATH": ""})
    assert conf.sync.branch == "main"
    assert conf.sync.target_path == "/data"


def test_config_is_immutable() -> None:
    """Verifies that a loaded configuration cannot be mutated in place."""
    conf = Config()
    with pytest.raises(dataclasses.FrozenInstanceError):
        conf.sync.branch = "other"  # type: ignore[misc]


def test_validate_requires_repo_url() -> None:
    """Verifies that a missing repository location is a configuration error."""
    conf = Config.load(environ={"TARGET_PATH": "/out"})
    with pytest.raises(ConfigError, match="GIT_REPO_URL is required"):
        conf.validate()


def test_validate_requires_target_path(tmp_path: Path) -> None:
    """Verifies that an explicitly blank target path is rejected."""
    config_file = tmp_path / "config.toml"
    config_file.write_text('[sync]\nrepo_url = "x"\ntarget_path = ""\n')
    conf = Config.load(config_file, environ={})
    with pytest.raises(ConfigError, match="TARGET_PATH is required"):
        conf.validate()


def test_validate_accepts_complete_config() -> None:
    """Verifies that the example deployment settings validate."""
    conf = Config.load(
        environ={
            "GIT_REPO_URL": "https://example.com/r.git",
            "GIT_SOURCE_PATH": "/docs",
            "TARGET_PATH": "/out",
        }
    )
    conf.validate()
    assert conf.sync.source_path == "/docs"


@pytest.mark.parametrize("value", ["0 * * * *", "@hourly", "every hour"])
def test_validate_rejects_unsupported_schedule(value: str) -> None:
    """Verifies an unusable interval stops startup instead of changing the cadence.

    Args:
        value (str): A SYNC_INTERVAL the scheduler cannot honour.
    """
    conf = Config.load(
        environ={
            "GIT_REPO_URL": "https://example.com/r.git",
            "SYNC_INTERVAL": value,
        }
    )

    assert conf.sync.schedule == value
    with pytest.raises(ConfigError, match="SYNC_INTERVAL is invalid"):
        conf.validate()


def test_validate_accepts_every_schedule() -> None:
    conf = Config.load(environ={"GIT_REPO_URL": "x", "SYNC_INTERVAL": "@every 1h"})
    conf.validate()
    assert conf.sync.interval == 3600


def test_parse_size() -> None:
    """Verifies that human-readable sizes are correctly converted to bytes."""
    assert parse_size(100) == 100
    assert parse_size("100kb") == 102400
    assert parse_size("10 MB") == 10485760

    with pytest.raises(ValueError, match=r"Invalid size format '100 bits'"):
        parse_size("100 bits")


def test_parse_time() -> None:
    """Verifies that human-readable times are correctly converted to seconds."""
    assert parse_time(50) == 50
    assert parse_time("120") == 120
    assert parse_time("30s") == 30
    assert parse_time("10 min") == 600
    assert parse_time("1.5h") == 5400

    with pytest.raises(ValueError, match=r"Invalid time format '10 lightyears'"):
        parse_time("10 lightyears")


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        ("*/5 * * * *", 300),
        ("*/1 * * * *", 60),
        ("* * * * *", 60),
        ("@every 1h", 3600),
        ("@every 90s", 90),
        ("5m", 300),
        ("10 min", 600),
        (45, 45),
    ],
)
def test_parse_schedule(value: int | str, expected: int) -> None:
    """Verifies the accepted interval and cron step forms."""
    assert parse_schedule(value) == expected


@pytest.mark.parametrize(
    "value", ["0 3 * * *", "0 * * * *", "@hourly", "*/0 * * * *", "soon"]
)
def test_parse_schedule_rejects_unsupported(value: str) -> None:
    """Verifies that cron forms without a fixed interval are rejected."""
    with pytest.raises(ValueError):
        parse_schedule(value)


def test_parse_bool() -> None:
    assert parse_bool(True) is True
    assert parse_bool("TRUE") is True
    assert parse_bool("1") is True
    assert parse_bool("false") is False
    assert parse_bool("anything") is False


def test_config_invalid_keys_and_values(
    tmp_path: Path, caplog: pytest.LogCaptureFixture
) -> None:
    """Verifies that unknown keys are ignored and invalid values fallback to defaults.

    Args:
        tmp_path (Path): Pytest fixture for a temporary directory.
        caplog (pytest.LogCaptureFixture): Pytest fixture for capturing logs.
    """
    caplog.set_level(logging.WARNING)

    config_file = tmp_path / "config.toml"
    config_file.write_text(
        "[sync]\n"
        'fake_setting = "ignored"\n'
        "[logging]\n"
        'max_log_size = "10 gallons"\n'
        "[extras]\n"
        "x = 1\n"
    )

    conf = Config.load(config_file, environ={})

    assert conf.logging.max_log_size == 5242880

    assert "Unknown config keys in [sync]: fake_setting" in caplog.text
    assert "Config error in [logging].max_log_size: Invalid size format" in caplog.text
    assert "Unknown config sections" in caplog.text


def test_config_syntax_error_keeps_defaults(
    tmp_path: Path, caplog: pytest.LogCaptureFixture
) -> None:
    """Verifies that a broken TOML file is reported and otherwise ignored."""
    config_file = tmp_path / "config.toml"
    config_file.write_text("[sync\nrepo_url = ")

    conf = Config.load(config_file, environ={"GIT_REPO_URL": "https://x/r.git"})

    assert conf.sync.repo_url == "https://x/r.git"
    assert "Config syntax error" in caplog.text


def test_config_missing_explicit_file_warns(
    tmp_path: Path, caplog: pytest.LogCaptureFixture
) -> None:
    conf = Config.load(tmp_path / "nope.toml", environ={})
    assert conf == Config()
    assert "not found" in caplog.text
