import logging
import os
import re
import tomllib
from collections.abc import Mapping
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any

from .constants import (
    APP_NAME,
    CONFIG_FILE,
    DEFAULT_BRANCH,
    DEFAULT_HOST,
    DEFAULT_PORT,
    DEFAULT_SCHEDULE,
    DEFAULT_SOURCE_PATH,
    DEFAULT_TARGET_PATH,
    DEFAULT_TIMEOUT,
    ENV_VARS,
)
from .errors import ConfigError

logger = logging.getLogger(APP_NAME)

_CRON_EVERY_N_MINUTES = re.compile(r"^\*/(\d+)\s+\*\s+\*\s+\*\s+\*$")
_CRON_EVERY_MINUTE = re.compile(r"^\*\s+\*\s+\*\s+\*\s+\*$")


def parse_size(value: int | str) -> int:
    """Converts human-readable size strings (e.g., '100MB') to bytes."""
    if isinstance(value, int):
        return value
    match = re.match(r"^(\d+(?:\.\d+)?)\s*([kmg]b?)$", str(value).strip().lower())
    if not match:
        raise ValueError(f"Invalid size format '{value}'")
    num, unit = float(match.group(1)), match.group(2)
    multiplier = {
        "k": 1024,
        "kb": 1024,
        "m": 1024**2,
        "mb": 1024**2,
        "g": 1024**3,
        "gb": 1024**3,
    }
    return int(num * multiplier[unit])


def parse_time(value: int | str) -> int:
    """Converts human-readable time strings (e.g., '1hr', '30m') to seconds."""
    if isinstance(value, int):
        return value
    text = str(value).strip().lower()
    if text.isdigit():
        return int(text)
    match = re.match(r"^(\d+(?:\.\d+)?)\s*(s|sec|m|min|h|hr)s?$", text)
    if not match:
        raise ValueError(f"Invalid time format '{value}'")
    num, unit = float(match.group(1)), match.group(2)
    multiplier = {"s": 1, "sec": 1, "m": 60, "min": 60, "h": 3600, "hr": 3600}
    return int(num * multiplier[unit])


def parse_schedule(value: int | str) -> int:
    """Converts a sync interval to seconds.

    Accepts everything `parse_time` does, ``@every <duration>``, and the two
    cron forms the scheduler can express as a fixed interval: ``*/N * * * *``
    (every N minutes) and ``* * * * *`` (every minute).

    Raises:
        ValueError: If the value is neither a duration nor a supported form.
    """
    if isinstance(value, str):
        text = value.strip()
        if match := _CRON_EVERY_N_MINUTES.match(text):
            minutes = int(match.group(1))
            if minutes < 1:
                raise ValueError(f"Invalid cron step in '{value}'")
            return minutes * 60
        if _CRON_EVERY_MINUTE.match(text):
            return 60
        if text.startswith("@every "):
            return parse_time(text.removeprefix("@every ").strip())
        if text.startswith("@") or len(text.split()) >= 5:
            raise ValueError(
                f"Unsupported schedule '{value}' (use a duration such as '5m', "
                "'@every 1h' or '*/N * * * *')"
            )
    return parse_time(value)


def parse_bool(value: bool | str) -> bool:
    """Interprets 'true', '1' and 'yes' (any case) as True."""
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in {"true", "1", "yes"}


@dataclass(frozen=True)
class SyncConfig:
    """What to mirror and how often.

    Attributes:
        repo_url (str): Location of the remote repository.
        branch (str): The branch tracked by the working directory.
        source_path (str): Subtree inside the repository to mirror ('/' = root).
        target_path (str): Local directory receiving the mirrored files.
        once (bool): Run a single cycle and exit instead of scheduling.
        schedule (int | str): Interval between cycles as configured (see
                              `parse_schedule`). Checked by `Config.validate`.
        timeout (int): Seconds a single cycle may take.
    """

    repo_url: str = ""
    branch: str = DEFAULT_BRANCH
    source_path: str = DEFAULT_SOURCE_PATH
    target_path: str = DEFAULT_TARGET_PATH
    once: bool = False
    schedule: int | str = DEFAULT_SCHEDULE
    timeout: int = DEFAULT_TIMEOUT

    @property
    def interval(self) -> int:
        """Seconds between cycles.

        Raises:
            ValueError: If `schedule` is not a supported form.
        """
        return parse_schedule(self.schedule)


@dataclass(frozen=True)
class ServerConfig:
    """Status server settings.

    Attributes:
        host (str): Bind address for the health/metrics endpoints.
        port (int): Listening port.
        enabled (bool): Whether the daemon starts the server at all.
    """

    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    enabled: bool = True


@dataclass(frozen=True)
class LoggingConfig:
    """Logging settings.

    Attributes:
        level (str): Name of the log level (DEBUG, INFO, ...).
        file (str | None): Optional log file, rotated at `max_log_size`.
        max_log_size (int): Max bytes for the log file before rotation.
    """

    level: str = "INFO"
    file: str | None = None
    max_log_size: int = 5 * 1024 * 1024


_PARSERS = {
    "timeout": parse_time,
    "once": parse_bool,
    "enabled": parse_bool,
    "port": int,
    "max_log_size": parse_size,
}


@dataclass(frozen=True)
class Config:
    """Global configuration aggregator.

    Attributes:
        sync (SyncConfig): Repository and target settings.
        server (ServerConfig): Status server settings.
        logging (LoggingConfig): Log output settings.
    """

    sync: SyncConfig = field(default_factory=SyncConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def load(
        cls,
        config_file: Path | None = None,
        environ: Mapping[str, str] | None = None,
    ) -> "Config":
        """Builds the configuration from defaults, a TOML file and the environment.

        Later layers win: environment variables override the file, which
        overrides the defaults.

        Args:
            config_file (Path | None): TOML file to read. Defaults to CONFIG_FILE.
            environ (Mapping[str, str] | None): Environment to read.
                                                Defaults to os.environ.

        Returns:
            Config: The merged configuration. Not yet validated.
        """
        instance = cls()

        path = config_file if config_file is not None else CONFIG_FILE
        if path.exists():
            instance = instance._merge_from_file(path)
        elif config_file is not None:
            logger.warning(f"Config file {path} not found. Using defaults.")

        return instance._merge_from_env(os.environ if environ is None else environ)

    def validate(self) -> None:
        """Checks the settings required before any cycle may run.

        Raises:
            ConfigError: If a required field is missing or a value is out of range.
        """
        if not self.sync.repo_url:
            raise ConfigError("GIT_REPO_URL is required")
        if not self.sync.target_path:
            raise ConfigError("TARGET_PATH is required")
        if not self.sync.branch:
            raise ConfigError("GIT_BRANCH must not be empty")
        try:
            interval = self.sync.interval
        except ValueError as e:
            raise ConfigError(f"SYNC_INTERVAL is invalid: {e}") from e
        if interval <= 0:
            raise ConfigError("SYNC_INTERVAL must be positive")
        if self.sync.timeout <= 0:
            raise ConfigError("SYNC_TIMEOUT must be positive")
        if not 0 < self.server.port < 65536:
            raise ConfigError(f"PORT out of range: {self.server.port}")

    def _merge_from_file(self, path: Path) -> "Config":
        """Parses a TOML file and returns a copy with its sections merged in.

        Args:
            path (Path): Path to the TOML file.
        """
        try:
            with open(path, "rb") as f:
                data = tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            logger.error(f"Config syntax error in {path}: {e}")
            return self
        except OSError as e:
            logger.warning(f"Failed to load config from {path}: {e}")
            return self

        unknown = set(data) - {f.name for f in fields(self)}
        if unknown:
            logger.warning(
                f"Unknown config sections in {path}: {', '.join(sorted(unknown))}. "
                "Ignoring."
            )

        return self._merge(data)

    def _merge_from_env(self, environ: Mapping[str, str]) -> "Config":
        """Returns a copy with the known environment variables applied."""
        data: dict[str, dict[str, str]] = {}
        for var, (section, key) in ENV_VARS.items():
            value = environ.get(var)
            # Empty variables count as unset.
            if value:
                data.setdefault(section, {})[key] = value
        return self._merge(data)

    def _merge(self, data: dict[str, Any]) -> "Config":
        updates = {}
        for section in ("sync", "server", "logging"):
            if isinstance(data.get(section), dict):
                updates[section] = self._update_dataclass(
                    section, getattr(self, section), data[section]
                )
        return replace(self, **updates)

    @staticmethod
    def _update_dataclass(section_name: str, instance: Any, updates: dict) -> Any:
        """Updates a dataclass, warning on invalid keys and parsing human-readable formats."""
        valid_keys = instance.__dataclass_fields__.keys()
        filtered_updates = {}

        # 1. Catch and warn about typos / unknown keys
        invalid_keys = set(updates.keys()) - set(valid_keys)
        if invalid_keys:
            logger.warning(
                f"Unknown config keys in [{section_name}]: "
                f"{', '.join(sorted(invalid_keys))}. Ignoring."
            )

        # 2. Process valid keys
        for k, v in updates.items():
            if k not in valid_keys:
                continue

            try:
                parser = _PARSERS.get(k)
                filtered_updates[k] = parser(v) if parser else v
            except ValueError as e:
                logger.warning(
                    f"Config error in [{section_name}].{k}: {e}. Falling back to default."
                )

        return replace(instance, **filtered_updates)
