import os
from pathlib import Path

"""Global constants and default settings for Git Mirror.

This module defines application identifiers, the environment variables the
daemon reads, configuration defaults and the version-control metadata names
excluded from every mirror pass.
"""

# --- Identity ---
APP_NAME = "git-mirror"
"""str: The human-readable application name (also the logger name)."""

WORKDIR_PREFIX = "git-sync-work-"
"""str: Prefix of the temporary working directory holding the checkout."""

# --- Configuration Paths ---
CONFIG_DIR: Path = Path.home() / ".config/git-mirror"
"""Path: The directory for user configuration files."""

CONFIG_FILE: Path = Path(
    os.environ.get("GIT_MIRROR_CONFIG") or CONFIG_DIR / "config.toml"
)
"""Path: The configuration file path, overridable with GIT_MIRROR_CONFIG."""

# --- Defaults ---
DEFAULT_BRANCH = "main"
DEFAULT_SOURCE_PATH = "/"
DEFAULT_TARGET_PATH = "/data"
DEFAULT_SCHEDULE = 300
"""int: Seconds between cycles (the original cron default `*/5 * * * *`)."""

DEFAULT_TIMEOUT = 300
"""int: Seconds a single cycle may spend on git and filesystem work."""

DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 8080

# --- Environment ---
ENV_VARS = {
    "GIT_REPO_URL": ("sync", "repo_url"),
    "GIT_BRANCH": ("sync", "branch"),
    "GIT_SOURCE_PATH": ("sync", "source_path"),
    "TARGET_PATH": ("sync", "target_path"),
    "SYNC_INTERVAL": ("sync", "schedule"),
    "SYNC_TIMEOUT": ("sync", "timeout"),
    "SYNC_ONCE": ("sync", "once"),
    "HOST": ("server", "host"),
    "PORT": ("server", "port"),
    "LOG_LEVEL": ("logging", "level"),
    "LOG_FILE": ("logging", "file"),
}
"""dict[str, tuple[str, str]]: Environment variable -> (config section, key)."""

BUILD_COMMIT_ENV = "GIT_MIRROR_COMMIT"
BUILD_DATE_ENV = "GIT_MIRROR_BUILD_DATE"

# --- Git / Mirror Constants ---
VCS_METADATA_DIRS = frozenset({".git"})
"""frozenset[str]: Directory names never copied into the target."""

GIT_ENV = {
    "GIT_TERMINAL_PROMPT": "0",
    "GIT_SSH_COMMAND": "ssh -o BatchMode=yes",
}
"""dict[str, str]: Environment overrides keeping git non-interactive."""
