"""Git Mirror: periodic mirroring of a remote git subtree onto local disk.

This package provides the repository client, the filesystem mirror, the sync
engine that sequences them and tracks health, and the daemon, status server
and command-line interface that run the engine as a service.
"""

from . import (
    cli,
    config,
    constants,
    daemon,
    engine,
    errors,
    git_wrapper,
    mirror,
    server,
    status,
)

__all__ = [
    "cli",
    "config",
    "constants",
    "daemon",
    "engine",
    "errors",
    "git_wrapper",
    "mirror",
    "server",
    "status",
]
