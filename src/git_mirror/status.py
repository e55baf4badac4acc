"""Immutable health snapshots shared between the engine and its readers."""

import datetime
from dataclasses import dataclass, replace
from typing import Any


@dataclass(frozen=True)
class SyncStatus:
    """The last-known outcome of the sync engine.

    A new instance replaces the old one after every cycle, so a reader holding
    a reference always sees fields from a single cycle.

    Attributes:
        repo_url (str): The mirrored repository.
        branch (str): The tracked branch.
        target_path (str): Where the mirror is written.
        healthy (bool): True only while the last cycle succeeded.
        last_sync_time (datetime.datetime | None): End of the last successful cycle (UTC).
        last_revision (str): Commit id the target reflects as of `last_sync_time`.
        success_count (int): Successful cycles since start.
        error_count (int): Failed cycles since start.
        last_error (str | None): Message of the most recent failure, if unresolved.
    """

    repo_url: str
    branch: str
    target_path: str
    healthy: bool = False
    last_sync_time: datetime.datetime | None = None
    last_revision: str = ""
    success_count: int = 0
    error_count: int = 0
    last_error: str | None = None

    def succeeded(self, revision: str, when: datetime.datetime) -> "SyncStatus":
        """Returns the status following a successful cycle."""
        return replace(
            self,
            healthy=True,
            last_sync_time=when,
            last_revision=revision,
            success_count=self.success_count + 1,
            last_error=None,
        )

    def failed(self, error: str) -> "SyncStatus":
        """Returns the status following a failed cycle."""
        return replace(
            self,
            healthy=False,
            error_count=self.error_count + 1,
            last_error=error,
        )

    def to_dict(self) -> dict[str, Any]:
        """Serializes the snapshot for the metrics endpoint and the CLI."""
        return {
            "healthy": self.healthy,
            "lastSyncTime": (
                self.last_sync_time.isoformat() if self.last_sync_time else None
            ),
            "lastRevision": self.last_revision,
            "successCount": self.success_count,
            "errorCount": self.error_count,
            "repoLocation": self.repo_url,
            "branch": self.branch,
            "targetPath": self.target_path,
            "lastError": self.last_error,
        }


@dataclass(frozen=True)
class CycleResult:
    """What a single `SyncEngine.run_cycle` call did.

    Attributes:
        success (bool): Both the checkout and the mirror pass completed.
        revision (str | None): The revision mirrored, on success.
        error (str | None): Failure description, on failure.
        phase (str | None): Which phase failed ('clone', 'update', 'mirror').
        skipped (bool): Another cycle was running and this one did nothing.
    """

    success: bool
    revision: str | None = None
    error: str | None = None
    phase: str | None = None
    skipped: bool = False
