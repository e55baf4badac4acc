import datetime
import logging
import threading
import time
from collections.abc import Callable
from pathlib import Path

from .config import SyncConfig
from .constants import APP_NAME
from .errors import GitError, MirrorError
from .git_wrapper import RepositoryClient
from .mirror import Mirror
from .status import CycleResult, SyncStatus

logger = logging.getLogger(APP_NAME)


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


class SyncEngine:
    """Runs synchronization cycles and owns the authoritative status.

    One cycle advances the working directory to the branch tip, mirrors the
    configured subtree into the target, then publishes the outcome. Cycles
    never overlap. Status readers only wait for the moment a finished cycle
    swaps in its new snapshot, never for git or filesystem work.

    Attributes:
        config (SyncConfig): The validated sync settings.
        client (RepositoryClient): Owner of the working directory.
        mirror (Mirror): The copy step.
    """

    def __init__(
        self,
        config: SyncConfig,
        client: RepositoryClient | None = None,
        mirror: Mirror | None = None,
        clock: Callable[[], datetime.datetime] = _utcnow,
    ):
        self.config = config
        self.client = client or RepositoryClient(config.repo_url)
        self.mirror = mirror or Mirror()
        self._clock = clock
        self._cycle_lock = threading.Lock()
        self._status_lock = threading.Lock()
        self._status = SyncStatus(
            repo_url=config.repo_url,
            branch=config.branch,
            target_path=config.target_path,
        )

    @property
    def source_path(self) -> Path:
        """The configured subtree inside the working directory."""
        return self.client.path / self.config.source_path.lstrip("/")

    @property
    def target_path(self) -> Path:
        return Path(self.config.target_path)

    def snapshot(self) -> SyncStatus:
        """Returns a consistent copy of the current status."""
        with self._status_lock:
            return self._status

    def is_healthy(self) -> bool:
        return self.snapshot().healthy

    def run_cycle(self, wait: bool = True) -> CycleResult:
        """Performs one complete synchronization attempt.

        Per-cycle errors are recorded in the status and returned, never raised,
        so the engine stays usable after any number of failures.

        Args:
            wait (bool, optional): Block until a running cycle finishes. When
                                   False, a busy engine returns immediately
                                   with a skipped result. Defaults to True.

        Returns:
            CycleResult: The outcome of this call.
        """
        if not self._cycle_lock.acquire(blocking=wait):
            logger.info("SKIPPED: previous sync cycle still running.")
            return CycleResult(success=False, skipped=True)
        try:
            return self._run_cycle()
        finally:
            self._cycle_lock.release()

    def _run_cycle(self) -> CycleResult:
        cfg = self.config
        logger.info(f"SYNC START {cfg.repo_url} (branch: {cfg.branch})")
        deadline = time.monotonic() + cfg.timeout

        # 1. Checkout / update.
        try:
            revision = self.client.advance(
                cfg.branch, timeout=deadline - time.monotonic()
            )
        except GitError as e:
            return self._record_failure(e.phase, str(e))
        except Exception as e:
            logger.exception("CHECKOUT: unexpected failure")
            return self._record_failure("checkout", f"unexpected error: {e}")

        # 2. Mirror.
        try:
            source = self._resolve_source()
            result = self.mirror.copy(source, self.target_path, deadline=deadline)
        except MirrorError as e:
            return self._record_failure("mirror", str(e))
        except Exception as e:
            logger.exception("MIRROR: unexpected failure")
            return self._record_failure("mirror", f"unexpected error: {e}")

        # 3. Publish.
        with self._status_lock:
            self._status = self._status.succeeded(revision, self._clock())

        logger.info(
            f"SYNC OK {revision[:7]} -> {self.target_path} "
            f"({result.files} files, {result.directories} dirs)."
        )
        return CycleResult(success=True, revision=revision)

    def _resolve_source(self) -> Path:
        source = self.source_path
        if not source.resolve().is_relative_to(self.client.path.resolve()):
            raise MirrorError(
                f"Source path {self.config.source_path!r} escapes the repository"
            )
        return source

    def _record_failure(self, phase: str, error: str) -> CycleResult:
        with self._status_lock:
            self._status = self._status.failed(error)
        logger.error(f"SYNC ERROR ({phase}): {error}")
        return CycleResult(success=False, error=error, phase=phase)

    def close(self) -> None:
        """Releases the working directory. Waits for a running cycle first."""
        with self._cycle_lock:
            self.client.cleanup()
