import enum
import logging
import os
import shutil
import subprocess
import tempfile
import time
from pathlib import Path

from .constants import APP_NAME, GIT_ENV, WORKDIR_PREFIX
from .errors import GitError

logger = logging.getLogger(APP_NAME)


def _remaining(deadline: float | None, phase: str) -> float | None:
    """Seconds left before `deadline`, or None when the call is unbounded.

    Raises:
        GitError: If the deadline has already passed.
    """
    if deadline is None:
        return None
    remaining = deadline - time.monotonic()
    if remaining <= 0:
        raise GitError(phase, "cycle timeout exceeded before git could run")
    return remaining


class CheckoutState(enum.Enum):
    """Whether the working directory holds a usable checkout yet."""

    UNINITIALIZED = "uninitialized"
    TRACKING = "tracking"


class RepositoryClient:
    """Keeps one private working directory converged on a remote branch.

    The first call to `advance` performs a shallow, single-branch clone; every
    later call fetches the branch tip and resets the checkout onto it. Both
    paths end with the working tree matching the branch tip and return its
    commit id.

    Attributes:
        repo_url (str): The remote repository location.
        path (Path): The working directory. Readers must not modify it.
        state (CheckoutState): Current checkout state.
    """

    def __init__(self, repo_url: str, workdir: Path | None = None):
        """Initializes the client and creates its working directory.

        Args:
            repo_url (str): The remote repository location.
            workdir (Path | None, optional): An existing empty directory to use
                                             instead of a fresh temporary one.
        """
        self.repo_url = repo_url
        if workdir is None:
            workdir = Path(tempfile.mkdtemp(prefix=WORKDIR_PREFIX))
        else:
            workdir.mkdir(parents=True, exist_ok=True)
        self.path = workdir
        self.state = CheckoutState.UNINITIALIZED

    def _run(
        self,
        args: list[str],
        phase: str,
        cwd: Path | None = None,
        timeout: float | None = None,
    ) -> str:
        """Executes a git command non-interactively.

        Args:
            args (list[str]): Arguments passed to git.
            phase (str): Reported in the GitError if the command fails.
            cwd (Path | None, optional): Working directory. Defaults to `path`.
            timeout (float | None, optional): Seconds before the command is killed.

        Returns:
            str: The stripped stdout of the command.

        Raises:
            GitError: If git exits non-zero, times out or cannot be started.
        """
        env = os.environ.copy()
        env.update(GIT_ENV)
        try:
            res = subprocess.run(
                ["git", *args],
                cwd=cwd or self.path,
                capture_output=True,
                text=True,
                check=True,
                env=env,
                timeout=timeout,
            )
            return res.stdout.strip()
        except subprocess.CalledProcessError as e:
            raise GitError(phase, (e.stderr or str(e)).strip()) from e
        except subprocess.TimeoutExpired as e:
            raise GitError(
                phase, f"git {args[0]} timed out after {timeout:g}s"
            ) from e
        except OSError as e:
            raise GitError(phase, f"could not run git: {e}") from e

    def advance(self, branch: str, timeout: float | None = None) -> str:
        """Brings the working directory to the tip of `branch`.

        "Already up to date" is a normal outcome and still returns the revision.

        Args:
            branch (str): The branch to track.
            timeout (float | None, optional): Seconds the whole call may take.
                                              Every git command gets whatever
                                              is left of this budget.

        Returns:
            str: The full commit id of the checked-out tip.

        Raises:
            GitError: If the clone or update fails or the budget runs out.
                      No retries are attempted.
        """
        deadline = None if timeout is None else time.monotonic() + timeout

        if self.state is CheckoutState.TRACKING and not self._is_usable(deadline):
            logger.warning(
                f"UPDATE {self.path}: checkout unusable, re-cloning from scratch."
            )
            self._reset()

        if self.state is CheckoutState.UNINITIALIZED:
            return self._clone(branch, deadline)
        return self._update(branch, deadline)

    def _clone(self, branch: str, deadline: float | None) -> str:
        logger.info(f"CLONE {self.repo_url} (branch: {branch})")
        try:
            self._run(
                [
                    "clone",
                    "--depth",
                    "1",
                    "--single-branch",
                    "--branch",
                    branch,
                    self.repo_url,
                    str(self.path),
                ],
                phase="clone",
                cwd=self.path.parent,
                timeout=_remaining(deadline, "clone"),
            )
        except GitError:
            # A half-written clone would make the next `git clone` refuse the
            # non-empty directory.
            self._clear_workdir()
            raise

        self.state = CheckoutState.TRACKING
        return self.head("clone", deadline)

    def _update(self, branch: str, deadline: float | None) -> str:
        logger.info(f"UPDATE fetching {branch} from {self.repo_url}")
        before = self.head("update", deadline)
        self._run(
            ["fetch", "--depth", "1", "origin", branch],
            phase="update",
            timeout=_remaining(deadline, "update"),
        )
        self._run(
            ["reset", "--hard", "FETCH_HEAD"],
            phase="update",
            timeout=_remaining(deadline, "update"),
        )
        revision = self.head("update", deadline)
        if revision == before:
            logger.info(f"UPDATE {branch}: already up to date ({revision[:7]}).")
        return revision

    def head(self, phase: str = "update", deadline: float | None = None) -> str:
        """Resolves the checked-out HEAD to a full commit id.

        Raises:
            GitError: If HEAD cannot be resolved before `deadline`.
        """
        revision = self._run(
            ["rev-parse", "HEAD"], phase=phase, timeout=_remaining(deadline, phase)
        )
        if not revision:
            raise GitError(phase, "HEAD resolved to an empty revision")
        return revision

    def _is_usable(self, deadline: float | None = None) -> bool:
        """Reports whether the existing checkout can take an incremental update."""
        if not (self.path / ".git").exists():
            return False
        try:
            self.head(deadline=deadline)
        except GitError as e:
            logger.debug(f"rev-parse failed in {self.path}: {e}")
            return False
        return True

    def _reset(self) -> None:
        self._clear_workdir()
        self.state = CheckoutState.UNINITIALIZED

    def _clear_workdir(self) -> None:
        """Removes everything inside the working directory, keeping the directory."""
        if not self.path.exists():
            self.path.mkdir(parents=True, exist_ok=True)
            return
        for child in self.path.iterdir():
            if child.is_dir() and not child.is_symlink():
                shutil.rmtree(child, ignore_errors=True)
            else:
                child.unlink(missing_ok=True)

    def cleanup(self) -> None:
        """Deletes the working directory. Best-effort; errors are only logged."""
        try:
            shutil.rmtree(self.path)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"Could not remove working directory {self.path}: {e}")
        self.state = CheckoutState.UNINITIALIZED
