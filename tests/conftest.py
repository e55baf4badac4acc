"""Shared fixtures: throwaway git remotes for integration tests."""

import shutil
import subprocess
from pathlib import Path

import pytest

requires_git = pytest.mark.skipif(
    shutil.which("git") is None, reason="git executable not available"
)


class LocalRemote:
    """A non-bare repository on disk that tests commit to and clone from."""

    def __init__(self, path: Path, branch: str = "main"):
        self.path = path
        self.branch = branch
        path.mkdir(parents=True)
        self.git("init", "-q", "-b", branch)

    @property
    def url(self) -> str:
        return self.path.as_uri()

    def git(self, *args: str) -> str:
        res = subprocess.run(
            [
                "git",
                "-c",
                "user.name=Test",
                "-c",
                "user.email=test@example.com",
                "-c",
                "commit.gpgsign=false",
                *args,
            ],
            cwd=self.path,
            capture_output=True,
            text=True,
            check=True,
        )
        return res.stdout.strip()

    def commit(self, files: dict[str, str], message: str = "update") -> str:
        """Writes `files` (relative path -> text) and commits them.

        Returns:
            str: The new commit id.
        """
        for name, content in files.items():
            dest = self.path / name
            dest.parent.mkdir(parents=True, exist_ok=True)
            dest.write_text(content)
        self.git("add", "-A")
        self.git("commit", "-q", "-m", message)
        return self.git("rev-parse", "HEAD")


@pytest.fixture
def remote(tmp_path: Path) -> LocalRemote:
    """A local repository with one commit on `main`."""
    repo = LocalRemote(tmp_path / "remote")
    repo.commit(
        {
            "README.md": "# root\n",
            "docs/index.md": "hello\n",
            "docs/guide/setup.md": "steps\n",
        },
        message="initial",
    )
    return repo
