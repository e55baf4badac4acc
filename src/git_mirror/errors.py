"""Exception hierarchy shared by the sync engine and its collaborators."""


class SyncError(Exception):
    """Base class for every error raised by Git Mirror."""


class ConfigError(SyncError):
    """A required setting is missing or invalid. Fatal at startup."""


class GitError(SyncError):
    """A clone or update of the working directory failed.

    Attributes:
        phase (str): Either ``"clone"`` or ``"update"``.
        cause (str): The underlying failure (git stderr, timeout message).
    """

    def __init__(self, phase: str, cause: str):
        self.phase = phase
        self.cause = cause
        super().__init__(f"{phase} failed: {cause}")


class MirrorError(SyncError):
    """Copying the checked-out subtree into the target path failed."""
