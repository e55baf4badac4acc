"""Reproduces a checked-out subtree under the target path.

The mirror is additive: files are created or overwritten, never deleted. A
file removed upstream stays in the target until an operator removes it.
"""

import enum
import logging
import os
import shutil
import stat
import time
from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from pathlib import Path

from .constants import APP_NAME, VCS_METADATA_DIRS
from .errors import MirrorError

logger = logging.getLogger(APP_NAME)


class EntryKind(enum.Enum):
    DIRECTORY = "directory"
    FILE = "file"
    SYMLINK = "symlink"


@dataclass(frozen=True)
class Entry:
    """One item found below the source root.

    Attributes:
        relpath (Path): Location relative to the source root.
        kind (EntryKind): What the item is (symlinks are not followed).
        mode (int): Permission bits (`stat.S_IMODE`) of the item.
    """

    relpath: Path
    kind: EntryKind
    mode: int = 0o644


@dataclass
class MirrorResult:
    """Counts of what one mirror pass wrote."""

    files: int = 0
    directories: int = 0
    symlinks: int = 0


def is_excluded(entry: Entry, excluded: Iterable[str] = VCS_METADATA_DIRS) -> bool:
    """Reports whether an entry is version-control metadata or lives inside it."""
    names = frozenset(excluded)
    parts = entry.relpath.parts
    if any(part in names for part in parts[:-1]):
        return True
    return entry.kind is EntryKind.DIRECTORY and bool(parts) and parts[-1] in names


def select_entries(
    entries: Iterable[Entry], excluded: Iterable[str] = VCS_METADATA_DIRS
) -> Iterator[Entry]:
    """Filters a walk down to the entries that belong in the target.

    Works on any sequence of entries, so it can be exercised with a synthetic
    tree as well as with `walk`.

    Args:
        entries (Iterable[Entry]): Entries in any order.
        excluded (Iterable[str]): Directory names skipped with their subtree.

    Yields:
        Entry: Every entry that is not metadata, in input order.
    """
    names = frozenset(excluded)
    for entry in entries:
        if not is_excluded(entry, names):
            yield entry


def walk(
    root: Path, excluded: Iterable[str] = VCS_METADATA_DIRS, _prefix: Path = Path()
) -> Iterator[Entry]:
    """Yields the entries below `root` in sorted pre-order.

    Excluded directories are reported but not descended into.

    Raises:
        OSError: If a directory cannot be listed or stat'ed.
    """
    names = frozenset(excluded)
    with os.scandir(root / _prefix) as it:
        children = sorted(it, key=lambda e: e.name)

    for child in children:
        relpath = _prefix / child.name
        if child.is_symlink():
            yield Entry(relpath, EntryKind.SYMLINK, 0o777)
        elif child.is_dir():
            mode = stat.S_IMODE(child.stat().st_mode)
            yield Entry(relpath, EntryKind.DIRECTORY, mode)
            if child.name not in names:
                yield from walk(root, names, relpath)
        else:
            yield Entry(relpath, EntryKind.FILE, stat.S_IMODE(child.stat().st_mode))


class Mirror:
    """Copies a source file or directory tree into a target directory.

    Attributes:
        excluded (frozenset[str]): Directory names never copied.
    """

    def __init__(self, excluded: Iterable[str] = VCS_METADATA_DIRS):
        self.excluded = frozenset(excluded)

    def copy(
        self, source: Path, target: Path, deadline: float | None = None
    ) -> MirrorResult:
        """Mirrors `source` into `target`.

        A single-file source lands in `target` under its own base name. A
        directory source has its structure reproduced below `target`.

        Args:
            source (Path): The file or directory to copy. Read-only.
            target (Path): The destination directory, created if missing.
            deadline (float | None, optional): `time.monotonic()` value after
                                               which the pass is abandoned.

        Returns:
            MirrorResult: What was written.

        Raises:
            MirrorError: On a missing source, an uncreatable target, the first
                         failed read or write, or an expired deadline. Files
                         written before the failure stay in place.
        """
        if not source.exists() and not source.is_symlink():
            raise MirrorError(f"Source path does not exist: {source}")

        try:
            target.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise MirrorError(f"Cannot create target directory {target}: {e}") from e

        result = MirrorResult()

        if not source.is_dir():
            try:
                mode = stat.S_IMODE(source.stat().st_mode)
                self._copy_file(source, target / source.name, mode)
            except OSError as e:
                raise MirrorError(f"Failed to copy {source}: {e}") from e
            result.files = 1
            return result

        # Directory modes are applied last, deepest first, so a read-only
        # source directory still receives its contents.
        dir_modes: list[tuple[Path, int]] = []
        current: Entry | None = None
        try:
            for current in select_entries(walk(source, self.excluded), self.excluded):
                _check_deadline(deadline)
                dst = target / current.relpath
                if current.kind is EntryKind.DIRECTORY:
                    self._ensure_dir(dst)
                    dir_modes.append((dst, current.mode))
                    result.directories += 1
                elif current.kind is EntryKind.SYMLINK:
                    self._copy_symlink(source / current.relpath, dst)
                    result.symlinks += 1
                else:
                    self._copy_file(source / current.relpath, dst, current.mode)
                    result.files += 1

            for dst, mode in reversed(dir_modes):
                os.chmod(dst, mode)
        except OSError as e:
            where = current.relpath if current else source
            raise MirrorError(f"Failed to mirror {where}: {e}") from e

        logger.debug(
            f"MIRROR {source} -> {target}: {result.files} files, "
            f"{result.directories} dirs, {result.symlinks} links."
        )
        return result

    @staticmethod
    def _ensure_dir(dst: Path) -> None:
        dst.mkdir(parents=True, exist_ok=True)
        # Keep it writable until the final chmod pass.
        os.chmod(dst, stat.S_IMODE(dst.stat().st_mode) | stat.S_IRWXU)

    @staticmethod
    def _copy_file(src: Path, dst: Path, mode: int) -> None:
        if dst.is_symlink():
            # Never write through a link into somewhere outside the target.
            dst.unlink()
        elif dst.exists() and not os.access(dst, os.W_OK):
            os.chmod(dst, stat.S_IMODE(dst.stat().st_mode) | stat.S_IWUSR)
        shutil.copyfile(src, dst)
        os.chmod(dst, mode)

    @staticmethod
    def _copy_symlink(src: Path, dst: Path) -> None:
        link = os.readlink(src)
        if dst.is_symlink():
            if os.readlink(dst) == link:
                return
            dst.unlink()
        elif dst.exists():
            if dst.is_dir():
                raise IsADirectoryError(f"Cannot replace directory {dst} with a link")
            dst.unlink()
        os.symlink(link, dst)


def _check_deadline(deadline: float | None) -> None:
    if deadline is not None and time.monotonic() > deadline:
        raise MirrorError("Mirror pass exceeded the cycle timeout")
