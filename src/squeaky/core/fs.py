"""Filesystem measurement and deletion primitives."""

from __future__ import annotations

import logging
import os
import shutil
import stat
import sys
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

from send2trash import send2trash

log = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class PathStats:
    """Aggregate facts about a file or directory tree."""

    size: int = 0
    file_count: int = 0
    last_modified: datetime | None = None
    last_accessed: datetime | None = None


def _timestamp(value: float) -> datetime:
    return datetime.fromtimestamp(value, tz=timezone.utc)


def measure(path: Path | str) -> PathStats:
    """Walk a file or directory tree and return its size and timestamps.

    Symlinks are counted but never followed. Entries that cannot be read or
    that disappear during the walk are skipped, so the result is a partial
    sum rather than an error. ``last_modified`` is the newest modification
    time seen anywhere in the tree. ``last_accessed`` is the newest access
    time of a regular file; directory atimes are ignored since the walk
    itself updates them. A missing path yields empty stats.
    """
    try:
        root = os.lstat(path)
    except OSError:
        return PathStats()

    if not stat.S_ISDIR(root.st_mode):
        return PathStats(
            size=root.st_size,
            file_count=1,
            last_modified=_timestamp(root.st_mtime),
            last_accessed=_timestamp(root.st_atime),
        )

    newest = root.st_mtime
    accessed: float | None = None
    total = 0
    count = 0
    stack: list[str] = [os.fspath(path)]
    while stack:
        current = stack.pop()
        try:
            with os.scandir(current) as it:
                for entry in it:
                    try:
                        info = entry.stat(follow_symlinks=False)
                    except OSError:
                        continue
                    if info.st_mtime > newest:
                        newest = info.st_mtime
                    if stat.S_ISDIR(info.st_mode):
                        stack.append(entry.path)
                        continue
                    total += info.st_size
                    count += 1
                    if stat.S_ISREG(info.st_mode) and (accessed is None or info.st_atime > accessed):
                        accessed = info.st_atime
        except OSError:
            log.debug("Cannot read directory: %s", current)

    return PathStats(
        size=total,
        file_count=count,
        last_modified=_timestamp(newest),
        last_accessed=_timestamp(accessed) if accessed is not None else None,
    )


def size_of(path: Path | str) -> int:
    """Total size in bytes of a file or directory tree."""
    return measure(path).size


def remove_path(path: Path | str, *, dry_run: bool = False, trash: bool = False) -> list[str]:
    """Delete a file or directory tree and return the problems encountered.

    With ``dry_run`` the tree is walked and every entry is checked for the
    permissions a real delete would need, without changing anything. A
    missing path is not an error. Without ``trash`` a crash leaves a
    partially deleted tree in place; with it the whole path is moved to the
    desktop trash instead.
    """
    path = Path(path)
    try:
        info = path.lstat()
    except FileNotFoundError:
        return []
    except OSError as e:
        return [f"{path}: {e}"]

    if dry_run:
        return _check_removable(path, stat.S_ISDIR(info.st_mode))

    if trash:
        try:
            send2trash(str(path))
        except OSError as e:
            return [f"{path}: {e}"]
        return []

    if not stat.S_ISDIR(info.st_mode):
        try:
            path.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            return [f"{path}: {e}"]
        return []

    errors: list[str] = []

    def _on_error(func, failed_path, exc) -> None:
        if isinstance(exc, tuple):
            exc = exc[1]
        if isinstance(exc, FileNotFoundError):
            return
        errors.append(f"{failed_path}: {exc}")

    if sys.version_info >= (3, 12):
        shutil.rmtree(path, onexc=_on_error)
    else:
        shutil.rmtree(path, onerror=_on_error)
    return errors


def _check_removable(path: Path, is_dir: bool) -> list[str]:
    """Report the entries a real delete of *path* would fail on."""
    problems: list[str] = []
    parent = path.parent
    if not os.access(parent, os.W_OK | os.X_OK):
        problems.append(f"{path}: permission denied on parent directory {parent}")
    if not is_dir:
        return problems

    stack: list[str] = [str(path)]
    while stack:
        current = stack.pop()
        if not os.access(current, os.R_OK | os.W_OK | os.X_OK):
            problems.append(f"{current}: permission denied")
            continue
        try:
            with os.scandir(current) as it:
                for entry in it:
                    try:
                        if entry.is_dir(follow_symlinks=False):
                            stack.append(entry.path)
                    except OSError as e:
                        problems.append(f"{entry.path}: {e}")
        except OSError as e:
            problems.append(f"{current}: {e}")
    return problems


def prune_nested(paths: list[Path]) -> list[Path]:
    """Drop duplicates and paths that lie beneath another path in the list.

    Order of the surviving paths is preserved.
    """
    kept: list[Path] = []
    for candidate in paths:
        if any(candidate == other or other in candidate.parents for other in kept):
            continue
        kept = [other for other in kept if candidate not in other.parents]
        kept.append(candidate)
    return kept
