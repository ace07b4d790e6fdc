"""Protected path checks applied before anything is deleted."""

from __future__ import annotations

import logging
import os
import tempfile
from fnmatch import fnmatchcase
from pathlib import Path
from typing import Iterable, Iterator

log = logging.getLogger(__name__)

_GLOB_CHARS = frozenset("*?[")


def normalize(path: Path | str) -> Path:
    """Absolute, user-expanded path with ``..`` collapsed and no trailing slash.

    Symlinks are left alone; matching is case-sensitive.
    """
    return Path(os.path.normpath(os.path.abspath(os.path.expanduser(os.fspath(path)))))


def is_glob(pattern: str) -> bool:
    return any(ch in _GLOB_CHARS for ch in pattern)


class ProtectedPathGuard:
    """Decides whether a candidate path may be deleted.

    A path is protected when it, or any of its ancestors, equals a protected
    exact path or matches a protected glob. Paths outside every allowed root
    are protected too, as are the allowed roots themselves. By default the
    allowed roots are the home directory and the system temp directory.

    Both the literal path and its symlink-resolved form are checked. A
    relative glob such as ``**/node_modules/@org/*`` matches at any depth.
    """

    def __init__(
        self,
        protected: Iterable[str | Path] = (),
        *,
        allowed_roots: Iterable[str | Path] | None = None,
    ) -> None:
        self._exact: list[Path] = []
        self._globs: list[str] = []
        for item in protected:
            text = os.fspath(item)
            if is_glob(text):
                pattern = os.path.expanduser(text.rstrip("/") or "/")
                if not os.path.isabs(pattern):
                    pattern = f"*/{pattern}"
                self._globs.append(pattern)
            else:
                self._exact.append(normalize(text))

        if allowed_roots is None:
            allowed_roots = (Path.home(), tempfile.gettempdir())
        self._roots: list[Path] = []
        for root in allowed_roots:
            self._roots.append(normalize(root))
            resolved = Path(os.path.realpath(root))
            if resolved not in self._roots:
                self._roots.append(resolved)

    @property
    def exact_paths(self) -> tuple[Path, ...]:
        return tuple(self._exact)

    @property
    def patterns(self) -> tuple[str, ...]:
        return tuple(self._globs)

    @property
    def allowed_roots(self) -> tuple[Path, ...]:
        return tuple(self._roots)

    def is_protected(self, path: Path | str) -> bool:
        """Return True when *path* must not be deleted."""
        literal = normalize(path)
        resolved = Path(os.path.realpath(literal))
        for candidate in {literal, resolved}:
            reason = self._protection_reason(candidate)
            if reason:
                log.debug("Protected path %s: %s", path, reason)
                return True
        return False

    def _protection_reason(self, path: Path) -> str | None:
        if not any(root in path.parents for root in self._roots):
            return "outside the allowed roots"
        for protected in self._exact:
            if path == protected or protected in path.parents:
                return f"under protected path {protected}"
        if self._globs:
            lineage = [str(path), *(str(p) for p in path.parents)]
            for pattern in self._globs:
                if any(fnmatchcase(item, pattern) for item in lineage):
                    return f"matches protected pattern {pattern}"
        return None

    def contains_protected(self, path: Path | str) -> bool:
        """Return True when something beneath *path* is protected.

        Exact paths are checked by prefix. Glob patterns need a walk of the
        subtree, which stops at the first match.
        """
        root = normalize(path)
        if any(root in protected.parents for protected in self._exact):
            return True
        if not self._globs:
            return False
        return any(True for _ in self._protected_descendants(root))

    def _protected_descendants(self, root: Path) -> Iterator[Path]:
        for dirpath, dirnames, filenames in os.walk(root, onerror=lambda e: None):
            for name in (*dirnames, *filenames):
                child = Path(dirpath, name)
                if any(fnmatchcase(str(child), pattern) for pattern in self._globs):
                    yield child

    def plan(self, path: Path | str) -> list[Path]:
        """Split *path* into the largest pieces that can be deleted safely.

        Returns ``[path]`` when nothing is protected, an empty list when the
        path itself is protected, and otherwise recurses into the children
        of directories that hold protected descendants.
        """
        candidate = normalize(path)
        if self.is_protected(candidate):
            return []
        if not self.contains_protected(candidate):
            return [candidate]

        log.debug("Descending into %s to keep protected entries", candidate)
        pieces: list[Path] = []
        try:
            children = sorted(candidate.iterdir())
        except OSError:
            log.debug("Cannot list %s, leaving it in place", candidate)
            return []
        for child in children:
            if child.is_dir() and not child.is_symlink():
                pieces.extend(self.plan(child))
            elif not self.is_protected(child):
                pieces.append(child)
        return pieces
