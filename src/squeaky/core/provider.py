"""Base cache provider interface."""

from __future__ import annotations

import logging
import os
import re
import threading
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Iterable, Mapping

from squeaky.core.criteria import select
from squeaky.core.fs import measure, prune_nested, remove_path
from squeaky.core.guard import ProtectedPathGuard, normalize
from squeaky.models.cache_entry import CacheCategory, CacheEntry, Priority, ProviderType, UseCase
from squeaky.models.clear_result import ClearResult
from squeaky.models.criteria import SelectionCriteria

log = logging.getLogger(__name__)

_SLUG_RE = re.compile(r"[^a-z0-9]+")

_PROJECT_MARKERS = (
    "node_modules/.cache",
    "target/debug",
    "target/release",
    "build/cache",
    ".next/cache",
    ".nuxt/cache",
    "dist/cache",
    ".turbo",
    ".nx/cache",
)


def slugify(text: str) -> str:
    """Lowercase id fragment: 'Code Cache' -> 'code-cache'."""
    return _SLUG_RE.sub("-", text.lower()).strip("-") or "cache"


def derive_priority(last_used: datetime | None, now: datetime) -> Priority:
    """Guess how much a cache matters from how recently it was used."""
    if last_used is None:
        return Priority.NORMAL
    age = now - last_used
    if age < timedelta(days=1):
        return Priority.CRITICAL
    if age < timedelta(days=7):
        return Priority.IMPORTANT
    if age > timedelta(days=30):
        return Priority.LOW
    return Priority.NORMAL


def detect_use_case(path: Path, last_used: datetime | None, now: datetime) -> UseCase:
    """Guess what a cache is for from its path and age."""
    text = str(path).lower()
    if "test" in text or "spec" in text or "playwright" in text:
        return UseCase.TESTING
    if "prod" in text or "release" in text:
        return UseCase.PRODUCTION
    if "exp" in text or "beta" in text or "nightly" in text:
        return UseCase.EXPERIMENTAL
    if last_used is not None and now - last_used > timedelta(days=90):
        return UseCase.ARCHIVED
    return UseCase.DEVELOPMENT


def is_project_path(path: Path) -> bool:
    """Whether *path* looks like a cache living inside a project checkout."""
    text = path.as_posix()
    return any(marker in text for marker in _PROJECT_MARKERS)


class CacheProvider(ABC):
    """Base class for all cache providers.

    A provider knows where one external tool keeps its caches. It reports
    them as categories and deletes them on request. Every provider must
    declare the roots it may delete under; nothing outside them is ever
    touched.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Unique identifier, e.g. 'npm'."""

    @property
    @abstractmethod
    def type(self) -> ProviderType:
        """Kind of tool this provider covers."""

    @property
    @abstractmethod
    def description(self) -> str:
        """What this provider cleans and why it's safe."""

    def roots(self) -> tuple[Path, ...]:
        """Directories this provider is allowed to delete under."""
        return ()

    @property
    def unavailable_reason(self) -> str | None:
        """Why this provider cannot work on this system, or None if supported."""
        return None

    def is_available(self) -> bool:
        """Check if the tool is present. Never raises."""
        try:
            return self.unavailable_reason is None
        except Exception:
            log.exception("Error checking availability for provider '%s'", self.name)
            return False

    @abstractmethod
    def get_cache_categories(self) -> list[CacheCategory]:
        """Enumerate the cache categories present right now. MUST NOT delete anything."""

    def get_cache_info(self) -> CacheEntry:
        """Scan the provider's caches.

        Never raises: a failing scan is logged and reported as an empty
        entry with ``error`` set.
        """
        try:
            installed = self.is_available()
            categories = tuple(self.get_cache_categories()) if installed else ()
        except Exception as e:
            log.exception("Provider '%s' failed during scan", self.name)
            return self.failed_entry(f"scan failed: {e}")

        paths: list[Path] = []
        for category in categories:
            paths.extend(p for p in category.paths if p not in paths)
        stamps = [c.last_modified for c in categories if c.last_modified is not None]
        return CacheEntry(
            name=self.name,
            type=self.type,
            description=self.description,
            paths=tuple(paths),
            size=sum(c.size for c in categories),
            installed=installed,
            categories=categories,
            last_modified=max(stamps) if stamps else None,
        )

    def failed_entry(self, error: str) -> CacheEntry:
        """Empty scan report carrying *error*."""
        return CacheEntry(
            name=self.name,
            type=self.type,
            description=self.description,
            error=error,
        )

    def clear(
        self,
        dry_run: bool = False,
        criteria: SelectionCriteria | None = None,
        cached_info: CacheEntry | None = None,
        guard: ProtectedPathGuard | None = None,
        trash: bool = False,
        cancel: threading.Event | None = None,
    ) -> ClearResult:
        """Delete the categories matching *criteria*, or all of them.

        *cached_info* decides which categories exist and how old they are;
        sizes are always measured again here. Protected paths are skipped,
        never treated as errors. A dry run reports the same sizes and paths
        as a real run without changing anything. Once *cancel* is set no
        further path is removed.
        """
        categories = self._resolve_categories(cached_info)
        selected = select(categories, criteria, datetime.now(timezone.utc))
        return self._clear_categories(selected, dry_run=dry_run, guard=guard, trash=trash, cancel=cancel)

    def clear_by_category(
        self,
        category_ids: Iterable[str],
        dry_run: bool = False,
        cached_info: CacheEntry | None = None,
        guard: ProtectedPathGuard | None = None,
        trash: bool = False,
        cancel: threading.Event | None = None,
    ) -> ClearResult:
        """Delete exactly the categories named in *category_ids*."""
        wanted = frozenset(category_ids)
        categories = self._resolve_categories(cached_info)
        unknown = wanted - {c.id for c in categories}
        if unknown:
            log.info("Provider '%s' has no categories %s", self.name, ", ".join(sorted(unknown)))
        criteria = SelectionCriteria(category_ids=wanted)
        selected = select(categories, criteria)
        return self._clear_categories(selected, dry_run=dry_run, guard=guard, trash=trash, cancel=cancel)

    def _resolve_categories(self, cached_info: CacheEntry | None) -> list[CacheCategory]:
        if cached_info is not None and cached_info.categories and not cached_info.failed:
            return list(cached_info.categories)
        return self.get_cache_categories()

    def _within_roots(self, path: Path, roots: list[Path]) -> bool:
        return any(path == root or root in path.parents for root in roots)

    def _clear_categories(
        self,
        categories: list[CacheCategory],
        *,
        dry_run: bool,
        guard: ProtectedPathGuard | None,
        trash: bool,
        cancel: threading.Event | None = None,
    ) -> ClearResult:
        guard = guard or ProtectedPathGuard()
        roots = [normalize(r) for r in self.roots()]
        if not roots and categories:
            log.warning("Provider '%s' declares no roots, refusing to delete", self.name)

        candidates: list[Path] = []
        planned_by_category: dict[str, list[Path]] = {}
        for category in categories:
            planned: list[Path] = []
            for raw_path in category.paths:
                path = normalize(raw_path)
                if not os.path.lexists(path):
                    continue
                if not self._within_roots(path, roots):
                    log.warning("Provider '%s': %s is outside its roots, skipping", self.name, path)
                    continue
                pieces = guard.plan(path)
                if not pieces:
                    log.debug("Skipping protected path: %s", path)
                planned.extend(pieces)
            if planned:
                candidates.extend(planned)
                planned_by_category[category.id] = planned
            elif category.paths:
                log.debug("Skipping category %s: nothing removable", category.id)

        stats = {path: measure(path) for path in prune_nested(candidates)}
        targets = [path for path, info in stats.items() if info.file_count > 0]
        size_before = sum(stats[path].size for path in targets)

        errors: list[str] = []
        done: list[Path] = []
        for path in targets:
            if cancel is not None and cancel.is_set():
                log.info("Provider '%s' clear cancelled, %d path(s) left in place", self.name, len(targets) - len(done))
                errors.append("clear cancelled")
                break
            if dry_run:
                log.debug("[DRY RUN] Would remove %s", path)
            else:
                log.debug("Removing %s", path)
            errors.extend(remove_path(path, dry_run=dry_run, trash=trash))
            done.append(path)

        size_after = size_before if dry_run else sum(measure(path).size for path in targets)
        for error in errors:
            log.debug("Provider '%s': %s", self.name, error)
        if errors:
            log.warning("Provider '%s' hit %d error(s) while clearing", self.name, len(errors))

        return ClearResult(
            name=self.name,
            success=not errors,
            size_before=size_before,
            size_after=size_after,
            cleared_paths=done,
            cleared_categories=[
                category_id
                for category_id, planned in planned_by_category.items()
                if any(_covered(piece, done) for piece in planned)
            ],
            error=_summarize(errors),
            dry_run=dry_run,
        )


def _covered(path: Path, targets: list[Path]) -> bool:
    return any(path == t or t in path.parents for t in targets)


def _summarize(errors: list[str]) -> str | None:
    if not errors:
        return None
    if len(errors) == 1:
        return errors[0]
    return f"{errors[0]} (and {len(errors) - 1} more)"


class DirectoryCacheProvider(CacheProvider, ABC):
    """Base class for providers that clean one or more directories.

    Subclasses define metadata and ``_cache_dirs``. Each existing directory
    becomes one category, unless ``_subcategories`` names child directories
    to report separately; the remaining children are then grouped into an
    "other" category so the categories never overlap.
    """

    _command: str | None = None
    """Executable whose presence marks the tool as installed."""

    _subcategories: Mapping[str, tuple[str, str]] = {}
    """Child directory name -> (category id suffix, description)."""

    _priority: Priority | None = None
    _use_case: UseCase | None = None
    _project_specific: bool = False

    @property
    @abstractmethod
    def _cache_dirs(self) -> tuple[Path, ...]:
        """Directories to clean."""

    def roots(self) -> tuple[Path, ...]:
        return self._cache_dirs

    @property
    def unavailable_reason(self) -> str | None:
        if any(d.is_dir() for d in self._cache_dirs):
            return None
        if self._command:
            from squeaky.utils import has_command

            if has_command(self._command):
                return None
        return f"{self.name} not found"

    def get_cache_categories(self) -> list[CacheCategory]:
        now = datetime.now(timezone.utc)
        categories: list[CacheCategory] = []
        seen: set[str] = set()

        for cache_dir in self._cache_dirs:
            if not cache_dir.is_dir():
                continue
            if self._subcategories:
                parts = self._split(cache_dir)
            else:
                parts = [(slugify(cache_dir.name), cache_dir.name, f"Cache directory: {cache_dir}", (cache_dir,))]
            for suffix, label, description, paths in parts:
                category_id = unique_id(f"{self.name}-{suffix}", seen)
                categories.append(self._make_category(category_id, label, description, paths, now))
        return categories

    def _split(self, cache_dir: Path) -> list[tuple[str, str, str, tuple[Path, ...]]]:
        known: list[tuple[str, str, str, tuple[Path, ...]]] = []
        rest: list[Path] = []
        try:
            children = sorted(cache_dir.iterdir())
        except OSError:
            log.debug("Cannot read %s cache directory: %s", self.name, cache_dir)
            return []
        for child in children:
            if child.name in self._subcategories:
                suffix, description = self._subcategories[child.name]
                known.append((suffix, child.name, description, (child,)))
            else:
                rest.append(child)
        if rest:
            known.append(("other", "other", f"Other {self.name} cache files in {cache_dir}", tuple(rest)))
        return known

    def _make_category(
        self,
        category_id: str,
        label: str,
        description: str,
        paths: tuple[Path, ...],
        now: datetime,
    ) -> CacheCategory:
        stats = [measure(p) for p in paths]
        modified = [s.last_modified for s in stats if s.last_modified is not None]
        accessed = [s.last_accessed for s in stats if s.last_accessed is not None]
        last_modified = max(modified) if modified else None
        last_accessed = max(accessed) if accessed else None
        last_used = max([*modified, *accessed], default=None)
        return CacheCategory(
            id=category_id,
            name=label,
            description=description,
            paths=paths,
            size=sum(s.size for s in stats),
            last_modified=last_modified,
            last_accessed=last_accessed,
            priority=self._priority or derive_priority(last_used, now),
            use_case=self._use_case or detect_use_case(paths[0], last_used, now),
            project_specific=self._project_specific or any(is_project_path(p) for p in paths),
        )


def unique_id(candidate: str, seen: set[str]) -> str:
    """Return *candidate*, suffixed with -2, -3, ... until it is not in *seen*."""
    category_id = candidate
    n = 2
    while category_id in seen:
        category_id = f"{candidate}-{n}"
        n += 1
    seen.add(category_id)
    return category_id


class ProjectCacheProvider(DirectoryCacheProvider, ABC):
    """Base class for caches that live inside a project checkout.

    ``_project_dirs`` are relative to the project root, which defaults to
    the current working directory at scan time.
    """

    _project_specific = True

    def __init__(self, project_root: Path | None = None) -> None:
        self._project_root = project_root

    @property
    @abstractmethod
    def _project_dirs(self) -> tuple[str, ...]:
        """Cache directories relative to the project root."""

    @property
    def project_root(self) -> Path:
        return self._project_root or Path.cwd()

    @property
    def _cache_dirs(self) -> tuple[Path, ...]:
        root = self.project_root
        return tuple(root / rel for rel in self._project_dirs)
