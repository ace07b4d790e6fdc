"""Scan result dataclasses."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from pathlib import Path


class ProviderType(str, Enum):
    """Kind of tool a provider cleans up after."""

    PACKAGE_MANAGER = "package-manager"
    BUILD_TOOL = "build-tool"
    IDE = "ide"
    BROWSER = "browser"
    SYSTEM = "system"
    OTHER = "other"


class Priority(str, Enum):
    """How much the user is likely to miss a cache once it is gone."""

    CRITICAL = "critical"
    IMPORTANT = "important"
    NORMAL = "normal"
    LOW = "low"


class UseCase(str, Enum):
    """What a cache is used for."""

    DEVELOPMENT = "development"
    TESTING = "testing"
    PRODUCTION = "production"
    EXPERIMENTAL = "experimental"
    ARCHIVED = "archived"


@dataclass(frozen=True, slots=True)
class CacheCategory:
    """Smallest independently selectable and deletable part of a provider's cache.

    ``id`` is stable and scoped to the owning provider, e.g. ``npm-cacache``.
    Timestamps are timezone-aware; either may be missing when the filesystem
    could not be read.
    """

    id: str
    name: str
    description: str
    paths: tuple[Path, ...]
    size: int = 0
    last_modified: datetime | None = None
    last_accessed: datetime | None = None
    priority: Priority = Priority.NORMAL
    use_case: UseCase = UseCase.DEVELOPMENT
    project_specific: bool = False

    @property
    def last_used(self) -> datetime | None:
        """The more recent of the modification and access timestamps."""
        stamps = [t for t in (self.last_modified, self.last_accessed) if t is not None]
        return max(stamps) if stamps else None

    def age(self, now: datetime) -> timedelta | None:
        """Time since the category was last used, or None without timestamps."""
        last_used = self.last_used
        if last_used is None:
            return None
        return now - last_used


@dataclass(frozen=True, slots=True)
class CacheEntry:
    """A provider's scan report.

    Built fresh on every scan. When ``categories`` is non-empty, ``size`` is
    the sum of the category sizes. ``error`` is set when the scan failed, in
    which case the entry is empty.
    """

    name: str
    type: ProviderType
    description: str
    paths: tuple[Path, ...] = ()
    size: int = 0
    installed: bool = False
    categories: tuple[CacheCategory, ...] = field(default_factory=tuple)
    last_modified: datetime | None = None
    error: str | None = None

    @property
    def failed(self) -> bool:
        return self.error is not None
