"""Pick the caches worth cleaning without asking."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Iterable

from squeaky.models.cache_entry import CacheEntry, ProviderType
from squeaky.utils import bytes_to_human

log = logging.getLogger(__name__)

MB = 1024 * 1024

LARGE_CACHE = 100 * MB
MEDIUM_CACHE = 50 * MB

# IDE caches that only hold rebuildable indexes and logs.
SAFE_IDE_PROVIDERS = frozenset({"vscode", "xcode"})


class Urgency(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


_URGENCY_ORDER = {Urgency.HIGH: 0, Urgency.MEDIUM: 1, Urgency.LOW: 2}


@dataclass(frozen=True, slots=True)
class Thresholds:
    min_size: int
    max_age: timedelta


SAFE = Thresholds(min_size=20 * MB, max_age=timedelta(days=7))
AGGRESSIVE = Thresholds(min_size=5 * MB, max_age=timedelta(days=3))


@dataclass(frozen=True, slots=True)
class Recommendation:
    entry: CacheEntry
    reason: str
    urgency: Urgency
    safe: bool

    @property
    def name(self) -> str:
        return self.entry.name


def is_safe_to_auto_clean(entry: CacheEntry) -> bool:
    """Whether *entry* can be deleted without the user looking at it first.

    Package manager and build tool caches are always re-downloadable.
    Browser caches may hold session data, and IDE caches only when the
    tool is known to keep settings elsewhere.
    """
    if entry.type in (ProviderType.PACKAGE_MANAGER, ProviderType.BUILD_TOOL):
        return True
    if entry.type is ProviderType.IDE:
        return entry.name in SAFE_IDE_PROVIDERS
    return False


def recommend(
    entries: Iterable[CacheEntry],
    aggressive: bool = False,
    now: datetime | None = None,
) -> list[Recommendation]:
    """Rank the scanned caches that are worth cleaning.

    Only installed, non-empty, successfully scanned caches are considered.
    The result is ordered by urgency, then by size, largest first.
    """
    thresholds = AGGRESSIVE if aggressive else SAFE
    now = now or datetime.now(timezone.utc)

    recommendations: list[Recommendation] = []
    for entry in entries:
        if entry.failed or not entry.installed or entry.size <= 0:
            continue
        safe = is_safe_to_auto_clean(entry)
        age = now - entry.last_modified if entry.last_modified is not None else None
        old = age is not None and age > thresholds.max_age

        if entry.size > LARGE_CACHE:
            urgency, reason = Urgency.HIGH, f"Large cache ({bytes_to_human(entry.size)})"
        elif old and entry.size > thresholds.min_size:
            urgency, reason = Urgency.HIGH, f"Old cache ({age.days} days)"
        elif entry.size > MEDIUM_CACHE:
            urgency, reason = Urgency.MEDIUM, f"Medium cache ({bytes_to_human(entry.size)})"
        elif entry.size > thresholds.min_size and safe:
            urgency, reason = Urgency.LOW, "Safe to clean"
        else:
            continue

        log.debug("Recommending '%s': %s", entry.name, reason)
        recommendations.append(Recommendation(entry=entry, reason=reason, urgency=urgency, safe=safe))

    recommendations.sort(key=lambda r: (_URGENCY_ORDER[r.urgency], -r.entry.size))
    return recommendations


def choose(recommendations: Iterable[Recommendation], aggressive: bool = False) -> list[Recommendation]:
    """The recommendations a run in the given mode cleans."""
    if aggressive:
        return list(recommendations)
    return [r for r in recommendations if r.safe]
