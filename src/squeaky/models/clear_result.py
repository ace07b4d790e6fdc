"""Clearing result dataclass."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path


@dataclass(slots=True)
class ClearResult:
    """Result of one provider's clear operation.

    ``cleared_paths`` lists the paths that were removed, or under a dry run
    the paths that would have been removed.
    """

    name: str
    success: bool = True
    size_before: int = 0
    size_after: int = 0
    cleared_paths: list[Path] = field(default_factory=list)
    cleared_categories: list[str] = field(default_factory=list)
    error: str | None = None
    dry_run: bool = False
    skipped: bool = False

    @property
    def freed_bytes(self) -> int:
        """Bytes released, or under a dry run the bytes that would be released."""
        if self.dry_run:
            return self.size_before
        return max(0, self.size_before - self.size_after)
