"""Declarative cache selection criteria."""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import timedelta
from typing import Iterable

from squeaky.models.cache_entry import Priority, UseCase

_AGE_RE = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*([hdwmy]?)\s*$", re.IGNORECASE)
_SIZE_RE = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*([kmgt]?i?b?)\s*$", re.IGNORECASE)

_AGE_UNITS = {
    "h": timedelta(hours=1),
    "d": timedelta(days=1),
    "": timedelta(days=1),
    "w": timedelta(weeks=1),
    "m": timedelta(days=30),
    "y": timedelta(days=365),
}

_SIZE_UNITS = {"": 1, "k": 1024, "m": 1024**2, "g": 1024**3, "t": 1024**4}


class InvalidCriteriaError(ValueError):
    """Raised for selection criteria values outside their domain."""


@dataclass(frozen=True, slots=True)
class SelectionCriteria:
    """All-AND filter over cache categories.

    Every field defaults to None, meaning "no constraint on this dimension".
    Zero is a real threshold and is not treated as unset. When
    ``category_ids`` is set it selects exactly those categories and every
    other field is ignored.
    """

    older_than: timedelta | None = None
    newer_than: timedelta | None = None
    larger_than: int | None = None
    smaller_than: int | None = None
    priority: Priority | None = None
    use_case: UseCase | None = None
    project_specific: bool | None = None
    category_ids: frozenset[str] | None = None

    def __post_init__(self) -> None:
        for name in ("older_than", "newer_than"):
            value = getattr(self, name)
            if value is not None and value < timedelta(0):
                raise InvalidCriteriaError(f"{name} must not be negative: {value}")
        for name in ("larger_than", "smaller_than"):
            value = getattr(self, name)
            if value is not None and value < 0:
                raise InvalidCriteriaError(f"{name} must not be negative: {value}")
        if self.priority is not None:
            object.__setattr__(self, "priority", _coerce(Priority, self.priority, "priority"))
        if self.use_case is not None:
            object.__setattr__(self, "use_case", _coerce(UseCase, self.use_case, "use case"))
        if self.category_ids is not None and not isinstance(self.category_ids, frozenset):
            if isinstance(self.category_ids, str):
                raise InvalidCriteriaError("category_ids must be a collection of ids, not a string")
            object.__setattr__(self, "category_ids", frozenset(self.category_ids))

    @property
    def is_empty(self) -> bool:
        """True when no dimension is constrained."""
        return all(getattr(self, name) is None for name in self.__slots__)

    @classmethod
    def from_strings(
        cls,
        *,
        older_than: str | None = None,
        newer_than: str | None = None,
        larger_than: str | None = None,
        smaller_than: str | None = None,
        priority: str | None = None,
        use_case: str | None = None,
        project_specific: bool | None = None,
        category_ids: Iterable[str] | None = None,
    ) -> SelectionCriteria:
        """Build criteria from user-facing strings such as ``"7d"`` and ``"100MB"``."""
        return cls(
            older_than=parse_age(older_than) if older_than is not None else None,
            newer_than=parse_age(newer_than) if newer_than is not None else None,
            larger_than=parse_size(larger_than) if larger_than is not None else None,
            smaller_than=parse_size(smaller_than) if smaller_than is not None else None,
            priority=priority,
            use_case=use_case,
            project_specific=project_specific,
            category_ids=frozenset(category_ids) if category_ids is not None else None,
        )


def _coerce(enum_cls, value, label: str):
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(member.value for member in enum_cls)
        raise InvalidCriteriaError(f"Unknown {label} '{value}' (expected one of: {allowed})") from None


def parse_age(text: str) -> timedelta:
    """Parse an age such as ``12h``, ``7d``, ``2w``, ``1m`` or ``1y``.

    A bare number is a number of days. Months are 30 days, years 365.
    """
    match = _AGE_RE.match(text)
    if not match:
        raise InvalidCriteriaError(f"Invalid age '{text}' (examples: 12h, 7d, 2w, 1m, 1y)")
    amount, unit = match.groups()
    return float(amount) * _AGE_UNITS[unit.lower()]


def parse_size(text: str) -> int:
    """Parse a size such as ``512``, ``100KB``, ``1.5GB`` or ``2GiB`` into bytes.

    Units are binary: ``1KB`` is 1024 bytes.
    """
    match = _SIZE_RE.match(text)
    if not match:
        raise InvalidCriteriaError(f"Invalid size '{text}' (examples: 512, 100KB, 1.5GB)")
    amount, unit = match.groups()
    prefix = unit.lower().rstrip("b").rstrip("i")
    if prefix not in _SIZE_UNITS:
        raise InvalidCriteriaError(f"Invalid size unit in '{text}'")
    return int(float(amount) * _SIZE_UNITS[prefix])
