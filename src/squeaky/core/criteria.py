"""Selection criteria evaluation."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Iterable

from squeaky.models.cache_entry import CacheCategory
from squeaky.models.criteria import SelectionCriteria


def matches(category: CacheCategory, criteria: SelectionCriteria, now: datetime | None = None) -> bool:
    """Return True when *category* satisfies every set dimension of *criteria*.

    Unset dimensions always pass. Explicit ``category_ids`` decide on their
    own: the category matches iff its id is listed, whatever the other
    fields say. Age is measured from the more recent of the modification
    and access timestamps; a category without either never matches an age
    constraint. Size bounds are strict.
    """
    if criteria.category_ids is not None:
        return category.id in criteria.category_ids

    if criteria.older_than is not None or criteria.newer_than is not None:
        age = category.age(now or datetime.now(timezone.utc))
        if age is None:
            return False
        if criteria.older_than is not None and age < criteria.older_than:
            return False
        if criteria.newer_than is not None and age > criteria.newer_than:
            return False

    if criteria.larger_than is not None and not category.size > criteria.larger_than:
        return False
    if criteria.smaller_than is not None and not category.size < criteria.smaller_than:
        return False

    if criteria.priority is not None and category.priority != criteria.priority:
        return False
    if criteria.use_case is not None and category.use_case != criteria.use_case:
        return False
    if criteria.project_specific is not None and category.project_specific != criteria.project_specific:
        return False

    return True


def select(
    categories: Iterable[CacheCategory],
    criteria: SelectionCriteria | None,
    now: datetime | None = None,
) -> list[CacheCategory]:
    """Filter *categories* down to those matching *criteria*, keeping order."""
    if criteria is None:
        return list(categories)
    now = now or datetime.now(timezone.utc)
    return [c for c in categories if matches(c, criteria, now)]
