"""Squeaky data models."""

from squeaky.models.cache_entry import CacheCategory, CacheEntry, Priority, ProviderType, UseCase
from squeaky.models.clear_result import ClearResult
from squeaky.models.criteria import InvalidCriteriaError, SelectionCriteria

__all__ = [
    "CacheCategory",
    "CacheEntry",
    "ClearResult",
    "InvalidCriteriaError",
    "Priority",
    "ProviderType",
    "SelectionCriteria",
    "UseCase",
]
