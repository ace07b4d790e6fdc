"""Central provider registry."""

from __future__ import annotations

import logging
from typing import Iterator

from squeaky.core.provider import CacheProvider
from squeaky.models.cache_entry import ProviderType

log = logging.getLogger(__name__)


class DuplicateProviderError(ValueError):
    """Raised when two providers are registered under the same name."""


class ProviderRegistry:
    """Stores registered cache providers in registration order."""

    def __init__(self) -> None:
        self._providers: dict[str, CacheProvider] = {}

    def register(self, provider: CacheProvider) -> None:
        """Register a provider instance.

        Raises:
            DuplicateProviderError: if the name is already taken.
        """
        if provider.name in self._providers:
            existing = type(self._providers[provider.name]).__name__
            raise DuplicateProviderError(
                f"Provider name '{provider.name}' is already registered by {existing}"
            )
        self._providers[provider.name] = provider
        log.debug("Registered provider: %s (%s)", provider.name, provider.type.value)

    def get(self, name: str) -> CacheProvider | None:
        """Get a provider by its name."""
        return self._providers.get(name)

    def get_all(self) -> list[CacheProvider]:
        """Get all registered providers."""
        return list(self._providers.values())

    def get_by_type(self, provider_type: ProviderType | str) -> list[CacheProvider]:
        """Get all providers of a given type."""
        provider_type = ProviderType(provider_type)
        return [p for p in self._providers.values() if p.type == provider_type]

    def get_available(self) -> list[CacheProvider]:
        """Get all providers whose tool is present on this system."""
        available = []
        for provider in self._providers.values():
            try:
                if provider.is_available():
                    available.append(provider)
            except Exception:
                log.exception("Error checking availability for provider '%s'", provider.name)
        return available

    def names(self) -> list[str]:
        return list(self._providers)

    def __len__(self) -> int:
        return len(self._providers)

    def __iter__(self) -> Iterator[CacheProvider]:
        return iter(self._providers.values())

    def __contains__(self, name: str) -> bool:
        return name in self._providers
