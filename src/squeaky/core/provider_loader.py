"""Provider loading: the built-in list plus allow-listed extension modules."""

from __future__ import annotations

import importlib
import inspect
import logging
from pathlib import Path
from types import ModuleType
from typing import Iterable

from squeaky.core.provider import CacheProvider, ProjectCacheProvider
from squeaky.core.registry import ProviderRegistry

log = logging.getLogger(__name__)


def _find_providers_in_module(module: ModuleType) -> list[type[CacheProvider]]:
    """Find concrete CacheProvider subclasses defined in *module*."""
    providers: list[type[CacheProvider]] = []
    for _, obj in inspect.getmembers(module, inspect.isclass):
        if obj.__module__ != module.__name__:
            continue
        if issubclass(obj, CacheProvider) and not inspect.isabstract(obj):
            providers.append(obj)
    return providers


def _load_external_providers(module_names: Iterable[str]) -> list[type[CacheProvider]]:
    """Import each allow-listed module and collect its providers.

    A module that fails to import is logged and skipped.
    """
    found: list[type[CacheProvider]] = []
    for name in module_names:
        try:
            module = importlib.import_module(name)
        except Exception:
            log.exception("Failed to load provider module: %s", name)
            continue
        classes = _find_providers_in_module(module)
        if not classes:
            log.warning("Provider module %s defines no providers", name)
        found.extend(classes)
    return found


def load_providers(
    registry: ProviderRegistry,
    extra_modules: Iterable[str] = (),
    project_root: Path | None = None,
) -> None:
    """Register the built-in providers, then any from *extra_modules*.

    Registration order is the order of ``BUILTIN_PROVIDERS`` followed by
    the extension modules in the order given. A provider whose constructor
    raises is logged and skipped; a duplicate name raises
    :class:`~squeaky.core.registry.DuplicateProviderError`.
    """
    from squeaky.providers import BUILTIN_PROVIDERS

    provider_classes: list[type[CacheProvider]] = list(BUILTIN_PROVIDERS)
    provider_classes.extend(_load_external_providers(extra_modules))

    for cls in provider_classes:
        try:
            if issubclass(cls, ProjectCacheProvider):
                instance = cls(project_root)
            else:
                instance = cls()
        except Exception:
            log.exception("Failed to instantiate provider: %s", cls.__name__)
            continue
        registry.register(instance)

    log.info("Loaded %d providers", len(registry))
