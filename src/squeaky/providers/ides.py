"""Providers for editor and IDE caches."""

from __future__ import annotations

import logging
import sys
from datetime import datetime, timezone
from pathlib import Path

from squeaky.core.provider import DirectoryCacheProvider, slugify, unique_id
from squeaky.models.cache_entry import CacheCategory, ProviderType
from squeaky.utils import mac_app_support, mac_caches, xdg_cache_home, xdg_config_home

log = logging.getLogger(__name__)


class VSCodeProvider(DirectoryCacheProvider):
    """Cleans VS Code's regenerable caches and logs.

    Settings, keybindings, extensions and workspace storage are kept.
    """

    name = "vscode"
    type = ProviderType.IDE
    description = "VS Code caches, compiled code cache and logs"
    _command = "code"

    _CACHE_SUBDIRS = ("Cache", "CachedData", "CachedExtensionVSIXs", "Code Cache", "GPUCache", "logs", "CrashDumps")

    @property
    def _cache_dirs(self) -> tuple[Path, ...]:
        dirs: list[Path] = []
        for base in (xdg_config_home() / "Code", mac_app_support() / "Code"):
            dirs.extend(base / sub for sub in self._CACHE_SUBDIRS)
        return tuple(dirs)


class JetBrainsProvider(DirectoryCacheProvider):
    """Cleans JetBrains IDE caches (IntelliJ IDEA, PyCharm, WebStorm, ...).

    Each product version gets its own category so old versions can be
    dropped while the current one keeps its indexes.
    """

    name = "jetbrains"
    type = ProviderType.IDE
    description = "JetBrains IDE caches and indexes, one category per product version"

    @property
    def _cache_dirs(self) -> tuple[Path, ...]:
        return (xdg_cache_home() / "JetBrains", mac_caches() / "JetBrains")

    def get_cache_categories(self) -> list[CacheCategory]:
        now = datetime.now(timezone.utc)
        categories: list[CacheCategory] = []
        seen: set[str] = set()
        for base in self._cache_dirs:
            if not base.is_dir():
                continue
            try:
                products = sorted(p for p in base.iterdir() if p.is_dir() and not p.is_symlink())
            except OSError:
                log.debug("Cannot read JetBrains cache directory: %s", base)
                continue
            for product in products:
                category_id = unique_id(f"{self.name}-{slugify(product.name)}", seen)
                categories.append(
                    self._make_category(category_id, product.name, f"{product.name} caches and indexes", (product,), now)
                )
        return categories


class XcodeProvider(DirectoryCacheProvider):
    """Cleans Xcode derived data, device support files and simulator caches.

    Archives are kept: they hold signed builds that can't be regenerated.
    """

    name = "xcode"
    type = ProviderType.IDE
    description = "Xcode DerivedData, device support files and simulator caches"
    _command = "xcodebuild"

    @property
    def _cache_dirs(self) -> tuple[Path, ...]:
        developer = Path.home() / "Library" / "Developer"
        return (
            developer / "Xcode" / "DerivedData",
            developer / "Xcode" / "iOS DeviceSupport",
            developer / "CoreSimulator" / "Caches",
            mac_caches() / "com.apple.dt.Xcode",
        )

    @property
    def unavailable_reason(self) -> str | None:
        if sys.platform != "darwin":
            return "Xcode is only available on macOS"
        return super().unavailable_reason
