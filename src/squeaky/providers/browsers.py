"""Providers for web browser caches."""

from __future__ import annotations

from pathlib import Path

from squeaky.core.provider import DirectoryCacheProvider
from squeaky.models.cache_entry import Priority, ProviderType
from squeaky.utils import mac_app_support, mac_caches, xdg_cache_home, xdg_config_home


class ChromeProvider(DirectoryCacheProvider):
    """Cleans Google Chrome's HTTP, code and GPU caches.

    Profiles, cookies and history live elsewhere and are not touched.
    """

    name = "chrome"
    type = ProviderType.BROWSER
    description = "Google Chrome HTTP, compiled code and GPU shader caches"
    _priority = Priority.LOW

    @property
    def _cache_dirs(self) -> tuple[Path, ...]:
        linux_profile = xdg_config_home() / "google-chrome" / "Default"
        mac_profile = mac_app_support() / "Google" / "Chrome" / "Default"
        return (
            xdg_cache_home() / "google-chrome",
            linux_profile / "Code Cache",
            linux_profile / "GPUCache",
            xdg_config_home() / "google-chrome" / "ShaderCache",
            mac_caches() / "Google" / "Chrome",
            mac_profile / "Code Cache",
            mac_profile / "GPUCache",
        )


class FirefoxProvider(DirectoryCacheProvider):
    """Cleans the Firefox disk cache of every profile."""

    name = "firefox"
    type = ProviderType.BROWSER
    description = "Firefox HTTP disk cache"
    _priority = Priority.LOW

    @property
    def _cache_dirs(self) -> tuple[Path, ...]:
        return (xdg_cache_home() / "mozilla" / "firefox", mac_caches() / "Firefox")
