"""Providers for language package manager caches."""

from __future__ import annotations

import os
from functools import cached_property
from pathlib import Path

from squeaky.core.provider import DirectoryCacheProvider
from squeaky.models.cache_entry import ProviderType
from squeaky.utils import has_command, mac_caches, run_command, xdg_cache_home


class NpmProvider(DirectoryCacheProvider):
    """Cleans the npm package cache, npx installs and debug logs."""

    name = "npm"
    type = ProviderType.PACKAGE_MANAGER
    description = "npm package cache, npx installs and debug logs"
    _command = "npm"
    _subcategories = {
        "_cacache": ("cacache", "Downloaded package tarballs and metadata"),
        "_npx": ("npx", "Packages fetched by npx"),
        "_logs": ("logs", "npm debug logs"),
    }

    @property
    def _cache_dirs(self) -> tuple[Path, ...]:
        return (Path.home() / ".npm", mac_caches() / "npm")


class YarnProvider(DirectoryCacheProvider):
    """Cleans the Yarn classic and Berry global caches."""

    name = "yarn"
    type = ProviderType.PACKAGE_MANAGER
    description = "Yarn package cache"
    _command = "yarn"

    @property
    def _cache_dirs(self) -> tuple[Path, ...]:
        return (
            xdg_cache_home() / "yarn",
            Path.home() / ".yarn" / "berry" / "cache",
            mac_caches() / "Yarn",
        )


class PnpmProvider(DirectoryCacheProvider):
    """Cleans the pnpm content-addressable store and metadata cache."""

    name = "pnpm"
    type = ProviderType.PACKAGE_MANAGER
    description = "pnpm store and metadata cache"
    _command = "pnpm"

    @property
    def _cache_dirs(self) -> tuple[Path, ...]:
        return (
            Path.home() / ".local" / "share" / "pnpm" / "store",
            xdg_cache_home() / "pnpm",
            Path.home() / "Library" / "pnpm" / "store",
        )


class BunProvider(DirectoryCacheProvider):
    name = "bun"
    type = ProviderType.PACKAGE_MANAGER
    description = "Bun install cache"
    _command = "bun"

    @property
    def _cache_dirs(self) -> tuple[Path, ...]:
        return (
            Path.home() / ".bun" / "install" / "cache",
            xdg_cache_home() / "bun",
            mac_caches() / "bun",
        )


class PipProvider(DirectoryCacheProvider):
    """Cleans pip's HTTP and wheel caches."""

    name = "pip"
    type = ProviderType.PACKAGE_MANAGER
    description = "pip HTTP responses and locally built wheels"
    _command = "pip3"
    _subcategories = {
        "http": ("http", "Cached HTTP responses (legacy layout)"),
        "http-v2": ("http-v2", "Cached HTTP responses"),
        "wheels": ("wheels", "Wheels built from source distributions"),
    }

    @property
    def _cache_dirs(self) -> tuple[Path, ...]:
        return (xdg_cache_home() / "pip", mac_caches() / "pip")


class CargoProvider(DirectoryCacheProvider):
    """Cleans downloaded crates and git checkouts under ~/.cargo.

    The installed binaries in ~/.cargo/bin are never touched.
    """

    name = "cargo"
    type = ProviderType.PACKAGE_MANAGER
    description = "Cargo registry index, downloaded crates and git dependencies"
    _command = "cargo"

    @property
    def _cache_dirs(self) -> tuple[Path, ...]:
        cargo_home = Path(os.environ.get("CARGO_HOME", Path.home() / ".cargo"))
        return (cargo_home / "registry", cargo_home / "git")


class HomebrewProvider(DirectoryCacheProvider):
    """Cleans downloaded Homebrew bottles and source archives.

    Asks ``brew --cache`` for the location and falls back to the default
    macOS path when brew is not on PATH.
    """

    name = "homebrew"
    type = ProviderType.PACKAGE_MANAGER
    description = "Homebrew downloads cache"
    _command = "brew"

    @cached_property
    def _cache_dirs(self) -> tuple[Path, ...]:
        reported = run_command(["brew", "--cache"]) if has_command("brew") else None
        if reported:
            return (Path(reported),)
        return (mac_caches() / "Homebrew",)