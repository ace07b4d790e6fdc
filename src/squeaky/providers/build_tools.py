"""Providers for build tool and test runner caches."""

from __future__ import annotations

import os
from pathlib import Path

from squeaky.core.provider import DirectoryCacheProvider, ProjectCacheProvider
from squeaky.models.cache_entry import Priority, ProviderType, UseCase
from squeaky.utils import mac_caches, xdg_cache_home


class GradleProvider(DirectoryCacheProvider):
    """Cleans Gradle dependency caches, daemons and wrapper distributions.

    gradle.properties and init scripts in ~/.gradle are left alone.
    """

    name = "gradle"
    type = ProviderType.BUILD_TOOL
    description = "Gradle dependency cache, daemon logs and wrapper distributions"
    _command = "gradle"

    @property
    def _cache_dirs(self) -> tuple[Path, ...]:
        gradle_home = Path(os.environ.get("GRADLE_USER_HOME", Path.home() / ".gradle"))
        return (
            gradle_home / "caches",
            gradle_home / "daemon",
            gradle_home / "wrapper" / "dists",
            gradle_home / "native",
        )


class MavenProvider(DirectoryCacheProvider):
    name = "maven"
    type = ProviderType.BUILD_TOOL
    description = "Maven local repository and wrapper distributions"
    _command = "mvn"

    @property
    def _cache_dirs(self) -> tuple[Path, ...]:
        m2 = Path.home() / ".m2"
        return (m2 / "repository", m2 / "wrapper" / "dists")


class GoBuildProvider(DirectoryCacheProvider):
    """Cleans the Go build cache.

    The module cache under GOPATH is not included: Go writes it read-only
    and ``go clean -modcache`` is the supported way to drop it.
    """

    name = "go-build"
    type = ProviderType.BUILD_TOOL
    description = "Go compiler build cache"
    _command = "go"

    @property
    def _cache_dirs(self) -> tuple[Path, ...]:
        gocache = os.environ.get("GOCACHE")
        if gocache and gocache != "off":
            return (Path(gocache),)
        return (xdg_cache_home() / "go-build", mac_caches() / "go-build")


class NodeGypProvider(DirectoryCacheProvider):
    name = "node-gyp"
    type = ProviderType.BUILD_TOOL
    description = "Node.js headers downloaded by node-gyp for native addons"
    _command = "node-gyp"

    @property
    def _cache_dirs(self) -> tuple[Path, ...]:
        return (
            xdg_cache_home() / "node-gyp",
            Path.home() / ".node-gyp",
            mac_caches() / "node-gyp",
        )


class PlaywrightProvider(DirectoryCacheProvider):
    """Cleans browser binaries downloaded by Playwright.

    Tests will download them again on the next ``playwright install``.
    """

    name = "playwright"
    type = ProviderType.BUILD_TOOL
    description = "Playwright browser binaries"
    _use_case = UseCase.TESTING

    @property
    def _cache_dirs(self) -> tuple[Path, ...]:
        custom = os.environ.get("PLAYWRIGHT_BROWSERS_PATH")
        if custom and custom != "0":
            return (Path(custom),)
        return (
            xdg_cache_home() / "ms-playwright",
            xdg_cache_home() / "ms-playwright-go",
            mac_caches() / "ms-playwright",
        )


# ── project-local bundler caches ─────────────────────────────────────────


class WebpackProvider(ProjectCacheProvider):
    name = "webpack"
    type = ProviderType.BUILD_TOOL
    description = "webpack persistent build cache in the current project"
    _project_dirs = ("node_modules/.cache/webpack", ".webpack-cache")


class ViteProvider(ProjectCacheProvider):
    name = "vite"
    type = ProviderType.BUILD_TOOL
    description = "Vite pre-bundled dependency cache in the current project"
    _project_dirs = ("node_modules/.vite",)


class TurboProvider(ProjectCacheProvider):
    name = "turbo"
    type = ProviderType.BUILD_TOOL
    description = "Turborepo task cache in the current project"
    _project_dirs = (".turbo", "node_modules/.cache/turbo")


class NxProvider(ProjectCacheProvider):
    name = "nx"
    type = ProviderType.BUILD_TOOL
    description = "Nx computation cache in the current workspace"
    _priority = Priority.NORMAL
    _project_dirs = (".nx/cache", "node_modules/.cache/nx")
