"""Tests for the provider registry and loader."""

from __future__ import annotations

import sys
import types

import pytest

from squeaky.core.provider_loader import _find_providers_in_module, load_providers
from squeaky.core.registry import DuplicateProviderError, ProviderRegistry
from squeaky.models.cache_entry import ProviderType
from squeaky.providers import BUILTIN_PROVIDERS


class TestProviderRegistry:
    def test_register_and_get(self):
        from tests.test_manager import FakeProvider

        registry = ProviderRegistry()
        provider = FakeProvider("test")
        registry.register(provider)

        assert registry.get("test") is provider
        assert registry.get("missing") is None
        assert "test" in registry
        assert len(registry) == 1

    def test_duplicate_registration_raises(self):
        from tests.test_manager import FakeProvider

        registry = ProviderRegistry()
        registry.register(FakeProvider("dup"))
        with pytest.raises(DuplicateProviderError, match="dup"):
            registry.register(FakeProvider("dup"))
        assert len(registry) == 1

    def test_keeps_registration_order(self):
        from tests.test_manager import FakeProvider

        registry = ProviderRegistry()
        for name in ("c", "a", "b"):
            registry.register(FakeProvider(name))
        assert registry.names() == ["c", "a", "b"]
        assert [p.name for p in registry] == ["c", "a", "b"]

    def test_get_by_type(self):
        from tests.test_manager import FakeProvider

        registry = ProviderRegistry()
        registry.register(FakeProvider("a", provider_type=ProviderType.IDE))
        registry.register(FakeProvider("b", provider_type=ProviderType.BROWSER))
        assert [p.name for p in registry.get_by_type("ide")] == ["a"]
        assert [p.name for p in registry.get_by_type(ProviderType.BROWSER)] == ["b"]

    def test_get_available(self):
        from tests.test_manager import FakeProvider

        registry = ProviderRegistry()
        registry.register(FakeProvider("avail", available=True))
        registry.register(FakeProvider("not_avail", available=False))

        available = registry.get_available()
        assert [p.name for p in available] == ["avail"]


class TestProviderLoader:
    def test_loads_builtin_providers_in_order(self, fake_home):
        registry = ProviderRegistry()
        load_providers(registry)
        assert len(registry) == len(BUILTIN_PROVIDERS)
        assert registry.names()[:3] == ["npm", "yarn", "pnpm"]

    def test_all_providers_have_unique_names(self, fake_home):
        registry = ProviderRegistry()
        load_providers(registry)
        names = registry.names()
        assert len(names) == len(set(names))

    def test_project_root_is_passed_through(self, fake_home, tmp_path):
        registry = ProviderRegistry()
        load_providers(registry, project_root=tmp_path)
        assert registry.get("vite").project_root == tmp_path

    def test_external_module(self, fake_home, monkeypatch):
        from tests.test_manager import FakeProvider

        module = types.ModuleType("squeaky_ext_test")

        class ExtProvider(FakeProvider):
            def __init__(self):
                super().__init__("ext")

        ExtProvider.__module__ = module.__name__
        module.ExtProvider = ExtProvider
        module.FakeProvider = FakeProvider
        monkeypatch.setitem(sys.modules, module.__name__, module)

        registry = ProviderRegistry()
        load_providers(registry, extra_modules=[module.__name__])
        assert registry.names()[-1] == "ext"
        assert len(registry) == len(BUILTIN_PROVIDERS) + 1

    def test_broken_module_is_skipped(self, fake_home):
        registry = ProviderRegistry()
        load_providers(registry, extra_modules=["squeaky_no_such_module"])
        assert len(registry) == len(BUILTIN_PROVIDERS)

    def test_duplicate_external_name_raises(self, fake_home, monkeypatch):
        from tests.test_manager import FakeProvider

        module = types.ModuleType("squeaky_dup_test")

        class Clash(FakeProvider):
            def __init__(self):
                super().__init__("npm")

        Clash.__module__ = module.__name__
        module.Clash = Clash
        monkeypatch.setitem(sys.modules, module.__name__, module)

        with pytest.raises(DuplicateProviderError):
            load_providers(ProviderRegistry(), extra_modules=[module.__name__])

    def test_abstract_and_imported_classes_are_ignored(self):
        import squeaky.providers.build_tools as build_tools

        found = {cls.__name__ for cls in _find_providers_in_module(build_tools)}
        assert "GradleProvider" in found
        assert "DirectoryCacheProvider" not in found
        assert "ProjectCacheProvider" not in found
