"""Tests for the scan/clear manager."""

from __future__ import annotations

import os
import threading
import time
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from squeaky.core.fs import measure
from squeaky.core.manager import CacheManager
from squeaky.core.progress import ParallelProgressTracker, ScanStatus
from squeaky.core.provider import CacheProvider, DirectoryCacheProvider
from squeaky.core.registry import ProviderRegistry
from squeaky.models.cache_entry import CacheCategory, Priority, ProviderType
from squeaky.models.criteria import SelectionCriteria
from squeaky.settings import RuntimeConfig
from tests.conftest import make_tree, set_age


class FakeProvider(DirectoryCacheProvider):
    """Test provider that only ever touches the directories it is given."""

    def __init__(
        self,
        name: str = "fake",
        dirs: tuple[Path, ...] = (),
        provider_type: ProviderType = ProviderType.OTHER,
        available: bool = True,
        fail: bool = False,
        clear_fail: bool = False,
        scan_delay: float = 0,
        clear_delay: float = 0,
    ):
        self._name = name
        self._dirs = tuple(dirs)
        self._type = provider_type
        self._available = available
        self._fail = fail
        self._clear_fail = clear_fail
        self._scan_delay = scan_delay
        self._clear_delay = clear_delay
        self.clear_calls = 0

    @property
    def name(self) -> str:
        return self._name

    @property
    def type(self) -> ProviderType:
        return self._type

    @property
    def description(self) -> str:
        return "A fake provider for testing"

    @property
    def _cache_dirs(self) -> tuple[Path, ...]:
        return self._dirs

    @property
    def unavailable_reason(self) -> str | None:
        return None if self._available else "fake tool not installed"

    def get_cache_categories(self) -> list[CacheCategory]:
        if self._scan_delay:
            time.sleep(self._scan_delay)
        if self._fail:
            raise RuntimeError("scan failed")
        return super().get_cache_categories()

    def clear(self, *args, **kwargs):
        self.clear_calls += 1
        if self._clear_delay:
            time.sleep(self._clear_delay)
        if self._clear_fail:
            raise RuntimeError("clear failed")
        return super().clear(*args, **kwargs)


class StaticProvider(CacheProvider):
    """Provider whose categories carry fixed metadata; sizes are measured live."""

    def __init__(self, name: str, categories: list[CacheCategory], roots: tuple[Path, ...]):
        self._name = name
        self._categories = categories
        self._roots = roots

    @property
    def name(self) -> str:
        return self._name

    @property
    def type(self) -> ProviderType:
        return ProviderType.PACKAGE_MANAGER

    @property
    def description(self) -> str:
        return "Static test provider"

    def roots(self) -> tuple[Path, ...]:
        return self._roots

    def get_cache_categories(self) -> list[CacheCategory]:
        found = []
        for category in self._categories:
            paths = tuple(p for p in category.paths if p.exists())
            if paths:
                size = sum(measure(p).size for p in paths)
                found.append(
                    CacheCategory(
                        id=category.id,
                        name=category.name,
                        description=category.description,
                        paths=paths,
                        size=size,
                        last_modified=category.last_modified,
                        priority=category.priority,
                    )
                )
        return found


def _manager(tmp_path: Path, *providers, **kwargs) -> CacheManager:
    registry = ProviderRegistry()
    for provider in providers:
        registry.register(provider)
    kwargs.setdefault("allowed_roots", [tmp_path])
    return CacheManager(registry, **kwargs)


def _backdate_tree(root: Path, days: float) -> None:
    for dirpath, _, filenames in os.walk(root, topdown=False):
        for filename in filenames:
            set_age(Path(dirpath) / filename, days)
        set_age(Path(dirpath), days)


@pytest.fixture
def caches(tmp_path):
    a = make_tree(tmp_path / "a" / "cache", {"one.bin": 1000, "sub/two.bin": 500})
    b = make_tree(tmp_path / "b" / "cache", {"three.bin": 2048})
    return a, b


class TestScanning:
    def test_one_entry_per_enabled_provider_in_registration_order(self, tmp_path, caches):
        a, b = caches
        manager = _manager(
            tmp_path,
            FakeProvider("slow", (a,), scan_delay=0.3),
            FakeProvider("fast", (b,)),
            FakeProvider("missing", available=False),
        )
        entries = manager.get_all_cache_info()
        assert [e.name for e in entries] == ["slow", "fast", "missing"]
        assert entries[0].size == 1500
        assert entries[1].size == 2048
        assert not entries[2].installed
        assert entries[2].size == 0

    def test_entry_size_is_sum_of_categories(self, tmp_path, caches):
        a, b = caches
        entry = _manager(tmp_path, FakeProvider("both", (a, b))).get_all_cache_info()[0]
        assert entry.size == sum(c.size for c in entry.categories) == 3548
        assert len(entry.categories) == 2

    def test_failing_provider_becomes_failed_entry(self, tmp_path, caches):
        a, _ = caches
        manager = _manager(tmp_path, FakeProvider("good", (a,)), FakeProvider("bad", (a,), fail=True))
        entries = manager.get_all_cache_info()
        assert len(entries) == 2
        assert entries[0].error is None
        assert entries[1].size == 0
        assert "scan failed" in entries[1].error

    def test_hung_provider_times_out_within_one_bound(self, tmp_path, caches):
        a, b = caches
        manager = _manager(
            tmp_path,
            FakeProvider("hung", (a,), scan_delay=2.0),
            FakeProvider("ok", (b,)),
            scan_timeout=0.3,
        )
        started = time.monotonic()
        entries = manager.get_all_cache_info()
        elapsed = time.monotonic() - started

        assert elapsed < 1.5
        assert [e.name for e in entries] == ["hung", "ok"]
        assert entries[0].error == "timed out after 0.3s"
        assert entries[0].size == 0
        assert entries[1].size == 2048

    def test_timed_out_scan_runs_on_daemon_thread(self, tmp_path):
        release = threading.Event()

        class Blocked(FakeProvider):
            def get_cache_categories(self):
                release.wait(5)
                return []

        manager = _manager(tmp_path, Blocked("blocked"), scan_timeout=0.2)
        try:
            entries = manager.get_all_cache_info()
            assert entries[0].error == "timed out after 0.2s"
            workers = [t for t in threading.enumerate() if t.name.startswith("squeaky-scan-")]
            assert workers
            assert all(t.daemon for t in workers)
        finally:
            release.set()

    def test_scans_overlap(self, tmp_path):
        providers = [FakeProvider(f"p{i}", scan_delay=0.4) for i in range(4)]
        manager = _manager(tmp_path, *providers)
        started = time.monotonic()
        manager.get_all_cache_info()
        assert time.monotonic() - started < 1.2

    def test_enabled_subset(self, tmp_path):
        manager = _manager(tmp_path, FakeProvider("a"), FakeProvider("b"), enabled=["b"])
        assert [e.name for e in manager.get_all_cache_info()] == ["b"]
        assert [p.name for p in manager.get_all_providers()] == ["a", "b"]

    def test_include_limits_scan(self, tmp_path):
        manager = _manager(tmp_path, FakeProvider("a"), FakeProvider("b"), FakeProvider("c"))
        assert [e.name for e in manager.get_all_cache_info(include=["c", "a"])] == ["a", "c"]

    def test_drives_tracker(self, tmp_path, caches):
        a, _ = caches
        tracker = ParallelProgressTracker(["good", "bad"], stream=_Sink(), live=False)
        manager = _manager(tmp_path, FakeProvider("good", (a,)), FakeProvider("bad", fail=True))
        manager.get_all_cache_info(tracker=tracker)

        states = {s.name: s for s in tracker.snapshot()}
        assert states["good"].status is ScanStatus.COMPLETE
        assert states["good"].size == 1500
        assert states["bad"].status is ScanStatus.ERROR
        assert not tracker.running

    def test_progress_does_not_change_results(self, tmp_path, caches):
        a, b = caches
        manager = _manager(tmp_path, FakeProvider("a", (a,)), FakeProvider("b", (b,)))
        quiet = manager.get_all_cache_info()
        tracker = ParallelProgressTracker(["a", "b"], stream=_Sink(), live=False)
        watched = manager.get_all_cache_info(tracker=tracker)
        assert [(e.name, e.size) for e in quiet] == [(e.name, e.size) for e in watched]

    def test_empty_registry(self, tmp_path):
        manager = _manager(tmp_path)
        assert manager.get_all_cache_info() == []


class TestClearing:
    def test_clears_sequentially_in_order(self, tmp_path, caches):
        a, b = caches
        active = []
        overlap = threading.Event()

        class Recording(FakeProvider):
            def clear(self, *args, **kwargs):
                active.append(self.name)
                if len(active) > 1:
                    overlap.set()
                time.sleep(0.1)
                try:
                    return super().clear(*args, **kwargs)
                finally:
                    active.remove(self.name)

        manager = _manager(tmp_path, Recording("a", (a,)), Recording("b", (b,)))
        results = manager.clean_all_caches()
        assert [r.name for r in results] == ["a", "b"]
        assert not overlap.is_set()
        assert all(r.success for r in results)
        assert not a.exists() and not b.exists()

    def test_second_clear_is_empty(self, tmp_path, caches):
        a, b = caches
        manager = _manager(tmp_path, FakeProvider("a", (a,)), FakeProvider("b", (b,)))
        first = manager.clean_all_caches()
        assert sum(r.freed_bytes for r in first) == 3548

        second = manager.clean_all_caches()
        assert all(r.success for r in second)
        assert all(r.cleared_paths == [] for r in second)
        assert all(r.size_after == 0 for r in second)

    def test_dry_run_parity(self, tmp_path, caches):
        a, b = caches
        manager = _manager(tmp_path, FakeProvider("a", (a,)), FakeProvider("b", (b,)))
        preview = manager.clean_all_caches(dry_run=True)
        assert a.exists() and b.exists()
        assert all(r.size_after == r.size_before for r in preview)

        real = manager.clean_all_caches()
        assert [r.size_before for r in preview] == [r.size_before for r in real]
        assert [r.cleared_paths for r in preview] == [r.cleared_paths for r in real]
        assert not a.exists()

    def test_unavailable_provider_is_skipped(self, tmp_path):
        manager = _manager(tmp_path, FakeProvider("gone", available=False))
        result = manager.clean_all_caches()[0]
        assert result.skipped
        assert result.success
        assert result.cleared_paths == []

    def test_failing_clear_is_reported(self, tmp_path, caches):
        a, b = caches
        manager = _manager(tmp_path, FakeProvider("bad", (a,), clear_fail=True), FakeProvider("good", (b,)))
        results = manager.clean_all_caches()
        assert not results[0].success
        assert "clear failed" in results[0].error
        assert results[1].success
        assert not b.exists()

    def test_hung_clear_is_cancelled_before_the_next_provider(self, tmp_path, caches):
        a, b = caches
        spans: dict[str, tuple[float, float]] = {}

        class Timed(FakeProvider):
            def clear(self, *args, **kwargs):
                started = time.monotonic()
                try:
                    return super().clear(*args, **kwargs)
                finally:
                    spans[self.name] = (started, time.monotonic())

        manager = _manager(
            tmp_path,
            Timed("hung", (a,), clear_delay=0.45),
            Timed("good", (b,)),
            clear_timeout=0.3,
        )
        results = manager.clean_all_caches()

        assert results[0].name == "hung"
        assert not results[0].success
        assert results[0].error == "timed out after 0.3s"
        assert results[0].cleared_paths == []
        assert results[1].success
        assert spans["hung"][1] <= spans["good"][0]

        time.sleep(0.3)
        assert (a / "one.bin").exists()
        assert (a / "sub" / "two.bin").exists()
        assert not b.exists()

    def test_stalled_clear_blocks_remaining_providers(self, tmp_path, caches):
        a, b = caches
        manager = _manager(
            tmp_path,
            FakeProvider("hung", (a,), clear_delay=0.8),
            FakeProvider("good", (b,)),
            clear_timeout=0.1,
        )
        started = time.monotonic()
        results = manager.clean_all_caches()
        assert time.monotonic() - started < 0.6

        assert results[0].error == "timed out after 0.1s"
        assert not results[1].success
        assert results[1].error == "not started: clear of 'hung' is still running"
        assert b.exists()

        workers = [t for t in threading.enumerate() if t.name == "squeaky-clear-hung"]
        assert workers and all(t.daemon for t in workers)
        for worker in workers:
            worker.join(timeout=2)
        assert (a / "one.bin").exists()

    def test_filters(self, tmp_path):
        manager = _manager(
            tmp_path,
            FakeProvider("npm", provider_type=ProviderType.PACKAGE_MANAGER),
            FakeProvider("pip", provider_type=ProviderType.PACKAGE_MANAGER),
            FakeProvider("chrome", provider_type=ProviderType.BROWSER),
        )
        names = lambda results: [r.name for r in results]
        assert names(manager.clean_all_caches(dry_run=True, types=["package-manager"])) == ["npm", "pip"]
        assert names(manager.clean_all_caches(dry_run=True, include=["chrome", "npm"])) == ["npm", "chrome"]
        assert names(manager.clean_all_caches(dry_run=True, exclude=["pip"])) == ["npm", "chrome"]
        assert names(
            manager.clean_all_caches(dry_run=True, types=[ProviderType.PACKAGE_MANAGER], exclude=["npm"])
        ) == ["pip"]

    def test_overlapping_roots(self, tmp_path):
        outer = make_tree(tmp_path / "mono" / "cache", {"x.bin": 100, "inner/y.bin": 200})
        inner = outer / "inner"
        manager = _manager(tmp_path, FakeProvider("outer", (outer,)), FakeProvider("inner", (inner,)))

        results = manager.clean_all_caches()
        assert all(r.success for r in results)
        assert results[0].freed_bytes == 300
        assert results[1].cleared_paths == []
        assert not outer.exists()

    def test_overlapping_roots_reversed(self, tmp_path):
        outer = make_tree(tmp_path / "mono" / "cache", {"x.bin": 100, "inner/y.bin": 200})
        inner = outer / "inner"
        manager = _manager(tmp_path, FakeProvider("inner", (inner,)), FakeProvider("outer", (outer,)))

        results = manager.clean_all_caches()
        assert all(r.success for r in results)
        assert results[0].freed_bytes == 200
        assert results[1].freed_bytes == 100

    def test_protected_path_never_cleared(self, tmp_path):
        cache = make_tree(tmp_path / "cache", {"keep/important.db": 100, "junk/tmp.bin": 50})
        manager = _manager(
            tmp_path,
            FakeProvider("fake", (cache,)),
            protected_paths=[str(cache / "keep")],
        )
        result = manager.clean_all_caches()[0]
        assert result.success
        assert (cache / "keep" / "important.db").exists()
        assert not (cache / "junk").exists()
        assert all(cache / "keep" != p and cache / "keep" not in p.parents for p in result.cleared_paths)

    def test_clean_by_category(self, tmp_path, caches):
        a, b = caches
        manager = _manager(tmp_path, FakeProvider("fake", (a, b)), FakeProvider("other", (b,)))
        entry = manager.get_all_cache_info(include=["fake"])[0]
        first_id = entry.categories[0].id

        results = manager.clean_by_category({"fake": [first_id], "unknown": ["x"]})
        assert [r.name for r in results] == ["fake"]
        assert results[0].cleared_categories == [first_id]
        assert not a.exists()
        assert b.exists()


class TestCriteriaScenario:
    def test_only_old_normal_category_is_selected(self, tmp_path):
        now = datetime.now(timezone.utc)
        big_dir = tmp_path / "a" / "npm-cache"
        big_dir.mkdir(parents=True)
        with open(big_dir / "blob", "wb") as f:
            f.truncate(500 * 1024 * 1024)
        small_dir = make_tree(tmp_path / "b" / "state", {"small.bin": 2048})

        provider_a = StaticProvider(
            "a",
            [CacheCategory("npm-cache", "npm cache", "", (big_dir,), last_modified=now - timedelta(days=10))],
            roots=(tmp_path / "a",),
        )
        provider_b = StaticProvider(
            "b",
            [
                CacheCategory(
                    "state",
                    "state",
                    "",
                    (small_dir,),
                    last_modified=now - timedelta(days=1),
                    priority=Priority.CRITICAL,
                )
            ],
            roots=(tmp_path / "b",),
        )
        manager = _manager(tmp_path, provider_a, provider_b)

        before = manager.get_summary()
        assert before.total_size == 500 * 1024 * 1024 + 2048

        criteria = SelectionCriteria.from_strings(older_than="7d", priority="normal")
        results = manager.clean_all_caches(criteria=criteria)
        assert results[0].cleared_categories == ["npm-cache"]
        assert results[1].cleared_paths == []

        after = {e.name: e.size for e in manager.get_all_cache_info()}
        assert after == {"a": 0, "b": 2048}

    def test_age_filter_survives_repeated_scans(self, tmp_path):
        cache = make_tree(tmp_path / "tool" / "cache", {"blob.bin": 4096, "index/meta.json": 64})
        _backdate_tree(cache, days=30)
        manager = _manager(tmp_path, FakeProvider("tool", (cache,)))
        criteria = SelectionCriteria.from_strings(older_than="7d")

        first = manager.clean_all_caches(dry_run=True, criteria=criteria)
        second = manager.clean_all_caches(dry_run=True, criteria=criteria)
        assert first[0].cleared_paths == [cache]
        assert second[0].cleared_paths == [cache]

        manager.get_all_cache_info()
        real = manager.clean_all_caches(criteria=criteria)
        assert real[0].cleared_paths == [cache]
        assert not cache.exists()

    def test_recent_cache_is_kept_by_age_filter(self, tmp_path):
        old = make_tree(tmp_path / "old" / "cache", {"blob.bin": 100})
        fresh = make_tree(tmp_path / "fresh" / "cache", {"blob.bin": 100})
        _backdate_tree(old, days=30)
        _backdate_tree(fresh, days=2)
        manager = _manager(tmp_path, FakeProvider("old", (old,)), FakeProvider("fresh", (fresh,)))

        results = manager.clean_all_caches(criteria=SelectionCriteria.from_strings(older_than="7d"))
        assert results[0].cleared_paths == [old]
        assert results[1].cleared_paths == []
        assert not old.exists()
        assert (fresh / "blob.bin").exists()

    def test_scan_entries_are_reused_by_clear(self, tmp_path):
        cache = make_tree(tmp_path / "tool" / "cache", {"blob.bin": 100})
        _backdate_tree(cache, days=30)
        manager = _manager(tmp_path, FakeProvider("tool", (cache,)))
        entries = manager.get_all_cache_info()
        criteria = SelectionCriteria.from_strings(older_than="7d")

        preview = manager.clean_all_caches(dry_run=True, criteria=criteria, entries=entries)
        os.utime(cache / "blob.bin")
        real = manager.clean_all_caches(criteria=criteria, entries=entries)
        assert preview[0].cleared_paths == real[0].cleared_paths == [cache]
        assert not cache.exists()


class TestAggregates:
    def test_empty_registry_summary_is_zeros(self, tmp_path):
        summary = _manager(tmp_path).get_summary()
        assert summary.total_size == 0
        assert summary.total_providers == 0
        assert summary.installed_providers == 0
        assert summary.enabled_providers == 0
        assert set(summary.sizes_by_type) == set(ProviderType)
        assert all(size == 0 for size in summary.sizes_by_type.values())

    def test_sizes_by_type(self, tmp_path, caches):
        a, b = caches
        manager = _manager(
            tmp_path,
            FakeProvider("pm", (a,), provider_type=ProviderType.PACKAGE_MANAGER),
            FakeProvider("ide", (b,), provider_type=ProviderType.IDE),
            FakeProvider("off", available=False, provider_type=ProviderType.IDE),
        )
        sizes = manager.get_cache_sizes_by_type()
        assert sizes[ProviderType.PACKAGE_MANAGER] == 1500
        assert sizes[ProviderType.IDE] == 2048
        assert sizes[ProviderType.BROWSER] == 0

        summary = manager.get_summary()
        assert summary.total_providers == 3
        assert summary.installed_providers == 2
        assert summary.enabled_providers == 3

    def test_summary_reuses_entries(self, tmp_path):
        provider = FakeProvider("x")
        manager = _manager(tmp_path, provider)
        entries = manager.get_all_cache_info()
        provider._fail = True
        assert manager.get_summary(entries).installed_providers == 1


class TestFromConfig:
    def test_disabled_providers_are_dropped(self, tmp_path):
        registry = ProviderRegistry()
        for name in ("a", "b", "c"):
            registry.register(FakeProvider(name))
        config = RuntimeConfig(disabled=frozenset({"b"}), scan_timeout=5, allowed_roots=(str(tmp_path),))
        manager = CacheManager.from_config(registry, config)
        assert [p.name for p in manager.get_enabled_providers()] == ["a", "c"]
        assert manager.scan_timeout == 5

    def test_enabled_and_disabled(self, tmp_path):
        registry = ProviderRegistry()
        for name in ("a", "b", "c"):
            registry.register(FakeProvider(name))
        config = RuntimeConfig(enabled=("a", "b"), disabled=frozenset({"a"}))
        manager = CacheManager.from_config(registry, config)
        assert [p.name for p in manager.get_enabled_providers()] == ["b"]


class _Sink:
    def __init__(self):
        self.parts: list[str] = []

    def write(self, text: str) -> None:
        self.parts.append(text)

    def flush(self) -> None:
        pass

    def isatty(self) -> bool:
        return False
