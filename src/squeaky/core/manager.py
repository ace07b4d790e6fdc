"""Scanning and clearing orchestration across cache providers."""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, TimeoutError as FutureTimeout, wait
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Iterable, Mapping

from squeaky.core.guard import ProtectedPathGuard
from squeaky.core.progress import ParallelProgressTracker
from squeaky.core.provider import CacheProvider
from squeaky.core.registry import ProviderRegistry
from squeaky.models.cache_entry import CacheEntry, ProviderType
from squeaky.models.clear_result import ClearResult
from squeaky.models.criteria import SelectionCriteria

if TYPE_CHECKING:
    from squeaky.settings import RuntimeConfig

log = logging.getLogger(__name__)

DEFAULT_SCAN_TIMEOUT = 60.0
DEFAULT_CLEAR_TIMEOUT = 600.0
DEFAULT_MAX_WORKERS = 16


@dataclass(frozen=True, slots=True)
class CacheSummary:
    total_size: int = 0
    total_providers: int = 0
    installed_providers: int = 0
    enabled_providers: int = 0
    sizes_by_type: dict[ProviderType, int] = field(default_factory=dict)


def _timeout_message(seconds: float) -> str:
    return f"timed out after {seconds:g}s"


def _spawn(fn, *args, name: str) -> Future:
    """Run *fn* on a daemon thread and return a future for its outcome."""
    future: Future = Future()

    def runner() -> None:
        if not future.set_running_or_notify_cancel():
            return
        try:
            result = fn(*args)
        except Exception as e:
            future.set_exception(e)
        else:
            future.set_result(result)

    threading.Thread(target=runner, name=name, daemon=True).start()
    return future


class CacheManager:
    """Runs provider scans concurrently and provider clears one at a time.

    Provider failures never escape this class: a scan that raises or hangs
    becomes a failed :class:`CacheEntry`, a clear that raises or hangs
    becomes an unsuccessful :class:`ClearResult`.
    """

    def __init__(
        self,
        registry: ProviderRegistry,
        *,
        enabled: Iterable[str] | None = None,
        protected_paths: Iterable[str] = (),
        allowed_roots: Iterable[str] | None = None,
        scan_timeout: float = DEFAULT_SCAN_TIMEOUT,
        clear_timeout: float = DEFAULT_CLEAR_TIMEOUT,
        max_workers: int | None = None,
    ) -> None:
        self.registry = registry
        self._enabled = frozenset(enabled) if enabled is not None else None
        self.guard = ProtectedPathGuard(protected_paths, allowed_roots=allowed_roots)
        self.scan_timeout = scan_timeout
        self.clear_timeout = clear_timeout
        self.max_workers = max_workers or DEFAULT_MAX_WORKERS

        if self._enabled is not None:
            for name in sorted(self._enabled - set(registry.names())):
                log.warning("Enabled provider '%s' is not registered", name)

    @classmethod
    def from_config(cls, registry: ProviderRegistry, config: RuntimeConfig) -> CacheManager:
        """Build a manager from a resolved runtime configuration."""
        enabled = config.enabled
        if config.disabled:
            base = enabled if enabled is not None else registry.names()
            enabled = [name for name in base if name not in config.disabled]
        return cls(
            registry,
            enabled=enabled,
            protected_paths=config.protected_paths,
            allowed_roots=config.allowed_roots,
            scan_timeout=config.scan_timeout,
            clear_timeout=config.clear_timeout,
            max_workers=config.max_workers,
        )

    # ── lookups ──────────────────────────────────────────────────────────

    def get_provider(self, name: str) -> CacheProvider | None:
        return self.registry.get(name)

    def get_providers_by_type(self, provider_type: ProviderType | str) -> list[CacheProvider]:
        return self.registry.get_by_type(provider_type)

    def get_all_providers(self) -> list[CacheProvider]:
        return self.registry.get_all()

    def get_enabled_providers(self) -> list[CacheProvider]:
        """Registered providers that are enabled, in registration order."""
        providers = self.registry.get_all()
        if self._enabled is None:
            return providers
        return [p for p in providers if p.name in self._enabled]

    # ── scanning ─────────────────────────────────────────────────────────

    def get_all_cache_info(
        self,
        show_progress: bool = False,
        tracker: ParallelProgressTracker | None = None,
        include: Iterable[str] | None = None,
    ) -> list[CacheEntry]:
        """Scan every enabled provider concurrently.

        Returns one entry per enabled provider in registration order. The
        whole batch shares a single ``scan_timeout`` deadline; providers
        still running when it passes are reported as timed out and left to
        finish on their daemon threads, which never hold up interpreter exit.

        Args:
            show_progress: Drive a progress board on stdout.
            tracker: Use this tracker instead of creating one.
            include: Only scan providers with these names.
        """
        providers = self._filter(None, include, None)
        if not providers:
            return []

        if tracker is None and show_progress:
            tracker = ParallelProgressTracker([p.name for p in providers])
        own_tracker = tracker is not None and not tracker.running
        if own_tracker:
            tracker.start()

        slots = threading.BoundedSemaphore(min(self.max_workers, len(providers)))
        expired = threading.Event()

        def scan(provider: CacheProvider) -> CacheEntry | None:
            with slots:
                if expired.is_set():
                    return None
                return self._scan_one(provider, tracker)

        try:
            futures = [_spawn(scan, p, name=f"squeaky-scan-{p.name}") for p in providers]
            done, _ = wait(futures, timeout=self.scan_timeout)
            expired.set()
            entries: list[CacheEntry] = []
            for provider, future in zip(providers, futures):
                if future in done:
                    entries.append(future.result())
                    continue
                message = _timeout_message(self.scan_timeout)
                log.warning("Provider '%s' scan %s", provider.name, message)
                if tracker is not None:
                    tracker.fail(provider.name, message)
                entries.append(provider.failed_entry(message))
        finally:
            if own_tracker:
                tracker.stop()
        return entries

    def _scan_one(self, provider: CacheProvider, tracker: ParallelProgressTracker | None) -> CacheEntry:
        if tracker is not None:
            tracker.start_scanner(provider.name)
        try:
            entry = provider.get_cache_info()
        except Exception as e:
            log.exception("Provider '%s' failed during scan", provider.name)
            entry = provider.failed_entry(f"scan failed: {e}")

        if entry.error:
            log.warning("Provider '%s' scan failed: %s", provider.name, entry.error)
            if tracker is not None:
                tracker.fail(provider.name, entry.error)
        elif tracker is not None:
            tracker.complete(provider.name, entry.size)
        return entry

    # ── clearing ─────────────────────────────────────────────────────────

    def clean_all_caches(
        self,
        dry_run: bool = False,
        types: Iterable[ProviderType | str] | None = None,
        include: Iterable[str] | None = None,
        exclude: Iterable[str] | None = None,
        criteria: SelectionCriteria | None = None,
        trash: bool = False,
        entries: Iterable[CacheEntry] | None = None,
    ) -> list[ClearResult]:
        """Clear the enabled providers one after another.

        Args:
            dry_run: Report what would be removed without removing it.
            types: Only providers of these types.
            include: Only providers with these names.
            exclude: Never these provider names.
            criteria: Only categories matching these criteria.
            trash: Move to the trash instead of deleting.
            entries: Earlier scan results. Their categories, timestamps
                included, are what *criteria* is matched against.
        """
        providers = self._filter(types, include, exclude)
        hints = {e.name: e for e in entries} if entries is not None else {}
        jobs = [
            (
                provider,
                lambda cancel, p=provider: p.clear(
                    dry_run=dry_run,
                    criteria=criteria,
                    cached_info=hints.get(p.name),
                    guard=self.guard,
                    trash=trash,
                    cancel=cancel,
                ),
            )
            for provider in providers
        ]
        return self._clear_serially(jobs, dry_run)

    def clean_by_category(
        self,
        selection: Mapping[str, Iterable[str]],
        dry_run: bool = False,
        trash: bool = False,
        entries: Iterable[CacheEntry] | None = None,
    ) -> list[ClearResult]:
        """Clear exactly the given categories, keyed by provider name.

        Providers are processed in registration order. Unknown or disabled
        provider names are logged and skipped.
        """
        enabled = {p.name for p in self.get_enabled_providers()}
        for name in selection:
            if name not in enabled:
                log.warning("Provider '%s' not found or not enabled, skipping", name)

        hints = {e.name: e for e in entries} if entries is not None else {}
        jobs = [
            (
                provider,
                lambda cancel, p=provider, ids=list(selection[provider.name]): p.clear_by_category(
                    ids,
                    dry_run=dry_run,
                    cached_info=hints.get(p.name),
                    guard=self.guard,
                    trash=trash,
                    cancel=cancel,
                ),
            )
            for provider in self.get_enabled_providers()
            if provider.name in selection
        ]
        return self._clear_serially(jobs, dry_run)

    def _filter(
        self,
        types: Iterable[ProviderType | str] | None,
        include: Iterable[str] | None,
        exclude: Iterable[str] | None,
    ) -> list[CacheProvider]:
        providers = self.get_enabled_providers()
        if include is not None:
            wanted = set(include)
            for name in sorted(wanted - {p.name for p in providers}):
                log.warning("Provider '%s' not found or not enabled, skipping", name)
            providers = [p for p in providers if p.name in wanted]
        if types is not None:
            wanted_types = {ProviderType(t) for t in types}
            providers = [p for p in providers if p.type in wanted_types]
        if exclude is not None:
            excluded = set(exclude)
            providers = [p for p in providers if p.name not in excluded]
        return providers

    def _clear_serially(self, jobs, dry_run: bool) -> list[ClearResult]:
        """Run each (provider, action) job after the previous one has ended.

        A clear that outlives its timeout is cancelled and given one more
        ``clear_timeout`` to stop. If it is still running after that, the
        remaining jobs are not started.
        """
        results: list[ClearResult] = []
        stalled: str | None = None
        for provider, action in jobs:
            if stalled is not None:
                results.append(
                    ClearResult(
                        name=provider.name,
                        success=False,
                        error=f"not started: clear of '{stalled}' is still running",
                        dry_run=dry_run,
                    )
                )
                continue
            result, finished = self._clear_one(provider, action, dry_run)
            if not finished:
                stalled = provider.name
            results.append(result)
        return results

    def _clear_one(self, provider: CacheProvider, action, dry_run: bool) -> tuple[ClearResult, bool]:
        if not provider.is_available():
            log.info("Provider '%s' not available on this system, skipping", provider.name)
            return ClearResult(name=provider.name, dry_run=dry_run, skipped=True), True

        cancel = threading.Event()
        future = _spawn(action, cancel, name=f"squeaky-clear-{provider.name}")
        try:
            return future.result(timeout=self.clear_timeout), True
        except FutureTimeout:
            pass
        except Exception as e:
            log.exception("Provider '%s' failed during clear", provider.name)
            return ClearResult(name=provider.name, success=False, error=f"clear failed: {e}", dry_run=dry_run), True

        message = _timeout_message(self.clear_timeout)
        log.warning("Provider '%s' clear %s, cancelling", provider.name, message)
        cancel.set()
        try:
            late = future.result(timeout=self.clear_timeout)
        except FutureTimeout:
            log.error("Provider '%s' is still clearing after cancellation", provider.name)
            return ClearResult(name=provider.name, success=False, error=message, dry_run=dry_run), False
        except Exception:
            log.exception("Provider '%s' failed after cancellation", provider.name)
            return ClearResult(name=provider.name, success=False, error=message, dry_run=dry_run), True
        return replace(late, success=False, error=message), True

    # ── aggregates ───────────────────────────────────────────────────────

    def get_cache_sizes_by_type(self, entries: Iterable[CacheEntry] | None = None) -> dict[ProviderType, int]:
        """Total cache size per provider type. Every type is present."""
        if entries is None:
            entries = self.get_all_cache_info()
        sizes = {t: 0 for t in ProviderType}
        for entry in entries:
            sizes[entry.type] = sizes.get(entry.type, 0) + entry.size
        return sizes

    def get_summary(self, entries: Iterable[CacheEntry] | None = None) -> CacheSummary:
        """Aggregate sizes and provider counts. Zeros for an empty registry."""
        entries = list(entries) if entries is not None else self.get_all_cache_info()
        return CacheSummary(
            total_size=sum(e.size for e in entries),
            total_providers=len(self.registry),
            installed_providers=sum(1 for e in entries if e.installed),
            enabled_providers=len(self.get_enabled_providers()),
            sizes_by_type=self.get_cache_sizes_by_type(entries),
        )
