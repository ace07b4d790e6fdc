"""CLI interface for Squeaky."""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import click

from squeaky.core.manager import CacheManager
from squeaky.core.progress import ParallelProgressTracker
from squeaky.core.provider_loader import load_providers
from squeaky.core.recommend import Recommendation, Urgency, choose, recommend
from squeaky.core.registry import ProviderRegistry
from squeaky.models.cache_entry import CacheEntry, Priority, ProviderType, UseCase
from squeaky.models.clear_result import ClearResult
from squeaky.models.criteria import InvalidCriteriaError, SelectionCriteria
from squeaky.settings import RuntimeConfig, Settings, resolve_config
from squeaky.utils import bytes_to_human, format_age

_TYPE_CHOICES = [t.value for t in ProviderType]
_SETTINGS_KEY = "squeaky.settings"


def _setup_logging(verbosity: int) -> None:
    level = logging.WARNING
    if verbosity == 1:
        level = logging.INFO
    elif verbosity >= 2:
        level = logging.DEBUG
    logging.basicConfig(level=level, format="%(levelname)s: %(message)s")


def _build_manager(config: RuntimeConfig) -> CacheManager:
    registry = ProviderRegistry()
    load_providers(registry, config.provider_modules)
    return CacheManager.from_config(registry, config)


def _split_csv(value: str | None) -> list[str] | None:
    if value is None:
        return None
    return [part.strip() for part in value.split(",") if part.strip()]


def _check_providers(manager: CacheManager, names: tuple[str, ...]) -> None:
    for name in names:
        if manager.get_provider(name) is None:
            click.echo(f"Provider '{name}' not found.", err=True)
            sys.exit(1)


@click.group()
@click.option("-v", "--verbose", count=True, help="Increase verbosity (-v info, -vv debug)")
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Settings file (default: $XDG_CONFIG_HOME/squeaky/settings.json)",
)
@click.pass_context
def main(ctx: click.Context, verbose: int, config_path: Path | None) -> None:
    """Squeaky: find and clean developer tool caches."""
    _setup_logging(verbose)
    settings = Settings(config_path)
    ctx.meta[_SETTINGS_KEY] = settings
    ctx.obj = resolve_config(settings)


# ── list ─────────────────────────────────────────────────────────────────

@main.command("list")
@click.option("--type", "-t", "provider_type", type=click.Choice(_TYPE_CHOICES), default=None, help="Filter by type")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_obj
def list_cmd(config: RuntimeConfig, provider_type: str | None, as_json: bool) -> None:
    """List cache providers and whether their tool is installed."""
    manager = _build_manager(config)
    providers = manager.get_providers_by_type(provider_type) if provider_type else manager.get_all_providers()
    enabled = {p.name for p in manager.get_enabled_providers()}

    if as_json:
        data = [
            {
                "name": p.name,
                "type": p.type.value,
                "description": p.description,
                "available": p.is_available(),
                "enabled": p.name in enabled,
            }
            for p in providers
        ]
        click.echo(json.dumps(data, indent=2))
        return

    if not providers:
        click.echo("No providers registered.")
        return

    for provider in providers:
        if provider.is_available():
            status = click.style("installed", fg="green")
        else:
            status = click.style("not installed", fg="bright_black")
        disabled_tag = "" if provider.name in enabled else click.style(" [disabled]", fg="yellow")
        click.echo(
            f"  {click.style(provider.name, fg='cyan', bold=True):30s}  {provider.type.value:16s} {status}{disabled_tag}"
        )
        click.echo(f"    {provider.description}")


# ── sizes ────────────────────────────────────────────────────────────────

def _entry_json(entry: CacheEntry) -> dict:
    return {
        "name": entry.name,
        "type": entry.type.value,
        "installed": entry.installed,
        "size": entry.size,
        "paths": [str(p) for p in entry.paths],
        "categories": len(entry.categories),
        "last_modified": entry.last_modified.isoformat() if entry.last_modified else None,
        "error": entry.error,
    }


@main.command()
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.option("--no-progress", is_flag=True, help="Don't show the live scan progress")
@click.pass_obj
def sizes(config: RuntimeConfig, as_json: bool, no_progress: bool) -> None:
    """Scan every enabled provider and show cache sizes."""
    manager = _build_manager(config)
    tracker = None
    if not as_json and not no_progress:
        names = [p.name for p in manager.get_enabled_providers()]
        tracker = ParallelProgressTracker(names, stream=click.get_text_stream("stderr"))
    entries = manager.get_all_cache_info(tracker=tracker)

    if as_json:
        click.echo(json.dumps([_entry_json(e) for e in entries], indent=2))
        return

    click.echo()
    for entry in entries:
        if entry.error:
            click.echo(
                f"  {click.style('✗', fg='red')} {entry.name:20s} — {click.style(entry.error, fg='red')}"
            )
        elif not entry.installed:
            click.echo(
                f"  {click.style('·', fg='bright_black')} {entry.name:20s} — "
                f"{click.style('not installed', fg='bright_black')}"
            )
        elif entry.size > 0:
            click.echo(
                f"  {click.style('✓', fg='green')} {entry.name:20s} — "
                f"{click.style(bytes_to_human(entry.size), fg='green', bold=True)} "
                f"({len(entry.categories)} categories)"
            )
        else:
            click.echo(f"  {click.style('·', fg='bright_black')} {entry.name:20s} — empty")

    total = sum(e.size for e in entries)
    click.echo(f"\nTotal cache size: {click.style(bytes_to_human(total), fg='green', bold=True)}\n")


# ── summary ──────────────────────────────────────────────────────────────

@main.command()
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_obj
def summary(config: RuntimeConfig, as_json: bool) -> None:
    """Show total cache size and a breakdown by provider type."""
    manager = _build_manager(config)
    result = manager.get_summary()

    if as_json:
        data = {
            "total_size": result.total_size,
            "total_providers": result.total_providers,
            "installed_providers": result.installed_providers,
            "enabled_providers": result.enabled_providers,
            "sizes_by_type": {t.value: size for t, size in result.sizes_by_type.items()},
        }
        click.echo(json.dumps(data, indent=2))
        return

    click.echo(f"\n  Total cache size:  {click.style(bytes_to_human(result.total_size), fg='green', bold=True)}")
    click.echo(f"  Providers:         {result.total_providers} registered, "
               f"{result.installed_providers} installed, {result.enabled_providers} enabled")
    click.echo("\n  By type:")
    for provider_type, size in sorted(result.sizes_by_type.items(), key=lambda x: x[1], reverse=True):
        click.echo(f"    {provider_type.value:18s} {bytes_to_human(size):>10s}")
    click.echo()


# ── categories ───────────────────────────────────────────────────────────

@main.command()
@click.argument("providers", nargs=-1)
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_obj
def categories(config: RuntimeConfig, providers: tuple[str, ...], as_json: bool) -> None:
    """Show the cache categories of each provider.

    Category ids can be passed to ``clean --category PROVIDER:ID``.
    """
    manager = _build_manager(config)
    _check_providers(manager, providers)
    entries = manager.get_all_cache_info(include=providers or None)
    now = datetime.now(timezone.utc)

    if as_json:
        data = {
            e.name: [
                {
                    "id": c.id,
                    "name": c.name,
                    "description": c.description,
                    "size": c.size,
                    "paths": [str(p) for p in c.paths],
                    "last_used": c.last_used.isoformat() if c.last_used else None,
                    "priority": c.priority.value,
                    "use_case": c.use_case.value,
                    "project_specific": c.project_specific,
                }
                for c in e.categories
            ]
            for e in entries
        }
        click.echo(json.dumps(data, indent=2))
        return

    shown = [e for e in entries if e.categories]
    if not shown:
        click.echo("No cache categories found.")
        return

    for entry in shown:
        click.echo(f"\n  {click.style(entry.name, fg='blue', bold=True)} ({bytes_to_human(entry.size)})")
        for category in entry.categories:
            age = category.age(now)
            age_str = format_age(age.total_seconds() / 86400) if age is not None else "?"
            project_tag = click.style(" [project]", fg="yellow") if category.project_specific else ""
            click.echo(
                f"    {click.style(category.id, fg='cyan'):32s} {bytes_to_human(category.size):>10s}  "
                f"{age_str:>5s}  {category.priority.value:9s} {category.use_case.value}{project_tag}"
            )
    click.echo()


# ── clean ────────────────────────────────────────────────────────────────

def _parse_category_selection(values: tuple[str, ...]) -> dict[str, list[str]]:
    selection: dict[str, list[str]] = {}
    for value in values:
        provider, sep, category_id = value.partition(":")
        if not sep or not provider or not category_id:
            raise click.BadParameter(f"expected PROVIDER:CATEGORY, got '{value}'", param_hint="--category")
        selection.setdefault(provider, []).append(category_id)
    return selection


def _result_json(result: ClearResult) -> dict:
    return {
        "name": result.name,
        "success": result.success,
        "skipped": result.skipped,
        "dry_run": result.dry_run,
        "size_before": result.size_before,
        "size_after": result.size_after,
        "freed_bytes": result.freed_bytes,
        "cleared_paths": [str(p) for p in result.cleared_paths],
        "cleared_categories": result.cleared_categories,
        "error": result.error,
    }


def _print_results(results: list[ClearResult], dry_run: bool) -> None:
    verb = "would free" if dry_run else "freed"
    for result in results:
        if result.skipped:
            click.echo(
                f"  {click.style('·', fg='bright_black')} {result.name:20s} — "
                f"{click.style('not installed', fg='bright_black')}"
            )
        elif not result.success:
            click.echo(
                f"  {click.style('!', fg='yellow')} {result.name:20s} — "
                f"{verb} {bytes_to_human(result.freed_bytes)}, {click.style(result.error or 'failed', fg='red')}"
            )
        elif result.cleared_paths:
            click.echo(
                f"  {click.style('✓', fg='green')} {result.name:20s} — "
                f"{verb} {click.style(bytes_to_human(result.freed_bytes), fg='green', bold=True)}"
            )
        else:
            click.echo(f"  {click.style('·', fg='bright_black')} {result.name:20s} — nothing to clean")

    total = sum(r.freed_bytes for r in results)
    label = "Total reclaimable" if dry_run else "Total freed"
    click.echo(f"\n{label}: {click.style(bytes_to_human(total), fg='green', bold=True)}\n")


@main.command()
@click.argument("providers", nargs=-1)
@click.option("--dry-run", is_flag=True, help="Show what would be cleaned without doing it")
@click.option("--types", default=None, help="Only these provider types (comma-separated)")
@click.option("--exclude", default=None, help="Skip these providers (comma-separated)")
@click.option("--older-than", default=None, help="Only caches unused for this long (e.g. 7d, 2w, 1m)")
@click.option("--newer-than", default=None, help="Only caches used within this long")
@click.option("--larger-than", default=None, help="Only caches bigger than this (e.g. 100MB)")
@click.option("--smaller-than", default=None, help="Only caches smaller than this")
@click.option("--priority", type=click.Choice([p.value for p in Priority]), default=None)
@click.option("--use-case", type=click.Choice([u.value for u in UseCase]), default=None)
@click.option(
    "--project-specific/--global-only",
    "project_specific",
    default=None,
    help="Only project-local caches, or only global ones",
)
@click.option("--category", "category_values", multiple=True, help="Exactly this category (PROVIDER:ID, repeatable)")
@click.option("--trash", is_flag=True, help="Move to the trash instead of deleting")
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_obj
def clean(
    config: RuntimeConfig,
    providers: tuple[str, ...],
    dry_run: bool,
    types: str | None,
    exclude: str | None,
    older_than: str | None,
    newer_than: str | None,
    larger_than: str | None,
    smaller_than: str | None,
    priority: str | None,
    use_case: str | None,
    project_specific: bool | None,
    category_values: tuple[str, ...],
    trash: bool,
    yes: bool,
    as_json: bool,
) -> None:
    """Clean caches, optionally filtered by provider, type and criteria."""
    try:
        criteria = SelectionCriteria.from_strings(
            older_than=older_than,
            newer_than=newer_than,
            larger_than=larger_than,
            smaller_than=smaller_than,
            priority=priority,
            use_case=use_case,
            project_specific=project_specific,
        )
    except InvalidCriteriaError as e:
        raise click.UsageError(str(e)) from None

    type_list = _split_csv(types)
    if type_list is not None:
        unknown = [t for t in type_list if t not in _TYPE_CHOICES]
        if unknown:
            raise click.BadParameter(
                f"unknown type(s) {', '.join(unknown)} (expected: {', '.join(_TYPE_CHOICES)})",
                param_hint="--types",
            )
    selection = _parse_category_selection(category_values)

    manager = _build_manager(config)
    _check_providers(manager, providers)
    _check_providers(manager, tuple(selection))

    def run(preview: bool, entries: list[CacheEntry] | None = None) -> list[ClearResult]:
        if selection:
            return manager.clean_by_category(selection, dry_run=preview, trash=trash, entries=entries)
        return manager.clean_all_caches(
            dry_run=preview,
            types=type_list,
            include=providers or None,
            exclude=_split_csv(exclude),
            criteria=None if criteria.is_empty else criteria,
            trash=trash,
            entries=entries,
        )

    if dry_run:
        results = run(preview=True)
        if as_json:
            click.echo(json.dumps({"status": "dry_run", "results": [_result_json(r) for r in results]}, indent=2))
        else:
            _print_results(results, dry_run=True)
            click.echo("(dry run — nothing was deleted)")
        return

    entries = None
    if not yes and not as_json:
        # One scan feeds both runs.
        entries = manager.get_all_cache_info(include=list(selection) or providers or None)
        preview = run(preview=True, entries=entries)
        actionable = [r for r in preview if r.cleared_paths]
        if not actionable:
            click.echo("Nothing to clean.")
            return
        _print_results(preview, dry_run=True)
        action = "Move to trash" if trash else "Delete"
        if not click.confirm(f"{action} {len(actionable)} provider caches?", default=False):
            click.echo("Aborted.")
            return
        click.echo(f"\n{click.style('🧹', bold=True)} Cleaning...\n")

    results = run(preview=False, entries=entries)
    if as_json:
        click.echo(json.dumps({"status": "cleaned", "results": [_result_json(r) for r in results]}, indent=2))
        return
    _print_results(results, dry_run=False)


# ── auto ─────────────────────────────────────────────────────────────────

_URGENCY_COLORS = {Urgency.HIGH: "red", Urgency.MEDIUM: "yellow", Urgency.LOW: "green"}


def _recommendation_json(rec: Recommendation) -> dict:
    return {
        "name": rec.name,
        "type": rec.entry.type.value,
        "size": rec.entry.size,
        "reason": rec.reason,
        "urgency": rec.urgency.value,
        "safe": rec.safe,
    }


@main.command()
@click.option("--safe", "mode", flag_value="safe", default=True, help="Only clean caches that are always safe (default)")
@click.option("--aggressive", "mode", flag_value="aggressive", help="Lower the thresholds and clean everything recommended")
@click.option("--dry-run", is_flag=True, help="Show what would be cleaned without doing it")
@click.option("--trash", is_flag=True, help="Move to the trash instead of deleting")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_obj
def auto(config: RuntimeConfig, mode: str, dry_run: bool, trash: bool, as_json: bool) -> None:
    """Clean the caches that are large or stale, without prompting.

    Safe mode cleans package manager, build tool and known IDE caches
    bigger than 20 MB or unused for a week. Aggressive mode lowers that to
    5 MB or three days and includes caches that normally need review.
    """
    aggressive = mode == "aggressive"
    manager = _build_manager(config)
    tracker = None
    if not as_json:
        click.echo(f"{click.style('🤖', bold=True)} Analyzing caches ({mode} mode)...\n")
        names = [p.name for p in manager.get_enabled_providers()]
        tracker = ParallelProgressTracker(names, stream=click.get_text_stream("stderr"))
    entries = manager.get_all_cache_info(tracker=tracker)
    recommendations = recommend(entries, aggressive=aggressive)
    chosen = choose(recommendations, aggressive=aggressive)

    results: list[ClearResult] = []
    if chosen:
        results = manager.clean_all_caches(
            dry_run=dry_run,
            include=[r.name for r in chosen],
            trash=trash,
            entries=entries,
        )

    if as_json:
        data = {
            "mode": mode,
            "status": "dry_run" if dry_run else "cleaned",
            "recommendations": [_recommendation_json(r) for r in recommendations],
            "results": [_result_json(r) for r in results],
        }
        click.echo(json.dumps(data, indent=2))
        return

    if not recommendations:
        click.echo(click.style("No caches meet the criteria for automatic cleaning.", fg="green"))
        return

    click.echo(click.style("Cleaning recommendations:", bold=True))
    for rec in recommendations:
        marker = click.style("●", fg=_URGENCY_COLORS[rec.urgency])
        review = "" if rec.safe else click.style(" [needs review]", fg="yellow")
        click.echo(f"  {marker} {rec.name:20s} {bytes_to_human(rec.entry.size):>10s}  {rec.reason}{review}")
    total = sum(r.entry.size for r in recommendations)
    click.echo(f"\nTotal recommended: {click.style(bytes_to_human(total), fg='green', bold=True)}\n")

    if not chosen:
        click.echo("Nothing safe to clean automatically. Use --aggressive to include the caches that need review.")
        return
    _print_results(results, dry_run=dry_run)
    if dry_run:
        click.echo("(dry run — nothing was deleted)")


# ── config ───────────────────────────────────────────────────────────────

def _parse_value(text: str) -> Any:
    """JSON if it parses (numbers, booleans, lists), the raw string otherwise."""
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        return text


@main.group("config")
@click.pass_context
def config_group(ctx: click.Context) -> None:
    """Show or change the settings file."""
    ctx.obj = ctx.meta[_SETTINGS_KEY]


@config_group.command("path")
@click.pass_obj
def config_path_cmd(settings: Settings) -> None:
    """Print where the settings file lives."""
    click.echo(str(settings.path))


@config_group.command("show")
@click.pass_obj
def config_show(settings: Settings) -> None:
    """Print the whole settings file as JSON."""
    click.echo(json.dumps(settings.as_dict(), indent=2))


@config_group.command("get")
@click.argument("key")
@click.pass_obj
def config_get(settings: Settings, key: str) -> None:
    """Print one setting, e.g. ``timeouts.scan``."""
    missing = object()
    value = settings.get(key, missing)
    if value is missing:
        click.echo(f"Setting '{key}' is not set.", err=True)
        sys.exit(1)
    click.echo(json.dumps(value))


@config_group.command("set")
@click.argument("key")
@click.argument("value")
@click.pass_obj
def config_set(settings: Settings, key: str, value: str) -> None:
    """Store VALUE under KEY. VALUE is read as JSON when possible."""
    parsed = _parse_value(value)
    settings.set(key, parsed)
    click.echo(f"{click.style('✓', fg='green')} {key} = {json.dumps(parsed)}")


@config_group.command("unset")
@click.argument("key")
@click.pass_obj
def config_unset(settings: Settings, key: str) -> None:
    """Remove KEY so its default applies again."""
    if not settings.unset(key):
        click.echo(f"Setting '{key}' is not set.", err=True)
        sys.exit(1)
    click.echo(f"{click.style('✓', fg='green')} {key} removed")


def _toggle_providers(settings: Settings, names: tuple[str, ...], enable: bool) -> None:
    registry = ProviderRegistry()
    load_providers(registry, resolve_config(settings).provider_modules)
    unknown = [name for name in names if registry.get(name) is None]
    if unknown:
        click.echo(f"Provider(s) not found: {', '.join(unknown)}", err=True)
        sys.exit(1)

    current = settings.get("providers.disabled")
    disabled = [n for n in current if n not in names] if isinstance(current, list) else []
    if not enable:
        disabled.extend(names)
    settings.set("providers.disabled", disabled)

    enabled = settings.get("providers.enabled")
    if isinstance(enabled, list) and enable:
        settings.set("providers.enabled", [*enabled, *(n for n in names if n not in enabled)])

    verb = "Enabled" if enable else "Disabled"
    click.echo(f"{click.style('✓', fg='green')} {verb} {', '.join(names)}")


@config_group.command("enable")
@click.argument("names", nargs=-1, required=True)
@click.pass_obj
def config_enable(settings: Settings, names: tuple[str, ...]) -> None:
    """Turn providers back on."""
    _toggle_providers(settings, names, enable=True)


@config_group.command("disable")
@click.argument("names", nargs=-1, required=True)
@click.pass_obj
def config_disable(settings: Settings, names: tuple[str, ...]) -> None:
    """Stop scanning and cleaning these providers."""
    _toggle_providers(settings, names, enable=False)
