"""JSON-backed settings store and the runtime configuration resolved from it."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from squeaky.core.manager import DEFAULT_CLEAR_TIMEOUT, DEFAULT_SCAN_TIMEOUT
from squeaky.utils import xdg_config_home

log = logging.getLogger(__name__)

_SETTINGS_DIR = "squeaky"
_SETTINGS_FILE = "settings.json"


def default_settings_path() -> Path:
    return xdg_config_home() / _SETTINGS_DIR / _SETTINGS_FILE


class Settings:
    """The user's ``settings.json``, addressed with dotted keys.

    ``settings.get("timeouts.scan")`` reads ``data["timeouts"]["scan"]``.
    :meth:`set` and :meth:`unset` write the whole file back immediately.
    A missing, unreadable or malformed file reads as empty.
    """

    def __init__(self, path: Path | None = None) -> None:
        self.path = path or default_settings_path()
        self._data: dict[str, Any] = self._read()

    def get(self, key: str, default: Any = None) -> Any:
        node: Any = self._data
        for part in key.split("."):
            if not isinstance(node, dict) or part not in node:
                return default
            node = node[part]
        return node

    def set(self, key: str, value: Any) -> None:
        *parents, leaf = key.split(".")
        node = self._data
        for part in parents:
            child = node.get(part)
            if not isinstance(child, dict):
                child = node[part] = {}
            node = child
        node[leaf] = value
        self._write()

    def unset(self, key: str) -> bool:
        """Remove *key*; returns False when it was not set."""
        *parents, leaf = key.split(".")
        node = self.get(".".join(parents)) if parents else self._data
        if not isinstance(node, dict) or leaf not in node:
            return False
        del node[leaf]
        self._write()
        return True

    def as_dict(self) -> dict[str, Any]:
        return json.loads(json.dumps(self._data))

    def _read(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError) as e:
            log.warning("Could not load settings from %s: %s", self.path, e)
            return {}
        if not isinstance(data, dict):
            log.warning("Ignoring settings in %s: top level is not an object", self.path)
            return {}
        return data

    def _write(self) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(json.dumps(self._data, indent=2, ensure_ascii=False) + "\n", encoding="utf-8")
        except OSError as e:
            log.warning("Could not save settings to %s: %s", self.path, e)


@dataclass(frozen=True, slots=True)
class RuntimeConfig:
    """Everything the core needs from the settings file, already validated.

    ``enabled`` of None means every registered provider.
    """

    enabled: tuple[str, ...] | None = None
    disabled: frozenset[str] = frozenset()
    protected_paths: tuple[str, ...] = ()
    allowed_roots: tuple[str, ...] | None = None
    scan_timeout: float = DEFAULT_SCAN_TIMEOUT
    clear_timeout: float = DEFAULT_CLEAR_TIMEOUT
    max_workers: int | None = None
    provider_modules: tuple[str, ...] = ()


def _string_list(settings: Settings, key: str) -> tuple[str, ...] | None:
    value = settings.get(key)
    if value is None:
        return None
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        log.warning("Setting '%s' must be a list of strings, ignoring it", key)
        return None
    return tuple(value)


def _positive_number(settings: Settings, key: str, default: float | None) -> float | None:
    value = settings.get(key)
    if value is None:
        return default
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
        log.warning("Setting '%s' must be a positive number, using %s", key, default)
        return default
    return value


def resolve_config(settings: Settings) -> RuntimeConfig:
    """Turn raw settings into a :class:`RuntimeConfig`.

    Malformed values are logged and replaced by their defaults.
    """
    max_workers = _positive_number(settings, "scan.max_workers", None)
    return RuntimeConfig(
        enabled=_string_list(settings, "providers.enabled"),
        disabled=frozenset(_string_list(settings, "providers.disabled") or ()),
        protected_paths=_string_list(settings, "protected_paths") or (),
        allowed_roots=_string_list(settings, "allowed_roots"),
        scan_timeout=_positive_number(settings, "timeouts.scan", DEFAULT_SCAN_TIMEOUT),
        clear_timeout=_positive_number(settings, "timeouts.clear", DEFAULT_CLEAR_TIMEOUT),
        max_workers=int(max_workers) if max_workers is not None else None,
        provider_modules=_string_list(settings, "providers.modules") or (),
    )
