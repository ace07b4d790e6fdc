"""Shared utility functions."""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
from pathlib import Path

log = logging.getLogger(__name__)


def has_command(name: str) -> bool:
    """Check if a command exists on the system."""
    return shutil.which(name) is not None


def run_command(args: list[str], timeout: float = 10) -> str | None:
    """Run a command and return its stripped stdout, or None on any failure."""
    try:
        proc = subprocess.run(args, capture_output=True, text=True, timeout=timeout, check=True)
    except (subprocess.CalledProcessError, subprocess.TimeoutExpired, OSError) as e:
        log.debug("Command %s failed: %s", args[0], e)
        return None
    return proc.stdout.strip()


def xdg_cache_home() -> Path:
    """Return XDG_CACHE_HOME, defaulting to ~/.cache."""
    return Path(os.environ.get("XDG_CACHE_HOME", Path.home() / ".cache"))


def xdg_config_home() -> Path:
    """Return XDG_CONFIG_HOME, defaulting to ~/.config."""
    return Path(os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config"))


def mac_caches() -> Path:
    """Return ~/Library/Caches, where macOS tools keep their caches."""
    return Path.home() / "Library" / "Caches"


def mac_app_support() -> Path:
    """Return ~/Library/Application Support."""
    return Path.home() / "Library" / "Application Support"


def bytes_to_human(size_bytes: int) -> str:
    """Convert byte count to a human-readable string."""
    if size_bytes < 0:
        return f"-{bytes_to_human(-size_bytes)}"
    if size_bytes == 0:
        return "0 B"

    units = ("B", "KB", "MB", "GB", "TB")
    value = float(size_bytes)
    for unit in units[:-1]:
        if abs(value) < 1024:
            return f"{value:.1f} {unit}" if unit != "B" else f"{int(value)} B"
        value /= 1024
    return f"{value:.1f} {units[-1]}"


def format_age(days: float) -> str:
    """Format an age in days as a short string ('3h', '12d', '4mo', '2y')."""
    if days < 1:
        return f"{int(days * 24)}h"
    if days < 60:
        return f"{int(days)}d"
    if days < 365:
        return f"{int(days // 30)}mo"
    return f"{int(days // 365)}y"

