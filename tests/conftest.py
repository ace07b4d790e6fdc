"""Shared test fixtures."""

from __future__ import annotations

import os
import time
from pathlib import Path

import pytest


@pytest.fixture
def fake_home(tmp_path, monkeypatch):
    """Point HOME and the XDG directories at a temp directory."""
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("XDG_CACHE_HOME", str(home / ".cache"))
    monkeypatch.setenv("XDG_CONFIG_HOME", str(home / ".config"))
    for var in ("CARGO_HOME", "GRADLE_USER_HOME", "GOCACHE", "PLAYWRIGHT_BROWSERS_PATH"):
        monkeypatch.delenv(var, raising=False)
    return home


def make_tree(root: Path, files: dict[str, int]) -> Path:
    """Create *files* (relative path -> size in bytes) under *root*."""
    root.mkdir(parents=True, exist_ok=True)
    for rel, size in files.items():
        path = root / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(b"x" * size)
    return root


def set_age(path: Path, days: float) -> None:
    """Backdate the modification and access times of *path*."""
    stamp = time.time() - days * 86400
    os.utime(path, (stamp, stamp))
