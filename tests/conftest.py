"""Shared test fixtures."""

from __future__ import annotations

import os
from pathlib import Path

import pytest

from lfs_resolver.pointers import render_pointer


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch):
    """Isolate tests from host LFS_RESOLVER_* variables and terminal width."""
    monkeypatch.setenv("COLUMNS", "200")
    for name in list(os.environ):
        if name.startswith("LFS_RESOLVER_"):
            monkeypatch.delenv(name, raising=False)


@pytest.fixture()
def write_pointer():
    """Write a pointer file for ``content_id`` at ``path`` and return the path."""

    def _write(path: Path, content_id: str, size_bytes: int = 1024) -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(render_pointer(content_id, size_bytes), "utf-8")
        return path

    return _write
