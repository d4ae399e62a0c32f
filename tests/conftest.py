"""Pytest configuration for test isolation.

The response cache defaults to a file under the user's home directory. Tests
that construct a :class:`~budget_inference.cache.ResponseCache` without an
explicit path (directly, through the categorizer, or through the CLI) would
otherwise share that file and each other's entries.

An autouse fixture redirects the cache directory to a per-test temporary
directory via ``BUDGET_INFERENCE_CACHE_DIR``.
"""

from __future__ import annotations

import os
from pathlib import Path

import pytest


@pytest.fixture(autouse=True)
def _isolate_cache_dir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    cache_root = tmp_path / "cache"
    cache_root.mkdir(parents=True, exist_ok=True)
    monkeypatch.setenv("BUDGET_INFERENCE_CACHE_DIR", os.fspath(cache_root))
    # Model name feeds cache keys; pin it to the built-in default
    monkeypatch.delenv("BUDGET_INFERENCE_MODEL", raising=False)
    return cache_root
