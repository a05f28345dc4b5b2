"""Global pytest configuration.

Tests run from the project root; `scripts/` is not an installed package, so the
root is put on `sys.path` to make `scripts.bucketfs` importable.
"""

from __future__ import annotations

import sys
from pathlib import Path

import pytest


def pytest_configure() -> None:
    root_dir = Path(__file__).resolve().parents[1]

    raw = str(root_dir)
    if raw not in sys.path:
        sys.path.insert(0, raw)


@pytest.fixture(autouse=True)
def _isolated_process_caches():
    from bucketfs_core.registry import reset_registry
    from bucketfs_core.store.s3 import reset_region_cache
    from bucketfs_core.store.workspaces import reset_instance_cache

    reset_registry()
    reset_region_cache()
    reset_instance_cache()
    yield
