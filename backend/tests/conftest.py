"""
backend/tests/conftest.py

Purpose:
    Shared pytest bootstrap: makes the backend directory importable and
    resets per-process caches between tests.
"""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

_THIS_FILE = Path(__file__).resolve()
_BACKEND_DIR = _THIS_FILE.parents[1]

if str(_BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(_BACKEND_DIR))


@pytest.fixture(autouse=True)
def _clear_tagged_cache():
    from matchsync.services.tagged_cache import tagged_cache

    tagged_cache.clear()
    yield
    tagged_cache.clear()
