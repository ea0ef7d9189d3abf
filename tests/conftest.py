"""Shared pytest fixtures for token authority tests.

The reusable fixtures (clock, config, stores, clients, authority) live in
token_authority.testing.fixtures; this module adds test-suite isolation.
"""

from __future__ import annotations

from pathlib import Path

import pytest

from token_authority.observability import reset_metrics
from token_authority.stores.sqlite import SQLiteAuthorityStore

# Load token_authority.testing fixtures (frozen_clock, authority_config, memory_store, ...)
pytest_plugins = ["token_authority.testing.fixtures"]


@pytest.fixture(autouse=True)
def _isolate_metrics() -> None:
    """Start every test from zeroed counters in the process-wide collector."""
    reset_metrics()


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    """Isolated DB file per test."""
    return tmp_path / "token_authority_test.db"


@pytest.fixture
def sqlite_store(db_path: Path) -> SQLiteAuthorityStore:
    """Fresh SQLiteAuthorityStore for each test."""
    return SQLiteAuthorityStore(db_path=db_path)
