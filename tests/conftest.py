"""Pytest fixtures for todosync tests.

This module provides fixtures for test configuration, the local task
database and the in-memory server store.
"""

from __future__ import annotations

from pathlib import Path
from typing import Generator

import pytest

from todosync.core.config import Config
from todosync.core.database import Database
from todosync.core.store import MemoryTaskStore

from tests.helpers import T0, T1, make_task


@pytest.fixture
def test_config_dir(tmp_path: Path) -> Path:
    """Create temporary config directory for tests.

    Args:
        tmp_path: pytest temporary directory fixture

    Returns:
        Path to temporary config directory.
    """
    config_dir = tmp_path / "todosync_test"
    config_dir.mkdir(parents=True, exist_ok=True)
    return config_dir


@pytest.fixture
def test_config(test_config_dir: Path) -> Config:
    """Create test configuration.

    Args:
        test_config_dir: Temporary config directory

    Returns:
        Config instance for testing.
    """
    return Config(config_dir=test_config_dir)


@pytest.fixture
def test_db_path(test_config_dir: Path) -> Path:
    """Get path for test database."""
    return test_config_dir / "test_tasks.db"


@pytest.fixture
def empty_db(test_db_path: Path) -> Generator[Database, None, None]:
    """Create empty test database.

    Yields:
        Empty Database instance.
    """
    db = Database(test_db_path)
    yield db
    db.close()


@pytest.fixture
def populated_db(test_db_path: Path) -> Generator[Database, None, None]:
    """Create test database with sample data.

    Tasks:
        "synced-1"   "Buy milk"          synced, pending,   updated T0
        "synced-2"   "Write report"      synced, completed, updated T0
        "local-1"    "Call the plumber"  unsynced,          updated T1

    Yields:
        Populated Database instance.
    """
    db = Database(test_db_path)
    db.upsert(make_task("synced-1", "Buy milk", T0, is_synced=True))
    db.upsert(make_task("synced-2", "Write report", T0, is_synced=True, is_completed=True))
    db.upsert(make_task("local-1", "Call the plumber", T1, is_synced=False))
    yield db
    db.close()


@pytest.fixture
def memory_store() -> MemoryTaskStore:
    """Create an empty in-memory server store."""
    return MemoryTaskStore()
