"""Pytest fixtures for web API tests.

Provides a Flask test client serving a pre-populated in-memory store.
"""

from __future__ import annotations

import pytest
from typing import Generator

from flask import Flask
from flask.testing import FlaskClient

from todosync.core.store import MemoryTaskStore
from todosync.web import create_app

from tests.helpers import T0, T1, make_task


@pytest.fixture
def server_store() -> MemoryTaskStore:
    """Create the server's store with sample data.

    Tasks:
        "srv-1"  "Buy milk"      pending,   updated T0
        "srv-2"  "Write report"  completed, updated T1
    """
    return MemoryTaskStore([
        make_task("srv-1", "Buy milk", T0),
        make_task("srv-2", "Write report", T1, is_completed=True),
    ])


@pytest.fixture
def web_app(server_store: MemoryTaskStore) -> Generator[Flask, None, None]:
    """Create Flask app for testing.

    Args:
        server_store: Store the app serves

    Yields:
        Flask application instance
    """
    app = create_app(store=server_store)
    app.config["TESTING"] = True
    yield app


@pytest.fixture
def client(web_app: Flask) -> FlaskClient:
    """Create Flask test client.

    Args:
        web_app: Flask application

    Returns:
        Flask test client for making requests
    """
    return web_app.test_client()
