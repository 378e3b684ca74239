"""Pytest fixtures for sync integration tests.

This module provides fixtures for:
- Running a real task server on a free local port
- Creating isolated client devices, each with its own config and database
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Generator, List

import pytest
from werkzeug.serving import BaseWSGIServer, make_server

from todosync.core.config import Config
from todosync.core.database import Database
from todosync.core.store import MemoryTaskStore
from todosync.core.sync_client import RemoteTaskStore, SyncClient, SyncResult
from todosync.web import create_app


@dataclass
class LiveServer:
    """A task server running in a background thread."""

    store: MemoryTaskStore
    server: BaseWSGIServer
    thread: threading.Thread

    @property
    def url(self) -> str:
        return f"http://127.0.0.1:{self.server.server_port}"

    def stop(self) -> None:
        self.server.shutdown()
        self.thread.join(timeout=5)
        self.server.server_close()


@dataclass
class Device:
    """A client device: local database plus a sync client for one server."""

    name: str
    config: Config
    db: Database
    remote: RemoteTaskStore

    def sync(self) -> SyncResult:
        return SyncClient(self.db, self.remote).full_sync()

    def close(self) -> None:
        self.remote.close()
        self.db.close()


@pytest.fixture
def live_server() -> Generator[LiveServer, None, None]:
    """Start a threaded task server on an ephemeral port.

    Yields:
        LiveServer with the store it serves
    """
    store = MemoryTaskStore()
    app = create_app(store=store)
    server = make_server("127.0.0.1", 0, app, threaded=True)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    live = LiveServer(store=store, server=server, thread=thread)
    yield live
    live.stop()


@pytest.fixture
def make_device(
    tmp_path: Path, live_server: LiveServer
) -> Generator[Callable[[str], Device], None, None]:
    """Factory creating client devices pointed at the live server.

    Yields:
        Function taking a device name and returning a Device
    """
    devices: List[Device] = []

    def factory(name: str) -> Device:
        config = Config(config_dir=tmp_path / name)
        config.set_server_url(live_server.url)
        config.set("request_timeout", 5)
        db = Database(config.get_database_file())
        device = Device(name, config, db, RemoteTaskStore.from_config(config))
        devices.append(device)
        return device

    yield factory

    for device in devices:
        device.close()
