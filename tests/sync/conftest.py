"""Pytest fixtures for sync integration tests.

This module provides fixtures for:
- A sync server app backed by an in-memory merge service
- Devices (store + ledger + engine) talking to it through the Flask
  test client
- A real sync server on a free port, served from a background thread
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Any, Generator

import pytest
from flask import Flask
from flask.testing import FlaskClient
from werkzeug.serving import make_server

from trackr.core.ledger import Ledger
from trackr.core.merge_service import RemoteMergeService
from trackr.core.persistence import MemoryStorage
from trackr.core.remote_config import RemoteConfigResolver
from trackr.core.store import LocalStore
from trackr.core.sync_engine import SyncEngine
from trackr.core.sync_server import create_sync_server

from helpers import (
    FIXED_NOW,
    TEST_DEPLOYMENT_ID,
    TEST_ENDPOINT,
    FakeTimerFactory,
    FlaskTransport,
    SequentialIdGenerator,
)


@dataclass
class Device:
    """One installation: its own store, ledger and sync engine."""

    name: str
    storage: MemoryStorage
    store: LocalStore
    ledger: Ledger
    engine: SyncEngine
    timers: FakeTimerFactory

    def fire_pending_push(self) -> None:
        self.timers.fire_all()


def create_device(name: str, transport: Any, endpoint: str = TEST_ENDPOINT) -> Device:
    """Create a device with ids prefixed by its name.

    Args:
        name: Device name, also the id prefix
        transport: Transport shared with the sync server under test
        endpoint: Sync endpoint URL

    Returns:
        Started Device
    """
    storage = MemoryStorage()
    store = LocalStore(storage)
    store.load()
    resolver = RemoteConfigResolver(transport)
    resolver.set_endpoint(endpoint)
    timers = FakeTimerFactory()
    engine = SyncEngine(store, transport, resolver, timer_factory=timers)
    engine.start()
    ledger = Ledger(store, ids=SequentialIdGenerator(prefix=name), remote=engine, clock=lambda: FIXED_NOW)
    return Device(name=name, storage=storage, store=store, ledger=ledger, engine=engine, timers=timers)


@pytest.fixture
def merge_service() -> RemoteMergeService:
    return RemoteMergeService()


@pytest.fixture
def sync_app(merge_service: RemoteMergeService) -> Flask:
    app = create_sync_server(service=merge_service, deployment_id=TEST_DEPLOYMENT_ID)
    app.config["TESTING"] = True
    return app


@pytest.fixture
def client(sync_app: Flask) -> FlaskClient:
    return sync_app.test_client()


@pytest.fixture
def flask_transport(client: FlaskClient) -> FlaskTransport:
    return FlaskTransport(client)


@pytest.fixture
def device_a(flask_transport: FlaskTransport) -> Generator[Device, None, None]:
    device = create_device("a", flask_transport)
    yield device
    device.engine.stop()


@pytest.fixture
def device_b(flask_transport: FlaskTransport) -> Generator[Device, None, None]:
    device = create_device("b", flask_transport)
    yield device
    device.engine.stop()


@pytest.fixture
def live_server(sync_app: Flask) -> Generator[str, None, None]:
    """Serve the sync app on a free local port.

    Yields:
        Base URL, e.g. http://127.0.0.1:54321
    """
    server = make_server("127.0.0.1", 0, sync_app, threaded=True)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    try:
        yield f"http://127.0.0.1:{server.server_port}"
    finally:
        server.shutdown()
        thread.join(timeout=5)
