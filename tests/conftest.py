"""Pytest fixtures for Trackr tests.

This module provides fixtures for test configuration, a loaded local
store with deterministic ids, and the ledger operating on it.
"""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from trackr.core.config import Config
from trackr.core.ledger import Ledger
from trackr.core.persistence import MemoryStorage
from trackr.core.store import LocalStore

from helpers import FIXED_NOW, SequentialIdGenerator


@pytest.fixture
def test_config_dir(tmp_path: Path) -> Path:
    """Create temporary config directory for tests.

    Args:
        tmp_path: pytest temporary directory fixture

    Returns:
        Path to temporary config directory.
    """
    config_dir = tmp_path / "trackr_test"
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
def ids() -> SequentialIdGenerator:
    return SequentialIdGenerator()


@pytest.fixture
def storage() -> MemoryStorage:
    return MemoryStorage()


@pytest.fixture
def store(storage: MemoryStorage) -> LocalStore:
    """Create a loaded, empty local store backed by memory."""
    local_store = LocalStore(storage)
    local_store.load()
    return local_store


@pytest.fixture
def ledger(store: LocalStore, ids: SequentialIdGenerator) -> Ledger:
    """Create a ledger with deterministic ids and clock and no remote."""
    return Ledger(store, ids=ids, clock=lambda: FIXED_NOW)


@pytest.fixture
def admin_id(ledger: Ledger) -> str:
    """Register Acme Traders and sign its admin in.

    Ids: company id-1, admin id-2, Cash in Hand id-3, Bank Account id-4.
    """
    return ledger.register("Acme Traders", "Alice Admin", "alice@acme.test", "secret", pin="4321")
