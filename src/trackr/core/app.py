"""Application wiring for Trackr.

Builds the store, ledger, sync engine and connectivity monitor from a
Config and gives them one start/stop lifecycle. A host (CLI, UI) creates
one Application per process.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Optional

from .config import Config
from .connectivity import ConnectivityMonitor, tcp_probe
from .ids import UuidGenerator
from .ledger import Ledger
from .persistence import JsonFileStorage
from .remote_config import RemoteConfigResolver
from .store import LocalStore
from .sync_engine import SyncEngine
from .transport import HttpTransport

logger = logging.getLogger(__name__)

__all__ = ["Application"]


class Application:
    """Owns the long-lived objects of one Trackr installation.

    Attributes:
        config: Config instance
        store: LocalStore persisted to the configured storage file
        engine: SyncEngine
        ledger: Ledger wired to use the engine for remote lookups
        monitor: ConnectivityMonitor, created by ``start(monitor=True)``
    """

    def __init__(
        self,
        config: Optional[Config] = None,
        config_dir: Optional[Path] = None,
        transport: Optional[Any] = None,
        ids: Optional[Any] = None,
    ) -> None:
        self.config = config or Config(config_dir=config_dir)
        storage = JsonFileStorage(self.config.get_storage_file())
        self.store = LocalStore(storage, self.config.get_storage_key())
        self.transport = transport or HttpTransport(timeout=self.config.get_request_timeout())
        self.resolver = RemoteConfigResolver(
            self.transport,
            bootstrap_url=self.config.get("bootstrap_url"),
            pattern=self.config.get("endpoint_pattern"),
        )
        self.resolver.set_endpoint(self.config.get_sync_endpoint())
        self.engine = SyncEngine(
            self.store,
            self.transport,
            self.resolver,
            debounce_seconds=self.config.get_debounce_seconds(),
            auto_sync=self.config.is_auto_sync_enabled(),
        )
        self.ledger = Ledger(self.store, ids=ids or UuidGenerator(), remote=self.engine)
        self.monitor: Optional[ConnectivityMonitor] = None
        self._started = False

    def start(self, monitor: bool = True, resolve: bool = True) -> None:
        """Load local state and start sync services.

        Args:
            monitor: Start the background connectivity monitor
            resolve: Resolve the sync endpoint now rather than on first use
        """
        if self._started:
            return
        self.store.load()
        self.engine.start()
        if monitor:
            probe = tcp_probe(
                self.config.get("connectivity_host"),
                int(self.config.get("connectivity_port", 443)),
            )
            self.monitor = ConnectivityMonitor(
                probe,
                self.engine.set_online,
                interval=float(self.config.get("connectivity_interval", 5.0)),
            )
            self.monitor.start()
        if resolve and self.engine.is_online and self.engine.resolve_endpoint() is None:
            logger.info("Running without remote sync")
        self._started = True

    def stop(self) -> None:
        """Stop sync services. A pending auto-push is cancelled, not sent."""
        if self.monitor is not None:
            self.monitor.stop()
            self.monitor = None
        self.engine.stop()
        self._started = False

    def __enter__(self) -> "Application":
        self.start(monitor=False)
        return self

    def __exit__(self, *exc: Any) -> None:
        self.stop()
