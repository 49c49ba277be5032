"""Connectivity monitoring for Trackr.

Polls a probe in a background thread and reports online/offline
transitions through a callback. Only transitions are reported, never
repeated states, and the callback runs on the monitor thread.
"""

from __future__ import annotations

import logging
import socket
import threading
from typing import Callable, Optional

logger = logging.getLogger(__name__)

__all__ = ["ConnectivityMonitor", "tcp_probe"]


def tcp_probe(host: str, port: int = 443, timeout: float = 3.0) -> Callable[[], bool]:
    """Build a probe that succeeds when a TCP connection can be opened."""

    def probe() -> bool:
        try:
            with socket.create_connection((host, port), timeout=timeout):
                return True
        except OSError:
            return False

    return probe


class ConnectivityMonitor:
    """Background poller for the platform's online/offline state."""

    def __init__(
        self,
        probe: Callable[[], bool],
        on_change: Callable[[bool], None],
        interval: float = 5.0,
    ) -> None:
        """Initialize the monitor.

        Args:
            probe: Returns True when the network is reachable
            on_change: Called with the new state on every transition
            interval: Seconds between probes
        """
        self.probe = probe
        self.on_change = on_change
        self.interval = interval
        self._state: Optional[bool] = None
        self._thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start polling in a daemon thread."""
        if self.is_running:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, daemon=True)
        self._thread.start()

    def stop(self) -> None:
        """Stop polling and wait for the thread to exit."""
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=self.interval + 1)
            self._thread = None

    def check(self) -> bool:
        """Probe once and report a transition if the state changed."""
        try:
            online = bool(self.probe())
        except Exception as e:
            logger.warning(f"Connectivity probe failed: {e}")
            online = False
        if online != self._state:
            self._state = online
            logger.info(f"Connectivity changed: {'online' if online else 'offline'}")
            self.on_change(online)
        return online

    def _run(self) -> None:
        while not self._stop_event.is_set():
            self.check()
            self._stop_event.wait(self.interval)
