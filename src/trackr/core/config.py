"""Configuration management for Trackr.

This module handles loading and saving application configuration to/from
a JSON file. The config directory can be customized via CLI argument.

Per-installation business settings (currency, pricing rules, cloud
flags) are not stored here; they are part of the synced snapshot.

CRITICAL: This module must have NO network or UI dependencies.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional

from .validation import ValidationError

logger = logging.getLogger(__name__)

__all__ = ["Config", "DEFAULT_BOOTSTRAP_URL", "DEFAULT_ENDPOINT_PATTERN"]

# Fixed location of the bootstrap document naming the sync endpoint
DEFAULT_BOOTSTRAP_URL = "https://trackr-app.github.io/bootstrap/endpoint.txt"

DEFAULT_ENDPOINT_PATTERN = r"https://script\.google\.com/macros/s/[A-Za-z0-9_-]+/exec"

DEFAULT_STORAGE_KEY = "trackr_pro_accounting_v1"


class Config:
    """Manages application configuration stored in JSON format.

    Attributes:
        config_dir: Path to the configuration directory
        config_file: Path to config.json inside config_dir
    """

    def __init__(self, config_dir: Optional[Path] = None) -> None:
        """Initialize configuration manager.

        Args:
            config_dir: Custom config directory path. If None, uses ~/.config/trackr/
        """
        if config_dir is None:
            config_dir = Path.home() / ".config" / "trackr"
        self.config_dir = Path(config_dir)
        self.config_dir.mkdir(parents=True, exist_ok=True)
        self.config_file = self.config_dir / "config.json"
        self.config_data = self.load_config()

    def _defaults(self) -> Dict[str, Any]:
        return {
            "storage_file": str(self.config_dir / "state.json"),
            "storage_key": DEFAULT_STORAGE_KEY,
            "bootstrap_url": DEFAULT_BOOTSTRAP_URL,
            "endpoint_pattern": DEFAULT_ENDPOINT_PATTERN,
            "sync_endpoint": "",
            "auto_sync": True,
            "debounce_seconds": 3.0,
            "request_timeout": 30,
            "connectivity_interval": 5.0,
            "connectivity_host": "script.google.com",
            "connectivity_port": 443,
            "server_host": "0.0.0.0",
            "server_port": 8384,
            "server_data_file": str(self.config_dir / "partitions.json"),
            "deployment_id": "trackr-local",
        }

    def load_config(self) -> Dict[str, Any]:
        """Load configuration from file, filling in defaults.

        A missing or unreadable file yields the defaults; a corrupt file
        is logged and ignored rather than overwritten.
        """
        data = self._defaults()
        if not self.config_file.exists():
            return data
        try:
            with open(self.config_file, "r", encoding="utf-8") as f:
                stored = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Ignoring unreadable config file {self.config_file}: {e}")
            return data
        if isinstance(stored, dict):
            data.update(stored)
        return data

    def save_config(self) -> None:
        """Write the current configuration to file."""
        with open(self.config_file, "w", encoding="utf-8") as f:
            json.dump(self.config_data, f, indent=2)

    def get(self, key: str, default: Any = None) -> Any:
        """Get a configuration value."""
        result = self.config_data.get(key)
        return result if result is not None else default

    def set(self, key: str, value: Any) -> None:
        """Set a configuration value and save to file."""
        self.config_data[key] = value
        self.save_config()

    # ===== Sync Configuration Methods =====

    def get_storage_file(self) -> Path:
        return Path(self.get("storage_file"))

    def get_storage_key(self) -> str:
        return self.get("storage_key", DEFAULT_STORAGE_KEY)

    def get_sync_endpoint(self) -> Optional[str]:
        """Get the explicitly configured sync endpoint, if any."""
        return self.get("sync_endpoint") or None

    def set_sync_endpoint(self, url: str) -> None:
        if url and not url.startswith(("http://", "https://")):
            raise ValidationError("sync_endpoint", "must be an http(s) URL")
        self.set("sync_endpoint", url)

    def is_auto_sync_enabled(self) -> bool:
        return bool(self.get("auto_sync", True))

    def get_debounce_seconds(self) -> float:
        """Get the quiet interval before an auto-push fires."""
        value = float(self.get("debounce_seconds", 3.0))
        if value < 0:
            raise ValidationError("debounce_seconds", "cannot be negative")
        return value

    def get_request_timeout(self) -> float:
        return float(self.get("request_timeout", 30))

    def get_server_port(self) -> int:
        return int(self.get("server_port", 8384))

    def set_server_port(self, port: int) -> None:
        if not 0 < int(port) < 65536:
            raise ValidationError("server_port", "must be between 1 and 65535")
        self.set("server_port", int(port))

    def get_server_data_file(self) -> Path:
        return Path(self.get("server_data_file"))
