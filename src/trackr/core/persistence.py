"""Durable local key-value storage for Trackr.

A JSON file holding a mapping of storage keys to JSON documents. The
local store keeps its whole snapshot under a single key; the remote
merge service keeps one document per partition key in its own file.

Writes go to a temporary file first and are renamed into place, so an
interrupted write never leaves a truncated file behind.
"""

from __future__ import annotations

import copy
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

logger = logging.getLogger(__name__)

__all__ = ["JsonFileStorage", "MemoryStorage"]


class MemoryStorage:
    """In-process key-value storage with insertion-ordered keys.

    Values are copied on the way in and out so callers never share
    mutable state with the storage.
    """

    def __init__(self, initial: Optional[Dict[str, Any]] = None) -> None:
        self._data: Dict[str, Any] = copy.deepcopy(dict(initial or {}))

    def keys(self) -> List[str]:
        return list(self._data.keys())

    def get(self, key: str) -> Optional[Any]:
        return copy.deepcopy(self._data.get(key))

    def set(self, key: str, value: Any) -> None:
        self._data[key] = copy.deepcopy(value)

    def delete(self, key: str) -> bool:
        return self._data.pop(key, None) is not None


class JsonFileStorage(MemoryStorage):
    """Key-value storage persisted to a single JSON file.

    Values are stored as JSON text per key, mirroring a browser-style
    string slot: a value that fails to parse on read is reported as
    absent rather than raising.
    """

    def __init__(self, path: Union[Path, str]) -> None:
        super().__init__()
        self.path = Path(path)
        self._data = self._read_file()

    def _read_file(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                raw = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Failed to read storage file {self.path}: {e}")
            return {}
        if not isinstance(raw, dict):
            logger.error(f"Storage file {self.path} does not hold a JSON object")
            return {}
        return raw

    def get(self, key: str) -> Optional[Any]:
        text = self._data.get(key)
        if text is None:
            return None
        try:
            return json.loads(text)
        except (TypeError, json.JSONDecodeError) as e:
            logger.warning(f"Unreadable value under storage key '{key}': {e}")
            return None

    def set(self, key: str, value: Any) -> None:
        self._data[key] = json.dumps(value)
        self._write_file()

    def delete(self, key: str) -> bool:
        removed = super().delete(key)
        if removed:
            self._write_file()
        return removed

    def _write_file(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        temp_fd, temp_path = tempfile.mkstemp(
            dir=self.path.parent, prefix=f".{self.path.name}_"
        )
        try:
            with os.fdopen(temp_fd, "w", encoding="utf-8") as f:
                json.dump(self._data, f)
            os.replace(temp_path, self.path)
        except Exception:
            if os.path.exists(temp_path):
                os.unlink(temp_path)
            raise
