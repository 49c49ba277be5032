"""In-memory local store for Trackr.

Holds every collection of the snapshot (companies, users, transactions,
accounts, products, entities, categories, settings) plus the UI session
fields, and persists the whole state through a key-value storage slot.

The host calls ``load()`` once at startup; every change after that is
saved immediately and reported to subscribed listeners together with its
origin ("local" for user actions, "sync" for pull-merges).

CRITICAL: This module must have NO network or UI dependencies.
"""

from __future__ import annotations

import copy
import logging
import threading
from typing import Any, Callable, Dict, List, Optional

from .models import (
    ARRAY_FIELDS,
    COLLECTION_KEYS,
    SUPER_ADMIN_ID,
    default_categories,
    default_settings,
    super_admin_record,
)

logger = logging.getLogger(__name__)

__all__ = ["LocalStore", "ORIGIN_LOCAL", "ORIGIN_SYNC"]

ORIGIN_LOCAL = "local"
ORIGIN_SYNC = "sync"

ChangeListener = Callable[[str, str], None]


def _empty_collections() -> Dict[str, Any]:
    data: Dict[str, Any] = {key: [] for key in ARRAY_FIELDS}
    data["users"] = [super_admin_record()]
    data["settings"] = default_settings()
    data["categories"] = default_categories()
    return data


class LocalStore:
    """Snapshot-shaped application state with change notification.

    All reads return copies; all writes replace a whole collection, so a
    failed write never leaves a collection half-updated. Access is
    serialized with a re-entrant lock because the debounce timer reads
    snapshots from its own thread.

    Attributes:
        current_user_id: Id of the signed-in user, or None
        is_locked: True while the PIN lock screen is shown
        show_landing: True until the user leaves the landing page
    """

    def __init__(self, storage: Optional[Any] = None, storage_key: str = "trackr_pro_accounting_v1") -> None:
        """Initialize an empty store.

        Args:
            storage: Key-value storage with get/set, or None for memory only
            storage_key: Key under which the snapshot is persisted
        """
        self.storage = storage
        self.storage_key = storage_key
        self._collections = _empty_collections()
        self.current_user_id: Optional[str] = None
        self.is_locked = True
        self.show_landing = True
        self._listeners: List[ChangeListener] = []
        self._lock = threading.RLock()
        self._initialized = False

    # ===== Persistence =====

    def load(self) -> bool:
        """Load persisted state, then enable saving on every change.

        Returns:
            True if a persisted snapshot was found and loaded
        """
        loaded = False
        with self._lock:
            saved = self.storage.get(self.storage_key) if self.storage else None
            if isinstance(saved, dict):
                defaults = _empty_collections()
                for key in COLLECTION_KEYS:
                    value = saved.get(key)
                    expected = list if key in ARRAY_FIELDS else dict
                    self._collections[key] = value if isinstance(value, expected) else defaults[key]
                self._ensure_super_admin()
                self.current_user_id = saved.get("currentUserId")
                self.is_locked = bool(saved.get("isLocked", True))
                self.show_landing = bool(saved.get("showLanding", True))
                loaded = True
                logger.info(f"Loaded local snapshot from storage key '{self.storage_key}'")
            self._initialized = True
        return loaded

    def save(self) -> None:
        """Persist the full state. No-op until ``load()`` has run."""
        if self.storage is None or not self._initialized:
            return
        with self._lock:
            self.storage.set(self.storage_key, self.state())

    def _ensure_super_admin(self) -> None:
        users = self._collections["users"]
        if not any(u.get("id") == SUPER_ADMIN_ID for u in users if isinstance(u, dict)):
            users.append(super_admin_record())

    # ===== Reads =====

    def get(self, key: str) -> Any:
        """Get a copy of one collection."""
        self._check_key(key)
        with self._lock:
            return copy.deepcopy(self._collections[key])

    def find(self, key: str, record_id: str) -> Optional[Dict[str, Any]]:
        """Find a record by id in an array collection."""
        for record in self.get(key):
            if record.get("id") == record_id:
                return record
        return None

    def snapshot(self) -> Dict[str, Any]:
        """Get a copy of every collection, keyed by collection name."""
        with self._lock:
            return {key: copy.deepcopy(self._collections[key]) for key in COLLECTION_KEYS}

    def state(self) -> Dict[str, Any]:
        """Get the snapshot plus UI session fields, as persisted."""
        with self._lock:
            data = self.snapshot()
            data["currentUserId"] = self.current_user_id
            data["isLocked"] = self.is_locked
            data["showLanding"] = self.show_landing
            return data

    def current_user(self) -> Optional[Dict[str, Any]]:
        if self.current_user_id is None:
            return None
        return self.find("users", self.current_user_id)

    # ===== Writes =====

    def replace(self, key: str, value: Any, origin: str = ORIGIN_LOCAL) -> None:
        """Replace a whole collection and notify listeners."""
        self.apply({key: value}, origin)

    def apply(self, replacements: Dict[str, Any], origin: str = ORIGIN_LOCAL) -> List[str]:
        """Replace several collections at once.

        Every value is type-checked before anything is written, so either
        all keys are replaced or none are.

        Returns:
            Keys that were replaced
        """
        for key, value in replacements.items():
            self._check_key(key)
            expected = list if key in ARRAY_FIELDS else dict
            if not isinstance(value, expected):
                raise TypeError(
                    f"Collection '{key}' must be a {expected.__name__}, got {type(value).__name__}"
                )

        with self._lock:
            for key, value in replacements.items():
                self._collections[key] = copy.deepcopy(value)
            self.save()

        changed = list(replacements.keys())
        for key in changed:
            self._notify(key, origin)
        return changed

    def set_session(self, **fields: Any) -> None:
        """Update session fields (current_user_id, is_locked, show_landing)."""
        allowed = {"current_user_id", "is_locked", "show_landing"}
        unknown = set(fields) - allowed
        if unknown:
            raise TypeError(f"Unknown session fields: {', '.join(sorted(unknown))}")
        with self._lock:
            for name, value in fields.items():
                setattr(self, name, value)
            self.save()

    # ===== Listeners =====

    def subscribe(self, listener: ChangeListener) -> Callable[[], None]:
        """Register a change listener.

        Returns:
            A callable that removes the listener
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, key: str, origin: str) -> None:
        for listener in list(self._listeners):
            listener(key, origin)

    @staticmethod
    def _check_key(key: str) -> None:
        if key not in COLLECTION_KEYS:
            raise KeyError(f"Unknown collection: {key}")
