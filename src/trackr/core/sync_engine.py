"""Sync engine for Trackr offline-first synchronization.

This module provides the client side of the sync protocol, allowing
this installation to:
- Resolve the remote sync endpoint
- Push the full local snapshot to its partition (fire-and-forget)
- Pull a partition and merge it into the local store
- Auto-push after a quiet period following local changes (debounce)
- Track connectivity and whether the server last responded

A SUPER_ADMIN works against the "GLOBAL" partition spanning every
tenant; everyone else works against their own company's partition.

Network errors and malformed responses never raise past this module:
every operation returns a SyncResult and logs what went wrong.

CRITICAL: This module must have NO UI dependencies.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from .models import (
    ARRAY_FIELDS,
    COLLECTION_KEYS,
    GLOBAL_PARTITION,
    UserRole,
    WATCHED_COLLECTIONS,
    super_admin_record,
)
from .store import ORIGIN_LOCAL, ORIGIN_SYNC, LocalStore

logger = logging.getLogger(__name__)

__all__ = ["SyncEngine", "SyncResult", "merge_users", "remote_replacements"]

DEFAULT_DEBOUNCE_SECONDS = 3.0


@dataclass
class SyncResult:
    """Result of a sync operation.

    ``attempted`` is False when the operation was a no-op (offline, no
    endpoint, nobody signed in, or a push already in flight).
    """

    success: bool
    attempted: bool = True
    merged: List[str] = None  # Collection keys replaced by a pull
    errors: List[str] = None

    def __post_init__(self):
        if self.merged is None:
            self.merged = []
        if self.errors is None:
            self.errors = []


def _not_attempted(reason: str) -> SyncResult:
    return SyncResult(success=False, attempted=False, errors=[reason])


def merge_users(remote_users: List[Any]) -> List[Dict[str, Any]]:
    """Merge remote users with the fixed SUPER_ADMIN record.

    Deduplicates by id keeping the first position of each id and the
    last value seen. The SUPER_ADMIN record is appended last, so it
    always replaces a remote record carrying the same id.
    """
    by_id: Dict[Any, Dict[str, Any]] = {}
    for user in list(remote_users) + [super_admin_record()]:
        if isinstance(user, dict) and "id" in user:
            by_id[user["id"]] = user
    return list(by_id.values())


def remote_replacements(remote: Dict[str, Any]) -> Dict[str, Any]:
    """Build the local collection replacements for a pulled document.

    Only keys present in ``remote`` are replaced; a key whose value has
    the wrong shape, or holds any record that is not an object with an
    id, is skipped as a whole and left untouched locally.
    """
    replacements: Dict[str, Any] = {}
    for key in COLLECTION_KEYS:
        if key not in remote:
            continue
        value = remote[key]
        expected = list if key in ARRAY_FIELDS else dict
        if not isinstance(value, expected):
            logger.warning(
                f"Ignoring pulled '{key}': expected {expected.__name__}, got {type(value).__name__}"
            )
            continue
        if expected is list and not all(isinstance(r, dict) and "id" in r for r in value):
            logger.warning(f"Ignoring pulled '{key}': every record must be an object with an id")
            continue
        replacements[key] = merge_users(value) if key == "users" else value
    return replacements


class SyncEngine:
    """Keeps the local store and the remote partition eventually consistent.

    Attributes:
        store: LocalStore to snapshot and merge into
        transport: HttpTransport (or compatible) used for all requests
        resolver: RemoteConfigResolver caching the endpoint
        is_online: Last known connectivity state
        server_responding: Whether the last request reached the server
            (None until the first request)
    """

    def __init__(
        self,
        store: LocalStore,
        transport: Any,
        resolver: Any,
        debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
        auto_sync: bool = True,
        timer_factory: Callable[..., Any] = threading.Timer,
    ) -> None:
        """Initialize the engine. Call ``start()`` to enable auto-push.

        Args:
            store: Local store
            transport: Transport with get_json/post_json
            resolver: Endpoint resolver with resolve/set_endpoint/endpoint
            debounce_seconds: Quiet interval before an auto-push fires
            auto_sync: Master switch for auto-push
            timer_factory: Callable with threading.Timer's signature
        """
        self.store = store
        self.transport = transport
        self.resolver = resolver
        self.debounce_seconds = debounce_seconds
        self.auto_sync = auto_sync
        self.timer_factory = timer_factory
        self.is_online = True
        self.server_responding: Optional[bool] = None
        self._timer: Optional[Any] = None
        self._timer_generation = 0
        self._timer_lock = threading.Lock()
        self._push_lock = threading.Lock()
        self._unsubscribe: Optional[Callable[[], None]] = None

    # ===== Lifecycle =====

    def start(self) -> None:
        """Start listening for local changes."""
        if self._unsubscribe is None:
            self._unsubscribe = self.store.subscribe(self._on_store_change)

    def stop(self) -> None:
        """Stop listening and cancel any pending auto-push."""
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        self.cancel_pending_push()

    def set_online(self, online: bool) -> None:
        """Record a connectivity transition."""
        if online != self.is_online:
            logger.info(f"Sync engine is now {'online' if online else 'offline'}")
        self.is_online = online

    # ===== Endpoint & partition =====

    @property
    def endpoint(self) -> Optional[str]:
        return self.resolver.endpoint

    @property
    def is_configured(self) -> bool:
        return self.resolver.endpoint is not None or bool(self._explicit_endpoint())

    def _explicit_endpoint(self) -> Optional[str]:
        return (self.store.get("settings").get("cloud") or {}).get("scriptUrl") or None

    def resolve_endpoint(self) -> Optional[str]:
        """Get the sync endpoint.

        An endpoint set in settings (cloud.scriptUrl) takes precedence;
        otherwise the resolver fetches the bootstrap document once.
        """
        explicit = self._explicit_endpoint()
        if explicit:
            self.resolver.set_endpoint(explicit)
            return explicit
        if self.resolver.endpoint is not None:
            return self.resolver.endpoint
        if not self.is_online:
            return None
        return self.resolver.resolve()

    def partition_key(self) -> Optional[str]:
        """Get the partition key for the signed-in user, or None."""
        user = self.store.current_user()
        if user is None:
            return None
        if user.get("role") == UserRole.SUPER_ADMIN.value:
            return GLOBAL_PARTITION
        return user.get("companyId") or None

    def _prepare(self) -> Any:
        """Return (endpoint, partition_key) or a not-attempted SyncResult."""
        if not self.is_online:
            return _not_attempted("offline")
        endpoint = self.resolve_endpoint()
        if endpoint is None:
            return _not_attempted("sync endpoint not configured")
        key = self.partition_key()
        if key is None:
            return _not_attempted("no user signed in")
        return endpoint, key

    # ===== Push / pull =====

    def push(self) -> SyncResult:
        """Send the full local snapshot to the caller's partition.

        At most one push is in flight; a push requested meanwhile is
        skipped. Delivery is best-effort: success means the request was
        sent, not that the server stored it.
        """
        if not self._push_lock.acquire(blocking=False):
            logger.warning("Push skipped, another push is in flight")
            return _not_attempted("push already in flight")
        try:
            prepared = self._prepare()
            if isinstance(prepared, SyncResult):
                return prepared
            endpoint, key = prepared

            payload = {
                "action": "SYNC_PUSH",
                "companyId": key,
                "data": self.store.snapshot(),
            }
            response = self.transport.post_json(endpoint, payload)
            if not response.get("success"):
                self.server_responding = False
                logger.error(f"Push to partition {key} failed: {response.get('error')}")
                return SyncResult(success=False, errors=[response.get("error") or "push failed"])

            self.server_responding = True
            logger.info(f"Pushed snapshot to partition {key}")
            return SyncResult(success=True)
        except Exception as e:
            self.server_responding = False
            logger.error(f"Push error: {e}")
            return SyncResult(success=False, errors=[str(e)])
        finally:
            self._push_lock.release()

    def pull(self) -> SyncResult:
        """Fetch the caller's partition and merge it into the store.

        Each collection present in the response replaces the local one
        (users are merged with the SUPER_ADMIN record); collections absent
        from the response are left untouched.
        """
        try:
            prepared = self._prepare()
            if isinstance(prepared, SyncResult):
                return prepared
            endpoint, key = prepared

            response = self.transport.get_json(
                endpoint, {"action": "SYNC_PULL", "companyId": key}
            )
            if not response.get("success"):
                self.server_responding = False
                logger.error(f"Pull from partition {key} failed: {response.get('error')}")
                return SyncResult(success=False, errors=[response.get("error") or "pull failed"])

            self.server_responding = True
            envelope = response.get("data")
            if (
                not isinstance(envelope, dict)
                or envelope.get("status") != "success"
                or not isinstance(envelope.get("data"), dict)
            ):
                logger.warning(f"Malformed pull response from partition {key}, nothing merged")
                return SyncResult(success=False, errors=["malformed pull response"])

            replacements = remote_replacements(envelope["data"])
            merged = self.store.apply(replacements, origin=ORIGIN_SYNC) if replacements else []
            logger.info(f"Pulled partition {key}, merged: {', '.join(merged) or 'nothing'}")
            return SyncResult(success=True, merged=merged)
        except Exception as e:
            self.server_responding = False
            logger.error(f"Pull error: {e}")
            return SyncResult(success=False, errors=[str(e)])

    # ===== Directory & notifications =====

    def find_user(self, email: str) -> Optional[Dict[str, Any]]:
        """Look a user up by email across every partition on the server."""
        prepared = self._prepare_without_partition()
        if prepared is None:
            return None
        response = self.transport.get_json(prepared, {"action": "FIND_USER", "email": email})
        if not response.get("success"):
            self.server_responding = False
            return None
        self.server_responding = True
        envelope = response.get("data")
        if isinstance(envelope, dict) and envelope.get("status") == "success":
            user = envelope.get("user")
            return user if isinstance(user, dict) else None
        return None

    def notify(
        self,
        to: str,
        subject: str,
        message: str,
        type: str,
        admin_email: Optional[str] = None,
    ) -> SyncResult:
        """Ask the server to relay a notification (fire-and-forget)."""
        endpoint = self._prepare_without_partition()
        if endpoint is None:
            return _not_attempted("sync unavailable")
        response = self.transport.post_json(endpoint, {
            "action": "NOTIFY",
            "payload": {
                "to": to,
                "subject": subject,
                "message": message,
                "type": type,
                "adminEmail": admin_email,
            },
        })
        self.server_responding = bool(response.get("success"))
        if not response.get("success"):
            logger.error(f"Notification to {to} failed: {response.get('error')}")
            return SyncResult(success=False, errors=[response.get("error") or "notify failed"])
        return SyncResult(success=True)

    def _prepare_without_partition(self) -> Optional[str]:
        if not self.is_online:
            return None
        return self.resolve_endpoint()

    # ===== Debounced auto-push =====

    def auto_sync_enabled(self) -> bool:
        cloud = self.store.get("settings").get("cloud") or {}
        return self.auto_sync and cloud.get("autoSync", True) is not False

    @property
    def has_pending_push(self) -> bool:
        return self._timer is not None

    def schedule_push(self) -> None:
        """(Re)start the debounce timer; the push fires after a quiet period."""
        with self._timer_lock:
            if self._timer is not None:
                self._timer.cancel()
            self._timer_generation += 1
            timer = self.timer_factory(
                self.debounce_seconds,
                self._fire_scheduled_push,
                args=(self._timer_generation,),
            )
            timer.daemon = True
            self._timer = timer
            timer.start()

    def cancel_pending_push(self) -> bool:
        """Cancel the pending auto-push, if any.

        Returns:
            True if a push was pending
        """
        with self._timer_lock:
            self._timer_generation += 1
            if self._timer is None:
                return False
            self._timer.cancel()
            self._timer = None
            return True

    def flush_pending_push(self) -> Optional[SyncResult]:
        """Send a pending auto-push now instead of waiting for the timer.

        Returns:
            The push result, or None if nothing was pending
        """
        if not self.cancel_pending_push():
            return None
        return self.push()

    def _fire_scheduled_push(self, generation: int) -> None:
        with self._timer_lock:
            if generation != self._timer_generation:
                return  # superseded or cancelled
            self._timer = None
        self.push()

    def _on_store_change(self, key: str, origin: str) -> None:
        if origin != ORIGIN_LOCAL or key not in WATCHED_COLLECTIONS:
            return
        if not self.is_online or not self.is_configured or not self.auto_sync_enabled():
            return
        self.schedule_push()
