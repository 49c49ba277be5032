"""Remote merge service for Trackr.

A multi-tenant document store: one snapshot-shaped document per
partition key (a company id). The privileged "GLOBAL" key reads across
every partition and writes user updates back into their owning
partitions; a tenant key reads and writes only its own document.

Known properties, kept on purpose:
- A tenant push overwrites the whole document (last write wins), so two
  devices pushing for the same tenant clobber each other.
- A global pull concatenates arrays without deduplication and
  shallow-merges maps with the last partition winning, in the storage's
  key order.
- A global push only replaces users that already exist in their owning
  partition's users array; anything else is silently dropped.

CRITICAL: This module must have NO Flask dependencies.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from .models import (
    ARRAY_FIELDS,
    GLOBAL_PARTITION,
    MAP_FIELDS,
    SYSTEM_SETTINGS_KEY,
    CompanyStatus,
    UserStatus,
)
from .persistence import MemoryStorage
from .validation import normalize_email

logger = logging.getLogger(__name__)

__all__ = ["RemoteMergeService"]


class RemoteMergeService:
    """Partitioned key-value document store with cross-tenant merge.

    Attributes:
        storage: Key-value storage holding one document per partition key
        outbox: Notifications received through ``notify()``
    """

    def __init__(self, storage: Optional[Any] = None) -> None:
        """Initialize the service.

        Args:
            storage: MemoryStorage/JsonFileStorage; defaults to memory
        """
        self.storage = storage if storage is not None else MemoryStorage()
        self.outbox: List[Dict[str, Any]] = []

    def partition_keys(self) -> List[str]:
        """Get every tenant partition key (reserved keys excluded)."""
        return [k for k in self.storage.keys() if k != SYSTEM_SETTINGS_KEY]

    def _documents(self) -> List[Dict[str, Any]]:
        documents = []
        for key in self.partition_keys():
            doc = self.storage.get(key)
            if not isinstance(doc, dict):
                logger.warning(f"Skipping unreadable partition '{key}'")
                continue
            documents.append(doc)
        return documents

    def pull(self, partition_key: str) -> Dict[str, Any]:
        """Read a partition, or every partition merged for the global key.

        Global result: every array field is present (possibly empty) and
        holds the concatenation across partitions; a map field is present
        only if some partition has it and holds the shallow merge.
        """
        if partition_key != GLOBAL_PARTITION:
            doc = self.storage.get(partition_key)
            return doc if isinstance(doc, dict) else {}

        merged: Dict[str, Any] = {key: [] for key in ARRAY_FIELDS}
        for doc in self._documents():
            for key in ARRAY_FIELDS:
                if isinstance(doc.get(key), list):
                    merged[key] = merged[key] + doc[key]
            for key in MAP_FIELDS:
                if isinstance(doc.get(key), dict):
                    merged[key] = {**merged.get(key, {}), **doc[key]}
        logger.info(f"Global pull merged {len(self.partition_keys())} partitions")
        return merged

    def push(self, partition_key: str, payload: Dict[str, Any]) -> None:
        """Write a partition, or fan user updates out for the global key.

        Tenant key: the payload replaces the stored document entirely.

        Global key: settings go to the reserved system-settings slot; each
        user replaces the record with the same id in the users array of
        the partition named by its companyId. An ACTIVE user also
        activates the matching company in that partition.
        """
        if partition_key != GLOBAL_PARTITION:
            self.storage.set(partition_key, payload)
            logger.info(f"Stored partition {partition_key}")
            return

        if isinstance(payload.get("settings"), dict):
            self.storage.set(SYSTEM_SETTINGS_KEY, payload["settings"])

        for user in payload.get("users") or []:
            if not isinstance(user, dict):
                continue
            company_id = user.get("companyId")
            doc = self.storage.get(company_id) if company_id else None
            if not isinstance(doc, dict) or not isinstance(doc.get("users"), list):
                logger.debug(f"Dropped user {user.get('id')}: partition {company_id} has no users")
                continue

            doc["users"] = [user if u.get("id") == user.get("id") else u for u in doc["users"]]
            if user.get("status") == UserStatus.ACTIVE.value and isinstance(doc.get("companies"), list):
                for company in doc["companies"]:
                    if company.get("id") == company_id:
                        company["status"] = CompanyStatus.ACTIVE.value
            self.storage.set(company_id, doc)
        logger.info(f"Global push fanned out {len(payload.get('users') or [])} users")

    def find_user_by_email(self, email: str) -> Optional[Dict[str, Any]]:
        """Find a user in any partition by case-insensitive email."""
        wanted = normalize_email(email or "")
        for doc in self._documents():
            for user in doc.get("users") or []:
                if isinstance(user, dict) and normalize_email(user.get("email") or "") == wanted:
                    return user
        return None

    def system_settings(self) -> Dict[str, Any]:
        settings = self.storage.get(SYSTEM_SETTINGS_KEY)
        return settings if isinstance(settings, dict) else {}

    def notify(self, payload: Dict[str, Any]) -> None:
        """Record a notification request. Delivery is left to operators."""
        entry = dict(payload)
        entry["receivedAt"] = datetime.now(timezone.utc).isoformat()
        self.outbox.append(entry)
        logger.info(f"Notification [{payload.get('type')}] to {payload.get('to')}: {payload.get('subject')}")
        if payload.get("adminEmail"):
            logger.info(f"Admin alert [{payload.get('type')}] to {payload.get('adminEmail')}")
