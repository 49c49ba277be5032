"""Identifier generation for Trackr.

Record ids and product SKUs come from an injected generator so that the
store and ledger never call a random source directly. Tests pass a
deterministic generator with the same two methods.
"""

from __future__ import annotations

from uuid6 import uuid7

__all__ = ["UuidGenerator"]


class UuidGenerator:
    """Generates UUID7 record ids and SKU codes."""

    def new_id(self) -> str:
        """Return a new record id (canonical UUID string)."""
        return str(uuid7())

    def new_sku(self) -> str:
        """Return a new product SKU such as ``SKU-1A2B3C4D``."""
        return f"SKU-{uuid7().hex[-8:].upper()}"
