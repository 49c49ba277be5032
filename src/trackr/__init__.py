"""Trackr: offline-first bookkeeping with multi-tenant sync."""

__version__ = "0.1.0"
