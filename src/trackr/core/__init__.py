"""Core modules for Trackr.

Everything here is usable without a UI: the local store, bookkeeping
operations, the sync engine (client) and the merge service (server).
"""
