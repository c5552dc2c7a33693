"""Shared helpers (logging setup and lock-tolerant filesystem operations)."""
