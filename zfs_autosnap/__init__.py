"""Retention-driven zfs snapshot rotation."""

__version__ = "0.1.0"
