"""Skillstore: a marketplace ledger for publishing and purchasing skills."""

__version__ = "0.1.0"
