"""Persistence: append-only event log and ledger state snapshots."""
