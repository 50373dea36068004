"""Ledger store, record wire codec and derived addressing."""
