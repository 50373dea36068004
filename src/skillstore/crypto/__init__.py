"""Cryptographic helpers: Merkle roots over the event log and chain anchoring."""

from skillstore.crypto.merkle import MerkleTree

__all__ = ["MerkleTree"]
