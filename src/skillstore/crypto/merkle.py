"""Merkle tree over event-log hashes, for deterministic root computation.

Uses SHA-256 as the hash function. Leaves are sorted before tree
construction to ensure determinism (canonical ordering), so the root of
a log depends only on which events it holds.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass
from typing import Iterable, Optional


@dataclass(frozen=True)
class MerkleProof:
    """An inclusion proof for a single leaf."""
    leaf_hash: str
    path: list[tuple[str, str]]  # (sibling_hash, position: "L" | "R")
    root: str

    def verify(self) -> bool:
        """Recompute the root from the leaf and path."""
        current = self.leaf_hash
        for sibling, position in self.path:
            if position == "L":
                current = _hash_pair(sibling, current)
            else:
                current = _hash_pair(current, sibling)
        return _prefixed(current) == self.root


class MerkleTree:
    """A deterministic Merkle tree using SHA-256.

    Usage:
        tree = MerkleTree.from_leaves(event_log.event_hashes())
        root = tree.compute_root()
        proof = tree.inclusion_proof(event.event_hash)
    """

    def __init__(self) -> None:
        self._leaves: list[str] = []
        self._tree: list[list[str]] = []
        self._computed = False

    @classmethod
    def from_leaves(cls, leaves: Iterable[str]) -> MerkleTree:
        tree = cls()
        for leaf in leaves:
            tree.add_leaf(leaf)
        return tree

    def add_leaf(self, leaf_hash: str) -> None:
        """Add a leaf hash. Must be called before compute_root."""
        if self._computed:
            raise RuntimeError("Tree already computed. Create a new tree.")
        self._leaves.append(leaf_hash)

    @property
    def leaf_count(self) -> int:
        return len(self._leaves)

    def compute_root(self) -> str:
        """Compute the Merkle root.

        If there are no leaves, returns the hash of the empty string.
        """
        if not self._leaves:
            return _prefixed(_sha256_hex(b""))

        current_level = sorted(self._leaves)
        self._tree = [current_level]
        while len(current_level) > 1:
            next_level: list[str] = []
            for i in range(0, len(current_level), 2):
                left = current_level[i]
                right = current_level[i + 1] if i + 1 < len(current_level) else left
                next_level.append(_hash_pair(left, right))
            self._tree.append(next_level)
            current_level = next_level

        self._computed = True
        return _prefixed(current_level[0])

    def inclusion_proof(self, leaf_hash: str) -> Optional[MerkleProof]:
        """Generate an inclusion proof for a leaf, or None if absent.

        Must call compute_root first.
        """
        if not self._computed:
            raise RuntimeError("Must call compute_root before generating proofs")

        sorted_leaves = self._tree[0]
        if leaf_hash not in sorted_leaves:
            return None

        current_idx = sorted_leaves.index(leaf_hash)
        path: list[tuple[str, str]] = []
        for level in self._tree[:-1]:
            if current_idx % 2 == 0:
                sibling_idx = current_idx + 1
                if sibling_idx < len(level):
                    path.append((level[sibling_idx], "R"))
                else:
                    path.append((level[current_idx], "R"))  # duplicate
            else:
                path.append((level[current_idx - 1], "L"))
            current_idx //= 2

        return MerkleProof(
            leaf_hash=leaf_hash, path=path, root=_prefixed(self._tree[-1][0]),
        )


def _prefixed(digest: str) -> str:
    return digest if digest.startswith("sha256:") else f"sha256:{digest}"


def _sha256_hex(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def _hash_pair(left: str, right: str) -> str:
    """Hash two nodes together. Strips sha256: prefix if present."""
    left_clean = left.removeprefix("sha256:")
    right_clean = right.removeprefix("sha256:")
    return _sha256_hex(f"{left_clean}{right_clean}".encode("utf-8"))
