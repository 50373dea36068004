"""Identities: 32-byte public keys naming actors, programs and records.

Admins, treasuries, creators and buyers are all identified by a Pubkey.
Record addresses are Pubkeys too (see skillstore.ledger.addressing), so
every cross-reference in the ledger is a stable key, never an object
reference.
"""

from __future__ import annotations

import hashlib
import itertools
from dataclasses import dataclass

PUBKEY_BYTES = 32

_unique_counter = itertools.count(1)


@dataclass(frozen=True, order=True)
class Pubkey:
    """An immutable 32-byte public key.

    Usage:
        admin = Pubkey.from_hex("ab" * 32)
        alice = Pubkey.from_name("alice")   # deterministic, for tooling
        buyer = Pubkey.new_unique()          # fresh key, for tests
    """
    raw: bytes

    def __post_init__(self) -> None:
        if isinstance(self.raw, bytearray):
            object.__setattr__(self, "raw", bytes(self.raw))
        if not isinstance(self.raw, bytes):
            raise TypeError(f"Pubkey requires bytes, got {type(self.raw).__name__}")
        if len(self.raw) != PUBKEY_BYTES:
            raise ValueError(
                f"Pubkey must be {PUBKEY_BYTES} bytes, got {len(self.raw)}"
            )

    @classmethod
    def default(cls) -> Pubkey:
        """The all-zero key."""
        return cls(bytes(PUBKEY_BYTES))

    @classmethod
    def from_hex(cls, value: str) -> Pubkey:
        text = value.strip().lower().removeprefix("0x")
        try:
            raw = bytes.fromhex(text)
        except ValueError:
            raise ValueError(f"Invalid hex public key: {value!r}") from None
        return cls(raw)

    @classmethod
    def from_name(cls, name: str) -> Pubkey:
        """Derive a key from a human-readable name.

        Names are hashed, so the same name always maps to the same key.
        Useful for CLI work and fixtures; real wallets supply raw keys.
        """
        if not name or not name.strip():
            raise ValueError("Identity name must be non-empty")
        digest = hashlib.sha256(f"skillstore:identity:{name.strip()}".encode("utf-8"))
        return cls(digest.digest())

    @classmethod
    def parse(cls, value: str) -> Pubkey:
        """Accept either 64 hex characters or a name."""
        text = value.strip().lower().removeprefix("0x")
        if len(text) == PUBKEY_BYTES * 2 and all(c in "0123456789abcdef" for c in text):
            return cls.from_hex(text)
        return cls.from_name(value)

    @classmethod
    def new_unique(cls) -> Pubkey:
        """Return a key never returned before by this process."""
        n = next(_unique_counter)
        return cls(hashlib.sha256(f"skillstore:unique:{n}".encode("utf-8")).digest())

    def __bytes__(self) -> bytes:
        return self.raw

    def __str__(self) -> str:
        return self.raw.hex()

    def __repr__(self) -> str:
        return f"Pubkey({self.raw.hex()[:16]}...)"
