"""Derived addresses: where each record lives in the ledger store.

Records are never found through stored pointers. Their address is a pure
function of a namespace tag plus identifying fields, so any client that
knows the program id can locate a record independently:

    Config   -> [b"config"]
    Listing  -> [b"listing", skill_id]
    Receipt  -> [b"receipt", buyer, skill_id]

Derivation follows the program-derived-address scheme:

    sha256(seed_1 || ... || seed_n || bump || program_id || "ProgramDerivedAddress")

searching bump from 255 down to 0 and taking the first digest that is NOT
a valid ed25519 point (so no private key can ever sign for it).
"""

from __future__ import annotations

import hashlib
from typing import Sequence

from skillstore.errors import ErrorCode, StorageError
from skillstore.models.identity import Pubkey

PDA_MARKER = b"ProgramDerivedAddress"
MAX_SEED_LEN = 32
MAX_SEEDS = 16

CONFIG_SEED = b"config"
LISTING_SEED = b"listing"
RECEIPT_SEED = b"receipt"

# Edwards25519 field prime and curve constant d = -121665/121666
_P = 2**255 - 19
_D = (-121665 * pow(121666, _P - 2, _P)) % _P


def is_on_curve(data: bytes) -> bool:
    """Return True if 32 bytes decompress to a point on edwards25519.

    The encoded y coordinate is on the curve iff
    x^2 = (y^2 - 1) / (d*y^2 + 1) has a square root mod p.
    """
    if len(data) != 32:
        raise ValueError("Curve point encoding must be 32 bytes")
    y = (int.from_bytes(data, "little") & ((1 << 255) - 1)) % _P
    y2 = y * y % _P
    u = (y2 - 1) % _P
    v = (_D * y2 + 1) % _P
    x2 = u * pow(v, _P - 2, _P) % _P
    return x2 == 0 or pow(x2, (_P - 1) // 2, _P) == 1


def _check_seeds(seeds: Sequence[bytes]) -> None:
    if len(seeds) > MAX_SEEDS:
        raise StorageError(
            ErrorCode.INVALID_SEEDS, f"{len(seeds)} seeds, max {MAX_SEEDS}",
        )
    for seed in seeds:
        if len(seed) > MAX_SEED_LEN:
            raise StorageError(
                ErrorCode.INVALID_SEEDS,
                f"seed of {len(seed)} bytes exceeds {MAX_SEED_LEN}",
            )


def _digest(seeds: Sequence[bytes], bump: int, program_id: Pubkey) -> bytes:
    hasher = hashlib.sha256()
    for seed in seeds:
        hasher.update(seed)
    hasher.update(bytes([bump]))
    hasher.update(bytes(program_id))
    hasher.update(PDA_MARKER)
    return hasher.digest()


def create_program_address(
    seeds: Sequence[bytes], bump: int, program_id: Pubkey,
) -> Pubkey:
    """Hash seeds plus an explicit bump. Fails if the result is on the curve."""
    _check_seeds(seeds)
    if not 0 <= bump <= 255:
        raise StorageError(ErrorCode.INVALID_SEEDS, f"bump {bump} out of range")
    digest = _digest(seeds, bump, program_id)
    if is_on_curve(digest):
        raise StorageError(ErrorCode.INVALID_SEEDS, "derived address is on curve")
    return Pubkey(digest)


def find_program_address(
    seeds: Sequence[bytes], program_id: Pubkey,
) -> tuple[Pubkey, int]:
    """Return (address, bump) for the highest bump that yields a valid address."""
    _check_seeds(seeds)
    for bump in range(255, -1, -1):
        digest = _digest(seeds, bump, program_id)
        if not is_on_curve(digest):
            return Pubkey(digest), bump
    raise StorageError(ErrorCode.INVALID_SEEDS, "no viable bump seed")


def config_address(program_id: Pubkey) -> tuple[Pubkey, int]:
    return find_program_address([CONFIG_SEED], program_id)


def listing_address(program_id: Pubkey, skill_id: str) -> tuple[Pubkey, int]:
    return find_program_address([LISTING_SEED, skill_id.encode("utf-8")], program_id)


def receipt_address(
    program_id: Pubkey, buyer: Pubkey, skill_id: str,
) -> tuple[Pubkey, int]:
    return find_program_address(
        [RECEIPT_SEED, bytes(buyer), skill_id.encode("utf-8")], program_id,
    )
