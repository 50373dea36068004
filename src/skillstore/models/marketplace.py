"""Marketplace records: platform config, skill listings and purchase receipts.

All amounts are integers in the smallest currency unit (lamports). No
floats in finance, and no Decimal either: the ledger mirrors fixed-width
unsigned integers and every arithmetic step is checked against them.

Invariants carried by these records:
- Config.fee_basis_points is in [0, MAX_FEE_BASIS_POINTS]
- Listing.price > 0 and never changes after creation
- Listing.is_active only ever goes from True to False
- Receipt is write-once (frozen)
"""

from __future__ import annotations

from dataclasses import dataclass

from skillstore.models.identity import Pubkey

# Rate unit: 10000 basis points == 100%
BASIS_POINTS_DENOMINATOR = 10_000
MAX_FEE_BASIS_POINTS = 10_000

# Fixed upper bounds of the wire layout, in UTF-8 bytes
MAX_SKILL_ID_LEN = 32
MAX_METADATA_URI_LEN = 200

U8_MAX = 2**8 - 1
U16_MAX = 2**16 - 1
U64_MAX = 2**64 - 1
U128_MAX = 2**128 - 1
I64_MIN = -(2**63)
I64_MAX = 2**63 - 1


@dataclass
class Config:
    """Singleton platform configuration and running totals.

    Mutated by admin operations (treasury, fee) and by purchases
    (counters only).
    """
    admin: Pubkey
    treasury: Pubkey
    fee_basis_points: int
    total_sales: int = 0
    total_fees_collected: int = 0
    bump: int = 0


@dataclass
class Listing:
    """A published skill. The skill_id is the listing's identity."""
    creator: Pubkey
    skill_id: str
    price: int
    metadata_uri: str
    total_sales: int = 0
    is_active: bool = True
    created_at: int = 0  # unix seconds
    bump: int = 0


@dataclass(frozen=True)
class Receipt:
    """Proof of purchase. Never mutated or deleted once written."""
    buyer: Pubkey
    skill_id: str
    creator: Pubkey
    price_paid: int
    fee_paid: int
    purchased_at: int  # unix seconds
    bump: int = 0


@dataclass(frozen=True)
class FeeSplit:
    """How a purchase price divides between treasury and creator.

    Invariant: fee + creator_amount == price
    """
    price: int
    fee_basis_points: int
    fee: int
    creator_amount: int
