"""Fee arithmetic: checked integer operations and the purchase split.

The split is fully deterministic:

    fee = floor(price * fee_basis_points / 10000)
    creator_amount = price - fee

The product is formed in a 128-bit-wide intermediate, so any u64 price
times any valid rate fits. Every step is checked; nothing wraps.

Invariants:
- fee + creator_amount == price
- 0 <= fee <= price when fee_basis_points <= 10000
"""

from __future__ import annotations

from skillstore.errors import ArithmeticOverflowError, ErrorCode, ValidationError
from skillstore.models.marketplace import (
    BASIS_POINTS_DENOMINATOR,
    MAX_FEE_BASIS_POINTS,
    U64_MAX,
    U128_MAX,
    FeeSplit,
)


def checked_add(a: int, b: int, bound: int = U64_MAX) -> int:
    result = a + b
    if result < 0 or result > bound:
        raise ArithmeticOverflowError(f"{a} + {b}")
    return result


def checked_sub(a: int, b: int) -> int:
    result = a - b
    if result < 0:
        raise ArithmeticOverflowError(f"{a} - {b}")
    return result


def checked_mul(a: int, b: int, bound: int = U64_MAX) -> int:
    result = a * b
    if result < 0 or result > bound:
        raise ArithmeticOverflowError(f"{a} * {b}")
    return result


def validate_fee_basis_points(fee_basis_points: int) -> None:
    if fee_basis_points < 0 or fee_basis_points > MAX_FEE_BASIS_POINTS:
        raise ValidationError(ErrorCode.INVALID_FEE, str(fee_basis_points))


def compute_fee_split(price: int, fee_basis_points: int) -> FeeSplit:
    """Split a price between the treasury (fee) and the creator."""
    if price < 0 or price > U64_MAX:
        raise ArithmeticOverflowError(f"price {price} outside u64")
    wide = checked_mul(price, fee_basis_points, bound=U128_MAX)
    fee = wide // BASIS_POINTS_DENOMINATOR
    if fee > U64_MAX:
        raise ArithmeticOverflowError(f"fee {fee} exceeds u64")
    creator_amount = checked_sub(price, fee)
    return FeeSplit(
        price=price,
        fee_basis_points=fee_basis_points,
        fee=fee,
        creator_amount=creator_amount,
    )
