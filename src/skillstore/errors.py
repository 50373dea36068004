"""Error taxonomy for ledger operations.

Every failure is synchronous and fail-closed: the operation that raised has
no effect. Each exception carries a stable ErrorCode so callers (the service
facade, the CLI, API clients) can branch on the code rather than the text.

Categories:
- ValidationError: malformed or out-of-range input.
- StateError: operation not valid given current record state.
- AuthorizationError: signer or referenced identity does not match.
- ArithmeticOverflowError: a checked integer operation left its range.
- StorageError: raised by the ledger store (occupied address, missing
  record, insufficient balance, bad seeds) and propagated unchanged.
"""

from __future__ import annotations

import enum
from typing import ClassVar, Optional


class ErrorCode(str, enum.Enum):
    INVALID_FEE = "InvalidFee"
    SKILL_ID_TOO_LONG = "SkillIdTooLong"
    METADATA_URI_TOO_LONG = "MetadataUriTooLong"
    INVALID_PRICE = "InvalidPrice"
    LISTING_NOT_ACTIVE = "ListingNotActive"
    UNAUTHORIZED = "Unauthorized"
    INVALID_TREASURY = "InvalidTreasury"
    INVALID_CREATOR = "InvalidCreator"
    ARITHMETIC_OVERFLOW = "ArithmeticOverflow"
    ACCOUNT_ALREADY_IN_USE = "AccountAlreadyInUse"
    ACCOUNT_NOT_FOUND = "AccountNotFound"
    INSUFFICIENT_FUNDS = "InsufficientFunds"
    INVALID_SEEDS = "InvalidSeeds"


_MESSAGES: dict[ErrorCode, str] = {
    ErrorCode.INVALID_FEE: "Fee basis points must be <= 10000",
    ErrorCode.SKILL_ID_TOO_LONG: "Skill ID must be <= 32 characters",
    ErrorCode.METADATA_URI_TOO_LONG: "Metadata URI must be <= 200 characters",
    ErrorCode.INVALID_PRICE: "Price must be greater than 0",
    ErrorCode.LISTING_NOT_ACTIVE: "Listing is not active",
    ErrorCode.UNAUTHORIZED: "Unauthorized",
    ErrorCode.INVALID_TREASURY: "Invalid treasury account",
    ErrorCode.INVALID_CREATOR: "Invalid creator account",
    ErrorCode.ARITHMETIC_OVERFLOW: "Arithmetic overflow",
    ErrorCode.ACCOUNT_ALREADY_IN_USE: "Account already in use",
    ErrorCode.ACCOUNT_NOT_FOUND: "Account not found",
    ErrorCode.INSUFFICIENT_FUNDS: "Insufficient funds",
    ErrorCode.INVALID_SEEDS: "Invalid seeds for address derivation",
}


class SkillstoreError(Exception):
    """Base class for all ledger operation failures."""

    codes: ClassVar[frozenset[ErrorCode]] = frozenset(ErrorCode)

    def __init__(self, code: ErrorCode, detail: Optional[str] = None) -> None:
        if code not in self.codes:
            raise TypeError(
                f"{type(self).__name__} cannot carry error code {code.value}"
            )
        self.code = code
        self.detail = detail
        message = f"{code.value}: {_MESSAGES[code]}"
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)


class ValidationError(SkillstoreError):
    codes = frozenset({
        ErrorCode.INVALID_FEE,
        ErrorCode.SKILL_ID_TOO_LONG,
        ErrorCode.METADATA_URI_TOO_LONG,
        ErrorCode.INVALID_PRICE,
    })


class StateError(SkillstoreError):
    codes = frozenset({ErrorCode.LISTING_NOT_ACTIVE})


class AuthorizationError(SkillstoreError):
    codes = frozenset({
        ErrorCode.UNAUTHORIZED,
        ErrorCode.INVALID_TREASURY,
        ErrorCode.INVALID_CREATOR,
    })


class ArithmeticOverflowError(SkillstoreError):
    codes = frozenset({ErrorCode.ARITHMETIC_OVERFLOW})

    def __init__(self, detail: Optional[str] = None) -> None:
        super().__init__(ErrorCode.ARITHMETIC_OVERFLOW, detail)


class StorageError(SkillstoreError):
    codes = frozenset({
        ErrorCode.ACCOUNT_ALREADY_IN_USE,
        ErrorCode.ACCOUNT_NOT_FOUND,
        ErrorCode.INSUFFICIENT_FUNDS,
        ErrorCode.INVALID_SEEDS,
    })
