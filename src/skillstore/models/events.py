"""Ledger events: one notification per committed operation.

Each event carries exactly the fields indexers and UIs consume. Events are
produced inside a transaction and only published when it commits, so a
failed operation never emits anything.
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from typing import Any, ClassVar

from skillstore.models.identity import Pubkey


class LedgerEvent:
    """Mixin giving events a stable kind and a JSON-friendly payload."""

    kind: ClassVar[str]

    def payload(self) -> dict[str, Any]:
        result: dict[str, Any] = {}
        for f in fields(self):  # type: ignore[arg-type]
            value = getattr(self, f.name)
            result[f.name] = str(value) if isinstance(value, Pubkey) else value
        return result


@dataclass(frozen=True)
class ConfigInitialized(LedgerEvent):
    kind: ClassVar[str] = "config_initialized"
    admin: Pubkey
    treasury: Pubkey
    fee_basis_points: int


@dataclass(frozen=True)
class TreasuryUpdated(LedgerEvent):
    kind: ClassVar[str] = "treasury_updated"
    old_treasury: Pubkey
    new_treasury: Pubkey


@dataclass(frozen=True)
class FeeUpdated(LedgerEvent):
    kind: ClassVar[str] = "fee_updated"
    old_fee: int
    new_fee: int


@dataclass(frozen=True)
class SkillListed(LedgerEvent):
    kind: ClassVar[str] = "skill_listed"
    creator: Pubkey
    skill_id: str
    price_lamports: int


@dataclass(frozen=True)
class SkillPurchased(LedgerEvent):
    kind: ClassVar[str] = "skill_purchased"
    buyer: Pubkey
    creator: Pubkey
    skill_id: str
    price: int
    fee: int


@dataclass(frozen=True)
class ListingDeactivated(LedgerEvent):
    kind: ClassVar[str] = "listing_deactivated"
    skill_id: str
    creator: Pubkey


ALL_EVENT_TYPES = (
    ConfigInitialized,
    TreasuryUpdated,
    FeeUpdated,
    SkillListed,
    SkillPurchased,
    ListingDeactivated,
)
