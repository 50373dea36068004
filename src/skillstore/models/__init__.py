"""Core data models for the skill marketplace ledger."""

from skillstore.models.events import (
    ALL_EVENT_TYPES,
    ConfigInitialized,
    FeeUpdated,
    LedgerEvent,
    ListingDeactivated,
    SkillListed,
    SkillPurchased,
    TreasuryUpdated,
)
from skillstore.models.identity import Pubkey
from skillstore.models.marketplace import Config, FeeSplit, Listing, Receipt

__all__ = [
    "ALL_EVENT_TYPES",
    "Config",
    "ConfigInitialized",
    "FeeSplit",
    "FeeUpdated",
    "LedgerEvent",
    "Listing",
    "ListingDeactivated",
    "Pubkey",
    "Receipt",
    "SkillListed",
    "SkillPurchased",
    "TreasuryUpdated",
]
