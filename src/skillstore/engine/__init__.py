"""Accounting engine: fee arithmetic and marketplace state transitions."""

from skillstore.engine.accounting import AccountingEngine
from skillstore.engine.fees import compute_fee_split

__all__ = ["AccountingEngine", "compute_fee_split"]
