"""Accounting engine: the state transitions of the skill marketplace.

Six operations, each one serializable, all-or-nothing ledger transaction:

    initialize          create the singleton Config
    update_treasury     admin-gated treasury change
    update_fee          admin-gated fee rate change
    list_skill          create a Listing owned by the signer
    deactivate_listing  creator-gated, one-way
    purchase_skill      fee split, two transfers, receipt, counters

Every operation stages its effects inside LedgerStore.transaction() and
emits exactly one event. The event is published (appended to the event
log) as the first commit step; staged writes are applied only after
publication succeeds. Any SkillstoreError discards everything.

Records are located by derived address only (see ledger.addressing);
Config is threaded through each operation by its address, never held
as ambient state.
"""

from __future__ import annotations

import base64
import logging
from datetime import datetime, timezone
from typing import Optional, Sequence

from skillstore.engine.fees import (
    checked_add,
    compute_fee_split,
    validate_fee_basis_points,
)
from skillstore.errors import (
    AuthorizationError,
    ErrorCode,
    SkillstoreError,
    StateError,
    ValidationError,
)
from skillstore.ledger.addressing import (
    config_address,
    listing_address,
    receipt_address,
)
from skillstore.ledger.codec import encode_event
from skillstore.ledger.store import CommitHook, LedgerStore
from skillstore.models.events import (
    ConfigInitialized,
    FeeUpdated,
    LedgerEvent,
    ListingDeactivated,
    SkillListed,
    SkillPurchased,
    TreasuryUpdated,
)
from skillstore.models.identity import Pubkey
from skillstore.models.marketplace import (
    I64_MAX,
    I64_MIN,
    MAX_METADATA_URI_LEN,
    MAX_SKILL_ID_LEN,
    U64_MAX,
    Config,
    Listing,
    Receipt,
)
from skillstore.persistence.event_log import EventKind, EventLog

logger = logging.getLogger(__name__)


def event_payload(event: LedgerEvent) -> dict:
    """JSON payload of an event, including its base64 wire encoding."""
    payload = event.payload()
    payload["program_data"] = base64.b64encode(encode_event(event)).decode("ascii")
    return payload


def _unix_seconds(now: datetime) -> int:
    seconds = int(now.timestamp())
    if seconds < I64_MIN or seconds > I64_MAX:
        raise ValueError(f"Timestamp {now.isoformat()} outside i64 range")
    return seconds


class AccountingEngine:
    """Validates and applies marketplace operations against a LedgerStore.

    Usage:
        engine = AccountingEngine(store, program_id, event_log=log)
        engine.initialize(admin, treasury, fee_basis_points=500)
        engine.list_skill(creator, "sk1", 1000, "ipfs://x")
        receipt = engine.purchase_skill(buyer, "sk1", creator, treasury)
    """

    def __init__(
        self,
        store: LedgerStore,
        program_id: Pubkey,
        event_log: Optional[EventLog] = None,
    ) -> None:
        self._store = store
        self._program_id = program_id
        self._event_log = event_log
        self._config_address, self._config_bump = config_address(program_id)

    @property
    def program_id(self) -> Pubkey:
        return self._program_id

    @property
    def config_address(self) -> Pubkey:
        return self._config_address

    def _publisher(self, signer: Pubkey, now: datetime) -> CommitHook:
        def publish(events: Sequence[LedgerEvent]) -> None:
            for event in events:
                if self._event_log is not None:
                    self._event_log.record(
                        EventKind(event.kind), str(signer), event_payload(event), now,
                    )
                logger.debug("Published %s", type(event).__name__)
        return publish

    @staticmethod
    def _now(now: Optional[datetime]) -> datetime:
        return now or datetime.now(timezone.utc)

    # ------------------------------------------------------------------
    # Config lifecycle
    # ------------------------------------------------------------------

    def initialize(
        self,
        admin: Pubkey,
        treasury: Pubkey,
        fee_basis_points: int,
        now: Optional[datetime] = None,
    ) -> Config:
        """Create the singleton Config. The admin is the signing actor."""
        now = self._now(now)
        try:
            validate_fee_basis_points(fee_basis_points)
            address = self._config_address
            with self._store.transaction(
                [address], on_commit=self._publisher(admin, now),
            ) as tx:
                config = Config(
                    admin=admin,
                    treasury=treasury,
                    fee_basis_points=fee_basis_points,
                    bump=self._config_bump,
                )
                tx.create(address, config)
                tx.emit(ConfigInitialized(
                    admin=admin,
                    treasury=treasury,
                    fee_basis_points=fee_basis_points,
                ))
        except SkillstoreError as e:
            logger.warning("initialize rejected: %s", e)
            raise
        logger.info(
            "Initialized config: admin=%s treasury=%s fee_bps=%d",
            admin, treasury, fee_basis_points,
        )
        return config

    def update_treasury(
        self,
        signer: Pubkey,
        new_treasury: Pubkey,
        now: Optional[datetime] = None,
    ) -> TreasuryUpdated:
        now = self._now(now)
        try:
            address = self._config_address
            with self._store.transaction(
                [address], on_commit=self._publisher(signer, now),
            ) as tx:
                config = tx.load(address, Config)
                if signer != config.admin:
                    raise AuthorizationError(ErrorCode.UNAUTHORIZED, str(signer))
                old_treasury = config.treasury
                config.treasury = new_treasury
                tx.update(address, config)
                event = TreasuryUpdated(
                    old_treasury=old_treasury, new_treasury=new_treasury,
                )
                tx.emit(event)
        except SkillstoreError as e:
            logger.warning("update_treasury rejected: %s", e)
            raise
        logger.info("Treasury updated: %s -> %s", old_treasury, new_treasury)
        return event

    def update_fee(
        self,
        signer: Pubkey,
        new_fee_basis_points: int,
        now: Optional[datetime] = None,
    ) -> FeeUpdated:
        now = self._now(now)
        try:
            address = self._config_address
            with self._store.transaction(
                [address], on_commit=self._publisher(signer, now),
            ) as tx:
                config = tx.load(address, Config)
                if signer != config.admin:
                    raise AuthorizationError(ErrorCode.UNAUTHORIZED, str(signer))
                validate_fee_basis_points(new_fee_basis_points)
                old_fee = config.fee_basis_points
                config.fee_basis_points = new_fee_basis_points
                tx.update(address, config)
                event = FeeUpdated(old_fee=old_fee, new_fee=new_fee_basis_points)
                tx.emit(event)
        except SkillstoreError as e:
            logger.warning("update_fee rejected: %s", e)
            raise
        logger.info("Fee updated: %d -> %d bps", old_fee, new_fee_basis_points)
        return event

    # ------------------------------------------------------------------
    # Listing lifecycle
    # ------------------------------------------------------------------

    def list_skill(
        self,
        creator: Pubkey,
        skill_id: str,
        price: int,
        metadata_uri: str,
        now: Optional[datetime] = None,
    ) -> Listing:
        """Publish a skill. Lengths are measured in UTF-8 bytes."""
        now = self._now(now)
        try:
            if len(skill_id.encode("utf-8")) > MAX_SKILL_ID_LEN:
                raise ValidationError(ErrorCode.SKILL_ID_TOO_LONG, skill_id)
            if len(metadata_uri.encode("utf-8")) > MAX_METADATA_URI_LEN:
                raise ValidationError(ErrorCode.METADATA_URI_TOO_LONG)
            if price <= 0 or price > U64_MAX:
                raise ValidationError(ErrorCode.INVALID_PRICE, str(price))

            address, bump = listing_address(self._program_id, skill_id)
            with self._store.transaction(
                [address], on_commit=self._publisher(creator, now),
            ) as tx:
                listing = Listing(
                    creator=creator,
                    skill_id=skill_id,
                    price=price,
                    metadata_uri=metadata_uri,
                    created_at=_unix_seconds(now),
                    bump=bump,
                )
                tx.create(address, listing)
                tx.emit(SkillListed(
                    creator=creator, skill_id=skill_id, price_lamports=price,
                ))
        except SkillstoreError as e:
            logger.warning("list_skill %r rejected: %s", skill_id, e)
            raise
        logger.info("Listed %r by %s at %d", skill_id, creator, price)
        return listing

    def deactivate_listing(
        self,
        creator: Pubkey,
        skill_id: str,
        now: Optional[datetime] = None,
    ) -> Listing:
        """Mark a listing inactive. There is no reactivation."""
        now = self._now(now)
        try:
            address, _ = listing_address(self._program_id, skill_id)
            with self._store.transaction(
                [address], on_commit=self._publisher(creator, now),
            ) as tx:
                listing = tx.load(address, Listing)
                if creator != listing.creator:
                    raise AuthorizationError(ErrorCode.UNAUTHORIZED, str(creator))
                listing.is_active = False
                tx.update(address, listing)
                tx.emit(ListingDeactivated(skill_id=skill_id, creator=creator))
        except SkillstoreError as e:
            logger.warning("deactivate_listing %r rejected: %s", skill_id, e)
            raise
        logger.info("Deactivated %r", skill_id)
        return listing

    # ------------------------------------------------------------------
    # Purchase
    # ------------------------------------------------------------------

    def purchase_skill(
        self,
        buyer: Pubkey,
        skill_id: str,
        creator: Pubkey,
        treasury: Pubkey,
        now: Optional[datetime] = None,
    ) -> Receipt:
        """Buy a listing: split the price, pay out, write the receipt.

        Transfers, receipt creation and counter increments are staged in
        one transaction. Nothing is visible until all of them succeed.
        """
        now = self._now(now)
        try:
            config_addr = self._config_address
            listing_addr, _ = listing_address(self._program_id, skill_id)
            receipt_addr, receipt_bump = receipt_address(
                self._program_id, buyer, skill_id,
            )
            keys = [config_addr, listing_addr, receipt_addr, buyer, creator, treasury]
            with self._store.transaction(
                keys, on_commit=self._publisher(buyer, now),
            ) as tx:
                config = tx.load(config_addr, Config)
                listing = tx.load(listing_addr, Listing)

                if not listing.is_active:
                    raise StateError(ErrorCode.LISTING_NOT_ACTIVE, skill_id)
                if treasury != config.treasury:
                    raise AuthorizationError(ErrorCode.INVALID_TREASURY, str(treasury))
                if creator != listing.creator:
                    raise AuthorizationError(ErrorCode.INVALID_CREATOR, str(creator))

                split = compute_fee_split(listing.price, config.fee_basis_points)

                if split.fee > 0:
                    tx.transfer(buyer, treasury, split.fee)
                tx.transfer(buyer, creator, split.creator_amount)

                receipt = Receipt(
                    buyer=buyer,
                    skill_id=skill_id,
                    creator=creator,
                    price_paid=listing.price,
                    fee_paid=split.fee,
                    purchased_at=_unix_seconds(now),
                    bump=receipt_bump,
                )
                tx.create(receipt_addr, receipt)

                listing.total_sales = checked_add(listing.total_sales, 1)
                config.total_sales = checked_add(config.total_sales, 1)
                config.total_fees_collected = checked_add(
                    config.total_fees_collected, split.fee,
                )
                tx.update(listing_addr, listing)
                tx.update(config_addr, config)

                tx.emit(SkillPurchased(
                    buyer=buyer,
                    creator=creator,
                    skill_id=skill_id,
                    price=listing.price,
                    fee=split.fee,
                ))
        except SkillstoreError as e:
            logger.warning("purchase_skill %r by %s rejected: %s", skill_id, buyer, e)
            raise
        logger.info(
            "Purchased %r by %s: price=%d fee=%d creator_amount=%d",
            skill_id, buyer, split.price, split.fee, split.creator_amount,
        )
        return receipt
