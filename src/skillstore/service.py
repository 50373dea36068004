"""Skillstore service: unified facade over the accounting engine.

This is the primary interface for programmatic access. It orchestrates:
- Marketplace operations (initialize, admin updates, listings, purchases)
- Development funding (airdrops into balances)
- Persistence (event log appended at commit, state snapshot after commit)
- Read queries (records, ownership, purchase history, stats, catalogs)

Every mutating operation returns a ServiceResult. Engine failures carry
their stable error code in data["error_code"]. Audit events are never
dropped: if the event log append fails, the operation fails with no
effect. If the state snapshot fails afterwards, the operation still
succeeds (the audit trail is durable) and the service is flagged as
persistence-degraded.

With a StateStore, mutations hold the data-directory lock and start from
a fresh reload, so several processes can share one data directory.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field, fields
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Callable, Iterator, Optional

from skillstore.crypto.anchor import event_log_root
from skillstore.crypto.merkle import MerkleTree
from skillstore.engine.accounting import AccountingEngine
from skillstore.engine.fees import compute_fee_split
from skillstore.errors import SkillstoreError
from skillstore.ledger.addressing import listing_address, receipt_address
from skillstore.ledger.store import LedgerStore
from skillstore.models.identity import Pubkey
from skillstore.models.marketplace import MAX_SKILL_ID_LEN, Config, Listing, Receipt
from skillstore.persistence.event_log import EventKind, EventLog
from skillstore.persistence.state_store import StateStore
from skillstore.settings import MarketplaceSettings

logger = logging.getLogger(__name__)

LAMPORTS_PER_SOL = 1_000_000_000


@dataclass(frozen=True)
class ServiceResult:
    """Result of a service operation."""
    success: bool
    errors: list[str] = field(default_factory=list)
    data: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class CatalogInfo:
    """Header fields of the published skill directory."""
    name: str = "Skillstore"
    version: str = "1.0.0"
    description: str = ""


def record_to_dict(record: Any) -> dict[str, Any]:
    """Flatten a record dataclass into JSON-friendly values."""
    return {
        f.name: str(getattr(record, f.name))
        if isinstance(getattr(record, f.name), Pubkey)
        else getattr(record, f.name)
        for f in fields(record)
    }


def lamports_to_sol(lamports: int) -> str:
    return format(Decimal(lamports).scaleb(-9).normalize(), "f")


def _iso(seconds: int) -> str:
    return datetime.fromtimestamp(seconds, tz=timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def _skill_id_fits(skill_id: str) -> bool:
    return len(skill_id.encode("utf-8")) <= MAX_SKILL_ID_LEN


class SkillstoreService:
    """Marketplace facade.

    Usage:
        service = SkillstoreService(program_id)
        service.fund(buyer, 10_000)
        service.initialize(admin, treasury, 500)
        service.list_skill(creator, "sk1", 1000, "ipfs://x")
        result = service.purchase_skill(buyer, "sk1", creator, treasury)

    Persistence (optional):
        service = SkillstoreService(
            program_id, event_log=log, state_store=StateStore(path),
        )
        # State is loaded on construction. Each mutation takes the
        # data-directory lock, reloads state.json and events.jsonl,
        # applies the operation and rewrites the snapshot.
    """

    def __init__(
        self,
        program_id: Pubkey,
        event_log: Optional[EventLog] = None,
        state_store: Optional[StateStore] = None,
        catalog: Optional[CatalogInfo] = None,
    ) -> None:
        self._program_id = program_id
        self._event_log = event_log
        self._state_store = state_store
        self._catalog = catalog or CatalogInfo()
        self._store = LedgerStore()
        self._engine = AccountingEngine(self._store, program_id, event_log=event_log)

        # Set when a snapshot write fails after the audit event was
        # committed. In-memory state stays correct; state.json is stale
        # until the next mutation rewrites it.
        self._persistence_degraded: bool = False

        if state_store is not None:
            with state_store.lock():
                if event_log is not None:
                    event_log.reload()
                self._adopt_snapshot()

    @classmethod
    def from_settings(cls, settings: MarketplaceSettings) -> SkillstoreService:
        """Create a service with durable persistence under settings.data_dir."""
        settings.data_dir.mkdir(parents=True, exist_ok=True)
        return cls(
            settings.program_id,
            event_log=EventLog(storage_path=settings.data_dir / "events.jsonl"),
            state_store=StateStore(settings.data_dir / "state.json"),
            catalog=CatalogInfo(
                name=settings.catalog_name,
                version=settings.catalog_version,
                description=settings.catalog_description,
            ),
        )

    @property
    def program_id(self) -> Pubkey:
        return self._program_id

    @property
    def engine(self) -> AccountingEngine:
        return self._engine

    @property
    def persistence_degraded(self) -> bool:
        return self._persistence_degraded

    # ------------------------------------------------------------------
    # Config lifecycle
    # ------------------------------------------------------------------

    def initialize(
        self,
        admin: Pubkey,
        treasury: Pubkey,
        fee_basis_points: int,
        now: Optional[datetime] = None,
    ) -> ServiceResult:
        """Create the platform configuration."""
        return self._run(
            lambda: record_to_dict(
                self._engine.initialize(admin, treasury, fee_basis_points, now)
            )
        )

    def update_treasury(
        self,
        signer: Pubkey,
        new_treasury: Pubkey,
        now: Optional[datetime] = None,
    ) -> ServiceResult:
        return self._run(
            lambda: self._engine.update_treasury(signer, new_treasury, now).payload()
        )

    def update_fee(
        self,
        signer: Pubkey,
        new_fee_basis_points: int,
        now: Optional[datetime] = None,
    ) -> ServiceResult:
        return self._run(
            lambda: self._engine.update_fee(signer, new_fee_basis_points, now).payload()
        )

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
    ) -> ServiceResult:
        return self._run(
            lambda: record_to_dict(
                self._engine.list_skill(creator, skill_id, price, metadata_uri, now)
            )
        )

    def deactivate_listing(
        self,
        creator: Pubkey,
        skill_id: str,
        now: Optional[datetime] = None,
    ) -> ServiceResult:
        return self._run(
            lambda: record_to_dict(
                self._engine.deactivate_listing(creator, skill_id, now)
            )
        )

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
    ) -> ServiceResult:
        """Purchase a listing. data holds the receipt plus creator_amount."""
        def _purchase() -> dict[str, Any]:
            receipt = self._engine.purchase_skill(buyer, skill_id, creator, treasury, now)
            data = record_to_dict(receipt)
            data["creator_amount"] = receipt.price_paid - receipt.fee_paid
            return data
        return self._run(_purchase)

    # ------------------------------------------------------------------
    # Balances
    # ------------------------------------------------------------------

    def fund(self, owner: Pubkey, amount: int) -> ServiceResult:
        """Credit a balance (development airdrop). Not an audited event."""
        if amount <= 0:
            return ServiceResult(success=False, errors=["Amount must be positive"])
        return self._run(
            lambda: {"owner": str(owner), "balance": self._store.fund(owner, amount)}
        )

    def balance(self, owner: Pubkey) -> int:
        return self._store.balance(owner)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_config(self) -> Optional[Config]:
        record = self._store.get(self._engine.config_address)
        return record if isinstance(record, Config) else None

    def get_listing(self, skill_id: str) -> Optional[Listing]:
        if not _skill_id_fits(skill_id):
            return None
        address, _ = listing_address(self._program_id, skill_id)
        record = self._store.get(address)
        return record if isinstance(record, Listing) else None

    def get_receipt(self, buyer: Pubkey, skill_id: str) -> Optional[Receipt]:
        if not _skill_id_fits(skill_id):
            return None
        address, _ = receipt_address(self._program_id, buyer, skill_id)
        record = self._store.get(address)
        return record if isinstance(record, Receipt) else None

    def check_ownership(self, buyer: Pubkey, skill_id: str) -> bool:
        """True if buyer holds a receipt for skill_id."""
        return self.get_receipt(buyer, skill_id) is not None

    def purchases_for(self, buyer: Pubkey) -> list[Receipt]:
        """All receipts held by a wallet, newest first."""
        receipts = [
            r for _, r in self._store.records(Receipt) if r.buyer == buyer
        ]
        return sorted(receipts, key=lambda r: (-r.purchased_at, r.skill_id))

    def listings(self, active_only: bool = False) -> list[Listing]:
        """Catalog of listings, newest first."""
        result = [
            listing for _, listing in self._store.records(Listing)
            if listing.is_active or not active_only
        ]
        return sorted(result, key=lambda l: (-l.created_at, l.skill_id))

    def stats(self) -> dict[str, Any]:
        """Aggregate marketplace statistics."""
        listings = self.listings()
        config = self.get_config()
        return {
            "total_skills": len(listings),
            "active_skills": sum(1 for l in listings if l.is_active),
            "total_creators": len({l.creator for l in listings}),
            "total_sales": config.total_sales if config else 0,
            "total_fees_collected": config.total_fees_collected if config else 0,
        }

    def catalog_json(self, now: Optional[datetime] = None) -> dict[str, Any]:
        """Agent-friendly directory of active skills."""
        now = now or datetime.now(timezone.utc)
        config = self.get_config()
        skills = []
        for listing in self.listings(active_only=True):
            entry: dict[str, Any] = {
                "skill_id": listing.skill_id,
                "creator": str(listing.creator),
                "price_lamports": listing.price,
                "price_sol": lamports_to_sol(listing.price),
                "metadata_uri": listing.metadata_uri,
                "total_sales": listing.total_sales,
                "created_at": _iso(listing.created_at),
            }
            if config is not None:
                entry["fee_lamports"] = compute_fee_split(
                    listing.price, config.fee_basis_points,
                ).fee
            skills.append(entry)
        return {
            "name": self._catalog.name,
            "version": self._catalog.version,
            "description": self._catalog.description,
            "program_id": str(self._program_id),
            "updated": now.strftime("%Y-%m-%dT%H:%M:%SZ"),
            "skills": skills,
        }

    def catalog_markdown(self, now: Optional[datetime] = None) -> str:
        """The same directory rendered as Markdown."""
        catalog = self.catalog_json(now)
        lines = [
            f"# {catalog['name']} - Skill Directory",
            "",
            f"Updated: {catalog['updated']}",
            "",
            "## Available Skills",
            "",
        ]
        if not catalog["skills"]:
            lines.extend(["_No skills listed._", ""])
        for skill in catalog["skills"]:
            lines.extend([
                f"### {skill['skill_id']}",
                f"- **Creator:** `{skill['creator']}`",
                f"- **Price:** {skill['price_sol']} SOL ({skill['price_lamports']} lamports)",
                f"- **Metadata:** {skill['metadata_uri']}",
                f"- **Sales:** {skill['total_sales']}",
                f"- **Listed:** {skill['created_at']}",
                "",
            ])
        return "\n".join(lines)

    def merkle_root(self) -> str:
        """Merkle root over the event log (empty root if no log is wired)."""
        if self._event_log is None:
            return MerkleTree().compute_root()
        return event_log_root(self._event_log)

    def status(self) -> dict[str, Any]:
        config = self.get_config()
        return {
            "program_id": str(self._program_id),
            "config_address": str(self._engine.config_address),
            "initialized": config is not None,
            "config": record_to_dict(config) if config else None,
            "stats": self.stats(),
            "receipts": len(self._store.records(Receipt)),
            "events": self._event_log.count if self._event_log is not None else 0,
            "merkle_root": self.merkle_root(),
            "persistence_degraded": self._persistence_degraded,
        }

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _run(self, operation: Callable[[], dict[str, Any]]) -> ServiceResult:
        """Execute an engine operation and translate its outcome.

        Engine errors are expected outcomes and carry an error code.
        A storage failure (OSError while syncing or publishing) aborts the
        operation before anything is applied.
        """
        try:
            with self._exclusive():
                data = operation()
                warning = self._safe_persist_post_audit()
        except SkillstoreError as e:
            return ServiceResult(
                success=False, errors=[str(e)], data={"error_code": e.code.value},
            )
        except OSError as e:
            logger.error("Operation aborted: %s", e)
            return ServiceResult(success=False, errors=[f"Storage failure: {e}"])
        except ValueError as e:
            return ServiceResult(success=False, errors=[str(e)])

        if warning:
            data["warning"] = warning
        return ServiceResult(success=True, data=data)

    @contextmanager
    def _exclusive(self) -> Iterator[None]:
        """Hold the data-directory lock with memory synced from disk."""
        if self._state_store is None:
            yield
            return
        with self._state_store.lock():
            self._sync()
            yield

    def _sync(self) -> None:
        """Bring memory up to date with the data directory. Lock held."""
        known = self._event_count()
        if self._event_log is not None:
            self._event_log.reload()
        if not self._persistence_degraded:
            self._adopt_snapshot()
            return
        # Memory holds commits the snapshot lacks. Nobody else can have
        # committed since: their snapshot check would have failed.
        if self._event_count() != known:
            raise ValueError(
                "Event log changed while local state was unsaved; restart required"
            )
        self._state_store.save(self._store, self._program_id, known)
        self._persistence_degraded = False
        logger.info("Snapshot rewritten, persistence recovered")

    def _adopt_snapshot(self) -> None:
        """Load state.json, check it against the event log, swap it in."""
        store, covered = self._state_store.load(self._program_id)
        if self._event_log is not None:
            if covered != self._event_log.count:
                raise ValueError(
                    f"State snapshot covers {covered} events but the event log "
                    f"holds {self._event_log.count}; state.json is out of date"
                )
            config = store.get(self._engine.config_address)
            total_sales = config.total_sales if isinstance(config, Config) else 0
            purchases = len(self._event_log.events(EventKind.SKILL_PURCHASED))
            if purchases != total_sales:
                raise ValueError(
                    f"Snapshot records {total_sales} sales but the event log "
                    f"holds {purchases} purchases"
                )
        self._store = store
        self._engine = AccountingEngine(store, self._program_id, event_log=self._event_log)

    def _event_count(self) -> int:
        return self._event_log.count if self._event_log is not None else 0

    def _persist_state(self) -> None:
        if self._state_store is None:
            return
        self._state_store.save(self._store, self._program_id, self._event_count())

    def _safe_persist_post_audit(self) -> Optional[str]:
        """Persist state after audit events have been committed.

        MUST NOT roll back: the audit trail is already durable. On failure
        sets the degraded flag and returns a warning string.
        """
        try:
            self._persist_state()
            return None
        except OSError as e:
            self._persistence_degraded = True
            logger.error("State snapshot failed: %s", e)
            return (
                f"Persistence degraded: {e} (state committed in audit trail "
                "but state snapshot is stale)"
            )
