"""Ledger store: address-keyed account records plus native balances.

The store holds two tables:
- accounts: derived address -> fixed-size wire bytes (see ledger.codec)
- balances: identity -> integer amount in the smallest currency unit

All mutation goes through a Transaction. A transaction declares up front
every key it will touch (record addresses and balance owners). Each key
hashes onto one of a fixed pool of lock stripes; the stripes are acquired
in index order, writes are staged privately and applied together on
commit. Any exception inside the
transaction discards every staged effect.

Commit protocol:
1. on_commit(events) runs first (the audit log append). If it raises,
   nothing is applied.
2. Staged account bytes and balances are applied under the table guard.

Usage:
    with store.transaction([config_addr, buyer], on_commit=publish) as tx:
        config = tx.load(config_addr, Config)
        tx.transfer(buyer, treasury, fee)
        tx.update(config_addr, config)
        tx.emit(SkillPurchased(...))
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from typing import Any, Callable, Iterable, Iterator, Optional, Sequence, TypeVar

from skillstore.errors import ArithmeticOverflowError, ErrorCode, StorageError
from skillstore.ledger.codec import Record, decode_account, encode_account
from skillstore.models.events import LedgerEvent
from skillstore.models.identity import Pubkey
from skillstore.models.marketplace import U64_MAX

logger = logging.getLogger(__name__)

R = TypeVar("R")

LOCK_STRIPES = 64

CommitHook = Callable[[Sequence[LedgerEvent]], None]


class Transaction:
    """Staged view of the store, valid only inside LedgerStore.transaction()."""

    def __init__(self, store: LedgerStore, keys: frozenset[Pubkey]) -> None:
        self._store = store
        self._keys = keys
        self._writes: dict[Pubkey, bytes] = {}
        self._balances: dict[Pubkey, int] = {}
        self._events: list[LedgerEvent] = []
        self._closed = False

    def _require(self, key: Pubkey) -> None:
        if self._closed:
            raise RuntimeError("Transaction is closed")
        if key not in self._keys:
            raise RuntimeError(f"Key {key} was not locked by this transaction")

    def _raw(self, address: Pubkey) -> Optional[bytes]:
        if address in self._writes:
            return self._writes[address]
        return self._store._account_bytes(address)

    # ------------------------------------------------------------------
    # Accounts
    # ------------------------------------------------------------------

    def exists(self, address: Pubkey) -> bool:
        self._require(address)
        return self._raw(address) is not None

    def load(self, address: Pubkey, record_type: type[R]) -> R:
        """Decode the record at address. Returns a fresh copy.

        Raises StorageError(ACCOUNT_NOT_FOUND) if the address is empty or
        holds a different record type.
        """
        self._require(address)
        raw = self._raw(address)
        if raw is None:
            raise StorageError(
                ErrorCode.ACCOUNT_NOT_FOUND,
                f"no {record_type.__name__} at {address}",
            )
        record = decode_account(raw)
        if not isinstance(record, record_type):
            raise StorageError(
                ErrorCode.ACCOUNT_NOT_FOUND,
                f"{address} holds {type(record).__name__}, not {record_type.__name__}",
            )
        return record

    def create(self, address: Pubkey, record: Record) -> None:
        """Stage a new record. Fails if the address is occupied."""
        self._require(address)
        if self._raw(address) is not None:
            raise StorageError(ErrorCode.ACCOUNT_ALREADY_IN_USE, str(address))
        self._writes[address] = encode_account(record)
        logger.debug("Staged create %s at %s", type(record).__name__, address)

    def update(self, address: Pubkey, record: Record) -> None:
        """Stage an overwrite of an existing record."""
        self._require(address)
        if self._raw(address) is None:
            raise StorageError(ErrorCode.ACCOUNT_NOT_FOUND, str(address))
        self._writes[address] = encode_account(record)
        logger.debug("Staged update %s at %s", type(record).__name__, address)

    # ------------------------------------------------------------------
    # Balances
    # ------------------------------------------------------------------

    def balance(self, owner: Pubkey) -> int:
        self._require(owner)
        if owner in self._balances:
            return self._balances[owner]
        return self._store._balance(owner)

    def credit(self, owner: Pubkey, amount: int) -> None:
        if amount < 0:
            raise ValueError(f"Credit amount must be non-negative, got {amount}")
        new_balance = self.balance(owner) + amount
        if new_balance > U64_MAX:
            raise ArithmeticOverflowError(f"balance of {owner} exceeds u64")
        self._balances[owner] = new_balance

    def transfer(self, source: Pubkey, destination: Pubkey, amount: int) -> None:
        """Move amount from source to destination. All-or-nothing."""
        if amount < 0:
            raise ValueError(f"Transfer amount must be non-negative, got {amount}")
        available = self.balance(source)
        if available < amount:
            raise StorageError(
                ErrorCode.INSUFFICIENT_FUNDS,
                f"{source} holds {available}, needs {amount}",
            )
        self._require(destination)
        self._balances[source] = available - amount
        self.credit(destination, amount)
        logger.debug("Staged transfer %d from %s to %s", amount, source, destination)

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def emit(self, event: LedgerEvent) -> None:
        if self._closed:
            raise RuntimeError("Transaction is closed")
        self._events.append(event)

    @property
    def events(self) -> list[LedgerEvent]:
        return list(self._events)


class LedgerStore:
    """In-memory ledger with striped key locking and atomic commits."""

    def __init__(self) -> None:
        self._accounts: dict[Pubkey, bytes] = {}
        self._balances: dict[Pubkey, int] = {}
        self._stripes = [threading.Lock() for _ in range(LOCK_STRIPES)]
        self._guard = threading.Lock()

    @staticmethod
    def stripe_index(key: Pubkey) -> int:
        # Keys are sha256 outputs, so the low bytes spread evenly.
        return int.from_bytes(bytes(key)[:8], "little") % LOCK_STRIPES

    def _account_bytes(self, address: Pubkey) -> Optional[bytes]:
        with self._guard:
            return self._accounts.get(address)

    def _balance(self, owner: Pubkey) -> int:
        with self._guard:
            return self._balances.get(owner, 0)

    @contextmanager
    def transaction(
        self,
        keys: Iterable[Pubkey],
        on_commit: Optional[CommitHook] = None,
    ) -> Iterator[Transaction]:
        """Lock the stripes of keys in index order and yield a staging transaction."""
        key_set = frozenset(keys)
        locks = [self._stripes[i] for i in sorted({self.stripe_index(k) for k in key_set})]
        acquired: list[threading.Lock] = []
        try:
            for lock in locks:
                lock.acquire()
                acquired.append(lock)
            logger.debug("Locked %d stripes for %d keys", len(locks), len(key_set))
            tx = Transaction(self, key_set)
            try:
                yield tx
                if on_commit is not None:
                    on_commit(tx.events)
                with self._guard:
                    self._accounts.update(tx._writes)
                    self._balances.update(tx._balances)
            finally:
                tx._closed = True
        finally:
            for lock in reversed(acquired):
                lock.release()

    # ------------------------------------------------------------------
    # Reads outside transactions
    # ------------------------------------------------------------------

    def get(self, address: Pubkey) -> Optional[Record]:
        raw = self._account_bytes(address)
        return None if raw is None else decode_account(raw)

    def get_raw(self, address: Pubkey) -> Optional[bytes]:
        return self._account_bytes(address)

    def balance(self, owner: Pubkey) -> int:
        return self._balance(owner)

    def records(self, record_type: Optional[type] = None) -> list[tuple[Pubkey, Record]]:
        """Consistent point-in-time list of (address, record) pairs."""
        with self._guard:
            items = list(self._accounts.items())
        result = []
        for address, raw in items:
            record = decode_account(raw)
            if record_type is None or isinstance(record, record_type):
                result.append((address, record))
        return result

    def fund(self, owner: Pubkey, amount: int) -> int:
        """Credit a balance out of thin air (development airdrop)."""
        with self.transaction([owner]) as tx:
            tx.credit(owner, amount)
            new_balance = tx.balance(owner)
        logger.info("Funded %s with %d (balance %d)", owner, amount, new_balance)
        return new_balance

    # ------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------

    def snapshot(self) -> dict[str, Any]:
        """JSON-ready copy of both tables: hex keys, hex account bytes."""
        with self._guard:
            return {
                "accounts": {
                    str(address): raw.hex()
                    for address, raw in sorted(self._accounts.items())
                },
                "balances": {
                    str(owner): amount
                    for owner, amount in sorted(self._balances.items())
                },
            }

    @classmethod
    def from_snapshot(cls, data: dict[str, Any]) -> LedgerStore:
        """Rebuild a store, validating every account decodes."""
        store = cls()
        for address, raw_hex in data.get("accounts", {}).items():
            raw = bytes.fromhex(raw_hex)
            decode_account(raw)
            store._accounts[Pubkey.from_hex(address)] = raw
        for owner, amount in data.get("balances", {}).items():
            if not isinstance(amount, int) or not 0 <= amount <= U64_MAX:
                raise ValueError(f"Invalid balance for {owner}: {amount!r}")
            store._balances[Pubkey.from_hex(owner)] = amount
        return store
