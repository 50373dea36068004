"""Tests for the ledger store: create-once records, staging and atomic commit."""

import pytest

from skillstore.errors import ArithmeticOverflowError, ErrorCode, StorageError
from skillstore.ledger.store import LOCK_STRIPES, LedgerStore
from skillstore.models.events import FeeUpdated
from skillstore.models.identity import Pubkey
from skillstore.models.marketplace import U64_MAX, Config, Listing

ADDR = Pubkey.from_name("record-address")
ALICE = Pubkey.from_name("alice")
BOB = Pubkey.from_name("bob")


def _config(**overrides) -> Config:
    values = dict(admin=ALICE, treasury=BOB, fee_basis_points=500)
    values.update(overrides)
    return Config(**values)


class TestAccounts:
    def test_create_and_load(self) -> None:
        store = LedgerStore()
        with store.transaction([ADDR]) as tx:
            tx.create(ADDR, _config())
        assert store.get(ADDR) == _config()

    def test_create_twice_fails(self) -> None:
        store = LedgerStore()
        with store.transaction([ADDR]) as tx:
            tx.create(ADDR, _config())
        with pytest.raises(StorageError) as exc:
            with store.transaction([ADDR]) as tx:
                tx.create(ADDR, _config(fee_basis_points=1))
        assert exc.value.code == ErrorCode.ACCOUNT_ALREADY_IN_USE
        assert store.get(ADDR).fee_basis_points == 500

    def test_create_twice_in_one_transaction_fails(self) -> None:
        store = LedgerStore()
        with pytest.raises(StorageError):
            with store.transaction([ADDR]) as tx:
                tx.create(ADDR, _config())
                tx.create(ADDR, _config())
        assert store.get(ADDR) is None

    def test_update_missing_fails(self) -> None:
        store = LedgerStore()
        with pytest.raises(StorageError) as exc:
            with store.transaction([ADDR]) as tx:
                tx.update(ADDR, _config())
        assert exc.value.code == ErrorCode.ACCOUNT_NOT_FOUND

    def test_load_missing_fails(self) -> None:
        store = LedgerStore()
        with pytest.raises(StorageError) as exc:
            with store.transaction([ADDR]) as tx:
                tx.load(ADDR, Config)
        assert exc.value.code == ErrorCode.ACCOUNT_NOT_FOUND

    def test_load_wrong_type_fails(self) -> None:
        store = LedgerStore()
        with store.transaction([ADDR]) as tx:
            tx.create(ADDR, _config())
        with pytest.raises(StorageError):
            with store.transaction([ADDR]) as tx:
                tx.load(ADDR, Listing)

    def test_load_returns_copy(self) -> None:
        store = LedgerStore()
        with store.transaction([ADDR]) as tx:
            tx.create(ADDR, _config())
        with store.transaction([ADDR]) as tx:
            config = tx.load(ADDR, Config)
            config.total_sales = 99
        assert store.get(ADDR).total_sales == 0

    def test_staged_write_visible_inside_transaction(self) -> None:
        store = LedgerStore()
        with store.transaction([ADDR]) as tx:
            tx.create(ADDR, _config())
            assert tx.exists(ADDR)
            assert tx.load(ADDR, Config).fee_basis_points == 500
            assert store.get(ADDR) is None


class TestAtomicity:
    def test_exception_discards_everything(self) -> None:
        store = LedgerStore()
        store.fund(ALICE, 100)
        with pytest.raises(RuntimeError):
            with store.transaction([ADDR, ALICE, BOB]) as tx:
                tx.create(ADDR, _config())
                tx.transfer(ALICE, BOB, 60)
                raise RuntimeError("boom")
        assert store.get(ADDR) is None
        assert store.balance(ALICE) == 100
        assert store.balance(BOB) == 0

    def test_failing_commit_hook_discards_everything(self) -> None:
        store = LedgerStore()

        def _fail(events) -> None:
            raise OSError("disk full")

        with pytest.raises(OSError):
            with store.transaction([ADDR], on_commit=_fail) as tx:
                tx.create(ADDR, _config())
                tx.emit(FeeUpdated(old_fee=0, new_fee=1))
        assert store.get(ADDR) is None

    def test_commit_hook_receives_events(self) -> None:
        store = LedgerStore()
        seen = []
        with store.transaction([ADDR], on_commit=seen.extend) as tx:
            tx.create(ADDR, _config())
            tx.emit(FeeUpdated(old_fee=0, new_fee=1))
        assert seen == [FeeUpdated(old_fee=0, new_fee=1)]

    def test_commit_hook_not_called_on_failure(self) -> None:
        store = LedgerStore()
        seen = []
        with pytest.raises(StorageError):
            with store.transaction([ADDR], on_commit=seen.extend) as tx:
                tx.emit(FeeUpdated(old_fee=0, new_fee=1))
                tx.update(ADDR, _config())
        assert seen == []

    def test_unlocked_key_rejected(self) -> None:
        store = LedgerStore()
        with pytest.raises(RuntimeError):
            with store.transaction([ADDR]) as tx:
                tx.balance(ALICE)

    def test_closed_transaction_rejected(self) -> None:
        store = LedgerStore()
        with store.transaction([ADDR]) as tx:
            pass
        with pytest.raises(RuntimeError):
            tx.exists(ADDR)


class TestBalances:
    def test_transfer(self) -> None:
        store = LedgerStore()
        store.fund(ALICE, 100)
        with store.transaction([ALICE, BOB]) as tx:
            tx.transfer(ALICE, BOB, 30)
        assert store.balance(ALICE) == 70
        assert store.balance(BOB) == 30

    def test_insufficient_funds(self) -> None:
        store = LedgerStore()
        store.fund(ALICE, 10)
        with pytest.raises(StorageError) as exc:
            with store.transaction([ALICE, BOB]) as tx:
                tx.transfer(ALICE, BOB, 11)
        assert exc.value.code == ErrorCode.INSUFFICIENT_FUNDS
        assert store.balance(ALICE) == 10

    def test_self_transfer_is_neutral(self) -> None:
        store = LedgerStore()
        store.fund(ALICE, 10)
        with store.transaction([ALICE]) as tx:
            tx.transfer(ALICE, ALICE, 10)
        assert store.balance(ALICE) == 10

    def test_credit_overflow(self) -> None:
        store = LedgerStore()
        store.fund(ALICE, U64_MAX)
        with pytest.raises(ArithmeticOverflowError):
            store.fund(ALICE, 1)
        assert store.balance(ALICE) == U64_MAX

    def test_negative_transfer_rejected(self) -> None:
        store = LedgerStore()
        with pytest.raises(ValueError):
            with store.transaction([ALICE, BOB]) as tx:
                tx.transfer(ALICE, BOB, -1)


class TestSnapshots:
    def test_snapshot_round_trip(self) -> None:
        store = LedgerStore()
        store.fund(ALICE, 500)
        with store.transaction([ADDR]) as tx:
            tx.create(ADDR, _config())
        restored = LedgerStore.from_snapshot(store.snapshot())
        assert restored.get(ADDR) == _config()
        assert restored.balance(ALICE) == 500

    def test_snapshot_is_hex(self) -> None:
        store = LedgerStore()
        with store.transaction([ADDR]) as tx:
            tx.create(ADDR, _config())
        data = store.snapshot()
        assert data["accounts"][str(ADDR)] == store.get_raw(ADDR).hex()

    def test_corrupt_account_rejected(self) -> None:
        with pytest.raises(ValueError):
            LedgerStore.from_snapshot({"accounts": {str(ADDR): "00" * 91}})

    def test_invalid_balance_rejected(self) -> None:
        with pytest.raises(ValueError):
            LedgerStore.from_snapshot({"balances": {str(ALICE): -5}})

    def test_records_filters_by_type(self) -> None:
        store = LedgerStore()
        with store.transaction([ADDR]) as tx:
            tx.create(ADDR, _config())
        assert store.records(Config) == [(ADDR, _config())]
        assert store.records(Listing) == []


class TestLockStripes:
    def test_stripe_index_in_range_and_stable(self) -> None:
        for n in range(200):
            key = Pubkey.from_name(f"owner-{n}")
            assert 0 <= LedgerStore.stripe_index(key) < LOCK_STRIPES
            assert LedgerStore.stripe_index(key) == LedgerStore.stripe_index(key)

    def test_lock_pool_does_not_grow(self) -> None:
        store = LedgerStore()
        for n in range(500):
            owner = Pubkey.from_name(f"owner-{n}")
            with store.transaction([owner]) as tx:
                tx.credit(owner, 1)
        assert len(store._stripes) == LOCK_STRIPES

    def test_keys_sharing_a_stripe_lock_once(self) -> None:
        by_stripe: dict[int, list[Pubkey]] = {}
        n = 0
        while True:
            key = Pubkey.from_name(f"owner-{n}")
            n += 1
            keys = by_stripe.setdefault(LedgerStore.stripe_index(key), [])
            keys.append(key)
            if len(keys) == 2:
                break
        first, second = keys
        store = LedgerStore()
        store.fund(first, 10)
        with store.transaction([first, second]) as tx:
            tx.transfer(first, second, 4)
        assert store.balance(second) == 4
