"""Tests for the event log: append-only, tamper-evident persistence."""

import json
import threading
from datetime import datetime, timezone

import pytest

from skillstore.persistence.event_log import EventKind, EventLog, EventRecord


def _now() -> datetime:
    return datetime(2026, 2, 16, 12, 0, 0, tzinfo=timezone.utc)


def _payload(n: int = 1) -> dict:
    return {"skill_id": f"sk{n}", "price_lamports": 1000 * n}


class TestEventRecord:
    def test_hash_is_deterministic(self) -> None:
        a = EventRecord.create("EVT-1", EventKind.SKILL_LISTED, "carol", _payload(), _now())
        b = EventRecord.create("EVT-1", EventKind.SKILL_LISTED, "carol", _payload(), _now())
        assert a.event_hash == b.event_hash
        assert a.event_hash.startswith("sha256:")

    def test_hash_covers_payload(self) -> None:
        a = EventRecord.create("EVT-1", EventKind.SKILL_LISTED, "carol", _payload(1), _now())
        b = EventRecord.create("EVT-1", EventKind.SKILL_LISTED, "carol", _payload(2), _now())
        assert a.event_hash != b.event_hash

    def test_timestamp_format(self) -> None:
        record = EventRecord.create("EVT-1", EventKind.FEE_UPDATED, "admin", {}, _now())
        assert record.timestamp_utc == "2026-02-16T12:00:00Z"


class TestEventLog:
    def test_record_assigns_sequential_ids(self) -> None:
        log = EventLog()
        first = log.record(EventKind.SKILL_LISTED, "carol", _payload(1), _now())
        second = log.record(EventKind.SKILL_LISTED, "carol", _payload(2), _now())
        assert first.event_id == "EVT-00000001"
        assert second.event_id == "EVT-00000002"
        assert log.count == 2
        assert log.last_event == second

    def test_duplicate_id_rejected(self) -> None:
        log = EventLog()
        record = EventRecord.create("EVT-1", EventKind.SKILL_LISTED, "carol", _payload())
        log.append(record)
        with pytest.raises(ValueError, match="Duplicate"):
            log.append(record)

    def test_filter_by_kind(self) -> None:
        log = EventLog()
        log.record(EventKind.SKILL_LISTED, "carol", _payload(), _now())
        log.record(EventKind.SKILL_PURCHASED, "bob", _payload(), _now())
        assert [e.event_kind for e in log.events(EventKind.SKILL_PURCHASED)] == [
            EventKind.SKILL_PURCHASED
        ]
        assert len(log.event_hashes()) == 2

    def test_concurrent_records_get_unique_ids(self) -> None:
        log = EventLog()

        def _worker(n: int) -> None:
            for i in range(25):
                log.record(EventKind.SKILL_PURCHASED, f"buyer-{n}", {"i": i}, _now())

        threads = [threading.Thread(target=_worker, args=(n,)) for n in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        ids = [e.event_id for e in log.events()]
        assert len(ids) == 200
        assert len(set(ids)) == 200


class TestEventLogPersistence:
    def test_reload_from_file(self, tmp_path) -> None:
        path = tmp_path / "events.jsonl"
        log = EventLog(storage_path=path)
        log.record(EventKind.CONFIG_INITIALIZED, "admin", {"fee_basis_points": 500}, _now())
        log.record(EventKind.SKILL_LISTED, "carol", _payload(), _now())

        reloaded = EventLog(storage_path=path)
        assert reloaded.count == 2
        assert reloaded.event_hashes() == log.event_hashes()

    def test_ids_continue_after_reload(self, tmp_path) -> None:
        path = tmp_path / "events.jsonl"
        EventLog(storage_path=path).record(EventKind.SKILL_LISTED, "carol", _payload(), _now())
        reloaded = EventLog(storage_path=path)
        record = reloaded.record(EventKind.SKILL_LISTED, "carol", _payload(2), _now())
        assert record.event_id == "EVT-00000002"

    def test_tampered_record_rejected(self, tmp_path) -> None:
        path = tmp_path / "events.jsonl"
        log = EventLog(storage_path=path)
        log.record(EventKind.SKILL_PURCHASED, "bob", {"price": 1000, "fee": 50}, _now())

        data = json.loads(path.read_text(encoding="utf-8"))
        data["payload"]["fee"] = 0
        path.write_text(json.dumps(data) + "\n", encoding="utf-8")

        with pytest.raises(ValueError, match="Integrity check failed"):
            EventLog(storage_path=path)

    def test_duplicate_on_recovery_rejected(self, tmp_path) -> None:
        path = tmp_path / "events.jsonl"
        log = EventLog(storage_path=path)
        log.record(EventKind.SKILL_LISTED, "carol", _payload(), _now())
        line = path.read_text(encoding="utf-8")
        path.write_text(line + line, encoding="utf-8")

        with pytest.raises(ValueError, match="Duplicate event ID on recovery"):
            EventLog(storage_path=path)

    def test_failed_write_leaves_memory_unchanged(self, tmp_path) -> None:
        path = tmp_path / "events.jsonl"
        log = EventLog(storage_path=path)
        # A directory in place of the log file makes the append fail
        path.mkdir()
        with pytest.raises(OSError):
            log.record(EventKind.SKILL_LISTED, "carol", _payload(), _now())
        assert log.count == 0

    def test_reload_picks_up_other_writer(self, tmp_path) -> None:
        path = tmp_path / "events.jsonl"
        first = EventLog(storage_path=path)
        second = EventLog(storage_path=path)
        first.record(EventKind.SKILL_LISTED, "carol", _payload(1), _now())

        second.reload()
        record = second.record(EventKind.SKILL_LISTED, "erin", _payload(2), _now())
        assert record.event_id == "EVT-00000002"
        assert EventLog(storage_path=path).count == 2

    def test_failed_reload_keeps_memory(self, tmp_path) -> None:
        path = tmp_path / "events.jsonl"
        log = EventLog(storage_path=path)
        log.record(EventKind.SKILL_LISTED, "carol", _payload(), _now())
        path.write_text("{not json\n", encoding="utf-8")
        with pytest.raises(ValueError):
            log.reload()
        assert log.count == 1
