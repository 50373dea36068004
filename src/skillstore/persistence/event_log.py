"""Append-only event log: the audit trail of every committed ledger operation.

Each committed operation produces exactly one event record, appended at
commit time before any staged write is applied. Records are immutable once
written. The log serves as:
1. The input to Merkle root computation for external anchoring.
2. The audit trail for third-party verification (each record carries the
   event's wire encoding, so indexers can decode it independently).
3. The history behind read queries such as purchases per wallet.

Fail-closed: if the append fails, the operation fails with no effect.
"""

from __future__ import annotations

import enum
import hashlib
import json
import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

logger = logging.getLogger(__name__)


class EventKind(str, enum.Enum):
    """Classification of ledger events."""
    CONFIG_INITIALIZED = "config_initialized"
    TREASURY_UPDATED = "treasury_updated"
    FEE_UPDATED = "fee_updated"
    SKILL_LISTED = "skill_listed"
    SKILL_PURCHASED = "skill_purchased"
    LISTING_DEACTIVATED = "listing_deactivated"


def _canonical_hash(
    event_id: str,
    event_kind: str,
    timestamp_utc: str,
    actor_id: str,
    payload: dict[str, Any],
) -> str:
    canonical = json.dumps(
        {
            "event_id": event_id,
            "event_kind": event_kind,
            "timestamp_utc": timestamp_utc,
            "actor_id": actor_id,
            "payload": payload,
        },
        sort_keys=True,
        ensure_ascii=False,
    ).encode("utf-8")
    return f"sha256:{hashlib.sha256(canonical).hexdigest()}"


@dataclass(frozen=True)
class EventRecord:
    """A single immutable event in the ledger log.

    The event_hash is computed at creation time and serves as the leaf
    hash for Merkle tree inclusion.
    """
    event_id: str
    event_kind: EventKind
    timestamp_utc: str
    actor_id: str
    payload: dict[str, Any]
    event_hash: str  # SHA-256 of canonical JSON

    @staticmethod
    def create(
        event_id: str,
        event_kind: EventKind,
        actor_id: str,
        payload: dict[str, Any],
        timestamp_utc: Optional[datetime] = None,
    ) -> EventRecord:
        """Create a new event record with computed hash."""
        ts = timestamp_utc or datetime.now(timezone.utc)
        ts_str = ts.strftime("%Y-%m-%dT%H:%M:%SZ")
        return EventRecord(
            event_id=event_id,
            event_kind=event_kind,
            timestamp_utc=ts_str,
            actor_id=actor_id,
            payload=payload,
            event_hash=_canonical_hash(
                event_id, event_kind.value, ts_str, actor_id, payload,
            ),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "event_id": self.event_id,
            "event_kind": self.event_kind.value,
            "timestamp_utc": self.timestamp_utc,
            "actor_id": self.actor_id,
            "payload": self.payload,
            "event_hash": self.event_hash,
        }


class EventLog:
    """Append-only event log with optional JSONL file persistence.

    Events can only be appended, never modified or deleted. Appends are
    serialized by an internal lock, so concurrent operations each get a
    unique, monotonically increasing event id.
    """

    def __init__(self, storage_path: Optional[Path] = None) -> None:
        self._events: list[EventRecord] = []
        self._storage_path = storage_path
        self._event_ids: set[str] = set()
        self._lock = threading.Lock()

        if storage_path and storage_path.exists():
            self._events, self._event_ids = self._read_file(storage_path)

    def append(self, event: EventRecord) -> None:
        """Append an event to the log.

        Raises ValueError if event_id is a duplicate (replay protection).
        The file write happens first, so a failed write leaves the
        in-memory log unchanged.
        """
        with self._lock:
            self._append_locked(event)

    def record(
        self,
        event_kind: EventKind,
        actor_id: str,
        payload: dict[str, Any],
        timestamp_utc: Optional[datetime] = None,
    ) -> EventRecord:
        """Assign the next event id, then create and append the record."""
        with self._lock:
            event = EventRecord.create(
                event_id=f"EVT-{len(self._events) + 1:08d}",
                event_kind=event_kind,
                actor_id=actor_id,
                payload=payload,
                timestamp_utc=timestamp_utc,
            )
            self._append_locked(event)
        logger.debug("Recorded %s as %s", event.event_kind.value, event.event_id)
        return event

    def _append_locked(self, event: EventRecord) -> None:
        if event.event_id in self._event_ids:
            raise ValueError(f"Duplicate event ID: {event.event_id}")
        if self._storage_path:
            self._append_to_file(event)
        self._events.append(event)
        self._event_ids.add(event.event_id)

    def reload(self) -> None:
        """Re-read the backing file, picking up appends made by other processes.

        Fail-closed like the initial load; on error the in-memory log is
        left as it was.
        """
        if not self._storage_path:
            return
        with self._lock:
            if self._storage_path.exists():
                events, event_ids = self._read_file(self._storage_path)
            else:
                events, event_ids = [], set()
            self._events = events
            self._event_ids = event_ids

    def events(self, kind: Optional[EventKind] = None) -> list[EventRecord]:
        """Return events, optionally filtered by kind."""
        with self._lock:
            snapshot = list(self._events)
        if kind is None:
            return snapshot
        return [e for e in snapshot if e.event_kind == kind]

    def event_hashes(self, kind: Optional[EventKind] = None) -> list[str]:
        """Return all event hashes for Merkle tree construction."""
        return [e.event_hash for e in self.events(kind)]

    @property
    def count(self) -> int:
        with self._lock:
            return len(self._events)

    @property
    def last_event(self) -> Optional[EventRecord]:
        with self._lock:
            return self._events[-1] if self._events else None

    def _append_to_file(self, event: EventRecord) -> None:
        """Append a single event to the JSONL file."""
        self._storage_path.parent.mkdir(parents=True, exist_ok=True)
        with self._storage_path.open("a", encoding="utf-8") as f:
            f.write(json.dumps(event.to_dict(), sort_keys=True, ensure_ascii=False) + "\n")

    @staticmethod
    def _read_file(path: Path) -> tuple[list[EventRecord], set[str]]:
        """Read events from a JSONL file with integrity verification.

        Fail-closed: rejects tampered records (hash mismatch) and
        duplicate event IDs (replay protection on recovery).
        """
        events: list[EventRecord] = []
        event_ids: set[str] = set()
        with path.open("r", encoding="utf-8") as f:
            for line_num, line in enumerate(f, 1):
                line = line.strip()
                if not line:
                    continue
                data = json.loads(line)

                event_id = data["event_id"]

                if event_id in event_ids:
                    raise ValueError(
                        f"Duplicate event ID on recovery (line {line_num}): {event_id}"
                    )

                expected_hash = _canonical_hash(
                    data["event_id"],
                    data["event_kind"],
                    data["timestamp_utc"],
                    data["actor_id"],
                    data["payload"],
                )
                if data["event_hash"] != expected_hash:
                    raise ValueError(
                        f"Integrity check failed (line {line_num}): event {event_id} "
                        f"stored hash {data['event_hash']} != computed {expected_hash}"
                    )

                event = EventRecord(
                    event_id=data["event_id"],
                    event_kind=EventKind(data["event_kind"]),
                    timestamp_utc=data["timestamp_utc"],
                    actor_id=data["actor_id"],
                    payload=data["payload"],
                    event_hash=data["event_hash"],
                )
                events.append(event)
                event_ids.add(event.event_id)
        logger.debug("Loaded %d events from %s", len(events), path)
        return events, event_ids
