"""JSON snapshot of the ledger store (accounts and balances).

The snapshot is rewritten after every committed operation. Writes are
atomic: a temp file in the same directory is fsynced and renamed over
the previous snapshot, so a crash leaves either the old or the new
state on disk, never a torn file.

Several processes may share one data directory (each CLI invocation is
its own process). Mutations are serialized with an exclusive POSIX file
lock (fcntl) on a sibling lock file; holders reload the snapshot and the
event log under the lock before applying anything.

Layout of state.json:

    {
      "version": 1,
      "program_id": "<hex>",
      "event_count": <events in the log when the snapshot was taken>,
      "accounts": {"<address hex>": "<account bytes hex>", ...},
      "balances": {"<owner hex>": <int>, ...}
    }
"""

from __future__ import annotations

import fcntl
import json
import logging
import os
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

from skillstore.ledger.store import LedgerStore
from skillstore.models.identity import Pubkey

logger = logging.getLogger(__name__)

STATE_VERSION = 1


class StateStore:
    """File-backed snapshots of a LedgerStore."""

    def __init__(self, path: Path) -> None:
        self._path = path
        self._lock_path = path.with_name(path.name + ".lock")

    @property
    def path(self) -> Path:
        return self._path

    @contextmanager
    def lock(self) -> Iterator[None]:
        """Hold the exclusive data-directory lock. Blocks until acquired."""
        self._path.parent.mkdir(parents=True, exist_ok=True)
        with self._lock_path.open("a") as handle:
            fcntl.flock(handle.fileno(), fcntl.LOCK_EX)
            try:
                yield
            finally:
                fcntl.flock(handle.fileno(), fcntl.LOCK_UN)

    def save(self, store: LedgerStore, program_id: Pubkey, event_count: int = 0) -> None:
        """Write a snapshot atomically: write tmp, fsync, rename."""
        data = store.snapshot()
        data["version"] = STATE_VERSION
        data["program_id"] = str(program_id)
        data["event_count"] = event_count

        self._path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=self._path.parent, suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2, sort_keys=True)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, self._path)
        except OSError:
            Path(tmp_path).unlink(missing_ok=True)
            raise
        logger.debug(
            "Saved %d accounts at event %d to %s",
            len(data["accounts"]), event_count, self._path,
        )

    def load(self, program_id: Optional[Pubkey] = None) -> tuple[LedgerStore, int]:
        """Load the snapshot and the event count it covers.

        Returns an empty store and 0 if no snapshot exists. Fail-closed:
        a snapshot written for a different program id, or one containing
        undecodable accounts, raises ValueError.
        """
        if not self._path.exists():
            return LedgerStore(), 0
        data = json.loads(self._path.read_text(encoding="utf-8"))
        version = data.get("version")
        if version != STATE_VERSION:
            raise ValueError(f"Unsupported state version: {version!r}")
        if program_id is not None and data.get("program_id") != str(program_id):
            raise ValueError(
                f"State file belongs to program {data.get('program_id')}, "
                f"expected {program_id}"
            )
        event_count = data.get("event_count")
        if not isinstance(event_count, int) or isinstance(event_count, bool) or event_count < 0:
            raise ValueError(f"Invalid event_count in state file: {event_count!r}")
        store = LedgerStore.from_snapshot(data)
        logger.debug("Loaded state at event %d from %s", event_count, self._path)
        return store, event_count
