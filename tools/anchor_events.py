#!/usr/bin/env python3
"""Anchor the skillstore event-log Merkle root on Ethereum Sepolia.

Computes the Merkle root over every event hash in data/events.jsonl and
embeds it in a zero-value transaction, creating tamper-evident proof
that the audit trail existed in this exact form at this exact time.
Each anchor is appended to data/ANCHORS.md.

Usage:
    python3 tools/anchor_events.py
    python3 tools/anchor_events.py "Description of this checkpoint"

Requires:
    SEPOLIA_RPC_URL and PRIVATE_KEY in a .env file at the project root.
"""

import os
import sys
from pathlib import Path

# Add src to path for skillstore imports
ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT / "src"))

from dotenv import load_dotenv
from skillstore.crypto.anchor import anchor_events, event_log_root
from skillstore.persistence.event_log import EventLog
from skillstore.settings import MarketplaceSettings
from skillstore.utils.logging import configure_logging

# ------------------------------------------------------------------ #
# Configuration                                                       #
# ------------------------------------------------------------------ #

load_dotenv(ROOT / ".env")

RPC_URL = os.getenv("SEPOLIA_RPC_URL")
PRIVATE_KEY = os.getenv("PRIVATE_KEY") or os.getenv("SEPOLIA_PRIVATE_KEY")

if not RPC_URL or not PRIVATE_KEY:
    print("ERROR: Missing SEPOLIA_RPC_URL and/or PRIVATE_KEY in .env")
    sys.exit(1)

settings = MarketplaceSettings.from_config_dir(ROOT / "config")
configure_logging(settings.log_level, settings.json_logs)

EVENTS_FILE = settings.data_dir / "events.jsonl"
ANCHORS_FILE = settings.data_dir / "ANCHORS.md"

if not EVENTS_FILE.exists():
    print(f"ERROR: Event log not found: {EVENTS_FILE}")
    sys.exit(1)

description = " ".join(sys.argv[1:]) if len(sys.argv) > 1 else ""

# ------------------------------------------------------------------ #
# Compute root                                                        #
# ------------------------------------------------------------------ #

event_log = EventLog(storage_path=EVENTS_FILE)

print("=" * 60)
print("SKILLSTORE: EVENT LOG ANCHOR")
print("=" * 60)
print()
print(f"  Events:       {event_log.count}")
print(f"  Merkle root:  {event_log_root(event_log)}")
if description:
    print(f"  Description:  {description}")
print()

# ------------------------------------------------------------------ #
# Anchor on Sepolia                                                   #
# ------------------------------------------------------------------ #

record = anchor_events(event_log, rpc_url=RPC_URL, private_key=PRIVATE_KEY)

entry_lines = [
    f"## Anchor {record.timestamp_utc}",
    "",
    f"- `{record.merkle_root}` -> [tx {record.tx_hash[:10]}...]({record.explorer_url})",
    f"  Events: {record.event_count} | Ethereum Block: {record.block_number}",
]
if description:
    entry_lines.append(f"  **{description}**")
entry_lines.append("")

ANCHORS_FILE.parent.mkdir(parents=True, exist_ok=True)
with ANCHORS_FILE.open("a", encoding="utf-8") as f:
    f.write("\n".join(entry_lines) + "\n")

print(f"  Tx:           {record.tx_hash}")
print(f"  Eth Block:    {record.block_number}")
print(f"  Explorer:     {record.explorer_url}")
print(f"  Logged:       {ANCHORS_FILE}")
