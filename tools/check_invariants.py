#!/usr/bin/env python3
"""Skillstore invariant checks against config/marketplace_params.json."""

import sys
from pathlib import Path

# Add src to path for skillstore imports
ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT / "src"))

from skillstore.invariants import check


if __name__ == "__main__":
    raise SystemExit(check(ROOT / "config"))
