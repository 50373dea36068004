"""Invariant checks against the marketplace parameter file.

The wire layout fixes several limits; the parameter file restates them
so operators see them, and this check fails if the two ever disagree.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

from skillstore.ledger.addressing import MAX_SEED_LEN
from skillstore.models.marketplace import (
    MAX_FEE_BASIS_POINTS,
    MAX_METADATA_URI_LEN,
    MAX_SKILL_ID_LEN,
)
from skillstore.settings import LOG_LEVELS, load_params


def check_params(params: dict[str, Any]) -> list[str]:
    """Return a list of violated invariants (empty if all hold)."""
    errors: list[str] = []

    program = params.get("program", {})
    if not str(program.get("name", "")).strip():
        errors.append("program.name must be non-empty")
    program_id = program.get("program_id")
    if program_id is not None:
        text = str(program_id).lower().removeprefix("0x")
        if len(text) != 64 or any(c not in "0123456789abcdef" for c in text):
            errors.append("program.program_id must be 64 hex characters or null")

    # --- Fee invariants ---
    marketplace = params.get("marketplace", {})
    max_fee = marketplace.get("max_fee_basis_points")
    if max_fee != MAX_FEE_BASIS_POINTS:
        errors.append(f"max_fee_basis_points must be {MAX_FEE_BASIS_POINTS}, got {max_fee}")
    fee = marketplace.get("default_fee_basis_points")
    if not isinstance(fee, int) or isinstance(fee, bool):
        errors.append(f"default_fee_basis_points must be an integer, got {fee!r}")
    elif not 0 <= fee <= MAX_FEE_BASIS_POINTS:
        errors.append(f"default_fee_basis_points must be in [0, {MAX_FEE_BASIS_POINTS}]")

    # --- Wire layout invariants ---
    skill_id_len = marketplace.get("max_skill_id_len")
    if skill_id_len != MAX_SKILL_ID_LEN:
        errors.append(f"max_skill_id_len must be {MAX_SKILL_ID_LEN}, got {skill_id_len}")
    if MAX_SKILL_ID_LEN > MAX_SEED_LEN:
        errors.append("skill_id must fit in a single address seed")
    uri_len = marketplace.get("max_metadata_uri_len")
    if uri_len != MAX_METADATA_URI_LEN:
        errors.append(f"max_metadata_uri_len must be {MAX_METADATA_URI_LEN}, got {uri_len}")

    # --- Operational invariants ---
    if not str(params.get("storage", {}).get("data_dir", "")).strip():
        errors.append("storage.data_dir must be non-empty")
    level = str(params.get("logging", {}).get("level", "INFO")).upper()
    if level not in LOG_LEVELS:
        errors.append(f"logging.level must be one of {', '.join(LOG_LEVELS)}")

    return errors


def check(config_dir: Path) -> int:
    """Print the result of check_params and return a process exit code."""
    errors = check_params(load_params(config_dir))
    if errors:
        print("Invariant check failed:")
        for err in errors:
            print(f"- {err}")
        return 1
    print("Invariant check passed.")
    return 0
