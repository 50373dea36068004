"""Marketplace settings: parameter file plus environment overrides.

Parameters live in config/marketplace_params.json. Deployment-specific
values can be overridden through the environment (or a .env file, loaded
with python-dotenv before the overrides are read):

    SKILLSTORE_DATA_DIR     directory for events.jsonl and state.json
    SKILLSTORE_PROGRAM_ID   64-hex program id (overrides program.name)
    SKILLSTORE_LOG_LEVEL    DEBUG / INFO / WARNING / ERROR / CRITICAL
    SKILLSTORE_LOG_JSON     1/true/yes for JSON log lines

Usage:
    settings = load_settings(Path("config"))
    configure_logging(settings.log_level, settings.json_logs)
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping, Optional

from dotenv import load_dotenv

from skillstore.models.identity import Pubkey
from skillstore.models.marketplace import MAX_FEE_BASIS_POINTS

PARAMS_FILENAME = "marketplace_params.json"
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
_TRUTHY = {"1", "true", "yes", "on"}


def load_params(config_dir: Path) -> dict[str, Any]:
    """Read the raw parameter file.

    Raises:
        FileNotFoundError: If marketplace_params.json does not exist.
    """
    path = config_dir / PARAMS_FILENAME
    if not path.exists():
        raise FileNotFoundError(f"Marketplace params not found: {path}")
    with path.open("r", encoding="utf-8") as f:
        return json.load(f)


@dataclass(frozen=True)
class MarketplaceSettings:
    """Validated runtime settings."""
    program_id: Pubkey
    program_name: str
    default_fee_basis_points: int
    data_dir: Path
    log_level: str
    json_logs: bool
    catalog_name: str
    catalog_version: str
    catalog_description: str

    @classmethod
    def from_params(
        cls,
        params: dict[str, Any],
        base_dir: Path,
        environ: Optional[Mapping[str, str]] = None,
    ) -> MarketplaceSettings:
        """Build settings from parsed params, applying env overrides.

        Raises:
            ValueError: If any value is out of range or malformed.
        """
        env = os.environ if environ is None else environ
        program = params.get("program", {})
        marketplace = params.get("marketplace", {})
        catalog = params.get("catalog", {})
        storage = params.get("storage", {})
        logging_cfg = params.get("logging", {})

        program_name = str(program.get("name", "")).strip()
        if not program_name:
            raise ValueError("program.name must be non-empty")

        program_id_text = env.get("SKILLSTORE_PROGRAM_ID") or program.get("program_id")
        if program_id_text:
            program_id = Pubkey.from_hex(program_id_text)
        else:
            program_id = Pubkey.from_name(program_name)

        fee = marketplace.get("default_fee_basis_points", 0)
        if not isinstance(fee, int) or isinstance(fee, bool):
            raise ValueError(f"default_fee_basis_points must be an integer, got {fee!r}")
        if not 0 <= fee <= MAX_FEE_BASIS_POINTS:
            raise ValueError(
                f"default_fee_basis_points must be in [0, {MAX_FEE_BASIS_POINTS}], got {fee}"
            )

        data_dir = Path(env.get("SKILLSTORE_DATA_DIR") or storage.get("data_dir", "data"))
        if not data_dir.is_absolute():
            data_dir = base_dir / data_dir

        log_level = str(
            env.get("SKILLSTORE_LOG_LEVEL") or logging_cfg.get("level", "INFO")
        ).upper()
        if log_level not in LOG_LEVELS:
            raise ValueError(f"Unknown log level: {log_level}")

        json_env = env.get("SKILLSTORE_LOG_JSON")
        if json_env is not None:
            json_logs = json_env.strip().lower() in _TRUTHY
        else:
            json_logs = bool(logging_cfg.get("json", False))

        return cls(
            program_id=program_id,
            program_name=program_name,
            default_fee_basis_points=fee,
            data_dir=data_dir,
            log_level=log_level,
            json_logs=json_logs,
            catalog_name=str(catalog.get("name", "Skillstore")),
            catalog_version=str(catalog.get("version", "1.0.0")),
            catalog_description=str(catalog.get("description", "")),
        )

    @classmethod
    def from_config_dir(
        cls,
        config_dir: Path,
        environ: Optional[Mapping[str, str]] = None,
    ) -> MarketplaceSettings:
        """Load settings from the canonical config directory.

        Relative data directories resolve against the config directory's
        parent (the project root).
        """
        return cls.from_params(
            load_params(config_dir), config_dir.resolve().parent, environ,
        )


def load_settings(
    config_dir: Path,
    dotenv_path: Optional[Path] = None,
) -> MarketplaceSettings:
    """Load .env into the process environment, then build settings."""
    if dotenv_path is not None:
        load_dotenv(dotenv_path)
    else:
        load_dotenv(config_dir.resolve().parent / ".env")
    return MarketplaceSettings.from_config_dir(config_dir)
