"""Skillstore CLI: command-line interface for the marketplace ledger.

Identities are 64-hex public keys or names (a name is hashed to a key,
so "alice" always means the same identity).

Usage:
    python -m skillstore.cli status
    python -m skillstore.cli fund --owner bob --amount 5000
    python -m skillstore.cli initialize --admin admin --treasury treasury --fee 500
    python -m skillstore.cli list-skill --creator carol --skill-id sk1 --price 1000 --uri ipfs://x
    python -m skillstore.cli purchase --buyer bob --skill-id sk1
    python -m skillstore.cli catalog --format markdown
    python -m skillstore.cli check-invariants
"""

from __future__ import annotations

import argparse
import dataclasses
import json
import sys
from pathlib import Path

from skillstore import invariants
from skillstore.models.identity import Pubkey
from skillstore.service import ServiceResult, SkillstoreService, record_to_dict
from skillstore.settings import load_settings
from skillstore.utils.logging import configure_logging


DEFAULT_CONFIG = Path(__file__).resolve().parents[2] / "config"


def _make_service(args: argparse.Namespace) -> SkillstoreService:
    """Create a SkillstoreService with durable persistence."""
    settings = load_settings(args.config)
    if args.data_dir is not None:
        settings = dataclasses.replace(settings, data_dir=args.data_dir)
    configure_logging(settings.log_level, settings.json_logs, force=False)
    return SkillstoreService.from_settings(settings)


def _report(result: ServiceResult) -> int:
    if result.success:
        print(json.dumps(result.data, indent=2, sort_keys=True))
        return 0
    code = result.data.get("error_code")
    prefix = f"[{code}] " if code else ""
    print(f"Failed: {prefix}{'; '.join(result.errors)}", file=sys.stderr)
    return 1


def cmd_status(args: argparse.Namespace) -> int:
    service = _make_service(args)
    print(json.dumps(service.status(), indent=2))
    return 0


def cmd_initialize(args: argparse.Namespace) -> int:
    service = _make_service(args)
    fee = args.fee
    if fee is None:
        fee = load_settings(args.config).default_fee_basis_points
    return _report(service.initialize(
        Pubkey.parse(args.admin), Pubkey.parse(args.treasury), fee,
    ))


def cmd_update_treasury(args: argparse.Namespace) -> int:
    service = _make_service(args)
    return _report(service.update_treasury(
        Pubkey.parse(args.signer), Pubkey.parse(args.treasury),
    ))


def cmd_update_fee(args: argparse.Namespace) -> int:
    service = _make_service(args)
    return _report(service.update_fee(Pubkey.parse(args.signer), args.fee))


def cmd_list_skill(args: argparse.Namespace) -> int:
    service = _make_service(args)
    return _report(service.list_skill(
        Pubkey.parse(args.creator), args.skill_id, args.price, args.uri,
    ))


def cmd_deactivate(args: argparse.Namespace) -> int:
    service = _make_service(args)
    return _report(service.deactivate_listing(Pubkey.parse(args.creator), args.skill_id))


def cmd_purchase(args: argparse.Namespace) -> int:
    """Purchase a skill. Creator and treasury default to the stored ones."""
    service = _make_service(args)
    creator = Pubkey.parse(args.creator) if args.creator else None
    treasury = Pubkey.parse(args.treasury) if args.treasury else None
    if creator is None:
        listing = service.get_listing(args.skill_id)
        if listing is None:
            print(f"Failed: no listing for {args.skill_id!r}", file=sys.stderr)
            return 1
        creator = listing.creator
    if treasury is None:
        config = service.get_config()
        if config is None:
            print("Failed: marketplace is not initialized", file=sys.stderr)
            return 1
        treasury = config.treasury
    return _report(service.purchase_skill(
        Pubkey.parse(args.buyer), args.skill_id, creator, treasury,
    ))


def cmd_fund(args: argparse.Namespace) -> int:
    service = _make_service(args)
    return _report(service.fund(Pubkey.parse(args.owner), args.amount))


def cmd_check_ownership(args: argparse.Namespace) -> int:
    service = _make_service(args)
    buyer = Pubkey.parse(args.buyer)
    owned = service.check_ownership(buyer, args.skill_id)
    print(json.dumps({"buyer": str(buyer), "skill_id": args.skill_id, "owned": owned}))
    return 0


def cmd_purchases(args: argparse.Namespace) -> int:
    service = _make_service(args)
    receipts = service.purchases_for(Pubkey.parse(args.buyer))
    print(json.dumps([record_to_dict(r) for r in receipts], indent=2))
    return 0


def cmd_catalog(args: argparse.Namespace) -> int:
    service = _make_service(args)
    if args.format == "markdown":
        print(service.catalog_markdown())
    else:
        print(json.dumps(service.catalog_json(), indent=2))
    return 0


def cmd_merkle_root(args: argparse.Namespace) -> int:
    service = _make_service(args)
    print(service.merkle_root())
    return 0


def cmd_check_invariants(args: argparse.Namespace) -> int:
    """Run parameter-file invariant checks."""
    return invariants.check(args.config)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="skillstore",
        description="Skillstore marketplace ledger CLI",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=DEFAULT_CONFIG,
        help="Path to config directory (default: config/)",
    )
    parser.add_argument(
        "--data-dir",
        type=Path,
        default=None,
        help="Override the data directory from settings",
    )
    sub = parser.add_subparsers(dest="command")

    # status
    sub.add_parser("status", help="Show ledger status")

    # initialize
    p_init = sub.add_parser("initialize", help="Create the platform configuration")
    p_init.add_argument("--admin", required=True, help="Admin identity (signer)")
    p_init.add_argument("--treasury", required=True, help="Treasury identity")
    p_init.add_argument("--fee", type=int, help="Fee in basis points (default: from config)")

    # update-treasury
    p_tre = sub.add_parser("update-treasury", help="Change the treasury (admin only)")
    p_tre.add_argument("--signer", required=True, help="Signing identity")
    p_tre.add_argument("--treasury", required=True, help="New treasury identity")

    # update-fee
    p_fee = sub.add_parser("update-fee", help="Change the fee rate (admin only)")
    p_fee.add_argument("--signer", required=True, help="Signing identity")
    p_fee.add_argument("--fee", type=int, required=True, help="New fee in basis points")

    # list-skill
    p_list = sub.add_parser("list-skill", help="Publish a skill")
    p_list.add_argument("--creator", required=True, help="Creator identity (signer)")
    p_list.add_argument("--skill-id", required=True, help="Skill identifier (<= 32 bytes)")
    p_list.add_argument("--price", type=int, required=True, help="Price in lamports")
    p_list.add_argument("--uri", required=True, help="Metadata URI (<= 200 bytes)")

    # deactivate
    p_deact = sub.add_parser("deactivate", help="Deactivate a listing (creator only)")
    p_deact.add_argument("--creator", required=True, help="Creator identity (signer)")
    p_deact.add_argument("--skill-id", required=True, help="Skill identifier")

    # purchase
    p_buy = sub.add_parser("purchase", help="Purchase a skill")
    p_buy.add_argument("--buyer", required=True, help="Buyer identity (signer)")
    p_buy.add_argument("--skill-id", required=True, help="Skill identifier")
    p_buy.add_argument("--creator", help="Creator identity (default: listing creator)")
    p_buy.add_argument("--treasury", help="Treasury identity (default: config treasury)")

    # fund
    p_fund = sub.add_parser("fund", help="Credit a balance (development airdrop)")
    p_fund.add_argument("--owner", required=True, help="Identity to credit")
    p_fund.add_argument("--amount", type=int, required=True, help="Amount in lamports")

    # check-ownership
    p_own = sub.add_parser("check-ownership", help="Check whether a buyer owns a skill")
    p_own.add_argument("--buyer", required=True, help="Buyer identity")
    p_own.add_argument("--skill-id", required=True, help="Skill identifier")

    # purchases
    p_hist = sub.add_parser("purchases", help="List a wallet's receipts, newest first")
    p_hist.add_argument("--buyer", required=True, help="Buyer identity")

    # catalog
    p_cat = sub.add_parser("catalog", help="Print the skill directory")
    p_cat.add_argument("--format", choices=["json", "markdown"], default="json")

    # merkle-root
    sub.add_parser("merkle-root", help="Print the event-log Merkle root")

    # check-invariants
    sub.add_parser("check-invariants", help="Run parameter invariant checks")

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    commands = {
        "status": cmd_status,
        "initialize": cmd_initialize,
        "update-treasury": cmd_update_treasury,
        "update-fee": cmd_update_fee,
        "list-skill": cmd_list_skill,
        "deactivate": cmd_deactivate,
        "purchase": cmd_purchase,
        "fund": cmd_fund,
        "check-ownership": cmd_check_ownership,
        "purchases": cmd_purchases,
        "catalog": cmd_catalog,
        "merkle-root": cmd_merkle_root,
        "check-invariants": cmd_check_invariants,
    }

    handler = commands.get(args.command)
    if handler is None:
        print(f"Unknown command: {args.command}", file=sys.stderr)
        return 1

    try:
        return handler(args)
    except (ValueError, OSError) as e:
        print(f"Failed: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
