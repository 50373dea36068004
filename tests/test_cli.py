"""Tests for the Skillstore CLI: commands dispatch and report correctly."""

import json

from skillstore.cli import build_parser, main
from skillstore.models.identity import Pubkey


def _cli(tmp_path, *args: str) -> int:
    return main(["--data-dir", str(tmp_path), *args])


def _setup_marketplace(tmp_path) -> None:
    assert _cli(tmp_path, "initialize", "--admin", "admin", "--treasury", "treasury", "--fee", "500") == 0
    assert _cli(
        tmp_path, "list-skill", "--creator", "carol", "--skill-id", "sk1",
        "--price", "1000", "--uri", "ipfs://x",
    ) == 0
    assert _cli(tmp_path, "fund", "--owner", "bob", "--amount", "10000") == 0


class TestCLIParsing:
    def test_status_command(self) -> None:
        args = build_parser().parse_args(["status"])
        assert args.command == "status"

    def test_list_skill_command(self) -> None:
        args = build_parser().parse_args([
            "list-skill", "--creator", "carol", "--skill-id", "sk1",
            "--price", "1000", "--uri", "ipfs://x",
        ])
        assert args.command == "list-skill"
        assert args.skill_id == "sk1"
        assert args.price == 1000

    def test_purchase_defaults(self) -> None:
        args = build_parser().parse_args(["purchase", "--buyer", "bob", "--skill-id", "sk1"])
        assert args.creator is None
        assert args.treasury is None

    def test_catalog_format_default(self) -> None:
        args = build_parser().parse_args(["catalog"])
        assert args.format == "json"


class TestCLIExecution:
    def test_no_command_shows_help(self, capsys) -> None:
        assert main([]) == 0
        assert "skillstore" in capsys.readouterr().out

    def test_check_invariants_runs(self) -> None:
        assert main(["check-invariants"]) == 0

    def test_status_runs(self, tmp_path, capsys) -> None:
        assert _cli(tmp_path, "status") == 0
        status = json.loads(capsys.readouterr().out)
        assert status["initialized"] is False

    def test_purchase_e2e(self, tmp_path, capsys) -> None:
        _setup_marketplace(tmp_path)
        capsys.readouterr()

        assert _cli(tmp_path, "purchase", "--buyer", "bob", "--skill-id", "sk1") == 0
        receipt = json.loads(capsys.readouterr().out)
        assert receipt["fee_paid"] == 50
        assert receipt["creator_amount"] == 950
        assert receipt["creator"] == str(Pubkey.from_name("carol"))

        assert _cli(tmp_path, "check-ownership", "--buyer", "bob", "--skill-id", "sk1") == 0
        assert json.loads(capsys.readouterr().out)["owned"] is True

        assert _cli(tmp_path, "purchases", "--buyer", "bob") == 0
        receipts = json.loads(capsys.readouterr().out)
        assert [r["skill_id"] for r in receipts] == ["sk1"]

    def test_repeat_purchase_fails(self, tmp_path, capsys) -> None:
        _setup_marketplace(tmp_path)
        assert _cli(tmp_path, "purchase", "--buyer", "bob", "--skill-id", "sk1") == 0
        capsys.readouterr()
        assert _cli(tmp_path, "purchase", "--buyer", "bob", "--skill-id", "sk1") == 1
        assert "[AccountAlreadyInUse]" in capsys.readouterr().err

    def test_purchase_unknown_skill(self, tmp_path, capsys) -> None:
        _setup_marketplace(tmp_path)
        capsys.readouterr()
        assert _cli(tmp_path, "purchase", "--buyer", "bob", "--skill-id", "nope") == 1
        assert "no listing" in capsys.readouterr().err

    def test_invalid_price_fails(self, tmp_path, capsys) -> None:
        assert _cli(
            tmp_path, "list-skill", "--creator", "carol", "--skill-id", "sk1",
            "--price", "0", "--uri", "ipfs://x",
        ) == 1
        assert "InvalidPrice" in capsys.readouterr().err

    def test_admin_updates(self, tmp_path, capsys) -> None:
        _setup_marketplace(tmp_path)
        capsys.readouterr()
        assert _cli(tmp_path, "update-fee", "--signer", "admin", "--fee", "250") == 0
        assert json.loads(capsys.readouterr().out) == {"old_fee": 500, "new_fee": 250}
        assert _cli(tmp_path, "update-fee", "--signer", "bob", "--fee", "0") == 1
        assert "[Unauthorized]" in capsys.readouterr().err
        assert _cli(tmp_path, "update-treasury", "--signer", "admin", "--treasury", "vault") == 0
        assert json.loads(capsys.readouterr().out)["new_treasury"] == str(Pubkey.from_name("vault"))

    def test_deactivate_e2e(self, tmp_path, capsys) -> None:
        _setup_marketplace(tmp_path)
        capsys.readouterr()
        assert _cli(tmp_path, "deactivate", "--creator", "carol", "--skill-id", "sk1") == 0
        assert json.loads(capsys.readouterr().out)["is_active"] is False
        assert _cli(tmp_path, "purchase", "--buyer", "bob", "--skill-id", "sk1") == 1
        assert "[ListingNotActive]" in capsys.readouterr().err

    def test_catalog_formats(self, tmp_path, capsys) -> None:
        _setup_marketplace(tmp_path)
        capsys.readouterr()
        assert _cli(tmp_path, "catalog") == 0
        catalog = json.loads(capsys.readouterr().out)
        assert [s["skill_id"] for s in catalog["skills"]] == ["sk1"]
        assert _cli(tmp_path, "catalog", "--format", "markdown") == 0
        assert "### sk1" in capsys.readouterr().out

    def test_merkle_root(self, tmp_path, capsys) -> None:
        _setup_marketplace(tmp_path)
        capsys.readouterr()
        assert _cli(tmp_path, "merkle-root") == 0
        assert capsys.readouterr().out.strip().startswith("sha256:")

    def test_bad_identity_fails(self, tmp_path, capsys) -> None:
        assert _cli(tmp_path, "fund", "--owner", "  ", "--amount", "10") == 1
        assert "Failed" in capsys.readouterr().err
