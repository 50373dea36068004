"""Tests for the account wire layout and byte compatibility."""

import hashlib
import struct

import pytest

from skillstore.ledger.codec import (
    CONFIG_SPACE,
    LISTING_SPACE,
    RECEIPT_SPACE,
    account_discriminator,
    decode_account,
    decode_event,
    encode_account,
    encode_event,
    event_discriminator,
)
from skillstore.models.events import FeeUpdated, SkillListed, SkillPurchased
from skillstore.models.identity import Pubkey
from skillstore.models.marketplace import Config, Listing, Receipt

ADMIN = Pubkey.from_name("admin")
TREASURY = Pubkey.from_name("treasury")
CREATOR = Pubkey.from_name("carol")
BUYER = Pubkey.from_name("bob")


def _listing(**overrides) -> Listing:
    values = dict(
        creator=CREATOR,
        skill_id="sk1",
        price=1000,
        metadata_uri="ipfs://x",
        total_sales=3,
        is_active=True,
        created_at=1_771_243_200,
        bump=254,
    )
    values.update(overrides)
    return Listing(**values)


class TestAccountSizes:
    def test_fixed_sizes(self) -> None:
        assert CONFIG_SPACE == 91
        assert LISTING_SPACE == 306
        assert RECEIPT_SPACE == 133

    def test_encoded_lengths_are_padded(self) -> None:
        config = Config(admin=ADMIN, treasury=TREASURY, fee_basis_points=500)
        assert len(encode_account(config)) == 91
        assert len(encode_account(_listing())) == 306
        assert len(encode_account(_listing(skill_id="a" * 32, metadata_uri="u" * 200))) == 306

    def test_padding_is_zero(self) -> None:
        data = encode_account(_listing())
        used = 8 + 32 + 4 + 3 + 8 + 4 + 8 + 8 + 1 + 8 + 1
        assert data[used:] == bytes(306 - used)


class TestDiscriminators:
    def test_account_discriminator(self) -> None:
        expected = hashlib.sha256(b"account:Config").digest()[:8]
        assert account_discriminator("Config") == expected
        config = Config(admin=ADMIN, treasury=TREASURY, fee_basis_points=500)
        assert encode_account(config)[:8] == expected

    def test_event_discriminator(self) -> None:
        expected = hashlib.sha256(b"event:SkillPurchased").digest()[:8]
        assert event_discriminator("SkillPurchased") == expected

    def test_unknown_discriminator_rejected(self) -> None:
        with pytest.raises(ValueError):
            decode_account(b"\x00" * 91)


class TestFieldLayout:
    def test_config_fields(self) -> None:
        config = Config(
            admin=ADMIN, treasury=TREASURY, fee_basis_points=500,
            total_sales=2, total_fees_collected=100, bump=253,
        )
        data = encode_account(config)
        assert data[8:40] == bytes(ADMIN)
        assert data[40:72] == bytes(TREASURY)
        assert struct.unpack_from("<H", data, 72)[0] == 500
        assert struct.unpack_from("<Q", data, 74)[0] == 2
        assert struct.unpack_from("<Q", data, 82)[0] == 100
        assert data[90] == 253

    def test_receipt_fields(self) -> None:
        receipt = Receipt(
            buyer=BUYER, skill_id="sk1", creator=CREATOR,
            price_paid=1000, fee_paid=50, purchased_at=1_771_243_200, bump=7,
        )
        data = encode_account(receipt)
        assert data[8:40] == bytes(BUYER)
        assert struct.unpack_from("<I", data, 40)[0] == 3
        assert data[44:47] == b"sk1"
        assert data[47:79] == bytes(CREATOR)
        assert struct.unpack_from("<QQq", data, 79) == (1000, 50, 1_771_243_200)
        assert data[103] == 7

    def test_string_length_counts_utf8_bytes(self) -> None:
        data = encode_account(_listing(skill_id="été"))
        assert struct.unpack_from("<I", data, 40)[0] == 5

    def test_negative_timestamp_encodes_as_i64(self) -> None:
        data = encode_account(_listing(created_at=-1))
        assert decode_account(data).created_at == -1


class TestRoundTrip:
    def test_config(self) -> None:
        config = Config(admin=ADMIN, treasury=TREASURY, fee_basis_points=500, bump=255)
        assert decode_account(encode_account(config)) == config

    def test_listing(self) -> None:
        listing = _listing(is_active=False)
        assert decode_account(encode_account(listing)) == listing

    def test_receipt(self) -> None:
        receipt = Receipt(
            buyer=BUYER, skill_id="sk1", creator=CREATOR,
            price_paid=1000, fee_paid=50, purchased_at=1_771_243_200,
        )
        assert decode_account(encode_account(receipt)) == receipt


class TestEncodingErrors:
    def test_skill_id_too_long(self) -> None:
        with pytest.raises(ValueError):
            encode_account(_listing(skill_id="a" * 33))

    def test_integer_out_of_range(self) -> None:
        with pytest.raises(ValueError):
            encode_account(Config(admin=ADMIN, treasury=TREASURY, fee_basis_points=70_000))

    def test_truncated_account(self) -> None:
        data = encode_account(_listing())
        with pytest.raises(ValueError):
            decode_account(data[:100])

    def test_invalid_bool_byte(self) -> None:
        data = bytearray(encode_account(_listing()))
        is_active_offset = 8 + 32 + 4 + 3 + 8 + 4 + 8 + 8
        data[is_active_offset] = 2
        with pytest.raises(ValueError):
            decode_account(bytes(data))

    def test_not_a_record(self) -> None:
        with pytest.raises(TypeError):
            encode_account("not a record")  # type: ignore[arg-type]


class TestEventEncoding:
    def test_skill_listed_layout(self) -> None:
        event = SkillListed(creator=CREATOR, skill_id="sk1", price_lamports=1000)
        data = encode_event(event)
        assert data[:8] == event_discriminator("SkillListed")
        assert data[8:40] == bytes(CREATOR)
        assert struct.unpack_from("<I", data, 40)[0] == 3
        assert data[44:47] == b"sk1"
        assert struct.unpack_from("<Q", data, 47)[0] == 1000
        assert len(data) == 55

    def test_fee_updated_layout(self) -> None:
        data = encode_event(FeeUpdated(old_fee=500, new_fee=250))
        assert data[8:] == struct.pack("<HH", 500, 250)

    def test_decode_event(self) -> None:
        event = SkillPurchased(
            buyer=BUYER, creator=CREATOR, skill_id="sk1", price=1000, fee=50,
        )
        assert decode_event(encode_event(event)) == event
