"""Wire layout of ledger accounts and events.

Every account is an 8-byte discriminator followed by its fields in
declaration order, little-endian, Borsh style:

    u8 / u16 / u64 / i64   fixed-width little-endian integers
    bool                   one byte, 0 or 1
    pubkey                 32 raw bytes
    string                 u32 byte length + UTF-8 bytes

Accounts are allocated at their maximum size (8 + INIT_SPACE) and the
unused tail is zero-filled, so sizes are fixed per record type:
Config 91 bytes, Listing 306 bytes, Receipt 133 bytes.

Discriminators are the first 8 bytes of sha256("account:<Name>") for
accounts and sha256("event:<Name>") for events.
"""

from __future__ import annotations

import hashlib
import struct
from typing import Any, Union

from skillstore.models.events import ALL_EVENT_TYPES, LedgerEvent
from skillstore.models.identity import PUBKEY_BYTES, Pubkey
from skillstore.models.marketplace import (
    MAX_METADATA_URI_LEN,
    MAX_SKILL_ID_LEN,
    Config,
    Listing,
    Receipt,
)

Record = Union[Config, Listing, Receipt]

DISCRIMINATOR_LEN = 8

# (field name, kind, max byte length for strings)
_Schema = tuple[tuple[str, str, int], ...]

_ACCOUNT_SCHEMAS: dict[type, _Schema] = {
    Config: (
        ("admin", "pubkey", 0),
        ("treasury", "pubkey", 0),
        ("fee_basis_points", "u16", 0),
        ("total_sales", "u64", 0),
        ("total_fees_collected", "u64", 0),
        ("bump", "u8", 0),
    ),
    Listing: (
        ("creator", "pubkey", 0),
        ("skill_id", "string", MAX_SKILL_ID_LEN),
        ("price", "u64", 0),
        ("metadata_uri", "string", MAX_METADATA_URI_LEN),
        ("total_sales", "u64", 0),
        ("is_active", "bool", 0),
        ("created_at", "i64", 0),
        ("bump", "u8", 0),
    ),
    Receipt: (
        ("buyer", "pubkey", 0),
        ("skill_id", "string", MAX_SKILL_ID_LEN),
        ("creator", "pubkey", 0),
        ("price_paid", "u64", 0),
        ("fee_paid", "u64", 0),
        ("purchased_at", "i64", 0),
        ("bump", "u8", 0),
    ),
}

_EVENT_SCHEMAS: dict[str, _Schema] = {
    "ConfigInitialized": (
        ("admin", "pubkey", 0),
        ("treasury", "pubkey", 0),
        ("fee_basis_points", "u16", 0),
    ),
    "TreasuryUpdated": (
        ("old_treasury", "pubkey", 0),
        ("new_treasury", "pubkey", 0),
    ),
    "FeeUpdated": (
        ("old_fee", "u16", 0),
        ("new_fee", "u16", 0),
    ),
    "SkillListed": (
        ("creator", "pubkey", 0),
        ("skill_id", "string", MAX_SKILL_ID_LEN),
        ("price_lamports", "u64", 0),
    ),
    "SkillPurchased": (
        ("buyer", "pubkey", 0),
        ("creator", "pubkey", 0),
        ("skill_id", "string", MAX_SKILL_ID_LEN),
        ("price", "u64", 0),
        ("fee", "u64", 0),
    ),
    "ListingDeactivated": (
        ("skill_id", "string", MAX_SKILL_ID_LEN),
        ("creator", "pubkey", 0),
    ),
}

_INT_FORMATS = {"u8": "<B", "u16": "<H", "u64": "<Q", "i64": "<q"}


def account_discriminator(name: str) -> bytes:
    return hashlib.sha256(f"account:{name}".encode("utf-8")).digest()[:DISCRIMINATOR_LEN]


def event_discriminator(name: str) -> bytes:
    return hashlib.sha256(f"event:{name}".encode("utf-8")).digest()[:DISCRIMINATOR_LEN]


def _field_space(kind: str, max_len: int) -> int:
    if kind == "pubkey":
        return PUBKEY_BYTES
    if kind == "string":
        return 4 + max_len
    if kind == "bool":
        return 1
    return struct.calcsize(_INT_FORMATS[kind])


def account_space(record_type: type) -> int:
    """Allocated size of an account: discriminator plus maximum field space."""
    schema = _ACCOUNT_SCHEMAS[record_type]
    return DISCRIMINATOR_LEN + sum(_field_space(kind, n) for _, kind, n in schema)


CONFIG_SPACE = account_space(Config)
LISTING_SPACE = account_space(Listing)
RECEIPT_SPACE = account_space(Receipt)

_DISCRIMINATOR_TO_TYPE = {
    account_discriminator(t.__name__): t for t in _ACCOUNT_SCHEMAS
}
_EVENT_TYPES_BY_NAME = {t.__name__: t for t in ALL_EVENT_TYPES}


def _write_fields(out: bytearray, obj: Any, schema: _Schema) -> None:
    for name, kind, max_len in schema:
        value = getattr(obj, name)
        if kind == "pubkey":
            out += bytes(value)
        elif kind == "string":
            raw = value.encode("utf-8")
            if len(raw) > max_len:
                raise ValueError(f"{name} is {len(raw)} bytes, max {max_len}")
            out += struct.pack("<I", len(raw))
            out += raw
        elif kind == "bool":
            out += b"\x01" if value else b"\x00"
        else:
            try:
                out += struct.pack(_INT_FORMATS[kind], value)
            except struct.error:
                raise ValueError(f"{name}={value!r} does not fit {kind}") from None


def _read_fields(data: bytes, offset: int, schema: _Schema) -> dict[str, Any]:
    values: dict[str, Any] = {}
    try:
        for name, kind, max_len in schema:
            if kind == "pubkey":
                values[name] = Pubkey(data[offset:offset + PUBKEY_BYTES])
                offset += PUBKEY_BYTES
            elif kind == "string":
                (length,) = struct.unpack_from("<I", data, offset)
                if length > max_len:
                    raise ValueError(f"{name} length {length} exceeds {max_len}")
                offset += 4
                values[name] = data[offset:offset + length].decode("utf-8")
                offset += length
            elif kind == "bool":
                flag = data[offset]
                if flag not in (0, 1):
                    raise ValueError(f"{name} has invalid bool byte {flag}")
                values[name] = bool(flag)
                offset += 1
            else:
                fmt = _INT_FORMATS[kind]
                (values[name],) = struct.unpack_from(fmt, data, offset)
                offset += struct.calcsize(fmt)
    except (struct.error, IndexError):
        raise ValueError("Account data truncated") from None
    return values


def encode_account(record: Record) -> bytes:
    """Serialize a record to its fixed-size, zero-padded account bytes."""
    record_type = type(record)
    schema = _ACCOUNT_SCHEMAS.get(record_type)
    if schema is None:
        raise TypeError(f"Not a ledger record: {record_type.__name__}")
    out = bytearray(account_discriminator(record_type.__name__))
    _write_fields(out, record, schema)
    space = account_space(record_type)
    return bytes(out) + bytes(space - len(out))


def decode_account(data: bytes) -> Record:
    """Deserialize account bytes, dispatching on the discriminator."""
    record_type = _DISCRIMINATOR_TO_TYPE.get(bytes(data[:DISCRIMINATOR_LEN]))
    if record_type is None:
        raise ValueError("Unknown account discriminator")
    if len(data) != account_space(record_type):
        raise ValueError(
            f"{record_type.__name__} account must be "
            f"{account_space(record_type)} bytes, got {len(data)}"
        )
    values = _read_fields(data, DISCRIMINATOR_LEN, _ACCOUNT_SCHEMAS[record_type])
    return record_type(**values)


def encode_event(event: LedgerEvent) -> bytes:
    name = type(event).__name__
    schema = _EVENT_SCHEMAS.get(name)
    if schema is None:
        raise TypeError(f"Not a ledger event: {name}")
    out = bytearray(event_discriminator(name))
    _write_fields(out, event, schema)
    return bytes(out)


def decode_event(data: bytes) -> LedgerEvent:
    prefix = bytes(data[:DISCRIMINATOR_LEN])
    for name, schema in _EVENT_SCHEMAS.items():
        if event_discriminator(name) == prefix:
            values = _read_fields(data, DISCRIMINATOR_LEN, schema)
            return _EVENT_TYPES_BY_NAME[name](**values)
    raise ValueError("Unknown event discriminator")
