"""
Deterministic canonical encodings for ledger state.

Used for:
- the JSON wire format exchanged with an external execution oracle,
- a stable ledger digest (same logical state -> same root) that tests and
  checkpoints use to prove a rejected instruction changed nothing.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import json
from typing import Any, Dict, Mapping

from .accounts import AccountRecord, Pubkey
from .ledger import AccountLedger


LEDGER_ROOT_VERSION = 1


def _reject_floats(value: Any) -> None:
    if isinstance(value, float):
        raise TypeError("floats are not allowed in canonical encoding")
    if isinstance(value, dict):
        for k, v in value.items():
            if not isinstance(k, str):
                raise TypeError("dict keys must be str for canonical encoding")
            _reject_floats(v)
        return
    if isinstance(value, (list, tuple)):
        for item in value:
            _reject_floats(item)


def canonical_json_bytes(value: Any) -> bytes:
    """
    Canonical JSON encoding.

    Rules:
    - UTF-8
    - sort_keys=True
    - separators=(',', ':') (no whitespace)
    - allow_nan=False
    - floats rejected (u64 lamports must never round-trip through a double)
    """
    _reject_floats(value)
    text = json.dumps(
        value,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        allow_nan=False,
    )
    return text.encode("utf-8")


def domain_sep_bytes(label: str, version: int = 1) -> bytes:
    """ASCII, NUL-terminated domain separation prefix."""
    if not isinstance(label, str) or not label:
        raise TypeError("label must be a non-empty str")
    if "\x00" in label:
        raise ValueError("label must not contain NUL")
    try:
        label_bytes = label.encode("ascii")
    except UnicodeEncodeError as exc:
        raise ValueError("label must be ASCII") from exc
    if not isinstance(version, int) or isinstance(version, bool) or version <= 0:
        raise ValueError("version must be a positive int")
    return b"escrow-harness:" + label_bytes + b":v" + str(version).encode("ascii") + b"\x00"


def encode_uvarint(value: int) -> bytes:
    """Unsigned LEB128."""
    if not isinstance(value, int) or isinstance(value, bool) or value < 0:
        raise ValueError(f"uvarint must be a non-negative int, got {value!r}")
    out = bytearray()
    n = value
    while True:
        byte = n & 0x7F
        n >>= 7
        if n:
            out.append(byte | 0x80)
        else:
            out.append(byte)
            break
    return bytes(out)


def encode_bytes(value: bytes) -> bytes:
    if not isinstance(value, (bytes, bytearray)):
        raise TypeError("value must be bytes")
    value_bytes = bytes(value)
    return encode_uvarint(len(value_bytes)) + value_bytes


def ledger_root(ledger: AccountLedger) -> str:
    """
    Digest of the full ledger contents, independent of insertion order.

    Each entry contributes address || owner || lamports || executable ||
    rent_epoch || len-prefixed data, in address order.
    """
    h = hashlib.sha256()
    h.update(domain_sep_bytes("ledger-root", LEDGER_ROOT_VERSION))
    entries = ledger.snapshot_all()
    h.update(encode_uvarint(len(entries)))
    for address, record in entries:
        h.update(address.raw)
        h.update(record.owner.raw)
        h.update(encode_uvarint(record.lamports))
        h.update(b"\x01" if record.executable else b"\x00")
        h.update(encode_uvarint(record.rent_epoch))
        h.update(encode_bytes(record.data))
    return "0x" + h.hexdigest()


# ---------------------------------------------------------------------------
# Oracle wire format
# ---------------------------------------------------------------------------


def account_to_wire(address: Pubkey, record: AccountRecord) -> Dict[str, Any]:
    return {
        "pubkey": str(address),
        "owner": str(record.owner),
        "lamports": record.lamports,
        "data": base64.b64encode(record.data).decode("ascii"),
        "executable": record.executable,
        "rent_epoch": record.rent_epoch,
    }


def account_from_wire(obj: Any) -> tuple[Pubkey, AccountRecord]:
    """
    Parse one wire account.

    Raises:
        ValueError: If any field is missing or has the wrong type
    """
    if not isinstance(obj, Mapping):
        raise ValueError("account must be an object")
    pubkey = _require_str(obj.get("pubkey"), name="account.pubkey")
    owner = _require_str(obj.get("owner"), name="account.owner")
    lamports = obj.get("lamports")
    if not isinstance(lamports, int) or isinstance(lamports, bool):
        raise ValueError("account.lamports must be an int")
    data_b64 = obj.get("data", "")
    if not isinstance(data_b64, str):
        raise ValueError("account.data must be a base64 string")
    try:
        data = base64.b64decode(data_b64, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ValueError("account.data must be valid base64") from exc
    executable = obj.get("executable", False)
    if not isinstance(executable, bool):
        raise ValueError("account.executable must be a bool")
    rent_epoch = obj.get("rent_epoch", 0)
    if not isinstance(rent_epoch, int) or isinstance(rent_epoch, bool):
        raise ValueError("account.rent_epoch must be an int")

    address = Pubkey.from_string(pubkey)
    record = AccountRecord(
        owner=Pubkey.from_string(owner),
        lamports=lamports,
        data=data,
        executable=executable,
        rent_epoch=rent_epoch,
    )
    return address, record


def _require_str(value: Any, *, name: str) -> str:
    if not isinstance(value, str):
        raise ValueError(f"{name} must be a string")
    if not value:
        raise ValueError(f"{name} must be non-empty")
    return value
