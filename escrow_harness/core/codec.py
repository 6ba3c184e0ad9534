"""
Instruction codec.

Wire format of an instruction's data:

    discriminator (8 bytes) || args (little-endian, declared order)

where discriminator = sha256("global:" + instruction_name)[:8], the convention
Anchor-generated programs dispatch on. Account data uses the same idea with
the "account:" namespace.

Decoding helpers are bounds-checked: a short buffer is a `DataTooShortError`,
never an IndexError.
"""

from __future__ import annotations

import hashlib
import struct
from dataclasses import dataclass, field, replace
from typing import Any, List, Optional, Sequence, Tuple

from solders.instruction import AccountMeta as SoldersAccountMeta
from solders.instruction import Instruction as SoldersInstruction

from ..errors import DataTooShortError, EncodingError, FieldMismatchError
from ..state.accounts import Pubkey


DISCRIMINATOR_LEN = 8

# IDL integer type -> (width in bytes, signed)
_INT_TYPES: dict[str, Tuple[int, bool]] = {
    "u8": (1, False),
    "u16": (2, False),
    "u32": (4, False),
    "u64": (8, False),
    "u128": (16, False),
    "i8": (1, True),
    "i16": (2, True),
    "i32": (4, True),
    "i64": (8, True),
    "i128": (16, True),
}

ArgSpec = Tuple[str, Any]


def _sha256_prefix(preimage: str) -> bytes:
    return hashlib.sha256(preimage.encode("ascii")).digest()[:DISCRIMINATOR_LEN]


def instruction_discriminator(name: str) -> bytes:
    if not isinstance(name, str) or not name:
        raise EncodingError("instruction name must be a non-empty str")
    return _sha256_prefix(f"global:{name}")


def account_discriminator(name: str) -> bytes:
    if not isinstance(name, str) or not name:
        raise EncodingError("account name must be a non-empty str")
    return _sha256_prefix(f"account:{name}")


# ---------------------------------------------------------------------------
# Instructions
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AccountMeta:
    pubkey: Pubkey
    is_signer: bool = False
    is_writable: bool = False

    @classmethod
    def writable(cls, pubkey: Pubkey, *, signer: bool = False) -> "AccountMeta":
        return cls(pubkey=pubkey, is_signer=signer, is_writable=True)

    @classmethod
    def readonly(cls, pubkey: Pubkey, *, signer: bool = False) -> "AccountMeta":
        return cls(pubkey=pubkey, is_signer=signer, is_writable=False)

    def to_solders(self) -> SoldersAccountMeta:
        return SoldersAccountMeta(self.pubkey.to_solders(), self.is_signer, self.is_writable)


@dataclass(frozen=True)
class Instruction:
    """
    A single program invocation.

    `name` is diagnostic only (it never reaches the oracle) and is ignored for
    equality.
    """

    program_id: Pubkey
    accounts: Tuple[AccountMeta, ...]
    data: bytes
    name: Optional[str] = field(default=None, compare=False)

    def __post_init__(self) -> None:
        if not isinstance(self.accounts, tuple):
            object.__setattr__(self, "accounts", tuple(self.accounts))
        if isinstance(self.data, (bytearray, memoryview)):
            object.__setattr__(self, "data", bytes(self.data))

    def with_account(self, index: int, meta: AccountMeta) -> "Instruction":
        """Copy of this instruction with account `index` replaced."""
        if not 0 <= index < len(self.accounts):
            raise IndexError(f"account index {index} out of range (have {len(self.accounts)})")
        accounts = list(self.accounts)
        accounts[index] = meta
        return replace(self, accounts=tuple(accounts))

    def with_data(self, data: bytes) -> "Instruction":
        return replace(self, data=bytes(data))

    def to_solders(self) -> SoldersInstruction:
        return SoldersInstruction(self.program_id.to_solders(), self.data, [m.to_solders() for m in self.accounts])

    @classmethod
    def from_solders(cls, ix: SoldersInstruction, *, name: Optional[str] = None) -> "Instruction":
        accounts = tuple(
            AccountMeta(Pubkey.from_solders(m.pubkey), is_signer=m.is_signer, is_writable=m.is_writable)
            for m in ix.accounts
        )
        return cls(program_id=Pubkey.from_solders(ix.program_id), accounts=accounts, data=bytes(ix.data), name=name)


# ---------------------------------------------------------------------------
# Encoding
# ---------------------------------------------------------------------------


def encode_arg(type_name: str, value: Any) -> bytes:
    """Borsh-compatible encoding of one argument."""
    if type_name in _INT_TYPES:
        width, signed = _INT_TYPES[type_name]
        if not isinstance(value, int) or isinstance(value, bool):
            raise EncodingError(f"{type_name} argument must be an int, got {type(value).__name__}")
        try:
            return value.to_bytes(width, "little", signed=signed)
        except OverflowError as exc:
            raise EncodingError(f"{value} out of range for {type_name}") from exc
    if type_name == "bool":
        if not isinstance(value, bool):
            raise EncodingError("bool argument must be a bool")
        return b"\x01" if value else b"\x00"
    if type_name == "pubkey":
        if isinstance(value, Pubkey):
            return value.raw
        if isinstance(value, (bytes, bytearray)) and len(value) == 32:
            return bytes(value)
        raise EncodingError("pubkey argument must be a Pubkey or 32 bytes")
    if type_name == "string":
        if not isinstance(value, str):
            raise EncodingError("string argument must be a str")
        raw = value.encode("utf-8")
        return struct.pack("<I", len(raw)) + raw
    if type_name == "bytes":
        if not isinstance(value, (bytes, bytearray)):
            raise EncodingError("bytes argument must be bytes")
        return struct.pack("<I", len(value)) + bytes(value)
    raise EncodingError(f"unsupported argument type: {type_name!r}")


def encode_instruction_data(name: str, args: Sequence[ArgSpec] = ()) -> bytes:
    """
    Encode `name(args...)` as discriminator || args.

    Args:
        name: Instruction name as declared by the program (snake_case)
        args: Ordered (type_name, value) pairs, e.g. [("u64", 1)]

    Raises:
        EncodingError: If a value does not fit its declared type
    """
    out = bytearray(instruction_discriminator(name))
    for type_name, value in args:
        out += encode_arg(type_name, value)
    return bytes(out)


# ---------------------------------------------------------------------------
# Decoding
# ---------------------------------------------------------------------------


def _require_len(data: bytes, offset: int, width: int, what: str) -> None:
    if offset < 0:
        raise ValueError("offset must be non-negative")
    if len(data) < offset + width:
        raise DataTooShortError(what, required=offset + width, actual=len(data))


def read_u8(data: bytes, offset: int, *, what: str = "u8") -> int:
    _require_len(data, offset, 1, what)
    return data[offset]


def read_u32(data: bytes, offset: int, *, what: str = "u32") -> int:
    _require_len(data, offset, 4, what)
    return int.from_bytes(data[offset : offset + 4], "little")


def read_u64(data: bytes, offset: int, *, what: str = "u64") -> int:
    _require_len(data, offset, 8, what)
    return int.from_bytes(data[offset : offset + 8], "little")


def read_pubkey(data: bytes, offset: int, *, what: str = "pubkey") -> Pubkey:
    _require_len(data, offset, 32, what)
    return Pubkey(bytes(data[offset : offset + 32]))


def decode_arg(type_name: str, data: bytes, offset: int) -> Tuple[Any, int]:
    """Decode one argument at `offset`; returns (value, next_offset)."""
    if type_name in _INT_TYPES:
        width, signed = _INT_TYPES[type_name]
        _require_len(data, offset, width, type_name)
        return int.from_bytes(data[offset : offset + width], "little", signed=signed), offset + width
    if type_name == "bool":
        raw = read_u8(data, offset, what="bool")
        if raw not in (0, 1):
            raise FieldMismatchError("bool", expected="0 or 1", actual=raw)
        return raw == 1, offset + 1
    if type_name == "pubkey":
        return read_pubkey(data, offset), offset + 32
    if type_name in ("string", "bytes"):
        length = read_u32(data, offset, what=f"{type_name} length")
        _require_len(data, offset + 4, length, type_name)
        raw = bytes(data[offset + 4 : offset + 4 + length])
        if type_name == "string":
            try:
                return raw.decode("utf-8"), offset + 4 + length
            except UnicodeDecodeError as exc:
                raise FieldMismatchError("string", expected="valid UTF-8", actual=raw[:32].hex()) from exc
        return raw, offset + 4 + length
    raise EncodingError(f"unsupported argument type: {type_name!r}")


def decode_instruction_data(data: bytes, name: str, arg_types: Sequence[str] = ()) -> List[Any]:
    """
    Inverse of `encode_instruction_data` for verification.

    Raises:
        DataTooShortError: If the buffer ends before all arguments
        FieldMismatchError: If the discriminator is not `name`'s
    """
    expected = instruction_discriminator(name)
    _require_len(data, 0, DISCRIMINATOR_LEN, "instruction discriminator")
    actual = bytes(data[:DISCRIMINATOR_LEN])
    if actual != expected:
        raise FieldMismatchError("discriminator", expected=expected.hex(), actual=actual.hex())
    values: List[Any] = []
    offset = DISCRIMINATOR_LEN
    for type_name in arg_types:
        value, offset = decode_arg(type_name, data, offset)
        values.append(value)
    return values
