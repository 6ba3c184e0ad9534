"""
Account model for the simulated ledger.

Implements Pubkey (32-byte address) and AccountRecord (owner, lamports, data,
executable), plus the well-known program ids and the rent-exemption rule the
fixture needs to build realistic accounts.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Tuple, Union

from solders.keypair import Keypair
from solders.pubkey import Pubkey as SoldersPubkey


PUBKEY_BYTES = 32
U64_MAX = (1 << 64) - 1

# Rent parameters of the default cluster configuration.
ACCOUNT_STORAGE_OVERHEAD = 128
LAMPORTS_PER_BYTE_YEAR = 3_480
EXEMPTION_THRESHOLD_YEARS = 2


@dataclass(frozen=True, order=True)
class Pubkey:
    """
    A 32-byte account address.

    Hashable and ordered by raw bytes so the ledger can key and sort on it;
    parsing, rendering and curve checks go through `solders`.
    """

    raw: bytes

    def __post_init__(self) -> None:
        if isinstance(self.raw, (bytearray, memoryview)):
            object.__setattr__(self, "raw", bytes(self.raw))
        if not isinstance(self.raw, bytes):
            raise TypeError("Pubkey.raw must be bytes")
        if len(self.raw) != PUBKEY_BYTES:
            raise ValueError(f"Pubkey must be {PUBKEY_BYTES} bytes, got {len(self.raw)}")

    @classmethod
    def from_string(cls, text: str) -> "Pubkey":
        if not isinstance(text, str) or not text.strip():
            raise ValueError("pubkey string must be non-empty")
        try:
            key = SoldersPubkey.from_string(text.strip())
        except Exception as exc:  # parse errors come from the solders bindings
            raise ValueError(f"invalid base58 pubkey: {text!r}") from exc
        return cls.from_solders(key)

    @classmethod
    def from_solders(cls, key: SoldersPubkey) -> "Pubkey":
        return cls(bytes(key))

    def to_solders(self) -> SoldersPubkey:
        return SoldersPubkey.from_bytes(self.raw)

    @classmethod
    def default(cls) -> "Pubkey":
        return cls(bytes(PUBKEY_BYTES))

    @classmethod
    def new_unique(cls) -> "Pubkey":
        """Fresh address backed by a real ed25519 key (always on the curve)."""
        return cls.from_solders(Keypair().pubkey())

    def is_default(self) -> bool:
        return self.raw == bytes(PUBKEY_BYTES)

    def __bytes__(self) -> bytes:
        return self.raw

    def __str__(self) -> str:
        return str(self.to_solders())

    def __repr__(self) -> str:
        return f"Pubkey({self})"


AddressLike = Union[Pubkey, bytes, str]


def as_pubkey(value: AddressLike) -> Pubkey:
    if isinstance(value, Pubkey):
        return value
    if isinstance(value, (bytes, bytearray)):
        return Pubkey(bytes(value))
    if isinstance(value, str):
        return Pubkey.from_string(value)
    raise TypeError(f"cannot interpret {type(value).__name__} as a pubkey")


SYSTEM_PROGRAM_ID = Pubkey.default()
TOKEN_PROGRAM_ID = Pubkey.from_string("TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA")
ASSOCIATED_TOKEN_PROGRAM_ID = Pubkey.from_string("ATokenGPvbdGVxr1b2hvZbsiqW5xWH25efTNsLJA8knL")
NATIVE_LOADER_ID = Pubkey.from_string("NativeLoader1111111111111111111111111111111")
BPF_LOADER_ID = Pubkey.from_string("BPFLoader2111111111111111111111111111111111")


def rent_exempt_minimum(data_len: int) -> int:
    """Minimum lamports for an account of `data_len` bytes to be rent exempt."""
    if not isinstance(data_len, int) or isinstance(data_len, bool) or data_len < 0:
        raise ValueError(f"data_len must be a non-negative int: {data_len!r}")
    return (ACCOUNT_STORAGE_OVERHEAD + data_len) * LAMPORTS_PER_BYTE_YEAR * EXEMPTION_THRESHOLD_YEARS


@dataclass(frozen=True)
class AccountRecord:
    """
    One simulated on-chain account.

    Records are immutable values: the ledger hands them out and takes them back
    without any shared mutable buffer. The address is the ledger key, not a
    field, so the same record value can be placed at several addresses.
    """

    owner: Pubkey
    lamports: int = 0
    data: bytes = field(default=b"", repr=False)
    executable: bool = False
    rent_epoch: int = 0

    def __post_init__(self) -> None:
        if not isinstance(self.owner, Pubkey):
            raise TypeError("owner must be a Pubkey")
        if not isinstance(self.lamports, int) or isinstance(self.lamports, bool):
            raise TypeError("lamports must be an int")
        if self.lamports < 0 or self.lamports > U64_MAX:
            raise ValueError(f"lamports out of u64 range: {self.lamports}")
        if isinstance(self.data, (bytearray, memoryview)):
            object.__setattr__(self, "data", bytes(self.data))
        if not isinstance(self.data, bytes):
            raise TypeError("data must be bytes")
        if not isinstance(self.executable, bool):
            raise TypeError("executable must be a bool")
        if not isinstance(self.rent_epoch, int) or isinstance(self.rent_epoch, bool) or self.rent_epoch < 0:
            raise ValueError("rent_epoch must be a non-negative int")

    @property
    def data_len(self) -> int:
        return len(self.data)

    def is_empty(self) -> bool:
        """Zero lamports and no data: what a closed or never-funded account looks like."""
        return self.lamports == 0 and not self.data


KeyedAccount = Tuple[Pubkey, AccountRecord]


def system_account(lamports: int) -> AccountRecord:
    return AccountRecord(owner=SYSTEM_PROGRAM_ID, lamports=lamports)


def empty_system_account() -> AccountRecord:
    """Present-but-empty placeholder that a program may later initialize."""
    return AccountRecord(owner=SYSTEM_PROGRAM_ID, lamports=0, data=b"")


def program_account(loader: Pubkey, *, data: bytes = b"") -> AccountRecord:
    return AccountRecord(
        owner=loader,
        lamports=rent_exempt_minimum(len(data)) if data else 1,
        data=data,
        executable=True,
    )
