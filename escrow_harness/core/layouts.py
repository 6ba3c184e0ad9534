"""
Byte layouts of the accounts the escrow scenario touches.

SPL token account (165 bytes):

    [0, 32)    mint
    [32, 64)   owner
    [64, 72)   amount (u64 LE)
    [72, 108)  delegate (COption<Pubkey>)
    [108]      state (0 uninitialized, 1 initialized, 2 frozen)
    [109, 121) is_native (COption<u64>)
    [121, 129) delegated_amount (u64 LE)
    [129, 165) close_authority (COption<Pubkey>)

SPL mint (82 bytes):

    [0, 36)    mint_authority (COption<Pubkey>)
    [36, 44)   supply (u64 LE)
    [44]       decimals
    [45]       is_initialized
    [46, 82)   freeze_authority (COption<Pubkey>)

Offer (121 bytes minimum):

    [0, 8)     discriminator
    [8, 16)    id (u64 LE)
    [16, 48)   maker
    [48, 80)   mint_a
    [80, 112)  mint_b
    [112, 120) wanted_amount (u64 LE)
    [120]      bump
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from ..errors import DataTooShortError
from ..state.accounts import AccountRecord, Pubkey
from .codec import DISCRIMINATOR_LEN, account_discriminator, read_pubkey, read_u8, read_u32, read_u64


TOKEN_ACCOUNT_LEN = 165
MINT_LEN = 82
OFFER_LEN = DISCRIMINATOR_LEN + 8 + 32 + 32 + 32 + 8 + 1

# Prefix a token account view needs: mint, owner, amount.
TOKEN_VIEW_LEN = 72

TOKEN_STATE_UNINITIALIZED = 0
TOKEN_STATE_INITIALIZED = 1
TOKEN_STATE_FROZEN = 2

OFFER_ACCOUNT_NAME = "Offer"


def _coption_pubkey(value: Optional[Pubkey]) -> bytes:
    if value is None:
        return bytes(4 + 32)
    return (1).to_bytes(4, "little") + value.raw


def _read_coption_pubkey(data: bytes, offset: int, what: str) -> Optional[Pubkey]:
    tag = read_u32(data, offset, what=what)
    key = read_pubkey(data, offset + 4, what=what)
    return key if tag == 1 else None


# ---------------------------------------------------------------------------
# Token account
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TokenAccountView:
    mint: Pubkey
    owner: Pubkey
    amount: int

    @classmethod
    def from_bytes(cls, data: bytes) -> "TokenAccountView":
        if len(data) < TOKEN_VIEW_LEN:
            raise DataTooShortError("token account", required=TOKEN_VIEW_LEN, actual=len(data))
        return cls(
            mint=read_pubkey(data, 0),
            owner=read_pubkey(data, 32),
            amount=read_u64(data, 64),
        )

    @classmethod
    def from_record(cls, record: AccountRecord) -> "TokenAccountView":
        return cls.from_bytes(record.data)


def encode_token_account(
    mint: Pubkey,
    owner: Pubkey,
    amount: int,
    *,
    state: int = TOKEN_STATE_INITIALIZED,
    delegate: Optional[Pubkey] = None,
    delegated_amount: int = 0,
    close_authority: Optional[Pubkey] = None,
) -> bytes:
    out = bytearray()
    out += mint.raw
    out += owner.raw
    out += amount.to_bytes(8, "little")
    out += _coption_pubkey(delegate)
    out.append(state)
    out += bytes(4 + 8)  # is_native: None
    out += delegated_amount.to_bytes(8, "little")
    out += _coption_pubkey(close_authority)
    assert len(out) == TOKEN_ACCOUNT_LEN
    return bytes(out)


def token_account_state(data: bytes) -> int:
    if len(data) < TOKEN_ACCOUNT_LEN:
        raise DataTooShortError("token account", required=TOKEN_ACCOUNT_LEN, actual=len(data))
    return data[108]


def with_token_amount(data: bytes, amount: int) -> bytes:
    """Copy of a token account buffer with its amount replaced."""
    if len(data) < TOKEN_VIEW_LEN:
        raise DataTooShortError("token account", required=TOKEN_VIEW_LEN, actual=len(data))
    return data[:64] + amount.to_bytes(8, "little") + data[72:]


# ---------------------------------------------------------------------------
# Mint
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class MintView:
    mint_authority: Optional[Pubkey]
    supply: int
    decimals: int
    is_initialized: bool
    freeze_authority: Optional[Pubkey]

    @classmethod
    def from_bytes(cls, data: bytes) -> "MintView":
        if len(data) < MINT_LEN:
            raise DataTooShortError("mint", required=MINT_LEN, actual=len(data))
        return cls(
            mint_authority=_read_coption_pubkey(data, 0, "mint authority"),
            supply=read_u64(data, 36),
            decimals=read_u8(data, 44),
            is_initialized=read_u8(data, 45) == 1,
            freeze_authority=_read_coption_pubkey(data, 46, "freeze authority"),
        )

    @classmethod
    def from_record(cls, record: AccountRecord) -> "MintView":
        return cls.from_bytes(record.data)


def encode_mint(
    mint_authority: Optional[Pubkey],
    supply: int,
    decimals: int,
    *,
    freeze_authority: Optional[Pubkey] = None,
) -> bytes:
    out = bytearray()
    out += _coption_pubkey(mint_authority)
    out += supply.to_bytes(8, "little")
    out.append(decimals)
    out.append(1)
    out += _coption_pubkey(freeze_authority)
    assert len(out) == MINT_LEN
    return bytes(out)


def with_mint_supply(data: bytes, supply: int) -> bytes:
    if len(data) < MINT_LEN:
        raise DataTooShortError("mint", required=MINT_LEN, actual=len(data))
    return data[:36] + supply.to_bytes(8, "little") + data[44:]


# ---------------------------------------------------------------------------
# Offer
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class OfferRecord:
    discriminator: bytes
    id: int
    maker: Pubkey
    mint_a: Pubkey
    mint_b: Pubkey
    wanted_amount: int
    bump: int

    @classmethod
    def from_bytes(cls, data: bytes) -> "OfferRecord":
        if len(data) < OFFER_LEN:
            raise DataTooShortError("offer", required=OFFER_LEN, actual=len(data))
        return cls(
            discriminator=bytes(data[:DISCRIMINATOR_LEN]),
            id=read_u64(data, 8),
            maker=read_pubkey(data, 16),
            mint_a=read_pubkey(data, 48),
            mint_b=read_pubkey(data, 80),
            wanted_amount=read_u64(data, 112),
            bump=read_u8(data, 120),
        )

    @classmethod
    def from_record(cls, record: AccountRecord) -> "OfferRecord":
        return cls.from_bytes(record.data)

    def has_anchor_discriminator(self) -> bool:
        return self.discriminator == account_discriminator(OFFER_ACCOUNT_NAME)


def encode_offer(
    offer_id: int,
    maker: Pubkey,
    mint_a: Pubkey,
    mint_b: Pubkey,
    wanted_amount: int,
    bump: int,
) -> bytes:
    out = bytearray(account_discriminator(OFFER_ACCOUNT_NAME))
    out += offer_id.to_bytes(8, "little")
    out += maker.raw
    out += mint_a.raw
    out += mint_b.raw
    out += wanted_amount.to_bytes(8, "little")
    out.append(bump)
    assert len(out) == OFFER_LEN
    return bytes(out)
