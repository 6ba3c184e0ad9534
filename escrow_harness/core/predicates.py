"""
Verification predicates over account records.

Extractors return the decoded value; `expect_*` helpers compare against the
scenario's expectation and raise `FieldMismatchError` naming the field, the
expected value and the observed value. Both raise `DataTooShortError` for
undersized data.
"""

from __future__ import annotations

from typing import Optional

from ..errors import FieldMismatchError
from ..state.accounts import AccountRecord, Pubkey
from .layouts import OfferRecord, TokenAccountView


def token_amount(record: AccountRecord) -> int:
    return TokenAccountView.from_record(record).amount


def token_owner(record: AccountRecord) -> Pubkey:
    return TokenAccountView.from_record(record).owner


def token_mint(record: AccountRecord) -> Pubkey:
    return TokenAccountView.from_record(record).mint


def decode_offer(record: AccountRecord) -> OfferRecord:
    return OfferRecord.from_record(record)


def _expect(field: str, expected: object, actual: object) -> None:
    if expected != actual:
        raise FieldMismatchError(field, expected=expected, actual=actual)


def expect_token_amount(record: AccountRecord, expected: int, *, label: str = "token amount") -> None:
    _expect(label, expected, token_amount(record))


def expect_token_owner(record: AccountRecord, expected: Pubkey, *, label: str = "token owner") -> None:
    _expect(label, expected, token_owner(record))


def expect_token_mint(record: AccountRecord, expected: Pubkey, *, label: str = "token mint") -> None:
    _expect(label, expected, token_mint(record))


def expect_account_owner(record: AccountRecord, expected: Pubkey, *, label: str = "account owner") -> None:
    _expect(label, expected, record.owner)


def expect_offer(
    record: AccountRecord,
    *,
    offer_id: Optional[int] = None,
    maker: Optional[Pubkey] = None,
    mint_a: Optional[Pubkey] = None,
    mint_b: Optional[Pubkey] = None,
    wanted_amount: Optional[int] = None,
    bump: Optional[int] = None,
    require_discriminator: bool = False,
) -> OfferRecord:
    """
    Decode an offer and compare every field that was given.

    Returns the decoded record so callers can make further assertions.
    """
    offer = decode_offer(record)
    if require_discriminator and not offer.has_anchor_discriminator():
        raise FieldMismatchError("offer discriminator", expected="sha256('account:Offer')[:8]", actual=offer.discriminator.hex())
    checks = (
        ("offer id", offer_id, offer.id),
        ("offer maker", maker, offer.maker),
        ("offer mint_a", mint_a, offer.mint_a),
        ("offer mint_b", mint_b, offer.mint_b),
        ("offer wanted_amount", wanted_amount, offer.wanted_amount),
        ("offer bump", bump, offer.bump),
    )
    for name, expected, actual in checks:
        if expected is not None:
            _expect(name, expected, actual)
    return offer


def expect_closed(record: Optional[AccountRecord], *, label: str = "account") -> None:
    """Absent, or drained to zero lamports with no data."""
    if record is None:
        return
    _expect(f"{label} lamports", 0, record.lamports)
    _expect(f"{label} data length", 0, len(record.data))
