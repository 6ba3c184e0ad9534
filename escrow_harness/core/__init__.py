"""
Pure escrow-harness algorithms: address derivation, instruction codec,
account layouts and verification predicates
"""

from .codec import (
    AccountMeta,
    Instruction,
    account_discriminator,
    decode_instruction_data,
    encode_instruction_data,
    instruction_discriminator,
)
from .layouts import (
    MINT_LEN,
    OFFER_LEN,
    TOKEN_ACCOUNT_LEN,
    MintView,
    OfferRecord,
    TokenAccountView,
    encode_mint,
    encode_offer,
    encode_token_account,
)
from .pda import (
    DerivedAddress,
    associated_token_address,
    create_program_address,
    derive_offer_address,
    find_program_address,
    is_on_curve,
)
from .predicates import (
    decode_offer,
    expect_account_owner,
    expect_closed,
    expect_offer,
    expect_token_amount,
    expect_token_mint,
    expect_token_owner,
    token_amount,
    token_mint,
    token_owner,
)

__all__ = [
    "AccountMeta",
    "Instruction",
    "account_discriminator",
    "decode_instruction_data",
    "encode_instruction_data",
    "instruction_discriminator",
    "MINT_LEN",
    "OFFER_LEN",
    "TOKEN_ACCOUNT_LEN",
    "MintView",
    "OfferRecord",
    "TokenAccountView",
    "encode_mint",
    "encode_offer",
    "encode_token_account",
    "DerivedAddress",
    "associated_token_address",
    "create_program_address",
    "derive_offer_address",
    "find_program_address",
    "is_on_curve",
    "decode_offer",
    "expect_account_owner",
    "expect_closed",
    "expect_offer",
    "expect_token_amount",
    "expect_token_mint",
    "expect_token_owner",
    "token_amount",
    "token_mint",
    "token_owner",
]
