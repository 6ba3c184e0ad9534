from __future__ import annotations

from dataclasses import replace

import pytest

from escrow_harness.errors import SourceCheckError
from escrow_harness.integration.introspection import (
    AccountInfo,
    ErrorInfo,
    FieldInfo,
    InstructionInfo,
    ProgramInfo,
    StructInfo,
)
from escrow_harness.scenario.source_checks import SOURCE_CHECKS, check_offer_struct, check_vault_declared


def _info() -> ProgramInfo:
    return ProgramInfo(
        program_id="Fg6PaFpoGXkYsidMpWTK6W2BeZ7FEfcYkg476zPFsLnS",
        instructions=(InstructionInfo(name="make_offer", arguments=()), InstructionInfo(name="take_offer", arguments=())),
        accounts=(
            AccountInfo(
                name="MakeOffer",
                fields=(FieldInfo(name="maker", type_name="Signer"), FieldInfo(name="vault", type_name="Account")),
            ),
        ),
        errors=(ErrorInfo(name="InsufficientFunds", code=6000, message="Insufficient funds"),),
        structs=(
            StructInfo(
                name="Offer",
                fields=tuple(FieldInfo(name=n, type_name="Pubkey") for n in ("maker", "token_mint_a", "token_mint_b")),
            ),
            StructInfo(name="VaultState", fields=(FieldInfo(name="authority", type_name="Pubkey"),)),
        ),
    )


@pytest.mark.parametrize("name", sorted(SOURCE_CHECKS))
def test_complete_program_passes(name: str) -> None:
    SOURCE_CHECKS[name](_info())


@pytest.mark.parametrize(
    "name,broken",
    [
        ("anchor_program", lambda i: replace(i, instructions=())),
        ("anchor_program", lambda i: replace(i, accounts=())),
        ("cpi_usage", lambda i: replace(i, accounts=())),
        ("error_messages", lambda i: replace(i, errors=(ErrorInfo(name="Oops", code=6000, message=""),))),
        ("vault_authority_field", lambda i: replace(i, structs=(), accounts=())),
    ],
)
def test_missing_constructs_rejected(name: str, broken) -> None:
    with pytest.raises(SourceCheckError):
        SOURCE_CHECKS[name](broken(_info()))


def test_offer_struct_needs_three_fields() -> None:
    info = _info()
    small = StructInfo(name="Offer", fields=info.structs[0].fields[:2])
    with pytest.raises(SourceCheckError, match="Offer struct"):
        check_offer_struct(replace(info, structs=(small,)))


def test_vault_found_on_account_or_struct() -> None:
    info = _info()
    check_vault_declared(replace(info, structs=()))
    no_vault = replace(info, structs=(), accounts=(AccountInfo(name="MakeOffer", fields=()),))
    with pytest.raises(SourceCheckError):
        check_vault_declared(no_vault)
