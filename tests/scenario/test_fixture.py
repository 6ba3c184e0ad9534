from __future__ import annotations

from dataclasses import replace

import pytest

from escrow_harness.core.layouts import MintView
from escrow_harness.core.pda import associated_token_address, derive_offer_address
from escrow_harness.errors import AccountNotFoundError, ExecutionError, LedgerSealedError
from escrow_harness.integration.reference_oracle import ReferenceEscrowOracle
from escrow_harness.scenario.fixture import (
    MAKE_OFFER_ROLES,
    TAKE_OFFER_ROLES,
    ScenarioAmounts,
    ScenarioFixture,
)
from escrow_harness.state.accounts import SYSTEM_PROGRAM_ID, TOKEN_PROGRAM_ID, Pubkey, system_account


TOKEN_PROGRAM_INDEX = MAKE_OFFER_ROLES.index("token_program")


def _fixture(amounts: ScenarioAmounts | None = None) -> ScenarioFixture:
    program_id = Pubkey.new_unique()
    return ScenarioFixture.build(program_id, ReferenceEscrowOracle(program_id), amounts)


def test_build_layout() -> None:
    fixture = _fixture()
    assert not fixture.ledger.sealed
    assert fixture.maker_ata_a == associated_token_address(fixture.maker, fixture.mint_a)
    assert fixture.taker_ata_b == associated_token_address(fixture.taker, fixture.mint_b)
    derived = derive_offer_address(fixture.maker, fixture.amounts.offer_id, fixture.program_id)
    assert (fixture.offer, fixture.offer_bump) == (derived.address, derived.bump)
    assert fixture.vault == associated_token_address(fixture.offer, fixture.mint_a)
    assert fixture.account(fixture.offer).owner == SYSTEM_PROGRAM_ID
    assert fixture.account(fixture.offer).lamports == 0
    assert fixture.token_balance(fixture.maker_ata_a) == fixture.amounts.maker_balance_a
    assert fixture.token_balance(fixture.taker_ata_b) == fixture.amounts.taker_balance_b
    assert MintView.from_record(fixture.account(fixture.mint_a)).supply == fixture.amounts.maker_balance_a


def test_checkpoint_can_add_impostor_before_execution() -> None:
    fixture = _fixture()
    impostor = Pubkey.new_unique()
    fixture.ledger.put(impostor, system_account(10**9))

    fixture.make_offer()
    assert fixture.ledger.sealed
    with pytest.raises(LedgerSealedError):
        fixture.ledger.put(Pubkey.new_unique(), system_account(1))

    tampered = fixture.replace_account(fixture.take_offer_instruction(), "maker", impostor)
    with pytest.raises(ExecutionError, match="ConstraintHasOne"):
        fixture.execute(tampered)
    assert fixture.account(impostor).lamports == 10**9
    assert fixture.token_balance(fixture.vault) == fixture.amounts.offered


def test_fixtures_are_independent() -> None:
    first = _fixture()
    second = _fixture()
    assert first.maker != second.maker
    assert first.mint_a != second.mint_a


def test_instruction_layouts() -> None:
    fixture = _fixture()
    make = fixture.make_offer_instruction()
    take = fixture.take_offer_instruction()
    assert len(make.accounts) == len(MAKE_OFFER_ROLES)
    assert len(take.accounts) == len(TAKE_OFFER_ROLES)
    assert make.accounts[0].is_signer and make.accounts[0].pubkey == fixture.maker
    assert take.accounts[0].is_signer and take.accounts[0].pubkey == fixture.taker
    assert make.accounts[TOKEN_PROGRAM_INDEX].pubkey == TOKEN_PROGRAM_ID
    assert len(make.data) == 8 + 3 * 8
    assert len(take.data) == 8


def test_replace_account() -> None:
    fixture = _fixture()
    other = Pubkey.new_unique()
    ix = fixture.replace_account(fixture.take_offer_instruction(), "maker", other)
    index = TAKE_OFFER_ROLES.index("maker")
    assert ix.accounts[index].pubkey == other
    assert ix.accounts[index].is_writable and not ix.accounts[index].is_signer
    assert fixture.take_offer_instruction().accounts[index].pubkey == fixture.maker

    with pytest.raises(ValueError, match="no account role"):
        fixture.replace_account(fixture.make_offer_instruction(), "taker", other)
    with pytest.raises(ValueError, match="unknown instruction"):
        fixture.replace_account(replace(fixture.make_offer_instruction(), name=None), "maker", other)


def test_full_swap_moves_tokens_and_conserves_lamports() -> None:
    fixture = _fixture(ScenarioAmounts(offered=400_000, wanted=250_000))
    lamports_before = fixture.ledger.total_lamports()
    maker_lamports = fixture.account(fixture.maker).lamports

    fixture.make_offer()
    assert fixture.token_balance(fixture.maker_ata_a) == 600_000
    assert fixture.token_balance(fixture.vault) == 400_000
    assert fixture.account(fixture.offer).owner == fixture.program_id
    assert fixture.account(fixture.maker).lamports < maker_lamports

    fixture.take_offer()
    assert fixture.token_balance(fixture.taker_ata_a) == 400_000
    assert fixture.token_balance(fixture.maker_ata_b) == 250_000
    assert fixture.token_balance(fixture.taker_ata_b) == 750_000
    assert fixture.account(fixture.maker).lamports == maker_lamports
    assert fixture.ledger.total_lamports() == lamports_before

    supply_a = sum(fixture.token_balance(a) for a in (fixture.maker_ata_a, fixture.taker_ata_a))
    assert supply_a == fixture.amounts.maker_balance_a


def test_account_lookup_errors() -> None:
    fixture = _fixture()
    with pytest.raises(AccountNotFoundError):
        fixture.account(Pubkey.new_unique())


@pytest.mark.parametrize("field", ["offered", "wanted", "offer_id"])
def test_amounts_validated(field: str) -> None:
    with pytest.raises(ValueError, match=field):
        ScenarioAmounts(**{field: -1})
    with pytest.raises(ValueError, match=field):
        ScenarioAmounts(**{field: 1 << 64})
