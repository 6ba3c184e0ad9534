from __future__ import annotations

from typing import Sequence

import pytest

from escrow_harness.core.codec import AccountMeta, Instruction
from escrow_harness.errors import ExecutionError, LedgerSealedError, OracleProtocolError
from escrow_harness.integration.oracle import ExecutionAdapter, ExecutionOracle, OracleResult
from escrow_harness.state.accounts import SYSTEM_PROGRAM_ID, AccountRecord, KeyedAccount, Pubkey
from escrow_harness.state.canonical import ledger_root
from escrow_harness.state.ledger import AccountLedger


class _ScriptedOracle:
    def __init__(self, result: object) -> None:
        self.result = result
        self.seen: list[tuple[Instruction, list[KeyedAccount]]] = []

    def process_instruction(self, instruction: Instruction, accounts: Sequence[KeyedAccount]) -> OracleResult:
        self.seen.append((instruction, list(accounts)))
        return self.result  # type: ignore[return-value]


def _setup() -> tuple[AccountLedger, Pubkey, Instruction]:
    ledger = AccountLedger()
    key = Pubkey.new_unique()
    ledger.put(key, AccountRecord(owner=SYSTEM_PROGRAM_ID, lamports=10))
    ix = Instruction(Pubkey.new_unique(), (AccountMeta.writable(key, signer=True),), b"\x00" * 8, name="demo")
    return ledger, key, ix


def test_scripted_oracle_satisfies_protocol() -> None:
    assert isinstance(_ScriptedOracle(None), ExecutionOracle)


def test_success_applies_all_deltas_and_sends_snapshot() -> None:
    ledger, key, ix = _setup()
    created = Pubkey.new_unique()
    oracle = _ScriptedOracle(
        OracleResult(
            ok=True,
            resulting_accounts=(
                (key, AccountRecord(owner=SYSTEM_PROGRAM_ID, lamports=4)),
                (created, AccountRecord(owner=SYSTEM_PROGRAM_ID, lamports=6)),
            ),
        )
    )
    ExecutionAdapter(ledger, oracle).execute(ix)

    assert ledger.get(key).lamports == 4
    assert ledger.get(created).lamports == 6
    sent_ix, sent_accounts = oracle.seen[0]
    assert sent_ix == ix
    assert sent_accounts == [(key, AccountRecord(owner=SYSTEM_PROGRAM_ID, lamports=10))]


def test_failure_raises_with_diagnostic_and_applies_nothing() -> None:
    ledger, key, ix = _setup()
    before = ledger_root(ledger)
    oracle = _ScriptedOracle(
        OracleResult(ok=False, resulting_accounts=((key, AccountRecord(owner=SYSTEM_PROGRAM_ID)),), error="custom program error: 0x1")
    )
    with pytest.raises(ExecutionError) as info:
        ExecutionAdapter(ledger, oracle).execute(ix)
    assert info.value.diagnostic == "custom program error: 0x1"
    assert info.value.instruction_name == "demo"
    assert info.value.mentions("0X1")
    assert ledger_root(ledger) == before


@pytest.mark.parametrize(
    "result",
    [
        None,
        {"ok": True},
        OracleResult(ok=1),  # type: ignore[arg-type]
        OracleResult(ok=True, resulting_accounts=(("not-a-key", AccountRecord(owner=SYSTEM_PROGRAM_ID)),)),  # type: ignore[arg-type]
        OracleResult(ok=True, resulting_accounts=((Pubkey.default(), {"lamports": 1}),)),  # type: ignore[arg-type]
        OracleResult(ok=True, resulting_accounts=((Pubkey.default(),),)),  # type: ignore[arg-type]
    ],
)
def test_malformed_result_is_protocol_error(result: object) -> None:
    ledger, _, ix = _setup()
    before = ledger_root(ledger)
    with pytest.raises(OracleProtocolError):
        ExecutionAdapter(ledger, _ScriptedOracle(result)).execute(ix)
    assert ledger_root(ledger) == before


def test_partially_valid_batch_applies_nothing() -> None:
    ledger, key, ix = _setup()
    before = ledger_root(ledger)
    result = OracleResult(
        ok=True,
        resulting_accounts=(
            (key, AccountRecord(owner=SYSTEM_PROGRAM_ID, lamports=1)),
            (key, AccountRecord(owner=SYSTEM_PROGRAM_ID, lamports=2)),
        ),
    )
    with pytest.raises(OracleProtocolError, match="twice"):
        ExecutionAdapter(ledger, _ScriptedOracle(result)).execute(ix)
    assert ledger_root(ledger) == before


def test_first_submission_seals_the_ledger() -> None:
    ledger, key, ix = _setup()
    assert not ledger.sealed
    ledger.put(Pubkey.new_unique(), AccountRecord(owner=SYSTEM_PROGRAM_ID, lamports=1))

    with pytest.raises(ExecutionError):
        ExecutionAdapter(ledger, _ScriptedOracle(OracleResult(ok=False, error="nope"))).execute(ix)
    assert ledger.sealed
    with pytest.raises(LedgerSealedError):
        ledger.put(key, AccountRecord(owner=SYSTEM_PROGRAM_ID, lamports=99))
