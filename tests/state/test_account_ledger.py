from __future__ import annotations

import pytest

from escrow_harness.errors import LedgerSealedError
from escrow_harness.state.accounts import SYSTEM_PROGRAM_ID, TOKEN_PROGRAM_ID, AccountRecord, Pubkey
from escrow_harness.state.ledger import AccountLedger


def _record(lamports: int, data: bytes = b"") -> AccountRecord:
    return AccountRecord(owner=SYSTEM_PROGRAM_ID, lamports=lamports, data=data)


def test_absent_is_not_zero() -> None:
    ledger = AccountLedger()
    key = Pubkey.new_unique()
    assert ledger.get(key) is None
    assert key not in ledger

    ledger.put(key, _record(0))
    assert ledger.get(key) == _record(0)
    assert key in ledger


def test_put_replaces_and_snapshot_is_sorted() -> None:
    ledger = AccountLedger()
    keys = [Pubkey.new_unique() for _ in range(5)]
    for i, key in enumerate(keys):
        ledger.put(key, _record(i))
    ledger.put(keys[0], _record(99))

    snapshot = ledger.snapshot_all()
    assert [k for k, _ in snapshot] == sorted(keys, key=lambda k: k.raw)
    assert dict(snapshot)[keys[0]].lamports == 99
    assert len(ledger) == 5
    assert ledger.total_lamports() == 99 + 1 + 2 + 3 + 4


def test_snapshot_is_independent_of_later_writes() -> None:
    ledger = AccountLedger()
    key = Pubkey.new_unique()
    ledger.put(key, _record(1))
    before = ledger.snapshot_all()
    ledger.apply_deltas([(key, _record(2))])
    assert dict(before)[key].lamports == 1
    assert ledger.get(key).lamports == 2


def test_seal_blocks_put_but_not_deltas() -> None:
    ledger = AccountLedger()
    key = Pubkey.new_unique()
    ledger.put(key, _record(1))
    ledger.seal()
    assert ledger.sealed

    with pytest.raises(LedgerSealedError):
        ledger.put(key, _record(2))

    other = Pubkey.new_unique()
    ledger.apply_deltas([(key, _record(3)), (other, AccountRecord(owner=TOKEN_PROGRAM_ID))])
    assert ledger.get(key).lamports == 3
    assert ledger.get(other).owner == TOKEN_PROGRAM_ID


def test_malformed_delta_batch_applies_nothing() -> None:
    ledger = AccountLedger()
    key = Pubkey.new_unique()
    ledger.put(key, _record(1))

    with pytest.raises(TypeError):
        ledger.apply_deltas([(key, _record(5)), (Pubkey.new_unique(), {"lamports": 1})])  # type: ignore[list-item]
    assert ledger.get(key).lamports == 1
    assert len(ledger) == 1


def test_put_type_checks() -> None:
    ledger = AccountLedger()
    with pytest.raises(TypeError):
        ledger.put(b"\x00" * 32, _record(1))  # type: ignore[arg-type]
