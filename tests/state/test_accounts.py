from __future__ import annotations

import pytest

from escrow_harness.state.accounts import (
    ASSOCIATED_TOKEN_PROGRAM_ID,
    SYSTEM_PROGRAM_ID,
    TOKEN_PROGRAM_ID,
    U64_MAX,
    AccountRecord,
    Pubkey,
    as_pubkey,
    empty_system_account,
    program_account,
    rent_exempt_minimum,
)


def test_well_known_program_ids_render_as_base58() -> None:
    assert str(SYSTEM_PROGRAM_ID) == "1" * 32
    assert str(TOKEN_PROGRAM_ID) == "TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA"
    assert str(ASSOCIATED_TOKEN_PROGRAM_ID) == "ATokenGPvbdGVxr1b2hvZbsiqW5xWH25efTNsLJA8knL"
    assert SYSTEM_PROGRAM_ID.is_default()
    assert not TOKEN_PROGRAM_ID.is_default()


def test_pubkey_string_round_trip_and_ordering() -> None:
    key = Pubkey.new_unique()
    assert Pubkey.from_string(str(key)) == key
    assert as_pubkey(str(key)) == key
    assert as_pubkey(key.raw) == key
    assert Pubkey(bytes(32)) < Pubkey(b"\x01" + bytes(31))


def test_pubkey_rejects_wrong_length() -> None:
    with pytest.raises(ValueError, match="32 bytes"):
        Pubkey(b"\x00" * 31)
    with pytest.raises(ValueError):
        Pubkey.from_string("111")
    with pytest.raises(ValueError):
        Pubkey.from_string("not-base58-0OIl")


def test_new_unique_addresses_are_distinct() -> None:
    keys = {Pubkey.new_unique() for _ in range(50)}
    assert len(keys) == 50


def test_rent_exempt_minimum_matches_cluster_defaults() -> None:
    assert rent_exempt_minimum(165) == 2_039_280
    assert rent_exempt_minimum(82) == 1_461_600
    assert rent_exempt_minimum(0) == 890_880
    with pytest.raises(ValueError):
        rent_exempt_minimum(-1)


def test_account_record_validates_fields() -> None:
    with pytest.raises(ValueError, match="u64"):
        AccountRecord(owner=SYSTEM_PROGRAM_ID, lamports=U64_MAX + 1)
    with pytest.raises(ValueError):
        AccountRecord(owner=SYSTEM_PROGRAM_ID, lamports=-1)
    with pytest.raises(TypeError):
        AccountRecord(owner=SYSTEM_PROGRAM_ID, lamports=True)
    with pytest.raises(TypeError):
        AccountRecord(owner=b"\x00" * 32)  # type: ignore[arg-type]


def test_account_record_copies_mutable_data() -> None:
    buf = bytearray(b"abc")
    record = AccountRecord(owner=SYSTEM_PROGRAM_ID, lamports=1, data=buf)
    buf[0] = 0
    assert record.data == b"abc"
    assert isinstance(record.data, bytes)


def test_empty_placeholder_is_present_but_empty() -> None:
    record = empty_system_account()
    assert record.is_empty()
    assert record.owner == SYSTEM_PROGRAM_ID


def test_program_account_is_executable() -> None:
    record = program_account(TOKEN_PROGRAM_ID)
    assert record.executable
    assert record.lamports > 0
