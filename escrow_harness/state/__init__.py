"""
Simulated ledger state for the escrow harness
"""

from .accounts import (
    ASSOCIATED_TOKEN_PROGRAM_ID,
    BPF_LOADER_ID,
    NATIVE_LOADER_ID,
    SYSTEM_PROGRAM_ID,
    TOKEN_PROGRAM_ID,
    AccountRecord,
    KeyedAccount,
    Pubkey,
    rent_exempt_minimum,
)
from .canonical import ledger_root
from .ledger import AccountLedger

__all__ = [
    "ASSOCIATED_TOKEN_PROGRAM_ID",
    "BPF_LOADER_ID",
    "NATIVE_LOADER_ID",
    "SYSTEM_PROGRAM_ID",
    "TOKEN_PROGRAM_ID",
    "AccountRecord",
    "AccountLedger",
    "KeyedAccount",
    "Pubkey",
    "ledger_root",
    "rent_exempt_minimum",
]
