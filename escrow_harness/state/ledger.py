"""
In-memory account ledger for one harness run.

Implements AccountLedger[Pubkey] -> AccountRecord
"""

from __future__ import annotations

from typing import Dict, Iterable, Iterator, List, Optional, Tuple

from ..errors import LedgerSealedError
from .accounts import AccountRecord, KeyedAccount, Pubkey


class AccountLedger:
    """
    Mapping from address to account record.

    Absent means absent: there is no implicit zero account, so `get` returns
    None for anything not inserted. Records are immutable, so every read is a
    snapshot by construction.

    Setup writes go through `put`. The execution adapter seals the ledger when
    it submits the first instruction; from then on the only mutation path left
    is `apply_deltas`, which keeps every post-setup change attributable to an
    execution step.
    """

    def __init__(self) -> None:
        self._accounts: Dict[Pubkey, AccountRecord] = {}
        self._sealed = False

    @property
    def sealed(self) -> bool:
        return self._sealed

    def seal(self) -> None:
        self._sealed = True

    def put(self, address: Pubkey, record: AccountRecord) -> None:
        """
        Insert or replace an account during setup.

        Raises:
            LedgerSealedError: If the ledger has been sealed
            TypeError: If address or record have the wrong type
        """
        if self._sealed:
            raise LedgerSealedError(f"ledger is sealed; cannot put {address}")
        _check_entry(address, record)
        self._accounts[address] = record

    def get(self, address: Pubkey) -> Optional[AccountRecord]:
        return self._accounts.get(address)

    def snapshot_all(self) -> List[KeyedAccount]:
        """All (address, record) pairs, sorted by address bytes."""
        return sorted(self._accounts.items(), key=lambda item: item[0].raw)

    def apply_deltas(self, deltas: Iterable[Tuple[Pubkey, AccountRecord]]) -> None:
        """
        Replace-or-insert every entry.

        Entries are checked before any is written, so a malformed batch leaves
        the ledger untouched.
        """
        staged = list(deltas)
        for address, record in staged:
            _check_entry(address, record)
        for address, record in staged:
            self._accounts[address] = record

    def addresses(self) -> List[Pubkey]:
        return sorted(self._accounts, key=lambda pk: pk.raw)

    def total_lamports(self) -> int:
        return sum(record.lamports for record in self._accounts.values())

    def __contains__(self, address: object) -> bool:
        return address in self._accounts

    def __len__(self) -> int:
        return len(self._accounts)

    def __iter__(self) -> Iterator[Pubkey]:
        return iter(self.addresses())

    def __repr__(self) -> str:
        state = "sealed" if self._sealed else "open"
        return f"AccountLedger({len(self._accounts)} accounts, {state})"


def _check_entry(address: object, record: object) -> None:
    if not isinstance(address, Pubkey):
        raise TypeError(f"ledger address must be a Pubkey, got {type(address).__name__}")
    if not isinstance(record, AccountRecord):
        raise TypeError(f"ledger entry must be an AccountRecord, got {type(record).__name__}")
