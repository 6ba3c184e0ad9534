"""
Execution oracle boundary (imperative shell).

The harness never interprets program machine code itself. An `ExecutionOracle`
receives an instruction plus a full snapshot of the ledger and answers with
the accounts it would write. `ExecutionAdapter` owns the ledger side of that
exchange: it validates the answer completely before applying any of it, so a
failed or malformed execution leaves the ledger exactly as it was.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Protocol, Sequence, Tuple, runtime_checkable

from ..core.codec import Instruction
from ..errors import ExecutionError, OracleProtocolError
from ..state.accounts import AccountRecord, KeyedAccount, Pubkey
from ..state.ledger import AccountLedger

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OracleResult:
    ok: bool
    resulting_accounts: Tuple[KeyedAccount, ...] = field(default=(), repr=False)
    error: Optional[str] = None


@runtime_checkable
class ExecutionOracle(Protocol):
    def process_instruction(self, instruction: Instruction, accounts: Sequence[KeyedAccount]) -> OracleResult:
        ...


def _validate_result(result: object) -> List[KeyedAccount]:
    if not isinstance(result, OracleResult):
        raise OracleProtocolError(f"oracle returned {type(result).__name__}, expected OracleResult")
    if not isinstance(result.ok, bool):
        raise OracleProtocolError("oracle result ok must be a bool")
    entries = list(result.resulting_accounts)
    seen = set()
    for idx, entry in enumerate(entries):
        if not isinstance(entry, tuple) or len(entry) != 2:
            raise OracleProtocolError(f"resulting_accounts[{idx}] is not an (address, record) pair")
        address, record = entry
        if not isinstance(address, Pubkey):
            raise OracleProtocolError(f"resulting_accounts[{idx}] address is {type(address).__name__}")
        if not isinstance(record, AccountRecord):
            raise OracleProtocolError(f"resulting_accounts[{idx}] record is {type(record).__name__}")
        if address in seen:
            raise OracleProtocolError(f"resulting_accounts lists {address} twice")
        seen.add(address)
    return entries


class ExecutionAdapter:
    """Submits instructions against a ledger and writes back the oracle's deltas."""

    def __init__(self, ledger: AccountLedger, oracle: ExecutionOracle) -> None:
        self._ledger = ledger
        self._oracle = oracle

    @property
    def ledger(self) -> AccountLedger:
        return self._ledger

    def execute(self, instruction: Instruction, *, name: Optional[str] = None) -> None:
        """
        Run one instruction.

        Raises:
            ExecutionError: The oracle rejected the instruction (nothing applied)
            OracleProtocolError: The oracle answer was malformed (nothing applied)
        """
        label = name or instruction.name
        if not self._ledger.sealed:
            self._ledger.seal()
        snapshot = self._ledger.snapshot_all()
        logger.debug(
            "submitting %s to %s with %d accounts (%d ledger entries)",
            label or "instruction",
            instruction.program_id,
            len(instruction.accounts),
            len(snapshot),
        )
        result = self._oracle.process_instruction(instruction, snapshot)
        entries = _validate_result(result)

        if not result.ok:
            diagnostic = result.error or "execution failed without diagnostic"
            logger.debug("%s rejected: %s", label or "instruction", diagnostic)
            raise ExecutionError(diagnostic, instruction_name=label)

        self._ledger.apply_deltas(entries)
        logger.debug("%s applied %d account updates", label or "instruction", len(entries))
