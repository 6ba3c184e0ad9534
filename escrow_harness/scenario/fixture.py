"""
Canonical two-party swap scenario.

One fixture per checkpoint: build() populates a fresh ledger with the three
builtin programs, a maker and a taker, two mints, the four associated token
accounts and empty placeholders at the derived offer and vault addresses.
Checkpoints may still `put` extra accounts until the first instruction is
submitted; from then on only executed instructions change the ledger.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from ..core.codec import AccountMeta, Instruction, encode_instruction_data
from ..core.layouts import MINT_LEN, TOKEN_ACCOUNT_LEN, encode_mint, encode_token_account
from ..core.pda import associated_token_address, derive_offer_address
from ..core.predicates import token_amount
from ..errors import AccountNotFoundError
from ..integration.oracle import ExecutionAdapter, ExecutionOracle
from ..state.accounts import (
    ASSOCIATED_TOKEN_PROGRAM_ID,
    BPF_LOADER_ID,
    NATIVE_LOADER_ID,
    SYSTEM_PROGRAM_ID,
    TOKEN_PROGRAM_ID,
    U64_MAX,
    AccountRecord,
    Pubkey,
    empty_system_account,
    program_account,
    rent_exempt_minimum,
    system_account,
)
from ..state.ledger import AccountLedger

logger = logging.getLogger(__name__)

MAKE_OFFER = "make_offer"
TAKE_OFFER = "take_offer"

MAKE_OFFER_ROLES: Tuple[str, ...] = (
    "maker",
    "token_mint_a",
    "token_mint_b",
    "maker_token_account_a",
    "offer",
    "vault",
    "system_program",
    "token_program",
    "associated_token_program",
)

TAKE_OFFER_ROLES: Tuple[str, ...] = (
    "taker",
    "maker",
    "token_mint_a",
    "token_mint_b",
    "taker_token_account_a",
    "taker_token_account_b",
    "maker_token_account_b",
    "offer",
    "vault",
    "system_program",
    "token_program",
    "associated_token_program",
)

_ROLES: Dict[str, Tuple[str, ...]] = {MAKE_OFFER: MAKE_OFFER_ROLES, TAKE_OFFER: TAKE_OFFER_ROLES}


@dataclass(frozen=True)
class ScenarioAmounts:
    offered: int = 1_000_000
    wanted: int = 1_000_000
    maker_balance_a: int = 1_000_000
    taker_balance_b: int = 1_000_000
    decimals: int = 6
    offer_id: int = 1
    actor_lamports: int = 1_000_000_000

    def __post_init__(self) -> None:
        for name in ("offered", "wanted", "maker_balance_a", "taker_balance_b", "offer_id", "actor_lamports"):
            value = getattr(self, name)
            if not isinstance(value, int) or isinstance(value, bool) or not 0 <= value <= U64_MAX:
                raise ValueError(f"{name} must be a u64, got {value!r}")
        if not isinstance(self.decimals, int) or isinstance(self.decimals, bool) or not 0 <= self.decimals <= 255:
            raise ValueError(f"decimals must be a u8, got {self.decimals!r}")


class ScenarioFixture:
    """
    Built swap scenario: named participants over one ledger.

    Attributes mirror the escrow program's account roles so checkpoints can
    inspect any of them after executing make_offer / take_offer.
    """

    def __init__(
        self,
        *,
        program_id: Pubkey,
        ledger: AccountLedger,
        oracle: ExecutionOracle,
        amounts: ScenarioAmounts,
        maker: Pubkey,
        taker: Pubkey,
        mint_a: Pubkey,
        mint_b: Pubkey,
        maker_ata_a: Pubkey,
        maker_ata_b: Pubkey,
        taker_ata_a: Pubkey,
        taker_ata_b: Pubkey,
        offer: Pubkey,
        offer_bump: int,
        vault: Pubkey,
    ) -> None:
        self.program_id = program_id
        self.ledger = ledger
        self.amounts = amounts
        self.maker = maker
        self.taker = taker
        self.mint_a = mint_a
        self.mint_b = mint_b
        self.maker_ata_a = maker_ata_a
        self.maker_ata_b = maker_ata_b
        self.taker_ata_a = taker_ata_a
        self.taker_ata_b = taker_ata_b
        self.offer = offer
        self.offer_bump = offer_bump
        self.vault = vault
        self._adapter = ExecutionAdapter(ledger, oracle)

    @classmethod
    def build(
        cls,
        program_id: Pubkey,
        oracle: ExecutionOracle,
        amounts: Optional[ScenarioAmounts] = None,
    ) -> "ScenarioFixture":
        amounts = amounts or ScenarioAmounts()
        ledger = AccountLedger()

        ledger.put(SYSTEM_PROGRAM_ID, program_account(NATIVE_LOADER_ID))
        ledger.put(TOKEN_PROGRAM_ID, program_account(BPF_LOADER_ID))
        ledger.put(ASSOCIATED_TOKEN_PROGRAM_ID, program_account(BPF_LOADER_ID))

        maker = Pubkey.new_unique()
        taker = Pubkey.new_unique()
        ledger.put(maker, system_account(amounts.actor_lamports))
        ledger.put(taker, system_account(amounts.actor_lamports))

        mint_a = Pubkey.new_unique()
        mint_b = Pubkey.new_unique()
        mint_lamports = rent_exempt_minimum(MINT_LEN)
        ledger.put(
            mint_a,
            AccountRecord(
                owner=TOKEN_PROGRAM_ID,
                lamports=mint_lamports,
                data=encode_mint(maker, amounts.maker_balance_a, amounts.decimals),
            ),
        )
        ledger.put(
            mint_b,
            AccountRecord(
                owner=TOKEN_PROGRAM_ID,
                lamports=mint_lamports,
                data=encode_mint(taker, amounts.taker_balance_b, amounts.decimals),
            ),
        )

        token_lamports = rent_exempt_minimum(TOKEN_ACCOUNT_LEN)
        holdings = (
            (maker, mint_a, amounts.maker_balance_a),
            (maker, mint_b, 0),
            (taker, mint_a, 0),
            (taker, mint_b, amounts.taker_balance_b),
        )
        atas = []
        for wallet, mint, amount in holdings:
            ata = associated_token_address(wallet, mint)
            ledger.put(
                ata,
                AccountRecord(
                    owner=TOKEN_PROGRAM_ID,
                    lamports=token_lamports,
                    data=encode_token_account(mint, wallet, amount),
                ),
            )
            atas.append(ata)
        maker_ata_a, maker_ata_b, taker_ata_a, taker_ata_b = atas

        offer, offer_bump = derive_offer_address(maker, amounts.offer_id, program_id)
        vault = associated_token_address(offer, mint_a)
        ledger.put(offer, empty_system_account())
        ledger.put(vault, empty_system_account())

        logger.info("scenario built: program=%s offer=%s vault=%s (%d accounts)", program_id, offer, vault, len(ledger))

        return cls(
            program_id=program_id,
            ledger=ledger,
            oracle=oracle,
            amounts=amounts,
            maker=maker,
            taker=taker,
            mint_a=mint_a,
            mint_b=mint_b,
            maker_ata_a=maker_ata_a,
            maker_ata_b=maker_ata_b,
            taker_ata_a=taker_ata_a,
            taker_ata_b=taker_ata_b,
            offer=offer,
            offer_bump=offer_bump,
            vault=vault,
        )

    # ------------------------------------------------------------------
    # Instruction builders
    # ------------------------------------------------------------------

    def make_offer_instruction(self) -> Instruction:
        data = encode_instruction_data(
            MAKE_OFFER,
            [
                ("u64", self.amounts.offer_id),
                ("u64", self.amounts.offered),
                ("u64", self.amounts.wanted),
            ],
        )
        accounts = (
            AccountMeta.writable(self.maker, signer=True),
            AccountMeta.readonly(self.mint_a),
            AccountMeta.readonly(self.mint_b),
            AccountMeta.writable(self.maker_ata_a),
            AccountMeta.writable(self.offer),
            AccountMeta.writable(self.vault),
            AccountMeta.readonly(SYSTEM_PROGRAM_ID),
            AccountMeta.readonly(TOKEN_PROGRAM_ID),
            AccountMeta.readonly(ASSOCIATED_TOKEN_PROGRAM_ID),
        )
        return Instruction(program_id=self.program_id, accounts=accounts, data=data, name=MAKE_OFFER)

    def take_offer_instruction(self) -> Instruction:
        data = encode_instruction_data(TAKE_OFFER)
        accounts = (
            AccountMeta.writable(self.taker, signer=True),
            AccountMeta.writable(self.maker),
            AccountMeta.readonly(self.mint_a),
            AccountMeta.readonly(self.mint_b),
            AccountMeta.writable(self.taker_ata_a),
            AccountMeta.writable(self.taker_ata_b),
            AccountMeta.writable(self.maker_ata_b),
            AccountMeta.writable(self.offer),
            AccountMeta.writable(self.vault),
            AccountMeta.readonly(SYSTEM_PROGRAM_ID),
            AccountMeta.readonly(TOKEN_PROGRAM_ID),
            AccountMeta.readonly(ASSOCIATED_TOKEN_PROGRAM_ID),
        )
        return Instruction(program_id=self.program_id, accounts=accounts, data=data, name=TAKE_OFFER)

    @staticmethod
    def replace_account(
        instruction: Instruction,
        role: str,
        address: Pubkey,
        *,
        is_signer: bool = False,
        is_writable: bool = True,
    ) -> Instruction:
        """
        Copy of `instruction` with the account in `role` substituted.

        Raises:
            ValueError: If the instruction or role is unknown
        """
        roles = _ROLES.get(instruction.name or "")
        if roles is None:
            raise ValueError(f"unknown instruction for role lookup: {instruction.name!r}")
        try:
            index = roles.index(role)
        except ValueError as exc:
            raise ValueError(f"{instruction.name} has no account role {role!r}") from exc
        return instruction.with_account(index, AccountMeta(address, is_signer=is_signer, is_writable=is_writable))

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def execute(self, instruction: Instruction) -> None:
        """Raises ExecutionError verbatim from the adapter."""
        self._adapter.execute(instruction)

    def make_offer(self) -> None:
        self.execute(self.make_offer_instruction())

    def take_offer(self) -> None:
        self.execute(self.take_offer_instruction())

    # ------------------------------------------------------------------
    # Inspection
    # ------------------------------------------------------------------

    def account(self, address: Pubkey) -> AccountRecord:
        record = self.ledger.get(address)
        if record is None:
            raise AccountNotFoundError(address)
        return record

    def token_balance(self, address: Pubkey) -> int:
        return token_amount(self.account(address))
