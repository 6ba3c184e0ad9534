"""
Reference escrow program (in-process execution oracle).

Models the canonical escrow/swap program together with the slice of the
system, token and associated-token programs it invokes. It exists to calibrate
the harness: every checkpoint must pass against it, and every tamper variant
must be rejected by it, without a native program runtime.

Instructions:

- make_offer(id: u64, token_a_offered_amount: u64, token_b_wanted_amount: u64)
    accounts: maker (signer, mut), mint_a, mint_b, maker_ata_a (mut),
              offer (mut, init PDA), vault (mut, init ATA(offer, mint_a)),
              system, token, associated token programs
    effects:  offer created and owned by the program; vault created and owned
              by the token program with authority = offer; `offered` moved
              from maker_ata_a into the vault; maker pays rent for both.

- take_offer()
    accounts: taker (signer, mut), maker (mut), mint_a, mint_b,
              taker_ata_a (mut), taker_ata_b (mut), maker_ata_b (mut),
              offer (mut, has_one maker/mint_a/mint_b), vault (mut),
              system, token, associated token programs
    effects:  `wanted` moved taker_ata_b -> maker_ata_b; the whole vault
              moved to taker_ata_a; vault and offer closed to maker.

All writes are staged on a private copy; only a fully successful instruction
produces deltas.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

from ..core.codec import (
    DISCRIMINATOR_LEN,
    AccountMeta,
    Instruction,
    decode_arg,
    instruction_discriminator,
)
from ..core.layouts import (
    MINT_LEN,
    OFFER_LEN,
    TOKEN_ACCOUNT_LEN,
    TOKEN_STATE_INITIALIZED,
    OfferRecord,
    TokenAccountView,
    encode_offer,
    encode_token_account,
    token_account_state,
    with_token_amount,
)
from ..core.pda import associated_token_address, create_program_address, derive_offer_address, offer_seeds
from ..errors import AddressDerivationError, DataTooShortError
from ..state.accounts import (
    ASSOCIATED_TOKEN_PROGRAM_ID,
    SYSTEM_PROGRAM_ID,
    TOKEN_PROGRAM_ID,
    U64_MAX,
    AccountRecord,
    KeyedAccount,
    Pubkey,
    rent_exempt_minimum,
)
from .oracle import OracleResult


MAKE_OFFER = "make_offer"
TAKE_OFFER = "take_offer"

MAKE_OFFER_ACCOUNTS = 9
TAKE_OFFER_ACCOUNTS = 12

# Anchor framework error numbers.
INSTRUCTION_FALLBACK_NOT_FOUND = 101
INSTRUCTION_DID_NOT_DESERIALIZE = 102
CONSTRAINT_MUT = 2000
CONSTRAINT_HAS_ONE = 2001
CONSTRAINT_SEEDS = 2006
CONSTRAINT_ASSOCIATED = 2009
CONSTRAINT_TOKEN_MINT = 2014
CONSTRAINT_TOKEN_OWNER = 2015
ACCOUNT_DISCRIMINATOR_MISMATCH = 3002
ACCOUNT_DID_NOT_DESERIALIZE = 3003
ACCOUNT_NOT_INITIALIZED = 3012
ACCOUNT_OWNED_BY_WRONG_PROGRAM = 3007
INVALID_PROGRAM_ID = 3008

# SPL token errors 1 / 14 and system program errors 0 / 1.
TOKEN_INSUFFICIENT_FUNDS = 0x1
TOKEN_OVERFLOW = 0xE
SYSTEM_ACCOUNT_ALREADY_IN_USE = 0x0
SYSTEM_RESULT_WITH_NEGATIVE_LAMPORTS = 0x1


class _Rejected(Exception):
    """Instruction failed; carries the runtime-style diagnostic."""


def _anchor_error(name: str, number: int, account: Optional[str] = None) -> _Rejected:
    where = f"caused by account: {account}. " if account else ""
    return _Rejected(f"AnchorError {where}Error Code: {name}. Error Number: {number}.")


def _custom(program: str, code: int, message: str) -> _Rejected:
    return _Rejected(f"{program}: {message}: custom program error: {code:#x}")


@dataclass
class _Invocation:
    """Mutable view of the ledger for the duration of one instruction."""

    accounts: Dict[Pubkey, AccountRecord]
    metas: Sequence[AccountMeta]
    written: Dict[Pubkey, AccountRecord]

    def get(self, key: Pubkey) -> Optional[AccountRecord]:
        if key in self.written:
            return self.written[key]
        return self.accounts.get(key)

    def require(self, key: Pubkey, role: str) -> AccountRecord:
        record = self.get(key)
        if record is None:
            raise _anchor_error("AccountNotInitialized", ACCOUNT_NOT_INITIALIZED, role)
        return record

    def put(self, key: Pubkey, record: AccountRecord) -> None:
        self.written[key] = record


class ReferenceEscrowOracle:
    """In-process execution oracle implementing the canonical escrow program."""

    def __init__(self, program_id: Pubkey) -> None:
        self._program_id = program_id
        self._make_offer_disc = instruction_discriminator(MAKE_OFFER)
        self._take_offer_disc = instruction_discriminator(TAKE_OFFER)

    @property
    def program_id(self) -> Pubkey:
        return self._program_id

    def process_instruction(self, instruction: Instruction, accounts: Sequence[KeyedAccount]) -> OracleResult:
        inv = _Invocation(accounts=dict(accounts), metas=instruction.accounts, written={})
        try:
            if instruction.program_id != self._program_id:
                raise _Rejected(f"Unsupported program id: {instruction.program_id}")
            disc = bytes(instruction.data[:DISCRIMINATOR_LEN])
            if len(disc) < DISCRIMINATOR_LEN:
                raise _anchor_error("InstructionDidNotDeserialize", INSTRUCTION_DID_NOT_DESERIALIZE)
            if disc == self._make_offer_disc:
                self._make_offer(inv, instruction.data)
            elif disc == self._take_offer_disc:
                self._take_offer(inv)
            else:
                raise _anchor_error("InstructionFallbackNotFound", INSTRUCTION_FALLBACK_NOT_FOUND)
        except _Rejected as exc:
            return OracleResult(ok=False, error=str(exc))
        entries = sorted(inv.written.items(), key=lambda item: item[0].raw)
        return OracleResult(ok=True, resulting_accounts=tuple(entries))

    # ------------------------------------------------------------------
    # Account constraint helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _metas(inv: _Invocation, count: int) -> List[AccountMeta]:
        if len(inv.metas) < count:
            raise _Rejected(f"NotEnoughAccountKeys: expected {count}, got {len(inv.metas)}")
        return list(inv.metas[:count])

    @staticmethod
    def _signer(meta: AccountMeta, role: str) -> None:
        if not meta.is_signer:
            raise _Rejected(f"missing required signature for instruction (account: {role})")

    @staticmethod
    def _mutable(meta: AccountMeta, role: str) -> None:
        if not meta.is_writable:
            raise _anchor_error("ConstraintMut", CONSTRAINT_MUT, role)

    @staticmethod
    def _program(meta: AccountMeta, expected: Pubkey, role: str) -> None:
        if meta.pubkey != expected:
            raise _anchor_error("InvalidProgramId", INVALID_PROGRAM_ID, role)

    @staticmethod
    def _mint(inv: _Invocation, meta: AccountMeta, role: str) -> None:
        record = inv.require(meta.pubkey, role)
        if record.owner != TOKEN_PROGRAM_ID:
            raise _anchor_error("AccountOwnedByWrongProgram", ACCOUNT_OWNED_BY_WRONG_PROGRAM, role)
        if len(record.data) < MINT_LEN or record.data[45] != 1:
            raise _anchor_error("AccountNotInitialized", ACCOUNT_NOT_INITIALIZED, role)

    @staticmethod
    def _token_account(
        inv: _Invocation,
        key: Pubkey,
        role: str,
        *,
        mint: Pubkey,
        authority: Pubkey,
    ) -> TokenAccountView:
        record = inv.require(key, role)
        if record.owner != TOKEN_PROGRAM_ID:
            raise _anchor_error("AccountOwnedByWrongProgram", ACCOUNT_OWNED_BY_WRONG_PROGRAM, role)
        try:
            if token_account_state(record.data) != TOKEN_STATE_INITIALIZED:
                raise _anchor_error("AccountNotInitialized", ACCOUNT_NOT_INITIALIZED, role)
            view = TokenAccountView.from_record(record)
        except DataTooShortError as exc:
            raise _anchor_error("AccountDidNotDeserialize", ACCOUNT_DID_NOT_DESERIALIZE, role) from exc
        if view.mint != mint:
            raise _anchor_error("ConstraintTokenMint", CONSTRAINT_TOKEN_MINT, role)
        if view.owner != authority:
            raise _anchor_error("ConstraintTokenOwner", CONSTRAINT_TOKEN_OWNER, role)
        return view

    @staticmethod
    def _uninitialized(inv: _Invocation, key: Pubkey, role: str) -> AccountRecord:
        record = inv.get(key)
        if record is None:
            return AccountRecord(owner=SYSTEM_PROGRAM_ID)
        if record.owner != SYSTEM_PROGRAM_ID or record.data:
            raise _custom("System program", SYSTEM_ACCOUNT_ALREADY_IN_USE, f"Allocate: account {key} already in use")
        return record

    # ------------------------------------------------------------------
    # Token / system program effects
    # ------------------------------------------------------------------

    @staticmethod
    def _debit_lamports(inv: _Invocation, key: Pubkey, amount: int) -> None:
        record = inv.get(key)
        assert record is not None
        if record.lamports < amount:
            raise _custom(
                "System program",
                SYSTEM_RESULT_WITH_NEGATIVE_LAMPORTS,
                f"Transfer: insufficient lamports {record.lamports}, need {amount}",
            )
        inv.put(key, AccountRecord(owner=record.owner, lamports=record.lamports - amount, data=record.data,
                                   executable=record.executable, rent_epoch=record.rent_epoch))

    @staticmethod
    def _credit_lamports(inv: _Invocation, key: Pubkey, amount: int) -> None:
        record = inv.get(key)
        assert record is not None
        if record.lamports + amount > U64_MAX:
            raise _Rejected(f"instruction error: ArithmeticOverflow (account: {key})")
        inv.put(key, AccountRecord(owner=record.owner, lamports=record.lamports + amount, data=record.data,
                                   executable=record.executable, rent_epoch=record.rent_epoch))

    @staticmethod
    def _token_transfer(inv: _Invocation, source: Pubkey, destination: Pubkey, amount: int) -> None:
        src = inv.get(source)
        dst = inv.get(destination)
        assert src is not None and dst is not None
        src_amount = TokenAccountView.from_record(src).amount
        if src_amount < amount:
            raise _custom("Token program", TOKEN_INSUFFICIENT_FUNDS, "Error: insufficient funds")
        inv.put(source, AccountRecord(owner=src.owner, lamports=src.lamports,
                                      data=with_token_amount(src.data, src_amount - amount)))
        dst = inv.get(destination)
        assert dst is not None
        dst_amount = TokenAccountView.from_record(dst).amount
        if dst_amount + amount > U64_MAX:
            raise _custom("Token program", TOKEN_OVERFLOW, "Error: Operation overflowed")
        inv.put(destination, AccountRecord(owner=dst.owner, lamports=dst.lamports,
                                           data=with_token_amount(dst.data, dst_amount + amount)))

    def _close(self, inv: _Invocation, key: Pubkey, destination: Pubkey) -> None:
        record = inv.get(key)
        assert record is not None
        self._credit_lamports(inv, destination, record.lamports)
        inv.put(key, AccountRecord(owner=SYSTEM_PROGRAM_ID, lamports=0, data=b""))

    # ------------------------------------------------------------------
    # Instructions
    # ------------------------------------------------------------------

    def _make_offer(self, inv: _Invocation, data: bytes) -> None:
        try:
            offset = DISCRIMINATOR_LEN
            offer_id, offset = decode_arg("u64", data, offset)
            offered, offset = decode_arg("u64", data, offset)
            wanted, offset = decode_arg("u64", data, offset)
        except DataTooShortError as exc:
            raise _anchor_error("InstructionDidNotDeserialize", INSTRUCTION_DID_NOT_DESERIALIZE) from exc

        maker, mint_a, mint_b, maker_ata_a, offer, vault, system, token, ata = self._metas(inv, MAKE_OFFER_ACCOUNTS)

        self._signer(maker, "maker")
        self._mutable(maker, "maker")
        inv.require(maker.pubkey, "maker")
        self._program(system, SYSTEM_PROGRAM_ID, "system_program")
        self._program(token, TOKEN_PROGRAM_ID, "token_program")
        self._program(ata, ASSOCIATED_TOKEN_PROGRAM_ID, "associated_token_program")
        self._mint(inv, mint_a, "token_mint_a")
        self._mint(inv, mint_b, "token_mint_b")

        self._mutable(maker_ata_a, "maker_token_account_a")
        if maker_ata_a.pubkey != associated_token_address(maker.pubkey, mint_a.pubkey):
            raise _anchor_error("ConstraintAssociated", CONSTRAINT_ASSOCIATED, "maker_token_account_a")
        self._token_account(inv, maker_ata_a.pubkey, "maker_token_account_a", mint=mint_a.pubkey, authority=maker.pubkey)

        self._mutable(offer, "offer")
        derived = derive_offer_address(maker.pubkey, offer_id, self._program_id)
        if offer.pubkey != derived.address:
            raise _anchor_error("ConstraintSeeds", CONSTRAINT_SEEDS, "offer")
        offer_before = self._uninitialized(inv, offer.pubkey, "offer")

        self._mutable(vault, "vault")
        if vault.pubkey != associated_token_address(offer.pubkey, mint_a.pubkey):
            raise _anchor_error("ConstraintAssociated", CONSTRAINT_ASSOCIATED, "vault")
        vault_before = self._uninitialized(inv, vault.pubkey, "vault")

        # init offer: the maker tops the account up to rent exemption.
        offer_rent = max(rent_exempt_minimum(OFFER_LEN) - offer_before.lamports, 0)
        self._debit_lamports(inv, maker.pubkey, offer_rent)
        inv.put(
            offer.pubkey,
            AccountRecord(
                owner=self._program_id,
                lamports=offer_before.lamports + offer_rent,
                data=encode_offer(offer_id, maker.pubkey, mint_a.pubkey, mint_b.pubkey, wanted, derived.bump),
            ),
        )

        # init vault as the offer's associated token account for mint_a.
        vault_rent = max(rent_exempt_minimum(TOKEN_ACCOUNT_LEN) - vault_before.lamports, 0)
        self._debit_lamports(inv, maker.pubkey, vault_rent)
        inv.put(
            vault.pubkey,
            AccountRecord(
                owner=TOKEN_PROGRAM_ID,
                lamports=vault_before.lamports + vault_rent,
                data=encode_token_account(mint_a.pubkey, offer.pubkey, 0),
            ),
        )

        self._token_transfer(inv, maker_ata_a.pubkey, vault.pubkey, offered)

    def _take_offer(self, inv: _Invocation) -> None:
        (
            taker,
            maker,
            mint_a,
            mint_b,
            taker_ata_a,
            taker_ata_b,
            maker_ata_b,
            offer,
            vault,
            system,
            token,
            ata,
        ) = self._metas(inv, TAKE_OFFER_ACCOUNTS)

        self._signer(taker, "taker")
        self._mutable(taker, "taker")
        inv.require(taker.pubkey, "taker")
        self._mutable(maker, "maker")
        inv.require(maker.pubkey, "maker")
        self._program(system, SYSTEM_PROGRAM_ID, "system_program")
        self._program(token, TOKEN_PROGRAM_ID, "token_program")
        self._program(ata, ASSOCIATED_TOKEN_PROGRAM_ID, "associated_token_program")
        self._mint(inv, mint_a, "token_mint_a")
        self._mint(inv, mint_b, "token_mint_b")

        self._mutable(offer, "offer")
        offer_record = inv.require(offer.pubkey, "offer")
        if offer_record.owner != self._program_id:
            raise _anchor_error("AccountOwnedByWrongProgram", ACCOUNT_OWNED_BY_WRONG_PROGRAM, "offer")
        try:
            state = OfferRecord.from_record(offer_record)
        except DataTooShortError as exc:
            raise _anchor_error("AccountDidNotDeserialize", ACCOUNT_DID_NOT_DESERIALIZE, "offer") from exc
        if not state.has_anchor_discriminator():
            raise _anchor_error("AccountDiscriminatorMismatch", ACCOUNT_DISCRIMINATOR_MISMATCH, "offer")
        if state.maker != maker.pubkey:
            raise _anchor_error("ConstraintHasOne", CONSTRAINT_HAS_ONE, "offer")
        if state.mint_a != mint_a.pubkey or state.mint_b != mint_b.pubkey:
            raise _anchor_error("ConstraintHasOne", CONSTRAINT_HAS_ONE, "offer")
        try:
            expected_offer = create_program_address([*offer_seeds(state.maker, state.id), bytes([state.bump])], self._program_id)
        except AddressDerivationError as exc:
            raise _anchor_error("ConstraintSeeds", CONSTRAINT_SEEDS, "offer") from exc
        if offer.pubkey != expected_offer:
            raise _anchor_error("ConstraintSeeds", CONSTRAINT_SEEDS, "offer")

        self._mutable(vault, "vault")
        if vault.pubkey != associated_token_address(offer.pubkey, mint_a.pubkey):
            raise _anchor_error("ConstraintAssociated", CONSTRAINT_ASSOCIATED, "vault")
        vault_view = self._token_account(inv, vault.pubkey, "vault", mint=mint_a.pubkey, authority=offer.pubkey)

        self._mutable(taker_ata_b, "taker_token_account_b")
        if taker_ata_b.pubkey != associated_token_address(taker.pubkey, mint_b.pubkey):
            raise _anchor_error("ConstraintAssociated", CONSTRAINT_ASSOCIATED, "taker_token_account_b")
        self._token_account(inv, taker_ata_b.pubkey, "taker_token_account_b", mint=mint_b.pubkey, authority=taker.pubkey)

        self._mutable(taker_ata_a, "taker_token_account_a")
        self._init_if_needed(inv, taker_ata_a.pubkey, "taker_token_account_a", payer=taker.pubkey,
                             wallet=taker.pubkey, mint=mint_a.pubkey)
        self._mutable(maker_ata_b, "maker_token_account_b")
        self._init_if_needed(inv, maker_ata_b.pubkey, "maker_token_account_b", payer=taker.pubkey,
                             wallet=maker.pubkey, mint=mint_b.pubkey)

        self._token_transfer(inv, taker_ata_b.pubkey, maker_ata_b.pubkey, state.wanted_amount)
        self._token_transfer(inv, vault.pubkey, taker_ata_a.pubkey, vault_view.amount)
        self._close(inv, vault.pubkey, maker.pubkey)
        self._close(inv, offer.pubkey, maker.pubkey)

    def _init_if_needed(
        self,
        inv: _Invocation,
        key: Pubkey,
        role: str,
        *,
        payer: Pubkey,
        wallet: Pubkey,
        mint: Pubkey,
    ) -> None:
        if key != associated_token_address(wallet, mint):
            raise _anchor_error("ConstraintAssociated", CONSTRAINT_ASSOCIATED, role)
        record = inv.get(key)
        if record is not None and record.owner == TOKEN_PROGRAM_ID:
            self._token_account(inv, key, role, mint=mint, authority=wallet)
            return
        before = self._uninitialized(inv, key, role)
        rent = max(rent_exempt_minimum(TOKEN_ACCOUNT_LEN) - before.lamports, 0)
        self._debit_lamports(inv, payer, rent)
        inv.put(
            key,
            AccountRecord(
                owner=TOKEN_PROGRAM_ID,
                lamports=before.lamports + rent,
                data=encode_token_account(mint, wallet, 0),
            ),
        )
