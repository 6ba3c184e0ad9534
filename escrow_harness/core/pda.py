"""
Program-derived address (PDA) derivation.

A PDA is SHA-256(seeds || program_id || "ProgramDerivedAddress") interpreted as
a 32-byte address, accepted only if it is *not* a valid compressed ed25519
point. Because no private key can exist for an off-curve address, only the
owning program can sign for it.

Hashing and the curve test are delegated to `solders`, which wraps the
network's own implementation. Seed limits are checked here first so callers
get an `AddressDerivationError` instead of a panic from the bindings.
"""

from __future__ import annotations

from typing import NamedTuple, Sequence, Union

from solders.pubkey import Pubkey as SoldersPubkey

from ..errors import AddressDerivationError
from ..state.accounts import ASSOCIATED_TOKEN_PROGRAM_ID, PUBKEY_BYTES, TOKEN_PROGRAM_ID, Pubkey


MAX_SEEDS = 16
MAX_SEED_LEN = 32
MAX_BUMP = 255

OFFER_SEED_PREFIX = b"offer"

Seed = Union[bytes, bytearray, Pubkey]


class DerivedAddress(NamedTuple):
    address: Pubkey
    bump: int


def is_on_curve(candidate: bytes) -> bool:
    """True iff `candidate` decompresses to a point on edwards25519."""
    if len(candidate) != PUBKEY_BYTES:
        raise ValueError(f"curve point encoding must be {PUBKEY_BYTES} bytes, got {len(candidate)}")
    return SoldersPubkey.from_bytes(bytes(candidate)).is_on_curve()


def _seed_bytes(seed: Seed) -> bytes:
    if isinstance(seed, Pubkey):
        return seed.raw
    if isinstance(seed, (bytes, bytearray)):
        return bytes(seed)
    raise TypeError(f"seed must be bytes or Pubkey, got {type(seed).__name__}")


def _check_seeds(seeds: Sequence[bytes]) -> None:
    if len(seeds) > MAX_SEEDS:
        raise AddressDerivationError(f"too many seeds: {len(seeds)} > {MAX_SEEDS}")
    for idx, seed in enumerate(seeds):
        if len(seed) > MAX_SEED_LEN:
            raise AddressDerivationError(f"seed {idx} is {len(seed)} bytes, max {MAX_SEED_LEN}")


def create_program_address(seeds: Sequence[Seed], program_id: Pubkey) -> Pubkey:
    """
    Derive the address for an exact seed list (bump already included).

    Raises:
        AddressDerivationError: If the seeds break network limits or the
            candidate lies on the curve
    """
    raw_seeds = [_seed_bytes(s) for s in seeds]
    _check_seeds(raw_seeds)
    try:
        address = SoldersPubkey.create_program_address(raw_seeds, program_id.to_solders())
    except Exception as exc:  # solders raises its unexported PubkeyError
        raise AddressDerivationError(f"derived candidate is a valid curve point: {exc}") from exc
    return Pubkey.from_solders(address)


def find_program_address(seeds: Sequence[Seed], program_id: Pubkey) -> DerivedAddress:
    """
    Search bumps 255, 254, ... 1 and return the first off-curve address.

    Same order and range as `Pubkey.find_program_address`, but exhaustion is
    reported instead of panicking inside the bindings.

    Raises:
        AddressDerivationError: If the seed list cannot take a bump or no bump
            yields an off-curve address
    """
    raw_seeds = [_seed_bytes(s) for s in seeds]
    if len(raw_seeds) + 1 > MAX_SEEDS:
        raise AddressDerivationError(f"too many seeds to append a bump: {len(raw_seeds)} >= {MAX_SEEDS}")
    _check_seeds(raw_seeds)

    for bump in range(MAX_BUMP, 0, -1):
        try:
            return DerivedAddress(create_program_address([*raw_seeds, bytes([bump])], program_id), bump)
        except AddressDerivationError:
            continue
    raise AddressDerivationError("unable to find a viable program address bump seed")


def associated_token_address(
    wallet: Pubkey,
    mint: Pubkey,
    token_program: Pubkey = TOKEN_PROGRAM_ID,
) -> Pubkey:
    """Canonical token account for (wallet, mint)."""
    return find_program_address(
        [wallet.raw, token_program.raw, mint.raw],
        ASSOCIATED_TOKEN_PROGRAM_ID,
    ).address


def offer_seeds(maker: Pubkey, offer_id: int) -> list[bytes]:
    if not isinstance(offer_id, int) or isinstance(offer_id, bool) or not 0 <= offer_id < 2**64:
        raise ValueError(f"offer_id must be a u64: {offer_id!r}")
    return [OFFER_SEED_PREFIX, maker.raw, offer_id.to_bytes(8, "little")]


def derive_offer_address(maker: Pubkey, offer_id: int, program_id: Pubkey) -> DerivedAddress:
    """Escrow account for (maker, offer_id): seeds ("offer", maker, id as u64 LE)."""
    return find_program_address(offer_seeds(maker, offer_id), program_id)
