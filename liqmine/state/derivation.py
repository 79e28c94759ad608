"""
Deterministic address derivation and derived signing authorities.

Every logical entity (pool record, position record, vault authority) maps to an
address computed from a role tag plus identifiers:

    address = SHA384( domain_sep("derived_address") || len16||seed_0 || ... || bump )

The 48-byte digest has the shape of a compressed BLS12-381 public key. A
candidate that *is* a valid public key is rejected and the next lower bump is
tried, so a derived address never has a secret key: only a capability that can
re-derive it (``DerivedAuthority``) may move funds held at it. The accepted
bump is recorded next to the address so it can be reconstructed identically.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass
from enum import Enum, unique
from typing import Sequence, Tuple, Union

from py_ecc.bls import G2Basic

from ..core.staking.errors import InvalidVaultAuthority
from .canonical import bytes_to_hex, domain_sep_bytes, encode_seed

Seed = Union[str, bytes]

MAX_BUMP = 255

POOL_CONFIG_TAG = "pool_config"
POSITION_TAG = "position"
AUTHORITY_TAG = "authority"


@unique
class VaultRole(Enum):
    LP = "lp"
    REWARD = "reward"


class OnCurveAddressError(ValueError):
    """Derived candidate is a valid public key and cannot be used as an address."""


def is_valid_public_key(candidate: bytes) -> bool:
    return bool(G2Basic.KeyValidate(candidate))


def _seed_bytes(seed: Seed) -> bytes:
    if isinstance(seed, (bytes, bytearray)):
        return bytes(seed)
    if isinstance(seed, str):
        return seed.encode("utf-8")
    raise TypeError(f"seed must be str or bytes, got {type(seed).__name__}")


def create_derived_address(seeds: Sequence[Seed], bump: int) -> str:
    """Address for ``seeds`` at an explicit bump.

    Raises:
        OnCurveAddressError: the candidate is a valid public key.
    """
    if not isinstance(bump, int) or isinstance(bump, bool) or not (0 <= bump <= MAX_BUMP):
        raise ValueError(f"bump must be in [0, {MAX_BUMP}]: {bump!r}")
    payload = bytearray(domain_sep_bytes("derived_address"))
    for seed in seeds:
        payload += encode_seed(_seed_bytes(seed))
    payload.append(bump)
    candidate = hashlib.sha384(bytes(payload)).digest()
    if is_valid_public_key(candidate):
        raise OnCurveAddressError(f"bump {bump} yields an on-curve address")
    return bytes_to_hex(candidate)


def find_derived_address(seeds: Sequence[Seed]) -> Tuple[str, int]:
    """Walk the bump down from 255 and return the first off-curve address."""
    for bump in range(MAX_BUMP, -1, -1):
        try:
            return create_derived_address(seeds, bump), bump
        except OnCurveAddressError:
            continue
    raise ValueError("no off-curve bump found for seeds")


# -- Seed layouts ------------------------------------------------------------

def pool_seeds(lp_asset_id: str) -> Tuple[str, ...]:
    return (POOL_CONFIG_TAG, lp_asset_id)


def position_seeds(lp_asset_id: str, owner: str) -> Tuple[str, ...]:
    return (POSITION_TAG, lp_asset_id, owner)


def vault_authority_seeds(lp_asset_id: str, role: VaultRole) -> Tuple[str, ...]:
    return (AUTHORITY_TAG, role.value, lp_asset_id)


@dataclass(frozen=True)
class DerivedAuthority:
    """
    Capability to sign for one derived address.

    It holds no secret: it is valid exactly when ``seeds`` and ``bump`` re-derive
    ``address``. The asset ledger checks that at transfer time.
    """

    seeds: Tuple[str, ...]
    bump: int
    address: str

    @classmethod
    def derive(cls, seeds: Sequence[str]) -> "DerivedAuthority":
        address, bump = find_derived_address(seeds)
        return cls(seeds=tuple(seeds), bump=bump, address=address)

    @classmethod
    def reconstruct(cls, seeds: Sequence[str], bump: int, expected_address: str) -> "DerivedAuthority":
        """Rebuild from a stored (address, bump) pair, failing closed on mismatch."""
        authority = cls(seeds=tuple(seeds), bump=bump, address=expected_address)
        if not authority.verify():
            raise InvalidVaultAuthority(
                f"seeds {tuple(seeds)!r} with bump {bump} do not derive {expected_address}"
            )
        return authority

    def verify(self) -> bool:
        try:
            return create_derived_address(self.seeds, self.bump) == self.address
        except (OnCurveAddressError, ValueError):
            return False

    def authorizes(self, holder: str) -> bool:
        return holder == self.address and self.verify()


def vault_authority(lp_asset_id: str, role: VaultRole) -> DerivedAuthority:
    return DerivedAuthority.derive(vault_authority_seeds(lp_asset_id, role))
