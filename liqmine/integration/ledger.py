"""
Asset ledger: holder balances, creation authorities and authorized transfers.

This is the reference implementation of the transfer capability the staking
service depends on. A transfer out of a holder's balance must be authorized by:
- the holder's own identity (user-signed transfers), or
- a ``DerivedAuthority`` capability that re-derives the holder address
  (vault transfers).

Addresses passed to ``register_vault`` only accept the second form: a plain
identity string never signs for a vault, even one equal to the vault address.

``apply_transfers`` validates a whole batch against a scratch copy of the
balances before touching the live table, so a batch applies fully or not at all.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Dict, Optional, Sequence, Set, Union

from ..core.staking.errors import (
    InsufficientBalance,
    InvalidMintAuthority,
    ParamDomainError,
    TransferAuthorizationError,
)
from ..core.staking.math import U64_MAX
from ..state.balances import AssetId, BalanceTable, Holder
from ..state.canonical import canonical_asset_id, canonical_identity
from ..state.derivation import DerivedAuthority

logger = logging.getLogger(__name__)

Authorizer = Union[str, DerivedAuthority]


@dataclass(frozen=True)
class HoldingAccount:
    """One holder's balance of one asset."""

    owner: Holder
    asset: AssetId


@dataclass(frozen=True)
class Transfer:
    asset: AssetId
    from_holder: Holder
    to_holder: Holder
    amount: int
    authorized_by: Authorizer


class TransferCapability:
    """Interface for moving assets between holders and answering authority checks."""

    def transfer(
        self,
        asset: AssetId,
        from_holder: Holder,
        to_holder: Holder,
        amount: int,
        authorized_by: Authorizer,
    ) -> None:
        raise NotImplementedError

    def apply_transfers(self, transfers: Sequence[Transfer]) -> None:
        raise NotImplementedError

    def check_transfers(self, transfers: Sequence[Transfer]) -> None:
        raise NotImplementedError

    def balance_of(self, holder: Holder, asset: AssetId) -> int:
        raise NotImplementedError

    def is_creation_authority(self, asset_id: AssetId, identity: Holder) -> bool:
        raise NotImplementedError

    def register_vault(self, authority: DerivedAuthority) -> Holder:
        raise NotImplementedError


def _authorizes(authorized_by: Authorizer, holder: Holder, *, vault: bool) -> bool:
    if isinstance(authorized_by, DerivedAuthority):
        return authorized_by.authorizes(holder)
    if vault:
        return False
    return isinstance(authorized_by, str) and authorized_by == holder


class AssetLedger(TransferCapability):
    def __init__(self) -> None:
        self._balances = BalanceTable()
        self._creation_authority: Dict[AssetId, Holder] = {}
        self._vaults: Set[Holder] = set()
        self._lock = threading.RLock()

    @property
    def lock(self) -> threading.RLock:
        return self._lock

    # -- Assets ---------------------------------------------------------------

    def register_asset(self, asset_id: AssetId, creation_authority: Holder) -> AssetId:
        """Declare a new asset type and the identity allowed to mint it."""
        asset = canonical_asset_id(asset_id)
        authority = canonical_identity(creation_authority, name="creation_authority")
        with self._lock:
            if asset in self._creation_authority:
                raise ValueError(f"asset already registered: {asset}")
            self._creation_authority[asset] = authority
        return asset

    def creation_authority(self, asset_id: AssetId) -> Optional[Holder]:
        return self._creation_authority.get(asset_id)

    def is_creation_authority(self, asset_id: AssetId, identity: Holder) -> bool:
        authority = self._creation_authority.get(asset_id)
        return authority is not None and authority == identity

    def mint(self, asset_id: AssetId, to_holder: Holder, amount: int, authorized_by: Holder) -> None:
        if not self.is_creation_authority(asset_id, authorized_by):
            raise InvalidMintAuthority(f"{authorized_by} cannot mint {asset_id}")
        _check_amount(amount)
        with self._lock:
            if self._balances.get(to_holder, asset_id) + amount > U64_MAX:
                raise ParamDomainError(f"mint would overflow balance of {to_holder}")
            self._balances.add(to_holder, asset_id, amount)
        logger.debug("minted %d of %s to %s", amount, asset_id, to_holder)

    # -- Vaults ---------------------------------------------------------------

    def register_vault(self, authority: DerivedAuthority) -> Holder:
        """Mark a derived address as capability-only. Idempotent."""
        if not isinstance(authority, DerivedAuthority) or not authority.verify():
            raise TransferAuthorizationError("vault authority does not re-derive its address")
        with self._lock:
            if authority.address not in self._vaults:
                self._vaults.add(authority.address)
                logger.debug("registered vault %s", authority.address)
        return authority.address

    def is_vault(self, holder: Holder) -> bool:
        return holder in self._vaults

    # -- Balances -------------------------------------------------------------

    def balance_of(self, holder: Holder, asset: AssetId) -> int:
        return self._balances.get(holder, asset)

    def balance(self, account: HoldingAccount) -> int:
        return self._balances.get(account.owner, account.asset)

    def balances_for_asset(self, asset: AssetId) -> Dict[Holder, int]:
        return self._balances.get_balances_for_asset(asset)

    # -- Transfers ------------------------------------------------------------

    def transfer(
        self,
        asset: AssetId,
        from_holder: Holder,
        to_holder: Holder,
        amount: int,
        authorized_by: Authorizer,
    ) -> None:
        self.apply_transfers([Transfer(asset, from_holder, to_holder, amount, authorized_by)])

    def check_transfers(self, transfers: Sequence[Transfer]) -> None:
        """Validate a batch without applying it."""
        with self._lock:
            self._simulate(transfers)

    def apply_transfers(self, transfers: Sequence[Transfer]) -> None:
        """Apply every transfer in order, or none if any one fails.

        Raises:
            ParamDomainError: amount outside u64.
            TransferAuthorizationError: signer does not control the source.
            InsufficientBalance: source balance too low at its point in the batch.
        """
        with self._lock:
            self._balances = self._simulate(transfers)
        for t in transfers:
            logger.debug("transfer %d of %s: %s -> %s", t.amount, t.asset, t.from_holder, t.to_holder)

    def _simulate(self, transfers: Sequence[Transfer]) -> BalanceTable:
        scratch = self._balances.copy()
        for t in transfers:
            _check_amount(t.amount, allow_zero=True)
            if not _authorizes(t.authorized_by, t.from_holder, vault=t.from_holder in self._vaults):
                raise TransferAuthorizationError(
                    f"transfer of {t.asset} out of {t.from_holder} is not authorized"
                )
            available = scratch.get(t.from_holder, t.asset)
            if available < t.amount:
                raise InsufficientBalance(
                    f"{t.from_holder} holds {available} of {t.asset}, needs {t.amount}"
                )
            if scratch.get(t.to_holder, t.asset) + t.amount > U64_MAX and t.to_holder != t.from_holder:
                raise ParamDomainError(f"transfer would overflow balance of {t.to_holder}")
            scratch.subtract(t.from_holder, t.asset, t.amount)
            scratch.add(t.to_holder, t.asset, t.amount)
        return scratch

    def __repr__(self) -> str:
        return f"AssetLedger(assets={len(self._creation_authority)}, {self._balances!r})"


def _check_amount(amount: int, *, allow_zero: bool = False) -> None:
    lo = 0 if allow_zero else 1
    if isinstance(amount, bool) or not isinstance(amount, int) or amount < lo or amount > U64_MAX:
        raise ParamDomainError(f"amount must be in [{lo}, 2**64 - 1]: {amount!r}")
