"""
Staking service (imperative shell).

Wraps the functional core in ``liqmine.core.staking``:
- derives and loads the pool / position records,
- authenticates the caller and checks holding accounts,
- runs the pure engine step (all preconditions and the reward computation),
- resolves each transfer's signer to a capability (the user's identity or a
  re-derived vault authority),
- commits transfers and record writes as one indivisible unit.

Every mutating operation is available in two forms: ``prepare_*`` returns a
``PreparedTx`` without side effects, and the one-shot method prepares and
commits. A prepared transaction commits only if no record it read has changed
since; otherwise ``WriteConflictError`` is raised and nothing is applied.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Tuple

from ..core.staking import engine
from ..core.staking.errors import (
    InvalidHoldingAccount,
    InvalidMintAuthority,
    InvalidSignature,
    InvalidVaultAuthority,
    ParamDomainError,
    PoolAlreadyInitialized,
    PoolNotFound,
    RecordExists,
    RecordNotFound,
    StakingError,
)
from ..core.staking.invariants import check_total_staked
from ..core.staking.math import U64_MAX
from ..core.staking.rewards import preview_reward
from ..core.staking.state import new_pool_config, new_position
from ..core.staking.types import (
    Action,
    ActionParams,
    Event,
    PoolConfig,
    RewardQuote,
    TransferRequest,
    TransferSigner,
    UserStakePosition,
)
from ..state.canonical import canonical_asset_id, canonical_identity
from ..state.derivation import (
    DerivedAuthority,
    VaultRole,
    find_derived_address,
    pool_seeds,
    position_seeds,
    vault_authority,
    vault_authority_seeds,
)
from ..state.layout import RecordKind
from .clock import Clock, SystemClock
from .config import StakingConfig
from .ledger import AssetLedger, HoldingAccount, Transfer
from .records import InMemoryRecordStore, RecordHandle, RecordWrite
from .signatures import BlsRequestVerifier, IdentityVerifier, TrustedCallerVerifier, request_payload

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PreparedTx:
    """Staged transfers and versioned record writes for one operation."""

    event: Event
    pool_address: str
    pool: PoolConfig
    position: Optional[UserStakePosition] = None
    quote: Optional[RewardQuote] = None
    transfers: Tuple[Transfer, ...] = ()
    writes: Tuple[RecordWrite, ...] = ()
    vaults: Tuple[DerivedAuthority, ...] = ()


@dataclass(frozen=True)
class OperationReceipt:
    event: Event
    pool_address: str
    pool: PoolConfig
    position: Optional[UserStakePosition] = None
    quote: Optional[RewardQuote] = None
    transfers: Tuple[Transfer, ...] = ()


def _u64_or_raise(value: int, *, name: str, lo: int = 0, hi: int = U64_MAX) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or not (lo <= value <= hi):
        raise ParamDomainError(f"{name} must be an int in [{lo}, {hi}]: {value!r}")
    return int(value)


def _canonical_or_raise(value: str, *, kind: str, name: str) -> str:
    try:
        if kind == "asset":
            return canonical_asset_id(value, name=name)
        return canonical_identity(value, name=name)
    except (TypeError, ValueError) as exc:
        raise ParamDomainError(str(exc)) from exc


class StakingService:
    def __init__(
        self,
        store: InMemoryRecordStore,
        ledger: AssetLedger,
        clock: Optional[Clock] = None,
        config: Optional[StakingConfig] = None,
        verifier: Optional[IdentityVerifier] = None,
    ) -> None:
        self._store = store
        self._ledger = ledger
        self._clock = clock or SystemClock()
        self._config = config or StakingConfig()
        if verifier is None:
            verifier = (
                BlsRequestVerifier(self._config.chain_id)
                if self._config.require_signatures
                else TrustedCallerVerifier()
            )
        self._verifier = verifier

    @property
    def config(self) -> StakingConfig:
        return self._config

    # -- Addresses ------------------------------------------------------------

    @staticmethod
    def pool_address(lp_asset_id: str) -> Tuple[str, int]:
        return find_derived_address(pool_seeds(lp_asset_id))

    @staticmethod
    def position_address(lp_asset_id: str, user: str) -> Tuple[str, int]:
        return find_derived_address(position_seeds(lp_asset_id, user))

    # -- Helpers --------------------------------------------------------------

    def _authenticate(self, identity: str, payload: Dict, signature: Optional[str]) -> None:
        ok, err = self._verifier.verify(identity, payload, signature)
        if not ok:
            raise InvalidSignature(err or "request signature rejected")

    def _load_pool(self, lp_asset_id: str) -> Tuple[str, RecordHandle, PoolConfig]:
        address, _bump = self.pool_address(lp_asset_id)
        try:
            stored = self._store.load(RecordKind.POOL_CONFIG, address)
        except RecordNotFound as exc:
            raise PoolNotFound(f"no pool for LP asset {lp_asset_id}") from exc
        return address, stored.handle, stored.record  # type: ignore[return-value]

    def _load_or_new_position(
        self, lp_asset_id: str, pool_address: str, user: str
    ) -> Tuple[RecordHandle, UserStakePosition]:
        address, bump = self.position_address(lp_asset_id, user)
        try:
            stored = self._store.load(RecordKind.POSITION, address)
        except RecordNotFound:
            handle = self._store.create(RecordKind.POSITION, address)
            return handle, new_position(owner=user, pool=pool_address, bump=bump)
        return stored.handle, stored.record  # type: ignore[return-value]

    @staticmethod
    def _vault_authority(pool: PoolConfig, role: VaultRole) -> DerivedAuthority:
        if role is VaultRole.LP:
            bump, address = pool.lp_vault_bump, pool.lp_vault_authority
        else:
            bump, address = pool.reward_vault_bump, pool.reward_vault_authority
        return DerivedAuthority.reconstruct(vault_authority_seeds(pool.lp_asset_id, role), bump, address)

    def _resolve_transfers(self, pool: PoolConfig, requests: Iterable[TransferRequest]) -> Tuple[Transfer, ...]:
        out: List[Transfer] = []
        for req in requests:
            if req.signer is TransferSigner.USER:
                authorized_by = req.from_holder
            elif req.signer is TransferSigner.LP_VAULT:
                authorized_by = self._vault_authority(pool, VaultRole.LP)
            else:
                authorized_by = self._vault_authority(pool, VaultRole.REWARD)
            out.append(Transfer(req.asset, req.from_holder, req.to_holder, req.amount, authorized_by))
        return tuple(out)

    @staticmethod
    def _check_holding(account: HoldingAccount, *, owner: str, asset: str, name: str) -> HoldingAccount:
        """Canonicalize a caller-supplied holding and check it belongs to ``owner`` for ``asset``."""
        account = HoldingAccount(
            owner=_canonical_or_raise(account.owner, kind="identity", name=f"{name} owner"),
            asset=_canonical_or_raise(account.asset, kind="asset", name=f"{name} asset"),
        )
        if account.owner != owner:
            raise InvalidHoldingAccount(f"{name} is not owned by {owner}")
        if account.asset != asset:
            raise InvalidHoldingAccount(f"{name} holds {account.asset}, expected {asset}")
        return account

    # -- Initialize -----------------------------------------------------------

    def prepare_initialize_pool(
        self,
        creator: str,
        lp_asset_id: str,
        reward_asset_id: str,
        reward_rate: int,
        *,
        signature: Optional[str] = None,
    ) -> PreparedTx:
        creator = _canonical_or_raise(creator, kind="identity", name="creator")
        lp_asset_id = _canonical_or_raise(lp_asset_id, kind="asset", name="lp_asset_id")
        reward_asset_id = _canonical_or_raise(reward_asset_id, kind="asset", name="reward_asset_id")
        reward_rate = _u64_or_raise(reward_rate, name="reward_rate", hi=self._config.max_reward_rate)

        address, bump = self.pool_address(lp_asset_id)
        self._authenticate(
            creator,
            request_payload(
                "initialize_pool",
                pool=address,
                user=creator,
                reward_asset_id=reward_asset_id,
                reward_rate=reward_rate,
            ),
            signature,
        )
        if not self._ledger.is_creation_authority(lp_asset_id, creator):
            raise InvalidMintAuthority(f"{creator} is not the creation authority of {lp_asset_id}")

        try:
            handle = self._store.create(RecordKind.POOL_CONFIG, address)
        except RecordExists as exc:
            raise PoolAlreadyInitialized(f"pool for {lp_asset_id} already exists") from exc

        lp_auth = vault_authority(lp_asset_id, VaultRole.LP)
        reward_auth = vault_authority(lp_asset_id, VaultRole.REWARD)
        pool = new_pool_config(
            admin=creator,
            lp_asset_id=lp_asset_id,
            reward_asset_id=reward_asset_id,
            reward_rate=reward_rate,
            lp_vault_authority=lp_auth.address,
            lp_vault_bump=lp_auth.bump,
            reward_vault_authority=reward_auth.address,
            reward_vault_bump=reward_auth.bump,
            bump=bump,
        )
        return PreparedTx(
            event=Event.POOL_INITIALIZED,
            pool_address=address,
            pool=pool,
            writes=(RecordWrite(handle=handle, record=pool),),
            vaults=(lp_auth, reward_auth),
        )

    def initialize_pool(
        self,
        creator: str,
        lp_asset_id: str,
        reward_asset_id: str,
        reward_rate: int,
        *,
        signature: Optional[str] = None,
    ) -> OperationReceipt:
        try:
            tx = self.prepare_initialize_pool(creator, lp_asset_id, reward_asset_id, reward_rate, signature=signature)
            return self.commit(tx)
        except StakingError as exc:
            logger.warning("initialize_pool rejected for %s: %s", lp_asset_id, exc.code)
            raise

    # -- Stake ----------------------------------------------------------------

    def prepare_stake(
        self,
        user: str,
        lp_asset_id: str,
        amount: int,
        holding: Optional[HoldingAccount] = None,
        *,
        signature: Optional[str] = None,
    ) -> PreparedTx:
        amount = _u64_or_raise(amount, name="amount", lo=1)
        user = _canonical_or_raise(user, kind="identity", name="user")
        lp_asset_id = _canonical_or_raise(lp_asset_id, kind="asset", name="lp_asset_id")
        pool_address, pool_handle, pool = self._load_pool(lp_asset_id)

        holding = holding or HoldingAccount(owner=user, asset=pool.lp_asset_id)
        holding = self._check_holding(holding, owner=user, asset=pool.lp_asset_id, name="LP holding account")
        self._authenticate(
            user, request_payload("stake", pool=pool_address, user=user, amount=amount), signature
        )

        position_handle, position = self._load_or_new_position(lp_asset_id, pool_address, user)
        result = engine.step_or_raise(
            pool,
            position,
            ActionParams(
                action=Action.STAKE,
                now=self._clock.now(),
                amount=amount,
                holder_balance=self._ledger.balance(holding),
            ),
        )
        assert result.pool is not None and result.position is not None
        return PreparedTx(
            event=Event.STAKED,
            pool_address=pool_address,
            pool=result.pool,
            position=result.position,
            transfers=self._resolve_transfers(pool, result.transfers),
            writes=(
                RecordWrite(handle=pool_handle, record=result.pool),
                RecordWrite(handle=position_handle, record=result.position),
            ),
        )

    def stake(
        self,
        user: str,
        lp_asset_id: str,
        amount: int,
        holding: Optional[HoldingAccount] = None,
        *,
        signature: Optional[str] = None,
    ) -> OperationReceipt:
        try:
            return self.commit(self.prepare_stake(user, lp_asset_id, amount, holding, signature=signature))
        except StakingError as exc:
            logger.warning("stake rejected for %s: %s", user, exc.code)
            raise

    # -- Withdraw -------------------------------------------------------------

    def prepare_withdraw(
        self,
        user: str,
        lp_asset_id: str,
        lp_holding: Optional[HoldingAccount] = None,
        reward_holding: Optional[HoldingAccount] = None,
        *,
        signature: Optional[str] = None,
    ) -> PreparedTx:
        user = _canonical_or_raise(user, kind="identity", name="user")
        lp_asset_id = _canonical_or_raise(lp_asset_id, kind="asset", name="lp_asset_id")
        pool_address, pool_handle, pool = self._load_pool(lp_asset_id)

        lp_holding = lp_holding or HoldingAccount(owner=user, asset=pool.lp_asset_id)
        reward_holding = reward_holding or HoldingAccount(owner=user, asset=pool.reward_asset_id)
        lp_holding = self._check_holding(lp_holding, owner=user, asset=pool.lp_asset_id, name="LP holding account")
        reward_holding = self._check_holding(
            reward_holding, owner=user, asset=pool.reward_asset_id, name="reward holding account"
        )
        self._authenticate(user, request_payload("withdraw", pool=pool_address, user=user), signature)

        position_handle, position = self._load_or_new_position(lp_asset_id, pool_address, user)
        result = engine.step_or_raise(
            pool, position, ActionParams(action=Action.WITHDRAW, now=self._clock.now())
        )
        assert result.pool is not None and result.position is not None
        return PreparedTx(
            event=Event.WITHDRAWN,
            pool_address=pool_address,
            pool=result.pool,
            position=result.position,
            quote=result.quote,
            transfers=self._resolve_transfers(pool, result.transfers),
            writes=(
                RecordWrite(handle=pool_handle, record=result.pool),
                RecordWrite(handle=position_handle, record=result.position),
            ),
        )

    def withdraw(
        self,
        user: str,
        lp_asset_id: str,
        lp_holding: Optional[HoldingAccount] = None,
        reward_holding: Optional[HoldingAccount] = None,
        *,
        signature: Optional[str] = None,
    ) -> OperationReceipt:
        try:
            return self.commit(
                self.prepare_withdraw(user, lp_asset_id, lp_holding, reward_holding, signature=signature)
            )
        except StakingError as exc:
            logger.warning("withdraw rejected for %s: %s", user, exc.code)
            raise

    # -- Reward funding -------------------------------------------------------

    def prepare_fund_rewards(
        self,
        funder: str,
        lp_asset_id: str,
        amount: int,
        holding: Optional[HoldingAccount] = None,
        *,
        signature: Optional[str] = None,
    ) -> PreparedTx:
        amount = _u64_or_raise(amount, name="amount", lo=1)
        funder = _canonical_or_raise(funder, kind="identity", name="funder")
        lp_asset_id = _canonical_or_raise(lp_asset_id, kind="asset", name="lp_asset_id")
        pool_address, _handle, pool = self._load_pool(lp_asset_id)

        holding = holding or HoldingAccount(owner=funder, asset=pool.reward_asset_id)
        holding = self._check_holding(holding, owner=funder, asset=pool.reward_asset_id, name="reward holding account")
        self._authenticate(
            funder, request_payload("fund_rewards", pool=pool_address, user=funder, amount=amount), signature
        )
        request = TransferRequest(
            asset=pool.reward_asset_id,
            from_holder=funder,
            to_holder=pool.reward_vault_authority,
            amount=amount,
            signer=TransferSigner.USER,
        )
        return PreparedTx(
            event=Event.REWARDS_FUNDED,
            pool_address=pool_address,
            pool=pool,
            transfers=self._resolve_transfers(pool, [request]),
        )

    def fund_rewards(
        self,
        funder: str,
        lp_asset_id: str,
        amount: int,
        holding: Optional[HoldingAccount] = None,
        *,
        signature: Optional[str] = None,
    ) -> OperationReceipt:
        try:
            return self.commit(self.prepare_fund_rewards(funder, lp_asset_id, amount, holding, signature=signature))
        except StakingError as exc:
            logger.warning("fund_rewards rejected for %s: %s", funder, exc.code)
            raise

    # -- Commit ---------------------------------------------------------------

    def commit(self, tx: PreparedTx) -> OperationReceipt:
        """Apply a prepared transaction's transfers and writes, all or nothing.

        Raises:
            WriteConflictError: a record read during preparation has changed.
            InsufficientBalance, TransferAuthorizationError: a transfer cannot apply.
            LayoutError: a record cannot be encoded.
        """
        with self._store.lock, self._ledger.lock:
            self._store.validate_writes(tx.writes)
            self._ledger.check_transfers(tx.transfers)
            self._ledger.apply_transfers(tx.transfers)
            self._store.save_all(tx.writes)
            for authority in tx.vaults:
                self._ledger.register_vault(authority)
        logger.info(
            "%s committed: pool=%s total_staked=%d rewards_distributed=%d reward=%s",
            tx.event.value,
            tx.pool_address,
            tx.pool.total_staked,
            tx.pool.rewards_distributed,
            tx.quote.reward if tx.quote else "-",
        )
        return OperationReceipt(
            event=tx.event,
            pool_address=tx.pool_address,
            pool=tx.pool,
            position=tx.position,
            quote=tx.quote,
            transfers=tx.transfers,
        )

    # -- Views ----------------------------------------------------------------

    def get_pool(self, lp_asset_id: str) -> PoolConfig:
        lp_asset_id = _canonical_or_raise(lp_asset_id, kind="asset", name="lp_asset_id")
        return self._load_pool(lp_asset_id)[2]

    def get_position(self, lp_asset_id: str, user: str) -> Optional[UserStakePosition]:
        lp_asset_id = _canonical_or_raise(lp_asset_id, kind="asset", name="lp_asset_id")
        user = _canonical_or_raise(user, kind="identity", name="user")
        address, _bump = self.position_address(lp_asset_id, user)
        try:
            return self._store.load(RecordKind.POSITION, address).record  # type: ignore[return-value]
        except RecordNotFound:
            return None

    def pending_reward(self, lp_asset_id: str, user: str, now: Optional[int] = None) -> RewardQuote:
        """Reward a withdraw would pay at ``now`` (defaults to the service clock)."""
        pool = self.get_pool(lp_asset_id)
        position = self.get_position(lp_asset_id, user)
        if position is None:
            return RewardQuote(elapsed=0, reward=0)
        return preview_reward(pool, position, self._clock.now() if now is None else now)

    def vault_balances(self, lp_asset_id: str) -> Dict[str, int]:
        pool = self.get_pool(lp_asset_id)
        return {
            "lp": self._ledger.balance_of(pool.lp_vault_authority, pool.lp_asset_id),
            "reward": self._ledger.balance_of(pool.reward_vault_authority, pool.reward_asset_id),
        }

    def audit_pool(self, lp_asset_id: str, users: Iterable[str]) -> List[str]:
        """Re-check pool-wide invariants over the given users' positions.

        Returns a list of problems (empty = consistent). ``users`` must cover
        every user that ever staked for the total-staked check to be exact.
        """
        pool = self.get_pool(lp_asset_id)
        problems: List[str] = []
        positions = [p for p in (self.get_position(lp_asset_id, u) for u in users) if p is not None]
        if not check_total_staked(pool, positions):
            problems.append("total_staked_mismatch")
        for role in (VaultRole.LP, VaultRole.REWARD):
            try:
                self._vault_authority(pool, role)
            except InvalidVaultAuthority:
                problems.append(f"{role.value}_vault_authority_mismatch")
        if self._ledger.balance_of(pool.lp_vault_authority, pool.lp_asset_id) < pool.total_staked:
            problems.append("lp_vault_undercollateralized")
        return problems
