"""Data types for the staking ledger.

All types are frozen dataclasses (immutable); transitions build new records
with ``dataclasses.replace()``.

Units/conventions:
- identities and derived addresses are 0x-prefixed 48-byte hex strings,
- asset ids are 0x-prefixed 32-byte hex strings,
- amounts and counters are u64 ints,
- timestamps are Unix seconds (i64 on the wire),
- ``reward_rate`` is scaled by ``REWARD_RATE_SCALE`` (1e9 == 1.0 per second).
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, unique
from typing import Optional, Tuple


@unique
class Action(Enum):
    STAKE = "stake"
    WITHDRAW = "withdraw"


@unique
class Event(Enum):
    POOL_INITIALIZED = "PoolInitialized"
    STAKED = "Staked"
    WITHDRAWN = "Withdrawn"
    REWARDS_FUNDED = "RewardsFunded"


@unique
class TransferSigner(Enum):
    """Which authority must sign a transfer out of its source account."""

    USER = "user"
    LP_VAULT = "lp_vault"
    REWARD_VAULT = "reward_vault"


@dataclass(frozen=True)
class PoolConfig:
    """Aggregate state of one LP-asset/reward-asset pool."""

    admin: str
    lp_asset_id: str
    reward_asset_id: str
    reward_rate: int
    lp_vault_authority: str
    lp_vault_bump: int
    reward_vault_authority: str
    reward_vault_bump: int
    bump: int
    total_staked: int = 0
    rewards_distributed: int = 0


@dataclass(frozen=True)
class UserStakePosition:
    """One user's stake slot within a pool. ``amount_staked == 0`` means inactive."""

    owner: str
    pool: str
    bump: int
    amount_staked: int = 0
    staked_at: int = 0
    last_claimed: int = 0

    @property
    def is_active(self) -> bool:
        return self.amount_staked > 0


@dataclass(frozen=True)
class ActionParams:
    """Parameters for an action. Unused fields default to 0."""

    action: Action
    now: int = 0
    amount: int = 0          # stake
    holder_balance: int = 0  # stake: caller's LP holding balance


@dataclass(frozen=True)
class TransferRequest:
    """A transfer the shell must execute as part of the same atomic unit."""

    asset: str
    from_holder: str
    to_holder: str
    amount: int
    signer: TransferSigner


@dataclass(frozen=True)
class RewardQuote:
    elapsed: int
    reward: int


@dataclass(frozen=True)
class StepResult:
    """Result of a single engine step."""

    accepted: bool
    pool: Optional[PoolConfig] = None
    position: Optional[UserStakePosition] = None
    transfers: Tuple[TransferRequest, ...] = ()
    event: Optional[Event] = None
    quote: Optional[RewardQuote] = None
    rejection: Optional[str] = None
