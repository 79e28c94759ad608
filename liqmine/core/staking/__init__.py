"""`staking`: pure-Python functional core of the LP staking ledger.

- deterministic, integer-only transitions,
- immutable records (frozen dataclasses),
- fail-closed guards, staged checked arithmetic and invariant checks.

Public API:
- `new_pool_config(...) -> PoolConfig`, `new_position(...) -> UserStakePosition`
- `step(pool, position, params) -> StepResult`
- `step_or_raise(pool, position, params) -> StepResult` (raises on rejection)
- `compute_reward(pool, position, now) -> RewardQuote`
"""

from .engine import step, step_or_raise
from .errors import (
    AlreadyActivePosition,
    AuthorizationError,
    InsufficientBalance,
    InvalidMintAuthority,
    InvalidPoolState,
    InvalidStateError,
    NoActivePosition,
    ParamDomainError,
    StakingArithmeticError,
    StakingError,
)
from .invariants import check_total_staked
from .rewards import compute_reward, elapsed_seconds, preview_reward
from .state import new_pool_config, new_position
from .types import (
    Action,
    ActionParams,
    Event,
    PoolConfig,
    RewardQuote,
    StepResult,
    TransferRequest,
    TransferSigner,
    UserStakePosition,
)

__all__ = [
    "step",
    "step_or_raise",
    "compute_reward",
    "preview_reward",
    "elapsed_seconds",
    "check_total_staked",
    "new_pool_config",
    "new_position",
    "Action",
    "ActionParams",
    "Event",
    "PoolConfig",
    "RewardQuote",
    "StepResult",
    "TransferRequest",
    "TransferSigner",
    "UserStakePosition",
    "StakingError",
    "AuthorizationError",
    "InvalidMintAuthority",
    "InvalidStateError",
    "AlreadyActivePosition",
    "NoActivePosition",
    "InvalidPoolState",
    "InsufficientBalance",
    "StakingArithmeticError",
    "ParamDomainError",
]
