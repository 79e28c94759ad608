"""Guard functions for the staking engine.

One pure function per action. Each returns ``None`` when the action is allowed
in the given PRE-state, or the rejection code of the first failing
precondition. Preconditions are checked in the documented order.
"""

from __future__ import annotations

from typing import Optional

from .errors import (
    AlreadyActivePosition,
    InsufficientBalance,
    InvalidPoolState,
    NoActivePosition,
)
from .types import ActionParams, PoolConfig, UserStakePosition


def guard_stake(pool: PoolConfig, position: UserStakePosition, params: ActionParams) -> Optional[str]:
    # No top-up: an active slot must be withdrawn before it can be re-staked.
    if position.is_active:
        return AlreadyActivePosition.code
    if params.holder_balance < params.amount:
        return InsufficientBalance.code
    return None


def guard_withdraw(pool: PoolConfig, position: UserStakePosition, params: ActionParams) -> Optional[str]:
    if not position.is_active:
        return NoActivePosition.code
    # Unreachable while the total-staked invariant holds.
    if pool.total_staked == 0:
        return InvalidPoolState.code
    return None
