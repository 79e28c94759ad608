"""Reward accrual engine.

reward = floor(reward_rate * elapsed * amount_staked / total_staked)

evaluated through the checked stages in ``math.py`` in this fixed order:
rate x time, then x stake, then / total_staked, then narrowed to u64.
Truncation toward zero is the defined rounding; fractional units are lost.
"""

from __future__ import annotations

from .math import checked_div_share, checked_mul_stake, checked_mul_time, narrow_to_unit
from .types import PoolConfig, RewardQuote, UserStakePosition


def elapsed_seconds(now: int, last_claimed: int) -> int:
    """Seconds since ``last_claimed``; a clock regression yields 0."""
    return max(0, now - last_claimed)


def reward_for(reward_rate: int, elapsed: int, amount_staked: int, total_staked: int) -> int:
    intermediate = checked_mul_time(reward_rate, elapsed)
    intermediate = checked_mul_stake(intermediate, amount_staked)
    intermediate = checked_div_share(intermediate, total_staked)
    return narrow_to_unit(intermediate)


def compute_reward(pool: PoolConfig, position: UserStakePosition, now: int) -> RewardQuote:
    """Reward owed to ``position`` since its ``last_claimed`` timestamp.

    Precondition: ``pool.total_staked > 0``. The caller enforces it as
    ``InvalidPoolState``; if it is violated anyway the division stage raises
    ``DivisionByPoolShare``.

    Raises:
        OverflowAtRateTime, OverflowAtStakeMultiplication,
        DivisionByPoolShare, RewardAmountOverflow
    """
    elapsed = elapsed_seconds(now, position.last_claimed)
    reward = reward_for(pool.reward_rate, elapsed, position.amount_staked, pool.total_staked)
    return RewardQuote(elapsed=elapsed, reward=reward)


def preview_reward(pool: PoolConfig, position: UserStakePosition, now: int) -> RewardQuote:
    """Read-only quote; inactive positions and empty pools quote zero."""
    if not position.is_active or pool.total_staked == 0:
        return RewardQuote(elapsed=0, reward=0)
    return compute_reward(pool, position, now)
