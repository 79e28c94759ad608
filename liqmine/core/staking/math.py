"""Checked arithmetic for the reward path.

Every function is stateless and operates on plain Python ints. Python ints do
not wrap, so the fixed-width domains are enforced explicitly: intermediates
live in the unsigned 128-bit domain, stored amounts in the unsigned 64-bit
domain. Each stage that can fail raises its own ``StakingArithmeticError``
subclass so callers can tell exactly which step of the formula broke.

Division is floor division on non-negative operands (truncation toward zero).
"""

from __future__ import annotations

from .errors import (
    DivisionByPoolShare,
    OverflowAtRateTime,
    OverflowAtStakeMultiplication,
    RewardAmountOverflow,
    RewardsDistributedOverflow,
    StakingArithmeticError,
    TotalStakedOverflow,
    TotalStakedUnderflow,
)

U64_MAX: int = (1 << 64) - 1
U128_MAX: int = (1 << 128) - 1
I64_MIN: int = -(1 << 63)
I64_MAX: int = (1 << 63) - 1

# reward_rate of 1.0 reward unit per second.
REWARD_RATE_SCALE: int = 1_000_000_000


def is_u64(x: int) -> bool:
    return isinstance(x, int) and not isinstance(x, bool) and 0 <= x <= U64_MAX


# -- Reward formula stages ---------------------------------------------------

def checked_mul_time(rate: int, elapsed: int) -> int:
    """Stage 1: ``rate * elapsed`` in the u128 domain."""
    if rate < 0 or elapsed < 0:
        raise OverflowAtRateTime(f"negative operand: rate={rate} elapsed={elapsed}")
    product = rate * elapsed
    if product > U128_MAX:
        raise OverflowAtRateTime(f"rate*elapsed exceeds u128: {rate}*{elapsed}")
    return product


def checked_mul_stake(intermediate: int, staked_amount: int) -> int:
    """Stage 2: ``(rate * elapsed) * staked_amount`` in the u128 domain."""
    if intermediate < 0 or staked_amount < 0:
        raise OverflowAtStakeMultiplication(
            f"negative operand: intermediate={intermediate} staked={staked_amount}"
        )
    product = intermediate * staked_amount
    if product > U128_MAX:
        raise OverflowAtStakeMultiplication(f"intermediate*staked exceeds u128: {intermediate}*{staked_amount}")
    return product


def checked_div_share(intermediate: int, total_staked: int) -> int:
    """Stage 3: floor division by the pool total."""
    if total_staked <= 0:
        raise DivisionByPoolShare(f"total_staked must be positive: {total_staked}")
    return intermediate // total_staked


def narrow_to_unit(intermediate: int) -> int:
    """Stage 4: narrow a u128 intermediate to a u64 amount."""
    if intermediate < 0 or intermediate > U64_MAX:
        raise RewardAmountOverflow(f"reward does not fit u64: {intermediate}")
    return intermediate


# -- Pool counters -----------------------------------------------------------

def checked_add_u64(a: int, b: int, *, error: type[StakingArithmeticError] = TotalStakedOverflow) -> int:
    out = a + b
    if out > U64_MAX:
        raise error(f"{a} + {b} exceeds u64")
    return out


def checked_sub_u64(a: int, b: int, *, error: type[StakingArithmeticError] = TotalStakedUnderflow) -> int:
    out = a - b
    if out < 0:
        raise error(f"{a} - {b} is negative")
    return out


def add_total_staked(total_staked: int, amount: int) -> int:
    return checked_add_u64(total_staked, amount, error=TotalStakedOverflow)


def sub_total_staked(total_staked: int, amount: int) -> int:
    return checked_sub_u64(total_staked, amount, error=TotalStakedUnderflow)


def add_rewards_distributed(rewards_distributed: int, reward: int) -> int:
    return checked_add_u64(rewards_distributed, reward, error=RewardsDistributedOverflow)
