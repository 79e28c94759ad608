"""Invariant checkers for the staking engine.

Record invariants take the post-state (pool, position) pair; transition
invariants compare a pool record before and after a step. ``check_all()`` and
``check_transition()`` return the list of violated invariant IDs (empty = all
pass).

The pool-wide conservation law (``total_staked`` equals the sum of active
stakes) needs every position of the pool and is checked separately with
``check_total_staked()``.
"""

from __future__ import annotations

from typing import Callable, Iterable

from .math import is_u64
from .types import PoolConfig, UserStakePosition


def inv_pool_counters_u64(p: PoolConfig, s: UserStakePosition) -> bool:
    return is_u64(p.total_staked) and is_u64(p.rewards_distributed) and is_u64(p.reward_rate)


def inv_position_amount_u64(p: PoolConfig, s: UserStakePosition) -> bool:
    return is_u64(s.amount_staked)


def inv_position_within_total(p: PoolConfig, s: UserStakePosition) -> bool:
    return s.amount_staked <= p.total_staked


def inv_claim_not_before_stake(p: PoolConfig, s: UserStakePosition) -> bool:
    if not s.is_active:
        return True
    return s.last_claimed >= s.staked_at


def inv_bumps_in_range(p: PoolConfig, s: UserStakePosition) -> bool:
    return all(0 <= b <= 255 for b in (p.bump, p.lp_vault_bump, p.reward_vault_bump, s.bump))


INVARIANT_REGISTRY: dict[str, Callable[[PoolConfig, UserStakePosition], bool]] = {
    "inv_pool_counters_u64": inv_pool_counters_u64,
    "inv_position_amount_u64": inv_position_amount_u64,
    "inv_position_within_total": inv_position_within_total,
    "inv_claim_not_before_stake": inv_claim_not_before_stake,
    "inv_bumps_in_range": inv_bumps_in_range,
}


def check_all(pool: PoolConfig, position: UserStakePosition) -> list[str]:
    """Return list of violated invariant IDs (empty = all pass)."""
    return [
        inv_id
        for inv_id, check_fn in INVARIANT_REGISTRY.items()
        if not check_fn(pool, position)
    ]


# ---------------------------------------------------------------------------
# Transition invariants
# ---------------------------------------------------------------------------

def tinv_reward_rate_fixed(pre: PoolConfig, post: PoolConfig) -> bool:
    return pre.reward_rate == post.reward_rate


def tinv_rewards_monotone(pre: PoolConfig, post: PoolConfig) -> bool:
    return post.rewards_distributed >= pre.rewards_distributed


def tinv_identity_fixed(pre: PoolConfig, post: PoolConfig) -> bool:
    return (
        pre.admin == post.admin
        and pre.lp_asset_id == post.lp_asset_id
        and pre.reward_asset_id == post.reward_asset_id
        and pre.lp_vault_authority == post.lp_vault_authority
        and pre.reward_vault_authority == post.reward_vault_authority
    )


TRANSITION_REGISTRY: dict[str, Callable[[PoolConfig, PoolConfig], bool]] = {
    "tinv_reward_rate_fixed": tinv_reward_rate_fixed,
    "tinv_rewards_monotone": tinv_rewards_monotone,
    "tinv_identity_fixed": tinv_identity_fixed,
}


def check_transition(pre: PoolConfig, post: PoolConfig) -> list[str]:
    return [
        inv_id
        for inv_id, check_fn in TRANSITION_REGISTRY.items()
        if not check_fn(pre, post)
    ]


def check_total_staked(pool: PoolConfig, positions: Iterable[UserStakePosition]) -> bool:
    """True when ``pool.total_staked`` equals the sum of its active stakes."""
    return pool.total_staked == sum(s.amount_staked for s in positions if s.is_active)
