"""State transition functions for the staking engine.

One pure function per action. Each evaluates against the PRE-state and returns
the new pool and position records plus the transfers the shell must execute in
the same atomic unit. Updates are built with ``dataclasses.replace()``.

Arithmetic failures propagate as ``StakingArithmeticError`` subclasses.
"""

from __future__ import annotations

from dataclasses import replace
from typing import Tuple

from .math import add_rewards_distributed, add_total_staked, sub_total_staked
from .rewards import compute_reward
from .types import (
    ActionParams,
    PoolConfig,
    RewardQuote,
    TransferRequest,
    TransferSigner,
    UserStakePosition,
)

StakeUpdate = Tuple[PoolConfig, UserStakePosition, Tuple[TransferRequest, ...]]
WithdrawUpdate = Tuple[PoolConfig, UserStakePosition, Tuple[TransferRequest, ...], RewardQuote]


def apply_stake(pool: PoolConfig, position: UserStakePosition, params: ActionParams) -> StakeUpdate:
    new_pool = replace(pool, total_staked=add_total_staked(pool.total_staked, params.amount))
    new_position = replace(
        position,
        amount_staked=params.amount,
        staked_at=params.now,
        last_claimed=params.now,
    )
    transfers = (
        TransferRequest(
            asset=pool.lp_asset_id,
            from_holder=position.owner,
            to_holder=pool.lp_vault_authority,
            amount=params.amount,
            signer=TransferSigner.USER,
        ),
    )
    return new_pool, new_position, transfers


def apply_withdraw(pool: PoolConfig, position: UserStakePosition, params: ActionParams) -> WithdrawUpdate:
    # Reward is settled once, against last_claimed, as a full exit.
    quote = compute_reward(pool, position, params.now)
    staked = position.amount_staked

    transfers = (
        TransferRequest(
            asset=pool.lp_asset_id,
            from_holder=pool.lp_vault_authority,
            to_holder=position.owner,
            amount=staked,
            signer=TransferSigner.LP_VAULT,
        ),
        TransferRequest(
            asset=pool.reward_asset_id,
            from_holder=pool.reward_vault_authority,
            to_holder=position.owner,
            amount=quote.reward,
            signer=TransferSigner.REWARD_VAULT,
        ),
    )
    new_pool = replace(
        pool,
        total_staked=sub_total_staked(pool.total_staked, staked),
        rewards_distributed=add_rewards_distributed(pool.rewards_distributed, quote.reward),
    )
    new_position = replace(position, amount_staked=0, last_claimed=params.now)
    return new_pool, new_position, transfers, quote
