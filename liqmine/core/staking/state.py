"""Record construction and dict serialization for the staking engine.

Round-trip property (tested): ``pool_from_dict(pool_to_dict(p)) == p`` and the
same for positions.
"""

from __future__ import annotations

from dataclasses import fields
from typing import Any, Mapping, Type, TypeVar

from .types import PoolConfig, UserStakePosition

POOL_FIELD_NAMES: tuple[str, ...] = tuple(f.name for f in fields(PoolConfig))
POSITION_FIELD_NAMES: tuple[str, ...] = tuple(f.name for f in fields(UserStakePosition))

_R = TypeVar("_R", PoolConfig, UserStakePosition)


def new_pool_config(
    *,
    admin: str,
    lp_asset_id: str,
    reward_asset_id: str,
    reward_rate: int,
    lp_vault_authority: str,
    lp_vault_bump: int,
    reward_vault_authority: str,
    reward_vault_bump: int,
    bump: int,
) -> PoolConfig:
    """A freshly initialized pool: nothing staked, nothing distributed."""
    return PoolConfig(
        admin=admin,
        lp_asset_id=lp_asset_id,
        reward_asset_id=reward_asset_id,
        reward_rate=reward_rate,
        lp_vault_authority=lp_vault_authority,
        lp_vault_bump=lp_vault_bump,
        reward_vault_authority=reward_vault_authority,
        reward_vault_bump=reward_vault_bump,
        bump=bump,
        total_staked=0,
        rewards_distributed=0,
    )


def new_position(*, owner: str, pool: str, bump: int) -> UserStakePosition:
    """An inactive slot, as created lazily on a user's first stake."""
    return UserStakePosition(owner=owner, pool=pool, bump=bump)


def _to_dict(record: Any, names: tuple[str, ...]) -> dict[str, int | str]:
    return {name: getattr(record, name) for name in names}


def _from_dict(cls: Type[_R], d: Mapping[str, Any], names: tuple[str, ...]) -> _R:
    kwargs: dict[str, Any] = {}
    for name in names:
        val = d[name]
        if isinstance(val, bool) or not isinstance(val, (int, str)):
            raise TypeError(f"field {name!r} must be int|str, got {type(val).__name__}")
        kwargs[name] = int(val) if isinstance(val, int) else val
    return cls(**kwargs)


def pool_to_dict(pool: PoolConfig) -> dict[str, int | str]:
    return _to_dict(pool, POOL_FIELD_NAMES)


def pool_from_dict(d: Mapping[str, Any]) -> PoolConfig:
    """Raises KeyError on missing fields."""
    return _from_dict(PoolConfig, d, POOL_FIELD_NAMES)


def position_to_dict(position: UserStakePosition) -> dict[str, int | str]:
    return _to_dict(position, POSITION_FIELD_NAMES)


def position_from_dict(d: Mapping[str, Any]) -> UserStakePosition:
    """Raises KeyError on missing fields."""
    return _from_dict(UserStakePosition, d, POSITION_FIELD_NAMES)
