"""
Staking service configuration.

Sources, in increasing precedence:
- dataclass defaults,
- a YAML file (``load_config(path)``),
- environment variables (``StakingConfig.from_env(base)``):

    LIQMINE_CHAIN_ID            request-signature domain (str)
    LIQMINE_REQUIRE_SIGNATURES  "1"/"true" to require BLS request signatures
    LIQMINE_MAX_REWARD_RATE     upper bound accepted at pool initialization
"""

from __future__ import annotations

import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Mapping, Optional, Union

import yaml

from ..core.staking.math import U64_MAX


def _env_int(name: str, default: int, *, lo: int, hi: int) -> int:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return int(default)
    try:
        v = int(raw.strip())
    except ValueError:
        return int(default)
    if v < lo:
        return int(lo)
    if v > hi:
        return int(hi)
    return int(v)


def _env_str(name: str, default: str) -> str:
    raw = os.environ.get(name)
    if raw is None:
        return default
    v = raw.strip()
    return v if v else default


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class StakingConfig:
    # Request signatures are bound to one deployment to prevent cross-chain replay.
    chain_id: str = "liqmine-local"

    # If True, initialize/stake/withdraw/fund require a BLS signature from the caller.
    # If False, caller identity is taken as already authenticated by the surrounding layer.
    require_signatures: bool = False

    # Pools cannot be created with a reward_rate above this bound.
    max_reward_rate: int = U64_MAX

    def __post_init__(self) -> None:
        if not isinstance(self.chain_id, str) or not self.chain_id:
            raise ValueError("chain_id must be a non-empty string")
        if not isinstance(self.require_signatures, bool):
            raise ValueError("require_signatures must be a bool")
        if (
            not isinstance(self.max_reward_rate, int)
            or isinstance(self.max_reward_rate, bool)
            or not (0 <= self.max_reward_rate <= U64_MAX)
        ):
            raise ValueError(f"max_reward_rate must be a u64: {self.max_reward_rate!r}")

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "StakingConfig":
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ValueError(f"unknown config keys: {', '.join(unknown)}")
        return cls(**dict(data))

    @classmethod
    def from_env(cls, base: Optional["StakingConfig"] = None) -> "StakingConfig":
        cfg = base or cls()
        return replace(
            cfg,
            chain_id=_env_str("LIQMINE_CHAIN_ID", cfg.chain_id),
            require_signatures=_env_bool("LIQMINE_REQUIRE_SIGNATURES", cfg.require_signatures),
            max_reward_rate=_env_int("LIQMINE_MAX_REWARD_RATE", cfg.max_reward_rate, lo=0, hi=U64_MAX),
        )


def load_config(path: Union[str, Path], *, env: bool = True) -> StakingConfig:
    """Load a YAML config file (a mapping; an empty file means defaults)."""
    text = Path(path).read_text(encoding="utf-8")
    data = yaml.safe_load(text)
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ValueError(f"config file {path} must contain a mapping")
    cfg = StakingConfig.from_mapping(data)
    return StakingConfig.from_env(cfg) if env else cfg
