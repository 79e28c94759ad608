"""
Operation envelopes for the staking service.

An operation is a JSON-style object with a ``kind`` and the fields of that
kind; ``signature`` is optional everywhere:

    {"kind": "initialize_pool", "creator": ..., "lp_asset_id": ..., "reward_asset_id": ..., "reward_rate": int}
    {"kind": "fund_rewards", "funder": ..., "lp_asset_id": ..., "amount": int}
    {"kind": "stake", "user": ..., "lp_asset_id": ..., "amount": int}
    {"kind": "withdraw", "user": ..., "lp_asset_id": ...}
"""

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Union

from .service import OperationReceipt, StakingService


def _require_str(value: Any, *, name: str, non_empty: bool = True, max_len: int = 4096) -> str:
    if not isinstance(value, str):
        raise ValueError(f"{name} must be a string")
    if non_empty and not value:
        raise ValueError(f"{name} must be non-empty")
    if max_len > 0 and len(value) > max_len:
        raise ValueError(f"{name} too large")
    return value


def _require_int(value: Any, *, name: str, non_negative: bool = False) -> int:
    if not isinstance(value, int) or isinstance(value, bool):
        raise ValueError(f"{name} must be an int")
    if non_negative and value < 0:
        raise ValueError(f"{name} must be non-negative")
    return int(value)


def _optional_str(value: Any, *, name: str) -> Optional[str]:
    if value is None:
        return None
    return _require_str(value, name=name)


@dataclass(frozen=True)
class InitializePoolOp:
    creator: str
    lp_asset_id: str
    reward_asset_id: str
    reward_rate: int
    signature: Optional[str] = None


@dataclass(frozen=True)
class FundRewardsOp:
    funder: str
    lp_asset_id: str
    amount: int
    signature: Optional[str] = None


@dataclass(frozen=True)
class StakeOp:
    user: str
    lp_asset_id: str
    amount: int
    signature: Optional[str] = None


@dataclass(frozen=True)
class WithdrawOp:
    user: str
    lp_asset_id: str
    signature: Optional[str] = None


StakingOperation = Union[InitializePoolOp, FundRewardsOp, StakeOp, WithdrawOp]

_FIELDS: Dict[str, tuple] = {
    "initialize_pool": (InitializePoolOp, ("creator", "lp_asset_id", "reward_asset_id"), ("reward_rate",)),
    "fund_rewards": (FundRewardsOp, ("funder", "lp_asset_id"), ("amount",)),
    "stake": (StakeOp, ("user", "lp_asset_id"), ("amount",)),
    "withdraw": (WithdrawOp, ("user", "lp_asset_id"), ()),
}


def parse_operation(data: Mapping) -> StakingOperation:
    """
    Parse one operation envelope.

    Raises:
        ValueError: unknown kind, missing or mistyped field, or unexpected key.
    """
    if not isinstance(data, Mapping):
        raise ValueError(f"operation must be an object, got {type(data)}")
    kind = _require_str(data.get("kind"), name="kind")
    entry = _FIELDS.get(kind)
    if entry is None:
        raise ValueError(f"unknown operation kind: {kind}")
    cls, str_fields, int_fields = entry

    allowed = {"kind", "signature", *str_fields, *int_fields}
    unexpected = sorted(str(k) for k in data.keys() if k not in allowed)
    if unexpected:
        raise ValueError(f"unexpected fields for {kind}: {', '.join(unexpected)}")

    kwargs: Dict[str, Any] = {}
    for name in str_fields:
        kwargs[name] = _require_str(data.get(name), name=name)
    for name in int_fields:
        kwargs[name] = _require_int(data.get(name), name=name, non_negative=True)
    kwargs["signature"] = _optional_str(data.get("signature"), name="signature")
    return cls(**kwargs)


def parse_operations(data: Any) -> List[StakingOperation]:
    if not isinstance(data, list):
        raise ValueError(f"operations must be a list, got {type(data)}")
    out: List[StakingOperation] = []
    for i, entry in enumerate(data):
        try:
            out.append(parse_operation(entry))
        except ValueError as e:
            raise ValueError(f"Failed to parse operation {i}: {e}") from e
    return out


def apply_operation(service: StakingService, op: Union[StakingOperation, Mapping]) -> OperationReceipt:
    """Dispatch a parsed (or raw) operation to the service."""
    if isinstance(op, Mapping):
        op = parse_operation(op)
    if isinstance(op, InitializePoolOp):
        return service.initialize_pool(
            op.creator, op.lp_asset_id, op.reward_asset_id, op.reward_rate, signature=op.signature
        )
    if isinstance(op, FundRewardsOp):
        return service.fund_rewards(op.funder, op.lp_asset_id, op.amount, signature=op.signature)
    if isinstance(op, StakeOp):
        return service.stake(op.user, op.lp_asset_id, op.amount, signature=op.signature)
    if isinstance(op, WithdrawOp):
        return service.withdraw(op.user, op.lp_asset_id, signature=op.signature)
    raise TypeError(f"unsupported operation: {type(op).__name__}")
