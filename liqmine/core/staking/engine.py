"""Dispatch-table engine for the staking ledger.

``step(pool, position, params)`` is the single entry point for position
transitions. It:

1. Validates parameter domains (u64 amounts, integer timestamps).
2. Runs the action's guard (ordered preconditions).
3. Applies the update; staged arithmetic failures become rejections.
4. Checks record and transition invariants on the post-state.
5. Returns a ``StepResult`` (accepted, or rejected with a code).

No transfer is described in an accepted result unless every check passed, so
the shell can issue all of them or none.
"""

from __future__ import annotations

from typing import Callable, Optional

from .errors import InvariantViolation, ParamDomainError, StakingArithmeticError, error_for
from .guards import guard_stake, guard_withdraw
from .invariants import check_all, check_transition
from .math import I64_MAX, I64_MIN, U64_MAX
from .types import (
    Action,
    ActionParams,
    Event,
    PoolConfig,
    StepResult,
    UserStakePosition,
)
from .updates import apply_stake, apply_withdraw

GuardFn = Callable[[PoolConfig, UserStakePosition, ActionParams], Optional[str]]


def _update_stake(pool: PoolConfig, position: UserStakePosition, params: ActionParams):
    new_pool, new_position, transfers = apply_stake(pool, position, params)
    return new_pool, new_position, transfers, None


_DISPATCH: dict[Action, tuple[GuardFn, Callable, Event]] = {
    Action.STAKE: (guard_stake, _update_stake, Event.STAKED),
    Action.WITHDRAW: (guard_withdraw, apply_withdraw, Event.WITHDRAWN),
}

# Per-action bounds: list of (field_name, min_val, max_val).
_PARAM_BOUNDS: dict[Action, list[tuple[str, int, int]]] = {
    Action.STAKE: [
        ("amount", 1, U64_MAX),
        ("holder_balance", 0, U64_MAX),
    ],
    Action.WITHDRAW: [],
}


def _validate_params(params: ActionParams) -> str | None:
    """Check parameter domain bounds. Returns rejection reason or None."""
    if isinstance(params.now, bool) or not isinstance(params.now, int):
        return f"{ParamDomainError.code}:now"
    if not (I64_MIN <= params.now <= I64_MAX):
        return f"{ParamDomainError.code}:now"
    for field, lo, hi in _PARAM_BOUNDS.get(params.action, []):
        val = getattr(params, field)
        if isinstance(val, bool) or not isinstance(val, int) or val < lo or val > hi:
            return f"{ParamDomainError.code}:{field}"
    return None


def step(pool: PoolConfig, position: UserStakePosition, params: ActionParams) -> StepResult:
    """Execute one action against a pool and one of its positions.

    Returns ``StepResult`` with ``accepted=True`` on success,
    or ``accepted=False`` with a ``rejection`` code.
    """
    entry = _DISPATCH.get(params.action)
    if entry is None:
        return StepResult(accepted=False, rejection=f"unknown_action:{params.action}")

    domain_err = _validate_params(params)
    if domain_err is not None:
        return StepResult(accepted=False, rejection=domain_err)

    guard_fn, update_fn, event = entry

    rejection = guard_fn(pool, position, params)
    if rejection is not None:
        return StepResult(accepted=False, rejection=rejection)

    try:
        new_pool, new_position, transfers, quote = update_fn(pool, position, params)
    except StakingArithmeticError as exc:
        return StepResult(accepted=False, rejection=exc.code)

    violations = check_all(new_pool, new_position) + check_transition(pool, new_pool)
    if violations:
        return StepResult(
            accepted=False,
            rejection=f"{InvariantViolation.code}:{','.join(violations)}",
        )

    return StepResult(
        accepted=True,
        pool=new_pool,
        position=new_position,
        transfers=tuple(transfers),
        event=event,
        quote=quote,
    )


def step_or_raise(pool: PoolConfig, position: UserStakePosition, params: ActionParams) -> StepResult:
    """Like ``step()`` but raises the typed error instead of returning a rejection.

    Raises:
        ParamDomainError: Parameter outside its domain.
        AlreadyActivePosition, NoActivePosition, InvalidPoolState,
        InsufficientBalance: Guard precondition not satisfied.
        StakingArithmeticError: A reward or counter stage failed.
        InvariantViolation: Post-state violates one or more invariants.
    """
    result = step(pool, position, params)
    if result.accepted:
        return result
    raise error_for(result.rejection or "")

