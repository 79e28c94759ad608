"""Exception taxonomy for the staking ledger.

Every failure is a typed, programmatically distinguishable error. Each class
carries a stable ``code`` string; the pure engine reports rejections with the
same codes (see ``engine.step``), and ``error_for()`` maps a code back to its
exception class.
"""

from __future__ import annotations

from typing import Dict, Optional, Type


class StakingError(Exception):
    """Base class for every error raised by the staking ledger."""

    code: str = "STAKING_ERROR"

    def __init__(self, message: Optional[str] = None) -> None:
        self.message = message or self.code
        super().__init__(self.message)


# -- Authorization -----------------------------------------------------------

class AuthorizationError(StakingError):
    code = "UNAUTHORIZED"


class InvalidMintAuthority(AuthorizationError):
    """Caller is not the creation authority of the LP asset."""

    code = "INVALID_MINT_AUTHORITY"


class TransferAuthorizationError(AuthorizationError):
    """``authorized_by`` does not match the signer required for the source account."""

    code = "TRANSFER_NOT_AUTHORIZED"


class InvalidVaultAuthority(AuthorizationError):
    """A stored vault authority does not re-derive from its seeds and bump."""

    code = "INVALID_VAULT_AUTHORITY"


class InvalidSignature(AuthorizationError):
    code = "INVALID_SIGNATURE"


class InvalidHoldingAccount(AuthorizationError):
    """Holding account is not owned by the caller or holds the wrong asset."""

    code = "INVALID_HOLDING_ACCOUNT"


# -- State -------------------------------------------------------------------

class InvalidStateError(StakingError):
    code = "INVALID_STATE"


class AlreadyActivePosition(InvalidStateError):
    code = "ALREADY_ACTIVE_POSITION"


class NoActivePosition(InvalidStateError):
    code = "NO_ACTIVE_POSITION"


class InvalidPoolState(InvalidStateError):
    """Pool has ``total_staked == 0`` where a share must be computed."""

    code = "INVALID_POOL_STATE"


class PoolAlreadyInitialized(InvalidStateError):
    code = "POOL_ALREADY_INITIALIZED"


class PoolNotFound(InvalidStateError):
    code = "POOL_NOT_FOUND"


# -- Balances ----------------------------------------------------------------

class InsufficientBalance(StakingError):
    code = "INSUFFICIENT_TOKEN_BALANCE"


# -- Arithmetic (staged) -----------------------------------------------------

class StakingArithmeticError(StakingError):
    """Base for arithmetic failures; the subclass names the failing stage."""

    code = "ARITHMETIC_ERROR"


class OverflowAtRateTime(StakingArithmeticError):
    code = "OVERFLOW_AT_RATE_TIME"


class OverflowAtStakeMultiplication(StakingArithmeticError):
    code = "OVERFLOW_AT_STAKE_MULTIPLICATION"


class DivisionByPoolShare(StakingArithmeticError):
    code = "DIVISION_BY_POOL_SHARE"


class RewardAmountOverflow(StakingArithmeticError):
    code = "REWARD_AMOUNT_OVERFLOW"


class TotalStakedOverflow(StakingArithmeticError):
    code = "TOTAL_STAKED_OVERFLOW"


class TotalStakedUnderflow(StakingArithmeticError):
    code = "TOTAL_STAKED_UNDERFLOW"


class RewardsDistributedOverflow(StakingArithmeticError):
    code = "REWARDS_DISTRIBUTED_OVERFLOW"


# -- Domain / invariants -----------------------------------------------------

class ParamDomainError(StakingError):
    """A parameter is outside its declared integer or identifier domain."""

    code = "PARAM_DOMAIN"


class InvariantViolation(StakingError):
    """Raised when a post-state violates one or more invariants."""

    code = "INVARIANT_VIOLATION"

    def __init__(self, violations: list[str]) -> None:
        self.violations = violations
        super().__init__(f"invariant violations: {', '.join(violations)}")


# -- Substrate ---------------------------------------------------------------

class SubstrateError(StakingError):
    code = "SUBSTRATE_ERROR"


class RecordNotFound(SubstrateError):
    code = "RECORD_NOT_FOUND"


class RecordExists(SubstrateError):
    code = "RECORD_EXISTS"


class WriteConflictError(SubstrateError):
    """A staged write's expected record version no longer matches the store."""

    code = "WRITE_CONFLICT"


class LayoutError(SubstrateError):
    code = "LAYOUT_ERROR"


def _all_subclasses(cls: Type[StakingError]) -> list[Type[StakingError]]:
    out: list[Type[StakingError]] = []
    for sub in cls.__subclasses__():
        out.append(sub)
        out.extend(_all_subclasses(sub))
    return out


ERROR_BY_CODE: Dict[str, Type[StakingError]] = {
    cls.code: cls for cls in [StakingError, *_all_subclasses(StakingError)]
}


def error_for(code: str, message: Optional[str] = None) -> StakingError:
    """Build the typed exception for a rejection code.

    Codes may carry a ``:detail`` suffix (``"PARAM_DOMAIN:amount"``); the
    suffix becomes the message.
    """
    base, _, detail = code.partition(":")
    cls = ERROR_BY_CODE.get(base, StakingError)
    if cls is InvariantViolation:
        return InvariantViolation(detail.split(",") if detail else [])
    return cls(message or code)
