"""Property tests: random stake/withdraw sequences keep the pool conserved.

Uses Hypothesis to fuzz operation sequences through the service and checks,
after every step, that tokens are neither created nor lost and that the pool's
counters agree with its positions and vaults.
"""

from __future__ import annotations

import importlib.util

import pytest

if importlib.util.find_spec("hypothesis") is None:  # pragma: no cover
    pytest.skip("hypothesis not installed", allow_module_level=True)

import hypothesis.strategies as st
from hypothesis import given, settings

from liqmine.core.staking.errors import AlreadyActivePosition, InsufficientBalance, NoActivePosition
from liqmine.core.staking.math import REWARD_RATE_SCALE
from liqmine.core.staking.rewards import reward_for
from liqmine.integration import AssetLedger, InMemoryRecordStore, ManualClock, StakingService

ADMIN = "0x" + "11" * 48
USERS = ["0x" + "22" * 48, "0x" + "33" * 48, "0x" + "44" * 48]
LP = "0x" + "aa" * 32
RW = "0x" + "bb" * 32
INITIAL_LP = 1000
FUNDING = 10**15

_op = st.tuples(
    st.sampled_from(["stake", "withdraw"]),
    st.integers(min_value=0, max_value=len(USERS) - 1),
    st.integers(min_value=1, max_value=INITIAL_LP + 200),
    st.integers(min_value=-5, max_value=100),
)


def _service():
    ledger = AssetLedger()
    ledger.register_asset(LP, ADMIN)
    ledger.register_asset(RW, ADMIN)
    for user in USERS:
        ledger.mint(LP, user, INITIAL_LP, authorized_by=ADMIN)
    ledger.mint(RW, ADMIN, FUNDING, authorized_by=ADMIN)
    clock = ManualClock(1_000_000)
    svc = StakingService(InMemoryRecordStore(), ledger, clock)
    svc.initialize_pool(ADMIN, LP, RW, REWARD_RATE_SCALE)
    svc.fund_rewards(ADMIN, LP, FUNDING)
    return svc, ledger, clock


def _check_conservation(svc, ledger):
    pool = svc.get_pool(LP)
    vaults = svc.vault_balances(LP)
    assert svc.audit_pool(LP, USERS) == []
    assert vaults["lp"] == pool.total_staked
    assert vaults["reward"] + pool.rewards_distributed == FUNDING
    paid = 0
    for user in USERS:
        position = svc.get_position(LP, user)
        staked = position.amount_staked if position is not None else 0
        assert ledger.balance_of(user, LP) + staked == INITIAL_LP
        paid += ledger.balance_of(user, RW)
    assert paid == pool.rewards_distributed


@settings(max_examples=20, deadline=None)
@given(st.lists(_op, min_size=1, max_size=8))
def test_random_sequences_conserve_tokens(ops):
    svc, ledger, clock = _service()
    for kind, idx, amount, dt in ops:
        clock.advance(dt)
        user = USERS[idx]
        try:
            if kind == "stake":
                svc.stake(user, LP, amount)
            else:
                svc.withdraw(user, LP)
        except (AlreadyActivePosition, InsufficientBalance, NoActivePosition):
            pass
        _check_conservation(svc, ledger)


@settings(max_examples=200, deadline=None)
@given(
    rate=st.integers(min_value=0, max_value=10**12),
    elapsed=st.integers(min_value=0, max_value=10**6),
    shares=st.lists(st.integers(min_value=1, max_value=10**9), min_size=1, max_size=5),
)
def test_shares_never_exceed_emission(rate, elapsed, shares):
    total = sum(shares)
    paid = sum(reward_for(rate, elapsed, s, total) for s in shares)
    assert paid <= rate * elapsed
    # Truncation loses less than one unit per position.
    assert rate * elapsed - paid < len(shares)


@settings(max_examples=200, deadline=None)
@given(
    rate=st.integers(min_value=0, max_value=10**12),
    elapsed=st.integers(min_value=0, max_value=10**6),
    staked=st.integers(min_value=1, max_value=10**9),
    extra=st.integers(min_value=0, max_value=10**9),
)
def test_reward_monotone_in_time(rate, elapsed, staked, extra):
    total = staked + extra
    assert reward_for(rate, elapsed, staked, total) <= reward_for(rate, elapsed + 1, staked, total)
