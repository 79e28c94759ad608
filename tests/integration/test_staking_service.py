"""End-to-end tests for the staking service over the in-memory store and ledger."""

import logging
from dataclasses import replace

import pytest

from liqmine.core.staking.errors import (
    AlreadyActivePosition,
    InsufficientBalance,
    InvalidHoldingAccount,
    InvalidMintAuthority,
    InvalidPoolState,
    InvalidVaultAuthority,
    NoActivePosition,
    ParamDomainError,
    PoolAlreadyInitialized,
    PoolNotFound,
    TransferAuthorizationError,
    WriteConflictError,
)
from liqmine.core.staking.math import REWARD_RATE_SCALE
from liqmine.core.staking.types import Event
from liqmine.integration import (
    AssetLedger,
    HoldingAccount,
    InMemoryRecordStore,
    ManualClock,
    StakingConfig,
    StakingService,
)
from liqmine.state.derivation import VaultRole, vault_authority
from liqmine.state.layout import RecordKind

ADMIN = "0x" + "11" * 48
ALICE = "0x" + "22" * 48
BOB = "0x" + "33" * 48
LP = "0x" + "aa" * 32
RW = "0x" + "bb" * 32

START = 1_700_000_000


def _setup(*, rate: int = REWARD_RATE_SCALE, funding: int = 10**12, config=None):
    ledger = AssetLedger()
    ledger.register_asset(LP, ADMIN)
    ledger.register_asset(RW, ADMIN)
    ledger.mint(LP, ALICE, 1000, authorized_by=ADMIN)
    ledger.mint(LP, BOB, 1000, authorized_by=ADMIN)
    ledger.mint(RW, ADMIN, 10**15, authorized_by=ADMIN)
    clock = ManualClock(START)
    store = InMemoryRecordStore()
    svc = StakingService(store, ledger, clock, config=config)
    svc.initialize_pool(ADMIN, LP, RW, rate)
    if funding:
        svc.fund_rewards(ADMIN, LP, funding)
    return svc, ledger, store, clock


def _corrupt_pool(svc, store, **changes):
    address, _bump = svc.pool_address(LP)
    stored = store.load(RecordKind.POOL_CONFIG, address)
    store.save(stored.handle, replace(stored.record, **changes))


# ---------------------------------------------------------------------------
# initialize_pool
# ---------------------------------------------------------------------------

class TestInitializePool:
    def test_records_config_and_vaults(self):
        svc, _ledger, _store, _clock = _setup(funding=0)
        pool = svc.get_pool(LP)
        lp_auth = vault_authority(LP, VaultRole.LP)
        rw_auth = vault_authority(LP, VaultRole.REWARD)
        assert pool.admin == ADMIN
        assert pool.reward_rate == REWARD_RATE_SCALE
        assert pool.total_staked == 0
        assert pool.rewards_distributed == 0
        assert (pool.lp_vault_authority, pool.lp_vault_bump) == (lp_auth.address, lp_auth.bump)
        assert (pool.reward_vault_authority, pool.reward_vault_bump) == (rw_auth.address, rw_auth.bump)
        assert pool.bump == svc.pool_address(LP)[1]

    def test_already_initialized(self):
        svc, _ledger, _store, _clock = _setup(funding=0)
        with pytest.raises(PoolAlreadyInitialized):
            svc.initialize_pool(ADMIN, LP, RW, 5)
        assert svc.get_pool(LP).reward_rate == REWARD_RATE_SCALE

    def test_non_creation_authority_rejected(self):
        ledger = AssetLedger()
        ledger.register_asset(LP, ADMIN)
        svc = StakingService(InMemoryRecordStore(), ledger, ManualClock(START))
        with pytest.raises(InvalidMintAuthority):
            svc.initialize_pool(ALICE, LP, RW, 5)
        with pytest.raises(PoolNotFound):
            svc.get_pool(LP)

    def test_unregistered_asset_rejected(self):
        svc = StakingService(InMemoryRecordStore(), AssetLedger(), ManualClock(START))
        with pytest.raises(InvalidMintAuthority):
            svc.initialize_pool(ADMIN, LP, RW, 5)

    def test_rate_above_configured_bound(self):
        ledger = AssetLedger()
        ledger.register_asset(LP, ADMIN)
        svc = StakingService(
            InMemoryRecordStore(), ledger, ManualClock(START), config=StakingConfig(max_reward_rate=100)
        )
        with pytest.raises(ParamDomainError):
            svc.initialize_pool(ADMIN, LP, RW, 101)
        assert svc.initialize_pool(ADMIN, LP, RW, 100).event == Event.POOL_INITIALIZED

    def test_malformed_identity(self):
        svc = StakingService(InMemoryRecordStore(), AssetLedger(), ManualClock(START))
        with pytest.raises(ParamDomainError):
            svc.initialize_pool("admin", LP, RW, 5)


# ---------------------------------------------------------------------------
# stake
# ---------------------------------------------------------------------------

class TestStake:
    def test_moves_tokens_into_vault(self):
        svc, ledger, _store, _clock = _setup()
        receipt = svc.stake(ALICE, LP, 100)
        assert receipt.event == Event.STAKED
        assert ledger.balance_of(ALICE, LP) == 900
        assert svc.vault_balances(LP)["lp"] == 100
        position = svc.get_position(LP, ALICE)
        assert position.amount_staked == 100
        assert position.staked_at == START
        assert position.last_claimed == START
        assert svc.get_pool(LP).total_staked == 100

    def test_position_bound_to_pool(self):
        svc, _ledger, _store, _clock = _setup()
        svc.stake(ALICE, LP, 100)
        position = svc.get_position(LP, ALICE)
        assert position.owner == ALICE
        assert position.pool == svc.pool_address(LP)[0]
        assert position.bump == svc.position_address(LP, ALICE)[1]

    def test_second_stake_rejected_without_mutation(self):
        svc, ledger, _store, _clock = _setup()
        svc.stake(ALICE, LP, 100)
        with pytest.raises(AlreadyActivePosition):
            svc.stake(ALICE, LP, 50)
        assert ledger.balance_of(ALICE, LP) == 900
        assert svc.get_pool(LP).total_staked == 100
        assert svc.get_position(LP, ALICE).amount_staked == 100

    def test_insufficient_balance(self):
        svc, ledger, _store, _clock = _setup()
        with pytest.raises(InsufficientBalance):
            svc.stake(ALICE, LP, 1001)
        assert ledger.balance_of(ALICE, LP) == 1000
        assert svc.get_position(LP, ALICE) is None
        assert svc.get_pool(LP).total_staked == 0

    def test_zero_amount(self):
        svc, _ledger, _store, _clock = _setup()
        with pytest.raises(ParamDomainError):
            svc.stake(ALICE, LP, 0)

    def test_foreign_holding_account(self):
        svc, _ledger, _store, _clock = _setup()
        with pytest.raises(InvalidHoldingAccount):
            svc.stake(ALICE, LP, 10, HoldingAccount(owner=BOB, asset=LP))

    def test_wrong_asset_holding_account(self):
        svc, _ledger, _store, _clock = _setup()
        with pytest.raises(InvalidHoldingAccount):
            svc.stake(ALICE, LP, 10, HoldingAccount(owner=ALICE, asset=RW))

    def test_holding_account_is_canonicalized(self):
        svc, ledger, _store, _clock = _setup()
        holding = HoldingAccount(owner="  " + ALICE[2:].upper(), asset="0X" + LP[2:].upper())
        svc.stake(ALICE, LP, 100, holding)
        assert ledger.balance_of(ALICE, LP) == 900
        assert svc.get_position(LP, ALICE).amount_staked == 100

    def test_malformed_holding_account(self):
        svc, ledger, _store, _clock = _setup()
        with pytest.raises(ParamDomainError):
            svc.stake(ALICE, LP, 10, HoldingAccount(owner="alice", asset=LP))
        with pytest.raises(ParamDomainError):
            svc.stake(ALICE, LP, 10, HoldingAccount(owner=ALICE, asset=None))
        with pytest.raises(ParamDomainError):
            svc.withdraw(ALICE, LP, reward_holding=HoldingAccount(owner=ALICE, asset="0x" + "bb" * 31))
        assert ledger.balance_of(ALICE, LP) == 1000
        assert svc.get_position(LP, ALICE) is None

    def test_unknown_pool(self):
        svc, _ledger, _store, _clock = _setup()
        with pytest.raises(PoolNotFound):
            svc.stake(ALICE, "0x" + "cc" * 32, 10)

    def test_rejection_is_logged(self, caplog):
        svc, _ledger, _store, _clock = _setup()
        with caplog.at_level(logging.WARNING, logger="liqmine.integration.service"):
            with pytest.raises(InsufficientBalance):
                svc.stake(ALICE, LP, 5000)
        assert "INSUFFICIENT_TOKEN_BALANCE" in caplog.text


# ---------------------------------------------------------------------------
# withdraw
# ---------------------------------------------------------------------------

class TestWithdraw:
    def test_pays_proportional_reward(self):
        svc, ledger, _store, clock = _setup()
        svc.stake(ALICE, LP, 100)
        svc.stake(BOB, LP, 900)
        clock.advance(10)

        assert svc.pending_reward(LP, ALICE).reward == 1_000_000_000
        receipt = svc.withdraw(ALICE, LP)

        assert receipt.event == Event.WITHDRAWN
        assert receipt.quote.elapsed == 10
        assert receipt.quote.reward == 1_000_000_000
        assert ledger.balance_of(ALICE, LP) == 1000
        assert ledger.balance_of(ALICE, RW) == 1_000_000_000
        pool = svc.get_pool(LP)
        assert pool.total_staked == 900
        assert pool.rewards_distributed == 1_000_000_000
        position = svc.get_position(LP, ALICE)
        assert position.amount_staked == 0
        assert position.last_claimed == START + 10
        assert svc.vault_balances(LP) == {"lp": 900, "reward": 10**12 - 1_000_000_000}

    def test_never_staked(self):
        svc, ledger, store, _clock = _setup()
        svc.stake(BOB, LP, 300)
        pool_before = svc.get_pool(LP)
        vaults_before = svc.vault_balances(LP)
        position_key = svc.position_address(LP, ALICE)[0]

        with pytest.raises(NoActivePosition):
            svc.withdraw(ALICE, LP)

        pool = svc.get_pool(LP)
        assert pool == pool_before
        assert (pool.total_staked, pool.rewards_distributed) == (300, 0)
        assert svc.vault_balances(LP) == vaults_before
        assert ledger.balance_of(ALICE, LP) == 1000
        assert ledger.balance_of(ALICE, RW) == 0
        assert not store.exists(RecordKind.POSITION, position_key)
        assert svc.get_position(LP, ALICE) is None

    def test_double_withdraw(self):
        svc, ledger, store, clock = _setup()
        svc.stake(ALICE, LP, 100)
        clock.advance(5)
        svc.withdraw(ALICE, LP)
        pool_key = svc.pool_address(LP)[0]
        position_key = svc.position_address(LP, ALICE)[0]
        pool_bytes = store.raw(RecordKind.POOL_CONFIG, pool_key)
        position_bytes = store.raw(RecordKind.POSITION, position_key)
        vaults_before = svc.vault_balances(LP)
        alice_before = (ledger.balance_of(ALICE, LP), ledger.balance_of(ALICE, RW))

        clock.advance(5)
        with pytest.raises(NoActivePosition):
            svc.withdraw(ALICE, LP)

        assert store.raw(RecordKind.POOL_CONFIG, pool_key) == pool_bytes
        assert store.raw(RecordKind.POSITION, position_key) == position_bytes
        pool = svc.get_pool(LP)
        assert (pool.total_staked, pool.rewards_distributed) == (0, 5 * REWARD_RATE_SCALE)
        assert svc.vault_balances(LP) == vaults_before
        assert (ledger.balance_of(ALICE, LP), ledger.balance_of(ALICE, RW)) == alice_before
        assert alice_before == (1000, 5 * REWARD_RATE_SCALE)

    def test_restake_after_withdraw(self):
        svc, _ledger, _store, clock = _setup()
        svc.stake(ALICE, LP, 100)
        clock.advance(5)
        svc.withdraw(ALICE, LP)
        clock.advance(5)
        svc.stake(ALICE, LP, 40)
        position = svc.get_position(LP, ALICE)
        assert position.amount_staked == 40
        assert position.staked_at == START + 10

    def test_clock_regression_pays_zero(self):
        svc, ledger, _store, clock = _setup()
        svc.stake(ALICE, LP, 100)
        clock.set(START - 100)
        receipt = svc.withdraw(ALICE, LP)
        assert receipt.quote.reward == 0
        assert ledger.balance_of(ALICE, LP) == 1000
        assert ledger.balance_of(ALICE, RW) == 0

    def test_underfunded_reward_vault_aborts_everything(self):
        svc, ledger, _store, clock = _setup(funding=10)
        svc.stake(ALICE, LP, 100)
        svc.stake(BOB, LP, 900)
        clock.advance(10)
        with pytest.raises(InsufficientBalance):
            svc.withdraw(ALICE, LP)
        assert ledger.balance_of(ALICE, LP) == 900
        assert ledger.balance_of(ALICE, RW) == 0
        assert svc.vault_balances(LP) == {"lp": 1000, "reward": 10}
        assert svc.get_pool(LP).total_staked == 1000
        assert svc.get_position(LP, ALICE).amount_staked == 100

    def test_zero_total_is_invalid_pool_state(self):
        svc, _ledger, store, clock = _setup()
        svc.stake(ALICE, LP, 100)
        _corrupt_pool(svc, store, total_staked=0)
        clock.advance(10)
        with pytest.raises(InvalidPoolState):
            svc.withdraw(ALICE, LP)
        assert svc.get_position(LP, ALICE).amount_staked == 100

    def test_tampered_vault_bump_fails_closed(self):
        svc, ledger, store, clock = _setup()
        svc.stake(ALICE, LP, 100)
        bump = svc.get_pool(LP).lp_vault_bump
        _corrupt_pool(svc, store, lp_vault_bump=(bump - 1) % 256)
        clock.advance(10)
        with pytest.raises(InvalidVaultAuthority):
            svc.withdraw(ALICE, LP)
        assert ledger.balance_of(ALICE, LP) == 900
        assert "lp_vault_authority_mismatch" in svc.audit_pool(LP, [ALICE])

    def test_wrong_reward_holding(self):
        svc, _ledger, _store, _clock = _setup()
        svc.stake(ALICE, LP, 100)
        with pytest.raises(InvalidHoldingAccount):
            svc.withdraw(ALICE, LP, reward_holding=HoldingAccount(owner=ALICE, asset=LP))


# ---------------------------------------------------------------------------
# fund_rewards
# ---------------------------------------------------------------------------

class TestFundRewards:
    def test_moves_into_reward_vault(self):
        svc, ledger, _store, _clock = _setup(funding=0)
        receipt = svc.fund_rewards(ADMIN, LP, 500)
        assert receipt.event == Event.REWARDS_FUNDED
        assert svc.vault_balances(LP)["reward"] == 500
        assert ledger.balance_of(ADMIN, RW) == 10**15 - 500

    def test_anyone_with_reward_tokens_can_fund(self):
        svc, ledger, _store, _clock = _setup(funding=0)
        ledger.transfer(RW, ADMIN, BOB, 50, authorized_by=ADMIN)
        svc.fund_rewards(BOB, LP, 50)
        assert svc.vault_balances(LP)["reward"] == 50

    def test_insufficient_funds(self):
        svc, _ledger, _store, _clock = _setup(funding=0)
        with pytest.raises(InsufficientBalance):
            svc.fund_rewards(ALICE, LP, 1)

    def test_zero_amount(self):
        svc, _ledger, _store, _clock = _setup(funding=0)
        with pytest.raises(ParamDomainError):
            svc.fund_rewards(ADMIN, LP, 0)


# ---------------------------------------------------------------------------
# vault custody
# ---------------------------------------------------------------------------

class TestVaultCustody:
    def test_initialize_registers_both_vaults(self):
        svc, ledger, _store, _clock = _setup(funding=0)
        pool = svc.get_pool(LP)
        assert ledger.is_vault(pool.lp_vault_authority)
        assert ledger.is_vault(pool.reward_vault_authority)
        assert not ledger.is_vault(ADMIN)

    def test_vault_address_string_cannot_drain(self):
        svc, ledger, _store, clock = _setup()
        svc.stake(ALICE, LP, 100)
        pool = svc.get_pool(LP)
        with pytest.raises(TransferAuthorizationError):
            ledger.transfer(LP, pool.lp_vault_authority, BOB, 100, authorized_by=pool.lp_vault_authority)
        with pytest.raises(TransferAuthorizationError):
            ledger.transfer(
                RW, pool.reward_vault_authority, BOB, 1, authorized_by=pool.reward_vault_authority
            )
        assert svc.vault_balances(LP) == {"lp": 100, "reward": 10**12}
        assert ledger.balance_of(BOB, LP) == 1000
        assert ledger.balance_of(BOB, RW) == 0

        clock.advance(2)
        svc.withdraw(ALICE, LP)
        assert ledger.balance_of(ALICE, LP) == 1000
        assert ledger.balance_of(ALICE, RW) == 2 * REWARD_RATE_SCALE


# ---------------------------------------------------------------------------
# prepare / commit
# ---------------------------------------------------------------------------

class TestCommit:
    def test_prepare_has_no_side_effects(self):
        svc, ledger, _store, _clock = _setup()
        tx = svc.prepare_stake(ALICE, LP, 100)
        assert ledger.balance_of(ALICE, LP) == 1000
        assert svc.get_position(LP, ALICE) is None
        assert svc.get_pool(LP).total_staked == 0
        assert tx.pool.total_staked == 100

    def test_concurrent_stakes_conflict_on_pool(self):
        svc, ledger, _store, _clock = _setup()
        tx_alice = svc.prepare_stake(ALICE, LP, 100)
        tx_bob = svc.prepare_stake(BOB, LP, 200)
        svc.commit(tx_alice)
        with pytest.raises(WriteConflictError):
            svc.commit(tx_bob)
        assert ledger.balance_of(BOB, LP) == 1000
        assert svc.get_pool(LP).total_staked == 100

        svc.stake(BOB, LP, 200)
        assert svc.get_pool(LP).total_staked == 300

    def test_same_user_cannot_commit_twice(self):
        svc, ledger, _store, _clock = _setup()
        first = svc.prepare_stake(ALICE, LP, 100)
        second = svc.prepare_stake(ALICE, LP, 100)
        svc.commit(first)
        with pytest.raises(WriteConflictError):
            svc.commit(second)
        assert ledger.balance_of(ALICE, LP) == 900

    def test_stale_withdraw_conflicts(self):
        svc, ledger, _store, clock = _setup()
        svc.stake(ALICE, LP, 100)
        clock.advance(10)
        tx = svc.prepare_withdraw(ALICE, LP)
        svc.stake(BOB, LP, 900)
        with pytest.raises(WriteConflictError):
            svc.commit(tx)
        assert ledger.balance_of(ALICE, RW) == 0


# ---------------------------------------------------------------------------
# views
# ---------------------------------------------------------------------------

class TestViews:
    def test_pending_reward_without_position(self):
        svc, _ledger, _store, _clock = _setup()
        assert svc.pending_reward(LP, ALICE).reward == 0

    def test_audit_clean(self):
        svc, _ledger, _store, clock = _setup()
        svc.stake(ALICE, LP, 100)
        svc.stake(BOB, LP, 300)
        clock.advance(3)
        svc.withdraw(BOB, LP)
        assert svc.audit_pool(LP, [ALICE, BOB]) == []

    def test_audit_detects_total_mismatch(self):
        svc, _ledger, store, _clock = _setup()
        svc.stake(ALICE, LP, 100)
        _corrupt_pool(svc, store, total_staked=150)
        problems = svc.audit_pool(LP, [ALICE])
        assert "total_staked_mismatch" in problems
        assert "lp_vault_undercollateralized" in problems
