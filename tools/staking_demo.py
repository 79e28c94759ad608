#!/usr/bin/env python3

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, Optional

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from liqmine.core.staking.math import REWARD_RATE_SCALE
from liqmine.core.staking.state import pool_to_dict, position_to_dict
from liqmine.integration import AssetLedger, InMemoryRecordStore, ManualClock, StakingService, load_config
from liqmine.integration.config import StakingConfig

ADMIN = "0x" + "11" * 48
ALICE = "0x" + "22" * 48
BOB = "0x" + "33" * 48
LP_ASSET = "0x" + "aa" * 32
REWARD_ASSET = "0x" + "bb" * 32

START_TS = 1_700_000_000


def run_demo(
    *,
    reward_rate: int = REWARD_RATE_SCALE,
    alice_stake: int = 100,
    bob_stake: int = 900,
    seconds: int = 10,
    funding: int = 1_000_000_000_000,
    config: Optional[StakingConfig] = None,
) -> Dict[str, Any]:
    """Initialize a pool, fund it, stake two users, advance time, withdraw Alice."""
    ledger = AssetLedger()
    ledger.register_asset(LP_ASSET, ADMIN)
    ledger.register_asset(REWARD_ASSET, ADMIN)
    ledger.mint(LP_ASSET, ALICE, alice_stake, authorized_by=ADMIN)
    ledger.mint(LP_ASSET, BOB, bob_stake, authorized_by=ADMIN)
    ledger.mint(REWARD_ASSET, ADMIN, funding, authorized_by=ADMIN)

    clock = ManualClock(START_TS)
    service = StakingService(InMemoryRecordStore(), ledger, clock, config=config)

    init = service.initialize_pool(ADMIN, LP_ASSET, REWARD_ASSET, reward_rate)
    service.fund_rewards(ADMIN, LP_ASSET, funding)
    service.stake(ALICE, LP_ASSET, alice_stake)
    service.stake(BOB, LP_ASSET, bob_stake)

    clock.advance(seconds)
    pending = service.pending_reward(LP_ASSET, ALICE)
    receipt = service.withdraw(ALICE, LP_ASSET)
    assert receipt.quote is not None and receipt.position is not None

    return {
        "pool_address": init.pool_address,
        "pending_reward": pending.reward,
        "elapsed": receipt.quote.elapsed,
        "reward": receipt.quote.reward,
        "pool": pool_to_dict(receipt.pool),
        "position": position_to_dict(receipt.position),
        "vaults": service.vault_balances(LP_ASSET),
        "alice": {
            "lp": ledger.balance_of(ALICE, LP_ASSET),
            "reward": ledger.balance_of(ALICE, REWARD_ASSET),
        },
        "audit": service.audit_pool(LP_ASSET, [ALICE, BOB]),
    }


def main(argv: list[str] | None = None) -> int:
    p = argparse.ArgumentParser(description="Offline LP staking walkthrough (initialize, fund, stake, withdraw).")
    p.add_argument("--reward-rate", type=int, default=REWARD_RATE_SCALE, help="scaled by 1e9 (1e9 == 1.0/s)")
    p.add_argument("--alice-stake", type=int, default=100)
    p.add_argument("--bob-stake", type=int, default=900)
    p.add_argument("--seconds", type=int, default=10, help="time between staking and Alice's withdraw")
    p.add_argument("--config", type=Path, default=None, help="optional YAML config file")
    p.add_argument("--json", action="store_true", help="print the full result as JSON")
    p.add_argument("-v", "--verbose", action="store_true")
    args = p.parse_args(argv)

    logging.basicConfig(level=logging.INFO if args.verbose else logging.WARNING, format="%(name)s: %(message)s")
    config = load_config(args.config) if args.config is not None else StakingConfig.from_env()

    result = run_demo(
        reward_rate=args.reward_rate,
        alice_stake=args.alice_stake,
        bob_stake=args.bob_stake,
        seconds=args.seconds,
        config=config,
    )
    if args.json:
        print(json.dumps(result, indent=2, sort_keys=True))
        return 0

    print(f"[staking-demo] pool_address={result['pool_address']}")
    print(f"[staking-demo] elapsed={result['elapsed']}s reward={result['reward']} (pending before withdraw: {result['pending_reward']})")
    print(f"[staking-demo] pool total_staked={result['pool']['total_staked']} rewards_distributed={result['pool']['rewards_distributed']}")
    print(f"[staking-demo] vaults: lp={result['vaults']['lp']} reward={result['vaults']['reward']}")
    print(f"[staking-demo] alice: lp={result['alice']['lp']} reward={result['alice']['reward']}")
    if result["audit"]:
        print(f"[staking-demo] FAIL: audit problems {result['audit']}")
        return 1
    print("[staking-demo] OK: withdraw paid reward and returned principal")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
