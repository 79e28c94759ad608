"""
Imperative shell around the staking core: record store, asset ledger, clock,
configuration, request authentication and the staking service.
"""

from .clock import Clock, ManualClock, SystemClock
from .config import StakingConfig, load_config
from .ledger import AssetLedger, HoldingAccount, Transfer
from .operations import apply_operation, parse_operation
from .records import InMemoryRecordStore, RecordHandle, RecordWrite
from .service import OperationReceipt, PreparedTx, StakingService

__all__ = [
    "AssetLedger",
    "Clock",
    "HoldingAccount",
    "InMemoryRecordStore",
    "ManualClock",
    "OperationReceipt",
    "PreparedTx",
    "RecordHandle",
    "RecordWrite",
    "StakingConfig",
    "StakingService",
    "SystemClock",
    "Transfer",
    "apply_operation",
    "load_config",
    "parse_operation",
]
