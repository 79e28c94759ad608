"""
Record, balance and address-derivation state for the staking ledger
"""

from .balances import BalanceTable
from .derivation import DerivedAuthority, VaultRole, find_derived_address
from .layout import RecordKind, decode_record, encode_record

__all__ = [
    "BalanceTable",
    "DerivedAuthority",
    "VaultRole",
    "find_derived_address",
    "RecordKind",
    "decode_record",
    "encode_record",
]
