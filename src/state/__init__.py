"""
State management for constant-product pools
"""

from .balances import BalanceTable
from .ledger import Ledger
from .pools import AssetAmount, PoolInfo, PoolState
from .shares import ShareLedger

__all__ = [
    "BalanceTable",
    "Ledger",
    "AssetAmount",
    "PoolInfo",
    "PoolState",
    "ShareLedger",
]
