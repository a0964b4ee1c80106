"""
Pool state for constant-product liquidity pools.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple

import hashlib

from ..core.config import PoolParams
from ..core.errors import AssetMismatch, InvariantViolation
from .balances import AssetId, Amount


def canonical_pair(asset_x: AssetId, asset_y: AssetId) -> Tuple[AssetId, AssetId]:
    """Order two distinct assets lexicographically so (A, B) and (B, A) agree."""
    if asset_x == asset_y:
        raise ValueError(f"A pool needs two distinct assets: {asset_x}")
    return (asset_x, asset_y) if asset_x < asset_y else (asset_y, asset_x)


def compute_pool_id(asset_a: AssetId, asset_b: AssetId) -> str:
    """
    Deterministically compute a pool_id for a canonical asset pair.

    pool_id = H("ConstantProductPool" || asset_a || asset_b)
    """
    if asset_a >= asset_b:
        raise ValueError(f"Assets must be in canonical order: {asset_a} < {asset_b}")
    data = (
        b"ConstantProductPool"
        + asset_a.encode("utf-8")
        + b"\x00"
        + asset_b.encode("utf-8")
    )
    return "0x" + hashlib.sha256(data).hexdigest()


def compute_share_token_id(pool_id: str) -> str:
    return "0x" + hashlib.sha256(b"PoolShare" + pool_id.encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class AssetAmount:
    address: str
    amount: Amount


@dataclass(frozen=True)
class PoolInfo:
    """Read-only projection returned by `query_pool_info`."""

    asset_a: AssetAmount
    asset_b: AssetAmount
    asset_lp_share: AssetAmount


@dataclass
class PoolState:
    """
    Reserves and risk parameters of one pool.

    Attributes:
        pool_id: Pool identifier, also the account that holds the reserves
        asset_a: First asset identifier (must be < asset_b lexicographically)
        asset_b: Second asset identifier
        reserve_a: Reserve amount for asset_a
        reserve_b: Reserve amount for asset_b
        params: Fee and risk bounds
        share_token: Identifier of the pool's share ledger
    """
    pool_id: str
    asset_a: AssetId
    asset_b: AssetId
    params: PoolParams
    share_token: str
    reserve_a: Amount = 0
    reserve_b: Amount = 0
    created_at: int = 0

    def __post_init__(self):
        if self.asset_a >= self.asset_b:
            raise ValueError(
                f"Assets must be in canonical order: {self.asset_a} < {self.asset_b}"
            )
        if self.reserve_a < 0 or self.reserve_b < 0:
            raise InvariantViolation(
                [f"negative reserves ({self.reserve_a}, {self.reserve_b})"]
            )

    def reserves_for(self, offer_asset: AssetId) -> Tuple[Amount, Amount]:
        """
        Return (reserve_in, reserve_out) for a trade offering `offer_asset`.

        Raises:
            AssetMismatch: If asset is not in this pool
        """
        if offer_asset == self.asset_a:
            return self.reserve_a, self.reserve_b
        if offer_asset == self.asset_b:
            return self.reserve_b, self.reserve_a
        raise AssetMismatch(f"Asset {offer_asset} not in pool {self.pool_id}")

    def other_asset(self, asset: AssetId) -> AssetId:
        if asset == self.asset_a:
            return self.asset_b
        if asset == self.asset_b:
            return self.asset_a
        raise AssetMismatch(f"Asset {asset} not in pool {self.pool_id}")

    def apply_swap(self, offer_asset: AssetId, amount_in: Amount, amount_out: Amount) -> None:
        if offer_asset == self.asset_a:
            self.reserve_a += amount_in
            self.reserve_b -= amount_out
        else:
            self.reserve_b += amount_in
            self.reserve_a -= amount_out

    def get_constant_product(self) -> int:
        """Compute k = reserve_a * reserve_b."""
        return self.reserve_a * self.reserve_b

    def is_empty(self) -> bool:
        return self.reserve_a == 0 and self.reserve_b == 0

    def __repr__(self) -> str:
        return (
            f"PoolState(pool_id={self.pool_id[:16]}..., "
            f"assets=({self.asset_a}, {self.asset_b}), "
            f"reserves=({self.reserve_a}, {self.reserve_b}), "
            f"fee_bps={self.params.swap_fee_bps})"
        )
