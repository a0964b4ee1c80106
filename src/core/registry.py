"""
In-memory pool registry: maps an unordered asset pair to its pool.
"""

from __future__ import annotations

from typing import Dict, List, Optional, Tuple

from structlog import get_logger

from ..state.balances import AssetId
from ..state.ledger import Ledger
from ..state.pools import canonical_pair
from .config import DexConfig, PoolParams
from .errors import PoolNotFound
from .pool import LiquidityPool

logger = get_logger()


class PoolRegistry:
    def __init__(self, ledger: Ledger) -> None:
        self.ledger = ledger
        self._pools: Dict[Tuple[AssetId, AssetId], LiquidityPool] = {}
        self.log = logger.new()

    def create_pool(
        self,
        asset_x: AssetId,
        asset_y: AssetId,
        params: Optional[PoolParams] = None,
    ) -> LiquidityPool:
        """Deploy an empty pool for the pair and register it."""
        key = canonical_pair(asset_x, asset_y)
        if key in self._pools:
            raise ValueError(f"Pool for {key[0]}/{key[1]} already registered")
        pool = LiquidityPool.deploy(self.ledger, asset_x, asset_y, params)
        self._pools[key] = pool
        return pool

    def resolve(self, asset_x: AssetId, asset_y: AssetId) -> LiquidityPool:
        """
        Return the pool serving the pair, in either order.

        Raises:
            PoolNotFound: If no pool is registered for the pair
        """
        try:
            key = canonical_pair(asset_x, asset_y)
        except ValueError as exc:
            raise PoolNotFound(str(exc)) from exc
        pool = self._pools.get(key)
        if pool is None:
            raise PoolNotFound(f"No pool for {asset_x}/{asset_y}")
        return pool

    def query_pools(self) -> List[LiquidityPool]:
        """All registered pools, ordered by asset pair."""
        return [self._pools[key] for key in sorted(self._pools)]

    def bootstrap(self, config: DexConfig) -> List[LiquidityPool]:
        """Deploy every pool listed in `config`."""
        pools = [
            self.create_pool(spec.asset_x, spec.asset_y, spec.params)
            for spec in config.pools
        ]
        self.log.info('registry bootstrapped', pools=len(pools))
        return pools

    def __len__(self) -> int:
        return len(self._pools)
