"""
Multihop swap router.

Executes an ordered chain of single-pool swaps as one trade:
- the caller's input goes into the first pool,
- each hop's output is credited to the router and immediately re-spent as
  the next hop's input,
- the last hop pays the recipient directly.

The whole chain runs in one `Ledger.atomic()` transaction. If any hop fails
(pool missing, spread bound, asset mismatch, ...) every earlier hop is undone
and the error propagates; there is no partial execution.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional, Sequence, Tuple

from structlog import get_logger

from ..state.balances import Account, Amount, AssetId, check_amount_range
from ..state.ledger import Ledger
from .errors import InvalidAmount, InvalidRoute, InvariantViolation, OperationsEmpty
from .registry import PoolRegistry

logger = get_logger()

ROUTER_ACCOUNT = "multihop-router"


@dataclass(frozen=True)
class SwapLeg:
    offer_asset: AssetId
    ask_asset: AssetId


@dataclass(frozen=True)
class RouteHop:
    pool_id: str
    asset_in: AssetId
    asset_out: AssetId
    amount_in: Amount
    amount_out: Amount
    commission_amount: Amount
    spread_amount: Amount


@dataclass(frozen=True)
class RouteSimulation:
    asset_in: AssetId
    asset_out: AssetId
    amount_in: Amount
    ask_amount: Amount
    hops: Tuple[RouteHop, ...]

    @property
    def total_commission(self) -> Amount:
        return sum(h.commission_amount for h in self.hops)


def validate_route(operations: Sequence[SwapLeg]) -> None:
    """
    Check a route is non-empty and continuous.

    Raises:
        OperationsEmpty: If there are no legs
        InvalidRoute: If a leg trades an asset for itself or does not start
            where the previous leg ended
    """
    if len(operations) == 0:
        raise OperationsEmpty("Route has no operations")
    for i, leg in enumerate(operations):
        if leg.offer_asset == leg.ask_asset:
            raise InvalidRoute(f"Leg {i} offers and asks the same asset {leg.offer_asset}")
        if i > 0 and operations[i - 1].ask_asset != leg.offer_asset:
            raise InvalidRoute(
                f"Leg {i} offers {leg.offer_asset} but leg {i - 1} yields {operations[i - 1].ask_asset}"
            )


class MultihopRouter:
    def __init__(self, ledger: Ledger, registry: PoolRegistry, address: Account = ROUTER_ACCOUNT) -> None:
        self.ledger = ledger
        self.registry = registry
        self.address = address
        self.log = logger.new(router=address)

    def swap(
        self,
        recipient: Account,
        operations: Sequence[SwapLeg],
        amount: Amount,
        *,
        max_spread_bps: Optional[int] = None,
    ) -> Amount:
        """
        Swap `amount` of the first leg's offer asset, paid by `recipient`,
        through every leg in order; the final output is credited to `recipient`.

        Returns:
            The amount of the last leg's ask asset delivered.
        """
        validate_route(operations)
        if amount <= 0:
            raise InvalidAmount(f"Swap amount must be positive: {amount}")
        check_amount_range("amount", amount)

        with self.ledger.atomic():
            self.ledger.require_auth(recipient)
            held_before = self._holdings(operations)
            running = amount
            last = len(operations) - 1
            for i, leg in enumerate(operations):
                pool = self.registry.resolve(leg.offer_asset, leg.ask_asset)
                trader = recipient if i == 0 else self.address
                receiver = recipient if i == last else self.address
                running = pool.swap(
                    trader,
                    leg.offer_asset,
                    running,
                    receiver,
                    max_spread_bps=max_spread_bps,
                )
            self._check_no_residue(operations, held_before)

        self.log.info('route executed', recipient=recipient, hops=len(operations),
                      asset_in=operations[0].offer_asset, asset_out=operations[-1].ask_asset,
                      amount_in=amount, amount_out=running)
        return running

    def simulate_swap(self, operations: Sequence[SwapLeg], amount: Amount) -> RouteSimulation:
        """Quote the route at current reserves without changing anything."""
        validate_route(operations)
        if amount <= 0:
            raise InvalidAmount(f"Swap amount must be positive: {amount}")
        check_amount_range("amount", amount)

        hops = []
        running = amount
        for leg in operations:
            pool = self.registry.resolve(leg.offer_asset, leg.ask_asset)
            sim = pool.simulate_swap(leg.offer_asset, running)
            hops.append(
                RouteHop(
                    pool_id=pool.pool_id,
                    asset_in=leg.offer_asset,
                    asset_out=leg.ask_asset,
                    amount_in=running,
                    amount_out=sim.ask_amount,
                    commission_amount=sim.commission_amount,
                    spread_amount=sim.spread_amount,
                )
            )
            running = sim.ask_amount

        return RouteSimulation(
            asset_in=operations[0].offer_asset,
            asset_out=operations[-1].ask_asset,
            amount_in=amount,
            ask_amount=running,
            hops=tuple(hops),
        )

    def _holdings(self, operations: Sequence[SwapLeg]) -> Dict[AssetId, Amount]:
        return {leg.ask_asset: self.ledger.balances.get(self.address, leg.ask_asset) for leg in operations}

    def _check_no_residue(self, operations: Sequence[SwapLeg], held_before: Dict[AssetId, Amount]) -> None:
        # Intermediate outputs are re-spent in full; the router keeps nothing.
        after = self._holdings(operations)
        leftovers = [
            f"router balance of {asset} changed: {held_before[asset]} -> {held}"
            for asset, held in after.items()
            if held != held_before[asset]
        ]
        if leftovers:
            raise InvariantViolation(leftovers)
