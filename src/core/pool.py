"""
Liquidity pool operations: provide / withdraw liquidity and swap.

A LiquidityPool is a handle onto one pool's state inside a Ledger. It is the
only writer of that pool's reserves and share ledger. Each public operation:

1. runs the external auth hook for the acting account,
2. computes amounts from the pool state at call entry,
3. applies transfers, share changes and reserve updates.

All three steps run inside `Ledger.atomic()`, so any failure leaves the
ledger untouched.

States: Empty (total_shares == 0) and Funded (total_shares > 0).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Tuple

from structlog import get_logger

from ..state.balances import Account, Amount, AssetId, check_amount_range
from ..state.ledger import Ledger
from ..state.pools import (
    AssetAmount,
    PoolInfo,
    PoolState,
    canonical_pair,
    compute_pool_id,
    compute_share_token_id,
)
from ..state.shares import ShareLedger
from .config import PoolParams
from .cpmm import (
    SwapQuote,
    assert_max_spread,
    assert_slippage_tolerance,
    compute_deposit,
    compute_shares_minted,
    compute_swap,
    compute_withdrawal,
    initial_shares,
)
from .errors import (
    EmptyPool,
    Expired,
    InsufficientBalance,
    InvalidAmount,
    InvariantViolation,
    SlippageExceeded,
)

logger = get_logger()


@dataclass(frozen=True)
class SwapSimulation:
    ask_amount: Amount
    commission_amount: Amount
    spread_amount: Amount
    total_return: Amount


def _check_non_negative(name: str, value: Optional[int]) -> None:
    if value is not None and value < 0:
        raise InvalidAmount(f"{name} must be non-negative: {value}")
    if value is not None:
        check_amount_range(name, value)


class LiquidityPool:
    def __init__(self, ledger: Ledger, pool_id: str) -> None:
        if pool_id not in ledger.pools:
            raise KeyError(f"unknown pool {pool_id}")
        self.ledger = ledger
        self.pool_id = pool_id
        state = ledger.pool_state(pool_id)
        self.log = logger.new(pool=pool_id[:10], pair=f'{state.asset_a}/{state.asset_b}')

    @classmethod
    def deploy(
        cls,
        ledger: Ledger,
        asset_x: AssetId,
        asset_y: AssetId,
        params: Optional[PoolParams] = None,
    ) -> 'LiquidityPool':
        """Create an empty pool for the pair in `ledger` and return its handle."""
        asset_a, asset_b = canonical_pair(asset_x, asset_y)
        pool_id = compute_pool_id(asset_a, asset_b)
        state = PoolState(
            pool_id=pool_id,
            asset_a=asset_a,
            asset_b=asset_b,
            params=params if params is not None else PoolParams(),
            share_token=compute_share_token_id(pool_id),
            created_at=ledger.timestamp,
        )
        ledger.add_pool(state)
        pool = cls(ledger, pool_id)
        pool.log.info('pool deployed', params=state.params)
        return pool

    # State access.  Always read through the ledger: a rollback restores
    # these objects in place.

    @property
    def state(self) -> PoolState:
        return self.ledger.pool_state(self.pool_id)

    @property
    def shares(self) -> ShareLedger:
        return self.ledger.share_ledger(self.pool_id)

    @property
    def address(self) -> Account:
        return self.pool_id

    @property
    def total_shares(self) -> Amount:
        return self.shares.total_shares

    def is_empty(self) -> bool:
        return self.total_shares == 0

    # Queries

    def query_pool_info(self) -> PoolInfo:
        state = self.state
        return PoolInfo(
            asset_a=AssetAmount(address=state.asset_a, amount=state.reserve_a),
            asset_b=AssetAmount(address=state.asset_b, amount=state.reserve_b),
            asset_lp_share=AssetAmount(address=state.share_token, amount=self.total_shares),
        )

    def query_config(self) -> PoolParams:
        return self.state.params

    def query_share_token_address(self) -> str:
        return self.state.share_token

    def query_share_balance(self, account: Account) -> Amount:
        return self.shares.balance_of(account)

    def simulate_swap(self, offer_asset: AssetId, amount: Amount) -> SwapSimulation:
        """Quote a swap at current reserves without changing anything."""
        quote = self._quote(offer_asset, amount)
        return SwapSimulation(
            ask_amount=quote.amount_out,
            commission_amount=quote.commission_amount,
            spread_amount=quote.spread_amount,
            total_return=quote.amount_out + quote.spread_amount,
        )

    # Operations

    def provide_liquidity(
        self,
        provider: Account,
        desired_a: Optional[Amount] = None,
        min_a: Optional[Amount] = None,
        desired_b: Optional[Amount] = None,
        min_b: Optional[Amount] = None,
        expiration: Optional[int] = None,
    ) -> Tuple[Amount, Amount, Amount]:
        """
        Deposit both assets and receive pool shares.

        On an empty pool both desired amounts are required and taken as-is,
        fixing the initial price. On a funded pool a missing side is computed
        from the current reserves, and when both sides are given the
        ratio-preserving amounts are taken.

        Returns:
            (amount_a, amount_b, shares_minted)
        """
        with self.ledger.atomic():
            return self._provide_liquidity(provider, desired_a, min_a, desired_b, min_b, expiration)

    def withdraw_liquidity(
        self,
        provider: Account,
        share_amount: Amount,
        min_a: Amount,
        min_b: Amount,
    ) -> Tuple[Amount, Amount]:
        """
        Burn shares and receive the proportional part of both reserves.

        Returns:
            (amount_a, amount_b)
        """
        with self.ledger.atomic():
            return self._withdraw_liquidity(provider, share_amount, min_a, min_b)

    def swap(
        self,
        trader: Account,
        offer_asset: AssetId,
        amount: Amount,
        recipient: Optional[Account] = None,
        *,
        max_spread_bps: Optional[int] = None,
        min_amount_out: Optional[Amount] = None,
    ) -> Amount:
        """
        Sell `amount` of `offer_asset` for the pool's other asset.

        `max_spread_bps` may tighten, but never loosen, the pool's
        `max_allowed_spread_bps`. Output goes to `recipient` (default: trader).
        """
        with self.ledger.atomic():
            return self._swap(trader, offer_asset, amount, recipient, max_spread_bps, min_amount_out)

    # Internals.  Callers hold an open transaction.

    def _provide_liquidity(
        self,
        provider: Account,
        desired_a: Optional[Amount],
        min_a: Optional[Amount],
        desired_b: Optional[Amount],
        min_b: Optional[Amount],
        expiration: Optional[int],
    ) -> Tuple[Amount, Amount, Amount]:
        self.ledger.require_auth(provider)
        self._check_expiration(expiration)
        for name, value in (("desired_a", desired_a), ("desired_b", desired_b)):
            if value is not None and value <= 0:
                raise InvalidAmount(f"{name} must be positive: {value}")
            if value is not None:
                check_amount_range(name, value)
        _check_non_negative("min_a", min_a)
        _check_non_negative("min_b", min_b)

        state = self.state
        total = self.total_shares
        if total == 0:
            if desired_a is None or desired_b is None:
                raise EmptyPool("Both assets are required to seed an empty pool")
            amount_a, amount_b = desired_a, desired_b
            shares = initial_shares(amount_a, amount_b)
        else:
            if desired_a is not None and desired_b is not None:
                assert_slippage_tolerance(
                    desired_a,
                    desired_b,
                    state.reserve_a,
                    state.reserve_b,
                    state.params.max_allowed_slippage_bps,
                )
            deposit = compute_deposit(state.reserve_a, state.reserve_b, desired_a, desired_b)
            amount_a, amount_b = deposit.amount_a, deposit.amount_b
            shares = compute_shares_minted(
                state.reserve_a, state.reserve_b, amount_a, amount_b, total
            )

        if min_a is not None and amount_a < min_a:
            raise SlippageExceeded(f"amount_a ({amount_a}) < min_a ({min_a})")
        if min_b is not None and amount_b < min_b:
            raise SlippageExceeded(f"amount_b ({amount_b}) < min_b ({min_b})")

        self.ledger.balances.transfer(provider, self.address, state.asset_a, amount_a)
        self.ledger.balances.transfer(provider, self.address, state.asset_b, amount_b)
        self.shares.mint(provider, shares)
        state.reserve_a += amount_a
        state.reserve_b += amount_b
        self._verify_invariants()

        self.log.info('liquidity provided', provider=provider, amount_a=amount_a, amount_b=amount_b,
                      shares=shares)
        return amount_a, amount_b, shares

    def _withdraw_liquidity(
        self,
        provider: Account,
        share_amount: Amount,
        min_a: Amount,
        min_b: Amount,
    ) -> Tuple[Amount, Amount]:
        self.ledger.require_auth(provider)
        if share_amount <= 0:
            raise InvalidAmount(f"share_amount must be positive: {share_amount}")
        check_amount_range("share_amount", share_amount)
        _check_non_negative("min_a", min_a)
        _check_non_negative("min_b", min_b)
        if self.is_empty():
            raise EmptyPool("Cannot withdraw from an empty pool")
        held = self.shares.balance_of(provider)
        if share_amount > held:
            raise InsufficientBalance(f"Share balance {held} < {share_amount}")

        state = self.state
        amount_a, amount_b = compute_withdrawal(
            share_amount, state.reserve_a, state.reserve_b, self.total_shares
        )
        if amount_a < min_a:
            raise SlippageExceeded(f"amount_a ({amount_a}) < min_a ({min_a})")
        if amount_b < min_b:
            raise SlippageExceeded(f"amount_b ({amount_b}) < min_b ({min_b})")

        self.shares.burn(provider, share_amount)
        state.reserve_a -= amount_a
        state.reserve_b -= amount_b
        if amount_a > 0:
            self.ledger.balances.transfer(self.address, provider, state.asset_a, amount_a)
        if amount_b > 0:
            self.ledger.balances.transfer(self.address, provider, state.asset_b, amount_b)
        self._verify_invariants()

        self.log.info('liquidity withdrawn', provider=provider, shares=share_amount, amount_a=amount_a,
                      amount_b=amount_b, drained=self.is_empty())
        return amount_a, amount_b

    def _swap(
        self,
        trader: Account,
        offer_asset: AssetId,
        amount: Amount,
        recipient: Optional[Account],
        max_spread_bps: Optional[int],
        min_amount_out: Optional[Amount],
    ) -> Amount:
        self.ledger.require_auth(trader)
        _check_non_negative("max_spread_bps", max_spread_bps)
        _check_non_negative("min_amount_out", min_amount_out)
        state = self.state
        quote = self._quote(offer_asset, amount)

        spread_limit = state.params.max_allowed_spread_bps
        if max_spread_bps is not None:
            spread_limit = min(spread_limit, max_spread_bps)
        assert_max_spread(quote, spread_limit)
        if min_amount_out is not None and quote.amount_out < min_amount_out:
            raise SlippageExceeded(f"amount_out ({quote.amount_out}) < min_amount_out ({min_amount_out})")

        ask_asset = state.other_asset(offer_asset)
        receiver = trader if recipient is None else recipient
        k_before = state.get_constant_product()

        self.ledger.balances.transfer(trader, self.address, offer_asset, amount)
        state.apply_swap(offer_asset, amount, quote.amount_out)
        self.ledger.balances.transfer(self.address, receiver, ask_asset, quote.amount_out)
        self._verify_invariants()

        self.log.debug('swap executed', trader=trader, recipient=receiver, offer_asset=offer_asset,
                       amount_in=amount, amount_out=quote.amount_out, spread=quote.spread_amount,
                       k_before=k_before, k_after=state.get_constant_product())
        return quote.amount_out

    def _quote(self, offer_asset: AssetId, amount: Amount) -> SwapQuote:
        if amount <= 0:
            raise InvalidAmount(f"Swap amount must be positive: {amount}")
        check_amount_range("amount", amount)
        state = self.state
        reserve_in, reserve_out = state.reserves_for(offer_asset)
        if self.is_empty():
            raise EmptyPool("Cannot swap against an empty pool")
        return compute_swap(reserve_in, reserve_out, amount, state.params.swap_fee_bps)

    def _check_expiration(self, expiration: Optional[int]) -> None:
        if expiration is not None and expiration < self.ledger.timestamp:
            raise Expired(f"Deadline {expiration} is before ledger time {self.ledger.timestamp}")

    def _verify_invariants(self) -> None:
        state = self.state
        total = self.total_shares
        violations = []
        if state.reserve_a < 0 or state.reserve_b < 0:
            violations.append(f"negative reserves ({state.reserve_a}, {state.reserve_b})")
        if len({state.reserve_a == 0, state.reserve_b == 0, total == 0}) != 1:
            violations.append(
                f"reserves ({state.reserve_a}, {state.reserve_b}) inconsistent with total_shares {total}"
            )
        balances = self.ledger.balances
        if balances.get(self.address, state.asset_a) < state.reserve_a:
            violations.append("pool holds less asset_a than reserve_a")
        if balances.get(self.address, state.asset_b) < state.reserve_b:
            violations.append("pool holds less asset_b than reserve_b")
        if violations:
            raise InvariantViolation(violations)
