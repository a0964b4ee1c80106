from __future__ import annotations

import pytest

from src.core.config import PoolParams
from src.core.errors import (
    EmptyPool,
    Expired,
    InsufficientBalance,
    InvalidAmount,
    SlippageExceeded,
)
from src.core.pool import LiquidityPool
from src.state.ledger import Ledger
from src.state.pools import AssetAmount, PoolInfo

TOKEN_A = "TOKEN_A"
TOKEN_B = "TOKEN_B"


def _setup(params: PoolParams | None = None, timestamp: int = 0) -> tuple[Ledger, LiquidityPool]:
    ledger = Ledger(timestamp=timestamp)
    # Deployed in reverse order on purpose: the pool must canonicalize.
    pool = LiquidityPool.deploy(ledger, TOKEN_B, TOKEN_A, params or PoolParams(swap_fee_bps=0))
    return ledger, pool


def _fund(ledger: Ledger, account: str, a: int = 0, b: int = 0) -> None:
    if a:
        ledger.balances.mint(account, TOKEN_A, a)
    if b:
        ledger.balances.mint(account, TOKEN_B, b)


def _assert_consistent(pool: LiquidityPool) -> None:
    state = pool.state
    assert (state.reserve_a == 0) == (state.reserve_b == 0) == (pool.total_shares == 0)
    assert sum(pool.shares.holders().values()) == pool.total_shares


def test_provide_liquidity() -> None:
    ledger, pool = _setup()
    _fund(ledger, "user1", 1_000, 1_000)

    result = pool.provide_liquidity("user1", 100, 100, 100, 100, None)

    assert result == (100, 100, 100)
    assert pool.query_share_balance("user1") == 100
    assert pool.query_share_balance(pool.address) == 0
    assert ledger.balances.get("user1", TOKEN_A) == 900
    assert ledger.balances.get(pool.address, TOKEN_A) == 100
    assert ledger.balances.get("user1", TOKEN_B) == 900
    assert ledger.balances.get(pool.address, TOKEN_B) == 100
    assert ledger.auths == ["user1"]
    assert pool.query_pool_info() == PoolInfo(
        asset_a=AssetAmount(address=TOKEN_A, amount=100),
        asset_b=AssetAmount(address=TOKEN_B, amount=100),
        asset_lp_share=AssetAmount(address=pool.query_share_token_address(), amount=100),
    )


def test_withdraw_liquidity() -> None:
    ledger, pool = _setup()
    _fund(ledger, "user1", 100, 100)
    pool.provide_liquidity("user1", 100, 100, 100, 100)
    assert ledger.balances.get("user1", TOKEN_A) == 0

    assert pool.withdraw_liquidity("user1", 50, 50, 50) == (50, 50)
    assert pool.query_share_balance("user1") == 50
    assert ledger.balances.get("user1", TOKEN_A) == 50
    assert ledger.balances.get(pool.address, TOKEN_A) == 50
    assert ledger.balances.get("user1", TOKEN_B) == 50
    assert ledger.balances.get(pool.address, TOKEN_B) == 50
    info = pool.query_pool_info()
    assert (info.asset_a.amount, info.asset_b.amount, info.asset_lp_share.amount) == (50, 50, 50)

    # clear the pool
    assert pool.withdraw_liquidity("user1", 50, 50, 50) == (50, 50)
    assert pool.query_share_balance("user1") == 0
    assert ledger.balances.get("user1", TOKEN_A) == 100
    assert ledger.balances.get(pool.address, TOKEN_A) == 0
    assert ledger.balances.get("user1", TOKEN_B) == 100
    assert ledger.balances.get(pool.address, TOKEN_B) == 0
    assert pool.is_empty()
    assert (pool.state.reserve_a, pool.state.reserve_b) == (0, 0)
    _assert_consistent(pool)


def test_single_asset_on_empty_pool_fails_without_state_change() -> None:
    ledger, pool = _setup()
    _fund(ledger, "user1", 1_000_000)

    with pytest.raises(EmptyPool):
        pool.provide_liquidity("user1", 1_000_000, 1_000_000, None, None, None)

    assert ledger.balances.get("user1", TOKEN_A) == 1_000_000
    assert ledger.balances.get(pool.address, TOKEN_A) == 0
    assert pool.total_shares == 0
    assert ledger.auths == []
    _assert_consistent(pool)


def test_single_asset_on_funded_pool_computes_matching_side() -> None:
    ledger, pool = _setup()
    _fund(ledger, "user1", 1_100_000, 1_100_000)
    a, b, shares = pool.provide_liquidity("user1", 1_000_000, 1_000_000, 1_000_000, 1_000_000)
    assert (a, b, shares) == (1_000_000, 1_000_000, 1_000_000)
    assert (pool.state.reserve_a, pool.state.reserve_b) == (1_000_000, 1_000_000)

    a, b, shares = pool.provide_liquidity("user1", desired_a=100_000, min_a=50_000)
    assert (a, b, shares) == (100_000, 100_000, 100_000)
    assert (pool.state.reserve_a, pool.state.reserve_b) == (1_100_000, 1_100_000)
    assert ledger.balances.get("user1", TOKEN_B) == 0
    _assert_consistent(pool)


def test_single_asset_on_b_side() -> None:
    ledger, pool = _setup()
    _fund(ledger, "user1", 2_000, 1_500)
    pool.provide_liquidity("user1", 1_000, None, 500, None)

    a, b, shares = pool.provide_liquidity("user1", desired_b=250)
    assert (a, b) == (500, 250)
    # isqrt(1000 * 500) == 707; 500 * 707 // 1000 == 353, 250 * 707 // 500 == 353
    assert shares == 353


def test_matching_side_below_minimum_is_slippage() -> None:
    ledger, pool = _setup()
    _fund(ledger, "user1", 1_100_000, 1_000_000)
    pool.provide_liquidity("user1", 1_000_000, None, 1_000_000, None)
    before = pool.query_pool_info()

    with pytest.raises(SlippageExceeded):
        pool.provide_liquidity("user1", desired_a=100_000, min_b=200_000)

    assert pool.query_pool_info() == before
    assert ledger.balances.get("user1", TOKEN_A) == 100_000


def test_both_sides_use_ratio_preserving_amounts() -> None:
    ledger, pool = _setup()
    _fund(ledger, "user1", 1_100_000, 1_102_000)
    pool.provide_liquidity("user1", 1_000_000, None, 1_000_000, None)

    a, b, shares = pool.provide_liquidity("user1", 100_000, None, 102_000, None)
    assert (a, b, shares) == (100_000, 100_000, 100_000)
    # The excess of the over-supplied side stays with the provider.
    assert ledger.balances.get("user1", TOKEN_B) == 2_000


def test_both_sides_beyond_slippage_tolerance_fail() -> None:
    ledger, pool = _setup(PoolParams(swap_fee_bps=0, max_allowed_slippage_bps=500))
    _fund(ledger, "user1", 1_100_000, 1_200_000)
    pool.provide_liquidity("user1", 1_000_000, None, 1_000_000, None)

    with pytest.raises(SlippageExceeded, match="deviates"):
        pool.provide_liquidity("user1", 100_000, None, 200_000, None)
    assert pool.total_shares == 1_000_000


def test_provide_rejects_non_positive_amounts() -> None:
    ledger, pool = _setup()
    _fund(ledger, "user1", 100, 100)
    with pytest.raises(InvalidAmount):
        pool.provide_liquidity("user1", 0, None, 100, None)
    with pytest.raises(InvalidAmount):
        pool.provide_liquidity("user1", 100, None, -5, None)
    with pytest.raises(InvalidAmount):
        pool.provide_liquidity("user1", 100, -1, 100, None)
    assert pool.is_empty()


def test_provide_expiration() -> None:
    ledger, pool = _setup(timestamp=100)
    _fund(ledger, "user1", 200, 200)
    with pytest.raises(Expired):
        pool.provide_liquidity("user1", 100, None, 100, None, expiration=99)
    assert pool.is_empty()

    assert pool.provide_liquidity("user1", 100, None, 100, None, expiration=100) == (100, 100, 100)


def test_failed_second_transfer_rolls_back_first() -> None:
    ledger, pool = _setup()
    _fund(ledger, "user1", 100, 10)

    with pytest.raises(InsufficientBalance):
        pool.provide_liquidity("user1", 100, None, 100, None)

    assert ledger.balances.get("user1", TOKEN_A) == 100
    assert ledger.balances.get(pool.address, TOKEN_A) == 0
    assert pool.is_empty()
    _assert_consistent(pool)


def test_withdraw_validation() -> None:
    ledger, pool = _setup()
    with pytest.raises(EmptyPool):
        pool.withdraw_liquidity("user1", 1, 0, 0)

    _fund(ledger, "user1", 100, 100)
    pool.provide_liquidity("user1", 100, None, 100, None)
    with pytest.raises(InvalidAmount):
        pool.withdraw_liquidity("user1", 0, 0, 0)
    with pytest.raises(InsufficientBalance):
        pool.withdraw_liquidity("user1", 101, 0, 0)
    with pytest.raises(InsufficientBalance):
        pool.withdraw_liquidity("user2", 1, 0, 0)
    assert pool.total_shares == 100


def test_withdraw_below_minimum_is_slippage_without_change() -> None:
    ledger, pool = _setup()
    _fund(ledger, "user1", 100, 100)
    pool.provide_liquidity("user1", 100, None, 100, None)

    with pytest.raises(SlippageExceeded):
        pool.withdraw_liquidity("user1", 50, 51, 0)

    assert pool.query_share_balance("user1") == 100
    assert ledger.balances.get("user1", TOKEN_A) == 0
    assert (pool.state.reserve_a, pool.state.reserve_b) == (100, 100)


def test_withdraw_rounds_in_favor_of_pool() -> None:
    ledger, pool = _setup()
    _fund(ledger, "user1", 1_000, 3_000)
    _, _, shares = pool.provide_liquidity("user1", 1_000, None, 3_000, None)
    assert shares == 1_732

    assert pool.withdraw_liquidity("user1", 1, 0, 0) == (0, 1)
    assert (pool.state.reserve_a, pool.state.reserve_b) == (1_000, 2_999)
    _assert_consistent(pool)


def test_provide_then_withdraw_round_trip_restores_reserves() -> None:
    ledger, pool = _setup()
    _fund(ledger, "seed", 1_000_000, 1_000_000)
    _fund(ledger, "user2", 100_000, 100_000)
    pool.provide_liquidity("seed", 1_000_000, None, 1_000_000, None)
    before = pool.query_pool_info()

    a, b, shares = pool.provide_liquidity("user2", desired_a=100_000)
    assert pool.withdraw_liquidity("user2", shares, 0, 0) == (a, b)

    assert pool.query_pool_info() == before
    assert ledger.balances.get("user2", TOKEN_A) == 100_000
    assert ledger.balances.get("user2", TOKEN_B) == 100_000


def test_drained_pool_can_be_reseeded_at_new_price() -> None:
    ledger, pool = _setup()
    _fund(ledger, "user1", 500, 1_000)
    pool.provide_liquidity("user1", 100, None, 100, None)
    pool.withdraw_liquidity("user1", 100, 0, 0)
    assert pool.is_empty()

    assert pool.provide_liquidity("user1", 400, None, 900, None) == (400, 900, 600)
    assert (pool.state.reserve_a, pool.state.reserve_b) == (400, 900)


def test_auth_hook_rejection_leaves_no_trace() -> None:
    def require_auth(account: str) -> None:
        if account == "mallory":
            raise PermissionError(account)

    ledger = Ledger(require_auth=require_auth)
    pool = LiquidityPool.deploy(ledger, TOKEN_A, TOKEN_B, PoolParams(swap_fee_bps=0))
    _fund(ledger, "mallory", 100, 100)

    with pytest.raises(PermissionError):
        pool.provide_liquidity("mallory", 100, None, 100, None)
    assert pool.is_empty()
    assert ledger.balances.get("mallory", TOKEN_A) == 100


def test_amounts_beyond_128_bit_range_are_rejected() -> None:
    ledger, pool = _setup()
    _fund(ledger, "user1", 100, 100)
    with pytest.raises(InvalidAmount, match="128-bit"):
        pool.provide_liquidity("user1", 2**127, None, 100, None)
    with pytest.raises(InvalidAmount, match="128-bit"):
        pool.provide_liquidity("user1", 100, 2**127, 100, None)
    assert pool.is_empty()

    pool.provide_liquidity("user1", 100, None, 100, None)
    with pytest.raises(InvalidAmount, match="128-bit"):
        pool.withdraw_liquidity("user1", 2**127, 0, 0)
    assert pool.total_shares == 100
