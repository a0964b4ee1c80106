"""
Constant Product Market Maker (CPMM) math.

Pure integer functions with deterministic rounding. Nothing here touches
ledger state; the pool calls these to decide amounts, then applies them.

Rounding rules:
- Swap fee is taken on the input: after_fee = floor(amount * (10_000 - fee_bps) / 10_000).
- amount_out = reserve_out - floor(reserve_in * reserve_out / (reserve_in + after_fee)).
- When fee_bps > 0 the output is further capped at
  floor(reserve_out * after_fee / (reserve_in + after_fee)), so the product
  reserve_in * reserve_out strictly grows and a swap can never empty the ask
  reserve. Zero-fee pools keep the uncapped form (50 in on a deep balanced
  pool returns exactly 50).
- Share mint and withdrawal amounts round down (in favor of the pool).
"""

import math
from dataclasses import dataclass
from typing import Optional, Tuple

from .errors import (
    EmptyPool,
    InvalidAmount,
    InvariantViolation,
    SlippageExceeded,
    SpreadExceeded,
)


BPS_DENOM = 10_000


@dataclass(frozen=True)
class SwapQuote:
    amount_in: int
    amount_in_after_fee: int
    commission_amount: int
    amount_out: int
    expected_amount_out: int
    spread_amount: int


@dataclass(frozen=True)
class DepositAmounts:
    amount_a: int
    amount_b: int


def _require_bps(name: str, value: int) -> None:
    if not (0 <= value <= BPS_DENOM):
        raise ValueError(f"{name} must be in [0, {BPS_DENOM}]: {value}")


def compute_swap(reserve_in: int, reserve_out: int, amount_in: int, fee_bps: int) -> SwapQuote:
    """
    Quote an exact-in swap against (reserve_in, reserve_out).

    The expected amount is what the pre-trade spot price would give for the
    full input; the spread is how far the realized output falls short of it.

    Raises:
        InvalidAmount: If amount_in is not positive or the output rounds to zero
        EmptyPool: If either reserve is zero
        InvariantViolation: If a zero-fee output would drain the ask reserve
    """
    if amount_in <= 0:
        raise InvalidAmount(f"amount_in must be positive: {amount_in}")
    if reserve_in < 0 or reserve_out < 0:
        raise InvariantViolation([f"negative reserves ({reserve_in}, {reserve_out})"])
    if reserve_in == 0 or reserve_out == 0:
        raise EmptyPool("Cannot swap against an empty pool")
    _require_bps("fee_bps", fee_bps)

    after_fee = amount_in * (BPS_DENOM - fee_bps) // BPS_DENOM
    if after_fee <= 0:
        raise InvalidAmount(f"amount_in {amount_in} is entirely consumed by the fee")

    cp = reserve_in * reserve_out
    amount_out = reserve_out - cp // (reserve_in + after_fee)
    if fee_bps > 0:
        amount_out = min(amount_out, reserve_out * after_fee // (reserve_in + after_fee))
    if amount_out <= 0:
        raise InvalidAmount(f"Swap of {amount_in} yields no output")
    if amount_out >= reserve_out:
        raise InvariantViolation(
            [f"amount_out ({amount_out}) >= reserve_out ({reserve_out})"]
        )

    expected = amount_in * reserve_out // reserve_in
    return SwapQuote(
        amount_in=amount_in,
        amount_in_after_fee=after_fee,
        commission_amount=amount_in - after_fee,
        amount_out=amount_out,
        expected_amount_out=expected,
        spread_amount=max(expected - amount_out, 0),
    )


def assert_max_spread(quote: SwapQuote, max_spread_bps: int) -> None:
    """
    Reject a trade whose output falls short of the spot-price output by more
    than `max_spread_bps` of it.
    """
    _require_bps("max_spread_bps", max_spread_bps)
    if quote.spread_amount * BPS_DENOM > max_spread_bps * quote.expected_amount_out:
        raise SpreadExceeded(
            f"spread {quote.spread_amount} on expected {quote.expected_amount_out} "
            f"exceeds {max_spread_bps} bps"
        )


def initial_shares(amount_a: int, amount_b: int) -> int:
    """
    Shares minted for the first deposit into an empty pool.

        shares = floor(sqrt(amount_a * amount_b))

    Uses integer isqrt; positive whenever both amounts are.
    """
    if amount_a <= 0 or amount_b <= 0:
        raise InvalidAmount(f"Initial deposits must be positive: ({amount_a}, {amount_b})")
    shares = math.isqrt(amount_a * amount_b)
    if shares <= 0:
        raise InvariantViolation([f"initial share mint is non-positive: {shares}"])
    return shares


def matching_amount(amount: int, reserve_from: int, reserve_to: int) -> int:
    """Amount of the other asset that keeps the pool price: floor(amount * reserve_to / reserve_from)."""
    if reserve_from <= 0 or reserve_to <= 0:
        raise EmptyPool("Cannot price a deposit against an empty pool")
    return amount * reserve_to // reserve_from


def assert_slippage_tolerance(
    desired_a: int,
    desired_b: int,
    reserve_a: int,
    reserve_b: int,
    max_slippage_bps: int,
) -> None:
    """
    Check the desired deposit ratio against the pool ratio.

    deviation = |desired_a / desired_b - reserve_a / reserve_b| / (reserve_a / reserve_b)
    """
    _require_bps("max_slippage_bps", max_slippage_bps)
    # Cross-multiplied: |da*rb - db*ra| / (db*ra)
    diff = abs(desired_a * reserve_b - desired_b * reserve_a)
    if diff * BPS_DENOM > max_slippage_bps * desired_b * reserve_a:
        raise SlippageExceeded(
            f"deposit ratio {desired_a}:{desired_b} deviates from pool ratio "
            f"{reserve_a}:{reserve_b} by more than {max_slippage_bps} bps"
        )


def compute_deposit(
    reserve_a: int,
    reserve_b: int,
    desired_a: Optional[int],
    desired_b: Optional[int],
) -> DepositAmounts:
    """
    Decide the amounts actually taken for a deposit into a funded pool.

    - One side given: the other side is the proportional matching amount.
    - Both sides given: the ratio-preserving pair that does not exceed either
      desired amount.
    """
    if reserve_a <= 0 or reserve_b <= 0:
        raise EmptyPool("Pool has no reserves to price the deposit")
    if desired_a is None and desired_b is None:
        raise InvalidAmount("At least one desired amount is required")

    if desired_b is None:
        amount_a = desired_a
        amount_b = matching_amount(desired_a, reserve_a, reserve_b)
    elif desired_a is None:
        amount_b = desired_b
        amount_a = matching_amount(desired_b, reserve_b, reserve_a)
    else:
        b_from_a = matching_amount(desired_a, reserve_a, reserve_b)
        if b_from_a <= desired_b:
            amount_a, amount_b = desired_a, b_from_a
        else:
            amount_a, amount_b = matching_amount(desired_b, reserve_b, reserve_a), desired_b

    if amount_a <= 0 or amount_b <= 0:
        raise InvalidAmount(f"Deposit too small for pool ratio: ({amount_a}, {amount_b})")
    return DepositAmounts(amount_a=amount_a, amount_b=amount_b)


def compute_shares_minted(
    reserve_a: int,
    reserve_b: int,
    amount_a: int,
    amount_b: int,
    total_shares: int,
) -> int:
    """
    Shares for a proportional deposit into a funded pool.

        shares = min(floor(amount_a * total / reserve_a), floor(amount_b * total / reserve_b))
    """
    if total_shares <= 0 or reserve_a <= 0 or reserve_b <= 0:
        raise EmptyPool("Cannot mint proportional shares on an empty pool")
    if amount_a <= 0 or amount_b <= 0:
        raise InvalidAmount(f"Deposit amounts must be positive: ({amount_a}, {amount_b})")

    shares = min(
        amount_a * total_shares // reserve_a,
        amount_b * total_shares // reserve_b,
    )
    if shares <= 0:
        raise InvalidAmount(f"Deposit ({amount_a}, {amount_b}) mints no shares")
    return shares


def compute_withdrawal(
    share_amount: int,
    reserve_a: int,
    reserve_b: int,
    total_shares: int,
) -> Tuple[int, int]:
    """
    Asset amounts returned for burning `share_amount` shares.

        amount_a = floor(reserve_a * share_amount / total_shares)
        amount_b = floor(reserve_b * share_amount / total_shares)
    """
    if share_amount <= 0:
        raise InvalidAmount(f"Share amount must be positive: {share_amount}")
    if total_shares <= 0:
        raise EmptyPool("Cannot withdraw from an empty pool")
    if share_amount > total_shares:
        raise InvalidAmount(f"Cannot burn more shares than supply: {share_amount} > {total_shares}")

    amount_a = reserve_a * share_amount // total_shares
    amount_b = reserve_b * share_amount // total_shares
    return amount_a, amount_b
