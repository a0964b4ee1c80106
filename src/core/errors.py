"""Exception types for pool, share and router operations.

Every recoverable failure is a ``DexError`` subclass carrying a stable numeric
``code``. ``InvariantViolation`` marks a broken internal invariant; it is never
handled by the core and, like any other exception, aborts the enclosing
``Ledger.atomic()`` transaction.
"""

from __future__ import annotations


class DexError(ValueError):
    """Base class for typed operation failures."""

    code = 0


class InvalidAmount(DexError):
    """Non-positive or otherwise malformed quantity."""

    code = 1


class EmptyPool(DexError):
    """Operation is not valid against a pool with zero reserves."""

    code = 2


class SlippageExceeded(DexError):
    """A realized amount breaches the caller's or the pool's slippage bound."""

    code = 3


class SpreadExceeded(DexError):
    """Trade price deviates from the pre-trade spot price beyond the bound."""

    code = 4


class AssetMismatch(DexError):
    """Offered asset is not one of the pool's two reserves."""

    code = 5


class InsufficientBalance(DexError):
    """Burn or transfer exceeds the holder's balance."""

    code = 6


class InvalidRoute(DexError):
    """Route legs do not form a continuous chain."""

    code = 7


class OperationsEmpty(DexError):
    """Route has no legs."""

    code = 8


class PoolNotFound(DexError):
    """No pool serves the requested asset pair."""

    code = 9


class Expired(DexError):
    """Caller-supplied deadline has passed."""

    code = 10


class InvariantViolation(AssertionError):
    """Raised when state would violate a hard accounting invariant."""

    def __init__(self, violations: list[str]) -> None:
        self.violations = violations
        super().__init__(f"invariant violations: {', '.join(violations)}")
