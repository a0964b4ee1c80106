"""
Pool share (LP token) accounting.

One ShareLedger exists per pool. It only supports mint and burn; shares are
issued and redeemed exclusively by the owning pool.
"""

from __future__ import annotations

from typing import Dict

from ..core.errors import InsufficientBalance, InvalidAmount, InvariantViolation
from .balances import Account, Amount


class ShareLedger:
    """
    Fungible share balances for a single pool.

    Notes:
    - Balances and total_shares are always non-negative.
    - Zero balances are omitted to keep the table sparse.
    - sum(balances) == total_shares after every operation.
    """

    def __init__(self, token_id: str) -> None:
        self.token_id = token_id
        self._balances: Dict[Account, Amount] = {}
        self._total_shares: Amount = 0

    @property
    def total_shares(self) -> Amount:
        return self._total_shares

    def balance_of(self, account: Account) -> Amount:
        """Get share balance for an account. Returns 0 if not found."""
        return self._balances.get(account, 0)

    def mint(self, account: Account, amount: Amount) -> None:
        """Issue `amount` new shares to `account`."""
        if amount <= 0:
            raise InvalidAmount(f"Share mint amount must be positive: {amount}")
        self._balances[account] = self.balance_of(account) + amount
        self._total_shares += amount
        self._check()

    def burn(self, account: Account, amount: Amount) -> None:
        """Destroy `amount` shares held by `account`."""
        if amount <= 0:
            raise InvalidAmount(f"Share burn amount must be positive: {amount}")
        current = self.balance_of(account)
        if current < amount:
            raise InsufficientBalance(
                f"Insufficient share balance for {account}: {current} < {amount}"
            )
        remaining = current - amount
        if remaining == 0:
            self._balances.pop(account, None)
        else:
            self._balances[account] = remaining
        self._total_shares -= amount
        self._check()

    def holders(self) -> Dict[Account, Amount]:
        """Return a copy of all non-zero balances."""
        return dict(self._balances)

    def verify_closed(self) -> bool:
        """Verify sum of balances equals total_shares and nothing is negative."""
        if self._total_shares < 0:
            return False
        if any(amount <= 0 for amount in self._balances.values()):
            return False
        return sum(self._balances.values()) == self._total_shares

    def _check(self) -> None:
        if not self.verify_closed():
            raise InvariantViolation([f"share ledger {self.token_id} not closed"])

    def __repr__(self) -> str:
        return f"ShareLedger({self.token_id[:10]}..., holders={len(self._balances)}, total={self._total_shares})"
