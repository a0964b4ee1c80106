"""
Multi-asset token balance tracking.

Implements BalanceTable[Account, AssetId] -> Amount. Pools and the router hold
their assets here under their own account ids, exactly like any other holder.
"""

from typing import Dict, Tuple

from ..core.errors import InsufficientBalance, InvalidAmount


# Type aliases
Account = str  # account / contract address
AssetId = str  # token contract address
Amount = int  # signed 128-bit range on the wire, non-negative when stored

MAX_AMOUNT = 2**127 - 1


def check_amount_range(name: str, amount: Amount) -> None:
    """Reject amounts that do not fit the signed 128-bit range."""
    if amount > MAX_AMOUNT:
        raise InvalidAmount(f"{name} exceeds the 128-bit amount range: {amount}")


class BalanceTable:
    """
    Deterministic balance table mapping (account, asset) -> amount.

    Zero balances are omitted to keep the table sparse.
    """

    def __init__(self):
        self._balances: Dict[Tuple[Account, AssetId], Amount] = {}

    def get(self, account: Account, asset: AssetId) -> Amount:
        """Get balance for (account, asset). Returns 0 if not found."""
        return self._balances.get((account, asset), 0)

    def set(self, account: Account, asset: AssetId, amount: Amount) -> None:
        """
        Set balance for (account, asset).

        Raises:
            InsufficientBalance: If amount is negative
        """
        if amount < 0:
            raise InsufficientBalance(f"Balance cannot be negative: {amount}")
        if amount == 0:
            self._balances.pop((account, asset), None)
        else:
            self._balances[(account, asset)] = amount

    def add(self, account: Account, asset: AssetId, delta: Amount) -> None:
        """
        Add delta to balance (delta may be negative).

        Raises:
            InsufficientBalance: If resulting balance would be negative
        """
        current = self.get(account, asset)
        new_balance = current + delta
        check_amount_range(f"{asset} balance of {account}", new_balance)
        if new_balance < 0:
            raise InsufficientBalance(
                f"Insufficient {asset} balance for {account}: {current} + {delta} = {new_balance} < 0"
            )
        self.set(account, asset, new_balance)

    def mint(self, account: Account, asset: AssetId, amount: Amount) -> None:
        """Credit freshly issued tokens to an account (funding / bootstrap)."""
        if amount <= 0:
            raise InvalidAmount(f"Mint amount must be positive: {amount}")
        check_amount_range("mint amount", amount)
        self.add(account, asset, amount)

    def transfer(self, sender: Account, receiver: Account, asset: AssetId, amount: Amount) -> None:
        """
        Move `amount` of `asset` from sender to receiver.

        The debit happens first; if it fails nothing has been credited.

        Raises:
            InvalidAmount: If amount is not positive or above MAX_AMOUNT
            InsufficientBalance: If sender holds less than amount
        """
        if amount <= 0:
            raise InvalidAmount(f"Transfer amount must be positive: {amount}")
        check_amount_range("transfer amount", amount)
        check_amount_range(f"{asset} balance of {receiver}", self.get(receiver, asset) + amount)
        self.add(sender, asset, -amount)
        self.add(receiver, asset, amount)

    def get_all_balances(self) -> Dict[Tuple[Account, AssetId], Amount]:
        """Return a copy of all balances."""
        return dict(self._balances)

    def get_balances_for_asset(self, asset: AssetId) -> Dict[Account, Amount]:
        """Get all holders of a specific asset."""
        result = {}
        for (acct, a), amount in self._balances.items():
            if a == asset:
                result[acct] = amount
        return result

    def total_supply(self, asset: AssetId) -> Amount:
        return sum(self.get_balances_for_asset(asset).values())

    def restore(self, balances: Dict[Tuple[Account, AssetId], Amount]) -> None:
        """Replace the table contents with a previously captured copy."""
        self._balances = dict(balances)

    def __repr__(self) -> str:
        return f"BalanceTable({len(self._balances)} entries)"
