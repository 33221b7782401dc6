"""
Multi-asset balance tracking for the in-memory collaborators.

Implements BalanceTable[AccountId, AssetId] -> Amount. Used for wallet
balances and vault custody (`src/integration/collaborators.py`).
"""

from typing import Dict, Tuple


# Type aliases
AccountId = str
AssetId = str
Amount = int  # Non-negative integer (arbitrary precision)


class BalanceTable:
    """
    Balance table mapping (account, asset) -> amount.

    Zero balances are not stored. Callers that need a stable order (snapshots,
    reports) sort the keys themselves.
    """

    def __init__(self):
        self._balances: Dict[Tuple[AccountId, AssetId], Amount] = {}

    def get(self, account: AccountId, asset: AssetId) -> Amount:
        """Get balance for (account, asset). Returns 0 if not found."""
        return self._balances.get((account, asset), 0)

    def set(self, account: AccountId, asset: AssetId, amount: Amount) -> None:
        """
        Set balance for (account, asset).

        Raises:
            ValueError: If amount is negative
        """
        if amount < 0:
            raise ValueError(f"Balance cannot be negative: {amount}")
        if amount == 0:
            self._balances.pop((account, asset), None)
        else:
            self._balances[(account, asset)] = amount

    def add(self, account: AccountId, asset: AssetId, delta: Amount) -> None:
        """
        Add delta (may be negative) to a balance.

        Raises:
            ValueError: If resulting balance would be negative
        """
        current = self.get(account, asset)
        new_balance = current + delta
        if new_balance < 0:
            raise ValueError(
                f"Insufficient balance for {account}/{asset}: {current} + {delta} = {new_balance} < 0"
            )
        self.set(account, asset, new_balance)

    def subtract(self, account: AccountId, asset: AssetId, delta: Amount) -> None:
        if delta < 0:
            raise ValueError(f"Delta must be non-negative: {delta}")
        self.add(account, asset, -delta)

    def get_all_balances(self) -> Dict[Tuple[AccountId, AssetId], Amount]:
        return dict(self._balances)

    def __repr__(self) -> str:
        return f"BalanceTable({len(self._balances)} entries)"
