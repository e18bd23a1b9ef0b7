"""
positions.py - Collateral and Debt Bookkeeping

Pure bookkeeping for the two position maps the AccountingEngine owns:

    CollateralLedger: (user, asset) -> deposited amount
    DebtLedger:       user -> minted debt

Entries are created implicitly on first write and never deleted; a zero
balance is a valid terminal state. Balances are unsigned: decreasing past
zero raises InsufficientBalance and increasing past MAX_UINT256 raises
Overflow. Nothing here calls back into the engine.

Both ledgers implement the Snapshottable protocol so the engine can roll a
failed operation back to its starting state.
"""

from __future__ import annotations
from collections import defaultdict
from typing import Dict, Tuple

from .core import (
    CollateralBalances,
    InsufficientBalance, Overflow,
    MAX_UINT256,
    require_positive_amount,
)


class CollateralLedger:
    """
    Per-user, per-asset deposited collateral.

    Example:
        ledger = CollateralLedger()
        ledger.increase("alice", "WETH", 10 * 10**18)
        ledger.get("alice", "WETH")   # 10 * 10**18
        ledger.get("bob", "WETH")     # 0
    """

    def __init__(self):
        self._balances: Dict[str, Dict[str, int]] = defaultdict(dict)

    def get(self, user: str, asset: str) -> int:
        """Return the deposited amount, 0 if the user never deposited the asset."""
        return self._balances.get(user, {}).get(asset, 0)

    def balances_of(self, user: str) -> CollateralBalances:
        """Return a copy of all of a user's collateral balances."""
        return dict(self._balances.get(user, {}))

    def increase(self, user: str, asset: str, amount: int) -> int:
        """
        Credit collateral to a user.

        Returns:
            The new balance.

        Raises:
            Overflow: If the new balance would exceed MAX_UINT256.
        """
        require_positive_amount(amount)
        new_balance = self.get(user, asset) + amount
        if new_balance > MAX_UINT256:
            raise Overflow(f"Collateral {asset} of {user} would overflow")
        self._balances[user][asset] = new_balance
        return new_balance

    def decrease(self, user: str, asset: str, amount: int) -> int:
        """
        Debit collateral from a user.

        Returns:
            The new balance.

        Raises:
            InsufficientBalance: If amount exceeds the current balance.
        """
        require_positive_amount(amount)
        current = self.get(user, asset)
        if amount > current:
            raise InsufficientBalance(
                f"{user} has {current} {asset} deposited, cannot remove {amount}"
            )
        self._balances[user][asset] = current - amount
        return current - amount

    def total(self, asset: str) -> int:
        """Sum of one asset across all users."""
        return sum(balances.get(asset, 0) for balances in self._balances.values())

    def users(self) -> Tuple[str, ...]:
        return tuple(sorted(self._balances))

    def snapshot(self) -> Dict[str, Dict[str, int]]:
        return {user: dict(balances) for user, balances in self._balances.items()}

    def restore(self, snapshot: Dict[str, Dict[str, int]]) -> None:
        self._balances = defaultdict(dict)
        for user, balances in snapshot.items():
            self._balances[user] = dict(balances)

    def __repr__(self) -> str:
        return f"CollateralLedger({len(self._balances)} users)"


class DebtLedger:
    """Per-user minted debt."""

    def __init__(self):
        self._debts: Dict[str, int] = {}

    def get(self, user: str) -> int:
        return self._debts.get(user, 0)

    def increase(self, user: str, amount: int) -> int:
        """
        Record newly minted debt.

        Raises:
            Overflow: If the new debt would exceed MAX_UINT256.
        """
        require_positive_amount(amount)
        new_debt = self.get(user) + amount
        if new_debt > MAX_UINT256:
            raise Overflow(f"Debt of {user} would overflow")
        self._debts[user] = new_debt
        return new_debt

    def decrease(self, user: str, amount: int) -> int:
        """
        Record repaid debt.

        Raises:
            InsufficientBalance: If amount exceeds the outstanding debt.
        """
        require_positive_amount(amount)
        current = self.get(user)
        if amount > current:
            raise InsufficientBalance(f"{user} owes {current}, cannot repay {amount}")
        self._debts[user] = current - amount
        return current - amount

    def total(self) -> int:
        """Outstanding debt across all users."""
        return sum(self._debts.values())

    def users(self) -> Tuple[str, ...]:
        return tuple(sorted(self._debts))

    def snapshot(self) -> Dict[str, int]:
        return dict(self._debts)

    def restore(self, snapshot: Dict[str, int]) -> None:
        self._debts = dict(snapshot)

    def __repr__(self) -> str:
        return f"DebtLedger({len(self._debts)} users, total={self.total()})"
