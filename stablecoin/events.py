"""
events.py - Engine event records

Immutable records appended to the AccountingEngine's event log when an
operation commits. An aborted operation leaves no events behind.
"""

from __future__ import annotations
from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class CollateralDeposited:
    user: str
    asset: str
    amount: int


@dataclass(frozen=True, slots=True)
class CollateralRedeemed:
    """
    Collateral leaving the engine.

    redeemed_from is the position debited; redeemed_to receives the tokens.
    They differ only when a liquidator seizes a victim's collateral.
    """
    redeemed_from: str
    redeemed_to: str
    asset: str
    amount: int

    @property
    def is_liquidation(self) -> bool:
        return self.redeemed_from != self.redeemed_to


@dataclass(frozen=True, slots=True)
class DebtMinted:
    user: str
    amount: int


@dataclass(frozen=True, slots=True)
class DebtBurned:
    """Debt repaid for on_behalf_of with stablecoin pulled from debt_from."""
    on_behalf_of: str
    debt_from: str
    amount: int


@dataclass(frozen=True, slots=True)
class Liquidated:
    liquidator: str
    user: str
    asset: str
    debt_covered: int
    collateral_seized: int
    bonus: int
    starting_health_factor: int
    ending_health_factor: int
