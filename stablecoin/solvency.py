"""
solvency.py - Collateral Valuation and Health Factor

ARCHITECTURE (Pure Function Pattern):
=====================================

1. PURE CALCULATION FUNCTIONS (calculate_*):
   - Take every input explicitly (price, adjustment, amounts)
   - No oracle, no ledger, no hidden state
   - Usable for live checks and for "what if" simulations alike

2. SOLVENCY CALCULATOR (SolvencyCalculator):
   - Holds the fixed collateral configuration and a read-only reference to
     the CollateralLedger
   - The ONLY place that queries price feeds
   - Delegates every number to the pure functions

Key Formulas (all ints, 18-decimal fixed point, floor division):
    usd_value         = price * adjustment * amount / PRECISION
    token_amount      = usd * PRECISION / (price * adjustment)
    adjusted_value    = collateral_usd * LIQUIDATION_THRESHOLD / LIQUIDATION_PRECISION
    health_factor     = adjusted_value * PRECISION / debt      (MAX_HEALTH_FACTOR if debt == 0)
"""

from __future__ import annotations
from typing import Dict, Mapping, Tuple

from .core import (
    CollateralConfig, PriceFeed,
    InvalidPrice, UnsupportedAsset,
    PRECISION, LIQUIDATION_THRESHOLD, LIQUIDATION_PRECISION,
    MIN_HEALTH_FACTOR, MAX_HEALTH_FACTOR,
)
from .positions import CollateralLedger


# ============================================================================
# PURE CALCULATION FUNCTIONS
# ============================================================================

def calculate_usd_value(price: int, feed_adjustment: int, amount: int) -> int:
    """USD value (18 decimals) of amount base units at price."""
    return (price * feed_adjustment * amount) // PRECISION


def calculate_token_amount_from_usd(price: int, feed_adjustment: int, usd_amount: int) -> int:
    """
    Base units worth usd_amount at price.

    Rounds down, so the amount handed out never exceeds the USD value.
    """
    return (usd_amount * PRECISION) // (price * feed_adjustment)


def calculate_health_factor(total_debt: int, collateral_value_in_usd: int) -> int:
    """
    Solvency ratio of an account.

    Args:
        total_debt: Outstanding debt (18 decimals)
        collateral_value_in_usd: Unadjusted USD value of all collateral

    Returns:
        MAX_HEALTH_FACTOR when total_debt is 0, otherwise the threshold-adjusted
        collateral value divided by debt, scaled by PRECISION.
    """
    if total_debt == 0:
        return MAX_HEALTH_FACTOR
    collateral_adjusted_for_threshold = (
        collateral_value_in_usd * LIQUIDATION_THRESHOLD
    ) // LIQUIDATION_PRECISION
    return (collateral_adjusted_for_threshold * PRECISION) // total_debt


def is_solvent(health_factor: int) -> bool:
    """True when the health factor meets MIN_HEALTH_FACTOR (the boundary is solvent)."""
    return health_factor >= MIN_HEALTH_FACTOR


# ============================================================================
# SOLVENCY CALCULATOR
# ============================================================================

class SolvencyCalculator:
    """
    Derives USD values and health factors from oracle prices and ledger state.

    The calculator never mutates anything. It reads the CollateralLedger it
    was given and the price feeds of the configured assets.
    """

    def __init__(self, collateral: Mapping[str, CollateralConfig], collateral_ledger: CollateralLedger):
        self._collateral: Dict[str, CollateralConfig] = dict(collateral)
        self._ledger = collateral_ledger

    @property
    def assets(self) -> Tuple[str, ...]:
        """Accepted collateral assets in configuration order."""
        return tuple(self._collateral)

    def config_for(self, asset: str) -> CollateralConfig:
        """
        Raises:
            UnsupportedAsset: If asset is not accepted collateral
        """
        config = self._collateral.get(asset)
        if config is None:
            raise UnsupportedAsset(f"{asset} is not an accepted collateral asset")
        return config

    def price_feed(self, asset: str) -> PriceFeed:
        return self.config_for(asset).price_feed

    def latest_price(self, asset: str) -> Tuple[int, int]:
        """Return (price, decimals) from the asset's feed."""
        feed = self.price_feed(asset)
        return feed.latest_price(), feed.decimals

    def _price(self, asset: str, config: CollateralConfig) -> int:
        """
        Raises:
            InvalidPrice: If the feed answers anything but a positive int
        """
        price = config.price_feed.latest_price()
        if isinstance(price, bool) or not isinstance(price, int) or price <= 0:
            raise InvalidPrice(f"Price feed for {asset} answered {price!r}")
        return price

    def usd_value(self, asset: str, amount: int) -> int:
        config = self.config_for(asset)
        return calculate_usd_value(self._price(asset, config), config.feed_adjustment, amount)

    def token_amount_from_usd(self, asset: str, usd_amount: int) -> int:
        config = self.config_for(asset)
        return calculate_token_amount_from_usd(
            self._price(asset, config), config.feed_adjustment, usd_amount
        )

    def total_collateral_value(self, user: str) -> int:
        """
        USD value of everything a user has deposited.

        Every configured asset is visited; assets with a zero balance add
        nothing and do not query the feed.
        """
        total = 0
        for asset in self._collateral:
            amount = self._ledger.get(user, asset)
            if amount:
                total += self.usd_value(asset, amount)
        return total

    def total_value_locked(self) -> int:
        """USD value of all collateral held by the engine."""
        total = 0
        for asset in self._collateral:
            amount = self._ledger.total(asset)
            if amount:
                total += self.usd_value(asset, amount)
        return total

    def health_factor(self, total_debt: int, collateral_value_in_usd: int) -> int:
        return calculate_health_factor(total_debt, collateral_value_in_usd)

    def __repr__(self) -> str:
        return f"SolvencyCalculator(assets={list(self._collateral)})"
