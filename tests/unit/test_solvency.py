"""
test_solvency.py - Unit tests for valuation and health factor

Tests:
- Pure calculation functions with hand-computed values
- Health factor sentinel and the solvency boundary
- SolvencyCalculator against fake feeds and a CollateralLedger
- Feeds answering unusable prices
"""

import pytest

from stablecoin import (
    CollateralConfig, CollateralLedger, SolvencyCalculator,
    calculate_usd_value, calculate_token_amount_from_usd, calculate_health_factor,
    is_solvent,
    EngineError, InvalidPrice, UnsupportedAsset,
    PRECISION, ADDITIONAL_FEED_PRECISION, MIN_HEALTH_FACTOR, MAX_HEALTH_FACTOR,
)
from tests.fakes import FakeFeed


ETH_PRICE = 2000 * 10 ** 8
BTC_PRICE = 1000 * 10 ** 8


def _calculator(eth_price=ETH_PRICE, btc_price=BTC_PRICE):
    ledger = CollateralLedger()
    eth, btc = FakeFeed(eth_price), FakeFeed(btc_price)
    configs = {
        "WETH": CollateralConfig("WETH", eth),
        "WBTC": CollateralConfig("WBTC", btc),
    }
    return SolvencyCalculator(configs, ledger), ledger, eth, btc


class TestPureCalculations:

    def test_usd_value(self):
        # 15 ETH * $2000 = $30,000
        assert calculate_usd_value(ETH_PRICE, ADDITIONAL_FEED_PRECISION, 15 * PRECISION) == 30000 * PRECISION

    def test_token_amount_from_usd(self):
        # $100 / $2000 = 0.05 ETH
        assert calculate_token_amount_from_usd(ETH_PRICE, ADDITIONAL_FEED_PRECISION, 100 * PRECISION) == PRECISION // 20

    def test_token_amount_rounds_down(self):
        # $100 / $18 = 5.5555... ETH
        amount = calculate_token_amount_from_usd(18 * 10 ** 8, ADDITIONAL_FEED_PRECISION, 100 * PRECISION)
        assert amount == 5555555555555555555

    def test_zero_debt_is_infinite(self):
        assert calculate_health_factor(0, 0) == MAX_HEALTH_FACTOR
        assert calculate_health_factor(0, 10 ** 30) == MAX_HEALTH_FACTOR

    def test_health_factor_applies_threshold(self):
        # $1000 collateral, 50% threshold, $100 debt -> 5.0
        assert calculate_health_factor(100 * PRECISION, 1000 * PRECISION) == 5 * PRECISION

    def test_health_factor_at_boundary(self):
        assert calculate_health_factor(10000 * PRECISION, 20000 * PRECISION) == MIN_HEALTH_FACTOR
        assert calculate_health_factor(10000 * PRECISION + 1, 20000 * PRECISION) < MIN_HEALTH_FACTOR

    def test_health_factor_with_no_collateral(self):
        assert calculate_health_factor(1, 0) == 0

    def test_is_solvent_boundary(self):
        assert is_solvent(MIN_HEALTH_FACTOR)
        assert is_solvent(MAX_HEALTH_FACTOR)
        assert not is_solvent(MIN_HEALTH_FACTOR - 1)


class TestSolvencyCalculator:

    def test_assets_in_configuration_order(self):
        calculator, *_ = _calculator()
        assert calculator.assets == ("WETH", "WBTC")

    def test_latest_price(self):
        calculator, *_ = _calculator()
        assert calculator.latest_price("WETH") == (ETH_PRICE, 8)

    def test_usd_value_reads_feed(self):
        calculator, _, eth, _ = _calculator()
        assert calculator.usd_value("WETH", PRECISION) == 2000 * PRECISION
        eth.price = 18 * 10 ** 8
        assert calculator.usd_value("WETH", PRECISION) == 18 * PRECISION

    def test_unsupported_asset(self):
        calculator, *_ = _calculator()
        with pytest.raises(UnsupportedAsset):
            calculator.usd_value("DOGE", 1)
        with pytest.raises(UnsupportedAsset):
            calculator.token_amount_from_usd("DOGE", 1)

    def test_total_collateral_value_sums_assets(self):
        calculator, ledger, _, _ = _calculator()
        ledger.increase("alice", "WETH", 2 * PRECISION)
        ledger.increase("alice", "WBTC", 3 * PRECISION)
        assert calculator.total_collateral_value("alice") == 7000 * PRECISION

    def test_total_collateral_value_of_empty_user(self):
        calculator, _, eth, btc = _calculator()
        assert calculator.total_collateral_value("nobody") == 0
        # zero balances never query the feed
        assert eth.calls == 0 and btc.calls == 0

    def test_total_value_locked(self):
        calculator, ledger, _, _ = _calculator()
        ledger.increase("alice", "WETH", PRECISION)
        ledger.increase("bob", "WETH", PRECISION)
        ledger.increase("bob", "WBTC", PRECISION)
        assert calculator.total_value_locked() == 5000 * PRECISION

    def test_health_factor_is_pure(self):
        calculator, *_ = _calculator()
        assert calculator.health_factor(50 * PRECISION, 200 * PRECISION) == 2 * PRECISION


class TestUnusablePrices:

    @pytest.mark.parametrize("answer", [0, -1, 2000.0, None, True])
    def test_conversions_reject_bad_answer(self, answer):
        calculator, _, eth, _ = _calculator()
        eth.price = answer
        with pytest.raises(InvalidPrice):
            calculator.token_amount_from_usd("WETH", 100 * PRECISION)
        with pytest.raises(InvalidPrice):
            calculator.usd_value("WETH", PRECISION)

    def test_invalid_price_is_an_engine_error(self):
        assert issubclass(InvalidPrice, EngineError)

    def test_message_names_asset(self):
        calculator, _, _, btc = _calculator()
        btc.price = 0
        with pytest.raises(InvalidPrice, match="WBTC"):
            calculator.token_amount_from_usd("WBTC", PRECISION)

    def test_other_assets_unaffected(self):
        calculator, ledger, eth, _ = _calculator()
        eth.price = 0
        ledger.increase("alice", "WBTC", PRECISION)
        # alice holds no WETH, so its feed is never read
        assert calculator.total_collateral_value("alice") == 1000 * PRECISION
