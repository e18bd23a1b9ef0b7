"""
test_scenarios.py - End-to-end stablecoin scenarios

Scenarios:
- A position opened, stressed by a price move, and closed
- A market crash followed by a partial liquidation on a second asset
- A replayed price path driving repeated liquidations
"""

from datetime import datetime

from stablecoin import (
    AccountingEngine, CollateralToken, DecentralizedStableCoin, TokenLedger,
    TimeSeriesPriceFeed,
    Liquidated,
    PRECISION, MIN_HEALTH_FACTOR, MAX_HEALTH_FACTOR,
)
from tests.helpers import approve_stablecoin, fund_and_deposit, open_position


def test_position_lifecycle(deployment, engine, weth, dsc, eth_feed, ledger):
    """Open, survive a 40% drawdown, then repay and withdraw everything."""
    open_position(deployment, "alice", "WETH", 10 * PRECISION, 5000 * PRECISION)
    fund_and_deposit(deployment, "alice", "WBTC", 2 * PRECISION)
    # $22,000 of collateral against $5,000
    assert engine.get_health_factor("alice") == 2200000000000000000

    eth_feed.update_answer(1200 * 10 ** 8)
    # $14,000 of collateral
    assert engine.get_health_factor("alice") == 1400000000000000000
    assert engine.liquidatable_accounts() == []

    approve_stablecoin(deployment, "alice", 5000 * PRECISION)
    engine.redeem_collateral_for_debt("alice", "WETH", 10 * PRECISION, 5000 * PRECISION)
    engine.redeem_collateral("alice", "WBTC", 2 * PRECISION)

    info = engine.get_account_information("alice")
    assert info.as_tuple() == (0, 0)
    assert info.health_factor == MAX_HEALTH_FACTOR
    assert weth.balance_of("alice") == 10 * PRECISION
    assert dsc.total_supply() == 0
    assert engine.total_value_locked() == 0
    assert ledger.verify_conservation()['valid']


def test_crash_and_liquidation_on_second_asset(deployment, engine, wbtc, eth_feed):
    """ETH halves; the liquidator is paid in the account's WBTC."""
    fund_and_deposit(deployment, "alice", "WBTC", PRECISION)
    open_position(deployment, "alice", "WETH", PRECISION, 1400 * PRECISION)
    open_position(deployment, "liz", "WBTC", 10 * PRECISION, 1000 * PRECISION)
    approve_stablecoin(deployment, "liz", 700 * PRECISION)

    eth_feed.update_answer(1000 * 10 ** 8)
    assert engine.liquidatable_accounts() == [("alice", 714285714285714285)]

    event = engine.liquidate("liz", "alice", "WBTC", 700 * PRECISION)

    assert event.collateral_seized == 77 * PRECISION // 100
    assert event.bonus == 7 * PRECISION // 100
    assert event.ending_health_factor == 878571428571428571
    assert wbtc.balance_of("liz") == 77 * PRECISION // 100
    assert engine.get_collateral_balance_of_user("alice", "WBTC") == 23 * PRECISION // 100
    assert engine.get_collateral_balance_of_user("alice", "WETH") == PRECISION
    assert engine.get_debt_of_user("alice") == 700 * PRECISION
    # Still below 1.0: a second keeper pass would find alice again
    assert [user for user, _ in engine.liquidatable_accounts()] == ["alice"]


def test_replayed_price_path():
    """A hand-wired system driven by a recorded ETH price path."""
    t0, t1, t2 = datetime(2024, 3, 1), datetime(2024, 3, 8), datetime(2024, 3, 15)
    ledger = TokenLedger("replay")
    weth = CollateralToken(ledger, "WETH", "Wrapped Ether")
    dsc = DecentralizedStableCoin(ledger, owner="deployer")
    feed = TimeSeriesPriceFeed(8, [(t0, 2000 * 10 ** 8), (t1, 1500 * 10 ** 8), (t2, 900 * 10 ** 8)])
    engine = AccountingEngine([weth], [feed], dsc)
    dsc.transfer_ownership("deployer", engine.address)

    for user, collateral, debt in (("alice", 10, 8000), ("bob", 100, 10000)):
        weth.mint(user, collateral * PRECISION)
        weth.approve(user, engine.address, collateral * PRECISION)
        engine.deposit_collateral_and_mint_debt(user, "WETH", collateral * PRECISION, debt * PRECISION)
    dsc.approve("bob", engine.address, 10000 * PRECISION)
    assert engine.get_health_factor("alice") == 1250000000000000000

    feed.advance_to(t1)
    assert engine.get_health_factor("alice") == 937500000000000000
    event = engine.liquidate("bob", "alice", "WETH", 4000 * PRECISION)
    assert isinstance(event, Liquidated)
    assert event.collateral_seized == 2933333333333333332
    assert engine.get_health_factor("alice") >= MIN_HEALTH_FACTOR

    feed.advance_to(t2)
    assert [user for user, _ in engine.liquidatable_accounts()] == ["alice"]
    assert engine.get_health_factor("bob") == 4500000000000000000
    assert dsc.total_supply() == engine.total_debt() == 14000 * PRECISION
    assert ledger.verify_conservation()['valid']
