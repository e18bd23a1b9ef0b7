#!/usr/bin/env python3
"""
demo.py - Interactive Tutorial: The Stablecoin Engine Step by Step

A walk through one deployment of the engine, from the first deposit to a
liquidation after a market crash. Press Enter to advance.

WHAT YOU'LL LEARN:
  1:   Deployment      - Tokens, price feeds, the stablecoin and the engine
  2:   Borrowing       - Deposit collateral, mint stablecoin, health factor
  3:   The Boundary    - Minting up to exactly 1.0, and one wei past it
  4:   The Crash       - Prices move, accounts become liquidatable
  5:   Liquidation     - Repaying someone else's debt for their collateral
  6:   Bad Debt        - When liquidation can no longer help
  7:   Conservation    - Supply, debt and custody still reconcile

Run:
    python demo.py             # Interactive mode (press Enter for each step)
    python demo.py --quick     # Run all steps without pausing
    python demo.py --verbose   # Also show engine log lines
"""

import sys

from stablecoin import (
    Deployment, deploy,
    BreaksHealthFactor, HealthFactorNotImproved,
    PRECISION, format_units,
)
from stablecoin.deploy import DEPLOYER
from stablecoin.logging_setup import configure_logging


QUICK_MODE = "--quick" in sys.argv
VERBOSE = "--verbose" in sys.argv


def wait_for_enter():
    """Pause for user input unless in quick mode."""
    if not QUICK_MODE:
        input("\n[Press Enter to continue...]")


def step_header(number: int, title: str, objective: str):
    print(f"\n{'='*70}")
    print(f"STEP {number}: {title}")
    print(f"{'='*70}")
    print(f"\nObjective: {objective}\n")


def section_header(text: str):
    print(f"\n--- {text} ---\n")


def usd(amount: int) -> str:
    return f"${format_units(amount)}"


def show_account(deployment: Deployment, user: str):
    engine = deployment.engine
    info = engine.get_account_information(user)
    print(f"  {user:<9} debt {usd(info.total_debt_minted):>12}   "
          f"collateral {usd(info.collateral_value_in_usd):>14}   "
          f"health factor {format_units(info.health_factor)}")


def open_position(deployment: Deployment, user: str, asset: str, collateral: int, debt: int):
    token = deployment.token(asset)
    if token.balance_of(user) < collateral:
        token.mint(user, collateral - token.balance_of(user))
    token.approve(user, deployment.engine.address, collateral)
    deployment.engine.deposit_collateral_and_mint_debt(user, asset, collateral, debt)


# ============================================================================
# STEPS
# ============================================================================

def step_01_deploy() -> Deployment:
    step_header(1, "Deployment",
        "See what a local deployment wires together.")

    print(">>> deployment = deploy()")
    deployment = deploy()
    engine = deployment.engine

    section_header("Collateral")
    for asset in engine.get_collateral_tokens():
        price, decimals = engine.get_latest_price(asset)
        print(f"  {asset}: {usd(price * 10 ** (18 - decimals))} per token ({decimals}-decimal feed)")

    section_header("Stablecoin")
    print(f"  {deployment.stablecoin.symbol} owner: {deployment.stablecoin.owner}  (the engine)")
    print(f"  Liquidation threshold: {engine.liquidation_threshold}%  "
          f"-> every $1 of debt needs $2 of collateral")
    print(f"  Liquidation bonus:     {engine.liquidation_bonus}%")
    return deployment


def step_02_borrow(deployment: Deployment):
    step_header(2, "Borrowing",
        "Lock collateral and mint stablecoin against it.")

    print('>>> weth.approve("alice", engine.address, 10 WETH)')
    print('>>> engine.deposit_collateral_and_mint_debt("alice", "WETH", 10 WETH, 5000 DSC)')
    open_position(deployment, "alice", "WETH", 10 * PRECISION, 5000 * PRECISION)

    section_header("Account")
    show_account(deployment, "alice")
    print("""
    Health factor = (collateral value x 50%) / debt
                  = ($20,000 x 0.5) / $5,000 = 2.0
    """)


def step_03_boundary(deployment: Deployment):
    step_header(3, "The Boundary",
        "A health factor of exactly 1.0 is allowed; anything below is not.")

    print('>>> engine.deposit_collateral_and_mint_debt("bob", "WETH", 1 WETH, 1000 DSC)')
    open_position(deployment, "bob", "WETH", PRECISION, 1000 * PRECISION)
    show_account(deployment, "bob")

    print('\n>>> engine.mint_debt("bob", 1)   # one more wei')
    try:
        deployment.engine.mint_debt("bob", 1)
    except BreaksHealthFactor as exc:
        print(f"  BreaksHealthFactor: {exc}")

    section_header("Nothing Changed")
    show_account(deployment, "bob")


def step_04_crash(deployment: Deployment):
    step_header(4, "The Crash",
        "Health factors are recomputed from live prices.")

    print(">>> eth_feed.update_answer(900 * 10**8)   # $2000 -> $900")
    deployment.feed("WETH").update_answer(900 * 10 ** 8)

    section_header("Accounts")
    show_account(deployment, "alice")
    show_account(deployment, "bob")

    section_header("Keeper Scan")
    for user, health_factor in deployment.engine.liquidatable_accounts():
        print(f"  {user}: {format_units(health_factor)}")


def step_05_liquidation(deployment: Deployment):
    step_header(5, "Liquidation",
        "Anyone holding stablecoin can repay an unhealthy account's debt.")

    engine = deployment.engine
    print("The deployer borrows against WBTC, which did not crash:")
    open_position(deployment, DEPLOYER, "WBTC", 100 * PRECISION, 10000 * PRECISION)
    deployment.stablecoin.approve(DEPLOYER, engine.address, 10000 * PRECISION)
    show_account(deployment, DEPLOYER)

    print(f'\n>>> engine.liquidate("{DEPLOYER}", "alice", "WETH", 2500 DSC)')
    event = engine.liquidate(DEPLOYER, "alice", "WETH", 2500 * PRECISION)

    section_header("Result")
    print(f"  Debt covered:      {usd(event.debt_covered)}")
    print(f"  WETH seized:       {format_units(event.collateral_seized)} "
          f"(bonus {format_units(event.bonus)})")
    print(f"  Seized value:      {usd(engine.get_usd_value('WETH', event.collateral_seized))}")
    print(f"  Health factor:     {format_units(event.starting_health_factor)} -> "
          f"{format_units(event.ending_health_factor)}")
    show_account(deployment, "alice")


def step_06_bad_debt(deployment: Deployment):
    step_header(6, "Bad Debt",
        "Below 110% collateral the bonus costs more than the debt repaid.")

    show_account(deployment, "bob")
    print('\n>>> engine.liquidate("deployer", "bob", "WETH", 100 DSC)')
    try:
        deployment.engine.liquidate(DEPLOYER, "bob", "WETH", 100 * PRECISION)
    except HealthFactorNotImproved as exc:
        print(f"  HealthFactorNotImproved: {exc}")
    print("""
    Bob's $900 of WETH backs $1,000 of debt. Handing out $110 of collateral
    for every $100 repaid would only make his position worse, so the engine
    refuses. The position stays open until prices recover.
    """)


def step_07_conservation(deployment: Deployment):
    step_header(7, "Conservation",
        "Every number in the system still reconciles.")

    engine = deployment.engine
    print(f"  Stablecoin supply:    {usd(deployment.stablecoin.total_supply())}")
    print(f"  Recorded debt:        {usd(engine.total_debt())}")
    print(f"  Value locked:         {usd(engine.total_value_locked())}")
    for asset in engine.get_collateral_tokens():
        custody = deployment.token(asset).balance_of(engine.address)
        print(f"  {asset} custody:        {format_units(custody)} "
              f"(recorded {format_units(engine.total_collateral(asset))})")
    result = deployment.ledger.verify_conservation()
    print(f"  Token ledger valid:   {result['valid']}")
    print(f"  Engine events:        {len(engine.events)}")


# ============================================================================
# MAIN
# ============================================================================

def main():
    configure_logging("INFO" if VERBOSE else "WARNING")

    print("=" * 70)
    print("       STABLECOIN ENGINE - INTERACTIVE TUTORIAL")
    print("=" * 70)
    if QUICK_MODE:
        print("Running in QUICK mode (no pauses)")
    else:
        print("Running in INTERACTIVE mode (press Enter to advance)")
    wait_for_enter()

    deployment = step_01_deploy()
    wait_for_enter()

    step_02_borrow(deployment)
    wait_for_enter()

    step_03_boundary(deployment)
    wait_for_enter()

    step_04_crash(deployment)
    wait_for_enter()

    step_05_liquidation(deployment)
    wait_for_enter()

    step_06_bad_debt(deployment)
    wait_for_enter()

    step_07_conservation(deployment)

    print("\n" + "=" * 70)
    print("       TUTORIAL COMPLETE!")
    print("=" * 70)
    print("""
    Next steps:
      - See stablecoin/engine.py for the operations
      - Run tests: pytest tests/
    """)


if __name__ == "__main__":
    main()
