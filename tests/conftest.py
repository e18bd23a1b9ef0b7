"""
conftest.py - Shared pytest fixtures for stablecoin tests

Provides common fixtures used across unit, functional and conformance tests:
- A freshly deployed local system (WETH $2000, WBTC $1000)
- Shortcuts to the engine, tokens, feeds and stablecoin
- An account with collateral already deposited
"""

import pytest

from stablecoin import (
    AccountingEngine, CollateralToken, DecentralizedStableCoin, Deployment,
    StaticPriceFeed, TokenLedger,
    deploy, PRECISION,
)

from tests.helpers import fund_and_deposit


@pytest.fixture
def deployment() -> Deployment:
    return deploy()


@pytest.fixture
def engine(deployment) -> AccountingEngine:
    return deployment.engine


@pytest.fixture
def ledger(deployment) -> TokenLedger:
    return deployment.ledger


@pytest.fixture
def weth(deployment) -> CollateralToken:
    return deployment.token("WETH")


@pytest.fixture
def wbtc(deployment) -> CollateralToken:
    return deployment.token("WBTC")


@pytest.fixture
def eth_feed(deployment) -> StaticPriceFeed:
    return deployment.feed("WETH")


@pytest.fixture
def btc_feed(deployment) -> StaticPriceFeed:
    return deployment.feed("WBTC")


@pytest.fixture
def dsc(deployment) -> DecentralizedStableCoin:
    return deployment.stablecoin


@pytest.fixture
def alice_deposited(deployment):
    """Alice has 10 WETH ($20,000) deposited and no debt."""
    fund_and_deposit(deployment, "alice", "WETH", 10 * PRECISION)
    return deployment
