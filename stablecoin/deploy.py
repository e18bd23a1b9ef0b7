"""
deploy.py - Wiring a complete local system

Builds a token ledger, mock collateral tokens with price feeds, the
stablecoin and the engine, then hands stablecoin ownership to the engine.

Usage:
    deployment = deploy()                     # local defaults
    deployment.engine.get_collateral_tokens() # ('WETH', 'WBTC')
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Dict, Tuple
import logging

from .core import ENGINE_WALLET, PRECISION, ConfigurationError
from .engine import AccountingEngine
from .pricing_source import DEFAULT_FEED_DECIMALS, StaticPriceFeed
from .token_ledger import TokenLedger
from .tokens import CollateralToken, DecentralizedStableCoin

logger = logging.getLogger(__name__)

DEPLOYER = "deployer"

ETH_USD_PRICE = 2000 * 10 ** DEFAULT_FEED_DECIMALS
BTC_USD_PRICE = 1000 * 10 ** DEFAULT_FEED_DECIMALS


@dataclass(frozen=True)
class NetworkConfig:
    """
    Deployment parameters.

    Attributes:
        collateral_symbols: Collateral assets, in engine order
        initial_prices: Feed answer per asset, scaled by 10 ** feed_decimals
        feed_decimals: Decimals of every price feed
        deployer_balance: Amount of each collateral minted to the deployer
        engine_address: Custody wallet of the engine
        ledger_name: Name of the token ledger
    """
    collateral_symbols: Tuple[str, ...]
    initial_prices: Dict[str, int]
    feed_decimals: int = DEFAULT_FEED_DECIMALS
    deployer_balance: int = 1000 * PRECISION
    engine_address: str = ENGINE_WALLET
    ledger_name: str = "local"
    deployer: str = DEPLOYER
    verbose: bool = False

    def __post_init__(self):
        missing = [s for s in self.collateral_symbols if s not in self.initial_prices]
        if missing:
            raise ConfigurationError(f"No initial price for {missing}")


def local_network_config() -> NetworkConfig:
    """WETH at $2000 and WBTC at $1000 on 8-decimal feeds."""
    return NetworkConfig(
        collateral_symbols=("WETH", "WBTC"),
        initial_prices={"WETH": ETH_USD_PRICE, "WBTC": BTC_USD_PRICE},
    )


@dataclass
class Deployment:
    """Handles to every deployed component."""
    config: NetworkConfig
    ledger: TokenLedger
    engine: AccountingEngine
    stablecoin: DecentralizedStableCoin
    collateral_tokens: Dict[str, CollateralToken] = field(default_factory=dict)
    price_feeds: Dict[str, StaticPriceFeed] = field(default_factory=dict)

    def token(self, symbol: str) -> CollateralToken:
        return self.collateral_tokens[symbol]

    def feed(self, symbol: str) -> StaticPriceFeed:
        return self.price_feeds[symbol]


def deploy(config: NetworkConfig = None) -> Deployment:
    """Deploy and wire a full system from config (local defaults if None)."""
    if config is None:
        config = local_network_config()

    ledger = TokenLedger(config.ledger_name, verbose=config.verbose)
    tokens: Dict[str, CollateralToken] = {}
    feeds: Dict[str, StaticPriceFeed] = {}
    for symbol in config.collateral_symbols:
        tokens[symbol] = CollateralToken(ledger, symbol, f"Wrapped {symbol}")
        feeds[symbol] = StaticPriceFeed(config.feed_decimals, config.initial_prices[symbol])
        if config.deployer_balance:
            tokens[symbol].mint(config.deployer, config.deployer_balance)

    stablecoin = DecentralizedStableCoin(ledger, owner=config.deployer)
    engine = AccountingEngine(
        [tokens[s] for s in config.collateral_symbols],
        [feeds[s] for s in config.collateral_symbols],
        stablecoin,
        address=config.engine_address,
        feed_adjustments=[PRECISION // 10 ** config.feed_decimals] * len(config.collateral_symbols),
    )
    stablecoin.transfer_ownership(config.deployer, engine.address)
    logger.info("Deployed %r on ledger %s", engine, ledger.name)

    return Deployment(
        config=config,
        ledger=ledger,
        engine=engine,
        stablecoin=stablecoin,
        collateral_tokens=tokens,
        price_feeds=feeds,
    )
