"""
stablecoin - Overcollateralized Stablecoin Engine

Collateral/debt accounting with oracle-priced health factors and
third-party liquidation.

Usage:
    from stablecoin import deploy, PRECISION

    deployment = deploy()
    engine = deployment.engine
    weth = deployment.token("WETH")

    weth.mint("alice", 10 * PRECISION)
    weth.approve("alice", engine.address, 10 * PRECISION)
    engine.deposit_collateral_and_mint_debt("alice", "WETH", 10 * PRECISION, 5000 * PRECISION)
    engine.get_health_factor("alice")   # 2 * PRECISION
"""

# Core types
from .core import (
    Move,
    CollateralConfig,
    AccountInformation,
    PriceFeed,
    FungibleAsset,
    DebtToken,
    Snapshottable,
    Transactional,
    EngineError,
    InvalidAmount,
    UnsupportedAsset,
    InvalidPrice,
    InsufficientBalance,
    Overflow,
    TransferFailed,
    MintFailed,
    BreaksHealthFactor,
    HealthFactorOk,
    HealthFactorNotImproved,
    ConfigurationError,
    TokenAddressesAndPriceFeedAddressesMustBeSameLength,
    ReentrancyError,
    TokenError,
    NotOwner,
    MustBeMoreThanZero,
    BurnAmountExceedsBalance,
    NotZeroAddress,
    InsufficientAllowance,
    InsufficientFunds,
    UnitNotRegistered,
    require_positive_amount,
    to_units,
    format_units,
    MAX_UINT256,
    PRECISION,
    ADDITIONAL_FEED_PRECISION,
    LIQUIDATION_THRESHOLD,
    LIQUIDATION_PRECISION,
    LIQUIDATION_BONUS,
    MIN_HEALTH_FACTOR,
    MAX_HEALTH_FACTOR,
    SYSTEM_WALLET,
    ZERO_ADDRESS,
    ENGINE_WALLET,
)

# Bookkeeping
from .positions import CollateralLedger, DebtLedger

# Valuation
from .solvency import (
    SolvencyCalculator,
    calculate_usd_value,
    calculate_token_amount_from_usd,
    calculate_health_factor,
    is_solvent,
)

# Engine
from .engine import AccountingEngine
from .events import (
    CollateralDeposited,
    CollateralRedeemed,
    DebtMinted,
    DebtBurned,
    Liquidated,
)

# Token collaborators
from .token_ledger import TokenLedger, TokenTransaction, ExecuteResult, SavepointStack
from .tokens import LedgerToken, CollateralToken, DecentralizedStableCoin

# Price feeds
from .pricing_source import StaticPriceFeed, TimeSeriesPriceFeed, DEFAULT_FEED_DECIMALS

# Deployment
from .deploy import NetworkConfig, Deployment, deploy, local_network_config

__all__ = [
    # Core
    'Move', 'CollateralConfig', 'AccountInformation',
    'PriceFeed', 'FungibleAsset', 'DebtToken', 'Snapshottable', 'Transactional',
    'require_positive_amount', 'to_units', 'format_units',
    # Exceptions
    'EngineError', 'InvalidAmount', 'UnsupportedAsset', 'InvalidPrice', 'InsufficientBalance',
    'Overflow', 'TransferFailed', 'MintFailed', 'BreaksHealthFactor',
    'HealthFactorOk', 'HealthFactorNotImproved', 'ConfigurationError',
    'TokenAddressesAndPriceFeedAddressesMustBeSameLength', 'ReentrancyError',
    'TokenError', 'NotOwner', 'MustBeMoreThanZero', 'BurnAmountExceedsBalance',
    'NotZeroAddress', 'InsufficientAllowance', 'InsufficientFunds', 'UnitNotRegistered',
    # Constants
    'MAX_UINT256', 'PRECISION', 'ADDITIONAL_FEED_PRECISION',
    'LIQUIDATION_THRESHOLD', 'LIQUIDATION_PRECISION', 'LIQUIDATION_BONUS',
    'MIN_HEALTH_FACTOR', 'MAX_HEALTH_FACTOR',
    'SYSTEM_WALLET', 'ZERO_ADDRESS', 'ENGINE_WALLET',
    # Bookkeeping
    'CollateralLedger', 'DebtLedger',
    # Valuation
    'SolvencyCalculator', 'calculate_usd_value', 'calculate_token_amount_from_usd',
    'calculate_health_factor', 'is_solvent',
    # Engine
    'AccountingEngine',
    'CollateralDeposited', 'CollateralRedeemed', 'DebtMinted', 'DebtBurned', 'Liquidated',
    # Tokens
    'TokenLedger', 'TokenTransaction', 'ExecuteResult', 'SavepointStack',
    'LedgerToken', 'CollateralToken', 'DecentralizedStableCoin',
    # Price feeds
    'StaticPriceFeed', 'TimeSeriesPriceFeed', 'DEFAULT_FEED_DECIMALS',
    # Deployment
    'NetworkConfig', 'Deployment', 'deploy', 'local_network_config',
]

__version__ = '1.0.0'
