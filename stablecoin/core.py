"""
Core types, constants and exceptions for the stablecoin engine.

This module provides the foundational pieces every other module builds on:
1. Protocol constants: one 18-decimal fixed-point scale for all USD values
   and health factors
2. Exceptions: EngineError and one class per failure kind
3. Protocols: PriceFeed, FungibleAsset, DebtToken, Snapshottable, Transactional
4. Immutable data structures: Move, CollateralConfig, AccountInformation
5. Amount helpers: validation and human-readable formatting

All amounts are plain Python ints interpreted as fixed-point numbers.
Arithmetic is exact and rounds toward zero (floor division), so every
rounding decision favours the protocol.
"""

from __future__ import annotations
from dataclasses import dataclass
from decimal import Decimal, localcontext
from typing import ContextManager, Dict, Optional, Protocol, Tuple, Any, runtime_checkable


# ============================================================================
# PROTOCOL CONSTANTS
# ============================================================================

# Largest value an unsigned 256-bit balance can hold.
MAX_UINT256 = 2 ** 256 - 1

# Fixed-point scale for USD values, token amounts and health factors.
PRECISION = 10 ** 18

# Lifts an 8-decimal price feed answer to PRECISION.
ADDITIONAL_FEED_PRECISION = 10 ** 10

# Collateral haircut: only 50% of collateral value counts, i.e. 200%
# over-collateralization is required.
LIQUIDATION_THRESHOLD = 50
LIQUIDATION_PRECISION = 100

# Extra collateral (10%) awarded to liquidators on top of the debt covered.
LIQUIDATION_BONUS = 10

# Health factor of exactly 1.0; anything strictly below is liquidatable.
MIN_HEALTH_FACTOR = PRECISION

# Sentinel returned for accounts with no debt. Never reached by division.
MAX_HEALTH_FACTOR = MAX_UINT256

# Issuance wallet on the token ledger. Exempt from balance validation;
# its negative balance equals the outstanding supply of a unit.
SYSTEM_WALLET = "system"

# The null account. Minting to it is refused.
ZERO_ADDRESS = "0x0"

# Custody wallet the engine holds collateral and incoming debt tokens in.
ENGINE_WALLET = "engine"


# ============================================================================
# TYPE ALIASES
# ============================================================================

# Mapping from asset symbol to the amount one user holds of it.
CollateralBalances = Dict[str, int]

# Mapping from wallet ID to balance for a single token unit.
Positions = Dict[str, int]


# ============================================================================
# EXCEPTIONS
# ============================================================================

class EngineError(Exception):
    """Base exception for all stablecoin engine errors."""
    pass


class InvalidAmount(EngineError):
    """Raised when a zero, negative or non-integer amount is supplied where a positive one is required."""
    pass


class UnsupportedAsset(EngineError):
    """Raised when an asset is not in the engine's accepted collateral set."""
    pass


class InvalidPrice(EngineError):
    """Raised when a price feed answers a non-positive or non-integer price."""
    pass


class InsufficientBalance(EngineError):
    """Raised when a ledger decrease exceeds the current balance."""
    pass


class Overflow(EngineError):
    """Raised when a ledger increase would exceed MAX_UINT256."""
    pass


class TransferFailed(EngineError):
    """Raised when a token collaborator reports a failed transfer."""
    pass


class MintFailed(EngineError):
    """Raised when the debt token reports a failed mint."""
    pass


class BreaksHealthFactor(EngineError):
    """Raised when an operation leaves an account below MIN_HEALTH_FACTOR."""

    def __init__(self, health_factor: int, user: Optional[str] = None):
        self.health_factor = health_factor
        self.user = user
        who = f" for {user}" if user else ""
        super().__init__(
            f"health factor {format_units(health_factor)}{who} is below "
            f"minimum {format_units(MIN_HEALTH_FACTOR)}"
        )


class HealthFactorOk(EngineError):
    """Raised when liquidating an account that is not under-collateralized."""
    pass


class HealthFactorNotImproved(EngineError):
    """Raised when a liquidation does not strictly raise the victim's health factor."""
    pass


class ConfigurationError(EngineError):
    """Raised for malformed construction input."""
    pass


class TokenAddressesAndPriceFeedAddressesMustBeSameLength(ConfigurationError):
    """Raised when the asset list and the price feed list differ in length."""
    pass


class ReentrancyError(EngineError):
    """Raised when a mutating operation is entered while another is still running."""
    pass


class TokenError(EngineError):
    """Base exception for misuse of a token collaborator."""
    pass


class NotOwner(TokenError):
    """Raised when a restricted token operation is called by a non-owner."""
    pass


class MustBeMoreThanZero(TokenError):
    """Raised when a token mint or burn amount is not positive."""
    pass


class BurnAmountExceedsBalance(TokenError):
    """Raised when burning more than the caller holds."""
    pass


class NotZeroAddress(TokenError):
    """Raised when minting to the zero address."""
    pass


class InsufficientAllowance(TokenError):
    """Raised when transfer_from exceeds the approved allowance."""
    pass


class InsufficientFunds(TokenError):
    """Raised when a token move would take a wallet balance below zero."""
    pass


class UnitNotRegistered(TokenError):
    """Raised when operating on a token unit the token ledger does not know."""
    pass


# ============================================================================
# PROTOCOLS
# ============================================================================

@runtime_checkable
class PriceFeed(Protocol):
    """
    Latest-answer price oracle for a single asset.

    Answers are USD prices scaled by 10 ** decimals. Feeds are assumed to
    be available; a missing feed is a configuration error caught when the
    engine is built.
    """

    decimals: int

    def latest_price(self) -> int:
        """Return the latest USD price, scaled by 10 ** decimals."""
        ...


@runtime_checkable
class FungibleAsset(Protocol):
    """
    Minimal token interface the engine drives.

    Transfers report success with a boolean. The engine treats False as an
    aborting failure and never retries.
    """

    symbol: str

    def balance_of(self, holder: str) -> int:
        ...

    def total_supply(self) -> int:
        ...

    def transfer(self, sender: str, dest: str, amount: int) -> bool:
        ...

    def transfer_from(self, spender: str, source: str, dest: str, amount: int) -> bool:
        ...


@runtime_checkable
class DebtToken(FungibleAsset, Protocol):
    """
    The stablecoin as the engine drives it.

    Only the owner may mint and burn; burn destroys tokens the caller holds.
    """

    def mint(self, caller: str, to: str, amount: int) -> bool:
        ...

    def burn(self, caller: str, amount: int) -> None:
        ...


@runtime_checkable
class Snapshottable(Protocol):
    """State holder owned by one engine, captured and rolled back as a unit."""

    def snapshot(self) -> Any:
        ...

    def restore(self, snapshot: Any) -> None:
        ...


@runtime_checkable
class Transactional(Protocol):
    """
    Shared state holder that can undo one caller's changes.

    transaction() opens a savepoint for the calling thread. If the block
    raises, only the changes made on that thread inside the block are
    undone; changes other threads made meanwhile are kept.
    """

    def transaction(self) -> ContextManager[None]:
        ...


# ============================================================================
# CORE DATA STRUCTURES
# ============================================================================

@dataclass(frozen=True, slots=True)
class Move:
    """
    A single transfer of a token unit between two wallets.

    Attributes:
        quantity: Amount to transfer, a positive int in the unit's base units.
        unit_symbol: Symbol of the token unit (e.g. "WETH", "DSC").
        source: Wallet debited.
        dest: Wallet credited.
        reason: Short tag describing why the move exists (e.g. "transfer", "mint").
    """
    quantity: int
    unit_symbol: str
    source: str
    dest: str
    reason: str

    def __post_init__(self):
        if not self.source or not self.source.strip():
            raise ValueError("Move source cannot be empty")
        if not self.dest or not self.dest.strip():
            raise ValueError("Move dest cannot be empty")
        if not self.unit_symbol or not self.unit_symbol.strip():
            raise ValueError("Move unit_symbol cannot be empty")
        if not self.reason or not self.reason.strip():
            raise ValueError("Move reason cannot be empty")
        if isinstance(self.quantity, bool) or not isinstance(self.quantity, int):
            raise ValueError(f"Move quantity must be int, got {type(self.quantity)}")
        if self.quantity <= 0:
            raise ValueError(f"Move quantity must be positive, got {self.quantity}")
        if self.source == self.dest:
            raise ValueError("Source and dest must be different")

    def __repr__(self) -> str:
        return f"Move({self.quantity} {self.unit_symbol}: {self.source}→{self.dest})"


@dataclass(frozen=True, slots=True)
class CollateralConfig:
    """
    Term sheet for one accepted collateral asset.

    Attributes:
        symbol: Asset identifier.
        price_feed: Oracle quoting the asset in USD.
        feed_adjustment: Multiplier lifting the feed's answer to PRECISION.
            Fixed at construction; 10 ** feed.decimals * feed_adjustment
            must equal PRECISION.
    """
    symbol: str
    price_feed: PriceFeed
    feed_adjustment: int = ADDITIONAL_FEED_PRECISION

    def __post_init__(self):
        if not self.symbol or not self.symbol.strip():
            raise ConfigurationError("Collateral symbol cannot be empty")
        if self.price_feed is None:
            raise ConfigurationError(f"No price feed configured for {self.symbol}")
        if self.feed_adjustment <= 0:
            raise ConfigurationError(
                f"Feed adjustment for {self.symbol} must be positive, got {self.feed_adjustment}"
            )
        if 10 ** self.price_feed.decimals * self.feed_adjustment != PRECISION:
            raise ConfigurationError(
                f"Feed for {self.symbol} has {self.price_feed.decimals} decimals; "
                f"adjustment {self.feed_adjustment} does not reach 18-decimal precision"
            )


@dataclass(frozen=True, slots=True)
class AccountInformation:
    """
    Read-only snapshot of one account's solvency inputs.

    Attributes:
        total_debt_minted: Debt currently owed by the account.
        collateral_value_in_usd: USD value of all deposited collateral.
        health_factor: Derived ratio, MAX_HEALTH_FACTOR when debt is zero.
    """
    total_debt_minted: int
    collateral_value_in_usd: int
    health_factor: int

    @property
    def is_liquidatable(self) -> bool:
        return self.health_factor < MIN_HEALTH_FACTOR

    def as_tuple(self) -> Tuple[int, int]:
        """Return (total_debt_minted, collateral_value_in_usd)."""
        return self.total_debt_minted, self.collateral_value_in_usd


# ============================================================================
# AMOUNT HELPERS
# ============================================================================

def require_positive_amount(amount: Any, what: str = "amount") -> int:
    """
    Validate a caller-supplied amount.

    Raises:
        InvalidAmount: If amount is not an int (bools rejected) or is not > 0.
    """
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise InvalidAmount(f"{what} must be an int, got {type(amount).__name__}")
    if amount <= 0:
        raise InvalidAmount(f"{what} must be more than zero, got {amount}")
    return amount


def to_units(value: Any, decimals: int = 18) -> int:
    """
    Convert a human amount (e.g. "10.5") to base units.

    Goes through Decimal so "0.1" is exact. Fractions finer than the
    precision are truncated.
    """
    with localcontext() as ctx:
        ctx.prec = 100
        scaled = Decimal(str(value)) * (Decimal(10) ** decimals)
        return int(scaled)


def format_units(amount: int, decimals: int = 18) -> str:
    """Render base units as a human-readable decimal string."""
    if amount == MAX_HEALTH_FACTOR:
        return "inf"
    with localcontext() as ctx:
        ctx.prec = 100
        normalized = (Decimal(amount) / (Decimal(10) ** decimals)).normalize()
    if normalized == normalized.to_integral_value():
        return str(int(normalized))
    return format(normalized, 'f')
