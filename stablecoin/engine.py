"""
engine.py - Collateral/Debt Accounting and Liquidation Engine

The AccountingEngine is the only component that mutates positions. It owns
the CollateralLedger and DebtLedger, values them through the
SolvencyCalculator, and moves tokens through the collateral tokens and the
stablecoin.

Every mutating operation follows the same shape:
    1. validate inputs
    2. mutate the ledgers
    3. transfer tokens
    4. re-check solvency, raising if the result is unacceptable

Steps 2-4 run inside _atomic(): the engine snapshots its own ledgers and
event log, and opens a transaction on every Transactional token. If
anything raises, the ledgers and log are restored and each token undoes
the transfers this operation made, so a failed operation leaves no trace.
Token activity of other callers during the operation is kept. A single
RLock serialises operations across threads, and a flag rejects re-entry
from token callbacks on the same thread.
"""

from __future__ import annotations
from contextlib import ExitStack, contextmanager
from typing import Dict, Iterator, List, Optional, Sequence, Tuple, Any
import logging
import threading

from .core import (
    AccountInformation, CollateralConfig, DebtToken, FungibleAsset, PriceFeed,
    Snapshottable, Transactional,
    ENGINE_WALLET,
    PRECISION, ADDITIONAL_FEED_PRECISION,
    LIQUIDATION_THRESHOLD, LIQUIDATION_PRECISION, LIQUIDATION_BONUS,
    MIN_HEALTH_FACTOR,
    BreaksHealthFactor, ConfigurationError, HealthFactorNotImproved, HealthFactorOk,
    InvalidAmount, MintFailed, ReentrancyError, TransferFailed,
    TokenAddressesAndPriceFeedAddressesMustBeSameLength,
    format_units, require_positive_amount,
)
from .events import (
    CollateralDeposited, CollateralRedeemed, DebtBurned, DebtMinted, Liquidated,
)
from .positions import CollateralLedger, DebtLedger
from .solvency import SolvencyCalculator, calculate_health_factor

logger = logging.getLogger(__name__)


class AccountingEngine:
    """
    Overcollateralized stablecoin engine.

    Users deposit collateral tokens, mint stablecoin against them, burn it
    back and redeem collateral. Accounts whose health factor falls below
    MIN_HEALTH_FACTOR can be liquidated by anyone holding stablecoin, who
    receives the covered debt's worth of collateral plus LIQUIDATION_BONUS.

    The set of collateral assets is fixed at construction.

    Example:
        engine = AccountingEngine([weth], [eth_usd_feed], dsc)
        weth.approve("alice", engine.address, 10 * 10**18)
        engine.deposit_collateral_and_mint_debt("alice", "WETH", 10 * 10**18, 100 * 10**18)
        engine.get_health_factor("alice")
    """

    def __init__(
        self,
        collateral_tokens: Sequence[FungibleAsset],
        price_feeds: Sequence[PriceFeed],
        debt_token: DebtToken,
        address: str = ENGINE_WALLET,
        feed_adjustments: Optional[Sequence[int]] = None,
    ):
        """
        Create an engine.

        Args:
            collateral_tokens: Accepted collateral tokens; each token's symbol
                identifies the asset
            price_feeds: USD price feed for each token, in the same order
            debt_token: The stablecoin; the engine must own it to mint and burn
            address: Wallet the engine holds custody in
            feed_adjustments: Per-asset multiplier lifting feed answers to
                PRECISION (default ADDITIONAL_FEED_PRECISION for every asset)

        Raises:
            TokenAddressesAndPriceFeedAddressesMustBeSameLength: If the token
                and feed lists differ in length
            ConfigurationError: For empty or duplicate assets, a missing feed
                or stablecoin, or a feed whose precision does not reconcile
        """
        collateral_tokens = list(collateral_tokens)
        price_feeds = list(price_feeds)
        if len(collateral_tokens) != len(price_feeds):
            raise TokenAddressesAndPriceFeedAddressesMustBeSameLength(
                f"{len(collateral_tokens)} collateral tokens but {len(price_feeds)} price feeds"
            )
        if not collateral_tokens:
            raise ConfigurationError("At least one collateral token is required")
        if feed_adjustments is None:
            feed_adjustments = [ADDITIONAL_FEED_PRECISION] * len(collateral_tokens)
        feed_adjustments = list(feed_adjustments)
        if len(feed_adjustments) != len(collateral_tokens):
            raise ConfigurationError(
                f"{len(collateral_tokens)} collateral tokens but {len(feed_adjustments)} feed adjustments"
            )
        if debt_token is None:
            raise ConfigurationError("A debt token is required")
        if not address or not address.strip():
            raise ConfigurationError("Engine address cannot be empty")

        configs: Dict[str, CollateralConfig] = {}
        tokens: Dict[str, FungibleAsset] = {}
        for token, feed, adjustment in zip(collateral_tokens, price_feeds, feed_adjustments):
            if token is None:
                raise ConfigurationError("Collateral token cannot be None")
            if token.symbol in configs:
                raise ConfigurationError(f"Collateral {token.symbol} listed twice")
            if token.symbol == debt_token.symbol:
                raise ConfigurationError(f"{token.symbol} cannot be both collateral and debt token")
            configs[token.symbol] = CollateralConfig(token.symbol, feed, adjustment)
            tokens[token.symbol] = token

        self.address = address
        self._tokens = tokens
        self._debt_token = debt_token
        self._collateral = CollateralLedger()
        self._debt = DebtLedger()
        self._calculator = SolvencyCalculator(configs, self._collateral)
        self._events: List[Any] = []
        self._lock = threading.RLock()
        self._entered = False

        self._ledgers: List[Snapshottable] = [self._collateral, self._debt]
        self._transactional: List[Transactional] = [
            collaborator for collaborator in (*tokens.values(), debt_token)
            if isinstance(collaborator, Transactional)
        ]

        logger.info(
            "AccountingEngine %s created with collateral %s and debt token %s",
            address, list(configs), debt_token.symbol,
        )

    # ========================================================================
    # ATOMICITY
    # ========================================================================

    @contextmanager
    def _atomic(self, operation: str) -> Iterator[None]:
        """
        Run one operation all-or-nothing.

        Raises:
            ReentrancyError: If another operation is already running on this
                thread (a token callback calling back into the engine)
        """
        with self._lock:
            if self._entered:
                raise ReentrancyError(f"{operation} called while another operation is in progress")
            self._entered = True
            try:
                with ExitStack() as token_transactions:
                    for collaborator in self._transactional:
                        token_transactions.enter_context(collaborator.transaction())
                    snapshots = [(ledger, ledger.snapshot()) for ledger in self._ledgers]
                    events_mark = len(self._events)
                    try:
                        yield
                    except BaseException as exc:
                        for ledger, snapshot in reversed(snapshots):
                            ledger.restore(snapshot)
                        del self._events[events_mark:]
                        logger.warning("%s aborted: %s: %s", operation, type(exc).__name__, exc)
                        raise
            finally:
                self._entered = False

    @contextmanager
    def _view(self) -> Iterator[None]:
        with self._lock:
            if self._entered:
                raise ReentrancyError("Engine state is not readable while an operation is in progress")
            yield

    # ========================================================================
    # STATE-CHANGING OPERATIONS
    # ========================================================================

    def deposit_collateral(self, user: str, asset: str, amount: int) -> None:
        """
        Lock collateral. The user must have approved the engine for amount.

        Raises:
            InvalidAmount: If amount is not positive
            UnsupportedAsset: If asset is not accepted collateral
            TransferFailed: If the token refuses the transfer
        """
        require_positive_amount(amount)
        with self._atomic("deposit_collateral"):
            self._deposit_collateral(user, asset, amount)
        logger.info("%s deposited %s %s", user, format_units(amount), asset)

    def mint_debt(self, user: str, amount: int) -> None:
        """
        Mint stablecoin against deposited collateral.

        Raises:
            InvalidAmount: If amount is not positive
            MintFailed: If the stablecoin reports failure
            BreaksHealthFactor: If the user ends below MIN_HEALTH_FACTOR
        """
        require_positive_amount(amount)
        with self._atomic("mint_debt"):
            self._mint_debt(user, amount)
            self._revert_if_health_factor_is_broken(user)
        logger.info("%s minted %s %s", user, format_units(amount), self._debt_token.symbol)

    def deposit_collateral_and_mint_debt(
        self, user: str, asset: str, collateral_amount: int, debt_amount: int
    ) -> None:
        """Deposit then mint, as one operation."""
        require_positive_amount(collateral_amount, "collateral_amount")
        require_positive_amount(debt_amount, "debt_amount")
        with self._atomic("deposit_collateral_and_mint_debt"):
            self._deposit_collateral(user, asset, collateral_amount)
            self._mint_debt(user, debt_amount)
            self._revert_if_health_factor_is_broken(user)
        logger.info(
            "%s deposited %s %s and minted %s",
            user, format_units(collateral_amount), asset, format_units(debt_amount),
        )

    def burn_debt(self, user: str, amount: int) -> None:
        """
        Repay debt with the user's own stablecoin. The user must have
        approved the engine for amount.

        Raises:
            InvalidAmount: If amount is not positive
            InsufficientBalance: If amount exceeds the user's debt
            TransferFailed: If the stablecoin cannot be pulled from the user
        """
        require_positive_amount(amount)
        with self._atomic("burn_debt"):
            self._burn_debt(amount, on_behalf_of=user, debt_from=user)
            # Burning only raises the health factor; checked in case that changes.
            self._revert_if_health_factor_is_broken(user)
        logger.info("%s burned %s %s", user, format_units(amount), self._debt_token.symbol)

    def redeem_collateral(self, user: str, asset: str, amount: int) -> None:
        """
        Withdraw collateral. Solvency is checked after the tokens have left.

        Raises:
            InvalidAmount: If amount is not positive
            UnsupportedAsset: If asset is not accepted collateral
            InsufficientBalance: If amount exceeds the user's deposit
            TransferFailed: If the token refuses the transfer
            BreaksHealthFactor: If the user ends below MIN_HEALTH_FACTOR
        """
        require_positive_amount(amount)
        with self._atomic("redeem_collateral"):
            self._redeem_collateral(asset, amount, redeemed_from=user, redeemed_to=user)
            self._revert_if_health_factor_is_broken(user)
        logger.info("%s redeemed %s %s", user, format_units(amount), asset)

    def redeem_collateral_for_debt(
        self, user: str, asset: str, collateral_amount: int, debt_amount: int
    ) -> None:
        """Burn debt then redeem collateral, as one operation."""
        require_positive_amount(collateral_amount, "collateral_amount")
        require_positive_amount(debt_amount, "debt_amount")
        with self._atomic("redeem_collateral_for_debt"):
            self._burn_debt(debt_amount, on_behalf_of=user, debt_from=user)
            self._redeem_collateral(asset, collateral_amount, redeemed_from=user, redeemed_to=user)
            self._revert_if_health_factor_is_broken(user)
        logger.info(
            "%s burned %s and redeemed %s %s",
            user, format_units(debt_amount), format_units(collateral_amount), asset,
        )

    def liquidate(self, liquidator: str, user: str, asset: str, debt_to_cover: int) -> Liquidated:
        """
        Repay part of an unhealthy account's debt in exchange for its collateral.

        The liquidator pays debt_to_cover in stablecoin (approved to the
        engine) and receives debt_to_cover worth of asset plus the bonus.

        Returns:
            The Liquidated event recorded for the operation.

        Raises:
            InvalidAmount: If debt_to_cover is not positive or too small to
                seize any collateral
            UnsupportedAsset: If asset is not accepted collateral
            HealthFactorOk: If the user is not below MIN_HEALTH_FACTOR
            InsufficientBalance: If the user has too little of asset deposited
                or less debt than debt_to_cover
            HealthFactorNotImproved: If the user's health factor does not rise
            BreaksHealthFactor: If the liquidator ends below MIN_HEALTH_FACTOR
            InvalidPrice: If the asset's feed answers a non-positive price
        """
        require_positive_amount(debt_to_cover, "debt_to_cover")
        with self._atomic("liquidate"):
            self._calculator.config_for(asset)
            starting_health_factor = self._health_factor(user)
            if starting_health_factor >= MIN_HEALTH_FACTOR:
                raise HealthFactorOk(
                    f"{user} has health factor {format_units(starting_health_factor)}; nothing to liquidate"
                )

            seized = self._calculator.token_amount_from_usd(asset, debt_to_cover)
            bonus = (seized * LIQUIDATION_BONUS) // LIQUIDATION_PRECISION
            total_seized = seized + bonus
            if total_seized == 0:
                raise InvalidAmount(f"Covering {debt_to_cover} of debt seizes no {asset}")

            self._redeem_collateral(asset, total_seized, redeemed_from=user, redeemed_to=liquidator)
            self._burn_debt(debt_to_cover, on_behalf_of=user, debt_from=liquidator)

            ending_health_factor = self._health_factor(user)
            if ending_health_factor <= starting_health_factor:
                raise HealthFactorNotImproved(
                    f"{user} health factor went from {format_units(starting_health_factor)} "
                    f"to {format_units(ending_health_factor)}"
                )
            self._revert_if_health_factor_is_broken(liquidator)

            event = Liquidated(
                liquidator=liquidator,
                user=user,
                asset=asset,
                debt_covered=debt_to_cover,
                collateral_seized=total_seized,
                bonus=bonus,
                starting_health_factor=starting_health_factor,
                ending_health_factor=ending_health_factor,
            )
            self._events.append(event)
        logger.info(
            "%s liquidated %s: covered %s, seized %s %s (bonus %s)",
            liquidator, user, format_units(debt_to_cover),
            format_units(total_seized), asset, format_units(bonus),
        )
        return event

    # ========================================================================
    # INTERNAL STEPS (called only inside _atomic)
    # ========================================================================

    def _deposit_collateral(self, user: str, asset: str, amount: int) -> None:
        self._calculator.config_for(asset)
        self._collateral.increase(user, asset, amount)
        self._events.append(CollateralDeposited(user, asset, amount))
        if not self._tokens[asset].transfer_from(self.address, user, self.address, amount):
            raise TransferFailed(f"Could not pull {amount} {asset} from {user}")

    def _redeem_collateral(self, asset: str, amount: int, redeemed_from: str, redeemed_to: str) -> None:
        self._calculator.config_for(asset)
        self._collateral.decrease(redeemed_from, asset, amount)
        self._events.append(CollateralRedeemed(redeemed_from, redeemed_to, asset, amount))
        if not self._tokens[asset].transfer(self.address, redeemed_to, amount):
            raise TransferFailed(f"Could not send {amount} {asset} to {redeemed_to}")

    def _mint_debt(self, user: str, amount: int) -> None:
        self._debt.increase(user, amount)
        self._events.append(DebtMinted(user, amount))
        if not self._debt_token.mint(self.address, user, amount):
            raise MintFailed(f"Could not mint {amount} {self._debt_token.symbol} to {user}")

    def _burn_debt(self, amount: int, on_behalf_of: str, debt_from: str) -> None:
        self._debt.decrease(on_behalf_of, amount)
        self._events.append(DebtBurned(on_behalf_of, debt_from, amount))
        if not self._debt_token.transfer_from(self.address, debt_from, self.address, amount):
            raise TransferFailed(
                f"Could not pull {amount} {self._debt_token.symbol} from {debt_from}"
            )
        self._debt_token.burn(self.address, amount)

    def _health_factor(self, user: str) -> int:
        return calculate_health_factor(
            self._debt.get(user), self._calculator.total_collateral_value(user)
        )

    def _revert_if_health_factor_is_broken(self, user: str) -> None:
        health_factor = self._health_factor(user)
        if health_factor < MIN_HEALTH_FACTOR:
            raise BreaksHealthFactor(health_factor, user)

    # ========================================================================
    # READ-ONLY QUERIES
    # ========================================================================

    def get_account_information(self, user: str) -> AccountInformation:
        with self._view():
            total_debt = self._debt.get(user)
            collateral_value = self._calculator.total_collateral_value(user)
            return AccountInformation(
                total_debt_minted=total_debt,
                collateral_value_in_usd=collateral_value,
                health_factor=calculate_health_factor(total_debt, collateral_value),
            )

    def get_account_collateral_value(self, user: str) -> int:
        with self._view():
            return self._calculator.total_collateral_value(user)

    def get_health_factor(self, user: str) -> int:
        with self._view():
            return self._health_factor(user)

    def calculate_health_factor(self, total_debt: int, collateral_value_in_usd: int) -> int:
        """Health factor for a hypothetical (debt, collateral value) pair."""
        return calculate_health_factor(total_debt, collateral_value_in_usd)

    def get_usd_value(self, asset: str, amount: int) -> int:
        return self._calculator.usd_value(asset, amount)

    def get_token_amount_from_usd(self, asset: str, usd_amount: int) -> int:
        return self._calculator.token_amount_from_usd(asset, usd_amount)

    def get_latest_price(self, asset: str) -> Tuple[int, int]:
        """(price, decimals) from the asset's feed."""
        return self._calculator.latest_price(asset)

    def get_collateral_balance_of_user(self, user: str, asset: str) -> int:
        with self._view():
            self._calculator.config_for(asset)
            return self._collateral.get(user, asset)

    def get_debt_of_user(self, user: str) -> int:
        with self._view():
            return self._debt.get(user)

    def get_collateral_tokens(self) -> Tuple[str, ...]:
        return self._calculator.assets

    def get_collateral_token(self, asset: str) -> FungibleAsset:
        self._calculator.config_for(asset)
        return self._tokens[asset]

    def get_collateral_token_price_feed(self, asset: str) -> PriceFeed:
        return self._calculator.price_feed(asset)

    def get_debt_token(self) -> DebtToken:
        return self._debt_token

    def total_debt(self) -> int:
        with self._view():
            return self._debt.total()

    def total_collateral(self, asset: str) -> int:
        with self._view():
            self._calculator.config_for(asset)
            return self._collateral.total(asset)

    def total_value_locked(self) -> int:
        """USD value of all collateral in custody."""
        with self._view():
            return self._calculator.total_value_locked()

    def liquidatable_accounts(self) -> List[Tuple[str, int]]:
        """(user, health_factor) for every account below MIN_HEALTH_FACTOR, worst first."""
        with self._view():
            unhealthy = []
            for user in self._debt.users():
                health_factor = self._health_factor(user)
                if health_factor < MIN_HEALTH_FACTOR:
                    unhealthy.append((user, health_factor))
            return sorted(unhealthy, key=lambda item: item[1])

    @property
    def events(self) -> Tuple[Any, ...]:
        """Events of every committed operation, oldest first."""
        return tuple(self._events)

    # ========================================================================
    # PROTOCOL CONSTANTS
    # ========================================================================

    @property
    def precision(self) -> int:
        return PRECISION

    @property
    def additional_feed_precision(self) -> int:
        return ADDITIONAL_FEED_PRECISION

    @property
    def liquidation_threshold(self) -> int:
        return LIQUIDATION_THRESHOLD

    @property
    def liquidation_bonus(self) -> int:
        return LIQUIDATION_BONUS

    @property
    def liquidation_precision(self) -> int:
        return LIQUIDATION_PRECISION

    @property
    def min_health_factor(self) -> int:
        return MIN_HEALTH_FACTOR

    def __repr__(self) -> str:
        return (
            f"AccountingEngine({self.address}, collateral={list(self._calculator.assets)}, "
            f"debt={self._debt.total()})"
        )
