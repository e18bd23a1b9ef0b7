"""
System Invariant Conformance Tests

INVARIANTS: Across any sequence of operations and price moves,

    stablecoin supply  = Σ recorded debt
    custody(asset)     = Σ recorded collateral(asset)     ∀ asset
    Σ wallet balances  = 0 per token unit (system wallet included)
    value locked       ≥ stablecoin supply

and every failed operation leaves the system exactly as it found it.

The backing invariant depends on prices: here they stay within 60-100%
of their starting values, so a position opened at the minimum health
factor remains over-collateralized.
"""

from hypothesis import settings
from hypothesis import strategies as st
from hypothesis.stateful import RuleBasedStateMachine, invariant, rule

from stablecoin import (
    BreaksHealthFactor, EngineError,
    PRECISION, MIN_HEALTH_FACTOR,
    deploy,
)
from tests.helpers import approve_stablecoin, engine_state, open_position


USERS = ["alice", "bob", "carol"]
KEEPER = "keeper"
ASSETS = ["WETH", "WBTC"]

users = st.sampled_from(USERS)
assets = st.sampled_from(ASSETS)
fractions = st.integers(min_value=1, max_value=100)


class StablecoinMachine(RuleBasedStateMachine):
    """Random users depositing, minting, burning, redeeming and being liquidated."""

    def __init__(self):
        super().__init__()
        self.deployment = deploy()
        self.engine = self.deployment.engine
        self.dsc = self.deployment.stablecoin
        # A well-capitalised keeper supplies stablecoin for liquidations
        open_position(self.deployment, KEEPER, "WETH", 10000 * PRECISION, 10 ** 6 * PRECISION)
        approve_stablecoin(self.deployment, KEEPER, 2 ** 255)
        self.event_count = len(self.engine.events)

    def _state(self):
        return engine_state(self.deployment, USERS + [KEEPER])

    def _attempt(self, operation, *args):
        """Run operation; if it raises, nothing may have changed."""
        before = self._state()
        try:
            operation(*args)
        except EngineError:
            assert self._state() == before
            return False
        return True

    def _headroom(self, user):
        info = self.engine.get_account_information(user)
        return info.collateral_value_in_usd * 50 // 100 - info.total_debt_minted

    # ------------------------------------------------------------------
    # Rules
    # ------------------------------------------------------------------

    @rule(user=users, asset=assets, amount=st.integers(min_value=1, max_value=100 * PRECISION))
    def deposit(self, user, asset, amount):
        token = self.deployment.token(asset)
        token.mint(user, amount)
        token.approve(user, self.engine.address, amount)
        assert self._attempt(self.engine.deposit_collateral, user, asset, amount)

    @rule(user=users, fraction=fractions)
    def mint_within_headroom(self, user, fraction):
        headroom = self._headroom(user)
        amount = headroom * fraction // 100
        if amount <= 0:
            return
        self.engine.mint_debt(user, amount)
        assert self.engine.get_health_factor(user) >= MIN_HEALTH_FACTOR

    @rule(user=users, extra=st.integers(min_value=1, max_value=10 ** 6 * PRECISION))
    def mint_beyond_headroom(self, user, extra):
        amount = max(self._headroom(user), 0) + extra
        before = self._state()
        try:
            self.engine.mint_debt(user, amount)
        except BreaksHealthFactor:
            assert self._state() == before
        else:
            raise AssertionError(f"minting {amount} past the headroom succeeded")

    @rule(user=users, fraction=fractions)
    def burn(self, user, fraction):
        repayable = min(self.engine.get_debt_of_user(user), self.dsc.balance_of(user))
        amount = repayable * fraction // 100
        if amount <= 0:
            return
        approve_stablecoin(self.deployment, user, amount)
        self._attempt(self.engine.burn_debt, user, amount)

    @rule(user=users, asset=assets, fraction=fractions)
    def redeem(self, user, asset, fraction):
        deposited = self.engine.get_collateral_balance_of_user(user, asset)
        amount = max(deposited * fraction // 100, 1)
        self._attempt(self.engine.redeem_collateral, user, asset, amount)

    @rule(user=users, asset=assets, fraction=fractions)
    def liquidate(self, user, asset, fraction):
        debt = self.engine.get_debt_of_user(user)
        cover = max(debt * fraction // 100, 1)
        was_liquidatable = self.engine.get_account_information(user).is_liquidatable
        if self._attempt(self.engine.liquidate, KEEPER, user, asset, cover):
            assert was_liquidatable

    @rule(asset=assets, percent=st.integers(min_value=60, max_value=100))
    def move_price(self, asset, percent):
        initial = self.deployment.config.initial_prices[asset]
        self.deployment.feed(asset).update_answer(initial * percent // 100)

    # ------------------------------------------------------------------
    # Invariants
    # ------------------------------------------------------------------

    @invariant()
    def supply_equals_debt(self):
        assert self.dsc.total_supply() == self.engine.total_debt()

    @invariant()
    def custody_equals_recorded_collateral(self):
        for asset in ASSETS:
            custody = self.deployment.token(asset).balance_of(self.engine.address)
            assert custody == self.engine.total_collateral(asset)

    @invariant()
    def token_ledger_conserves(self):
        assert self.deployment.ledger.verify_conservation()['valid']

    @invariant()
    def stablecoin_is_backed(self):
        assert self.engine.total_value_locked() >= self.dsc.total_supply()

    @invariant()
    def engine_holds_no_stablecoin(self):
        assert self.dsc.balance_of(self.engine.address) == 0

    @invariant()
    def keeper_scan_matches_health_factors(self):
        flagged = {user for user, _ in self.engine.liquidatable_accounts()}
        for user in USERS + [KEEPER]:
            unhealthy = self.engine.get_health_factor(user) < MIN_HEALTH_FACTOR
            assert (user in flagged) == unhealthy

    @invariant()
    def events_only_grow(self):
        count = len(self.engine.events)
        assert count >= self.event_count
        self.event_count = count


TestStablecoinInvariants = StablecoinMachine.TestCase
TestStablecoinInvariants.settings = settings(
    max_examples=50, stateful_step_count=30, deadline=None
)
