"""
tokens.py - Fungible token collaborators

Token objects are thin views over one unit of a shared TokenLedger. They
speak the boolean-success interface the AccountingEngine expects:

    LedgerToken              transfer / approve / transfer_from, hooks
    CollateralToken          + unrestricted mint (a test faucet)
    DecentralizedStableCoin  + owner-only mint and burn

A failed transfer (insufficient balance, or a token switched into
fail_transfers mode) returns False rather than raising. Misuse that is not
a balance problem (non-owner mint, zero amounts, missing allowance) raises
a TokenError subclass.

Tokens are Transactional: transaction() undoes the transfers and allowance
changes the calling thread made inside the block if it raises, leaving
other threads' changes in place.
"""

from __future__ import annotations
from contextlib import contextmanager
from typing import Callable, Dict, Iterator, List, Tuple
import logging
import threading

from .core import (
    Move,
    SYSTEM_WALLET, ZERO_ADDRESS,
    NotOwner, MustBeMoreThanZero, BurnAmountExceedsBalance,
    NotZeroAddress, InsufficientAllowance,
)
from .token_ledger import ExecuteResult, SavepointStack, TokenLedger

logger = logging.getLogger(__name__)

# Called after every successful transfer with (token, source, dest, amount).
TransferHook = Callable[['LedgerToken', str, str, int], None]


class LedgerToken:
    """
    ERC-20 style token backed by a TokenLedger unit.

    Hooks run after a transfer has been applied, the way token callbacks do
    on receive. They are untrusted: the engine guards itself against hooks
    that try to re-enter it.
    """

    def __init__(self, ledger: TokenLedger, symbol: str, name: str, decimals: int = 18):
        self.ledger = ledger
        self.symbol = symbol
        self.name = name
        self.decimals = decimals
        self.hooks: List[TransferHook] = []
        self.fail_transfers = False
        self._allowances: Dict[Tuple[str, str], int] = {}
        self._lock = threading.RLock()
        # Entries are (owner, spender, previous, new)
        self._allowance_savepoints = SavepointStack()
        if symbol not in ledger.units:
            ledger.register_unit(symbol)

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    def balance_of(self, holder: str) -> int:
        return self.ledger.get_balance(holder, self.symbol)

    def total_supply(self) -> int:
        return self.ledger.total_supply(self.symbol)

    def allowance(self, owner: str, spender: str) -> int:
        return self._allowances.get((owner, spender), 0)

    # ------------------------------------------------------------------
    # Transfers
    # ------------------------------------------------------------------

    def approve(self, owner: str, spender: str, amount: int) -> bool:
        if amount < 0:
            raise ValueError(f"Allowance cannot be negative, got {amount}")
        with self._lock:
            self._set_allowance(owner, spender, amount)
        return True

    def transfer(self, sender: str, dest: str, amount: int) -> bool:
        """Move amount from sender to dest. Returns False if it could not be applied."""
        if not self._move(sender, dest, amount):
            return False
        self._run_hooks(sender, dest, amount)
        return True

    def transfer_from(self, spender: str, source: str, dest: str, amount: int) -> bool:
        """
        Move amount from source to dest on behalf of spender.

        A spender moving its own funds needs no allowance.

        Raises:
            InsufficientAllowance: If source has not approved enough for spender
        """
        with self._lock:
            if spender != source:
                allowed = self.allowance(source, spender)
                if allowed < amount:
                    raise InsufficientAllowance(
                        f"{spender} may move {allowed} {self.symbol} of {source}, not {amount}"
                    )
            if not self._move(source, dest, amount):
                return False
            if spender != source:
                self._set_allowance(source, spender, allowed - amount)
        self._run_hooks(source, dest, amount)
        return True

    def _set_allowance(self, owner: str, spender: str, amount: int) -> None:
        previous = self.allowance(owner, spender)
        self._allowances[(owner, spender)] = amount
        self._allowance_savepoints.record((owner, spender, previous, amount))

    def _move(self, source: str, dest: str, amount: int) -> bool:
        if amount < 0:
            raise ValueError(f"Transfer amount cannot be negative, got {amount}")
        if self.fail_transfers:
            logger.debug("%s: transfer %s -> %s refused", self.symbol, source, dest)
            return False
        if amount == 0 or source == dest:
            return True
        result = self.ledger.execute([Move(amount, self.symbol, source, dest, "transfer")])
        return result == ExecuteResult.APPLIED

    def _run_hooks(self, source: str, dest: str, amount: int) -> None:
        for hook in list(self.hooks):
            hook(self, source, dest, amount)

    # ------------------------------------------------------------------
    # Supply changes
    # ------------------------------------------------------------------

    def _issue(self, to: str, amount: int) -> None:
        self.ledger.execute_or_raise([Move(amount, self.symbol, SYSTEM_WALLET, to, "mint")])

    def _redeem(self, holder: str, amount: int) -> None:
        self.ledger.execute_or_raise([Move(amount, self.symbol, holder, SYSTEM_WALLET, "burn")])

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    @contextmanager
    def transaction(self) -> Iterator[None]:
        """
        Undo this thread's transfers and allowance changes if the block raises.

        An allowance another thread has changed since is left as that
        thread set it.
        """
        with self.ledger.transaction():
            savepoint = self._allowance_savepoints.begin()
            try:
                yield
            except BaseException:
                changes = self._allowance_savepoints.release(savepoint)
                with self._lock:
                    for owner, spender, previous, new in reversed(changes):
                        if self.allowance(owner, spender) == new:
                            self._allowances[(owner, spender)] = previous
                raise
            self._allowance_savepoints.commit(savepoint)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.symbol}, supply={self.total_supply()})"


class CollateralToken(LedgerToken):
    """Collateral token whose supply anyone can mint (local networks and tests)."""

    def mint(self, to: str, amount: int) -> None:
        if amount <= 0:
            raise MustBeMoreThanZero(f"Mint amount must be positive, got {amount}")
        self._issue(to, amount)


class DecentralizedStableCoin(LedgerToken):
    """
    The $1-pegged debt token.

    Minting and burning are restricted to the owner, which after deployment
    is the AccountingEngine. Burning destroys tokens the owner holds itself.
    """

    def __init__(self, ledger: TokenLedger, owner: str, symbol: str = "DSC",
                 name: str = "DecentralizedStableCoin"):
        super().__init__(ledger, symbol, name, decimals=18)
        self.owner = owner

    def _only_owner(self, caller: str) -> None:
        if caller != self.owner:
            raise NotOwner(f"{caller} is not the owner of {self.symbol}")

    def transfer_ownership(self, caller: str, new_owner: str) -> None:
        self._only_owner(caller)
        if new_owner == ZERO_ADDRESS:
            raise NotZeroAddress("New owner cannot be the zero address")
        logger.info("%s ownership transferred from %s to %s", self.symbol, self.owner, new_owner)
        self.owner = new_owner

    def mint(self, caller: str, to: str, amount: int) -> bool:
        """
        Raises:
            NotOwner: If caller is not the owner
            NotZeroAddress: If to is the zero address
            MustBeMoreThanZero: If amount is not positive
        """
        self._only_owner(caller)
        if to == ZERO_ADDRESS:
            raise NotZeroAddress("Cannot mint to the zero address")
        if amount <= 0:
            raise MustBeMoreThanZero(f"Mint amount must be positive, got {amount}")
        self._issue(to, amount)
        return True

    def burn(self, caller: str, amount: int) -> None:
        """
        Raises:
            NotOwner: If caller is not the owner
            MustBeMoreThanZero: If amount is not positive
            BurnAmountExceedsBalance: If the owner holds less than amount
        """
        self._only_owner(caller)
        if amount <= 0:
            raise MustBeMoreThanZero(f"Burn amount must be positive, got {amount}")
        balance = self.balance_of(caller)
        if balance < amount:
            raise BurnAmountExceedsBalance(f"{caller} holds {balance} {self.symbol}, cannot burn {amount}")
        self._redeem(caller, amount)
