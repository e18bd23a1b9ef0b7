"""
token_ledger.py - Wallet Balances for Fungible Tokens

The TokenLedger holds the balance of every fungible token unit (collateral
tokens and the stablecoin) in every wallet. It is the shared state the
token collaborators operate on; the AccountingEngine never touches it
directly, only through the tokens.

Key responsibilities:
    - Applies batches of moves atomically (all moves succeed or all fail)
    - Keeps balances non-negative for every wallet except SYSTEM_WALLET
    - Treats moves from/to SYSTEM_WALLET as issuance/redemption, so a unit's
      total supply is the negated system balance
    - Records every applied batch in a sequenced transaction log
    - Opens per-thread savepoints, so a caller can undo the batches it
      applied without touching batches other threads applied meanwhile
"""

from __future__ import annotations
from collections import defaultdict
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, Iterator, List, Set, Tuple, Any
import logging
import threading

from .core import (
    Move, Positions,
    SYSTEM_WALLET,
    InsufficientFunds, UnitNotRegistered,
)

logger = logging.getLogger(__name__)


class ExecuteResult(Enum):
    """
    Outcome of a batch execution attempt.

    APPLIED: Every move was validated and applied.
    REJECTED: Validation failed; nothing was applied.
    """
    APPLIED = "applied"
    REJECTED = "rejected"


@dataclass(frozen=True, slots=True)
class TokenTransaction:
    """
    An executed, immutable batch of moves.

    Attributes:
        moves: Moves applied together
        exec_id: Unique execution identifier (ledger + sequence)
        ledger_name: Name of the ledger that executed this
        sequence_number: Monotonic sequence within the ledger
    """
    moves: Tuple[Move, ...]
    exec_id: str
    ledger_name: str
    sequence_number: int

    def __post_init__(self):
        if not self.moves:
            raise ValueError("TokenTransaction must have moves")

    def __repr__(self) -> str:
        body = ", ".join(repr(m) for m in self.moves)
        return f"TokenTransaction({self.exec_id}: {body})"


class SavepointStack:
    """
    Per-thread stack of open savepoints.

    Entries recorded on a thread go to that thread's innermost savepoint.
    Committing a savepoint hands its entries to the enclosing one, so an
    outer rollback also undoes what nested blocks committed. Savepoints
    must be closed innermost first.
    """

    def __init__(self):
        self._local = threading.local()

    def _stack(self) -> List[List[Any]]:
        stack = getattr(self._local, 'stack', None)
        if stack is None:
            stack = self._local.stack = []
        return stack

    def begin(self) -> List[Any]:
        savepoint: List[Any] = []
        self._stack().append(savepoint)
        return savepoint

    def record(self, entry: Any) -> None:
        stack = self._stack()
        if stack:
            stack[-1].append(entry)

    def commit(self, savepoint: List[Any]) -> None:
        stack = self._close(savepoint)
        if stack:
            stack[-1].extend(savepoint)

    def release(self, savepoint: List[Any]) -> List[Any]:
        """Close savepoint and return its entries, oldest first, for the caller to undo."""
        self._close(savepoint)
        return savepoint

    def _close(self, savepoint: List[Any]) -> List[List[Any]]:
        stack = self._stack()
        if not stack or stack[-1] is not savepoint:
            raise RuntimeError("Savepoints must be closed innermost first")
        stack.pop()
        return stack

    @property
    def depth(self) -> int:
        """Savepoints open on the calling thread."""
        return len(self._stack())


class TokenLedger:
    """
    Multi-unit wallet ledger with atomic batch execution.

    Wallets are implicit: any identifier has a zero balance until credited.
    Units must be registered before they can move.

    Thread Safety:
        Batches are validated and applied under one internal lock, so
        concurrent callers never interleave inside a batch. Savepoints are
        per thread: rolling one back undoes only batches applied on the
        thread that opened it.

    Example:
        ledger = TokenLedger("chain")
        ledger.register_unit("WETH")
        ledger.execute([Move(10 * 10**18, "WETH", SYSTEM_WALLET, "alice", "mint")])
        ledger.get_balance("alice", "WETH")    # 10 * 10**18
    """

    def __init__(self, name: str, verbose: bool = False):
        """
        Create a token ledger.

        Args:
            name: Ledger identifier
            verbose: Log every applied batch at DEBUG level (default: False)
        """
        self.name = name
        self.verbose = verbose
        self.units: Set[str] = set()
        self.balances: Dict[str, Dict[str, int]] = defaultdict(lambda: defaultdict(int))
        self.transaction_log: List[TokenTransaction] = []
        self._next_sequence: int = 0
        # Inverted index unit -> {wallet -> quantity} of non-zero positions
        self._positions_by_unit: Dict[str, Dict[str, int]] = defaultdict(dict)
        self._lock = threading.RLock()
        self._savepoints = SavepointStack()

    # ========================================================================
    # READ-ONLY QUERIES
    # ========================================================================

    def get_balance(self, wallet_id: str, unit_symbol: str) -> int:
        """
        Balance of a unit in a wallet (0 for wallets never credited).

        Raises:
            UnitNotRegistered: If unit is not registered
        """
        self._require_unit(unit_symbol)
        if wallet_id not in self.balances:
            return 0
        return self.balances[wallet_id].get(unit_symbol, 0)

    def get_positions(self, unit_symbol: str) -> Positions:
        """All non-zero positions of a unit, system wallet included."""
        with self._lock:
            return dict(self._positions_by_unit.get(unit_symbol, {}))

    def list_units(self) -> List[str]:
        return sorted(self.units)

    def total_supply(self, unit_symbol: str) -> int:
        """
        Outstanding supply of a unit: everything issued and not yet redeemed.
        """
        return -self.get_balance(SYSTEM_WALLET, unit_symbol)

    def verify_conservation(self) -> Dict[str, Any]:
        """
        Verify that every unit sums to zero across all wallets.

        Issuance debits SYSTEM_WALLET and redemption credits it, so the sum
        over all wallets including the system wallet is always zero.

        Returns:
            Dict with keys:
            - 'valid': bool - True if every unit conserves
            - 'supplies': Dict[str, int] - Outstanding supply per unit
            - 'discrepancies': List[Dict] - unit and non-zero sum for violations
        """
        supplies = {}
        discrepancies = []
        with self._lock:
            for unit_symbol in sorted(self.units):
                supplies[unit_symbol] = self.total_supply(unit_symbol)
                net = sum(
                    balances.get(unit_symbol, 0)
                    for _, balances in sorted(self.balances.items())
                )
                if net != 0:
                    discrepancies.append({'unit': unit_symbol, 'net': net})
        return {
            'valid': len(discrepancies) == 0,
            'supplies': supplies,
            'discrepancies': discrepancies,
        }

    # ========================================================================
    # REGISTRATION
    # ========================================================================

    def register_unit(self, unit_symbol: str) -> None:
        """
        Raises:
            ValueError: If the symbol is empty or already registered
        """
        if not unit_symbol or not unit_symbol.strip():
            raise ValueError("Unit symbol cannot be empty")
        if unit_symbol in self.units:
            raise ValueError(f"Unit {unit_symbol} already registered")
        self.units.add(unit_symbol)
        logger.debug("%s: registered unit %s", self.name, unit_symbol)

    def _require_unit(self, unit_symbol: str) -> None:
        if unit_symbol not in self.units:
            raise UnitNotRegistered(f"Unit {unit_symbol} not registered")

    # ========================================================================
    # EXECUTION
    # ========================================================================

    def execute(self, moves: Iterable[Move]) -> ExecuteResult:
        """
        Apply a batch of moves atomically.

        Returns:
            ExecuteResult.APPLIED if every move was applied
            ExecuteResult.REJECTED if any move would overdraw a wallet; no
            move is applied in that case

        Raises:
            UnitNotRegistered: If a move names an unknown unit
        """
        moves = tuple(moves)
        if not moves:
            return ExecuteResult.APPLIED

        _, reason = self._apply(moves)
        if reason:
            logger.debug("%s: REJECTED %s", self.name, reason)
            return ExecuteResult.REJECTED
        return ExecuteResult.APPLIED

    def execute_or_raise(self, moves: Iterable[Move]) -> TokenTransaction:
        """
        Like execute(), but raise instead of returning REJECTED.

        Raises:
            ValueError: If moves is empty
            InsufficientFunds: If any move would overdraw a wallet
        """
        moves = tuple(moves)
        if not moves:
            raise ValueError("execute_or_raise needs at least one move")
        tx, reason = self._apply(moves)
        if reason:
            raise InsufficientFunds(reason)
        return tx

    def _apply(self, moves: Tuple[Move, ...]) -> Tuple[Any, str]:
        """Validate and apply one batch under the lock; (tx, "") or (None, reason)."""
        with self._lock:
            valid, reason = self._validate_moves(moves)
            if not valid:
                return None, reason

            sequence = self._next_sequence
            self._next_sequence += 1
            tx = TokenTransaction(
                moves=moves,
                exec_id=f"exec:{self.name}:{sequence:012d}",
                ledger_name=self.name,
                sequence_number=sequence,
            )
            self._execute_moves(tx.moves)
            self.transaction_log.append(tx)
            self._savepoints.record(tx)
        if self.verbose:
            logger.debug("%s: APPLIED %r", self.name, tx)
        return tx, ""

    def _validate_moves(self, moves: Tuple[Move, ...]) -> Tuple[bool, str]:
        """
        Check a batch against balance constraints using net deltas.

        SYSTEM_WALLET is exempt: its balance may go negative.
        """
        for move in moves:
            self._require_unit(move.unit_symbol)

        net: Dict[Tuple[str, str], int] = defaultdict(int)
        for move in moves:
            net[(move.source, move.unit_symbol)] -= move.quantity
            net[(move.dest, move.unit_symbol)] += move.quantity

        for (wallet, unit_sym), delta in net.items():
            if wallet == SYSTEM_WALLET:
                continue
            current = self.balances[wallet].get(unit_sym, 0) if wallet in self.balances else 0
            proposed = current + delta
            if proposed < 0:
                return False, f"{wallet} {unit_sym}: {proposed} < 0"
        return True, ""

    def _update_position_index(self, wallet_id: str, unit_symbol: str, quantity: int) -> None:
        if quantity:
            self._positions_by_unit[unit_symbol][wallet_id] = quantity
        else:
            self._positions_by_unit[unit_symbol].pop(wallet_id, None)

    def _execute_moves(self, moves: Tuple[Move, ...]) -> None:
        for move in moves:
            new_src_balance = self.balances[move.source][move.unit_symbol] - move.quantity
            self.balances[move.source][move.unit_symbol] = new_src_balance
            self._update_position_index(move.source, move.unit_symbol, new_src_balance)
            new_dst_balance = self.balances[move.dest][move.unit_symbol] + move.quantity
            self.balances[move.dest][move.unit_symbol] = new_dst_balance
            self._update_position_index(move.dest, move.unit_symbol, new_dst_balance)

    # ========================================================================
    # SAVEPOINTS
    # ========================================================================

    def begin(self) -> List[TokenTransaction]:
        """Open a savepoint collecting the batches this thread applies."""
        return self._savepoints.begin()

    def commit(self, savepoint: List[TokenTransaction]) -> None:
        self._savepoints.commit(savepoint)

    def rollback(self, savepoint: List[TokenTransaction]) -> None:
        """
        Undo every batch this thread applied since the savepoint opened.

        The batches are reversed as one combined batch and dropped from the
        transaction log. Batches applied by other threads are untouched.

        Raises:
            InsufficientFunds: If a wallet has since spent what the reversal
                must take back; nothing is undone in that case
        """
        applied = self._savepoints.release(savepoint)
        if not applied:
            return
        reversal = tuple(
            Move(move.quantity, move.unit_symbol, move.dest, move.source, "rollback")
            for tx in reversed(applied)
            for move in reversed(tx.moves)
        )
        undone = {tx.sequence_number for tx in applied}
        with self._lock:
            valid, reason = self._validate_moves(reversal)
            if not valid:
                raise InsufficientFunds(
                    f"{self.name}: cannot roll back {len(applied)} batches: {reason}"
                )
            self._execute_moves(reversal)
            self.transaction_log[:] = [
                tx for tx in self.transaction_log if tx.sequence_number not in undone
            ]
        logger.debug("%s: rolled back %d batches", self.name, len(applied))

    @contextmanager
    def transaction(self) -> Iterator[None]:
        """Apply the block's batches all-or-nothing; see rollback()."""
        savepoint = self.begin()
        try:
            yield
        except BaseException:
            self.rollback(savepoint)
            raise
        self.commit(savepoint)

    def __repr__(self) -> str:
        return f"TokenLedger({self.name}, units={self.list_units()}, txs={len(self.transaction_log)})"
