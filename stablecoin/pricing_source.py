"""
pricing_source.py - Price feeds for collateral valuation

Provides the oracle side of the engine: per-asset feeds answering the
latest USD price as an int scaled by 10 ** decimals.

Classes:
- StaticPriceFeed: a settable mock aggregator (price holds until updated)
- TimeSeriesPriceFeed: time-varying prices with a logical clock

Staleness and manipulation checks are deliberately absent; feeds answer
whatever they were last given.
"""

from __future__ import annotations
from bisect import bisect_right
from datetime import datetime
from typing import List, Optional, Tuple

from .core import ConfigurationError

# Decimals used by USD price feeds unless told otherwise.
DEFAULT_FEED_DECIMALS = 8


def _require_valid_answer(answer: int) -> int:
    if isinstance(answer, bool) or not isinstance(answer, int):
        raise ValueError(f"Price answer must be int, got {type(answer).__name__}")
    if answer <= 0:
        raise ValueError(f"Price answer must be positive, got {answer}")
    return answer


class StaticPriceFeed:
    """
    Price feed holding one answer until it is updated.

    Example:
        feed = StaticPriceFeed(8, 2000 * 10**8)   # $2000
        feed.update_answer(18 * 10**8)            # crash to $18
    """

    def __init__(self, decimals: int, initial_answer: int):
        if decimals < 0 or decimals > 18:
            raise ConfigurationError(f"Feed decimals must be within 0..18, got {decimals}")
        self.decimals = decimals
        self._answer = _require_valid_answer(initial_answer)
        self.round_id = 1

    def latest_price(self) -> int:
        """Return the current answer (timestamp-free)."""
        return self._answer

    def update_answer(self, answer: int) -> None:
        """Replace the answer and start a new round."""
        self._answer = _require_valid_answer(answer)
        self.round_id += 1

    def __repr__(self):
        return f"StaticPriceFeed(answer={self._answer}, decimals={self.decimals}, round={self.round_id})"


class TimeSeriesPriceFeed:
    """
    Price feed replaying a recorded price path.

    The feed keeps a logical clock; latest_price() returns the most recent
    observation at or before that clock. Time only moves forward.

    Example:
        feed = TimeSeriesPriceFeed(8, [(t0, 2000 * 10**8), (t1, 18 * 10**8)])
        feed.latest_price()     # 2000 * 10**8 (clock starts at the first observation)
        feed.advance_to(t1)
        feed.latest_price()     # 18 * 10**8
    """

    def __init__(
        self,
        decimals: int = DEFAULT_FEED_DECIMALS,
        path: Optional[List[Tuple[datetime, int]]] = None,
    ):
        if decimals < 0 or decimals > 18:
            raise ConfigurationError(f"Feed decimals must be within 0..18, got {decimals}")
        if not path:
            raise ConfigurationError("TimeSeriesPriceFeed needs at least one observation")
        self.decimals = decimals
        self.history: List[Tuple[datetime, int]] = sorted(
            ((ts, _require_valid_answer(price)) for ts, price in path),
            key=lambda x: x[0],
        )
        self._current_time = self.history[0][0]

    @property
    def current_time(self) -> datetime:
        return self._current_time

    def add_price(self, timestamp: datetime, price: int) -> None:
        """Insert an observation, keeping the history in chronological order."""
        self.history.append((timestamp, _require_valid_answer(price)))
        self.history.sort(key=lambda x: x[0])

    def advance_to(self, new_time: datetime) -> None:
        """
        Move the feed's clock forward.

        Raises:
            ValueError: If new_time is before the current time
        """
        if new_time < self._current_time:
            raise ValueError(
                f"Cannot move time backwards: {new_time} < {self._current_time}"
            )
        self._current_time = new_time

    def latest_price(self) -> int:
        """Return the last observation at or before the current time."""
        timestamps = [ts for ts, _ in self.history]
        idx = bisect_right(timestamps, self._current_time)
        # The clock never precedes the first observation
        return self.history[idx - 1][1]

    def __repr__(self):
        return f"TimeSeriesPriceFeed({len(self.history)} observations, decimals={self.decimals})"
