"""Pair selection — ranks the configured pair universe for ENSEMBLE mode."""

from __future__ import annotations

from typing import Sequence

from tradeloop.config import TradingPair
from tradeloop.selection.performance import PerformanceTracker

VOLATILITY_WEIGHT = 0.3
SUCCESS_RATE_WEIGHT = 0.5


class PairSelector:
    """Scores pairs by static weight plus tracked performance.

    ``score = weight + 0.3 × volatility + 0.5 × success_rate``

    Args:
        pairs: Configured pairs, in preference order.
        tracker: Shared ``PerformanceTracker``.
    """

    def __init__(self, pairs: Sequence[TradingPair], tracker: PerformanceTracker) -> None:
        self._pairs = list(pairs)
        self._tracker = tracker

    @property
    def pairs(self) -> list[TradingPair]:
        return list(self._pairs)

    def score(self, pair: TradingPair) -> float:
        perf = self._tracker.get(pair.symbol)
        return (
            pair.weight
            + perf.volatility * VOLATILITY_WEIGHT
            + perf.success_rate * SUCCESS_RATE_WEIGHT
        )

    def scores(self) -> list[tuple[str, float]]:
        """Return ``(symbol, score)`` for every pair, highest first.

        Equal scores keep configuration order (``sorted`` is stable).
        """
        scored = [(p.symbol, self.score(p)) for p in self._pairs]
        return sorted(scored, key=lambda item: item[1], reverse=True)

    def rank(self, count: int = 3) -> list[str]:
        """Return the top *count* symbols by descending score."""
        if count <= 0:
            return []
        return [symbol for symbol, _ in self.scores()[:count]]
