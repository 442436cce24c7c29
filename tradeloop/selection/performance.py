"""Per-pair performance tracking — smoothed success rate and volatility.

Shared by every account's ticks. Each symbol has its own lock so updates
to one pair never wait on another.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, replace
from typing import Iterable, Optional

SUCCESS_OLD_WEIGHT = 0.7
SUCCESS_NEW_WEIGHT = 0.3
VOLATILITY_OLD_WEIGHT = 0.8
VOLATILITY_NEW_WEIGHT = 0.2


@dataclass(frozen=True)
class PairPerformance:
    """Snapshot of one pair's tracked metrics."""

    symbol: str
    volatility: float = 0.0
    success_rate: float = 0.0
    last_updated: float = 0.0  # epoch seconds


class PerformanceTracker:
    """Exponentially smoothed success rate and volatility per symbol.

    Args:
        symbols: Pairs to seed with zeroed metrics. Other symbols are
                 created on their first update.
    """

    def __init__(self, symbols: Iterable[str] = ()) -> None:
        self._registry_lock = threading.Lock()
        self._locks: dict[str, threading.Lock] = {}
        self._records: dict[str, PairPerformance] = {}
        now = time.time()
        for symbol in symbols:
            self._locks[symbol] = threading.Lock()
            self._records[symbol] = PairPerformance(symbol=symbol, last_updated=now)

    def _lock_for(self, symbol: str) -> threading.Lock:
        lock = self._locks.get(symbol)
        if lock is None:
            with self._registry_lock:
                lock = self._locks.setdefault(symbol, threading.Lock())
                self._records.setdefault(symbol, PairPerformance(symbol=symbol))
        return lock

    # ── Mutation ─────────────────────────────────────────────────────────

    def update(
        self,
        symbol: str,
        succeeded: Optional[bool],
        volatility: float,
    ) -> PairPerformance:
        """Fold one cycle outcome into the pair's metrics.

        ``success_rate := 0.7 × old + 0.3 × (1 if succeeded else 0)``
        ``volatility   := 0.8 × old + 0.2 × volatility``

        ``succeeded=None`` leaves the success rate untouched and only
        smooths volatility. Returns the updated snapshot.
        """
        with self._lock_for(symbol):
            current = self._records[symbol]
            success_rate = current.success_rate
            if succeeded is not None:
                success_rate = (
                    success_rate * SUCCESS_OLD_WEIGHT
                    + (1.0 if succeeded else 0.0) * SUCCESS_NEW_WEIGHT
                )
            updated = replace(
                current,
                success_rate=min(1.0, max(0.0, success_rate)),
                volatility=max(
                    0.0,
                    current.volatility * VOLATILITY_OLD_WEIGHT
                    + volatility * VOLATILITY_NEW_WEIGHT,
                ),
                last_updated=time.time(),
            )
            self._records[symbol] = updated
            return updated

    # ── Queries ──────────────────────────────────────────────────────────

    def get(self, symbol: str) -> PairPerformance:
        """Return the pair's metrics (zeroed if never seen)."""
        return self._records.get(symbol) or PairPerformance(symbol=symbol)

    def snapshot(self) -> dict[str, PairPerformance]:
        """Return a point-in-time copy of every tracked pair."""
        with self._registry_lock:
            return dict(self._records)
