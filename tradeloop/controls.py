"""Runtime trading controls shared by every account loop.

Holds the confidence threshold, the open-trade cap and the no-signal
performance policy. Readers see the latest value on their next tick;
writes go through lock-guarded setters.
"""

import threading
from typing import Optional

from tradeloop.config import NO_SIGNAL_OUTCOMES, Config


class TradingControls:
    """Mutable, thread-safe process-wide trading knobs.

    Args:
        confidence_threshold: Minimum signal confidence (0–100) to trade.
        max_concurrent_trades: Open-trade cap per account.
        no_signal_outcome: What a tick without a tradable signal credits to
            the pair's success rate: ``"success"``, ``"failure"`` or
            ``"ignore"`` (volatility only).
    """

    def __init__(
        self,
        confidence_threshold: float = 70.0,
        max_concurrent_trades: int = 3,
        no_signal_outcome: str = "success",
    ) -> None:
        self._lock = threading.Lock()
        self._confidence_threshold = 0.0
        self._max_concurrent_trades = 0
        self._no_signal_outcome = "success"
        self.set_confidence_threshold(confidence_threshold)
        self.set_max_concurrent_trades(max_concurrent_trades)
        self.set_no_signal_outcome(no_signal_outcome)

    @classmethod
    def from_config(cls, config: Config) -> "TradingControls":
        return cls(
            confidence_threshold=config.confidence_threshold,
            max_concurrent_trades=config.max_concurrent_trades,
            no_signal_outcome=config.no_signal_outcome,
        )

    # ── Confidence threshold ─────────────────────────────────────────────

    @property
    def confidence_threshold(self) -> float:
        return self._confidence_threshold

    def set_confidence_threshold(self, value: float) -> None:
        """Set the threshold. Raises ``ValueError`` outside 0–100."""
        value = float(value)
        if not 0.0 <= value <= 100.0:
            raise ValueError(f"confidence threshold must be within 0-100, got {value}")
        with self._lock:
            self._confidence_threshold = value

    # ── Concurrency cap ──────────────────────────────────────────────────

    @property
    def max_concurrent_trades(self) -> int:
        return self._max_concurrent_trades

    def set_max_concurrent_trades(self, value: int) -> None:
        value = int(value)
        if value < 1:
            raise ValueError(f"max_concurrent_trades must be at least 1, got {value}")
        with self._lock:
            self._max_concurrent_trades = value

    # ── No-signal policy ─────────────────────────────────────────────────

    @property
    def no_signal_outcome(self) -> str:
        return self._no_signal_outcome

    def set_no_signal_outcome(self, value: str) -> None:
        value = value.lower()
        if value not in NO_SIGNAL_OUTCOMES:
            raise ValueError(
                f"no_signal_outcome must be one of {', '.join(NO_SIGNAL_OUTCOMES)}"
            )
        with self._lock:
            self._no_signal_outcome = value

    def no_signal_success(self) -> Optional[bool]:
        """Map the policy onto ``PerformanceTracker.update``'s argument."""
        return {"success": True, "failure": False, "ignore": None}[self._no_signal_outcome]
