"""MACD crossover strategy.

Buys when the MACD line crosses above its signal line between the two most
recent bars and sells on the inverse cross. A cross only counts when both
bars have a defined signal value, so each crossover fires exactly once as
the window advances.
"""

from __future__ import annotations

import math
from typing import Optional, Sequence

from tradeloop.exchange.models import Candle
from tradeloop.strategy.indicators import calculate_macd, closes_of
from tradeloop.strategy.models import Signal, Strategy, clamp_confidence

BASE_CONFIDENCE = 70.0
STRENGTH_MULTIPLIER = 10.0
HISTOGRAM_BONUS = 5.0
MAX_CONFIDENCE = 95.0


def macd_confidence(side: str, macd: float, signal: float, histogram: float) -> float:
    """Score a crossover: 70 + 10×|MACD − signal|, +5 when the histogram agrees."""
    confidence = BASE_CONFIDENCE + abs(macd - signal) * STRENGTH_MULTIPLIER
    if side == "buy" and histogram > 0:
        confidence += HISTOGRAM_BONUS
    elif side == "sell" and histogram < 0:
        confidence += HISTOGRAM_BONUS
    return clamp_confidence(min(confidence, MAX_CONFIDENCE))


class MACDCrossStrategy:
    """MACD(12, 26, 9) line / signal crossover."""

    name = Strategy.MACD

    def __init__(
        self,
        fast_period: int = 12,
        slow_period: int = 26,
        signal_period: int = 9,
    ) -> None:
        self.fast_period = fast_period
        self.slow_period = slow_period
        self.signal_period = signal_period

    def evaluate(self, candles: Sequence[Candle], symbol: str) -> Optional[Signal]:
        macd, signal, histogram = calculate_macd(
            closes_of(candles),
            self.fast_period,
            self.slow_period,
            self.signal_period,
        )
        prev_macd, cur_macd = macd[-2], macd[-1]
        prev_sig, cur_sig = signal[-2], signal[-1]
        if any(math.isnan(v) for v in (prev_macd, cur_macd, prev_sig, cur_sig)):
            return None

        if prev_macd < prev_sig and cur_macd > cur_sig:
            side = "buy"
        elif prev_macd > prev_sig and cur_macd < cur_sig:
            side = "sell"
        else:
            return None

        latest = candles[-1]
        return Signal(
            symbol=symbol,
            side=side,
            price=latest.close,
            time=latest.time,
            strategy=self.name,
            confidence=macd_confidence(side, cur_macd, cur_sig, histogram[-1]),
            indicators={
                "macd": cur_macd,
                "signal": cur_sig,
                "histogram": histogram[-1],
            },
        )
