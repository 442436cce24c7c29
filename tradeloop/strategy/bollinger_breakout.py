"""Bollinger Band breakout strategy."""

from __future__ import annotations

import math
from typing import Optional, Sequence

from tradeloop.exchange.models import Candle
from tradeloop.strategy.indicators import calculate_bollinger, closes_of
from tradeloop.strategy.models import Signal, Strategy, clamp_confidence

BASE_CONFIDENCE = 70.0
MAX_CONFIDENCE = 95.0


class BollingerBreakoutStrategy:
    """Close outside the 20-period, 2σ bands.

    Below the lower band → buy; above the upper band → sell. Confidence is
    ``70 + penetration`` capped at 95, where penetration is the distance
    beyond the band as a percentage of the band width.
    """

    name = Strategy.BOLLINGER

    def __init__(self, period: int = 20, std_dev: float = 2.0) -> None:
        self.period = period
        self.std_dev = std_dev

    def evaluate(self, candles: Sequence[Candle], symbol: str) -> Optional[Signal]:
        upper, middle, lower = calculate_bollinger(
            closes_of(candles), self.period, self.std_dev,
        )
        up, mid, low = upper[-1], middle[-1], lower[-1]
        if math.isnan(up) or math.isnan(low):
            return None

        latest = candles[-1]
        price = latest.close
        width = up - low

        if price < low:
            side = "buy"
            penetration = (low - price) / width * 100.0
        elif price > up:
            side = "sell"
            penetration = (price - up) / width * 100.0
        else:
            return None

        return Signal(
            symbol=symbol,
            side=side,
            price=price,
            time=latest.time,
            strategy=self.name,
            confidence=clamp_confidence(min(BASE_CONFIDENCE + penetration, MAX_CONFIDENCE)),
            indicators={"upper": up, "middle": mid, "lower": low},
        )
