"""RSI overbought / oversold strategy."""

from __future__ import annotations

import math
from typing import Optional, Sequence

from tradeloop.exchange.models import Candle
from tradeloop.strategy.indicators import calculate_rsi, closes_of
from tradeloop.strategy.models import Signal, Strategy, clamp_confidence


class RSIReversalStrategy:
    """RSI(14) mean-reversion signal.

    RSI below *oversold* → buy with confidence ``80 − RSI``.
    RSI above *overbought* → sell with confidence ``RSI − 20``.

    The RSI is rounded to two decimals before it is compared and scored.
    """

    name = Strategy.RSI

    def __init__(
        self,
        period: int = 14,
        oversold: float = 30.0,
        overbought: float = 70.0,
    ) -> None:
        self.period = period
        self.oversold = oversold
        self.overbought = overbought

    def evaluate(self, candles: Sequence[Candle], symbol: str) -> Optional[Signal]:
        rsi_series = calculate_rsi(closes_of(candles), self.period)
        if math.isnan(rsi_series[-1]):
            return None
        rsi = round(rsi_series[-1], 2)

        if rsi < self.oversold:
            side, confidence = "buy", 80.0 - rsi
        elif rsi > self.overbought:
            side, confidence = "sell", rsi - 20.0
        else:
            return None

        latest = candles[-1]
        return Signal(
            symbol=symbol,
            side=side,
            price=latest.close,
            time=latest.time,
            strategy=self.name,
            confidence=clamp_confidence(confidence),
            indicators={"rsi": rsi},
        )
