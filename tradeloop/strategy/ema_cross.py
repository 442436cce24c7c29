"""Fast / slow EMA crossover strategy."""

from __future__ import annotations

import math
from typing import Optional, Sequence

from tradeloop.exchange.models import Candle
from tradeloop.strategy.indicators import calculate_ema, closes_of
from tradeloop.strategy.models import Signal, Strategy, clamp_confidence

BASE_CONFIDENCE = 70.0
GAP_MULTIPLIER = 10.0
MAX_CONFIDENCE = 95.0


class EMACrossStrategy:
    """EMA(9) / EMA(21) crossover between the two most recent bars.

    Fast crossing above slow → buy; fast crossing below slow → sell.
    Confidence is ``70 + 10 × gap%`` capped at 95, where gap% is
    ``|fast − slow| / slow × 100`` on the latest bar.
    """

    name = Strategy.EMA

    def __init__(self, fast_period: int = 9, slow_period: int = 21) -> None:
        self.fast_period = fast_period
        self.slow_period = slow_period

    def evaluate(self, candles: Sequence[Candle], symbol: str) -> Optional[Signal]:
        closes = closes_of(candles)
        fast = calculate_ema(closes, self.fast_period)
        slow = calculate_ema(closes, self.slow_period)

        prev_fast, cur_fast = fast[-2], fast[-1]
        prev_slow, cur_slow = slow[-2], slow[-1]
        if any(math.isnan(v) for v in (prev_fast, cur_fast, prev_slow, cur_slow)):
            return None

        if prev_fast < prev_slow and cur_fast > cur_slow:
            side = "buy"
        elif prev_fast > prev_slow and cur_fast < cur_slow:
            side = "sell"
        else:
            return None

        gap_pct = abs(cur_fast - cur_slow) / cur_slow * 100.0 if cur_slow else 0.0
        latest = candles[-1]
        return Signal(
            symbol=symbol,
            side=side,
            price=latest.close,
            time=latest.time,
            strategy=self.name,
            confidence=clamp_confidence(
                min(BASE_CONFIDENCE + gap_pct * GAP_MULTIPLIER, MAX_CONFIDENCE)
            ),
            indicators={"fast_ema": cur_fast, "slow_ema": cur_slow},
        )
