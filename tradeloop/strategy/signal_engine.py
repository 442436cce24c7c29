"""Signal engine — one entry point for every signal strategy.

Validates the candle window, dispatches to the registered strategy and
returns at most one signal.
"""

from typing import Optional, Sequence

from tradeloop.exceptions import InsufficientData
from tradeloop.exchange.models import Candle
from tradeloop.strategy.models import Signal, Strategy
from tradeloop.strategy.registry import get_strategy

MIN_CANDLES = 50


def generate_signal(
    candles: Sequence[Candle],
    strategy: "Strategy | str",
    symbol: str,
) -> Optional[Signal]:
    """Evaluate *strategy* over *candles* (oldest first) for *symbol*.

    Raises:
        InsufficientData: fewer than ``MIN_CANDLES`` candles.
        UnsupportedStrategy: ENSEMBLE or an unknown selector.
    """
    impl = get_strategy(strategy)
    if len(candles) < MIN_CANDLES:
        raise InsufficientData(MIN_CANDLES, len(candles))
    return impl.evaluate(candles, symbol)
