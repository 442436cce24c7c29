"""Strategy registry — maps strategy selectors to signal implementations.

Used by the signal engine to dispatch on ``Strategy``. ENSEMBLE has no
entry: it selects pairs and delegates to a concrete strategy per pair.
"""

from tradeloop.exceptions import UnsupportedStrategy
from tradeloop.strategy.base import SignalStrategy
from tradeloop.strategy.bollinger_breakout import BollingerBreakoutStrategy
from tradeloop.strategy.ema_cross import EMACrossStrategy
from tradeloop.strategy.macd_cross import MACDCrossStrategy
from tradeloop.strategy.models import Strategy
from tradeloop.strategy.rsi_reversal import RSIReversalStrategy


STRATEGY_REGISTRY: dict[Strategy, type] = {
    Strategy.MACD: MACDCrossStrategy,
    Strategy.RSI: RSIReversalStrategy,
    Strategy.BOLLINGER: BollingerBreakoutStrategy,
    Strategy.EMA: EMACrossStrategy,
}


def get_strategy(strategy: "Strategy | str") -> SignalStrategy:
    """Look up and instantiate a signal strategy.

    Raises ``UnsupportedStrategy`` for ENSEMBLE or an unknown selector.
    """
    selector = Strategy.parse(strategy)
    if selector not in STRATEGY_REGISTRY:
        raise UnsupportedStrategy(selector.value)
    return STRATEGY_REGISTRY[selector]()
