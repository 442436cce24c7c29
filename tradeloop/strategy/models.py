"""Strategy data models — typed representations for strategy outputs."""

import enum
from dataclasses import dataclass, field

from tradeloop.exceptions import UnsupportedStrategy


class Strategy(str, enum.Enum):
    """Closed set of strategy selectors an account can configure.

    ``ENSEMBLE`` is a pair-selection mode, not a signal algorithm: the pair
    selector picks the symbols and a concrete strategy evaluates each one.
    """

    MACD = "MACD"
    RSI = "RSI"
    BOLLINGER = "BOLLINGER"
    EMA = "EMA"
    ENSEMBLE = "ENSEMBLE"

    @classmethod
    def parse(cls, value: "str | Strategy") -> "Strategy":
        """Parse a stored strategy tag. ``"AUTO"`` is an alias of ENSEMBLE.

        Raises ``UnsupportedStrategy`` for anything else.
        """
        if isinstance(value, cls):
            return value
        tag = str(value).strip().upper()
        if tag == "AUTO":
            return cls.ENSEMBLE
        try:
            return cls(tag)
        except ValueError:
            raise UnsupportedStrategy(value) from None

    @property
    def is_ensemble(self) -> bool:
        return self is Strategy.ENSEMBLE


@dataclass(frozen=True)
class Signal:
    """A directional trade signal produced by a strategy."""

    symbol: str
    side: str  # "buy" or "sell"
    price: float
    time: int
    strategy: Strategy
    confidence: float  # 0–100
    indicators: dict = field(default_factory=dict)


def clamp_confidence(value: float) -> float:
    """Clamp a confidence score into [0, 100]."""
    return max(0.0, min(100.0, float(value)))
