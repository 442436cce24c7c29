"""Strategy protocol.

Defines the interface that all signal strategies must implement.
"""

from __future__ import annotations

from typing import ClassVar, Optional, Protocol, Sequence, runtime_checkable

from tradeloop.exchange.models import Candle
from tradeloop.strategy.models import Signal, Strategy


@runtime_checkable
class SignalStrategy(Protocol):
    """Interface that all signal strategies must satisfy.

    ``evaluate`` must be pure: the same candle window always produces the
    same result.
    """

    name: ClassVar[Strategy]

    def evaluate(self, candles: Sequence[Candle], symbol: str) -> Optional[Signal]:
        """Evaluate the window (oldest first) and return a signal or None."""
        ...
