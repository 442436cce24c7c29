"""Exchange gateway protocol — the operations the trading cycle needs."""

from __future__ import annotations

from decimal import Decimal
from typing import Protocol, runtime_checkable

from tradeloop.exchange.models import Balance, Candle, OrderResult


@runtime_checkable
class ExchangeGateway(Protocol):
    """Interface every exchange client must satisfy.

    Implementations may retry reads internally. Order submission is retried
    by the caller, so ``submit_order`` should make a single attempt.
    """

    async def get_balance(self) -> Balance:
        ...

    async def get_candles(
        self, symbol: str, timeframe: str, limit: int
    ) -> list[Candle]:
        ...

    async def submit_order(
        self,
        symbol: str,
        side: str,
        size: Decimal,
        order_type: str = "market",
    ) -> OrderResult:
        ...
