"""Exchange data models — typed representations of gateway objects."""

from dataclasses import dataclass
from decimal import Decimal


@dataclass(frozen=True)
class Candle:
    """A single OHLCV bar. ``time`` is the bar open in epoch milliseconds."""

    time: int
    open: float
    high: float
    low: float
    close: float
    volume: float


@dataclass(frozen=True)
class Balance:
    """Quote-currency (USDT) balance of the trading account."""

    available: Decimal
    total: Decimal
    frozen: Decimal


@dataclass(frozen=True)
class OrderResult:
    """Response from submitting an order."""

    order_id: str
    status: str
    client_order_id: str = ""
