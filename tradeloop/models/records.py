"""Persisted record types — trades and balance snapshots."""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Optional

CLOSING_STATUSES = ("CLOSED", "CANCELLED")


@dataclass(frozen=True)
class TradeRecord:
    """An executed order as stored in the ``trades`` table."""

    account_id: int
    symbol: str
    side: str  # "buy" or "sell"
    entry_price: Decimal
    quantity: Decimal
    strategy: str
    order_id: str
    status: str = "OPEN"  # OPEN, CLOSED, CANCELLED
    trade_data: dict = field(default_factory=dict)
    id: Optional[int] = None
    opened_at: str = ""
    closed_at: Optional[str] = None
    exit_price: Optional[Decimal] = None
    pnl: Optional[Decimal] = None
    notes: Optional[str] = None


def realised_pnl(trade: TradeRecord, exit_price: Decimal) -> Decimal:
    """PnL in quote currency for exiting *trade* at *exit_price*."""
    move = exit_price - trade.entry_price
    if trade.side == "sell":
        move = -move
    return move * trade.quantity


@dataclass(frozen=True)
class BalanceSnapshot:
    """Account balance recorded after a trade."""

    account_id: int
    total: Decimal
    available: Decimal
    frozen: Decimal = Decimal("0")
    balance_data: dict = field(default_factory=dict)
    id: Optional[int] = None
    recorded_at: str = ""
