"""Trade repository — SQLite CRUD for the trades table."""

import json
import sqlite3
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from tradeloop.models.records import TradeRecord
from tradeloop.repos.db import get_connection


def _opt_decimal(value: Optional[str]) -> Optional[Decimal]:
    return Decimal(value) if value is not None else None


def _row_to_trade(row: sqlite3.Row) -> TradeRecord:
    return TradeRecord(
        id=row["id"],
        account_id=row["account_id"],
        symbol=row["symbol"],
        side=row["side"],
        entry_price=Decimal(row["entry_price"]),
        quantity=Decimal(row["quantity"]),
        status=row["status"],
        strategy=row["strategy"],
        order_id=row["order_id"],
        trade_data=json.loads(row["trade_data"] or "{}"),
        opened_at=row["opened_at"],
        closed_at=row["closed_at"],
        exit_price=_opt_decimal(row["exit_price"]),
        pnl=_opt_decimal(row["pnl"]),
        notes=row["notes"],
    )


class TradeRepo:
    """Data access layer for trade records.

    Args:
        db_path: Path to the SQLite database file.
    """

    def __init__(self, db_path: str) -> None:
        self._db_path = db_path

    # ── Write ────────────────────────────────────────────────────────────

    def insert_trade(self, trade: TradeRecord) -> int:
        """Insert a trade and return its ``id``."""
        opened_at = trade.opened_at or datetime.now(timezone.utc).isoformat()
        conn = get_connection(self._db_path)
        try:
            cur = conn.execute(
                """
                INSERT INTO trades
                    (account_id, symbol, side, entry_price, quantity, status,
                     opened_at, strategy, notes, order_id, trade_data)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    trade.account_id,
                    trade.symbol,
                    trade.side,
                    str(trade.entry_price),
                    str(trade.quantity),
                    trade.status,
                    opened_at,
                    trade.strategy,
                    trade.notes,
                    trade.order_id,
                    json.dumps(trade.trade_data, default=str),
                ),
            )
            conn.commit()
            return cur.lastrowid
        finally:
            conn.close()

    def close_trade(
        self,
        trade_id: int,
        exit_price: Optional[Decimal] = None,
        pnl: Optional[Decimal] = None,
        status: str = "CLOSED",
    ) -> bool:
        """Move an ``OPEN`` trade to *status* and set its exit fields.

        Returns ``False`` when the trade does not exist or is not open.
        """
        closed_at = datetime.now(timezone.utc).isoformat()
        conn = get_connection(self._db_path)
        try:
            cur = conn.execute(
                """
                UPDATE trades
                SET exit_price = ?, pnl = ?, status = ?, closed_at = ?
                WHERE id = ? AND status = 'OPEN'
                """,
                (
                    str(exit_price) if exit_price is not None else None,
                    str(pnl) if pnl is not None else None,
                    status,
                    closed_at,
                    trade_id,
                ),
            )
            conn.commit()
            return cur.rowcount == 1
        finally:
            conn.close()

    # ── Read ─────────────────────────────────────────────────────────────

    def get_trade(self, trade_id: int) -> Optional[TradeRecord]:
        conn = get_connection(self._db_path)
        try:
            row = conn.execute(
                "SELECT * FROM trades WHERE id = ?", (trade_id,)
            ).fetchone()
            return _row_to_trade(row) if row else None
        finally:
            conn.close()

    def get_trades(
        self,
        account_id: int,
        limit: int = 20,
        status_filter: Optional[str] = None,
    ) -> list[TradeRecord]:
        """Return the account's most recent trades, newest first."""
        conn = get_connection(self._db_path)
        try:
            conditions = ["account_id = ?"]
            params: list = [account_id]
            if status_filter:
                conditions.append("status = ?")
                params.append(status_filter)

            rows = conn.execute(
                f"SELECT * FROM trades WHERE {' AND '.join(conditions)} "
                "ORDER BY id DESC LIMIT ?",
                (*params, limit),
            ).fetchall()
            return [_row_to_trade(r) for r in rows]
        finally:
            conn.close()

    def count_open_trades(self, account_id: int) -> int:
        conn = get_connection(self._db_path)
        try:
            return conn.execute(
                "SELECT COUNT(*) FROM trades WHERE account_id = ? AND status = 'OPEN'",
                (account_id,),
            ).fetchone()[0]
        finally:
            conn.close()
