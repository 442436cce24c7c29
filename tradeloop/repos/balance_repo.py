"""Balance history repository — SQLite operations for balance_history table."""

import json
import sqlite3
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from tradeloop.models.records import BalanceSnapshot
from tradeloop.repos.db import get_connection


def _row_to_snapshot(row: sqlite3.Row) -> BalanceSnapshot:
    return BalanceSnapshot(
        id=row["id"],
        account_id=row["account_id"],
        total=Decimal(row["total_balance"]),
        available=Decimal(row["available_balance"]),
        frozen=Decimal(row["frozen_balance"]),
        balance_data=json.loads(row["balance_data"] or "{}"),
        recorded_at=row["recorded_at"],
    )


class BalanceRepo:
    """Data access layer for balance snapshots.

    Args:
        db_path: Path to the SQLite database file.
    """

    def __init__(self, db_path: str) -> None:
        self._db_path = db_path

    def insert_snapshot(self, snapshot: BalanceSnapshot) -> int:
        """Record a balance snapshot and return its ``id``."""
        recorded_at = snapshot.recorded_at or datetime.now(timezone.utc).isoformat()
        conn = get_connection(self._db_path)
        try:
            cur = conn.execute(
                """
                INSERT INTO balance_history
                    (account_id, total_balance, available_balance,
                     frozen_balance, recorded_at, balance_data)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    snapshot.account_id,
                    str(snapshot.total),
                    str(snapshot.available),
                    str(snapshot.frozen),
                    recorded_at,
                    json.dumps(snapshot.balance_data, default=str),
                ),
            )
            conn.commit()
            return cur.lastrowid
        finally:
            conn.close()

    def get_latest(self, account_id: int) -> Optional[BalanceSnapshot]:
        """Return the most recent snapshot for the account, or ``None``."""
        conn = get_connection(self._db_path)
        try:
            row = conn.execute(
                "SELECT * FROM balance_history WHERE account_id = ? "
                "ORDER BY id DESC LIMIT 1",
                (account_id,),
            ).fetchone()
            return _row_to_snapshot(row) if row else None
        finally:
            conn.close()

    def get_history(self, account_id: int, limit: int = 100) -> list[BalanceSnapshot]:
        """Return up to *limit* snapshots, newest first."""
        conn = get_connection(self._db_path)
        try:
            rows = conn.execute(
                "SELECT * FROM balance_history WHERE account_id = ? "
                "ORDER BY id DESC LIMIT ?",
                (account_id, limit),
            ).fetchall()
            return [_row_to_snapshot(r) for r in rows]
        finally:
            conn.close()
