"""Trading settings repository — SQLite CRUD for the trading_settings table."""

import json
import sqlite3
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from tradeloop.models.account_config import AccountTradingConfig
from tradeloop.repos.db import get_connection

# Patchable fields → column names
_COLUMNS = {
    "symbol": "symbol",
    "timeframe": "timeframe",
    "strategy": "strategy",
    "risk_per_trade": "risk_per_trade",
    "leverage": "leverage_level",
    "enabled": "enabled_trading",
    "trading_params": "trading_params",
}


def _row_to_config(row: sqlite3.Row) -> AccountTradingConfig:
    return AccountTradingConfig(
        account_id=row["account_id"],
        symbol=row["symbol"],
        timeframe=row["timeframe"],
        strategy=row["strategy"],
        risk_per_trade=Decimal(row["risk_per_trade"]),
        leverage=int(row["leverage_level"]),
        enabled=bool(row["enabled_trading"]),
        trading_params=json.loads(row["trading_params"] or "{}"),
    )


def _to_column_value(field_name: str, value):
    if field_name == "risk_per_trade":
        return str(Decimal(str(value)))
    if field_name == "enabled":
        return 1 if value else 0
    if field_name == "leverage":
        return int(value)
    if field_name == "trading_params":
        return json.dumps(value or {})
    return value


class SettingsRepo:
    """Data access layer for per-account trading settings.

    Args:
        db_path: Path to the SQLite database file.
    """

    def __init__(self, db_path: str) -> None:
        self._db_path = db_path

    # ── Read ─────────────────────────────────────────────────────────────

    def get(self, account_id: int) -> Optional[AccountTradingConfig]:
        """Return the account's settings or ``None``."""
        conn = get_connection(self._db_path)
        try:
            row = conn.execute(
                "SELECT * FROM trading_settings WHERE account_id = ?",
                (account_id,),
            ).fetchone()
            return _row_to_config(row) if row else None
        finally:
            conn.close()

    def list_enabled(self) -> list[AccountTradingConfig]:
        """Return every account with trading enabled."""
        conn = get_connection(self._db_path)
        try:
            rows = conn.execute(
                "SELECT * FROM trading_settings WHERE enabled_trading = 1 "
                "ORDER BY account_id"
            ).fetchall()
            return [_row_to_config(r) for r in rows]
        finally:
            conn.close()

    # ── Write ────────────────────────────────────────────────────────────

    def create(self, config: AccountTradingConfig) -> AccountTradingConfig:
        """Insert settings for a new account and return them."""
        conn = get_connection(self._db_path)
        try:
            conn.execute(
                """
                INSERT INTO trading_settings
                    (account_id, symbol, timeframe, strategy, risk_per_trade,
                     leverage_level, enabled_trading, trading_params)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    config.account_id,
                    config.symbol,
                    config.timeframe,
                    config.strategy,
                    _to_column_value("risk_per_trade", config.risk_per_trade),
                    _to_column_value("leverage", config.leverage),
                    _to_column_value("enabled", config.enabled),
                    _to_column_value("trading_params", config.trading_params),
                ),
            )
            conn.commit()
        finally:
            conn.close()
        return self.get(config.account_id)

    def update(self, account_id: int, patch: dict) -> Optional[AccountTradingConfig]:
        """Apply a partial update and return the new settings.

        Unknown keys raise ``ValueError``. Returns ``None`` when the account
        has no settings row.
        """
        unknown = sorted(set(patch) - set(_COLUMNS))
        if unknown:
            raise ValueError(f"Unknown settings field(s): {', '.join(unknown)}")
        if not patch:
            return self.get(account_id)

        assignments = ", ".join(f"{_COLUMNS[k]} = ?" for k in patch)
        values = [_to_column_value(k, v) for k, v in patch.items()]
        updated_at = datetime.now(timezone.utc).isoformat()

        conn = get_connection(self._db_path)
        try:
            cur = conn.execute(
                f"UPDATE trading_settings SET {assignments}, updated_at = ? "
                "WHERE account_id = ?",
                (*values, updated_at, account_id),
            )
            conn.commit()
            if cur.rowcount == 0:
                return None
        finally:
            conn.close()
        return self.get(account_id)
