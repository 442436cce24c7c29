"""Persistence facade — the storage operations the trading core uses.

Bundles the settings, trade and balance repos behind one object so the
scheduler and routers depend on a single collaborator.
"""

from decimal import Decimal
from typing import Optional

from tradeloop.models.account_config import AccountTradingConfig
from tradeloop.models.records import (
    CLOSING_STATUSES,
    BalanceSnapshot,
    TradeRecord,
    realised_pnl,
)
from tradeloop.repos.balance_repo import BalanceRepo
from tradeloop.repos.settings_repo import SettingsRepo
from tradeloop.repos.trade_repo import TradeRepo


class TradingStore:
    """SQLite-backed store for settings, trades and balance history.

    Args:
        db_path: Path to an initialised SQLite database (see ``init_db``).
    """

    def __init__(self, db_path: str) -> None:
        self.settings = SettingsRepo(db_path)
        self.trades = TradeRepo(db_path)
        self.balances = BalanceRepo(db_path)

    # ── Settings ─────────────────────────────────────────────────────────

    def get_account_config(self, account_id: int) -> Optional[AccountTradingConfig]:
        return self.settings.get(account_id)

    def create_account_config(
        self, account_id: int, **overrides
    ) -> AccountTradingConfig:
        """Create default settings (optionally overridden) for an account."""
        return self.settings.create(AccountTradingConfig(account_id=account_id, **overrides))

    def update_account_config(
        self, account_id: int, patch: dict
    ) -> Optional[AccountTradingConfig]:
        return self.settings.update(account_id, patch)

    def list_enabled_accounts(self) -> list[int]:
        return [c.account_id for c in self.settings.list_enabled()]

    # ── Trades ───────────────────────────────────────────────────────────

    def save_trade(self, trade: TradeRecord) -> int:
        return self.trades.insert_trade(trade)

    def get_trade(self, trade_id: int) -> Optional[TradeRecord]:
        return self.trades.get_trade(trade_id)

    def get_trades(
        self, account_id: int, limit: int = 20, status: Optional[str] = None
    ) -> list[TradeRecord]:
        return self.trades.get_trades(account_id, limit=limit, status_filter=status)

    def count_open_trades(self, account_id: int) -> int:
        return self.trades.count_open_trades(account_id)

    def close_trade(
        self,
        trade_id: int,
        exit_price: Optional[Decimal] = None,
        pnl: Optional[Decimal] = None,
        status: str = "CLOSED",
    ) -> Optional[TradeRecord]:
        """Close or cancel an open trade, freeing a concurrency slot.

        A ``CLOSED`` trade needs an exit price; when *pnl* is omitted it is
        derived from the side, entry price and quantity. Returns the updated
        record, or ``None`` when the trade is missing or no longer open.

        Raises:
            ValueError: Unknown *status*, or ``CLOSED`` without an exit price.
        """
        if status not in CLOSING_STATUSES:
            raise ValueError(f"status must be one of {', '.join(CLOSING_STATUSES)}")
        trade = self.trades.get_trade(trade_id)
        if trade is None or trade.status != "OPEN":
            return None

        if status == "CLOSED":
            if exit_price is None:
                raise ValueError("exit_price is required to close a trade")
            if pnl is None:
                pnl = realised_pnl(trade, exit_price)

        if not self.trades.close_trade(trade_id, exit_price, pnl, status):
            return None
        return self.trades.get_trade(trade_id)

    # ── Balances ─────────────────────────────────────────────────────────

    def save_balance_snapshot(self, snapshot: BalanceSnapshot) -> int:
        return self.balances.insert_snapshot(snapshot)

    def get_latest_balance(self, account_id: int) -> Optional[BalanceSnapshot]:
        return self.balances.get_latest(account_id)

    def get_balance_history(
        self, account_id: int, limit: int = 100
    ) -> list[BalanceSnapshot]:
        return self.balances.get_history(account_id, limit=limit)
