"""Account trading configuration dataclass.

Represents the settings one account trades with. Read fresh at the start of
every tick so edits take effect without restarting the loop.
"""

from dataclasses import dataclass, field
from decimal import Decimal

from tradeloop.strategy.models import Strategy

DEFAULT_TIMEFRAME_SECONDS = 3600

_UNIT_SECONDS = {"m": 60, "h": 3600, "d": 86400}


def timeframe_to_seconds(timeframe: str) -> int:
    """Convert ``"15m"`` / ``"1h"`` / ``"1d"`` into a timer period.

    Unknown units or malformed amounts fall back to one hour.
    """
    unit = timeframe[-1:].lower()
    try:
        amount = int(timeframe[:-1])
    except ValueError:
        return DEFAULT_TIMEFRAME_SECONDS
    if unit not in _UNIT_SECONDS or amount <= 0:
        return DEFAULT_TIMEFRAME_SECONDS
    return amount * _UNIT_SECONDS[unit]


@dataclass(frozen=True)
class AccountTradingConfig:
    """Trading settings owned by one account.

    ``trading_params`` carries optional extras; in ENSEMBLE mode it may
    hold ``pair_strategies`` (symbol → strategy) and ``ensemble_strategy``
    (fallback strategy for every other pair).
    """

    account_id: int
    symbol: str = "BTCUSDT"
    timeframe: str = "1h"
    strategy: str = "MACD"
    risk_per_trade: Decimal = Decimal("1")
    leverage: int = 1
    enabled: bool = False
    trading_params: dict = field(default_factory=dict)

    @property
    def strategy_selector(self) -> Strategy:
        """Parsed strategy. Raises ``UnsupportedStrategy`` if unknown."""
        return Strategy.parse(self.strategy)

    @property
    def is_auto(self) -> bool:
        return self.strategy_selector.is_ensemble

    @property
    def interval_seconds(self) -> int:
        return timeframe_to_seconds(self.timeframe)

    def strategy_for(self, symbol: str) -> Strategy:
        """Resolve the concrete strategy evaluated for *symbol*."""
        selector = self.strategy_selector
        if not selector.is_ensemble:
            return selector
        per_pair = self.trading_params.get("pair_strategies") or {}
        tag = per_pair.get(symbol) or self.trading_params.get("ensemble_strategy") or "MACD"
        return Strategy.parse(tag)

    def to_dict(self) -> dict:
        return {
            "account_id": self.account_id,
            "symbol": self.symbol,
            "timeframe": self.timeframe,
            "interval_seconds": self.interval_seconds,
            "strategy": self.strategy,
            "risk_per_trade": str(self.risk_per_trade),
            "leverage": self.leverage,
            "enabled": self.enabled,
            "trading_params": dict(self.trading_params),
        }
