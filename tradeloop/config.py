"""TradeLoop — application configuration.

Loads .env variables into a typed config object.
Validates required variables on startup.
"""

import json
import os
import pathlib
from dataclasses import dataclass

from dotenv import load_dotenv


_REQUIRED_VARS = [
    "BITGET_API_KEY",
    "BITGET_API_SECRET",
    "BITGET_API_PASSPHRASE",
]

NO_SIGNAL_OUTCOMES = ("success", "failure", "ignore")


@dataclass(frozen=True)
class Config:
    """Typed configuration loaded from environment variables."""

    bitget_api_key: str
    bitget_api_secret: str
    bitget_api_passphrase: str
    bitget_base_url: str
    db_path: str
    log_level: str
    api_port: int
    confidence_threshold: float
    max_concurrent_trades: int
    auto_pair_count: int
    candle_limit: int
    gateway_timeout_seconds: float
    order_retry_attempts: int
    order_retry_delay_seconds: float
    no_signal_outcome: str  # "success", "failure" or "ignore"


@dataclass(frozen=True)
class TradingPair:
    """A tradable symbol with its static preference weight."""

    symbol: str
    weight: float


DEFAULT_TRADING_PAIRS: list[TradingPair] = [
    TradingPair("BTCUSDT", 0.3),
    TradingPair("ETHUSDT", 0.25),
    TradingPair("BNBUSDT", 0.2),
    TradingPair("XRPUSDT", 0.15),
    TradingPair("DOGEUSDT", 0.1),
]


def load_config(env_path: str | None = None) -> Config:
    """Load configuration from environment variables.

    Raises ``ValueError`` with a message naming the missing variable when a
    required variable is absent, or when a tunable is out of range.
    """
    load_dotenv(dotenv_path=env_path)

    missing = [v for v in _REQUIRED_VARS if not os.environ.get(v)]
    if missing:
        raise ValueError(
            f"Missing required environment variable(s): {', '.join(missing)}"
        )

    threshold = float(os.environ.get("CONFIDENCE_THRESHOLD", "70"))
    if not 0.0 <= threshold <= 100.0:
        raise ValueError(
            f"CONFIDENCE_THRESHOLD must be within 0-100, got {threshold}"
        )

    no_signal_outcome = os.environ.get("NO_SIGNAL_OUTCOME", "success").lower()
    if no_signal_outcome not in NO_SIGNAL_OUTCOMES:
        raise ValueError(
            f"NO_SIGNAL_OUTCOME must be one of {', '.join(NO_SIGNAL_OUTCOMES)}, "
            f"got {no_signal_outcome!r}"
        )

    return Config(
        bitget_api_key=os.environ["BITGET_API_KEY"],
        bitget_api_secret=os.environ["BITGET_API_SECRET"],
        bitget_api_passphrase=os.environ["BITGET_API_PASSPHRASE"],
        bitget_base_url=os.environ.get("BITGET_BASE_URL", "https://api.bitget.com"),
        db_path=os.environ.get("DB_PATH", "data/tradeloop.db"),
        log_level=os.environ.get("LOG_LEVEL", "INFO"),
        api_port=int(os.environ.get("API_PORT", "8080")),
        confidence_threshold=threshold,
        max_concurrent_trades=int(os.environ.get("MAX_CONCURRENT_TRADES", "3")),
        auto_pair_count=int(os.environ.get("AUTO_PAIR_COUNT", "3")),
        candle_limit=int(os.environ.get("CANDLE_LIMIT", "100")),
        gateway_timeout_seconds=float(os.environ.get("GATEWAY_TIMEOUT_SECONDS", "30")),
        order_retry_attempts=int(os.environ.get("ORDER_RETRY_ATTEMPTS", "3")),
        order_retry_delay_seconds=float(os.environ.get("ORDER_RETRY_DELAY_SECONDS", "1.0")),
        no_signal_outcome=no_signal_outcome,
    )


def load_pairs(path: str | pathlib.Path | None = None) -> list[TradingPair]:
    """Load the weighted pair universe from ``pairs.json``.

    The file holds ``{"pairs": [{"symbol": "BTCUSDT", "weight": 0.3}, ...]}``.
    Falls back to :data:`DEFAULT_TRADING_PAIRS` when the file is absent.
    """
    if path is None:
        path = os.environ.get("PAIRS_PATH", "pairs.json")
    path = pathlib.Path(path)
    if not path.exists():
        return list(DEFAULT_TRADING_PAIRS)

    data = json.loads(path.read_text(encoding="utf-8"))
    pairs = [
        TradingPair(symbol=str(p["symbol"]), weight=float(p.get("weight", 0.0)))
        for p in data.get("pairs", [])
    ]
    if not pairs:
        raise ValueError(f"No pairs defined in {path}")
    return pairs
