"""Tests for tradeloop.config — environment loading, validation and pairs."""

import json

import pytest

from tradeloop.config import DEFAULT_TRADING_PAIRS, TradingPair, load_config, load_pairs


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    """Ensure TradeLoop env vars are cleared between tests."""
    for var in [
        "BITGET_API_KEY",
        "BITGET_API_SECRET",
        "BITGET_API_PASSPHRASE",
        "BITGET_BASE_URL",
        "DB_PATH",
        "LOG_LEVEL",
        "API_PORT",
        "CONFIDENCE_THRESHOLD",
        "MAX_CONCURRENT_TRADES",
        "AUTO_PAIR_COUNT",
        "CANDLE_LIMIT",
        "GATEWAY_TIMEOUT_SECONDS",
        "ORDER_RETRY_ATTEMPTS",
        "ORDER_RETRY_DELAY_SECONDS",
        "NO_SIGNAL_OUTCOME",
        "PAIRS_PATH",
    ]:
        monkeypatch.delenv(var, raising=False)


@pytest.fixture
def env_path(tmp_path):
    # Non-existent file so load_dotenv doesn't pick up a real .env
    return str(tmp_path / "missing.env")


def _set_required(monkeypatch):
    monkeypatch.setenv("BITGET_API_KEY", "key-abc")
    monkeypatch.setenv("BITGET_API_SECRET", "secret-xyz")
    monkeypatch.setenv("BITGET_API_PASSPHRASE", "phrase")


class TestLoadConfig:
    def test_loads_required_vars(self, monkeypatch, env_path):
        _set_required(monkeypatch)
        cfg = load_config(env_path)
        assert cfg.bitget_api_key == "key-abc"
        assert cfg.bitget_api_secret == "secret-xyz"
        assert cfg.bitget_api_passphrase == "phrase"

    def test_defaults(self, monkeypatch, env_path):
        _set_required(monkeypatch)
        cfg = load_config(env_path)
        assert cfg.bitget_base_url == "https://api.bitget.com"
        assert cfg.db_path == "data/tradeloop.db"
        assert cfg.log_level == "INFO"
        assert cfg.api_port == 8080
        assert cfg.confidence_threshold == 70.0
        assert cfg.max_concurrent_trades == 3
        assert cfg.auto_pair_count == 3
        assert cfg.candle_limit == 100
        assert cfg.gateway_timeout_seconds == 30.0
        assert cfg.order_retry_attempts == 3
        assert cfg.order_retry_delay_seconds == 1.0
        assert cfg.no_signal_outcome == "success"

    def test_overrides(self, monkeypatch, env_path):
        _set_required(monkeypatch)
        monkeypatch.setenv("CONFIDENCE_THRESHOLD", "82.5")
        monkeypatch.setenv("MAX_CONCURRENT_TRADES", "5")
        monkeypatch.setenv("NO_SIGNAL_OUTCOME", "Ignore")
        cfg = load_config(env_path)
        assert cfg.confidence_threshold == 82.5
        assert cfg.max_concurrent_trades == 5
        assert cfg.no_signal_outcome == "ignore"

    def test_missing_var_named(self, monkeypatch, env_path):
        monkeypatch.setenv("BITGET_API_KEY", "key-abc")
        with pytest.raises(ValueError, match="BITGET_API_SECRET"):
            load_config(env_path)

    def test_threshold_out_of_range(self, monkeypatch, env_path):
        _set_required(monkeypatch)
        monkeypatch.setenv("CONFIDENCE_THRESHOLD", "101")
        with pytest.raises(ValueError, match="CONFIDENCE_THRESHOLD"):
            load_config(env_path)

    def test_invalid_no_signal_outcome(self, monkeypatch, env_path):
        _set_required(monkeypatch)
        monkeypatch.setenv("NO_SIGNAL_OUTCOME", "maybe")
        with pytest.raises(ValueError, match="NO_SIGNAL_OUTCOME"):
            load_config(env_path)

    def test_config_is_frozen(self, monkeypatch, env_path):
        _set_required(monkeypatch)
        cfg = load_config(env_path)
        with pytest.raises(AttributeError):
            cfg.confidence_threshold = 10  # type: ignore[misc]


class TestLoadPairs:
    def test_missing_file_falls_back_to_defaults(self, tmp_path):
        pairs = load_pairs(tmp_path / "pairs.json")
        assert pairs == DEFAULT_TRADING_PAIRS
        assert [p.symbol for p in pairs] == [
            "BTCUSDT", "ETHUSDT", "BNBUSDT", "XRPUSDT", "DOGEUSDT",
        ]
        assert [p.weight for p in pairs] == [0.3, 0.25, 0.2, 0.15, 0.1]

    def test_reads_file(self, tmp_path):
        path = tmp_path / "pairs.json"
        path.write_text(json.dumps({"pairs": [
            {"symbol": "SOLUSDT", "weight": 0.4},
            {"symbol": "ADAUSDT"},
        ]}))
        assert load_pairs(path) == [
            TradingPair("SOLUSDT", 0.4),
            TradingPair("ADAUSDT", 0.0),
        ]

    def test_env_path(self, tmp_path, monkeypatch):
        path = tmp_path / "custom.json"
        path.write_text(json.dumps({"pairs": [{"symbol": "LTCUSDT", "weight": 1}]}))
        monkeypatch.setenv("PAIRS_PATH", str(path))
        assert load_pairs() == [TradingPair("LTCUSDT", 1.0)]

    def test_empty_file_rejected(self, tmp_path):
        path = tmp_path / "pairs.json"
        path.write_text(json.dumps({"pairs": []}))
        with pytest.raises(ValueError, match="No pairs"):
            load_pairs(path)
