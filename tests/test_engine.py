"""Tests for the trading cycle orchestration.

Verifies the per-tick flow: settings → candidates → candles → signal →
gates → sizing → order → persistence → performance update. Uses a mock
gateway to avoid real exchange calls and a temporary SQLite store.
"""

import asyncio
from decimal import Decimal
from typing import Optional

import pytest

from tradeloop.config import DEFAULT_TRADING_PAIRS
from tradeloop.controls import TradingControls
from tradeloop.engine import TradingCycle
from tradeloop.exchange.exceptions import GatewayUnavailable, OrderRejected
from tradeloop.exchange.models import Balance, Candle, OrderResult
from tradeloop.models.records import TradeRecord
from tradeloop.repos.db import init_db
from tradeloop.repos.store import TradingStore
from tradeloop.selection.pair_selector import PairSelector
from tradeloop.selection.performance import PerformanceTracker


# ── Helpers ──────────────────────────────────────────────────────────────


def _candles(closes: list[float]) -> list[Candle]:
    return [
        Candle(1_700_000_000_000 + i * 60_000, c, c + 1.0, c - 1.0, c, 10.0)
        for i, c in enumerate(closes)
    ]


def _breakout_candles() -> list[Candle]:
    """Close far below the lower Bollinger band → buy at 50, confidence 95."""
    return _candles([100.0] * 49 + [50.0])


def _rsi_candles() -> list[Candle]:
    """RSI 25 → buy with confidence 55."""
    closes = [100.0]
    for delta in [-3.0] * 7 + [1.0] * 7 + [0.0] * 35:
        closes.append(closes[-1] + delta)
    return _candles(closes)


def _open_trade(account_id: int = 1) -> TradeRecord:
    return TradeRecord(
        account_id=account_id,
        symbol="BTCUSDT",
        side="buy",
        entry_price=Decimal("100"),
        quantity=Decimal("0.1"),
        strategy="MACD",
        order_id="existing",
    )


# ── Mock gateway ─────────────────────────────────────────────────────────


class MockGateway:
    """Duck-typed ExchangeGateway replacement for cycle tests."""

    def __init__(
        self,
        candles: list[Candle],
        available: Decimal = Decimal("1000"),
        submit_errors: Optional[list[Exception]] = None,
        candle_error: Optional[Exception] = None,
        submit_delay: float = 0.0,
    ) -> None:
        self._candles = candles
        self._available = available
        self._submit_errors = list(submit_errors or [])
        self._candle_error = candle_error
        self._submit_delay = submit_delay
        self.candle_calls: list[tuple] = []
        self.submitted: list[tuple] = []

    async def get_candles(self, symbol: str, timeframe: str, limit: int):
        self.candle_calls.append((symbol, timeframe, limit))
        if self._candle_error is not None:
            raise self._candle_error
        return list(self._candles)

    async def get_balance(self) -> Balance:
        return Balance(available=self._available, total=self._available, frozen=Decimal("0"))

    async def submit_order(self, symbol, side, size, order_type="market"):
        self.submitted.append((symbol, side, size, order_type))
        if self._submit_delay:
            await asyncio.sleep(self._submit_delay)
        if self._submit_errors:
            raise self._submit_errors.pop(0)
        return OrderResult(order_id=f"ord-{len(self.submitted)}", status="NEW")


class Harness:
    def __init__(self, tmp_path, gateway: MockGateway, **cycle_kwargs) -> None:
        db_path = str(tmp_path / "engine.db")
        init_db(db_path)
        self.gateway = gateway
        self.store = TradingStore(db_path)
        self.tracker = PerformanceTracker(p.symbol for p in DEFAULT_TRADING_PAIRS)
        self.selector = PairSelector(DEFAULT_TRADING_PAIRS, self.tracker)
        self.controls = TradingControls()
        kwargs = dict(order_retry_delay=0.0, gateway_timeout=5.0)
        kwargs.update(cycle_kwargs)
        self.cycle = TradingCycle(
            gateway=gateway,
            store=self.store,
            selector=self.selector,
            tracker=self.tracker,
            controls=self.controls,
            **kwargs,
        )

    def account(self, account_id: int = 1, **settings):
        settings.setdefault("enabled", True)
        return self.store.create_account_config(account_id, **settings)


# ── Gating ───────────────────────────────────────────────────────────────


class TestGating:
    @pytest.mark.asyncio
    async def test_missing_account_skips(self, tmp_path):
        h = Harness(tmp_path, MockGateway(_breakout_candles()))
        result = await h.cycle.run_once(1)
        assert result == {"action": "skipped", "reason": "trading_disabled"}

    @pytest.mark.asyncio
    async def test_disabled_account_skips(self, tmp_path):
        h = Harness(tmp_path, MockGateway(_breakout_candles()))
        h.account(enabled=False)
        result = await h.cycle.run_once(1)
        assert result["reason"] == "trading_disabled"
        assert h.gateway.candle_calls == []

    @pytest.mark.asyncio
    async def test_concurrency_cap_blocks_tick(self, tmp_path):
        h = Harness(tmp_path, MockGateway(_breakout_candles()))
        h.account()
        for _ in range(3):
            h.store.save_trade(_open_trade())
        result = await h.cycle.run_once(1)
        assert result == {"action": "skipped", "reason": "max_concurrent_trades"}
        assert h.gateway.candle_calls == []
        assert h.gateway.submitted == []

    @pytest.mark.asyncio
    async def test_closing_a_trade_frees_a_slot(self, tmp_path):
        h = Harness(tmp_path, MockGateway(_breakout_candles()))
        h.account(strategy="BOLLINGER")
        trade_ids = [h.store.save_trade(_open_trade()) for _ in range(3)]
        assert (await h.cycle.run_once(1))["reason"] == "max_concurrent_trades"

        h.store.close_trade(trade_ids[0], status="CANCELLED")
        result = await h.cycle.run_once(1)
        assert result["orders_placed"] == 1
        assert h.store.count_open_trades(1) == 3

    @pytest.mark.asyncio
    async def test_other_accounts_trades_do_not_count(self, tmp_path):
        h = Harness(tmp_path, MockGateway(_breakout_candles()))
        h.account(strategy="BOLLINGER")
        for _ in range(3):
            h.store.save_trade(_open_trade(account_id=2))
        result = await h.cycle.run_once(1)
        assert result["orders_placed"] == 1

    @pytest.mark.asyncio
    async def test_unsupported_strategy_reported(self, tmp_path):
        h = Harness(tmp_path, MockGateway(_breakout_candles()))
        h.account(strategy="SCALP")
        result = await h.cycle.run_once(1)
        assert result["action"] == "error"
        assert result["reason"] == "unsupported_strategy"
        assert h.gateway.candle_calls == []


# ── Signal outcomes ──────────────────────────────────────────────────────


class TestSignals:
    @pytest.mark.asyncio
    async def test_order_placed_and_persisted(self, tmp_path):
        h = Harness(tmp_path, MockGateway(_breakout_candles()))
        h.account(strategy="BOLLINGER", timeframe="15m")
        result = await h.cycle.run_once(1)

        assert result["action"] == "cycle_complete"
        assert result["symbols"] == ["BTCUSDT"]
        assert result["orders_placed"] == 1
        placed = result["results"][0]
        assert placed["action"] == "order_placed"
        assert placed["side"] == "buy"
        assert placed["confidence"] == 95.0

        # 1 % of 1000 at 50 → 0.2
        assert h.gateway.candle_calls == [("BTCUSDT", "15m", 100)]
        assert h.gateway.submitted == [("BTCUSDT", "buy", Decimal("0.2"), "market")]

        trades = h.store.get_trades(1)
        assert len(trades) == 1
        assert trades[0].quantity == Decimal("0.2")
        assert trades[0].entry_price == Decimal("50.0")
        assert trades[0].strategy == "BOLLINGER"
        assert trades[0].order_id == "ord-1"
        assert trades[0].trade_data["confidence"] == 95.0
        assert set(trades[0].trade_data["indicators"]) == {"upper", "middle", "lower"}

        snapshot = h.store.get_latest_balance(1)
        assert snapshot.available == Decimal("1000")

        perf = h.tracker.get("BTCUSDT")
        assert perf.success_rate == pytest.approx(0.3)
        assert perf.volatility > 0

    @pytest.mark.asyncio
    async def test_below_threshold_not_traded(self, tmp_path):
        h = Harness(tmp_path, MockGateway(_rsi_candles()))
        h.account(strategy="RSI")
        result = await h.cycle.run_once(1)
        outcome = result["results"][0]
        assert outcome["reason"] == "below_threshold"
        assert outcome["confidence"] == pytest.approx(55.0)
        assert h.gateway.submitted == []
        # Default policy credits a no-trade tick as a success
        assert h.tracker.get("BTCUSDT").success_rate == pytest.approx(0.3)

    @pytest.mark.asyncio
    async def test_lowered_threshold_trades(self, tmp_path):
        h = Harness(tmp_path, MockGateway(_rsi_candles()))
        h.account(strategy="RSI")
        h.controls.set_confidence_threshold(50)
        result = await h.cycle.run_once(1)
        assert result["orders_placed"] == 1

    @pytest.mark.asyncio
    async def test_no_signal_failure_policy(self, tmp_path):
        h = Harness(tmp_path, MockGateway(_candles([100.0] * 60)))
        h.account(strategy="BOLLINGER")
        h.controls.set_no_signal_outcome("failure")
        h.tracker.update("BTCUSDT", True, 0.0)
        result = await h.cycle.run_once(1)
        assert result["results"][0]["reason"] == "no_signal"
        assert h.tracker.get("BTCUSDT").success_rate == pytest.approx(0.21)

    @pytest.mark.asyncio
    async def test_no_signal_ignore_policy(self, tmp_path):
        h = Harness(tmp_path, MockGateway(_candles([100.0] * 60)))
        h.account(strategy="BOLLINGER")
        h.controls.set_no_signal_outcome("ignore")
        await h.cycle.run_once(1)
        assert h.tracker.get("BTCUSDT").success_rate == 0.0

    @pytest.mark.asyncio
    async def test_insufficient_data_skips_symbol(self, tmp_path):
        h = Harness(tmp_path, MockGateway(_candles([100.0] * 10)))
        h.account()
        result = await h.cycle.run_once(1)
        assert result["results"] == [
            {"symbol": "BTCUSDT", "action": "skipped", "reason": "insufficient_data"},
        ]
        assert h.tracker.get("BTCUSDT").success_rate == 0.0

    @pytest.mark.asyncio
    async def test_size_below_minimum_no_update(self, tmp_path):
        h = Harness(tmp_path, MockGateway(_breakout_candles(), available=Decimal("0.01")))
        h.account(strategy="BOLLINGER")
        result = await h.cycle.run_once(1)
        assert result["results"][0]["reason"] == "size_below_minimum"
        assert h.gateway.submitted == []
        perf = h.tracker.get("BTCUSDT")
        assert perf.success_rate == 0.0
        assert perf.volatility == 0.0


# ── Submission failures ──────────────────────────────────────────────────


class TestSubmission:
    @pytest.mark.asyncio
    async def test_retry_bound(self, tmp_path):
        errors = [GatewayUnavailable("503")] * 5
        h = Harness(tmp_path, MockGateway(_breakout_candles(), submit_errors=errors))
        h.account(strategy="BOLLINGER")
        h.tracker.update("BTCUSDT", True, 0.0)

        result = await h.cycle.run_once(1)
        outcome = result["results"][0]
        assert outcome["action"] == "error"
        assert outcome["reason"] == "order_failed"
        assert len(h.gateway.submitted) == 3
        assert h.store.get_trades(1) == []
        assert h.tracker.get("BTCUSDT").success_rate == pytest.approx(0.21)

    @pytest.mark.asyncio
    async def test_transient_failure_then_success(self, tmp_path):
        gateway = MockGateway(_breakout_candles(), submit_errors=[GatewayUnavailable("429")])
        h = Harness(tmp_path, gateway)
        h.account(strategy="BOLLINGER")
        result = await h.cycle.run_once(1)
        assert result["orders_placed"] == 1
        assert len(gateway.submitted) == 2
        assert h.store.count_open_trades(1) == 1

    @pytest.mark.asyncio
    async def test_rejection_not_retried(self, tmp_path):
        gateway = MockGateway(_breakout_candles(), submit_errors=[OrderRejected("funds")])
        h = Harness(tmp_path, gateway)
        h.account(strategy="BOLLINGER")
        result = await h.cycle.run_once(1)
        assert result["results"][0]["reason"] == "order_failed"
        assert len(gateway.submitted) == 1

    @pytest.mark.asyncio
    async def test_submit_timeout_is_retried(self, tmp_path):
        gateway = MockGateway(_breakout_candles(), submit_delay=1.0)
        h = Harness(tmp_path, gateway, gateway_timeout=0.05)
        h.account(strategy="BOLLINGER")
        result = await h.cycle.run_once(1)
        assert result["results"][0]["reason"] == "order_failed"
        assert len(gateway.submitted) == 3

    @pytest.mark.asyncio
    async def test_gateway_down_aborts_tick(self, tmp_path):
        gateway = MockGateway(_breakout_candles(), candle_error=GatewayUnavailable("down"))
        h = Harness(tmp_path, gateway)
        h.account(strategy="ENSEMBLE")
        result = await h.cycle.run_once(1)
        assert result["action"] == "skipped"
        assert result["reason"] == "gateway_unavailable"
        assert len(gateway.candle_calls) == 1
        assert gateway.submitted == []


# ── ENSEMBLE mode ────────────────────────────────────────────────────────


class TestEnsemble:
    @pytest.mark.asyncio
    async def test_top_pairs_evaluated_with_delegate(self, tmp_path):
        gateway = MockGateway(_breakout_candles())
        h = Harness(tmp_path, gateway)
        h.account(strategy="AUTO", trading_params={"ensemble_strategy": "BOLLINGER"})
        h.controls.set_max_concurrent_trades(2)

        result = await h.cycle.run_once(1)
        assert result["symbols"] == ["BTCUSDT", "ETHUSDT", "BNBUSDT"]
        assert [r["action"] for r in result["results"]] == [
            "order_placed", "order_placed", "skipped",
        ]
        assert result["results"][2]["reason"] == "max_concurrent_trades"
        assert [s[0] for s in gateway.submitted] == ["BTCUSDT", "ETHUSDT"]

    @pytest.mark.asyncio
    async def test_pair_strategy_override(self, tmp_path):
        gateway = MockGateway(_breakout_candles())
        h = Harness(tmp_path, gateway, auto_pair_count=2)
        h.account(
            strategy="ENSEMBLE",
            trading_params={
                "ensemble_strategy": "BOLLINGER",
                "pair_strategies": {"ETHUSDT": "RSI"},
            },
        )
        result = await h.cycle.run_once(1)
        assert result["symbols"] == ["BTCUSDT", "ETHUSDT"]
        assert [r["strategy"] for r in result["results"]] == ["BOLLINGER", "RSI"]
        # RSI drops to 0 on the final bar → buy with confidence 80
        assert result["results"][1]["confidence"] == pytest.approx(80.0)
