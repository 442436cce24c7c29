"""Tests for tradeloop.strategy.analysis — chunked historical summaries."""

import pytest

from tradeloop.exchange.models import Candle
from tradeloop.strategy.analysis import (
    analyse_chunk,
    analyse_history,
    fetch_history_analysis,
    latest_indicators,
)


def _candles(closes: list[float], volume: float = 100.0) -> list[Candle]:
    return [
        Candle(
            time=1_700_000_000_000 + i * 60_000,
            open=c,
            high=c + 1.0,
            low=c - 1.0,
            close=c,
            volume=volume,
        )
        for i, c in enumerate(closes)
    ]


class _HistoryGateway:
    def __init__(self, candles: list[Candle]) -> None:
        self.candles = candles
        self.requests: list[tuple] = []

    async def get_candles(self, symbol, timeframe, limit):
        self.requests.append((symbol, timeframe, limit))
        return self.candles[-limit:]


# ── Chunks ───────────────────────────────────────────────────────────────


class TestAnalyseChunk:
    def test_rising_chunk(self):
        candles = _candles([100.0 + i for i in range(100)])
        chunk = analyse_chunk(candles)

        assert chunk.time_start == candles[0].time
        assert chunk.time_end == candles[-1].time
        assert chunk.price_change_pct == pytest.approx(99.0)
        assert chunk.volume == pytest.approx(10_000.0)
        assert chunk.volatility > 0

        ind = chunk.indicators
        assert ind["rsi"] == 100.0
        assert ind["ema9"] == pytest.approx(195.0)
        assert ind["ema21"] == pytest.approx(189.0)
        assert ind["bollinger"]["middle"] == pytest.approx(189.5)
        assert ind["bollinger"]["upper"] > ind["bollinger"]["middle"] > ind["bollinger"]["lower"]
        assert set(ind["macd"]) == {"macd", "signal", "histogram"}

    def test_flat_chunk_has_no_volatility(self):
        chunk = analyse_chunk(_candles([50.0] * 40))
        assert chunk.price_change_pct == 0.0
        assert chunk.volatility == 0.0

    def test_empty_chunk_rejected(self):
        with pytest.raises(ValueError):
            analyse_chunk([])


def test_short_history_reports_missing_indicators():
    ind = latest_indicators([100.0 + i for i in range(12)])
    assert ind["ema9"] is not None
    assert ind["rsi"] is None
    assert ind["macd"] is None
    assert ind["bollinger"] is None
    assert ind["ema21"] is None


class TestAnalyseHistory:
    def test_full_chunks_only(self):
        candles = _candles([100.0 + (i % 7) for i in range(250)])
        chunks = analyse_history(candles, chunk_size=100)
        assert len(chunks) == 2
        assert chunks[0].time_start == candles[0].time
        assert chunks[1].time_start == candles[100].time
        assert chunks[1].time_end == candles[199].time

    def test_exact_multiple_keeps_last_chunk(self):
        chunks = analyse_history(_candles([10.0 + i for i in range(300)]), chunk_size=100)
        assert len(chunks) == 3

    def test_shorter_than_one_chunk(self):
        assert analyse_history(_candles([1.0] * 99), chunk_size=100) == []

    def test_chunk_size_must_be_positive(self):
        with pytest.raises(ValueError):
            analyse_history(_candles([1.0] * 10), chunk_size=0)


@pytest.mark.asyncio
async def test_fetch_history_analysis_uses_gateway():
    gateway = _HistoryGateway(_candles([100.0 + i for i in range(1000)]))
    chunks = await fetch_history_analysis(gateway, "ETHUSDT", "15m")
    assert gateway.requests == [("ETHUSDT", "15m", 1000)]
    assert len(chunks) == 10
    assert all(c.indicators["rsi"] == 100.0 for c in chunks)
