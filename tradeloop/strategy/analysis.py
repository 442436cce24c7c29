"""Historical market analysis — per-chunk summaries of a candle history.

Splits a long candle history into consecutive fixed-size chunks and reports
price change, return volatility, traded volume and the latest value of every
indicator the signal strategies use. Read-only: nothing here trades.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Optional, Sequence

from tradeloop.exchange.models import Candle
from tradeloop.strategy.indicators import (
    calculate_bollinger,
    calculate_ema,
    calculate_macd,
    calculate_rsi,
    calculate_volatility,
    closes_of,
)

HISTORY_LIMIT = 1000
CHUNK_SIZE = 100


@dataclass(frozen=True)
class ChunkAnalysis:
    """Summary of one chunk of consecutive candles."""

    time_start: int
    time_end: int
    price_change_pct: float
    volatility: float
    volume: float
    indicators: dict = field(default_factory=dict)


def _last(series: Sequence[float]) -> Optional[float]:
    if not series or math.isnan(series[-1]):
        return None
    return series[-1]


def latest_indicators(closes: Sequence[float]) -> dict:
    """RSI(14), MACD(12,26,9), Bollinger(20,2), EMA9 and EMA21 at the last close.

    Indicators without enough history are reported as ``None``.
    """
    result: dict = {"rsi": None, "macd": None, "bollinger": None, "ema9": None, "ema21": None}

    if len(closes) >= 15:
        rsi = _last(calculate_rsi(closes, 14))
        result["rsi"] = round(rsi, 2) if rsi is not None else None

    if len(closes) >= 34:
        macd, signal, histogram = calculate_macd(closes)
        if _last(signal) is not None:
            result["macd"] = {
                "macd": macd[-1],
                "signal": signal[-1],
                "histogram": histogram[-1],
            }

    if len(closes) >= 20:
        upper, middle, lower = calculate_bollinger(closes, 20, 2.0)
        result["bollinger"] = {"upper": upper[-1], "middle": middle[-1], "lower": lower[-1]}

    if len(closes) >= 9:
        result["ema9"] = _last(calculate_ema(closes, 9))
    if len(closes) >= 21:
        result["ema21"] = _last(calculate_ema(closes, 21))

    return result


def analyse_chunk(candles: Sequence[Candle]) -> ChunkAnalysis:
    """Summarise one non-empty run of candles, oldest first."""
    if not candles:
        raise ValueError("Cannot analyse an empty chunk")
    closes = closes_of(candles)
    first, last = closes[0], closes[-1]
    change = (last - first) / first * 100.0 if first else 0.0
    return ChunkAnalysis(
        time_start=candles[0].time,
        time_end=candles[-1].time,
        price_change_pct=change,
        volatility=calculate_volatility(closes),
        volume=sum(c.volume for c in candles),
        indicators=latest_indicators(closes),
    )


def analyse_history(
    candles: Sequence[Candle], chunk_size: int = CHUNK_SIZE
) -> list[ChunkAnalysis]:
    """Analyse every full chunk of *candles*, oldest chunk first.

    A trailing partial chunk is ignored.
    """
    if chunk_size <= 0:
        raise ValueError("chunk_size must be positive")
    return [
        analyse_chunk(candles[start:start + chunk_size])
        for start in range(0, len(candles) - chunk_size + 1, chunk_size)
    ]


async def fetch_history_analysis(
    gateway,
    symbol: str,
    timeframe: str,
    limit: int = HISTORY_LIMIT,
    chunk_size: int = CHUNK_SIZE,
) -> list[ChunkAnalysis]:
    """Fetch *limit* candles from *gateway* and analyse them in chunks."""
    candles = await gateway.get_candles(symbol, timeframe, limit)
    return analyse_history(candles, chunk_size)
