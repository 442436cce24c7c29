"""Technical indicators — EMA, MACD, RSI, Bollinger Bands, volatility.

Pure functions over a close-price series, no I/O. Series outputs have the
same length as the input; entries before an indicator is ready are
``float('nan')``.
"""

import math
from typing import Sequence

from tradeloop.exchange.models import Candle


def closes_of(candles: Sequence[Candle]) -> list[float]:
    """Return the close prices of *candles*, oldest first."""
    return [c.close for c in candles]


def calculate_ema(values: Sequence[float], period: int) -> list[float]:
    """Calculate an Exponential Moving Average series.

    Uses the standard EMA formula:
        ``EMA_today = value × k + EMA_yesterday × (1 - k)``
    where ``k = 2 / (period + 1)``.

    Leading ``nan`` entries in *values* are skipped; the first EMA value is
    seeded with the SMA of the first *period* defined values.

    Raises ``ValueError`` if fewer than *period* defined values are provided.
    """
    start = 0
    while start < len(values) and math.isnan(values[start]):
        start += 1

    if len(values) - start < period:
        raise ValueError(
            f"Need at least {period} values for EMA({period}), "
            f"got {len(values) - start}"
        )

    k = 2.0 / (period + 1)
    ema: list[float] = [float("nan")] * len(values)

    seed_end = start + period
    ema[seed_end - 1] = sum(values[start:seed_end]) / period

    for i in range(seed_end, len(values)):
        ema[i] = values[i] * k + ema[i - 1] * (1 - k)

    return ema


# ── MACD ─────────────────────────────────────────────────────────────────


def calculate_macd(
    values: Sequence[float],
    fast_period: int = 12,
    slow_period: int = 26,
    signal_period: int = 9,
) -> tuple[list[float], list[float], list[float]]:
    """Calculate MACD line, signal line and histogram.

    MACD      = EMA(fast) − EMA(slow)
    Signal    = EMA(MACD, *signal_period*)
    Histogram = MACD − Signal

    Requires at least ``slow_period + signal_period - 1`` values for the
    first signal point.

    Returns ``(macd, signal, histogram)``.
    """
    min_values = slow_period + signal_period - 1
    if len(values) < min_values:
        raise ValueError(
            f"Need at least {min_values} values for "
            f"MACD({fast_period},{slow_period},{signal_period}), got {len(values)}"
        )

    fast = calculate_ema(values, fast_period)
    slow = calculate_ema(values, slow_period)
    macd = [f - s for f, s in zip(fast, slow)]  # nan until slow is seeded
    signal = calculate_ema(macd, signal_period)
    histogram = [m - s for m, s in zip(macd, signal)]
    return macd, signal, histogram


# ── RSI ──────────────────────────────────────────────────────────────────


def calculate_rsi(values: Sequence[float], period: int = 14) -> list[float]:
    """Calculate Wilder's Relative Strength Index.

    Algorithm (Wilder-smoothed):
        1. delta = close[i] - close[i-1]
        2. Separate gains (positive) and losses (|negative|).
        3. Seed average gain/loss = SMA of first *period* deltas.
        4. Subsequent: avg = (prev_avg × (period-1) + current) / period
        5. RS = avg_gain / avg_loss
        6. RSI = 100 - 100 / (1 + RS)

    Requires at least ``period + 1`` values.
    """
    if len(values) < period + 1:
        raise ValueError(
            f"Need at least {period + 1} values for RSI({period}), "
            f"got {len(values)}"
        )

    deltas = [values[i] - values[i - 1] for i in range(1, len(values))]
    gains = [max(d, 0.0) for d in deltas]
    losses = [abs(min(d, 0.0)) for d in deltas]

    rsi: list[float] = [float("nan")] * len(values)

    avg_gain = sum(gains[:period]) / period
    avg_loss = sum(losses[:period]) / period

    def _rsi_from_avgs(ag: float, al: float) -> float:
        if al == 0:
            return 100.0
        rs = ag / al
        return 100.0 - 100.0 / (1.0 + rs)

    rsi[period] = _rsi_from_avgs(avg_gain, avg_loss)

    for i in range(period, len(deltas)):
        avg_gain = (avg_gain * (period - 1) + gains[i]) / period
        avg_loss = (avg_loss * (period - 1) + losses[i]) / period
        # Index in rsi is i+1 because deltas are offset by 1
        rsi[i + 1] = _rsi_from_avgs(avg_gain, avg_loss)

    return rsi


# ── Bollinger Bands ──────────────────────────────────────────────────────


def calculate_bollinger(
    values: Sequence[float],
    period: int = 20,
    std_dev: float = 2.0,
) -> tuple[list[float], list[float], list[float]]:
    """Calculate Bollinger Bands.

    Middle = SMA(close, *period*)
    Upper  = middle + *std_dev* × σ
    Lower  = middle − *std_dev* × σ

    σ is the population standard deviation of the window.

    Returns ``(upper, middle, lower)``.
    """
    if len(values) < period:
        raise ValueError(
            f"Need at least {period} values for Bollinger({period}), "
            f"got {len(values)}"
        )

    n = len(values)
    upper: list[float] = [float("nan")] * n
    middle: list[float] = [float("nan")] * n
    lower: list[float] = [float("nan")] * n

    for i in range(period - 1, n):
        window = values[i - period + 1 : i + 1]
        sma = sum(window) / period
        variance = sum((x - sma) ** 2 for x in window) / period
        sigma = math.sqrt(variance)

        middle[i] = sma
        upper[i] = sma + std_dev * sigma
        lower[i] = sma - std_dev * sigma

    return upper, middle, lower


# ── Volatility ───────────────────────────────────────────────────────────


def calculate_volatility(values: Sequence[float]) -> float:
    """Population standard deviation of close-to-close returns, in percent.

    Returns ``0.0`` when fewer than two values are given.
    """
    returns = [
        (values[i] - values[i - 1]) / values[i - 1]
        for i in range(1, len(values))
        if values[i - 1] != 0
    ]
    if not returns:
        return 0.0
    mean = sum(returns) / len(returns)
    variance = sum((r - mean) ** 2 for r in returns) / len(returns)
    return math.sqrt(variance) * 100.0
