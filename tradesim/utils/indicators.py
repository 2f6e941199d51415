"""
Technical indicators.

Pure functions over sequences of floats (typically closing prices).
Every function returns a list aligned with its input.  Slots that do
not yet have enough history hold the `WARMUP` marker instead of a
number, so callers have to test readiness explicitly with
`is_ready()` before doing arithmetic.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import List, Sequence, Union

from ..data.bars import Bar


class _Warmup:
    """Marker for an indicator slot without enough history."""

    _instance = None

    def __new__(cls) -> '_Warmup':
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return 'WARMUP'


WARMUP = _Warmup()

Reading = Union[float, _Warmup]


def is_ready(*values: Reading) -> bool:
    """Return `True` when none of `values` is the warm-up marker."""
    return all(v is not WARMUP for v in values)


@dataclass(frozen=True)
class MacdLines:
    macd: List[Reading]
    signal: List[Reading]
    histogram: List[Reading]


@dataclass(frozen=True)
class Bands:
    upper: List[Reading]
    middle: List[Reading]
    lower: List[Reading]


def sma(data: Sequence[float], period: int) -> List[Reading]:
    """Simple moving average."""
    result: List[Reading] = []
    window_sum = 0.0
    for i, value in enumerate(data):
        window_sum += value
        if i >= period:
            window_sum -= data[i - period]
        result.append(window_sum / period if i >= period - 1 else WARMUP)
    return result


def ema(data: Sequence[float], period: int) -> List[Reading]:
    """Exponential moving average seeded with the SMA of the first window."""
    result: List[Reading] = []
    k = 2.0 / (period + 1)
    prev: Reading = WARMUP
    for i, value in enumerate(data):
        if i < period - 1:
            result.append(WARMUP)
            continue
        if prev is WARMUP:
            prev = sum(data[i - period + 1:i + 1]) / period
        else:
            prev = value * k + prev * (1 - k)
        result.append(prev)
    return result


def rsi(data: Sequence[float], period: int = 14) -> List[Reading]:
    """Relative Strength Index with Wilder smoothing.

    The average gain and loss are seeded with the simple mean of the
    first `period` price changes and then blended recursively:
    ``avg = (prev_avg * (period - 1) + current) / period``.
    """
    result: List[Reading] = [WARMUP] if data else []
    avg_gain = avg_loss = 0.0
    gains: List[float] = []
    losses: List[float] = []
    for i in range(1, len(data)):
        change = data[i] - data[i - 1]
        gain = max(change, 0.0)
        loss = max(-change, 0.0)
        if i < period:
            gains.append(gain)
            losses.append(loss)
            result.append(WARMUP)
            continue
        if i == period:
            gains.append(gain)
            losses.append(loss)
            avg_gain = sum(gains) / period
            avg_loss = sum(losses) / period
        else:
            avg_gain = (avg_gain * (period - 1) + gain) / period
            avg_loss = (avg_loss * (period - 1) + loss) / period
        if avg_loss == 0:
            result.append(50.0 if avg_gain == 0 else 100.0)
        else:
            rs = avg_gain / avg_loss
            result.append(100.0 - 100.0 / (1.0 + rs))
    return result


def macd(data: Sequence[float], fast_period: int = 12, slow_period: int = 26,
         signal_period: int = 9) -> MacdLines:
    """MACD line, its signal line and the histogram between them."""
    fast = ema(data, fast_period)
    slow = ema(data, slow_period)
    macd_line: List[Reading] = [
        f - s if is_ready(f, s) else WARMUP for f, s in zip(fast, slow)
    ]
    valid = [m for m in macd_line if m is not WARMUP]
    pad = len(macd_line) - len(valid)
    signal_line: List[Reading] = [WARMUP] * pad + ema(valid, signal_period)
    histogram: List[Reading] = [
        m - s if is_ready(m, s) else WARMUP for m, s in zip(macd_line, signal_line)
    ]
    return MacdLines(macd=macd_line, signal=signal_line, histogram=histogram)


def bollinger_bands(data: Sequence[float], period: int = 20,
                    num_std_dev: float = 2.0) -> Bands:
    """Bollinger Bands around an SMA using the population standard deviation."""
    middle = sma(data, period)
    upper: List[Reading] = []
    lower: List[Reading] = []
    for i, mid in enumerate(middle):
        if mid is WARMUP:
            upper.append(WARMUP)
            lower.append(WARMUP)
            continue
        window = data[i - period + 1:i + 1]
        std = math.sqrt(sum((x - mid) ** 2 for x in window) / period)
        upper.append(mid + num_std_dev * std)
        lower.append(mid - num_std_dev * std)
    return Bands(upper=upper, middle=middle, lower=lower)


def true_ranges(highs: Sequence[float], lows: Sequence[float],
                closes: Sequence[float]) -> List[float]:
    """True range per bar; the first bar has no previous close and uses high-low."""
    ranges: List[float] = []
    for i in range(len(closes)):
        if i == 0:
            ranges.append(highs[i] - lows[i])
            continue
        ranges.append(max(
            highs[i] - lows[i],
            abs(highs[i] - closes[i - 1]),
            abs(lows[i] - closes[i - 1]),
        ))
    return ranges


def atr(highs: Sequence[float], lows: Sequence[float], closes: Sequence[float],
        period: int = 14) -> List[Reading]:
    """Average True Range as the SMA of true ranges."""
    return sma(true_ranges(highs, lows, closes), period)


def latest_atr(bars: Sequence[Bar], period: int = 14) -> Reading:
    """ATR of the most recent `period` true ranges of `bars`.

    Needs ``period + 1`` bars so every range in the window has a previous
    close.
    """
    if len(bars) < period + 1:
        return WARMUP
    recent = bars[-(period + 1):]
    total = 0.0
    for prev, bar in zip(recent, recent[1:]):
        total += max(
            bar.high - bar.low,
            abs(bar.high - prev.close),
            abs(bar.low - prev.close),
        )
    return total / period
