"""
Synthetic market data.

Seeded generators of hourly OHLCV bars for backtests that should not
depend on downloaded history.  `generate_random_walk` is a geometric
random walk with constant drift and volatility;
`generate_trending_market` cycles through uptrend, consolidation,
downtrend and recovery regimes with their own drift and volatility so
that trend-following and mean-reversion strategies both get something
to trade.  Both return DataFrames in the layout produced by
`CSVDataLoader.load`.
"""

from __future__ import annotations

from typing import Optional
import numpy as np
import pandas as pd


DEFAULT_START = "2025-01-01"
DEFAULT_FREQ = "1h"


def _index(start: str, num_bars: int, freq: str, timezone: str) -> pd.DatetimeIndex:
    return pd.date_range(start=pd.Timestamp(start, tz="UTC"), periods=num_bars, freq=freq).tz_convert(timezone)


def _candles(
    rng: np.random.Generator,
    closes: np.ndarray,
    opens: np.ndarray,
    volumes: np.ndarray,
    index: pd.DatetimeIndex,
) -> pd.DataFrame:
    body = np.abs(opens - closes)
    highs = np.maximum(opens, closes) + rng.random(len(closes)) * body * 0.5
    lows = np.minimum(opens, closes) - rng.random(len(closes)) * body * 0.5
    df = pd.DataFrame(
        {
            "open": opens,
            "high": highs,
            "low": lows,
            "close": closes,
            "volume": volumes,
        },
        index=index,
    ).round(2)
    df.index.name = "time"
    return df


def generate_random_walk(
    num_bars: int = 500,
    start_price: float = 40_000.0,
    volatility: float = 0.02,
    trend: float = 0.0001,
    seed: Optional[int] = None,
    start: str = DEFAULT_START,
    freq: str = DEFAULT_FREQ,
    timezone: str = "UTC",
) -> pd.DataFrame:
    """Geometric random walk with a uniform per-bar shock.

    Parameters
    ----------
    num_bars : int
        Number of bars to generate.
    start_price : float
        Open of the first bar.
    volatility : float
        Maximum absolute per-bar return shock.
    trend : float
        Constant per-bar drift.
    seed : int, optional
        Seed of the random generator; equal seeds give equal series.
    """
    rng = np.random.default_rng(seed)
    shocks = (rng.random(num_bars) - 0.5) * 2 * volatility
    growth = np.cumprod(1.0 + trend + shocks)
    closes = start_price * growth
    opens = np.concatenate(([start_price], closes[:-1]))
    volumes = 100 + rng.random(num_bars) * 900
    return _candles(rng, closes, opens, volumes, _index(start, num_bars, freq, timezone))


# regime -> (drift low, drift high, volatility, length low, length high)
_REGIMES = {
    "uptrend": (0.001, 0.003, 0.010, 50, 100),
    "consolidation": (-0.0005, 0.0005, 0.005, 20, 50),
    "downtrend": (-0.003, -0.001, 0.015, 40, 80),
    "recovery": (0.0005, 0.0015, 0.008, 30, 60),
}


def _next_regime(regime: str, rng: np.random.Generator) -> str:
    if regime == "uptrend":
        return "consolidation"
    if regime == "consolidation":
        return "downtrend" if rng.random() > 0.5 else "uptrend"
    if regime == "downtrend":
        return "recovery"
    return "uptrend"


def generate_trending_market(
    num_bars: int = 500,
    start_price: float = 40_000.0,
    seed: Optional[int] = None,
    start: str = DEFAULT_START,
    freq: str = DEFAULT_FREQ,
    timezone: str = "UTC",
) -> pd.DataFrame:
    """Regime-switching market: uptrend, consolidation, downtrend, recovery.

    Each regime lasts a random number of bars drawn from its own range;
    consolidation resolves into either an uptrend or a downtrend with
    equal odds.  Volume is higher during downtrends.
    """
    rng = np.random.default_rng(seed)
    closes = np.empty(num_bars)
    opens = np.empty(num_bars)
    volumes = np.empty(num_bars)

    regime = "uptrend"
    remaining = int(rng.integers(_REGIMES[regime][3], _REGIMES[regime][4]))
    price = start_price
    for i in range(num_bars):
        drift_lo, drift_hi, vol, _, _ = _REGIMES[regime]
        drift = rng.uniform(drift_lo, drift_hi)
        shock = (rng.random() - 0.5) * 2 * vol
        opens[i] = price
        price *= 1.0 + drift + shock
        closes[i] = price
        volumes[i] = (500 if regime == "downtrend" else 200) + rng.random() * 800

        remaining -= 1
        if remaining <= 0:
            regime = _next_regime(regime, rng)
            remaining = int(rng.integers(_REGIMES[regime][3], _REGIMES[regime][4]))

    return _candles(rng, closes, opens, volumes, _index(start, num_bars, freq, timezone))
