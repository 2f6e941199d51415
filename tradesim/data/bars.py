"""
Price bar model and DataFrame conversions.

Loaders in this package produce pandas DataFrames indexed by a
timezone-aware timestamp.  The simulation works on plain immutable
`Bar` records instead, so these helpers convert between the two.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List, Sequence
import pandas as pd


@dataclass(frozen=True)
class Bar:
    """One OHLCV sample.  Sequences of bars are ordered by `timestamp`."""
    timestamp: pd.Timestamp
    open: float
    high: float
    low: float
    close: float
    volume: float = 0.0


def bars_from_frame(df: pd.DataFrame) -> List[Bar]:
    """Convert an OHLC(V) DataFrame into a list of bars.

    The frame must be indexed by timestamp and contain the columns
    ``open``, ``high``, ``low`` and ``close``.  A missing ``volume``
    column is treated as zero volume.  Rows are sorted by time first.
    """
    missing = [c for c in ('open', 'high', 'low', 'close') if c not in df.columns]
    if missing:
        raise ValueError(f"Bar frame is missing columns: {missing}")
    df = df.sort_index()
    volumes = df['volume'] if 'volume' in df.columns else pd.Series(0.0, index=df.index)
    return [
        Bar(
            timestamp=pd.Timestamp(ts),
            open=float(o),
            high=float(h),
            low=float(l),
            close=float(c),
            volume=float(v),
        )
        for ts, o, h, l, c, v in zip(
            df.index, df['open'], df['high'], df['low'], df['close'], volumes
        )
    ]


def frame_from_bars(bars: Iterable[Bar]) -> pd.DataFrame:
    """Inverse of `bars_from_frame`."""
    rows = [
        {
            'time': b.timestamp,
            'open': b.open,
            'high': b.high,
            'low': b.low,
            'close': b.close,
            'volume': b.volume,
        }
        for b in bars
    ]
    if not rows:
        return pd.DataFrame(columns=['open', 'high', 'low', 'close', 'volume'])
    return pd.DataFrame(rows).set_index('time')


def closes(bars: Sequence[Bar]) -> List[float]:
    """Closing prices of `bars` in order."""
    return [b.close for b in bars]
