"""
CSV data loader.

This module provides a class to load historical OHLCV data from CSV
files.  Two layouts are understood.  The standard one is

```
time,open,high,low,close,volume
```

where only `time`, `open`, `high`, `low` and `close` are required and
additional columns are ignored.  The `time` column should contain
ISO-formatted timestamps.  The second is the tab-separated export
written by MetaTrader 5 (``<DATE>``, ``<TIME>``, ``<OPEN>`` ...).
Timestamps are converted to the timezone specified in the
configuration.
"""

from __future__ import annotations

from pathlib import Path
from typing import List
import pandas as pd

from .bars import Bar, bars_from_frame


OHLCV = ['open', 'high', 'low', 'close', 'volume']


class CSVDataLoader:
    """Load OHLCV data from CSV files for backtesting.

    Parameters
    ----------
    csv_dir : str
        Directory where the CSV files are located.  Each symbol's file
        must be named `{SYMBOL}.csv`.
    timezone : str
        IANA timezone name used to localise timestamps.
    """

    def __init__(self, csv_dir: str, timezone: str) -> None:
        self.csv_dir = Path(csv_dir)
        self.timezone = timezone

    def path_for(self, symbol: str) -> Path:
        return self.csv_dir / f"{symbol}.csv"

    def load(self, symbol: str) -> pd.DataFrame:
        """Load the bars of `symbol` as a DataFrame indexed by local time.

        Raises
        ------
        FileNotFoundError
            If ``{csv_dir}/{symbol}.csv`` does not exist.
        ValueError
            If the file matches neither supported layout.
        """
        file_path = self.path_for(symbol)
        if not file_path.exists():
            raise FileNotFoundError(f"CSV file not found for symbol {symbol}: {file_path}")

        header = pd.read_csv(file_path, nrows=0)
        if "time" in header.columns:
            return self._load_standard(file_path)
        return self._load_mt5_export(file_path, symbol)

    def load_bars(self, symbol: str) -> List[Bar]:
        return bars_from_frame(self.load(symbol))

    def _localise(self, index: pd.DatetimeIndex) -> pd.DatetimeIndex:
        if index.tz is None:
            return index.tz_localize(self.timezone)
        return index.tz_convert(self.timezone)

    def _load_standard(self, file_path: Path) -> pd.DataFrame:
        df = pd.read_csv(file_path)
        missing = [c for c in OHLCV[:4] if c not in df.columns]
        if missing:
            raise ValueError(f"{file_path} is missing columns: {missing}")
        df["time"] = pd.to_datetime(df["time"], errors="raise")
        df = df.set_index("time").sort_index()
        df.index = self._localise(pd.DatetimeIndex(df.index))
        if "volume" not in df.columns:
            df["volume"] = df["tick_volume"] if "tick_volume" in df.columns else 0.0
        return df[OHLCV].astype(float)

    def _load_mt5_export(self, file_path: Path, symbol: str) -> pd.DataFrame:
        df = pd.read_csv(file_path, sep="\t", engine="python")
        df.columns = [c.strip() for c in df.columns]

        required = ["<DATE>", "<TIME>", "<OPEN>", "<HIGH>", "<LOW>", "<CLOSE>"]
        missing = [c for c in required if c not in df.columns]
        if missing:
            raise ValueError(
                f"Unrecognized CSV format for {symbol}. Missing columns: {missing}. "
                f"Found columns: {list(df.columns)}"
            )

        dt = df["<DATE>"].astype(str).str.strip() + " " + df["<TIME>"].astype(str).str.strip()
        ts = pd.to_datetime(dt, format="%Y.%m.%d %H:%M:%S", errors="coerce")
        if ts.isna().any():
            ts = pd.to_datetime(dt, errors="coerce")
        if ts.isna().any():
            bad = dt[ts.isna()].head(5).tolist()
            raise ValueError(f"Could not parse MT5 DATE/TIME for {symbol}. Examples: {bad}")

        volume_col = "<VOL>" if "<VOL>" in df.columns else "<TICKVOL>"
        out = pd.DataFrame(
            {
                "open": df["<OPEN>"].astype(float),
                "high": df["<HIGH>"].astype(float),
                "low": df["<LOW>"].astype(float),
                "close": df["<CLOSE>"].astype(float),
                "volume": df[volume_col].astype(float) if volume_col in df.columns else 0.0,
            },
        )
        out.index = pd.DatetimeIndex(ts)
        out = out.sort_index()

        # MT5 exports carry terminal (broker) local time.
        out.index = out.index.tz_localize(self.timezone)
        return out
