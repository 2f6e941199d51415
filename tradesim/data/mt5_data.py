"""
MetaTrader 5 data feed.

`MT5DataFeed` is the `MarketDataSource` used by paper and live trading:
it pulls the most recent bars of one symbol from a running terminal
through the optional `MetaTrader5` package.  Backtests never touch it,
so the package only has to be installed where a terminal runs.

Fetch failures are retried with exponential backoff; once the retries
are exhausted `latest_bars()` returns an empty list, which the live
engine treats as "no new bar this tick".
"""

from __future__ import annotations

import logging
import time
from typing import Callable, List
import pandas as pd

from ..config.schema import MT5Config
from .bars import Bar, bars_from_frame

# Attempt to import MetaTrader5.  If unavailable, mt5 will be None.
try:
    import MetaTrader5 as mt5  # type: ignore
except ImportError:
    mt5 = None  # Will be checked at runtime


logger = logging.getLogger(__name__)

SUPPORTED_TIMEFRAMES = ("M1", "M5", "M15", "M30", "H1", "H4", "D1")


class MT5DataFeed:
    """Handle connection to MetaTrader 5 and retrieval of rates.

    Parameters
    ----------
    config : MT5Config
        Terminal credentials and bar timeframe.
    symbol : str
        Instrument to fetch.
    timezone : str
        Timezone the returned bars are converted to.
    max_retries : int
        Attempts per fetch before giving up for this tick.
    backoff_seconds : float
        Delay before the first retry; doubled after every failure and
        capped at `max_backoff_seconds`.
    sleep : callable
        Sleep function, replaceable in tests.
    """

    def __init__(
        self,
        config: MT5Config,
        symbol: str,
        timezone: str,
        max_retries: int = 3,
        backoff_seconds: float = 1.0,
        max_backoff_seconds: float = 60.0,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.config = config
        self.symbol = symbol
        self.timezone = timezone
        self.timeframe = config.timeframe
        self.max_retries = max_retries
        self.backoff_seconds = backoff_seconds
        self.max_backoff_seconds = max_backoff_seconds
        self._sleep = sleep
        self._connected = False

    def connect(self) -> None:
        """Initialise the MetaTrader 5 terminal.

        Raises
        ------
        RuntimeError
            If the MetaTrader5 package is not installed or initialisation fails.
        """
        if mt5 is None:
            raise RuntimeError(
                "MetaTrader5 package is not installed.  Install it with "
                "'pip install MetaTrader5' to use paper or live trading."
            )
        if not mt5.initialize(
            path=self.config.path,
            login=self.config.login,
            password=self.config.password,
            server=self.config.server,
        ):
            raise RuntimeError(f"MT5 initialisation failed: {mt5.last_error()}")
        if not mt5.symbol_select(self.symbol, True):
            raise RuntimeError(f"MT5 symbol {self.symbol} is not available: {mt5.last_error()}")
        self._connected = True

    def shutdown(self) -> None:
        """Shutdown the MT5 connection if it was opened."""
        if mt5 and self._connected:
            mt5.shutdown()
            self._connected = False

    def _get_mt5_timeframe(self) -> int:
        """Terminal constant of the configured timeframe (``TIMEFRAME_H1`` ...)."""
        if mt5 is None:
            raise RuntimeError("MetaTrader5 package is not installed.")
        name = self.timeframe.upper()
        if name not in SUPPORTED_TIMEFRAMES:
            raise ValueError(f"Unsupported timeframe for MT5: {self.timeframe}")
        return getattr(mt5, f"TIMEFRAME_{name}")

    def get_rates(self, count: int) -> pd.DataFrame:
        """Retrieve the `count` most recent bars.

        Returns
        -------
        pandas.DataFrame
            DataFrame with columns ``open``, ``high``, ``low``, ``close``,
            ``volume`` and an index of timezone-aware ``Timestamp`` in the
            configured timezone.  Empty when the terminal returned nothing.

        Raises
        ------
        RuntimeError
            If the feed is not connected or the terminal reports an error.
        """
        if not self._connected:
            raise RuntimeError("MT5DataFeed is not connected.  Call connect() before requesting data.")
        tf = self._get_mt5_timeframe()
        rates = mt5.copy_rates_from_pos(self.symbol, tf, 0, count)
        if rates is None:
            raise RuntimeError(f"copy_rates_from_pos failed: {mt5.last_error()}")
        if len(rates) == 0:
            return pd.DataFrame()
        df = pd.DataFrame(rates)
        df['time'] = pd.to_datetime(df['time'], unit='s', utc=True)
        df = df.rename(columns={'tick_volume': 'volume'})
        df = df.set_index('time').sort_index()
        df.index = df.index.tz_convert(self.timezone)
        return df[['open', 'high', 'low', 'close', 'volume']]

    def latest_bars(self, count: int) -> List[Bar]:
        """Fetch the latest bars, retrying with exponential backoff.

        Returns an empty list when every attempt failed.
        """
        delay = self.backoff_seconds
        for attempt in range(1, self.max_retries + 1):
            try:
                df = self.get_rates(count)
            except RuntimeError as exc:
                logger.warning(
                    "Failed to fetch %s bars (attempt %d/%d): %s",
                    self.symbol,
                    attempt,
                    self.max_retries,
                    exc,
                )
                if attempt == self.max_retries:
                    break
                self._sleep(delay)
                delay = min(delay * 2, self.max_backoff_seconds)
                continue
            return bars_from_frame(df) if not df.empty else []
        logger.error("Giving up on %s bars for this tick", self.symbol)
        return []
