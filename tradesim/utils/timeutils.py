"""
Trading day helpers.

The daily loss limit is reset when a bar falls on a new calendar date
in the configured timezone.  Both engines derive that date here so that
backtests and live sessions agree on where a day ends.
"""

from __future__ import annotations

from datetime import date
import pandas as pd


def to_timezone(ts: pd.Timestamp, tz_name: str) -> pd.Timestamp:
    """Express `ts` in `tz_name`; naive timestamps are taken as UTC."""
    ts = pd.Timestamp(ts)
    if ts.tzinfo is None:
        ts = ts.tz_localize("UTC")
    return ts.tz_convert(tz_name)


def trading_day(ts: pd.Timestamp, tz_name: str) -> date:
    """Calendar date the bar stamped `ts` belongs to in `tz_name`.

    Examples
    --------
    >>> trading_day(pd.Timestamp("2025-01-01 23:30", tz="UTC"), "Europe/Rome")
    datetime.date(2025, 1, 2)
    """
    return to_timezone(ts, tz_name).date()
