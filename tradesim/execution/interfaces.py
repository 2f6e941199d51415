"""
Interfaces of the collaborators the live engine depends on.

`MarketDataSource` supplies bars and `OrderExecutionClient` places
market orders.  The MetaTrader 5 implementations live in
`tradesim.data.mt5_data` and `tradesim.execution.mt5_exec`; tests use
in-memory fakes.
"""

from __future__ import annotations

from typing import List, Optional, Protocol

from ..data.bars import Bar


class OrderExecutionError(RuntimeError):
    """An order could not be placed or was rejected by the venue."""


class MarketDataSource(Protocol):
    def latest_bars(self, count: int) -> List[Bar]:
        """Return up to `count` most recent bars, oldest first.

        An empty list means no data is available this tick; it is not an
        error.
        """
        ...


class OrderExecutionClient(Protocol):
    def place_market_order(self, side: str, quantity: float) -> Optional[float]:
        """Send a market order (`side` is ``BUY`` or ``SELL``).

        Returns the fill price reported by the venue, or `None` when the
        venue does not report one.  Raises `OrderExecutionError` when the
        order is rejected.
        """
        ...
