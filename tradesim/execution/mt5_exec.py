"""
MetaTrader 5 order execution.

`MT5OrderClient` sends market orders to a MetaTrader 5 terminal and
reports the price they were filled at.  Stops and targets are not
attached to the orders: the trading session manages exits itself and
closes positions with opposite market orders.

**Note**: Placing orders requires the `MetaTrader5` package and a
locally installed MT5 terminal already initialised by
`tradesim.data.mt5_data.MT5DataFeed.connect`.
"""

from __future__ import annotations

import logging
from typing import Optional

from .interfaces import OrderExecutionError

try:
    import MetaTrader5 as mt5  # type: ignore
except ImportError:
    mt5 = None  # Will be checked at runtime


logger = logging.getLogger(__name__)

DEFAULT_DEVIATION_POINTS = 20
MAGIC_NUMBER = 240_915


class MT5OrderClient:
    """Place market orders on one symbol through MetaTrader 5.

    Parameters
    ----------
    symbol : str
        Instrument to trade.
    deviation : int
        Maximum price deviation accepted by the terminal, in points.
    """

    def __init__(self, symbol: str, deviation: int = DEFAULT_DEVIATION_POINTS) -> None:
        self.symbol = symbol
        self.deviation = deviation

    def _volume(self, quantity: float) -> float:
        info = mt5.symbol_info(self.symbol)
        if info is None:
            raise OrderExecutionError(f"Unknown symbol {self.symbol}: {mt5.last_error()}")
        step = info.volume_step or 0.01
        volume = round(round(quantity / step) * step, 8)
        if volume < info.volume_min:
            raise OrderExecutionError(
                f"Quantity {quantity} is below the minimum volume {info.volume_min} for {self.symbol}"
            )
        return min(volume, info.volume_max)

    def place_market_order(self, side: str, quantity: float) -> Optional[float]:
        """Send a ``BUY`` or ``SELL`` market order and return its fill price.

        Raises
        ------
        RuntimeError
            If the MetaTrader5 package is not installed.
        OrderExecutionError
            If the terminal rejects the order.
        """
        if mt5 is None:
            raise RuntimeError("MetaTrader5 package is not installed.")
        side = side.upper()
        if side not in ('BUY', 'SELL'):
            raise ValueError(f"Unknown order side {side!r}")

        tick = mt5.symbol_info_tick(self.symbol)
        if tick is None:
            raise OrderExecutionError(f"No price for {self.symbol}: {mt5.last_error()}")
        is_buy = side == 'BUY'
        request = {
            'action': mt5.TRADE_ACTION_DEAL,
            'symbol': self.symbol,
            'volume': self._volume(quantity),
            'type': mt5.ORDER_TYPE_BUY if is_buy else mt5.ORDER_TYPE_SELL,
            'price': tick.ask if is_buy else tick.bid,
            'deviation': self.deviation,
            'magic': MAGIC_NUMBER,
            'comment': 'tradesim',
            'type_time': mt5.ORDER_TIME_GTC,
            'type_filling': mt5.ORDER_FILLING_IOC,
        }
        logger.info("Placing %s order on %s: volume %s @ %s", side, self.symbol, request['volume'], request['price'])
        result = mt5.order_send(request)
        if result is None:
            raise OrderExecutionError(f"order_send failed: {mt5.last_error()}")
        if result.retcode != mt5.TRADE_RETCODE_DONE:
            raise OrderExecutionError(f"Order rejected (retcode {result.retcode}): {result.comment}")
        return float(result.price) if result.price else None
