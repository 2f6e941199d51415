"""
Paper and live trading engine.

`LiveEngine` drives a `TradingSession` from a polling loop.  Each tick
fetches the latest bars from a `MarketDataSource`, merges them into a
rolling window by timestamp (a bar that is still forming is replaced
by its newer version), and runs the session once for every bar that
has closed since the previous tick.  The most recent bar is treated as
still forming and is never traded on.  When several bars closed since
the previous tick (a slow poll or a restart) the older ones only run
exits; entries are evaluated on the newest closed bar alone.

In ``paper`` mode fills come from the cost model.  In ``live`` mode
every open and close is also sent to an `OrderExecutionClient` and the
fill price it reports is booked instead.  The ledger and risk state
are saved after every tick so that the bot can resume after restarts
without replaying bars.
"""

from __future__ import annotations

import logging
import threading
from typing import List, Optional

from ..config.schema import Config
from ..data.bars import Bar
from ..strategy.base import Strategy
from ..utils.persistence import load_state, restore, save_state, snapshot
from .costs import CostModel
from .interfaces import MarketDataSource, OrderExecutionClient
from .session import BarOutcome, TradingSession


logger = logging.getLogger(__name__)

TICK_FETCH_COUNT = 5
STATUS_EVERY_TICKS = 10


def merge_bars(window: List[Bar], new_bars: List[Bar], max_window: int) -> List[Bar]:
    """Merge `new_bars` into `window` by timestamp and keep the newest `max_window`.

    A new bar whose timestamp is already present replaces the stored one.
    """
    by_time = {b.timestamp: b for b in window}
    for bar in new_bars:
        by_time[bar.timestamp] = bar
    merged = sorted(by_time.values(), key=lambda b: b.timestamp)
    if max_window > 0 and len(merged) > max_window:
        merged = merged[-max_window:]
    return merged


class LiveEngine:
    """Run a strategy against a market data source in paper or live mode.

    Parameters
    ----------
    config : Config
        Run configuration; ``config.mode`` selects paper or live trading
        and ``config.live`` holds the loop options.
    strategy : Strategy
        Signal source.
    data_source : MarketDataSource
        Supplies the most recent bars.
    order_client : OrderExecutionClient, optional
        Required in live mode, ignored in paper mode.
    state_file : str, optional
        Overrides ``config.live.state_file``.  Pass an empty string to
        disable persistence.
    cost_model : CostModel, optional
        Overrides the model built from ``config.trading_costs``.
    """

    def __init__(
        self,
        config: Config,
        strategy: Strategy,
        data_source: MarketDataSource,
        order_client: Optional[OrderExecutionClient] = None,
        state_file: Optional[str] = None,
        cost_model: Optional[CostModel] = None,
    ) -> None:
        self.live = config.mode == 'live'
        if self.live and order_client is None:
            raise ValueError("Live mode needs an order execution client")
        self.config = config
        self.data_source = data_source
        self.state_file = config.live.state_file if state_file is None else state_file
        self.session = TradingSession(
            config,
            strategy,
            cost_model=cost_model,
            order_client=order_client if self.live else None,
        )
        self.bars: List[Bar] = []
        self.last_bar_time = None
        self.bar_count = 0
        self.tick_count = 0
        self._stop = threading.Event()
        self._load_state()

    def _load_state(self) -> None:
        if not self.state_file:
            return
        persisted = load_state(self.state_file)
        if not persisted:
            return
        restored = restore(persisted, self.session.ledger)
        self.session.risk.state = restored.risk
        self.last_bar_time = restored.last_bar_time
        self.bar_count = restored.bar_count
        logger.info(
            "Resumed from %s: balance %.2f, %d open position(s), last bar %s",
            self.state_file,
            self.session.ledger.balance,
            self.session.ledger.open_count,
            self.last_bar_time,
        )

    def _persist_state(self) -> None:
        if not self.state_file:
            return
        save_state(
            self.state_file,
            snapshot(self.session.ledger, self.session.risk.state, self.last_bar_time, self.bar_count),
        )

    # -- loop ----------------------------------------------------------------

    def start(self) -> None:
        """Load the initial history window.

        History bars only warm the strategy up; trading starts with the
        first bar that closes afterwards unless persisted state says
        otherwise.
        """
        history = self.data_source.latest_bars(self.config.live.history_bars)
        self.bars = merge_bars([], history, self.config.live.max_window)
        logger.info("Loaded %d historical bars", len(self.bars))
        if self.last_bar_time is None and len(self.bars) >= 2:
            self.last_bar_time = self.bars[-2].timestamp

    def tick(self) -> List[BarOutcome]:
        """Fetch new bars and process every newly closed bar once."""
        self.tick_count += 1
        latest = self.data_source.latest_bars(TICK_FETCH_COUNT)
        if latest:
            self.bars = merge_bars(self.bars, latest, self.config.live.max_window)

        outcomes: List[BarOutcome] = []
        newest_closed = len(self.bars) - 2
        for index in range(newest_closed + 1):
            bar = self.bars[index]
            if self.last_bar_time is not None and bar.timestamp <= self.last_bar_time:
                continue
            # Older bars caught up in one tick only manage exits.
            outcomes.append(self.session.process_bar(
                self.bars, index, bar_number=self.bar_count, entries=index == newest_closed,
            ))
            self.bar_count += 1
            self.last_bar_time = bar.timestamp

        if self.session.risk.halted and self.tick_count % STATUS_EVERY_TICKS == 0:
            logger.warning("Trading halted by risk manager (%s)", self.session.risk.halt_reason.value)
        if self.tick_count % STATUS_EVERY_TICKS == 0:
            self.log_status()
        self._persist_state()
        return outcomes

    def run_forever(self) -> None:
        """Tick every ``live.poll_interval_seconds`` until `stop()` is called.

        Ticks never overlap: the next one starts only after the previous
        one returned and the poll interval elapsed.  An exception raised
        inside a tick is logged and the loop carries on.
        """
        logger.info("=" * 60)
        logger.info("LIVE TRADING STARTED")
        logger.info(
            "Mode: %s",
            "LIVE TRADING (real orders)" if self.live else "PAPER TRADING (simulated orders, real data)",
        )
        logger.info("Strategy: %s", self.session.strategy.name)
        logger.info("Symbol: %s", self.config.data.symbol)
        logger.info("Initial balance: %.2f", self.config.initial_balance)
        if self.live:
            logger.warning("*** LIVE MODE - REAL ORDERS WILL BE PLACED ***")
        logger.info("=" * 60)

        self.start()
        while not self._stop.is_set():
            try:
                self.tick()
            except Exception:
                logger.exception("Tick failed")
            self._stop.wait(self.config.live.poll_interval_seconds)
        self._persist_state()
        self.log_status()

    def stop(self) -> None:
        """Ask the loop to exit after the tick in progress."""
        logger.info("Trading bot stopping...")
        self._stop.set()

    @property
    def stopped(self) -> bool:
        return self._stop.is_set()

    def log_status(self) -> None:
        if not self.bars:
            return
        price = self.bars[-1].close
        summary = self.session.ledger.summary(price)
        logger.info("--- Status (tick %d) ---", self.tick_count)
        logger.info(
            "  Price: %.2f | Balance: %.2f | Total value: %.2f",
            price,
            self.session.ledger.balance,
            summary.total_value,
        )
        logger.info(
            "  Return: %.2f%% | Win rate: %.1f%% | Trades: %d | Open: %d | Max DD: %.2f%%",
            summary.total_return_pct,
            summary.win_rate_pct,
            summary.total_trades,
            summary.open_positions,
            summary.max_drawdown_pct,
        )
