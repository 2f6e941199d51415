"""
Backtest execution engine.

This module contains the `BacktestEngine` class which replays a
sequence of historical bars through a `TradingSession`: every bar from
the warm-up offset onward is processed in order, the equity after each
bar is recorded, and whatever is still open after the last bar is
force-closed at its close.  Each call to `run()` starts from a fresh
ledger and a fresh risk state, so one engine can run several
backtests.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence

from ..config.schema import Config
from ..data.bars import Bar
from ..risk.policy import RiskPolicy
from ..strategy.base import Strategy
from ..utils.timeutils import trading_day
from .costs import CostModel
from .ledger import LedgerSummary, PositionLedger, counter_ids
from .models import EquityPoint, Trade
from .session import TradingSession


logger = logging.getLogger(__name__)

END_OF_SIMULATION = 'end of simulation'


@dataclass
class BacktestResult:
    """Outcome of one backtest run.

    Attributes
    ----------
    summary : LedgerSummary
        Ledger statistics after the final force-close.
    trades : list of Trade
        Every closed trade (including partial takes) in closing order.
    equity_curve : list of EquityPoint
        Equity marked at the close of each processed bar.
    bars : list of Bar
        The bars the run was given, warm-up included.
    initial_balance : float
        Starting balance of the run.
    bars_in_market : int
        Number of processed bars that ended with at least one open position.
    """
    summary: LedgerSummary
    trades: List[Trade] = field(default_factory=list)
    equity_curve: List[EquityPoint] = field(default_factory=list)
    bars: List[Bar] = field(default_factory=list)
    initial_balance: float = 0.0
    bars_in_market: int = 0


class BacktestEngine:
    """Run a strategy over historical bars.

    Parameters
    ----------
    config : Config
        Run configuration; `initial_balance`, `risk`, `trading_costs`,
        `backtest.warmup_bars` and `data.timezone` are used.
    strategy : Strategy
        Signal source.
    cost_model : CostModel, optional
        Overrides the model built from ``config.trading_costs``.
    id_factory : callable, optional
        Factory for position ids.  A fresh ``pos-1, pos-2, ...`` counter is
        used for every run when omitted.
    """

    def __init__(
        self,
        config: Config,
        strategy: Strategy,
        cost_model: Optional[CostModel] = None,
        id_factory: Optional[Callable[[], str]] = None,
    ) -> None:
        self.config = config
        self.strategy = strategy
        self.cost_model = cost_model or CostModel.from_config(config.trading_costs)
        self.id_factory = id_factory

    def _new_session(self, first_bar: Optional[Bar]) -> TradingSession:
        tz = self.config.data.timezone
        first_day = trading_day(first_bar.timestamp, tz) if first_bar is not None else None
        risk = RiskPolicy(
            self.config.risk,
            self.config.initial_balance,
            clock=(lambda: first_day) if first_day is not None else None,
        )
        ledger = PositionLedger(
            self.config.initial_balance,
            id_factory=self.id_factory or counter_ids(),
        )
        return TradingSession(
            self.config,
            self.strategy,
            cost_model=self.cost_model,
            ledger=ledger,
            risk=risk,
        )

    def run(self, bars: Sequence[Bar], warmup: Optional[int] = None) -> BacktestResult:
        """Execute the backtest.

        Parameters
        ----------
        bars : sequence of Bar
            Historical bars, oldest first.
        warmup : int, optional
            Index of the first bar to trade on.  Defaults to
            ``config.backtest.warmup_bars``.

        Returns
        -------
        BacktestResult
            Summary, trades and equity curve.  Empty input, or a warm-up
            that leaves no bar to process, yields an empty result.
        """
        bars = list(bars)
        start = self.config.backtest.warmup_bars if warmup is None else warmup
        start = max(0, start)
        initial = self.config.initial_balance
        session = self._new_session(bars[start] if start < len(bars) else None)

        if start >= len(bars):
            logger.warning(
                "Nothing to backtest: %d bars with a warm-up of %d", len(bars), start
            )
            return BacktestResult(
                summary=session.ledger.summary(),
                bars=bars,
                initial_balance=initial,
            )

        logger.info("=" * 60)
        logger.info("BACKTEST START")
        logger.info("Strategy: %s", self.strategy.name)
        logger.info("Period: %s to %s", bars[0].timestamp, bars[-1].timestamp)
        logger.info("Bars: %d | Initial balance: %.2f", len(bars), initial)
        logger.info("=" * 60)

        equity_curve: List[EquityPoint] = []
        bars_in_market = 0
        for index in range(start, len(bars)):
            session.process_bar(bars, index)
            bar = bars[index]
            if session.ledger.open_count:
                bars_in_market += 1
            equity_curve.append(EquityPoint(timestamp=bar.timestamp, equity=session.ledger.equity(bar.close)))

        last = bars[-1]
        if session.close_all(last, END_OF_SIMULATION):
            equity_curve[-1] = EquityPoint(timestamp=last.timestamp, equity=session.ledger.equity(last.close))

        summary = session.ledger.summary(last.close)
        logger.info("=" * 60)
        logger.info("BACKTEST RESULTS")
        logger.info("=" * 60)
        for key, value in summary.to_dict().items():
            logger.info("  %-20s: %s", key, value)
        logger.info("=" * 60)

        return BacktestResult(
            summary=summary,
            trades=list(session.ledger.trades),
            equity_curve=equity_curve,
            bars=bars,
            initial_balance=initial,
            bars_in_market=bars_in_market,
        )
