"""
Per-bar trading step shared by the backtest and live engines.

`TradingSession` owns one ledger and one risk policy and knows how to
advance them by a single bar:

1. roll the trading day over;
2. manage every open position, in a fixed order per position:
   timeout, partial profit-take, trailing-stop update, trailing-stop
   breach, stop-loss / take-profit breach;
3. check halts and admission;
4. ask the strategy for a signal on the bars seen so far;
5. size, gate and open a new position.

At most one full close happens per position per bar.  Nothing that
goes wrong inside a step stops the run: rejected operations are logged
and the step moves on.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from ..config.schema import Config
from ..data.bars import Bar
from ..risk.policy import RiskPolicy
from ..strategy.base import Signal, Strategy, StrategySignal
from ..utils.timeutils import trading_day
from .costs import CostModel
from .errors import InsufficientBalanceError, LedgerError, PositionNotFoundError
from .interfaces import OrderExecutionClient, OrderExecutionError
from .ledger import PositionLedger
from .models import Position, Side, Trade


logger = logging.getLogger(__name__)


@dataclass
class BarOutcome:
    """What happened while processing one bar."""
    index: int
    closed: List[Trade] = field(default_factory=list)
    opened: Optional[Position] = None
    signal: Optional[StrategySignal] = None
    skipped: Optional[str] = None


class TradingSession:
    """Ledger, risk policy and strategy wired together for one run.

    Parameters
    ----------
    config : Config
        Run configuration.
    strategy : Strategy
        Signal source.
    cost_model : CostModel, optional
        Defaults to the model described by ``config.trading_costs``.
    ledger : PositionLedger, optional
        Defaults to a fresh ledger holding ``config.initial_balance``.
    risk : RiskPolicy, optional
        Defaults to a fresh policy built from ``config.risk``.
    order_client : OrderExecutionClient, optional
        When given, every open and close is sent to it and the fill price
        it reports replaces the cost-model price.
    """

    def __init__(
        self,
        config: Config,
        strategy: Strategy,
        cost_model: Optional[CostModel] = None,
        ledger: Optional[PositionLedger] = None,
        risk: Optional[RiskPolicy] = None,
        order_client: Optional[OrderExecutionClient] = None,
    ) -> None:
        self.config = config
        self.strategy = strategy
        self.costs = cost_model or CostModel.from_config(config.trading_costs)
        self.ledger = ledger or PositionLedger(config.initial_balance)
        self.risk = risk or RiskPolicy(config.risk, config.initial_balance)
        self.order_client = order_client

    def process_bar(
        self,
        bars: Sequence[Bar],
        index: int,
        bar_number: Optional[int] = None,
        entries: bool = True,
    ) -> BarOutcome:
        """Advance the run by the bar at `index`.

        Only ``bars[: index + 1]`` is visible to the strategy and the
        sizing logic.  `bar_number` is the position of the bar in the
        whole run, used for entry indices and the holding-period timeout;
        it defaults to `index` and differs from it only when `bars` is a
        rolling window.  With `entries` false only the rollover and the
        exits run.
        """
        window = bars[: index + 1]
        bar = window[-1]
        number = index if bar_number is None else bar_number
        outcome = BarOutcome(index=number)

        # Exits on the first bar of a day belong to that day.
        self.risk.check_day_rollover(
            self.ledger.equity(bar.close),
            today=trading_day(bar.timestamp, self.config.data.timezone),
        )
        self._manage_positions(bar, number, outcome)

        if not entries:
            return outcome
        if self.risk.halted:
            outcome.skipped = f"halted ({self.risk.halt_reason.value})"
            return outcome
        if not self.risk.can_open_position(self.ledger.open_count):
            outcome.skipped = 'max open positions'
            return outcome

        self._evaluate_entry(window, bar, number, outcome)
        return outcome

    def close_all(self, bar: Bar, reason: str) -> List[Trade]:
        """Close every open position at the close of `bar`."""
        closed: List[Trade] = []
        for position in self.ledger.positions:
            trade = self._close(position, bar, reason, stop_fill=False)
            if trade is not None:
                closed.append(trade)
        return closed

    # -- exits -----------------------------------------------------------------

    def _manage_positions(self, bar: Bar, index: int, outcome: BarOutcome) -> None:
        price = bar.close
        for position in self.ledger.positions:
            if self.risk.is_stale(position, index):
                self._collect(outcome, self._close(position, bar, 'stale', stop_fill=False))
                continue

            if self.risk.should_take_partial(position, price):
                partial = self._take_partial(position, bar)
                if partial is not None:
                    outcome.closed.append(partial)
                    position = self.ledger.get(position.id)

            new_stop = self.risk.update_trailing_stop(price, position.trailing_stop, position.side)
            position = self.ledger.update_trailing_stop(position.id, new_stop)

            if self.risk.trailing_stop_hit(position, price):
                self._collect(outcome, self._close(position, bar, 'trailing stop', stop_fill=True))
                continue

            decision = self.risk.check_exit(position, price)
            if decision is not None:
                self._collect(outcome, self._close(position, bar, decision.reason, decision.stop_fill))

    @staticmethod
    def _collect(outcome: BarOutcome, trade: Optional[Trade]) -> None:
        if trade is not None:
            outcome.closed.append(trade)

    def _close(self, position: Position, bar: Bar, reason: str, stop_fill: bool) -> Optional[Trade]:
        fill = self._exit_fill(position, position.quantity, bar.close, stop_fill)
        try:
            result = self.ledger.close_position(position.id, fill, reason, bar.timestamp)
        except PositionNotFoundError as exc:
            logger.error("Close skipped: %s", exc)
            return None
        self.risk.record_pnl(result.pnl, self.ledger.equity(bar.close))
        return result.trade

    def _take_partial(self, position: Position, bar: Bar) -> Optional[Trade]:
        fill = self._exit_fill(position, position.quantity / 2, bar.close, stop_fill=False)
        try:
            result = self.ledger.take_partial_profit(position.id, fill, bar.timestamp)
        except LedgerError as exc:
            logger.error("Partial take skipped: %s", exc)
            return None
        self.risk.record_pnl(result.pnl, self.ledger.equity(bar.close))
        return result.trade

    def _exit_fill(self, position: Position, quantity: float, price: float, stop_fill: bool) -> float:
        modelled = self.costs.exit_fill(price, position.side, stop_fill)
        order_side = Signal.SELL if position.side is Side.LONG else Signal.BUY
        reported = self._send_order(order_side, quantity)
        return reported if reported is not None else modelled

    # -- entries ---------------------------------------------------------------

    def _evaluate_entry(self, window: Sequence[Bar], bar: Bar, index: int, outcome: BarOutcome) -> None:
        evaluation = self.strategy.evaluate(window)
        outcome.signal = evaluation
        if evaluation.signal is Signal.HOLD:
            return
        logger.debug(
            "Signal: %s (confidence: %s%%) - %s",
            evaluation.signal.value,
            evaluation.confidence,
            evaluation.reason,
        )
        if evaluation.confidence < self.config.risk.min_confidence:
            outcome.skipped = 'low confidence'
            return

        side = Side.from_signal(evaluation.signal)
        price = bar.close
        size = self.risk.position_size(self.ledger.balance, price, window)
        if size.quantity <= 0:
            outcome.skipped = 'zero size'
            return

        stop_loss = self.risk.stop_loss(price, side)
        take_profit = self.risk.take_profit(price, side)
        if not self.risk.meets_risk_reward(price, stop_loss, take_profit):
            logger.debug("Skipping trade: risk/reward ratio not met")
            outcome.skipped = 'risk/reward'
            return

        fill = self.costs.entry_fill(price, side)
        if self.order_client is not None:
            try:
                reported = self.order_client.place_market_order(evaluation.signal.value, size.quantity)
            except OrderExecutionError as exc:
                logger.error("Failed to place %s order: %s", evaluation.signal.value, exc)
                outcome.skipped = 'order rejected'
                return
            if reported is not None:
                fill = reported

        try:
            outcome.opened = self.ledger.open_position(
                side,
                fill,
                size.quantity,
                stop_loss,
                take_profit,
                entry_index=index,
                entry_time=bar.timestamp,
                reason=evaluation.reason,
            )
        except InsufficientBalanceError as exc:
            logger.warning("Entry skipped: %s", exc)
            outcome.skipped = 'insufficient balance'

    def _send_order(self, side: Signal, quantity: float) -> Optional[float]:
        if self.order_client is None:
            return None
        try:
            return self.order_client.place_market_order(side.value, quantity)
        except OrderExecutionError as exc:
            logger.error("Failed to close position on venue: %s", exc)
            return None
