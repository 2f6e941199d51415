"""
Position ledger.

The ledger owns the cash balance, the open positions and the trade
history of one run.  Opening a position debits its entry cost from the
balance; closing it credits the entry cost plus the realized P&L back,
so at any time

    equity = balance + sum(entry_cost + unrealized_pnl)

over the open positions.  Every operation validates its inputs before
touching state, so a rejected call leaves the ledger exactly as it was.
Prices handed to the ledger are fill prices; applying trading costs is
the caller's job.
"""

from __future__ import annotations

import itertools
import logging
import math
from dataclasses import dataclass, replace
from typing import Callable, Dict, List, Mapping, Optional, Set, Tuple, Union
import pandas as pd

from .errors import InsufficientBalanceError, PartialAlreadyTakenError, PositionNotFoundError
from .models import Position, Side, Trade


logger = logging.getLogger(__name__)

Mark = Union[float, Mapping[str, float]]


def counter_ids(prefix: str = 'pos') -> Callable[[], str]:
    """Return a factory producing ``pos-1``, ``pos-2``, ..."""
    counter = itertools.count(1)
    return lambda: f"{prefix}-{next(counter)}"


@dataclass(frozen=True)
class ClosedTrade:
    pnl: float
    trade: Trade


@dataclass(frozen=True)
class LedgerSummary:
    """Performance summary of a ledger.

    Percentages are in percent.  `profit_factor` is ``inf`` when there
    are winning trades and no losing ones.  The closed half of a partial
    take is a trade of its own and counts toward `total_trades`, `wins`
    (or `losses`) and `win_rate_pct`.
    """
    total_value: float
    total_return_pct: float
    total_pnl: float
    total_trades: int
    wins: int
    losses: int
    win_rate_pct: float
    avg_win_pct: float
    avg_loss_pct: float
    profit_factor: float
    max_drawdown_pct: float
    open_positions: int

    def to_dict(self) -> Dict[str, Union[float, int, str]]:
        """JSON-safe representation; an unbounded profit factor becomes ``"inf"``."""
        return {
            'total_value': round(self.total_value, 2),
            'total_return_pct': round(self.total_return_pct, 4),
            'total_pnl': round(self.total_pnl, 2),
            'total_trades': self.total_trades,
            'wins': self.wins,
            'losses': self.losses,
            'win_rate_pct': round(self.win_rate_pct, 2),
            'avg_win_pct': round(self.avg_win_pct, 4),
            'avg_loss_pct': round(self.avg_loss_pct, 4),
            'profit_factor': 'inf' if math.isinf(self.profit_factor) else round(self.profit_factor, 4),
            'max_drawdown_pct': round(self.max_drawdown_pct, 4),
            'open_positions': self.open_positions,
        }


class PositionLedger:
    """Cash balance, open positions and trade history of one run.

    Parameters
    ----------
    initial_balance : float
        Starting cash.
    id_factory : callable, optional
        Produces position ids.  Defaults to a monotonic counter so runs
        are reproducible.
    """

    def __init__(
        self,
        initial_balance: float,
        id_factory: Optional[Callable[[], str]] = None,
    ) -> None:
        self.initial_balance = initial_balance
        self.balance = initial_balance
        self._positions: Dict[str, Position] = {}
        self._trades: List[Trade] = []
        self._new_id = id_factory or counter_ids()
        self._used_ids: Set[str] = set()

    # -- views ---------------------------------------------------------------

    @property
    def positions(self) -> Tuple[Position, ...]:
        """Open positions in the order they were opened."""
        return tuple(self._positions.values())

    @property
    def open_count(self) -> int:
        return len(self._positions)

    @property
    def trades(self) -> Tuple[Trade, ...]:
        return tuple(self._trades)

    def get(self, position_id: str) -> Position:
        try:
            return self._positions[position_id]
        except KeyError:
            raise PositionNotFoundError(position_id) from None

    # -- mutations -----------------------------------------------------------

    def open_position(
        self,
        side: Side,
        price: float,
        quantity: float,
        stop_loss: float,
        take_profit: float,
        *,
        entry_index: int,
        entry_time: Optional[pd.Timestamp] = None,
        reason: str = '',
    ) -> Position:
        """Open a position at fill price `price`.

        Raises
        ------
        ValueError
            If `price` or `quantity` is not positive.
        InsufficientBalanceError
            If ``price * quantity`` exceeds the available balance.
        """
        if price <= 0 or quantity <= 0:
            raise ValueError(f"Cannot open position with price={price} quantity={quantity}")
        cost = price * quantity
        if cost > self.balance:
            raise InsufficientBalanceError(cost, self.balance)

        position_id = self._new_id()
        # restored state may already hold ids the factory hands out again
        while position_id in self._used_ids:
            position_id = self._new_id()
        self._used_ids.add(position_id)
        position = Position(
            id=position_id,
            side=side,
            entry_price=price,
            quantity=quantity,
            entry_cost=cost,
            stop_loss=stop_loss,
            take_profit=take_profit,
            trailing_stop=stop_loss,
            entry_index=entry_index,
            entry_time=entry_time,
            reason=reason,
        )
        self.balance -= cost
        self._positions[position.id] = position
        logger.info(
            "OPEN %s | qty: %.6f @ %.2f | SL: %.2f | TP: %.2f | %s",
            side.value.upper(),
            quantity,
            price,
            stop_loss,
            take_profit,
            reason,
        )
        return position

    def close_position(
        self,
        position_id: str,
        price: float,
        reason: str,
        exit_time: Optional[pd.Timestamp] = None,
    ) -> ClosedTrade:
        """Close a position at fill price `price` and record the trade.

        Raises
        ------
        PositionNotFoundError
            If no open position has `position_id`.
        """
        position = self.get(position_id)
        pnl = position.pnl_at(price)
        trade = self._record_trade(position, price, reason, exit_time, pnl)
        del self._positions[position_id]
        self.balance += position.entry_cost + pnl
        logger.info(
            "CLOSE %s | %+.2f (%+.1f%%) | entry: %.2f exit: %.2f | %s",
            position.side.value.upper(),
            pnl,
            trade.pnl_pct,
            position.entry_price,
            price,
            reason,
        )
        return ClosedTrade(pnl=pnl, trade=trade)

    def take_partial_profit(
        self,
        position_id: str,
        price: float,
        exit_time: Optional[pd.Timestamp] = None,
    ) -> ClosedTrade:
        """Close half of a position at `price` and move its stop to breakeven.

        The closed half is recorded as a trade with reason
        ``partial take-profit``.  The remaining half keeps its id; its stop
        loss and trailing stop are tightened to the entry price but never
        loosened.

        Raises
        ------
        PositionNotFoundError
            If no open position has `position_id`.
        PartialAlreadyTakenError
            If the position already went through a partial take.
        """
        position = self.get(position_id)
        if position.partial_taken:
            raise PartialAlreadyTakenError(position_id)

        half_qty = position.quantity / 2
        half_cost = position.entry_cost / 2
        closed_half = replace(position, quantity=half_qty, entry_cost=half_cost, partial_taken=True)
        pnl = closed_half.pnl_at(price)
        trade = self._record_trade(closed_half, price, 'partial take-profit', exit_time, pnl)

        if position.side is Side.LONG:
            stop = max(position.stop_loss, position.entry_price)
            trailing = max(position.trailing_stop, position.entry_price)
        else:
            stop = min(position.stop_loss, position.entry_price)
            trailing = min(position.trailing_stop, position.entry_price)
        self._positions[position_id] = replace(
            position,
            quantity=half_qty,
            entry_cost=half_cost,
            stop_loss=stop,
            trailing_stop=trailing,
            partial_taken=True,
        )
        self.balance += half_cost + pnl
        logger.info(
            "PARTIAL %s | %+.2f | qty %.6f closed @ %.2f, stop -> %.2f",
            position.side.value.upper(),
            pnl,
            half_qty,
            price,
            stop,
        )
        return ClosedTrade(pnl=pnl, trade=trade)

    def update_trailing_stop(self, position_id: str, new_stop: float) -> Position:
        """Store a new trailing stop; a looser value than the current one is ignored."""
        position = self.get(position_id)
        if position.side is Side.LONG:
            stop = max(position.trailing_stop, new_stop)
        else:
            stop = min(position.trailing_stop, new_stop)
        if stop != position.trailing_stop:
            position = replace(position, trailing_stop=stop)
            self._positions[position_id] = position
        return position

    def restore(self, balance: float, positions: List[Position], trades: List[Trade]) -> None:
        """Replace the ledger contents, e.g. from persisted state."""
        self.balance = balance
        self._positions = {p.id: p for p in positions}
        self._trades = list(trades)
        self._used_ids = {p.id for p in positions} | {t.id for t in trades}

    def _record_trade(
        self,
        position: Position,
        price: float,
        reason: str,
        exit_time: Optional[pd.Timestamp],
        pnl: float,
    ) -> Trade:
        pnl_pct = pnl / position.entry_cost * 100.0 if position.entry_cost else 0.0
        trade = Trade(
            id=position.id,
            side=position.side,
            entry_price=position.entry_price,
            quantity=position.quantity,
            entry_cost=position.entry_cost,
            stop_loss=position.stop_loss,
            take_profit=position.take_profit,
            trailing_stop=position.trailing_stop,
            entry_index=position.entry_index,
            entry_time=position.entry_time,
            partial_taken=position.partial_taken,
            reason=position.reason,
            exit_price=price,
            exit_time=exit_time,
            exit_reason=reason,
            pnl=pnl,
            pnl_pct=pnl_pct,
        )
        self._trades.append(trade)
        return trade

    # -- valuation -----------------------------------------------------------

    @staticmethod
    def unrealized_pnl(position: Position, mark: float) -> float:
        return position.pnl_at(mark)

    def _mark_for(self, position: Position, mark: Mark) -> float:
        if isinstance(mark, Mapping):
            return mark.get(position.id, position.entry_price)
        return mark

    def equity(self, mark: Mark) -> float:
        """Balance plus the marked value of every open position.

        `mark` is either one price for all positions or a mapping from
        position id to price; positions missing from the mapping are marked
        at their entry price.
        """
        return self.balance + sum(
            p.entry_cost + p.pnl_at(self._mark_for(p, mark)) for p in self._positions.values()
        )

    def summary(self, mark: Optional[Mark] = None) -> LedgerSummary:
        """Compute summary statistics over the trade history.

        Open positions only contribute to `total_value`; when `mark` is
        omitted they are valued at their entry cost.
        """
        total_value = self.equity(mark) if mark is not None else self.equity({})
        trades = self._trades
        wins = [t for t in trades if t.pnl > 0]
        losses = [t for t in trades if t.pnl <= 0]
        gross_win = sum(t.pnl for t in wins)
        gross_loss = sum(abs(t.pnl) for t in losses)
        if gross_loss > 0:
            profit_factor = gross_win / gross_loss
        elif wins:
            profit_factor = math.inf
        else:
            profit_factor = 0.0

        peak = running = self.initial_balance
        max_dd = 0.0
        for trade in trades:
            running += trade.pnl
            peak = max(peak, running)
            if peak > 0:
                max_dd = max(max_dd, (peak - running) / peak * 100.0)

        return LedgerSummary(
            total_value=total_value,
            total_return_pct=(total_value - self.initial_balance) / self.initial_balance * 100.0,
            total_pnl=sum(t.pnl for t in trades),
            total_trades=len(trades),
            wins=len(wins),
            losses=len(losses),
            win_rate_pct=len(wins) / len(trades) * 100.0 if trades else 0.0,
            avg_win_pct=sum(t.pnl_pct for t in wins) / len(wins) if wins else 0.0,
            avg_loss_pct=sum(t.pnl_pct for t in losses) / len(losses) if losses else 0.0,
            profit_factor=profit_factor,
            max_drawdown_pct=min(max_dd, 100.0),
            open_positions=len(self._positions),
        )
