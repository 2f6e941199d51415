"""
Position, trade and equity models.

These dataclasses represent the objects passed between the risk
policy, the ledger and the execution engines.  Positions and trades
are frozen: the ledger replaces a stored position when its protective
levels change, so a caller holding an instance never sees it mutate.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional
import pandas as pd


class Side(str, Enum):
    """Direction of a position."""
    LONG = 'long'
    SHORT = 'short'

    @classmethod
    def from_signal(cls, signal: str) -> 'Side':
        """Map a ``BUY``/``SELL`` strategy signal onto a position side."""
        value = getattr(signal, 'value', signal)
        if value == 'BUY':
            return cls.LONG
        if value == 'SELL':
            return cls.SHORT
        raise ValueError(f"No position side for signal {signal!r}")

    @property
    def sign(self) -> int:
        return 1 if self is Side.LONG else -1


@dataclass(frozen=True)
class Position:
    """An open exposure with its entry terms and protective levels."""
    id: str
    side: Side
    entry_price: float
    quantity: float
    entry_cost: float
    stop_loss: float
    take_profit: float
    trailing_stop: float
    entry_index: int
    entry_time: Optional[pd.Timestamp] = None
    partial_taken: bool = False
    reason: str = ''

    def pnl_at(self, price: float) -> float:
        """P&L of the whole position if it were closed at `price`."""
        return (price - self.entry_price) * self.quantity * self.side.sign


@dataclass(frozen=True)
class Trade:
    """Closed, realized record of a former position (or part of one)."""
    id: str
    side: Side
    entry_price: float
    quantity: float
    entry_cost: float
    stop_loss: float
    take_profit: float
    trailing_stop: float
    entry_index: int
    entry_time: Optional[pd.Timestamp]
    partial_taken: bool
    reason: str
    exit_price: float
    exit_time: Optional[pd.Timestamp]
    exit_reason: str
    pnl: float
    pnl_pct: float

    @property
    def is_win(self) -> bool:
        return self.pnl > 0


@dataclass
class EquityPoint:
    """Represents the account equity at a given timestamp."""
    timestamp: pd.Timestamp
    equity: float
