"""
Strategy interface.

A strategy turns the bars seen so far into one of three signals:
``BUY``, ``SELL`` or ``HOLD``, with a confidence between 0 and 100 and
a human-readable reason.  Strategies know nothing about positions,
balances or risk; they must be deterministic for a given bar window.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Sequence

from ..data.bars import Bar


class Signal(str, Enum):
    BUY = 'BUY'
    SELL = 'SELL'
    HOLD = 'HOLD'


@dataclass(frozen=True)
class StrategySignal:
    signal: Signal
    confidence: float
    reason: str

    @classmethod
    def hold(cls, reason: str) -> 'StrategySignal':
        return cls(signal=Signal.HOLD, confidence=0, reason=reason)


NOT_ENOUGH_DATA = 'Not enough data'
WARMING_UP = 'Indicator warming up'


class Strategy(ABC):
    """Base class of every strategy in the catalog."""

    name: str = ''

    @abstractmethod
    def evaluate(self, bars: Sequence[Bar]) -> StrategySignal:
        """Evaluate the window `bars` (oldest first, current bar last)."""
        raise NotImplementedError
