"""
Combined strategy.

Evaluates the EMA crossover, RSI, MACD and Bollinger strategies on the
same window and only trades when enough of them agree on a direction
(and more of them agree on it than on the opposite one).  The
confidence of the combined signal is the median confidence of the
agreeing strategies.
"""

from __future__ import annotations

import statistics
from typing import List, Sequence, Tuple

from ..config.schema import CombinedParams
from ..data.bars import Bar
from .base import Signal, Strategy, StrategySignal


class CombinedStrategy(Strategy):
    """Require several child strategies to confirm a signal."""

    name = 'Combined'

    def __init__(self, params: CombinedParams, children: Sequence[Strategy]) -> None:
        self.params = params
        self.children = list(children)

    def evaluate(self, bars: Sequence[Bar]) -> StrategySignal:
        results: List[Tuple[str, StrategySignal]] = [
            (child.name, child.evaluate(bars)) for child in self.children
        ]
        details = ' | '.join(
            f"{name}: {r.signal.value} ({r.confidence}%) - {r.reason}" for name, r in results
        )
        buys = [r for _, r in results if r.signal is Signal.BUY]
        sells = [r for _, r in results if r.signal is Signal.SELL]
        need = self.params.min_confirmations

        for signal, agreeing, opposing in (
            (Signal.BUY, buys, sells),
            (Signal.SELL, sells, buys),
        ):
            if len(agreeing) >= need and len(agreeing) > len(opposing):
                median = _median_confidence(agreeing)
                if median < self.params.min_confidence:
                    return StrategySignal.hold(
                        f"{signal.value.title()} confirmed but low confidence "
                        f"({median}% < {self.params.min_confidence}%) [{details}]"
                    )
                return StrategySignal(
                    signal=signal,
                    confidence=median,
                    reason=(
                        f"{len(agreeing)}/{len(self.children)} strategies agree on "
                        f"{signal.value} (median conf: {median}%) [{details}]"
                    ),
                )

        return StrategySignal.hold(
            f"Insufficient confirmations (buy:{len(buys)} sell:{len(sells)} "
            f"need:{need}) [{details}]"
        )


def _median_confidence(signals: Sequence[StrategySignal]) -> float:
    if not signals:
        return 0
    return round(statistics.median(s.confidence for s in signals))
