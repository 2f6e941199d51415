"""
EMA crossover strategy with a trend filter.

Buys when the fast EMA crosses above the slow EMA while price is above
the trend EMA, and sells on the mirrored crossover below the trend
EMA.  The trend filter keeps the strategy from trading against the
dominant direction.
"""

from __future__ import annotations

from typing import Sequence

from ..config.schema import EmaCrossoverParams
from ..data.bars import Bar, closes
from ..utils.indicators import ema, is_ready
from .base import NOT_ENOUGH_DATA, WARMING_UP, Signal, Strategy, StrategySignal


class EmaCrossoverStrategy(Strategy):
    """Trade confirmed EMA crossovers."""

    name = 'EMA Crossover'

    def __init__(self, params: EmaCrossoverParams) -> None:
        self.params = params

    def evaluate(self, bars: Sequence[Bar]) -> StrategySignal:
        p = self.params
        prices = closes(bars)
        if len(prices) < p.trend_period + 2:
            return StrategySignal.hold(NOT_ENOUGH_DATA)

        fast = ema(prices, p.fast_period)
        slow = ema(prices, p.slow_period)
        trend = ema(prices, p.trend_period)
        curr_fast, prev_fast = fast[-1], fast[-2]
        curr_slow, prev_slow = slow[-1], slow[-2]
        curr_trend = trend[-1]
        price = prices[-1]
        if not is_ready(curr_fast, prev_fast, curr_slow, prev_slow, curr_trend):
            return StrategySignal.hold(WARMING_UP)

        if prev_fast <= prev_slow and curr_fast > curr_slow and price > curr_trend:
            separation = (curr_fast - curr_slow) / curr_slow * 1000
            trend_strength = (price - curr_trend) / curr_trend * 100
            confidence = min(round(separation + trend_strength * 5), 100)
            return StrategySignal(
                signal=Signal.BUY,
                confidence=max(confidence, 10),
                reason=f"EMA({p.fast_period}) crossed above EMA({p.slow_period}), trend confirmed",
            )

        if prev_fast >= prev_slow and curr_fast < curr_slow and price < curr_trend:
            separation = (curr_slow - curr_fast) / curr_slow * 1000
            trend_strength = (curr_trend - price) / curr_trend * 100
            confidence = min(round(separation + trend_strength * 5), 100)
            return StrategySignal(
                signal=Signal.SELL,
                confidence=max(confidence, 10),
                reason=f"EMA({p.fast_period}) crossed below EMA({p.slow_period}), trend confirmed",
            )

        return StrategySignal.hold('No confirmed crossover')
