"""
RSI mean-reversion strategy.

Only extreme readings are traded: a buy needs the RSI to have been
deeply oversold (5 points below the oversold level) within the last
two bars and to cross back above the oversold level while price rises.
Sells mirror this around the overbought level.  Proximity to the trend
EMA boosts confidence instead of gating the trade.
"""

from __future__ import annotations

from typing import Sequence

from ..config.schema import RsiParams
from ..data.bars import Bar, closes
from ..utils.indicators import ema, is_ready, rsi
from .base import NOT_ENOUGH_DATA, WARMING_UP, Signal, Strategy, StrategySignal


DEPTH_MARGIN = 5


class RsiStrategy(Strategy):
    name = 'RSI'

    def __init__(self, params: RsiParams) -> None:
        self.params = params

    def evaluate(self, bars: Sequence[Bar]) -> StrategySignal:
        p = self.params
        prices = closes(bars)
        if len(prices) < max(p.period + 5, p.trend_period + 2):
            return StrategySignal.hold(NOT_ENOUGH_DATA)

        values = rsi(prices, p.period)
        trend = ema(prices, p.trend_period)
        curr, prev, prev2 = values[-1], values[-2], values[-3]
        curr_trend = trend[-1]
        if not is_ready(curr, prev, prev2, curr_trend):
            return StrategySignal.hold(WARMING_UP)

        price, prev_price = prices[-1], prices[-2]
        trend_dist = (price - curr_trend) / curr_trend * 100

        deep_oversold = p.oversold - DEPTH_MARGIN
        was_deep_oversold = prev2 <= deep_oversold or prev <= deep_oversold
        crossing_up = prev <= p.oversold < curr
        if was_deep_oversold and crossing_up and price > prev_price:
            depth = p.oversold - min(prev, prev2)
            bounce = curr - p.oversold
            confidence = min(round((depth + bounce) * 4), 100)
            if trend_dist > -3:
                confidence = min(confidence + 20, 100)
            return StrategySignal(
                signal=Signal.BUY,
                confidence=max(confidence, 20),
                reason=f"RSI bounced from oversold ({prev:.1f}->{curr:.1f}), price recovering",
            )

        deep_overbought = p.overbought + DEPTH_MARGIN
        was_deep_overbought = prev2 >= deep_overbought or prev >= deep_overbought
        crossing_down = prev >= p.overbought > curr
        if was_deep_overbought and crossing_down and price < prev_price:
            depth = max(prev, prev2) - p.overbought
            drop = p.overbought - curr
            confidence = min(round((depth + drop) * 4), 100)
            if trend_dist < 3:
                confidence = min(confidence + 20, 100)
            return StrategySignal(
                signal=Signal.SELL,
                confidence=max(confidence, 20),
                reason=f"RSI dropped from overbought ({prev:.1f}->{curr:.1f}), price declining",
            )

        return StrategySignal.hold(f"RSI neutral ({curr:.1f})")
