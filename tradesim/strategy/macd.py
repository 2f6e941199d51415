"""
MACD strategy with histogram confirmation.

Buys when the MACD line crosses above its signal line with a growing
histogram and sells on the mirrored crossover with a falling one.
Agreement with the trend EMA adds confidence but is not required.
"""

from __future__ import annotations

from typing import Sequence

from ..config.schema import MacdParams
from ..data.bars import Bar, closes
from ..utils.indicators import ema, is_ready, macd
from .base import NOT_ENOUGH_DATA, WARMING_UP, Signal, Strategy, StrategySignal


class MacdStrategy(Strategy):
    name = 'MACD'

    def __init__(self, params: MacdParams) -> None:
        self.params = params

    def evaluate(self, bars: Sequence[Bar]) -> StrategySignal:
        p = self.params
        prices = closes(bars)
        needed = max(p.slow_period + p.signal_period + 2, p.trend_period + 2)
        if len(prices) < needed:
            return StrategySignal.hold(NOT_ENOUGH_DATA)

        lines = macd(prices, p.fast_period, p.slow_period, p.signal_period)
        trend = ema(prices, p.trend_period)
        curr_macd, prev_macd = lines.macd[-1], lines.macd[-2]
        curr_sig, prev_sig = lines.signal[-1], lines.signal[-2]
        curr_hist, prev_hist = lines.histogram[-1], lines.histogram[-2]
        curr_trend = trend[-1]
        if not is_ready(curr_macd, prev_macd, curr_sig, prev_sig, curr_hist, prev_hist, curr_trend):
            return StrategySignal.hold(WARMING_UP)

        trend_dist = (prices[-1] - curr_trend) / curr_trend * 100
        strength = abs(curr_hist) * 100

        if prev_macd <= prev_sig and curr_macd > curr_sig and curr_hist > prev_hist:
            confidence = min(round(strength + 15), 100)
            if trend_dist > 0:
                confidence = min(confidence + 15, 100)
            return StrategySignal(
                signal=Signal.BUY,
                confidence=max(confidence, 15),
                reason=f"MACD bullish crossover, momentum growing (hist: {curr_hist:.4f})",
            )

        if prev_macd >= prev_sig and curr_macd < curr_sig and curr_hist < prev_hist:
            confidence = min(round(strength + 15), 100)
            if trend_dist < 0:
                confidence = min(confidence + 15, 100)
            return StrategySignal(
                signal=Signal.SELL,
                confidence=max(confidence, 15),
                reason=f"MACD bearish crossover, momentum falling (hist: {curr_hist:.4f})",
            )

        return StrategySignal.hold(f"MACD neutral (hist: {curr_hist:.4f})")
