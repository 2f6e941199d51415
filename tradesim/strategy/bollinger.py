"""
Bollinger Bands mean-reversion strategy.

Buys when price closed at or below the lower band on the previous bar
and is back inside it now; sells on the mirrored rejection from the
upper band.  Confidence grows with how far the reversal travelled
relative to the band width.
"""

from __future__ import annotations

from typing import Sequence

from ..config.schema import BollingerParams
from ..data.bars import Bar, closes
from ..utils.indicators import bollinger_bands, is_ready
from .base import NOT_ENOUGH_DATA, WARMING_UP, Signal, Strategy, StrategySignal


class BollingerStrategy(Strategy):
    name = 'Bollinger Bands'

    def __init__(self, params: BollingerParams) -> None:
        self.params = params

    def evaluate(self, bars: Sequence[Bar]) -> StrategySignal:
        p = self.params
        prices = closes(bars)
        if len(prices) < p.period + 2:
            return StrategySignal.hold(NOT_ENOUGH_DATA)

        bands = bollinger_bands(prices, p.period, p.std_dev)
        curr, prev = prices[-1], prices[-2]
        upper, lower, middle = bands.upper[-1], bands.lower[-1], bands.middle[-1]
        prev_upper, prev_lower = bands.upper[-2], bands.lower[-2]
        if not is_ready(upper, lower, middle, prev_upper, prev_lower):
            return StrategySignal.hold(WARMING_UP)

        bandwidth = upper - lower
        if bandwidth <= 0:
            return StrategySignal.hold('Bands collapsed, no volatility')

        if prev <= prev_lower and curr > lower:
            confidence = min(round((lower - prev + curr - lower) / bandwidth * 100), 100)
            return StrategySignal(
                signal=Signal.BUY,
                confidence=confidence,
                reason='Price bounced off lower Bollinger Band',
            )

        if prev >= prev_upper and curr < upper:
            confidence = min(round((prev - prev_upper + upper - curr) / bandwidth * 100), 100)
            return StrategySignal(
                signal=Signal.SELL,
                confidence=confidence,
                reason='Price rejected from upper Bollinger Band',
            )

        if curr < lower:
            return StrategySignal.hold('Price below lower band, waiting for reversal')
        if curr > upper:
            return StrategySignal.hold('Price above upper band, waiting for reversal')

        position_in_band = (curr - lower) / bandwidth * 100
        return StrategySignal.hold(f"Price at {position_in_band:.0f}% of Bollinger Band")
