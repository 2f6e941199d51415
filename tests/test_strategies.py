import os
import sys
from typing import List, Sequence
import pandas as pd

CURRENT_DIR = os.path.dirname(__file__)
PROJECT_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, os.pardir))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from tradesim.config.schema import (
    BollingerParams,
    CombinedParams,
    EmaCrossoverParams,
    MacdParams,
    RsiParams,
    StrategiesConfig,
)
from tradesim.data.bars import Bar
from tradesim.strategy.base import NOT_ENOUGH_DATA, Signal, Strategy, StrategySignal
from tradesim.strategy.bollinger import BollingerStrategy
from tradesim.strategy.catalog import STRATEGY_NAMES, build_strategy
from tradesim.strategy.combined import CombinedStrategy
from tradesim.strategy.ema_crossover import EmaCrossoverStrategy
from tradesim.strategy.macd import MacdStrategy
from tradesim.strategy.rsi import RsiStrategy

import unittest


def make_bars(closes: Sequence[float]) -> List[Bar]:
    index = pd.date_range('2025-01-01', periods=len(closes), freq='1h', tz='UTC')
    return [Bar(ts, c, c, c, c) for ts, c in zip(index, closes)]


class Fixed(Strategy):
    def __init__(self, signal: Signal, confidence: float = 0) -> None:
        self.name = f"Fixed {signal.value}"
        self.result = StrategySignal(signal, confidence, 'fixed')

    def evaluate(self, bars: Sequence[Bar]) -> StrategySignal:
        return self.result


class TestEmaCrossover(unittest.TestCase):
    def setUp(self) -> None:
        self.strategy = EmaCrossoverStrategy(EmaCrossoverParams())

    def test_not_enough_data(self) -> None:
        result = self.strategy.evaluate(make_bars([100.0] * 30))
        self.assertEqual(result.signal, Signal.HOLD)
        self.assertEqual(result.reason, NOT_ENOUGH_DATA)

    def test_bullish_crossover_above_trend(self) -> None:
        closes = [100.0 - 0.1 * i for i in range(60)] + [110.0]
        result = self.strategy.evaluate(make_bars(closes))
        self.assertEqual(result.signal, Signal.BUY)
        self.assertGreaterEqual(result.confidence, 10)
        self.assertLessEqual(result.confidence, 100)

    def test_bearish_crossover_below_trend(self) -> None:
        closes = [100.0 + 0.1 * i for i in range(60)] + [90.0]
        self.assertEqual(self.strategy.evaluate(make_bars(closes)).signal, Signal.SELL)

    def test_steady_trend_has_no_crossover(self) -> None:
        closes = [100.0 + 0.1 * i for i in range(61)]
        result = self.strategy.evaluate(make_bars(closes))
        self.assertEqual(result.signal, Signal.HOLD)
        self.assertEqual(result.confidence, 0)


class TestRsiStrategy(unittest.TestCase):
    def setUp(self) -> None:
        self.strategy = RsiStrategy(RsiParams())

    def test_bounce_from_deep_oversold(self) -> None:
        # RSI sits at 0 after the decline, the +10 bar lifts it to about 43
        closes = [200.0 - i for i in range(70)] + [141.0]
        result = self.strategy.evaluate(make_bars(closes))
        self.assertEqual(result.signal, Signal.BUY)
        self.assertGreaterEqual(result.confidence, 20)

    def test_drop_from_deep_overbought(self) -> None:
        closes = [100.0 + i for i in range(70)] + [159.0]
        self.assertEqual(self.strategy.evaluate(make_bars(closes)).signal, Signal.SELL)

    def test_oversold_without_a_bounce_holds(self) -> None:
        closes = [200.0 - i for i in range(71)]
        result = self.strategy.evaluate(make_bars(closes))
        self.assertEqual(result.signal, Signal.HOLD)
        self.assertIn('neutral', result.reason)

    def test_not_enough_data(self) -> None:
        result = self.strategy.evaluate(make_bars([100.0] * 40))
        self.assertEqual(result.reason, NOT_ENOUGH_DATA)


class TestMacdStrategy(unittest.TestCase):
    def setUp(self) -> None:
        self.strategy = MacdStrategy(MacdParams())

    def test_bullish_crossover(self) -> None:
        closes = [100.0 - 0.01 * i * i for i in range(60)] + [100.0]
        self.assertEqual(self.strategy.evaluate(make_bars(closes)).signal, Signal.BUY)

    def test_bearish_crossover(self) -> None:
        closes = [100.0 + 0.01 * i * i for i in range(60)] + [100.0]
        self.assertEqual(self.strategy.evaluate(make_bars(closes)).signal, Signal.SELL)

    def test_not_enough_data(self) -> None:
        result = self.strategy.evaluate(make_bars([100.0] * 45))
        self.assertEqual(result.reason, NOT_ENOUGH_DATA)


class TestBollingerStrategy(unittest.TestCase):
    def setUp(self) -> None:
        self.strategy = BollingerStrategy(BollingerParams())

    def test_bounce_off_lower_band(self) -> None:
        result = self.strategy.evaluate(make_bars([100.0] * 40 + [90.0, 100.0]))
        self.assertEqual(result.signal, Signal.BUY)
        self.assertEqual(result.confidence, 100)

    def test_rejection_from_upper_band(self) -> None:
        result = self.strategy.evaluate(make_bars([100.0] * 40 + [110.0, 100.0]))
        self.assertEqual(result.signal, Signal.SELL)

    def test_collapsed_bands_hold(self) -> None:
        result = self.strategy.evaluate(make_bars([100.0] * 30))
        self.assertEqual(result.signal, Signal.HOLD)
        self.assertIn('collapsed', result.reason)


class TestCombinedStrategy(unittest.TestCase):
    bars = make_bars([100.0] * 5)

    def combine(self, *children: Strategy, **params) -> StrategySignal:
        return CombinedStrategy(CombinedParams(**params), children).evaluate(self.bars)

    def test_agreement_uses_median_confidence(self) -> None:
        result = self.combine(
            Fixed(Signal.BUY, 40), Fixed(Signal.BUY, 60), Fixed(Signal.SELL, 90), Fixed(Signal.HOLD),
        )
        self.assertEqual(result.signal, Signal.BUY)
        self.assertEqual(result.confidence, 50)
        self.assertIn('2/4 strategies agree on BUY', result.reason)

    def test_single_vote_is_not_enough(self) -> None:
        result = self.combine(
            Fixed(Signal.SELL, 90), Fixed(Signal.BUY, 50), Fixed(Signal.HOLD), Fixed(Signal.HOLD),
        )
        self.assertEqual(result.signal, Signal.HOLD)
        self.assertIn('Insufficient confirmations', result.reason)

    def test_tie_between_directions_holds(self) -> None:
        result = self.combine(
            Fixed(Signal.BUY, 80), Fixed(Signal.BUY, 80), Fixed(Signal.SELL, 80), Fixed(Signal.SELL, 80),
        )
        self.assertEqual(result.signal, Signal.HOLD)

    def test_low_median_confidence_holds(self) -> None:
        result = self.combine(Fixed(Signal.SELL, 40), Fixed(Signal.SELL, 60), min_confidence=70)
        self.assertEqual(result.signal, Signal.HOLD)
        self.assertIn('low confidence', result.reason)


class TestCatalog(unittest.TestCase):
    def test_every_name_builds(self) -> None:
        config = StrategiesConfig()
        for name in STRATEGY_NAMES:
            self.assertIsInstance(build_strategy(name, config), Strategy)
        combined = build_strategy('combined', config)
        self.assertEqual(len(combined.children), 4)

    def test_unknown_name(self) -> None:
        with self.assertRaises(ValueError):
            build_strategy('martingale', StrategiesConfig())

    def test_short_window_holds_everywhere(self) -> None:
        bars = make_bars([100.0 + i for i in range(10)])
        for name in STRATEGY_NAMES:
            result = build_strategy(name, StrategiesConfig()).evaluate(bars)
            self.assertEqual(result.signal, Signal.HOLD, name)


if __name__ == '__main__':
    unittest.main()
