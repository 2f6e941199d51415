import math
import os
import sys
import pandas as pd

CURRENT_DIR = os.path.dirname(__file__)
PROJECT_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, os.pardir))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from tradesim.data.bars import Bar
from tradesim.utils.indicators import (
    WARMUP,
    atr,
    bollinger_bands,
    ema,
    is_ready,
    latest_atr,
    macd,
    rsi,
    sma,
    true_ranges,
)

import unittest


W = WARMUP


class TestMovingAverages(unittest.TestCase):
    def test_sma(self) -> None:
        self.assertEqual(sma([1, 2, 3, 4, 5], 3), [W, W, 2.0, 3.0, 4.0])

    def test_ema_is_seeded_with_sma(self) -> None:
        self.assertEqual(ema([1, 2, 3, 4, 5], 3), [W, W, 2.0, 3.0, 4.0])
        values = ema([2, 4, 6, 20], 3)
        self.assertAlmostEqual(values[-1], 20 * 0.5 + 4 * 0.5)

    def test_warmup_marker(self) -> None:
        self.assertIs(WARMUP, type(WARMUP)())
        self.assertEqual(repr(WARMUP), 'WARMUP')
        self.assertFalse(is_ready(1.0, WARMUP))
        self.assertTrue(is_ready(1.0, 0.0))


class TestRsi(unittest.TestCase):
    def test_wilder_smoothing(self) -> None:
        values = rsi([1, 2, 1, 2], 2)
        self.assertEqual(values[:2], [W, W])
        self.assertAlmostEqual(values[2], 50.0)
        # avg gain (0.5 + 1) / 2 = 0.75, avg loss (0.5 + 0) / 2 = 0.25
        self.assertAlmostEqual(values[3], 75.0)

    def test_flat_series_is_neutral(self) -> None:
        values = rsi([100.0] * 20, 14)
        self.assertEqual(values[-1], 50.0)

    def test_one_sided_series(self) -> None:
        self.assertEqual(rsi([float(i) for i in range(20)], 14)[-1], 100.0)
        self.assertEqual(rsi([float(100 - i) for i in range(20)], 14)[-1], 0.0)

    def test_output_is_aligned(self) -> None:
        data = [float(i % 7) for i in range(40)]
        values = rsi(data, 14)
        self.assertEqual(len(values), len(data))
        self.assertTrue(all(v is WARMUP for v in values[:14]))
        self.assertTrue(all(0.0 <= v <= 100.0 for v in values[14:]))
        self.assertEqual(rsi([], 14), [])


class TestMacdAndBands(unittest.TestCase):
    def test_macd_warmup_lengths(self) -> None:
        data = [100.0 + math.sin(i / 3.0) for i in range(60)]
        lines = macd(data, 12, 26, 9)
        self.assertEqual(len(lines.macd), 60)
        self.assertEqual(len(lines.signal), 60)
        self.assertIs(lines.macd[24], WARMUP)
        self.assertIsNot(lines.macd[25], WARMUP)
        self.assertIs(lines.signal[32], WARMUP)
        self.assertIsNot(lines.signal[33], WARMUP)
        self.assertAlmostEqual(lines.histogram[40], lines.macd[40] - lines.signal[40])

    def test_bollinger_bands_use_population_std(self) -> None:
        bands = bollinger_bands([1.0, 2.0, 3.0], 3, 2.0)
        std = math.sqrt(2.0 / 3.0)
        self.assertAlmostEqual(bands.middle[-1], 2.0)
        self.assertAlmostEqual(bands.upper[-1], 2.0 + 2 * std)
        self.assertAlmostEqual(bands.lower[-1], 2.0 - 2 * std)
        self.assertIs(bands.upper[0], WARMUP)

    def test_flat_bands_collapse(self) -> None:
        bands = bollinger_bands([5.0] * 25, 20)
        self.assertEqual(bands.upper[-1], bands.lower[-1])


class TestAverageTrueRange(unittest.TestCase):
    def test_true_range_uses_previous_close(self) -> None:
        self.assertEqual(true_ranges([10, 12], [8, 9], [9, 11]), [2, 3])
        self.assertEqual(atr([10, 12], [8, 9], [9, 11], 2), [W, 2.5])

    def test_latest_atr_needs_one_extra_bar(self) -> None:
        start = pd.Timestamp('2025-01-01', tz='UTC')
        bars = [Bar(start + pd.Timedelta(hours=i), 100, 101, 99, 100) for i in range(15)]
        self.assertIs(latest_atr(bars[:14], 14), WARMUP)
        self.assertAlmostEqual(latest_atr(bars, 14), 2.0)


if __name__ == '__main__':
    unittest.main()
