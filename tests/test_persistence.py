import json
import os
import sys
import tempfile
from datetime import date
import pandas as pd

CURRENT_DIR = os.path.dirname(__file__)
PROJECT_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, os.pardir))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from tradesim.execution.ledger import PositionLedger
from tradesim.execution.models import Side
from tradesim.risk.policy import HaltReason, RiskState
from tradesim.utils.persistence import load_state, restore, save_state, snapshot

import unittest


T0 = pd.Timestamp('2025-03-10 09:00', tz='UTC')


def busy_ledger() -> PositionLedger:
    ledger = PositionLedger(10_000.0)
    closed = ledger.open_position(
        Side.LONG, 100.0, 10.0, 98.0, 104.0, entry_index=3, entry_time=T0, reason='ema cross',
    )
    ledger.close_position(closed.id, 104.0, 'take-profit', exit_time=T0 + pd.Timedelta(hours=5))
    ledger.open_position(
        Side.SHORT, 50.0, 4.0, 51.0, 48.0, entry_index=7, entry_time=T0 + pd.Timedelta(hours=6),
    )
    return ledger


class TestStateFile(unittest.TestCase):
    def test_missing_file(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            self.assertIsNone(load_state(os.path.join(tmp, 'nope.json')))

    def test_save_creates_directories_and_leaves_no_temp_file(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, 'nested', 'state.json')
            save_state(path, {'b': 1, 'a': [1, 2]})
            self.assertEqual(os.listdir(os.path.dirname(path)), ['state.json'])
            self.assertEqual(load_state(path), {'a': [1, 2], 'b': 1})


class TestSnapshot(unittest.TestCase):
    def test_round_trip_through_disk(self) -> None:
        ledger = busy_ledger()
        risk = RiskState(
            daily_pnl=-120.0,
            day=date(2025, 3, 10),
            peak_equity=10_040.0,
            halted=True,
            halt_reason=HaltReason.DAILY_LOSS,
        )
        last_bar = T0 + pd.Timedelta(hours=7)
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, 'state.json')
            save_state(path, snapshot(ledger, risk, last_bar, bar_count=12))
            with open(path, encoding='utf-8') as fh:
                raw = json.load(fh)
            self.assertEqual(raw['version'], 1)
            self.assertEqual(raw['risk']['halt_reason'], 'daily_loss')

            target = PositionLedger(10_000.0)
            restored = restore(load_state(path), target)

        self.assertAlmostEqual(target.balance, ledger.balance)
        self.assertEqual(target.positions, ledger.positions)
        self.assertEqual(target.trades, ledger.trades)
        self.assertEqual(restored.risk, risk)
        self.assertEqual(restored.last_bar_time, last_bar)
        self.assertEqual(restored.bar_count, 12)

    def test_fresh_session_snapshot(self) -> None:
        ledger = PositionLedger(1_000.0)
        state = snapshot(ledger, RiskState(0.0, date(2025, 1, 1), 1_000.0), None)
        restored = restore(json.loads(json.dumps(state)), PositionLedger(5.0))
        self.assertIsNone(restored.last_bar_time)
        self.assertIsNone(restored.risk.halt_reason)
        self.assertEqual(restored.bar_count, 0)

    def test_unknown_version_is_rejected(self) -> None:
        state = snapshot(PositionLedger(1_000.0), RiskState(0.0, date(2025, 1, 1), 1_000.0), None)
        state['version'] = 99
        target = PositionLedger(1_000.0)
        with self.assertRaises(ValueError):
            restore(state, target)
        self.assertEqual(target.balance, 1_000.0)

    def test_halt_without_reason_is_rejected(self) -> None:
        state = snapshot(busy_ledger(), RiskState(0.0, date(2025, 1, 1), 1_000.0), None)
        state['risk']['halted'] = True
        target = PositionLedger(1_000.0)
        with self.assertRaises(ValueError):
            restore(state, target)
        self.assertEqual(target.positions, [])
        self.assertEqual(target.balance, 1_000.0)


if __name__ == '__main__':
    unittest.main()
