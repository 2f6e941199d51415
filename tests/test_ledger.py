import math
import os
import sys

CURRENT_DIR = os.path.dirname(__file__)
PROJECT_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, os.pardir))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from tradesim.execution.errors import (
    InsufficientBalanceError,
    LedgerError,
    PartialAlreadyTakenError,
    PositionNotFoundError,
)
from tradesim.execution.ledger import PositionLedger, counter_ids
from tradesim.execution.models import Side

import unittest


def open_long(ledger: PositionLedger, price: float = 100.0, quantity: float = 10.0):
    return ledger.open_position(Side.LONG, price, quantity, price * 0.98, price * 1.04, entry_index=0)


class TestOpenClose(unittest.TestCase):
    def test_open_then_close_with_profit(self) -> None:
        ledger = PositionLedger(10_000.0)
        pos = ledger.open_position(Side.LONG, 100.0, 10.0, 98.0, 104.0, entry_index=0)
        self.assertAlmostEqual(ledger.balance, 9_000.0)
        self.assertAlmostEqual(pos.trailing_stop, 98.0)
        self.assertEqual(pos.id, 'pos-1')

        result = ledger.close_position(pos.id, 102.0, 'take-profit')
        self.assertAlmostEqual(result.pnl, 20.0)
        self.assertAlmostEqual(ledger.balance, 10_020.0)
        self.assertEqual(len(ledger.trades), 1)
        self.assertEqual(ledger.open_count, 0)

        summary = ledger.summary()
        self.assertEqual(summary.total_trades, 1)
        self.assertEqual(summary.wins, 1)
        self.assertEqual(summary.win_rate_pct, 100.0)
        self.assertTrue(math.isinf(summary.profit_factor))
        self.assertEqual(summary.to_dict()['profit_factor'], 'inf')

    def test_short_pnl_formula(self) -> None:
        ledger = PositionLedger(10_000.0)
        pos = ledger.open_position(Side.SHORT, 100.0, 5.0, 102.0, 96.0, entry_index=0)
        result = ledger.close_position(pos.id, 97.0, 'take-profit')
        self.assertAlmostEqual(result.pnl, (100.0 - 97.0) * 5.0)
        self.assertAlmostEqual(result.trade.pnl_pct, 3.0)
        self.assertAlmostEqual(ledger.balance, 10_015.0)

    def test_long_loss_formula(self) -> None:
        ledger = PositionLedger(10_000.0)
        pos = open_long(ledger)
        trade = ledger.close_position(pos.id, 97.0, 'stop-loss').trade
        self.assertAlmostEqual(trade.pnl, (97.0 - 100.0) * 10.0)
        self.assertFalse(trade.is_win)

    def test_insufficient_balance_leaves_ledger_untouched(self) -> None:
        ledger = PositionLedger(1_000.0)
        with self.assertRaises(InsufficientBalanceError) as ctx:
            open_long(ledger, quantity=11.0)
        self.assertIsInstance(ctx.exception, LedgerError)
        self.assertEqual(ledger.balance, 1_000.0)
        self.assertEqual(ledger.open_count, 0)

    def test_invalid_open_arguments(self) -> None:
        ledger = PositionLedger(1_000.0)
        with self.assertRaises(ValueError):
            open_long(ledger, quantity=0.0)
        with self.assertRaises(ValueError):
            open_long(ledger, price=-1.0)

    def test_close_unknown_position(self) -> None:
        ledger = PositionLedger(1_000.0)
        with self.assertRaises(PositionNotFoundError):
            ledger.close_position('pos-42', 100.0, 'manual')
        self.assertEqual(ledger.balance, 1_000.0)
        self.assertEqual(ledger.trades, ())

    def test_ids_come_from_the_factory(self) -> None:
        ledger = PositionLedger(10_000.0, id_factory=counter_ids('t'))
        self.assertEqual(open_long(ledger, quantity=1.0).id, 't-1')
        self.assertEqual(open_long(ledger, quantity=1.0).id, 't-2')

    def test_restored_ids_are_not_reused(self) -> None:
        source = PositionLedger(10_000.0)
        pos = open_long(source, quantity=1.0)
        target = PositionLedger(10_000.0)
        target.restore(source.balance, list(source.positions), [])
        self.assertEqual(open_long(target, quantity=1.0).id, 'pos-2')
        self.assertEqual(target.get(pos.id), pos)


class TestPartialProfit(unittest.TestCase):
    def test_partial_take_halves_and_moves_stop_to_entry(self) -> None:
        ledger = PositionLedger(10_000.0)
        pos = open_long(ledger)
        result = ledger.take_partial_profit(pos.id, 102.0)
        self.assertAlmostEqual(result.pnl, 10.0)
        self.assertEqual(result.trade.exit_reason, 'partial take-profit')
        self.assertTrue(result.trade.partial_taken)
        self.assertAlmostEqual(result.trade.quantity, 5.0)

        remaining = ledger.get(pos.id)
        self.assertAlmostEqual(remaining.quantity, 5.0)
        self.assertAlmostEqual(remaining.entry_cost, 500.0)
        self.assertEqual(remaining.stop_loss, 100.0)
        self.assertEqual(remaining.trailing_stop, 100.0)
        self.assertTrue(remaining.partial_taken)
        self.assertAlmostEqual(ledger.balance, 9_000.0 + 500.0 + 10.0)

    def test_partial_take_never_loosens_the_stop(self) -> None:
        ledger = PositionLedger(10_000.0)
        pos = open_long(ledger)
        ledger.update_trailing_stop(pos.id, 101.0)
        ledger.take_partial_profit(pos.id, 103.0)
        self.assertEqual(ledger.get(pos.id).trailing_stop, 101.0)
        self.assertEqual(ledger.get(pos.id).stop_loss, 100.0)

    def test_second_partial_take_is_rejected(self) -> None:
        ledger = PositionLedger(10_000.0)
        pos = open_long(ledger)
        ledger.take_partial_profit(pos.id, 102.0)
        balance = ledger.balance
        with self.assertRaises(PartialAlreadyTakenError):
            ledger.take_partial_profit(pos.id, 103.0)
        self.assertEqual(ledger.balance, balance)

    def test_short_partial_take(self) -> None:
        ledger = PositionLedger(10_000.0)
        pos = ledger.open_position(Side.SHORT, 100.0, 10.0, 102.0, 96.0, entry_index=0)
        ledger.take_partial_profit(pos.id, 98.0)
        remaining = ledger.get(pos.id)
        self.assertEqual(remaining.stop_loss, 100.0)
        self.assertAlmostEqual(remaining.quantity, 5.0)


class TestTrailingAndEquity(unittest.TestCase):
    def test_trailing_stop_ratchets(self) -> None:
        ledger = PositionLedger(10_000.0)
        pos = open_long(ledger)
        self.assertEqual(ledger.update_trailing_stop(pos.id, 99.0).trailing_stop, 99.0)
        self.assertEqual(ledger.update_trailing_stop(pos.id, 97.0).trailing_stop, 99.0)

    def test_positions_are_not_aliased(self) -> None:
        ledger = PositionLedger(10_000.0)
        pos = open_long(ledger)
        ledger.update_trailing_stop(pos.id, 99.0)
        self.assertAlmostEqual(pos.trailing_stop, 98.0)

    def test_equity_marks_positions(self) -> None:
        ledger = PositionLedger(10_000.0)
        long_pos = open_long(ledger)
        short_pos = ledger.open_position(Side.SHORT, 50.0, 10.0, 51.0, 48.0, entry_index=0)
        self.assertAlmostEqual(ledger.equity({}), 10_000.0)
        self.assertAlmostEqual(ledger.equity({long_pos.id: 101.0, short_pos.id: 49.0}), 10_020.0)
        self.assertAlmostEqual(ledger.equity({long_pos.id: 101.0}), 10_010.0)


class TestSummary(unittest.TestCase):
    def test_empty_ledger(self) -> None:
        summary = PositionLedger(10_000.0).summary()
        self.assertEqual(summary.total_trades, 0)
        self.assertEqual(summary.win_rate_pct, 0.0)
        self.assertEqual(summary.profit_factor, 0.0)
        self.assertEqual(summary.max_drawdown_pct, 0.0)
        self.assertEqual(summary.total_return_pct, 0.0)

    def test_profit_factor_and_drawdown_replay(self) -> None:
        ledger = PositionLedger(10_000.0)
        for exit_price in (110.0, 90.0, 95.0, 120.0):
            pos = open_long(ledger)
            ledger.close_position(pos.id, exit_price, 'manual')
        summary = ledger.summary()
        # pnls: +100, -100, -50, +200
        self.assertEqual(summary.wins, 2)
        self.assertEqual(summary.losses, 2)
        self.assertAlmostEqual(summary.profit_factor, 300.0 / 150.0)
        self.assertAlmostEqual(summary.max_drawdown_pct, 150.0 / 10_100.0 * 100.0)
        self.assertAlmostEqual(summary.total_pnl, 150.0)
        self.assertAlmostEqual(summary.total_return_pct, 1.5)

    def test_partial_take_counts_as_a_trade(self) -> None:
        ledger = PositionLedger(10_000.0)
        pos = open_long(ledger)
        ledger.take_partial_profit(pos.id, 102.0)
        ledger.close_position(pos.id, 99.0, 'stop-loss')
        summary = ledger.summary()
        self.assertEqual(summary.total_trades, 2)
        self.assertEqual(summary.wins, 1)
        self.assertEqual(summary.losses, 1)
        self.assertAlmostEqual(summary.win_rate_pct, 50.0)
        self.assertAlmostEqual(summary.total_pnl, 5.0)

    def test_only_losses(self) -> None:
        ledger = PositionLedger(10_000.0)
        pos = open_long(ledger)
        ledger.close_position(pos.id, 99.0, 'manual')
        summary = ledger.summary()
        self.assertEqual(summary.profit_factor, 0.0)
        self.assertEqual(summary.win_rate_pct, 0.0)


if __name__ == '__main__':
    unittest.main()
