"""
Performance metrics calculations.

This module extends the ledger summary of a backtest with statistics
that need the equity curve or the price history: a per-trade Sharpe
ratio, the drawdown of the bar-by-bar equity curve, the share of bars
spent in the market and the return of simply buying and holding over
the same period.
"""

from __future__ import annotations

from typing import Any, Dict, List
import math

from ..execution.backtest_exec import BacktestResult
from ..execution.models import EquityPoint, Trade


def sharpe_ratio(trades: List[Trade]) -> float:
    """Mean over standard deviation of per-trade returns, scaled by sqrt(n)."""
    returns = [t.pnl / t.entry_cost for t in trades if t.entry_cost]
    if not returns:
        return 0.0
    mean_ret = sum(returns) / len(returns)
    variance = sum((r - mean_ret) ** 2 for r in returns) / len(returns)
    std_dev = math.sqrt(variance)
    return (mean_ret / std_dev) * math.sqrt(len(returns)) if std_dev > 0 else 0.0


def equity_drawdown_pct(equity_curve: List[EquityPoint], starting_equity: float) -> float:
    """Largest peak-to-trough decline of the equity curve, in percent."""
    max_equity = starting_equity
    max_drawdown = 0.0
    for point in equity_curve:
        if point.equity > max_equity:
            max_equity = point.equity
        drawdown = (max_equity - point.equity) / max_equity if max_equity > 0 else 0.0
        if drawdown > max_drawdown:
            max_drawdown = drawdown
    return min(max_drawdown, 1.0) * 100.0


def compute_metrics(result: BacktestResult) -> Dict[str, Any]:
    """Compute a set of summary statistics for the backtest.

    Parameters
    ----------
    result : BacktestResult
        Output of `BacktestEngine.run`.

    Returns
    -------
    dict
        The JSON-safe ledger summary plus ``sharpe``,
        ``equity_max_drawdown_pct``, ``avg_trade_pnl``, ``exposure_pct``
        and ``buy_and_hold_return_pct``.
    """
    metrics: Dict[str, Any] = result.summary.to_dict()
    trades = result.trades
    curve = result.equity_curve

    processed = len(curve)
    first_close = result.bars[len(result.bars) - processed].close if processed else 0.0
    last_close = result.bars[-1].close if result.bars else 0.0

    metrics.update(
        {
            'sharpe': round(sharpe_ratio(trades), 4),
            'equity_max_drawdown_pct': round(equity_drawdown_pct(curve, result.initial_balance), 4),
            'avg_trade_pnl': round(sum(t.pnl for t in trades) / len(trades), 2) if trades else 0.0,
            'exposure_pct': round(result.bars_in_market / processed * 100.0, 2) if processed else 0.0,
            'buy_and_hold_return_pct': (
                round((last_close - first_close) / first_close * 100.0, 4) if first_close else 0.0
            ),
        }
    )
    return metrics
