"""
Backtest report files.

`generate_backtest_report` writes everything a backtest produced into
one directory: the trade list and the bar-by-bar equity curve as CSV,
the metrics of `tradesim.reporting.metrics` as JSON and a PNG chart of
equity with its drawdown underneath.
"""

from __future__ import annotations

import json
import os
from typing import Any, Dict, List, Optional
import pandas as pd
import matplotlib

# Headless backend; reports are written from CLIs and test runners
matplotlib.use("Agg")
import matplotlib.pyplot as plt

from ..execution.backtest_exec import BacktestResult
from ..execution.models import EquityPoint, Trade
from .metrics import compute_metrics


TRADE_COLUMNS = [
    'id', 'side', 'timestamp_entry', 'timestamp_exit', 'quantity', 'entry', 'exit',
    'stop_loss', 'take_profit', 'pnl', 'pnl_pct', 'exit_reason', 'entry_reason',
]


def _iso(ts: Optional[pd.Timestamp]) -> Optional[str]:
    return ts.isoformat() if ts is not None else None


def trades_frame(trades: List[Trade]) -> pd.DataFrame:
    """One row per closed trade (partial takes included), in closing order."""
    rows = [
        (
            t.id, t.side.value, _iso(t.entry_time), _iso(t.exit_time), t.quantity,
            t.entry_price, t.exit_price, t.stop_loss, t.take_profit, t.pnl, t.pnl_pct,
            t.exit_reason, t.reason,
        )
        for t in trades
    ]
    return pd.DataFrame(rows, columns=TRADE_COLUMNS)


def equity_frame(curve: List[EquityPoint]) -> pd.DataFrame:
    frame = pd.DataFrame({
        'timestamp': [p.timestamp for p in curve],
        'equity': pd.Series([p.equity for p in curve], dtype=float),
    })
    peak = frame['equity'].cummax()
    frame['drawdown_pct'] = ((peak - frame['equity']) / peak * 100.0).fillna(0.0)
    return frame


def _plot_equity(frame: pd.DataFrame, initial_balance: float, path: str) -> None:
    fig, (ax_eq, ax_dd) = plt.subplots(
        2, 1, figsize=(10, 6), sharex=True, gridspec_kw={'height_ratios': [3, 1]},
    )
    if not frame.empty:
        times = pd.to_datetime(frame['timestamp'], utc=True)
        ax_eq.plot(times, frame['equity'], linewidth=1.5)
        ax_eq.axhline(initial_balance, color='grey', linewidth=0.8, linestyle='--')
        ax_dd.fill_between(times, 0, -frame['drawdown_pct'], color='tab:red', alpha=0.4)
        fig.autofmt_xdate()
    ax_eq.set_title('Equity Curve')
    ax_eq.set_ylabel('Equity')
    ax_dd.set_ylabel('Drawdown %')
    ax_dd.set_xlabel('Time')
    fig.tight_layout()
    fig.savefig(path)
    plt.close(fig)


def generate_backtest_report(result: BacktestResult, out_dir: str = "results") -> Dict[str, Any]:
    """Write the report files of `result` into `out_dir`.

    Files written (the directory is created when missing):

    - ``trades.csv``: one row per trade, columns `TRADE_COLUMNS`
    - ``equity_curve.csv``: equity and drawdown after each processed bar
    - ``summary.json``: the output of `compute_metrics`
    - ``equity_curve.png``: equity chart with a drawdown panel

    Returns
    -------
    dict
        The metrics written to ``summary.json``.
    """
    os.makedirs(out_dir, exist_ok=True)

    trades_frame(result.trades).to_csv(os.path.join(out_dir, 'trades.csv'), index=False)

    curve = equity_frame(result.equity_curve)
    curve.assign(timestamp=[_iso(ts) for ts in curve['timestamp']]).to_csv(
        os.path.join(out_dir, 'equity_curve.csv'), index=False,
    )

    metrics = compute_metrics(result)
    with open(os.path.join(out_dir, 'summary.json'), 'w', encoding='utf-8') as fh:
        json.dump(metrics, fh, indent=2, ensure_ascii=False)

    _plot_equity(curve, result.initial_balance, os.path.join(out_dir, 'equity_curve.png'))
    return metrics
