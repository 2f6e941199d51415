"""
State persistence utilities.

Paper and live trading sessions need to remember their state across
restarts: the cash balance, which positions are currently open, the
trades closed so far, the risk state behind the halt rules and the
timestamp of the last processed bar.  This module provides simple
JSON-based load/save functions for that purpose, plus the conversions
between those objects and plain dictionaries.
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from datetime import date
from pathlib import Path
from typing import Any, Dict, Optional
import pandas as pd

from ..execution.ledger import PositionLedger
from ..execution.models import Position, Side, Trade
from ..risk.policy import HaltReason, RiskState


STATE_VERSION = 1


def load_state(path: str) -> Optional[Dict[str, Any]]:
    """Load a JSON state file.

    Parameters
    ----------
    path : str
        Path to the JSON file.

    Returns
    -------
    dict or None
        The state dictionary if the file exists, otherwise `None`.
    """
    file_path = Path(path)
    if not file_path.exists():
        return None
    with file_path.open("r", encoding="utf-8") as fh:
        return json.load(fh)


def save_state(path: str, state: Dict[str, Any]) -> None:
    """Write a JSON state file to disk.

    The file is written next to its destination first and then moved
    into place, so a crash mid-write never leaves a truncated file.

    Parameters
    ----------
    path : str
        Path to the output file.
    state : dict
        Arbitrary state dictionary.  Must be serialisable to JSON.
    """
    file_path = Path(path)
    file_path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = file_path.with_suffix(file_path.suffix + ".tmp")
    with tmp_path.open("w", encoding="utf-8") as fh:
        json.dump(state, fh, ensure_ascii=False, indent=2, sort_keys=True)
    tmp_path.replace(file_path)


def _ts_to_str(ts: Optional[pd.Timestamp]) -> Optional[str]:
    return ts.isoformat() if ts is not None else None


def _ts_from_str(value: Optional[str]) -> Optional[pd.Timestamp]:
    return pd.Timestamp(value) if value else None


def position_to_dict(position: Position) -> Dict[str, Any]:
    data = asdict(position)
    data['side'] = position.side.value
    data['entry_time'] = _ts_to_str(position.entry_time)
    return data


def position_from_dict(data: Dict[str, Any]) -> Position:
    values = dict(data)
    values['side'] = Side(values['side'])
    values['entry_time'] = _ts_from_str(values.get('entry_time'))
    return Position(**values)


def trade_to_dict(trade: Trade) -> Dict[str, Any]:
    data = asdict(trade)
    data['side'] = trade.side.value
    data['entry_time'] = _ts_to_str(trade.entry_time)
    data['exit_time'] = _ts_to_str(trade.exit_time)
    return data


def trade_from_dict(data: Dict[str, Any]) -> Trade:
    values = dict(data)
    values['side'] = Side(values['side'])
    values['entry_time'] = _ts_from_str(values.get('entry_time'))
    values['exit_time'] = _ts_from_str(values.get('exit_time'))
    return Trade(**values)


def risk_state_to_dict(state: RiskState) -> Dict[str, Any]:
    return {
        'daily_pnl': state.daily_pnl,
        'day': state.day.isoformat(),
        'peak_equity': state.peak_equity,
        'halted': state.halted,
        'halt_reason': state.halt_reason.value if state.halt_reason else None,
    }


def risk_state_from_dict(data: Dict[str, Any]) -> RiskState:
    """Rebuild a `RiskState`; a halt must carry its reason and vice versa."""
    reason = data.get('halt_reason')
    halted = bool(data.get('halted', False))
    if halted != bool(reason):
        raise ValueError(f"Inconsistent halt in state file: halted={halted!r}, reason={reason!r}")
    return RiskState(
        daily_pnl=float(data['daily_pnl']),
        day=date.fromisoformat(data['day']),
        peak_equity=float(data['peak_equity']),
        halted=halted,
        halt_reason=HaltReason(reason) if reason else None,
    )


def snapshot(
    ledger: PositionLedger,
    risk_state: RiskState,
    last_bar_time: Optional[pd.Timestamp],
    bar_count: int = 0,
) -> Dict[str, Any]:
    """Serialisable snapshot of a trading session.

    `bar_count` is the number of bars the session has processed; entry
    indices of the open positions refer to it.
    """
    return {
        'version': STATE_VERSION,
        'balance': ledger.balance,
        'positions': [position_to_dict(p) for p in ledger.positions],
        'trades': [trade_to_dict(t) for t in ledger.trades],
        'risk': risk_state_to_dict(risk_state),
        'last_bar_time': _ts_to_str(last_bar_time),
        'bar_count': bar_count,
    }


@dataclass
class RestoredState:
    risk: RiskState
    last_bar_time: Optional[pd.Timestamp]
    bar_count: int


def restore(state: Dict[str, Any], ledger: PositionLedger) -> RestoredState:
    """Load a snapshot into `ledger` and return the rest of it.

    Raises
    ------
    ValueError
        If the snapshot was written by an incompatible version or records
        a halt without its reason.  The ledger is left untouched.
    """
    version = state.get('version')
    if version != STATE_VERSION:
        raise ValueError(f"Unsupported state file version: {version!r}")
    risk = risk_state_from_dict(state['risk'])
    ledger.restore(
        float(state['balance']),
        [position_from_dict(p) for p in state.get('positions', [])],
        [trade_from_dict(t) for t in state.get('trades', [])],
    )
    return RestoredState(
        risk=risk,
        last_bar_time=_ts_from_str(state.get('last_bar_time')),
        bar_count=int(state.get('bar_count', 0)),
    )
