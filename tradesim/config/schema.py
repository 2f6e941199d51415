"""
Configuration schema and loader.

This module defines dataclasses that mirror the expected structure of
the YAML configuration file (`config.yaml`).  A helper function
`load_config()` reads a YAML file from disk and returns an instance
of `Config` populated with defaults for any missing fields.

Keys may be written either in snake_case, matching the dataclass
fields, or in camelCase (``maxPositionSizePct``, ``tradingCosts``,
``initialBalance``).  Both spellings are normalised before the
dataclasses are built.  Percentages are expressed in percent, so
``stop_loss_pct: 2`` means a stop 2 % away from the entry price.
"""

from __future__ import annotations

import re
from dataclasses import asdict, dataclass, field, fields, is_dataclass
from typing import Any, Dict, Mapping, Type, TypeVar
import yaml


T = TypeVar('T')


@dataclass
class RiskConfig:
    """Risk limits applied by `tradesim.risk.policy.RiskPolicy`.

    Attributes
    ----------
    max_position_size_pct : float
        Share of the balance put at risk per trade, in percent.
    stop_loss_pct, take_profit_pct : float
        Distance of the protective stop and of the profit target from the
        entry price, in percent.
    trailing_stop_pct : float
        Distance of the trailing stop from the latest price, in percent.
    max_open_positions : int
        Maximum number of concurrently open positions.
    max_daily_loss_pct : float
        Realized loss within one trading day, as a percent of the initial
        balance, that halts new entries until the next day.
    max_drawdown_pct : float
        Decline from peak equity, in percent, that halts new entries
        permanently.
    risk_reward_ratio : float
        Minimum reward/risk ratio an entry must offer.
    min_confidence : float
        Minimum strategy confidence (0-100) required to act on a signal.
    max_bars_in_trade : int
        Positions held this many bars are closed as stale.  ``0`` disables
        the timeout.
    reset_peak_on_new_day : bool
        Reset the peak equity used for the drawdown check at each day
        rollover.
    """

    max_position_size_pct: float = 2.0
    stop_loss_pct: float = 2.0
    take_profit_pct: float = 4.0
    trailing_stop_pct: float = 1.5
    max_open_positions: int = 3
    max_daily_loss_pct: float = 5.0
    max_drawdown_pct: float = 15.0
    risk_reward_ratio: float = 1.5
    min_confidence: float = 10.0
    max_bars_in_trade: int = 48
    reset_peak_on_new_day: bool = True

    def __post_init__(self) -> None:
        if self.stop_loss_pct <= 0:
            raise ValueError("risk.stop_loss_pct must be positive")
        if self.take_profit_pct <= 0:
            raise ValueError("risk.take_profit_pct must be positive")
        if self.trailing_stop_pct <= 0:
            raise ValueError("risk.trailing_stop_pct must be positive")
        if self.max_open_positions < 0:
            raise ValueError("risk.max_open_positions must not be negative")
        if self.max_bars_in_trade < 0:
            raise ValueError("risk.max_bars_in_trade must not be negative")


@dataclass
class TradingCostsConfig:
    """Models trading costs in basis points of the traded price.

    Attributes
    ----------
    slippage_bps : float
        Price movement in the trader's disfavor on every fill.
    spread_bps : float
        Full bid/ask spread; half of it is paid on each fill.
    commission_bps : float
        Broker commission charged on each fill.
    stop_slippage_bps : float
        Extra slippage paid when a stop order is filled.
    """

    slippage_bps: float = 5.0
    spread_bps: float = 2.0
    commission_bps: float = 10.0
    stop_slippage_bps: float = 10.0


@dataclass
class EmaCrossoverParams:
    fast_period: int = 8
    slow_period: int = 21
    trend_period: int = 50


@dataclass
class RsiParams:
    period: int = 14
    overbought: float = 70.0
    oversold: float = 30.0
    trend_period: int = 50


@dataclass
class MacdParams:
    fast_period: int = 12
    slow_period: int = 26
    signal_period: int = 9
    trend_period: int = 50


@dataclass
class BollingerParams:
    period: int = 20
    std_dev: float = 2.0
    trend_period: int = 50


@dataclass
class CombinedParams:
    """Agreement rules of the combined strategy.

    Attributes
    ----------
    min_confirmations : int
        Number of child strategies that must agree on a direction.
    min_confidence : float
        Minimum median confidence of the agreeing children.
    """

    min_confirmations: int = 2
    min_confidence: float = 10.0


@dataclass
class StrategiesConfig:
    """Parameters for each strategy in the catalog."""

    ema_crossover: EmaCrossoverParams = field(default_factory=EmaCrossoverParams)
    rsi: RsiParams = field(default_factory=RsiParams)
    macd: MacdParams = field(default_factory=MacdParams)
    bollinger: BollingerParams = field(default_factory=BollingerParams)
    combined: CombinedParams = field(default_factory=CombinedParams)


@dataclass
class BacktestConfig:
    """Backtest run options.

    Attributes
    ----------
    warmup_bars : int
        Number of leading bars given to the strategy as history before the
        first entry can be evaluated.
    out_dir : str
        Directory receiving the report files.
    """

    warmup_bars: int = 50
    out_dir: str = "results"


@dataclass
class DataConfig:
    """Data source configuration.

    Attributes
    ----------
    csv_dir : str
        Directory containing CSV files for each symbol when running
        backtests.
    timezone : str
        IANA timezone name used for interpreting timestamps in historical
        data and for deciding where one trading day ends.
    symbol : str
        Instrument traded by the live engine and loaded by default for
        backtests.
    """

    csv_dir: str = "data"
    timezone: str = "UTC"
    symbol: str = "BTCUSDT"


@dataclass
class LiveConfig:
    """Paper and live trading loop options."""

    poll_interval_seconds: float = 60.0
    history_bars: int = 200
    max_window: int = 500
    state_file: str = "state.json"


@dataclass
class MT5Config:
    """Holds parameters required to connect to a MetaTrader 5 terminal.

    Attributes
    ----------
    login : int
        Account login number.  Use `0` when running offline backtests.
    password : str
        Password for the account.
    server : str
        Broker server name.
    path : str
        File system path to the MetaTrader 5 terminal executable
        (`terminal64.exe`).  Required for paper/live trading.
    timeframe : str
        Bar timeframe requested from the terminal (``M1`` ... ``D1``).
    """

    login: int = 0
    password: str = ""
    server: str = ""
    path: str = ""
    timeframe: str = "H1"


@dataclass
class Config:
    """Root configuration for the trading program.

    Attributes
    ----------
    initial_balance : float
        Starting cash balance of every simulation run.
    strategy : str
        Name of the strategy to trade (see `tradesim.strategy.catalog`).
    mode : str
        Operating mode: ``backtest``, ``paper`` or ``live``.
    """

    initial_balance: float = 10_000.0
    strategy: str = "combined"
    mode: str = "backtest"
    risk: RiskConfig = field(default_factory=RiskConfig)
    trading_costs: TradingCostsConfig = field(default_factory=TradingCostsConfig)
    strategies: StrategiesConfig = field(default_factory=StrategiesConfig)
    backtest: BacktestConfig = field(default_factory=BacktestConfig)
    data: DataConfig = field(default_factory=DataConfig)
    live: LiveConfig = field(default_factory=LiveConfig)
    mt5: MT5Config = field(default_factory=MT5Config)

    def __post_init__(self) -> None:
        if self.initial_balance <= 0:
            raise ValueError("initial_balance must be positive")
        self.mode = self.mode.lower()
        if self.mode not in ('backtest', 'paper', 'live'):
            raise ValueError(f"Unknown mode {self.mode!r}")


_CAMEL_RE = re.compile(r'(?<!^)(?=[A-Z])')


def _snake(key: str) -> str:
    return _CAMEL_RE.sub('_', key).lower()


def _normalise_keys(raw: Mapping[str, Any]) -> Dict[str, Any]:
    """Recursively convert camelCase keys to snake_case."""
    result: Dict[str, Any] = {}
    for key, value in raw.items():
        if isinstance(value, Mapping):
            value = _normalise_keys(value)
        result[_snake(str(key))] = value
    return result


def _merge_dict(defaults: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Recursively merge two dictionaries.

    The values in `override` take precedence over those in `defaults`.
    This helper is used when loading YAML into nested dataclasses.
    """
    result: Dict[str, Any] = defaults.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _merge_dict(result[key], value)
        else:
            result[key] = value
    return result


def _build(cls: Type[T], values: Dict[str, Any], path: str = "") -> T:
    """Construct the dataclass `cls` from a merged dictionary."""
    known = {f.name: f for f in fields(cls)}
    unknown = sorted(set(values) - set(known))
    if unknown:
        raise ValueError(f"Unknown configuration keys in {path or 'root'}: {unknown}")
    defaults = cls()
    kwargs: Dict[str, Any] = {}
    for name, value in values.items():
        default = getattr(defaults, name)
        if is_dataclass(default):
            kwargs[name] = _build(type(default), value or {}, f"{path}{name}.")
        elif isinstance(default, bool):
            if not isinstance(value, bool):
                raise ValueError(f"{path}{name} must be true or false, got {value!r}")
            kwargs[name] = value
        elif isinstance(default, (int, float, str)) and value is not None:
            kwargs[name] = type(default)(value)
        else:
            kwargs[name] = value
    return cls(**kwargs)


def config_from_dict(raw: Mapping[str, Any]) -> Config:
    """Build a `Config` from a (possibly partial) nested dictionary."""
    merged = _merge_dict(asdict(Config()), _normalise_keys(raw))
    return _build(Config, merged)


def load_config(path: str) -> Config:
    """Load a configuration file from the given YAML path.

    Parameters
    ----------
    path : str
        Path to the YAML file.

    Returns
    -------
    Config
        A populated configuration object.  Missing fields are filled with
        the defaults defined in the dataclasses.

    Raises
    ------
    ValueError
        If the file contains unknown keys or invalid values.
    """
    with open(path, "r", encoding="utf-8") as fh:
        raw: Dict[str, Any] = yaml.safe_load(fh) or {}
    return config_from_dict(raw)
