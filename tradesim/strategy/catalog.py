"""
Strategy catalog.

The set of strategies is closed: `build_strategy()` knows every
variant by name and there is no plugin loading.
"""

from __future__ import annotations

from typing import Callable, Dict

from ..config.schema import StrategiesConfig
from .base import Strategy
from .bollinger import BollingerStrategy
from .combined import CombinedStrategy
from .ema_crossover import EmaCrossoverStrategy
from .macd import MacdStrategy
from .rsi import RsiStrategy


def _combined(cfg: StrategiesConfig) -> Strategy:
    return CombinedStrategy(
        cfg.combined,
        [
            EmaCrossoverStrategy(cfg.ema_crossover),
            RsiStrategy(cfg.rsi),
            MacdStrategy(cfg.macd),
            BollingerStrategy(cfg.bollinger),
        ],
    )


_BUILDERS: Dict[str, Callable[[StrategiesConfig], Strategy]] = {
    'ema_crossover': lambda cfg: EmaCrossoverStrategy(cfg.ema_crossover),
    'rsi': lambda cfg: RsiStrategy(cfg.rsi),
    'macd': lambda cfg: MacdStrategy(cfg.macd),
    'bollinger': lambda cfg: BollingerStrategy(cfg.bollinger),
    'combined': _combined,
}

STRATEGY_NAMES = tuple(_BUILDERS)


def build_strategy(name: str, config: StrategiesConfig) -> Strategy:
    """Instantiate the strategy called `name` with its configured parameters.

    Raises
    ------
    ValueError
        If `name` is not one of `STRATEGY_NAMES`.
    """
    try:
        builder = _BUILDERS[name]
    except KeyError:
        raise ValueError(
            f"Unknown strategy {name!r}; choose one of {', '.join(STRATEGY_NAMES)}"
        ) from None
    return builder(config)
