"""
Trading cost model.

Converts a nominal price into the price a simulated order is filled
at.  Slippage, half the spread and commission are combined into one
basis-point markup that always works against the trader: longs buy
higher and sell lower, shorts sell lower and buy back higher.  Stop
exits pay an additional penalty for the worse fills stop orders get
in fast markets.
"""

from __future__ import annotations

from dataclasses import dataclass

from ..config.schema import TradingCostsConfig
from .models import Side


def bps_to_frac(bps: float) -> float:
    return bps / 10_000.0


@dataclass(frozen=True)
class CostModel:
    """Basis-point fill model.  Instances are immutable and side-effect free."""

    slippage_bps: float = 0.0
    spread_bps: float = 0.0
    commission_bps: float = 0.0
    stop_slippage_bps: float = 0.0

    @classmethod
    def from_config(cls, costs: TradingCostsConfig) -> 'CostModel':
        return cls(
            slippage_bps=costs.slippage_bps,
            spread_bps=costs.spread_bps,
            commission_bps=costs.commission_bps,
            stop_slippage_bps=costs.stop_slippage_bps,
        )

    @classmethod
    def disabled(cls) -> 'CostModel':
        """A cost model that fills every order at its nominal price."""
        return cls()

    @property
    def entry_bps(self) -> float:
        return self.slippage_bps + self.spread_bps / 2 + self.commission_bps

    def exit_bps(self, stop_fill: bool = False) -> float:
        return self.entry_bps + (self.stop_slippage_bps if stop_fill else 0.0)

    def entry_fill(self, price: float, side: Side) -> float:
        """Price paid (long) or received (short) when opening a position."""
        frac = bps_to_frac(self.entry_bps)
        if side is Side.LONG:
            return price * (1.0 + frac)
        return price * (1.0 - frac)

    def exit_fill(self, price: float, side: Side, stop_fill: bool = False) -> float:
        """Price received (long) or paid (short) when closing a position.

        Parameters
        ----------
        price : float
            Nominal exit price, usually the bar close.
        side : Side
            Side of the position being closed.
        stop_fill : bool
            Whether the exit is a stop-loss or trailing-stop fill, which
            pays the extra stop slippage.
        """
        frac = bps_to_frac(self.exit_bps(stop_fill))
        if side is Side.LONG:
            return price * (1.0 - frac)
        return price * (1.0 + frac)
