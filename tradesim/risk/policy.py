"""
Risk policy.

`RiskPolicy` owns every risk decision the engines make: how large a
new position may be, where its stop and target sit, how the trailing
stop ratchets, whether an entry offers enough reward for its risk,
when a position must be closed and whether new entries are allowed at
all.  The mutable part of that decision making (same-day P&L, peak
equity and halts) lives in `RiskState` so a run can be inspected or
persisted.

Two halts exist.  A ``daily_loss`` halt is raised when the realized
losses of one trading day exceed a share of the initial balance and is
lifted at the next day rollover.  A ``max_drawdown`` halt is raised
when equity falls too far below its peak and is never lifted by a
rollover.  Halts only block entries; exits are always processed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timezone
from enum import Enum
from typing import Callable, Optional, Sequence

from ..config.schema import RiskConfig
from ..data.bars import Bar
from ..execution.models import Position, Side
from ..utils.indicators import WARMUP, latest_atr


logger = logging.getLogger(__name__)

# Typical hourly ATR as a share of price; sizing scales around it.
BASELINE_ATR_PCT = 0.015
ATR_PERIOD = 14
MIN_BARS_FOR_ATR = 20
MAX_POSITION_SHARE = 0.25
PARTIAL_TAKE_FRACTION = 0.5


class HaltReason(str, Enum):
    DAILY_LOSS = 'daily_loss'
    MAX_DRAWDOWN = 'max_drawdown'


@dataclass
class RiskState:
    """Mutable bookkeeping behind the halt rules."""
    daily_pnl: float
    day: date
    peak_equity: float
    halted: bool = False
    halt_reason: Optional[HaltReason] = None


@dataclass(frozen=True)
class PositionSize:
    quantity: float
    value: float


@dataclass(frozen=True)
class ExitDecision:
    reason: str
    stop_fill: bool


def _utc_today() -> date:
    return datetime.now(timezone.utc).date()


class RiskPolicy:
    """Position sizing, protective levels, entry gating and halts.

    Parameters
    ----------
    config : RiskConfig
        Risk limits; percentages are in percent.
    initial_balance : float
        Starting balance, the base of the daily loss limit and the first
        peak equity.
    clock : callable, optional
        Returns the current day marker.  Defaults to the UTC wall-clock
        date; simulations pass bar dates to `check_day_rollover` instead.
    """

    def __init__(
        self,
        config: RiskConfig,
        initial_balance: float,
        clock: Optional[Callable[[], date]] = None,
    ) -> None:
        self.config = config
        self.initial_balance = initial_balance
        self._clock = clock or _utc_today
        self.state = RiskState(
            daily_pnl=0.0,
            day=self._clock(),
            peak_equity=initial_balance,
        )

    # -- sizing and levels -------------------------------------------------

    def position_size(
        self,
        balance: float,
        price: float,
        bars: Optional[Sequence[Bar]] = None,
    ) -> PositionSize:
        """Size a new position so that a stop-out loses about the risk amount.

        With at least 20 recent bars the risk amount is scaled inversely to
        volatility: the 14-period ATR is compared against a 1.5 % baseline
        and the scale factor is clamped to ``[0.5, 1.5]``.  The position
        value never exceeds a quarter of the balance.
        """
        if balance <= 0 or price <= 0:
            return PositionSize(quantity=0.0, value=0.0)
        risk_amount = balance * self.config.max_position_size_pct / 100.0
        if bars is not None and len(bars) >= MIN_BARS_FOR_ATR:
            atr_value = latest_atr(bars, ATR_PERIOD)
            if atr_value is not WARMUP and atr_value > 0:
                vol_ratio = (atr_value / price) / BASELINE_ATR_PCT
                vol_scalar = max(0.5, min(1.5, 1.0 / vol_ratio))
                risk_amount *= vol_scalar
                logger.debug(
                    "ATR adaptive sizing: ATR=%.2f%% scalar=%.2f",
                    atr_value / price * 100.0,
                    vol_scalar,
                )
        target_value = risk_amount / (self.config.stop_loss_pct / 100.0)
        value = min(target_value, balance * MAX_POSITION_SHARE)
        if value <= 0:
            return PositionSize(quantity=0.0, value=0.0)
        return PositionSize(quantity=value / price, value=value)

    def stop_loss(self, entry_price: float, side: Side) -> float:
        pct = self.config.stop_loss_pct / 100.0
        if side is Side.LONG:
            return entry_price * (1.0 - pct)
        return entry_price * (1.0 + pct)

    def take_profit(self, entry_price: float, side: Side) -> float:
        pct = self.config.take_profit_pct / 100.0
        if side is Side.LONG:
            return entry_price * (1.0 + pct)
        return entry_price * (1.0 - pct)

    def update_trailing_stop(self, price: float, current_stop: float, side: Side) -> float:
        """Ratchet a trailing stop towards `price`; it never loosens."""
        pct = self.config.trailing_stop_pct / 100.0
        if side is Side.LONG:
            return max(current_stop, price * (1.0 - pct))
        return min(current_stop, price * (1.0 + pct))

    def meets_risk_reward(self, entry_price: float, stop_loss: float, take_profit: float) -> bool:
        risk = abs(entry_price - stop_loss)
        reward = abs(take_profit - entry_price)
        if risk == 0:
            return False
        return reward / risk >= self.config.risk_reward_ratio

    # -- exits -------------------------------------------------------------

    def check_exit(self, position: Position, price: float) -> Optional[ExitDecision]:
        """Stop-loss / take-profit check at `price`."""
        if position.side is Side.LONG:
            if price <= position.stop_loss:
                return ExitDecision(reason='stop-loss', stop_fill=True)
            if price >= position.take_profit:
                return ExitDecision(reason='take-profit', stop_fill=False)
        else:
            if price >= position.stop_loss:
                return ExitDecision(reason='stop-loss', stop_fill=True)
            if price <= position.take_profit:
                return ExitDecision(reason='take-profit', stop_fill=False)
        return None

    def trailing_stop_hit(self, position: Position, price: float) -> bool:
        """Whether `price` breached a trailing stop that has moved off the initial stop."""
        if position.trailing_stop == position.stop_loss:
            return False
        if position.side is Side.LONG:
            return price <= position.trailing_stop
        return price >= position.trailing_stop

    def should_take_partial(self, position: Position, price: float) -> bool:
        """Whether the position has covered half of its take-profit distance."""
        if position.partial_taken or position.entry_price <= 0:
            return False
        move_pct = (price - position.entry_price) / position.entry_price * 100.0 * position.side.sign
        return move_pct >= self.config.take_profit_pct * PARTIAL_TAKE_FRACTION

    def is_stale(self, position: Position, bar_index: int) -> bool:
        limit = self.config.max_bars_in_trade
        return limit > 0 and bar_index - position.entry_index >= limit

    # -- halts -------------------------------------------------------------

    def check_day_rollover(
        self,
        current_equity: Optional[float] = None,
        today: Optional[date] = None,
    ) -> bool:
        """Start a new trading day when the day marker changes.

        Resets the same-day P&L, optionally resets the peak equity to
        `current_equity` and lifts a ``daily_loss`` halt.  A
        ``max_drawdown`` halt is kept.  Returns `True` on rollover.
        """
        today = today if today is not None else self._clock()
        state = self.state
        if today == state.day:
            return False
        logger.info(
            "New trading day %s: resetting daily P&L (was %.2f)", today, state.daily_pnl
        )
        state.daily_pnl = 0.0
        state.day = today
        if self.config.reset_peak_on_new_day and current_equity is not None and current_equity > 0:
            state.peak_equity = current_equity
        if state.halt_reason is HaltReason.DAILY_LOSS:
            state.halted = False
            state.halt_reason = None
            logger.info("Daily loss halt lifted for new trading day")
        return True

    def record_pnl(self, pnl: float, current_equity: float) -> None:
        """Account for realized P&L and raise halts when limits are breached."""
        state = self.state
        state.daily_pnl += pnl
        if current_equity > state.peak_equity:
            state.peak_equity = current_equity

        daily_limit = self.initial_balance * self.config.max_daily_loss_pct / 100.0
        if state.daily_pnl < -daily_limit and state.halt_reason is not HaltReason.MAX_DRAWDOWN:
            if state.halt_reason is not HaltReason.DAILY_LOSS:
                logger.warning(
                    "HALTED: daily loss limit reached (%.2f < -%.2f)",
                    state.daily_pnl,
                    daily_limit,
                )
            state.halted = True
            state.halt_reason = HaltReason.DAILY_LOSS

        drawdown = self.drawdown_pct(current_equity)
        if drawdown >= self.config.max_drawdown_pct and state.halt_reason is not HaltReason.MAX_DRAWDOWN:
            logger.warning(
                "HALTED: max drawdown reached (%.1f%% >= %.1f%%)",
                drawdown,
                self.config.max_drawdown_pct,
            )
            state.halted = True
            state.halt_reason = HaltReason.MAX_DRAWDOWN

    def drawdown_pct(self, current_equity: float) -> float:
        """Decline from peak equity in percent, clamped to ``[0, 100]``."""
        peak = self.state.peak_equity
        if peak <= 0:
            return 0.0
        return max(0.0, min(100.0, (peak - current_equity) / peak * 100.0))

    @property
    def halted(self) -> bool:
        return self.state.halted

    @property
    def halt_reason(self) -> Optional[HaltReason]:
        return self.state.halt_reason

    def can_open_position(self, open_count: int) -> bool:
        """Admission check for new entries.  Exits never go through here."""
        if self.state.halted:
            logger.debug("Entry refused: trading halted (%s)", self.state.halt_reason.value)
            return False
        if open_count >= self.config.max_open_positions:
            logger.debug(
                "Entry refused: max open positions reached (%d/%d)",
                open_count,
                self.config.max_open_positions,
            )
            return False
        return True
