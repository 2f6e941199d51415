"""Exceptions raised by the position ledger."""

from __future__ import annotations


class LedgerError(Exception):
    """Base class for rejected ledger operations.

    A rejected operation never leaves partial state behind: every check
    runs before the ledger writes anything.
    """


class InsufficientBalanceError(LedgerError):
    """The entry cost of a new position exceeds the available balance."""

    def __init__(self, required: float, available: float) -> None:
        super().__init__(
            f"Insufficient balance: need {required:.2f}, have {available:.2f}"
        )
        self.required = required
        self.available = available


class PositionNotFoundError(LedgerError):
    """No open position has the requested id."""

    def __init__(self, position_id: str) -> None:
        super().__init__(f"No open position with id {position_id!r}")
        self.position_id = position_id


class PartialAlreadyTakenError(LedgerError):
    """The profit-taking tier has already been applied to this position."""

    def __init__(self, position_id: str) -> None:
        super().__init__(f"Partial profit already taken on position {position_id!r}")
        self.position_id = position_id
