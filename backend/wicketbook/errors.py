"""Ledger error conditions.

Each rejection the ledger can produce has its own type so callers (and
tests) can tell them apart without parsing messages. They are HTTP
exceptions, so routers let them propagate unchanged.
"""

from fastapi import HTTPException, status


class LedgerError(HTTPException):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Ledger operation rejected."

    def __init__(self, detail: str | None = None) -> None:
        super().__init__(status_code=self.status_code, detail=detail or self.default_detail)


# ---------- Wagers ----------

class InvalidStakeError(LedgerError):
    default_detail = "Stake must be a positive amount."


class StakeBelowMinimumError(LedgerError):
    default_detail = "Stake is below the minimum."


class StakeAboveMaximumError(LedgerError):
    default_detail = "Stake is above the maximum."


class InsufficientBalanceError(LedgerError):
    default_detail = "Insufficient balance."


class InvalidSelectionError(LedgerError):
    default_detail = "Selection is not a participant of this market."


# ---------- Markets ----------

class MarketNotFoundError(LedgerError):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = "Market not found."


class MarketClosedError(LedgerError):
    status_code = status.HTTP_409_CONFLICT
    default_detail = "Market is closed."


class InvalidTransitionError(LedgerError):
    status_code = status.HTTP_409_CONFLICT
    default_detail = "Invalid market status transition."


class WinnerConflictError(LedgerError):
    status_code = status.HTTP_409_CONFLICT
    default_detail = "Market already settled with a different winner."


# ---------- Wallet / cashier ----------

class UserNotFoundError(LedgerError):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = "User not found."


class WithdrawalBelowMinimumError(LedgerError):
    default_detail = "Withdrawal is below the minimum."


class RequestNotFoundError(LedgerError):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = "Request not found."


class RequestAlreadyProcessedError(LedgerError):
    status_code = status.HTTP_409_CONFLICT
    default_detail = "Request has already been processed."
