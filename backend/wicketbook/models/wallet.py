"""Wallet models: balances, ledger entries and cashier requests."""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


# ---------- Wallet ----------

class WalletResponse(BaseModel):
    """Wallet data returned to the client."""
    user_id: str
    email: Optional[str] = None
    balance: float
    total_wagers: int = 0
    total_wagered: float = 0.0
    total_won: float = 0.0
    total_deposit: float = 0.0
    total_withdraw: float = 0.0
    active_withdrawals: int = 0
    is_admin: bool = False

    @classmethod
    def from_doc(cls, doc: dict) -> "WalletResponse":
        return cls(
            user_id=str(doc["_id"]),
            email=doc.get("email"),
            balance=doc.get("balance", 0.0),
            total_wagers=doc.get("total_wagers", 0),
            total_wagered=doc.get("total_wagered", 0.0),
            total_won=doc.get("total_won", 0.0),
            total_deposit=doc.get("total_deposit", 0.0),
            total_withdraw=doc.get("total_withdraw", 0.0),
            active_withdrawals=doc.get("active_withdrawals", 0),
            is_admin=bool(doc.get("is_admin")),
        )


class AdminUserUpdate(BaseModel):
    balance: Optional[float] = Field(default=None, ge=0)
    is_admin: Optional[bool] = None


# ---------- Ledger ----------

class TransactionType(str, Enum):
    INITIAL_CREDIT = "INITIAL_CREDIT"
    WAGER_PLACED = "WAGER_PLACED"
    WAGER_WON = "WAGER_WON"
    WAGER_LOST = "WAGER_LOST"
    RECHARGE_APPROVED = "RECHARGE_APPROVED"
    WITHDRAWAL_REQUESTED = "WITHDRAWAL_REQUESTED"
    WITHDRAWAL_REFUNDED = "WITHDRAWAL_REFUNDED"
    ADMIN_ADJUSTMENT = "ADMIN_ADJUSTMENT"


class WalletTransactionInDB(BaseModel):
    """Immutable ledger entry for every coin movement."""
    model_config = {"use_enum_values": True, "validate_default": True}

    user_id: str
    type: TransactionType
    amount: float  # positive = credit, negative = debit
    balance_after: float
    reference_type: Optional[str] = None  # "wager" | "withdrawal" | "recharge"
    reference_id: Optional[str] = None
    description: str
    created_at: datetime


class TransactionResponse(BaseModel):
    id: str
    type: str
    amount: float
    balance_after: float
    reference_type: Optional[str] = None
    reference_id: Optional[str] = None
    description: str
    created_at: datetime


class LedgerReconciliation(BaseModel):
    user_id: str
    balance: float
    ledger_total: float
    drift: float
    entries: int


# ---------- Withdrawals ----------

class WithdrawalStatus(str, Enum):
    pending = "pending"
    approved = "approved"
    rejected = "rejected"


class WithdrawalCreate(BaseModel):
    amount: float
    method: str = Field(default="upi", max_length=30)
    details: str = Field(min_length=1, max_length=200)


class WithdrawalResponse(BaseModel):
    id: str
    user_id: str
    user_email: Optional[str] = None
    amount: float
    method: str
    details: str
    status: WithdrawalStatus
    created_at: datetime
    processed_at: Optional[datetime] = None

    @classmethod
    def from_doc(cls, doc: dict) -> "WithdrawalResponse":
        return cls(
            id=str(doc["_id"]),
            user_id=doc["user_id"],
            user_email=doc.get("user_email"),
            amount=doc["amount"],
            method=doc["method"],
            details=doc["details"],
            status=doc["status"],
            created_at=doc["created_at"],
            processed_at=doc.get("processed_at"),
        )


# ---------- Recharges ----------

class RechargeStatus(str, Enum):
    pending = "Pending"
    approved = "Approved"
    rejected = "Rejected"


class RechargeCreate(BaseModel):
    amount: float = Field(gt=0)
    transaction_ref: str = Field(min_length=1, max_length=64)


class RechargeResponse(BaseModel):
    id: str
    user_id: str
    user_email: Optional[str] = None
    amount: float
    transaction_ref: str
    status: RechargeStatus
    created_at: datetime
    processed_at: Optional[datetime] = None

    @classmethod
    def from_doc(cls, doc: dict) -> "RechargeResponse":
        return cls(
            id=str(doc["_id"]),
            user_id=doc["user_id"],
            user_email=doc.get("user_email"),
            amount=doc["amount"],
            transaction_ref=doc["transaction_ref"],
            status=doc["status"],
            created_at=doc["created_at"],
            processed_at=doc.get("processed_at"),
        )


# ---------- Admin ----------

class PlatformStats(BaseModel):
    total_users: int
    platform_balance: float
    total_deposit: float
    total_withdraw: float
    pending_recharges: int
    pending_withdrawals: int
    active_markets: int


class LeaderboardEntry(BaseModel):
    rank: int
    user_id: str
    email: Optional[str] = None
    balance: float
    total_won: float = 0.0
