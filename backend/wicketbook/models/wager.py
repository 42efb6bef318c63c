"""Wager models: a user's stake on one side of a market."""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class WagerStatus(str, Enum):
    pending = "pending"
    won = "won"
    lost = "lost"


class WagerInDB(BaseModel):
    """Wager document. Team names are snapshots, not references."""
    model_config = {"use_enum_values": True, "validate_default": True}

    user_id: str
    user_email: Optional[str] = None
    market_id: str
    team_a: str
    team_b: str
    selected_team: str
    odds: float
    stake: float
    bonus_at_placement: bool = False
    status: WagerStatus = WagerStatus.pending
    payout: float = 0.0
    bonus_applied: Optional[bool] = None
    created_at: datetime
    resolved_at: Optional[datetime] = None


class WagerCreate(BaseModel):
    """Request body for placing a wager.

    Positivity and minimum are checked by the ledger so each rejection
    keeps its own error type.
    """
    market_id: str
    selected_team: str = Field(min_length=1)
    stake: float


class WagerResponse(BaseModel):
    id: str
    market_id: str
    team_a: str
    team_b: str
    selected_team: str
    odds: float
    stake: float
    status: WagerStatus
    payout: float
    potential_return: float
    bonus_applied: Optional[bool] = None
    created_at: datetime
    resolved_at: Optional[datetime] = None

    @classmethod
    def from_doc(cls, doc: dict) -> "WagerResponse":
        return cls(
            id=str(doc["_id"]),
            market_id=doc["market_id"],
            team_a=doc["team_a"],
            team_b=doc["team_b"],
            selected_team=doc["selected_team"],
            odds=doc["odds"],
            stake=doc["stake"],
            status=doc["status"],
            payout=doc.get("payout", 0.0),
            potential_return=round(doc["stake"] * doc["odds"], 2),
            bonus_applied=doc.get("bonus_applied"),
            created_at=doc["created_at"],
            resolved_at=doc.get("resolved_at"),
        )


class SettlementResult(BaseModel):
    """Operator feedback after a winner declaration."""
    market_id: str
    winner: str
    bonus_active: bool
    processed: int
    won: int
    lost: int
    total_payout: float
    credited_user_ids: list[str] = []
