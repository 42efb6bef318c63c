"""Market models: bettable two-sided events and their lifecycle."""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator


class MarketStatus(str, Enum):
    upcoming = "Upcoming"
    live = "Live"
    finished = "Finished"


# Forward-only lifecycle; Finished is entered through winner declaration.
MARKET_STATUS_ORDER = {
    MarketStatus.upcoming: 0,
    MarketStatus.live: 1,
    MarketStatus.finished: 2,
}


class MarketInDB(BaseModel):
    """Market document as stored in MongoDB."""
    model_config = {"use_enum_values": True, "validate_default": True}

    team_a: str
    team_b: str
    odds_a: float
    odds_b: float
    match_time: datetime
    status: MarketStatus = MarketStatus.upcoming
    winner: Optional[str] = None
    bonus_active: bool = False
    tournament: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    finished_at: Optional[datetime] = None
    wager_count: int = 0  # Bumped by every placement, inside its transaction


class MarketCreate(BaseModel):
    """Request body for creating a market."""
    team_a: str = Field(min_length=1, max_length=80)
    team_b: str = Field(min_length=1, max_length=80)
    odds_a: float = Field(gt=0)
    odds_b: float = Field(gt=0)
    match_time: datetime
    bonus_active: bool = False
    tournament: Optional[str] = Field(default=None, max_length=80)

    @field_validator("team_a", "team_b")
    @classmethod
    def strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Participant name must not be blank.")
        return v

    @model_validator(mode="after")
    def distinct_teams(self) -> "MarketCreate":
        if self.team_a.casefold() == self.team_b.casefold():
            raise ValueError("Participants must be different.")
        return self


class MarketStatusUpdate(BaseModel):
    status: MarketStatus


class WinnerDeclare(BaseModel):
    winner: str = Field(min_length=1)


class MarketResponse(BaseModel):
    id: str
    team_a: str
    team_b: str
    odds_a: float
    odds_b: float
    match_time: datetime
    status: MarketStatus
    winner: Optional[str] = None
    bonus_active: bool
    tournament: Optional[str] = None
    created_at: datetime
    finished_at: Optional[datetime] = None

    @classmethod
    def from_doc(cls, doc: dict) -> "MarketResponse":
        return cls(
            id=str(doc["_id"]),
            team_a=doc["team_a"],
            team_b=doc["team_b"],
            odds_a=doc["odds_a"],
            odds_b=doc["odds_b"],
            match_time=doc["match_time"],
            status=doc["status"],
            winner=doc.get("winner"),
            bonus_active=bool(doc.get("bonus_active")),
            tournament=doc.get("tournament"),
            created_at=doc["created_at"],
            finished_at=doc.get("finished_at"),
        )


class MarketPosition(BaseModel):
    """Platform exposure on one market."""
    market_id: str
    wager_count: int
    pending_stake: float
    total_staked: float
    total_paid: float
    net_position: float
