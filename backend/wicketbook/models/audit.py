from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class AuditLog(BaseModel):
    """Administrator action on a market, wallet or cashier request. Insert-only."""

    id: str
    timestamp: datetime
    actor_id: str  # Admin user id or "SYSTEM"
    target_id: str  # Market, user or request id
    action: str
    metadata: dict = Field(default_factory=dict)  # Before/after values, settlement summary
    ip_network: str = ""  # e.g. "203.0.113.0/24"
    request_id: Optional[str] = None

    @classmethod
    def from_doc(cls, doc: dict) -> "AuditLog":
        return cls(id=str(doc["_id"]), **{k: v for k, v in doc.items() if k != "_id"})
