from fastapi import APIRouter, Query

from wicketbook.config import settings
from wicketbook.models.wallet import LeaderboardEntry
from wicketbook.services import admin_service

router = APIRouter(prefix="/api/leaderboard", tags=["leaderboard"])


@router.get("", response_model=list[LeaderboardEntry])
async def get_leaderboard(limit: int = Query(None, ge=1, le=100)):
    """Top users by balance."""
    rows = await admin_service.leaderboard(limit or settings.LEADERBOARD_SIZE)
    return [LeaderboardEntry(**row) for row in rows]
