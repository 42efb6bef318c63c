"""Wager endpoints: place a prediction, list my history."""

from fastapi import APIRouter, Depends, status

from wicketbook.models.wager import WagerCreate, WagerResponse
from wicketbook.services import wager_service
from wicketbook.services.auth_service import get_current_user
from wicketbook.services.websocket_manager import websocket_manager

router = APIRouter(prefix="/api/wagers", tags=["wagers"])


@router.post("", response_model=WagerResponse, status_code=status.HTTP_201_CREATED)
async def place_wager(body: WagerCreate, user=Depends(get_current_user)):
    """Place a wager (atomic wallet debit)."""
    user_id = str(user["_id"])
    wager = await wager_service.place_wager(
        user_id=user_id,
        market_id=body.market_id,
        selected_team=body.selected_team,
        stake=body.stake,
        user_email=user.get("email"),
    )
    await websocket_manager.broadcast(
        event_type="wallet.updated",
        data={"reason": "wager", "market_id": body.market_id},
        user_ids=[user_id],
    )
    return WagerResponse.from_doc(wager)


@router.get("", response_model=list[WagerResponse])
async def my_wagers(user=Depends(get_current_user)):
    wagers = await wager_service.get_user_wagers(str(user["_id"]))
    return [WagerResponse.from_doc(w) for w in wagers]
