"""Market endpoints: public listing plus admin lifecycle and settlement."""

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, status

from wicketbook.models.market import (
    MarketCreate,
    MarketPosition,
    MarketResponse,
    MarketStatus,
    MarketStatusUpdate,
    WinnerDeclare,
)
from wicketbook.models.wager import SettlementResult, WagerResponse
from wicketbook.services import market_service, settlement_service, wager_service
from wicketbook.services.audit_service import AuditAction, log_audit
from wicketbook.services.auth_service import get_admin_user, get_current_user
from wicketbook.services.websocket_manager import websocket_manager

router = APIRouter(prefix="/api/markets", tags=["markets"])


@router.get("", response_model=list[MarketResponse])
async def list_markets(
    status_filter: Optional[MarketStatus] = Query(None, alias="status"),
    user=Depends(get_current_user),
):
    markets = await market_service.list_markets(status_filter)
    return [MarketResponse.from_doc(m) for m in markets]


@router.get("/{market_id}", response_model=MarketResponse)
async def get_market(market_id: str, user=Depends(get_current_user)):
    return MarketResponse.from_doc(await market_service.get_market(market_id))


# ---------- Admin ----------

@router.post("", response_model=MarketResponse, status_code=status.HTTP_201_CREATED)
async def create_market(
    body: MarketCreate, request: Request, admin=Depends(get_admin_user),
):
    market = await market_service.create_market(body)
    response = MarketResponse.from_doc(market)
    await log_audit(
        actor_id=str(admin["_id"]), target_id=response.id, action=AuditAction.MARKET_CREATED,
        metadata=body.model_dump(mode="json"), request=request,
    )
    await websocket_manager.broadcast(
        event_type="market.created", data=response.model_dump(mode="json"),
        market_ids=[response.id],
    )
    return response


@router.patch("/{market_id}/status", response_model=MarketResponse)
async def update_market_status(
    market_id: str, body: MarketStatusUpdate, request: Request,
    admin=Depends(get_admin_user),
):
    market = await market_service.transition_market(market_id, body.status)
    response = MarketResponse.from_doc(market)
    await log_audit(
        actor_id=str(admin["_id"]), target_id=market_id, action=AuditAction.MARKET_STATUS_SET,
        metadata={"status": response.status.value}, request=request,
    )
    await websocket_manager.broadcast(
        event_type="market.updated", data=response.model_dump(mode="json"),
        market_ids=[market_id],
    )
    return response


@router.post("/{market_id}/bonus/toggle", response_model=MarketResponse)
async def toggle_bonus(market_id: str, request: Request, admin=Depends(get_admin_user)):
    market = await market_service.toggle_bonus(market_id)
    response = MarketResponse.from_doc(market)
    await log_audit(
        actor_id=str(admin["_id"]), target_id=market_id, action=AuditAction.MARKET_BONUS_TOGGLED,
        metadata={"bonus_active": response.bonus_active}, request=request,
    )
    await websocket_manager.broadcast(
        event_type="market.updated", data=response.model_dump(mode="json"),
        market_ids=[market_id],
    )
    return response


@router.post("/{market_id}/winner", response_model=SettlementResult)
async def declare_winner(
    market_id: str, body: WinnerDeclare, request: Request,
    admin=Depends(get_admin_user),
):
    """Finish the market and settle every pending wager on it."""
    result = SettlementResult(**await settlement_service.declare_winner(market_id, body.winner))
    await log_audit(
        actor_id=str(admin["_id"]), target_id=market_id, action=AuditAction.MARKET_SETTLED,
        metadata=result.model_dump(mode="json"), request=request,
    )
    await websocket_manager.broadcast(
        event_type="market.settled",
        data={"market_id": market_id, "winner": result.winner, "processed": result.processed},
        market_ids=[market_id],
    )
    if result.credited_user_ids:
        await websocket_manager.broadcast(
            event_type="wallet.updated",
            data={"reason": "settlement", "market_id": market_id},
            user_ids=result.credited_user_ids,
        )
    return result


@router.delete("/{market_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_market(market_id: str, request: Request, admin=Depends(get_admin_user)):
    await market_service.delete_market(market_id)
    await log_audit(
        actor_id=str(admin["_id"]), target_id=market_id, action=AuditAction.MARKET_DELETED,
        request=request,
    )
    await websocket_manager.broadcast(
        event_type="market.deleted", data={"market_id": market_id}, market_ids=[market_id],
    )


@router.get("/{market_id}/wagers", response_model=list[WagerResponse])
async def list_market_wagers(market_id: str, admin=Depends(get_admin_user)):
    wagers = await wager_service.get_market_wagers(market_id)
    return [WagerResponse.from_doc(w) for w in wagers]


@router.get("/{market_id}/position", response_model=MarketPosition)
async def market_position(market_id: str, admin=Depends(get_admin_user)):
    return MarketPosition(**await settlement_service.market_position(market_id))
