"""Wallet endpoints: balance, ledger history, withdrawal and recharge requests."""

from fastapi import APIRouter, Depends, Query, status

from wicketbook.models.wallet import (
    RechargeCreate,
    RechargeResponse,
    TransactionResponse,
    WalletResponse,
    WithdrawalCreate,
    WithdrawalResponse,
)
from wicketbook.services import cashier_service, wallet_service
from wicketbook.services.auth_service import get_current_user
from wicketbook.services.websocket_manager import websocket_manager

router = APIRouter(prefix="/api/wallet", tags=["wallet"])


@router.get("", response_model=WalletResponse)
async def get_wallet(user=Depends(get_current_user)):
    """Current wallet (created with the starting bonus on first visit)."""
    return WalletResponse.from_doc(user)


@router.get("/transactions", response_model=list[TransactionResponse])
async def get_transactions(
    limit: int = Query(50, ge=1, le=200),
    skip: int = Query(0, ge=0),
    user=Depends(get_current_user),
):
    txns = await wallet_service.get_wallet_transactions(str(user["_id"]), limit, skip)
    return [
        TransactionResponse(
            id=str(t["_id"]),
            type=t["type"],
            amount=t["amount"],
            balance_after=t["balance_after"],
            reference_type=t.get("reference_type"),
            reference_id=t.get("reference_id"),
            description=t["description"],
            created_at=t["created_at"],
        )
        for t in txns
    ]


# ---------- Withdrawals ----------

@router.post("/withdrawals", response_model=WithdrawalResponse, status_code=status.HTTP_201_CREATED)
async def request_withdrawal(body: WithdrawalCreate, user=Depends(get_current_user)):
    """Request a payout; the amount is held from the balance immediately."""
    user_id = str(user["_id"])
    req = await cashier_service.request_withdrawal(
        user_id=user_id,
        amount=body.amount,
        method=body.method,
        details=body.details,
        user_email=user.get("email"),
    )
    await websocket_manager.broadcast(
        event_type="wallet.updated", data={"reason": "withdrawal_requested"}, user_ids=[user_id],
    )
    return WithdrawalResponse.from_doc(req)


@router.get("/withdrawals", response_model=list[WithdrawalResponse])
async def my_withdrawals(user=Depends(get_current_user)):
    reqs = await cashier_service.list_withdrawals(user_id=str(user["_id"]))
    return [WithdrawalResponse.from_doc(r) for r in reqs]


# ---------- Recharges ----------

@router.post("/recharges", response_model=RechargeResponse, status_code=status.HTTP_201_CREATED)
async def request_recharge(body: RechargeCreate, user=Depends(get_current_user)):
    req = await cashier_service.request_recharge(
        user_id=str(user["_id"]),
        amount=body.amount,
        transaction_ref=body.transaction_ref,
        user_email=user.get("email"),
    )
    return RechargeResponse.from_doc(req)


@router.get("/recharges", response_model=list[RechargeResponse])
async def my_recharges(user=Depends(get_current_user)):
    reqs = await cashier_service.list_recharges(user_id=str(user["_id"]))
    return [RechargeResponse.from_doc(r) for r in reqs]
