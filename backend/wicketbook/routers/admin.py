"""Admin console: platform stats, users, cashier queues, ledger audit."""

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from wicketbook.models.audit import AuditLog
from wicketbook.models.wallet import (
    AdminUserUpdate,
    LedgerReconciliation,
    PlatformStats,
    RechargeResponse,
    RechargeStatus,
    WalletResponse,
    WithdrawalResponse,
    WithdrawalStatus,
)
from wicketbook.services import admin_service, cashier_service, wallet_service
from wicketbook.services.audit_service import AuditAction, log_audit, recent_audit
from wicketbook.services.auth_service import get_admin_user
from wicketbook.services.websocket_manager import websocket_manager

router = APIRouter(prefix="/api/admin", tags=["admin"])


@router.get("/stats", response_model=PlatformStats)
async def platform_stats(admin=Depends(get_admin_user)):
    return PlatformStats(**await admin_service.platform_stats())


# ---------- Users ----------

@router.get("/users", response_model=list[WalletResponse])
async def list_users(
    search: Optional[str] = Query(None, max_length=100),
    admin=Depends(get_admin_user),
):
    users = await admin_service.list_users(search)
    return [WalletResponse.from_doc(u) for u in users]


@router.patch("/users/{user_id}", response_model=WalletResponse)
async def update_user(
    user_id: str, body: AdminUserUpdate, request: Request,
    admin=Depends(get_admin_user),
):
    """Set balance and/or admin flag. Balance changes land in the ledger."""
    before = await wallet_service.get_user(user_id)
    user = await wallet_service.admin_update_user(
        user_id, balance=body.balance, is_admin=body.is_admin, actor_id=str(admin["_id"]),
    )
    await log_audit(
        actor_id=str(admin["_id"]), target_id=user_id, action=AuditAction.ADMIN_USER_UPDATED,
        metadata={
            "balance_before": before.get("balance"),
            "balance_after": user.get("balance"),
            "is_admin": user.get("is_admin"),
        },
        request=request,
    )
    if body.balance is not None:
        await websocket_manager.broadcast(
            event_type="wallet.updated", data={"reason": "admin_adjustment"}, user_ids=[user_id],
        )
    return WalletResponse.from_doc(user)


@router.get("/users/{user_id}/reconcile", response_model=LedgerReconciliation)
async def reconcile_user(user_id: str, admin=Depends(get_admin_user)):
    return LedgerReconciliation(**await wallet_service.reconcile_user(user_id))


@router.get("/ledger/drift", response_model=list[LedgerReconciliation])
async def ledger_drift(admin=Depends(get_admin_user)):
    """Every wallet whose balance disagrees with its ledger."""
    return [LedgerReconciliation(**row) for row in await wallet_service.find_ledger_drift()]


@router.get("/audit", response_model=list[AuditLog])
async def audit_log(
    target_id: Optional[str] = None,
    limit: int = Query(100, ge=1, le=500),
    admin=Depends(get_admin_user),
):
    return [AuditLog.from_doc(d) for d in await recent_audit(target_id, limit)]


# ---------- Withdrawals ----------

@router.get("/withdrawals", response_model=list[WithdrawalResponse])
async def list_withdrawals(
    status_filter: Optional[WithdrawalStatus] = Query(None, alias="status"),
    admin=Depends(get_admin_user),
):
    reqs = await cashier_service.list_withdrawals(
        status=status_filter.value if status_filter else None,
    )
    return [WithdrawalResponse.from_doc(r) for r in reqs]


@router.post("/withdrawals/{request_id}/approve", response_model=WithdrawalResponse)
async def approve_withdrawal(request_id: str, request: Request, admin=Depends(get_admin_user)):
    req = await cashier_service.approve_withdrawal(request_id)
    await log_audit(
        actor_id=str(admin["_id"]), target_id=request_id, action=AuditAction.WITHDRAWAL_APPROVED,
        metadata={"user_id": req["user_id"], "amount": req["amount"]}, request=request,
    )
    return WithdrawalResponse.from_doc(req)


@router.post("/withdrawals/{request_id}/reject", response_model=WithdrawalResponse)
async def reject_withdrawal(request_id: str, request: Request, admin=Depends(get_admin_user)):
    req = await cashier_service.reject_withdrawal(request_id)
    await log_audit(
        actor_id=str(admin["_id"]), target_id=request_id, action=AuditAction.WITHDRAWAL_REJECTED,
        metadata={"user_id": req["user_id"], "amount": req["amount"]}, request=request,
    )
    await websocket_manager.broadcast(
        event_type="wallet.updated", data={"reason": "withdrawal_refunded"}, user_ids=[req["user_id"]],
    )
    return WithdrawalResponse.from_doc(req)


# ---------- Recharges ----------

@router.get("/recharges", response_model=list[RechargeResponse])
async def list_recharges(
    status_filter: Optional[RechargeStatus] = Query(None, alias="status"),
    admin=Depends(get_admin_user),
):
    reqs = await cashier_service.list_recharges(
        status=status_filter.value if status_filter else None,
    )
    return [RechargeResponse.from_doc(r) for r in reqs]


@router.post("/recharges/{request_id}/approve", response_model=RechargeResponse)
async def approve_recharge(request_id: str, request: Request, admin=Depends(get_admin_user)):
    req = await cashier_service.approve_recharge(request_id)
    await log_audit(
        actor_id=str(admin["_id"]), target_id=request_id, action=AuditAction.RECHARGE_APPROVED,
        metadata={"user_id": req["user_id"], "amount": req["amount"]}, request=request,
    )
    await websocket_manager.broadcast(
        event_type="wallet.updated", data={"reason": "recharge_approved"}, user_ids=[req["user_id"]],
    )
    return RechargeResponse.from_doc(req)


@router.post("/recharges/{request_id}/reject", response_model=RechargeResponse)
async def reject_recharge(request_id: str, request: Request, admin=Depends(get_admin_user)):
    req = await cashier_service.reject_recharge(request_id)
    await log_audit(
        actor_id=str(admin["_id"]), target_id=request_id, action=AuditAction.RECHARGE_REJECTED,
        metadata={"user_id": req["user_id"], "amount": req["amount"]}, request=request,
    )
    return RechargeResponse.from_doc(req)
