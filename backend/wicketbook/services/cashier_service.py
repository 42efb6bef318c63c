"""
backend/wicketbook/services/cashier_service.py

Purpose:
    Withdrawal and recharge approval queues. Withdrawals debit the wallet
    when requested and refund on rejection; recharges credit the wallet on
    approval. Every decision that moves coins runs in a transaction together
    with the request status change.

Dependencies:
    - wicketbook.database
    - wicketbook.services.wallet_service
"""

import logging
import math
from typing import Optional

from bson import ObjectId
from bson.errors import InvalidId
from pymongo import ReturnDocument

import wicketbook.database as _db
from wicketbook.config import settings
from wicketbook.errors import (
    InvalidStakeError,
    RequestAlreadyProcessedError,
    RequestNotFoundError,
    WithdrawalBelowMinimumError,
)
from wicketbook.models.wallet import RechargeStatus, TransactionType, WithdrawalStatus
from wicketbook.services import wallet_service
from wicketbook.utils import utcnow

logger = logging.getLogger("wicketbook.cashier")


def _request_oid(request_id: str) -> ObjectId:
    try:
        return ObjectId(request_id)
    except (InvalidId, TypeError):
        raise RequestNotFoundError()


async def _claim(collection, request_id: str, pending: str, decided: str, session) -> dict:
    """Move a request out of its pending state exactly once."""
    oid = _request_oid(request_id)
    doc = await collection.find_one_and_update(
        {"_id": oid, "status": pending},
        {"$set": {"status": decided, "processed_at": utcnow()}},
        return_document=ReturnDocument.AFTER,
        session=session,
    )
    if doc:
        return doc
    if await collection.find_one({"_id": oid}, {"_id": 1}, session=session):
        raise RequestAlreadyProcessedError()
    raise RequestNotFoundError()


async def _notify(user_id: str, kind: str, message: str, session=None) -> None:
    await _db.db.notifications.insert_one({
        "user_id": user_id,
        "type": kind,
        "message": message,
        "read": False,
        "created_at": utcnow(),
    }, session=session)


# ---------- Withdrawals ----------

async def request_withdrawal(
    user_id: str, amount: float, method: str, details: str,
    user_email: Optional[str] = None,
) -> dict:
    """Open a withdrawal request and hold the coins immediately."""
    if not math.isfinite(amount) or amount <= 0:
        raise InvalidStakeError("Amount must be positive.")
    if amount < settings.MIN_WITHDRAWAL:
        raise WithdrawalBelowMinimumError(
            f"Minimum withdrawal is {settings.MIN_WITHDRAWAL:.0f} coins."
        )

    doc = {
        "user_id": user_id,
        "user_email": user_email,
        "amount": float(amount),
        "method": method,
        "details": details.strip(),
        "status": WithdrawalStatus.pending.value,
        "created_at": utcnow(),
        "processed_at": None,
    }
    async with _db.transaction() as session:
        result = await _db.db.withdrawals.insert_one(doc, session=session)
        doc["_id"] = result.inserted_id
        await wallet_service.debit(
            user_id,
            float(amount),
            TransactionType.WITHDRAWAL_REQUESTED,
            f"Withdrawal request via {method}",
            session=session,
            reference_type="withdrawal",
            reference_id=str(result.inserted_id),
            counters={"active_withdrawals": 1},
        )

    logger.info("Withdrawal requested: user=%s amount=%.0f", user_id, amount)
    return doc


async def approve_withdrawal(request_id: str) -> dict:
    async with _db.transaction() as session:
        req = await _claim(
            _db.db.withdrawals, request_id,
            WithdrawalStatus.pending.value, WithdrawalStatus.approved.value, session,
        )
        await _db.db.users.update_one(
            {"_id": req["user_id"]},
            {"$inc": {"active_withdrawals": -1, "total_withdraw": req["amount"]},
             "$set": {"updated_at": utcnow()}},
            session=session,
        )
    logger.info("Withdrawal approved: id=%s amount=%.0f", request_id, req["amount"])
    return req


async def reject_withdrawal(request_id: str) -> dict:
    """Reject a withdrawal and return the held coins."""
    async with _db.transaction() as session:
        req = await _claim(
            _db.db.withdrawals, request_id,
            WithdrawalStatus.pending.value, WithdrawalStatus.rejected.value, session,
        )
        await wallet_service.credit(
            req["user_id"],
            req["amount"],
            TransactionType.WITHDRAWAL_REFUNDED,
            "Withdrawal rejected, coins returned",
            session=session,
            reference_type="withdrawal",
            reference_id=request_id,
            counters={"active_withdrawals": -1},
        )
    logger.info("Withdrawal rejected: id=%s amount=%.0f", request_id, req["amount"])
    return req


async def list_withdrawals(
    user_id: Optional[str] = None, status: Optional[str] = None, limit: int = 100,
) -> list[dict]:
    query: dict = {}
    if user_id:
        query["user_id"] = user_id
    if status:
        query["status"] = status
    return await _db.db.withdrawals.find(query).sort("created_at", -1).to_list(length=limit)


# ---------- Recharges ----------

async def request_recharge(
    user_id: str, amount: float, transaction_ref: str, user_email: Optional[str] = None,
) -> dict:
    """Queue a recharge for admin review. No coins move yet."""
    if not math.isfinite(amount) or amount <= 0:
        raise InvalidStakeError("Amount must be positive.")
    doc = {
        "user_id": user_id,
        "user_email": user_email,
        "amount": float(amount),
        "transaction_ref": transaction_ref.strip(),
        "status": RechargeStatus.pending.value,
        "created_at": utcnow(),
        "processed_at": None,
    }
    result = await _db.db.recharge_requests.insert_one(doc)
    doc["_id"] = result.inserted_id
    logger.info("Recharge requested: user=%s amount=%.0f", user_id, amount)
    return doc


async def approve_recharge(request_id: str) -> dict:
    async with _db.transaction() as session:
        req = await _claim(
            _db.db.recharge_requests, request_id,
            RechargeStatus.pending.value, RechargeStatus.approved.value, session,
        )
        await wallet_service.credit(
            req["user_id"],
            req["amount"],
            TransactionType.RECHARGE_APPROVED,
            "Wallet recharge approved",
            session=session,
            reference_type="recharge",
            reference_id=request_id,
            counters={"total_deposit": req["amount"]},
        )
        await _notify(
            req["user_id"], "recharge_approved",
            f"Your recharge of {req['amount']:.0f} has been approved!",
            session=session,
        )
    logger.info("Recharge approved: id=%s amount=%.0f", request_id, req["amount"])
    return req


async def reject_recharge(request_id: str) -> dict:
    async with _db.transaction() as session:
        req = await _claim(
            _db.db.recharge_requests, request_id,
            RechargeStatus.pending.value, RechargeStatus.rejected.value, session,
        )
        await _notify(
            req["user_id"], "recharge_rejected",
            f"Your recharge of {req['amount']:.0f} was rejected. Please contact support.",
            session=session,
        )
    logger.info("Recharge rejected: id=%s", request_id)
    return req


async def list_recharges(
    user_id: Optional[str] = None, status: Optional[str] = None, limit: int = 100,
) -> list[dict]:
    query: dict = {}
    if user_id:
        query["user_id"] = user_id
    if status:
        query["status"] = status
    return await _db.db.recharge_requests.find(query).sort("created_at", -1).to_list(length=limit)
