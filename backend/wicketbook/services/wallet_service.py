"""Virtual wallet engine: guarded balance operations and the append-only ledger.

Every balance movement goes through ``debit`` or ``credit`` and writes one
immutable ``wallet_transactions`` entry, so a user's balance is always the
running total of their ledger. Callers pass the MongoDB session of the
transaction they are part of.
"""

import logging
from typing import Optional

from motor.motor_asyncio import AsyncIOMotorClientSession
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

import wicketbook.database as _db
from wicketbook.config import settings
from wicketbook.errors import InsufficientBalanceError, UserNotFoundError
from wicketbook.models.wallet import TransactionType, WalletTransactionInDB
from wicketbook.utils import utcnow

logger = logging.getLogger("wicketbook.wallet_service")

# Float noise tolerated between a balance and its ledger sum.
_DRIFT_EPSILON = 0.005


async def ensure_user(user_id: str, email: Optional[str] = None) -> dict:
    """Get the user's wallet, creating it with the starting bonus on first sight."""
    user = await _db.db.users.find_one({"_id": user_id})
    if user:
        return user

    now = utcnow()
    starting = float(settings.STARTING_BALANCE)
    user_doc = {
        "_id": user_id,
        "email": email,
        "balance": starting,
        "is_admin": False,
        "total_wagers": 0,
        "total_wagered": 0.0,
        "total_won": 0.0,
        "total_deposit": 0.0,
        "total_withdraw": 0.0,
        "active_withdrawals": 0,
        "created_at": now,
        "updated_at": now,
    }
    try:
        async with _db.transaction() as session:
            await _db.db.users.insert_one(user_doc, session=session)
            await log_transaction(
                user_id=user_id,
                tx_type=TransactionType.INITIAL_CREDIT,
                amount=starting,
                balance_after=starting,
                description="Starting bonus",
                session=session,
            )
    except DuplicateKeyError:
        # Concurrent first request created it.
        return await _db.db.users.find_one({"_id": user_id})

    logger.info("Wallet created: user=%s balance=%.0f", user_id, starting)
    return user_doc


async def get_user(user_id: str, session: Optional[AsyncIOMotorClientSession] = None) -> dict:
    user = await _db.db.users.find_one({"_id": user_id}, session=session)
    if not user:
        raise UserNotFoundError()
    return user


async def debit(
    user_id: str, amount: float, tx_type: TransactionType, description: str,
    *, session: AsyncIOMotorClientSession,
    reference_type: Optional[str] = None, reference_id: Optional[str] = None,
    counters: Optional[dict] = None,
) -> dict:
    """Atomically take ``amount`` from the wallet. Returns the updated user.

    The ``balance >= amount`` guard and the decrement are one
    find_one_and_update, so concurrent debits cannot overdraw the wallet.
    """
    now = utcnow()
    user = await _db.db.users.find_one_and_update(
        {"_id": user_id, "balance": {"$gte": amount}},
        {
            "$inc": {"balance": -amount, **(counters or {})},
            "$set": {"updated_at": now},
        },
        return_document=ReturnDocument.AFTER,
        session=session,
    )
    if not user:
        if not await _db.db.users.find_one({"_id": user_id}, {"_id": 1}, session=session):
            raise UserNotFoundError()
        raise InsufficientBalanceError()

    await log_transaction(
        user_id=user_id,
        tx_type=tx_type,
        amount=-amount,
        balance_after=user["balance"],
        description=description,
        reference_type=reference_type,
        reference_id=reference_id,
        session=session,
    )
    return user


async def credit(
    user_id: str, amount: float, tx_type: TransactionType, description: str,
    *, session: AsyncIOMotorClientSession,
    reference_type: Optional[str] = None, reference_id: Optional[str] = None,
    counters: Optional[dict] = None,
) -> dict:
    """Add ``amount`` to the wallet. Returns the updated user."""
    now = utcnow()
    user = await _db.db.users.find_one_and_update(
        {"_id": user_id},
        {
            "$inc": {"balance": amount, **(counters or {})},
            "$set": {"updated_at": now},
        },
        return_document=ReturnDocument.AFTER,
        session=session,
    )
    if not user:
        logger.error("Wallet not found for credit: %s", user_id)
        raise UserNotFoundError()

    await log_transaction(
        user_id=user_id,
        tx_type=tx_type,
        amount=amount,
        balance_after=user["balance"],
        description=description,
        reference_type=reference_type,
        reference_id=reference_id,
        session=session,
    )
    return user


async def admin_update_user(
    user_id: str, *, balance: Optional[float] = None, is_admin: Optional[bool] = None,
    actor_id: str = "SYSTEM",
) -> dict:
    """Set a user's balance and/or admin flag.

    A balance change is booked as an ADMIN_ADJUSTMENT entry for the delta.
    """
    async with _db.transaction() as session:
        user = await get_user(user_id, session=session)
        now = utcnow()
        update: dict = {"updated_at": now}
        if is_admin is not None:
            update["is_admin"] = bool(is_admin)
        delta = 0.0
        if balance is not None:
            delta = float(balance) - float(user.get("balance", 0.0))
            update["balance"] = float(balance)

        user = await _db.db.users.find_one_and_update(
            {"_id": user_id},
            {"$set": update},
            return_document=ReturnDocument.AFTER,
            session=session,
        )
        if delta:
            await log_transaction(
                user_id=user_id,
                tx_type=TransactionType.ADMIN_ADJUSTMENT,
                amount=delta,
                balance_after=user["balance"],
                description=f"Manual adjustment by {actor_id}",
                session=session,
            )

    logger.info(
        "Admin update: user=%s actor=%s delta=%.2f is_admin=%s",
        user_id, actor_id, delta, user.get("is_admin"),
    )
    return user


async def get_wallet_transactions(
    user_id: str, limit: int = 50, skip: int = 0,
) -> list[dict]:
    """Get ledger history for a user, newest first."""
    return await _db.db.wallet_transactions.find(
        {"user_id": user_id},
    ).sort("created_at", -1).skip(skip).limit(limit).to_list(length=limit)


async def reconcile_user(user_id: str) -> dict:
    """Compare a user's balance with the sum of their ledger entries."""
    user = await get_user(user_id)
    rows = await _db.db.wallet_transactions.aggregate([
        {"$match": {"user_id": user_id}},
        {"$group": {"_id": "$user_id", "total": {"$sum": "$amount"}, "entries": {"$sum": 1}}},
    ]).to_list(length=1)
    ledger_total = float(rows[0]["total"]) if rows else 0.0
    entries = int(rows[0]["entries"]) if rows else 0
    balance = float(user.get("balance", 0.0))
    return {
        "user_id": user_id,
        "balance": balance,
        "ledger_total": round(ledger_total, 2),
        "drift": round(balance - ledger_total, 2),
        "entries": entries,
    }


async def find_ledger_drift() -> list[dict]:
    """Return every user whose balance disagrees with their ledger."""
    sums = await _db.db.wallet_transactions.aggregate([
        {"$group": {"_id": "$user_id", "total": {"$sum": "$amount"}, "entries": {"$sum": 1}}},
    ]).to_list(length=None)
    by_user = {row["_id"]: row for row in sums}

    drifted: list[dict] = []
    async for user in _db.db.users.find({}, {"balance": 1}):
        row = by_user.get(user["_id"], {})
        ledger_total = float(row.get("total", 0.0))
        balance = float(user.get("balance", 0.0))
        if abs(balance - ledger_total) > _DRIFT_EPSILON:
            drifted.append({
                "user_id": user["_id"],
                "balance": balance,
                "ledger_total": round(ledger_total, 2),
                "drift": round(balance - ledger_total, 2),
                "entries": int(row.get("entries", 0)),
            })
    return drifted


async def log_transaction(
    user_id: str, tx_type: TransactionType, amount: float, balance_after: float,
    description: str, reference_type: Optional[str] = None,
    reference_id: Optional[str] = None,
    session: Optional[AsyncIOMotorClientSession] = None,
) -> None:
    """Insert an immutable ledger entry."""
    entry = WalletTransactionInDB(
        user_id=user_id,
        type=tx_type,
        amount=amount,
        balance_after=balance_after,
        reference_type=reference_type,
        reference_id=reference_id,
        description=description,
        created_at=utcnow(),
    )
    await _db.db.wallet_transactions.insert_one(entry.model_dump(), session=session)
