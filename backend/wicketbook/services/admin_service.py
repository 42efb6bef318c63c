"""Admin console read models: platform stats, user search and leaderboard."""

import re
from typing import Optional

import wicketbook.database as _db
from wicketbook.models.market import MarketStatus
from wicketbook.models.wallet import RechargeStatus, WithdrawalStatus


async def platform_stats() -> dict:
    rows = await _db.db.users.aggregate([
        {"$group": {
            "_id": None,
            "users": {"$sum": 1},
            "balance": {"$sum": "$balance"},
            "deposit": {"$sum": "$total_deposit"},
            "withdraw": {"$sum": "$total_withdraw"},
        }},
    ]).to_list(length=1)
    totals = rows[0] if rows else {}

    return {
        "total_users": int(totals.get("users", 0)),
        "platform_balance": float(totals.get("balance", 0.0)),
        "total_deposit": float(totals.get("deposit", 0.0)),
        "total_withdraw": float(totals.get("withdraw", 0.0)),
        "pending_recharges": await _db.db.recharge_requests.count_documents(
            {"status": RechargeStatus.pending.value}
        ),
        "pending_withdrawals": await _db.db.withdrawals.count_documents(
            {"status": WithdrawalStatus.pending.value}
        ),
        "active_markets": await _db.db.markets.count_documents(
            {"status": {"$ne": MarketStatus.finished.value}}
        ),
    }


async def list_users(search: Optional[str] = None, limit: int = 100) -> list[dict]:
    query: dict = {}
    if search:
        pattern = re.escape(search.strip())
        query["$or"] = [
            {"email": {"$regex": pattern, "$options": "i"}},
            {"_id": {"$regex": pattern, "$options": "i"}},
        ]
    return await _db.db.users.find(query).sort("created_at", -1).to_list(length=limit)


async def leaderboard(limit: int = 10) -> list[dict]:
    users = await _db.db.users.find(
        {}, {"email": 1, "balance": 1, "total_won": 1},
    ).sort("balance", -1).limit(limit).to_list(length=limit)
    return [
        {
            "rank": rank,
            "user_id": str(u["_id"]),
            "email": u.get("email"),
            "balance": float(u.get("balance", 0.0)),
            "total_won": float(u.get("total_won", 0.0)),
        }
        for rank, u in enumerate(users, start=1)
    ]
