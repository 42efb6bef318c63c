"""
backend/tests/test_admin_service.py

Purpose:
    Admin read models: platform totals, user search and the balance
    leaderboard.
"""

from __future__ import annotations

import sys
from datetime import datetime, timezone

import pytest

sys.path.insert(0, "backend")

from wicketbook.models.market import MarketCreate
from wicketbook.services import admin_service, cashier_service, market_service, wallet_service


@pytest.mark.asyncio
async def test_platform_stats(fake_mongo):
    for uid in ("u1", "u2", "u3"):
        await wallet_service.ensure_user(uid)
    await cashier_service.request_withdrawal("u1", 500, "upi", "x")
    recharge = await cashier_service.request_recharge("u2", 300, "R1")
    await cashier_service.approve_recharge(str(recharge["_id"]))
    await cashier_service.request_recharge("u3", 50, "R2")
    await market_service.create_market(MarketCreate(
        team_a="India", team_b="Australia", odds_a=1.9, odds_b=1.9,
        match_time=datetime(2026, 12, 1, tzinfo=timezone.utc),
    ))

    stats = await admin_service.platform_stats()

    assert stats == {
        "total_users": 3,
        "platform_balance": 2800.0,
        "total_deposit": 300.0,
        "total_withdraw": 0.0,
        "pending_recharges": 1,
        "pending_withdrawals": 1,
        "active_markets": 1,
    }


@pytest.mark.asyncio
async def test_platform_stats_on_empty_database(fake_mongo):
    stats = await admin_service.platform_stats()
    assert stats["total_users"] == 0
    assert stats["platform_balance"] == 0.0


@pytest.mark.asyncio
async def test_list_users_search_matches_email_or_id(fake_mongo):
    await wallet_service.ensure_user("alpha-1", "rohit@example.com")
    await wallet_service.ensure_user("beta-2", "virat@example.com")

    assert [u["_id"] for u in await admin_service.list_users("ROHIT")] == ["alpha-1"]
    assert [u["_id"] for u in await admin_service.list_users("beta")] == ["beta-2"]
    assert len(await admin_service.list_users()) == 2
    # Regex metacharacters are taken literally.
    assert await admin_service.list_users(".*") == []


@pytest.mark.asyncio
async def test_leaderboard_ranks_by_balance(fake_mongo):
    for uid, balance in (("a", 900), ("b", 2500), ("c", 1200)):
        await wallet_service.ensure_user(uid, f"{uid}@example.com")
        await wallet_service.admin_update_user(uid, balance=balance)

    board = await admin_service.leaderboard(limit=2)

    assert [(r["rank"], r["user_id"], r["balance"]) for r in board] == [
        (1, "b", 2500.0),
        (2, "c", 1200.0),
    ]
    assert board[0]["email"] == "b@example.com"
