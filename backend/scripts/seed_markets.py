"""
backend/scripts/seed_markets.py

Purpose:
    Insert a handful of demo cricket markets for local development. Skips
    pairings that already have an unfinished market unless --force is given.

Usage:
    cd backend && python -m scripts.seed_markets
    cd backend && python -m scripts.seed_markets --force
"""

from __future__ import annotations

import argparse
import asyncio
from datetime import timedelta

import wicketbook.database as _db
from wicketbook.models.market import MarketCreate, MarketStatus
from wicketbook.services.market_service import create_market
from wicketbook.utils import utcnow

DEMO_MARKETS = (
    # team_a, team_b, odds_a, odds_b, hours from now, bonus, tournament
    ("India", "Pakistan", 1.70, 2.15, 24, True, "Asia Cup"),
    ("Mumbai Indians", "Chennai Super Kings", 1.90, 1.90, 48, False, "IPL"),
    ("Australia", "England", 1.85, 1.95, 72, False, "The Ashes"),
    ("Royal Challengers Bengaluru", "Kolkata Knight Riders", 2.05, 1.75, 96, True, "IPL"),
)


async def _run(force: bool) -> int:
    await _db.connect_db()
    try:
        created: list[str] = []
        skipped: list[str] = []
        now = utcnow()
        for team_a, team_b, odds_a, odds_b, hours, bonus, tournament in DEMO_MARKETS:
            label = f"{team_a} vs {team_b}"
            if not force and await _db.db.markets.count_documents({
                "team_a": team_a,
                "team_b": team_b,
                "status": {"$ne": MarketStatus.finished.value},
            }):
                skipped.append(label)
                continue
            market = await create_market(MarketCreate(
                team_a=team_a,
                team_b=team_b,
                odds_a=odds_a,
                odds_b=odds_b,
                match_time=now + timedelta(hours=hours),
                bonus_active=bonus,
                tournament=tournament,
            ))
            created.append(f"{label} ({market['_id']})")

        print({"ok": True, "created": created, "skipped": skipped})
        return 0
    finally:
        await _db.close_db()


async def main() -> int:
    parser = argparse.ArgumentParser(description="Seed demo cricket markets.")
    parser.add_argument("--force", action="store_true", help="Insert even if the pairing is already open.")
    args = parser.parse_args()
    return await _run(force=bool(args.force))


if __name__ == "__main__":
    raise SystemExit(asyncio.run(main()))
