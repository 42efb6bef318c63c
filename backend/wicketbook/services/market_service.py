"""
backend/wicketbook/services/market_service.py

Purpose:
    Market lifecycle: create, forward-only status transitions, bonus flag
    toggling and deletion. Finishing a market belongs to the settlement
    engine so that a winner is recorded exactly when the status is Finished.

Dependencies:
    - wicketbook.database
    - wicketbook.models.market
"""

import logging
from typing import Optional

from bson import ObjectId
from bson.errors import InvalidId
from pymongo import ReturnDocument

import wicketbook.database as _db
from wicketbook.errors import InvalidTransitionError, MarketNotFoundError
from wicketbook.models.market import (
    MARKET_STATUS_ORDER,
    MarketCreate,
    MarketInDB,
    MarketStatus,
)
from wicketbook.utils import ensure_utc, utcnow

logger = logging.getLogger("wicketbook.market_service")


def market_oid(market_id: str) -> ObjectId:
    try:
        return ObjectId(market_id)
    except (InvalidId, TypeError):
        raise MarketNotFoundError()


async def create_market(body: MarketCreate) -> dict:
    """Insert a new market in status Upcoming. Duplicate pairings are allowed."""
    now = utcnow()
    market = MarketInDB(
        team_a=body.team_a,
        team_b=body.team_b,
        odds_a=body.odds_a,
        odds_b=body.odds_b,
        match_time=ensure_utc(body.match_time),
        status=MarketStatus.upcoming,
        winner=None,
        bonus_active=body.bonus_active,
        tournament=body.tournament,
        created_at=now,
        updated_at=now,
    )
    doc = market.model_dump()
    result = await _db.db.markets.insert_one(doc)
    doc["_id"] = result.inserted_id

    logger.info(
        "Market created: id=%s %s vs %s odds=%.2f/%.2f bonus=%s",
        result.inserted_id, body.team_a, body.team_b, body.odds_a, body.odds_b, body.bonus_active,
    )
    return doc


async def get_market(market_id: str, session=None) -> dict:
    market = await _db.db.markets.find_one({"_id": market_oid(market_id)}, session=session)
    if not market:
        raise MarketNotFoundError()
    return market


async def list_markets(status: Optional[MarketStatus] = None, limit: int = 100) -> list[dict]:
    query: dict = {}
    if status is not None:
        query["status"] = MarketStatus(status).value
    return await _db.db.markets.find(query).sort("created_at", -1).to_list(length=limit)


async def transition_market(market_id: str, new_status: MarketStatus) -> dict:
    """Move a market forward in its lifecycle.

    Only Upcoming -> Live is accepted here. Setting the current status again
    is a no-op; regressing, skipping, or finishing without a winner raises
    InvalidTransitionError.
    """
    new_status = MarketStatus(new_status)
    market = await get_market(market_id)
    current = MarketStatus(market["status"])

    if new_status == current:
        return market
    if new_status == MarketStatus.finished:
        raise InvalidTransitionError("Markets are finished by declaring a winner.")
    if MARKET_STATUS_ORDER[new_status] != MARKET_STATUS_ORDER[current] + 1:
        raise InvalidTransitionError(
            f"Cannot move market from {current.value} to {new_status.value}."
        )

    # Guard on the observed status so a concurrent transition cannot be overwritten.
    updated = await _db.db.markets.find_one_and_update(
        {"_id": market["_id"], "status": current.value},
        {"$set": {"status": new_status.value, "updated_at": utcnow()}},
        return_document=ReturnDocument.AFTER,
    )
    if not updated:
        raise InvalidTransitionError("Market status changed concurrently.")

    logger.info("Market %s: %s -> %s", market_id, current.value, new_status.value)
    return updated


async def toggle_bonus(market_id: str) -> dict:
    """Flip the bonus-condition flag. Already-settled wagers are unaffected."""
    # Flipped server-side so overlapping toggles each take effect.
    updated = await _db.db.markets.find_one_and_update(
        {"_id": market_oid(market_id)},
        [{"$set": {"bonus_active": {"$not": ["$bonus_active"]}, "updated_at": utcnow()}}],
        return_document=ReturnDocument.AFTER,
    )
    if not updated:
        raise MarketNotFoundError()
    logger.info("Market %s bonus flag -> %s", market_id, updated["bonus_active"])
    return updated


async def delete_market(market_id: str) -> None:
    """Remove the market only. Its wagers stay, with a dangling market_id."""
    result = await _db.db.markets.delete_one({"_id": market_oid(market_id)})
    if not result.deleted_count:
        raise MarketNotFoundError()
    logger.info("Market deleted: %s", market_id)


def odds_for(market: dict, team: str) -> Optional[float]:
    """Current odds of ``team`` on ``market``, or None if it is not a participant."""
    if team == market["team_a"]:
        return float(market["odds_a"])
    if team == market["team_b"]:
        return float(market["odds_b"])
    return None
