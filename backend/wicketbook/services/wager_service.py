"""
backend/wicketbook/services/wager_service.py

Purpose:
    Wager placement: validate the stake, then record the wager and debit the
    bettor inside one transaction that also writes the market and wallet
    documents. The open-market and sufficient-funds checks are guarded
    writes inside that transaction, so a placement cannot land on a market
    settled concurrently and concurrent placements cannot overdraw a wallet.

Dependencies:
    - wicketbook.database
    - wicketbook.services.wallet_service
    - wicketbook.services.market_service
"""

import logging
import math

from pymongo import ReturnDocument

import wicketbook.database as _db
from wicketbook.config import settings
from wicketbook.errors import (
    InvalidSelectionError,
    InvalidStakeError,
    LedgerError,
    MarketClosedError,
    StakeAboveMaximumError,
    StakeBelowMinimumError,
)
from wicketbook.models.market import MarketStatus
from wicketbook.models.wager import WagerInDB, WagerStatus
from wicketbook.models.wallet import TransactionType
from wicketbook.monitoring.ledger_metrics import (
    METRIC_STAKE_COINS,
    METRIC_WAGER_REJECTIONS,
    METRIC_WAGERS_PLACED,
)
from wicketbook.services import market_service, wallet_service
from wicketbook.utils import utcnow

logger = logging.getLogger("wicketbook.wager_service")


def validate_stake(stake: float) -> float:
    """Stake policy checks that need no database round-trip."""
    try:
        stake = float(stake)
    except (TypeError, ValueError):
        raise InvalidStakeError()
    if not math.isfinite(stake) or stake <= 0:
        raise InvalidStakeError()
    if stake < settings.MIN_STAKE:
        raise StakeBelowMinimumError(f"Minimum stake: {settings.MIN_STAKE:.0f} coins.")
    if settings.MAX_STAKE is not None and stake > settings.MAX_STAKE:
        raise StakeAboveMaximumError(f"Maximum stake: {settings.MAX_STAKE:.0f} coins.")
    return stake


async def place_wager(
    user_id: str, market_id: str, selected_team: str, stake: float,
    user_email: str | None = None,
) -> dict:
    try:
        wager = await _place_wager(user_id, market_id, selected_team, stake, user_email)
    except LedgerError as exc:
        METRIC_WAGER_REJECTIONS.labels(reason=type(exc).__name__).inc()
        raise
    METRIC_WAGERS_PLACED.inc()
    METRIC_STAKE_COINS.inc(wager["stake"])
    return wager


async def _place_wager(
    user_id: str, market_id: str, selected_team: str, stake: float,
    user_email: str | None,
) -> dict:
    """Place a wager with an atomic wallet debit.

    Validates:
    - Stake is positive, above the minimum and below the optional maximum
    - Market exists and is not finished
    - Selection is one of the market's two participants
    - Balance covers the stake (checked inside the transaction)
    """
    stake = validate_stake(stake)
    market = await market_service.get_market(market_id)
    if market["status"] == MarketStatus.finished.value:
        raise MarketClosedError("Market is closed for predictions.")
    if market_service.odds_for(market, selected_team) is None:
        raise InvalidSelectionError(
            f"Pick {market['team_a']} or {market['team_b']}."
        )

    async with _db.transaction() as session:
        # Writing the market puts placement and settlement on the same
        # document, so a concurrent winner declaration cannot also commit.
        market = await _db.db.markets.find_one_and_update(
            {"_id": market["_id"], "status": {"$ne": MarketStatus.finished.value}},
            {"$inc": {"wager_count": 1}},
            return_document=ReturnDocument.AFTER,
            session=session,
        )
        if market is None:
            raise MarketClosedError("Market is closed for predictions.")

        odds = market_service.odds_for(market, selected_team)
        wager = WagerInDB(
            user_id=user_id,
            user_email=user_email,
            market_id=str(market["_id"]),
            team_a=market["team_a"],
            team_b=market["team_b"],
            selected_team=selected_team,
            odds=odds,
            stake=stake,
            bonus_at_placement=bool(market.get("bonus_active")),
            status=WagerStatus.pending,
            payout=0.0,
            created_at=utcnow(),
        )
        wager_doc = wager.model_dump()
        result = await _db.db.wagers.insert_one(wager_doc, session=session)
        wager_doc["_id"] = result.inserted_id
        await wallet_service.debit(
            user_id,
            stake,
            TransactionType.WAGER_PLACED,
            f"Wager: {market['team_a']} vs {market['team_b']} -> {selected_team} ({stake:.0f} coins)",
            session=session,
            reference_type="wager",
            reference_id=str(result.inserted_id),
            counters={"total_wagers": 1, "total_wagered": stake},
        )

    logger.info(
        "Wager placed: user=%s market=%s pick=%s stake=%.0f odds=%.2f",
        user_id, market_id, selected_team, stake, odds,
    )
    return wager_doc


async def get_user_wagers(user_id: str, limit: int = 100) -> list[dict]:
    """Get a user's wagers, newest first."""
    return await _db.db.wagers.find(
        {"user_id": user_id},
    ).sort("created_at", -1).to_list(length=limit)


async def get_market_wagers(market_id: str, limit: int = 1000) -> list[dict]:
    return await _db.db.wagers.find(
        {"market_id": market_id},
    ).sort("created_at", -1).to_list(length=limit)
