"""
backend/wicketbook/services/settlement_service.py

Purpose:
    Settlement engine. Declaring a market's winner finishes the market,
    resolves every pending wager on it and credits the winners, all in one
    MongoDB transaction: either every effect is committed or none is.

    Re-declaring the same winner is safe: the second run finds no pending
    wagers and moves no coins.

Dependencies:
    - wicketbook.database
    - wicketbook.services.wallet_service
"""

import logging
from decimal import ROUND_HALF_UP, Decimal

import wicketbook.database as _db
from wicketbook.config import settings
from wicketbook.errors import InvalidSelectionError, WinnerConflictError
from wicketbook.models.market import MarketStatus
from wicketbook.models.wager import WagerStatus
from wicketbook.models.wallet import TransactionType
from wicketbook.monitoring.ledger_metrics import (
    METRIC_PAYOUT_COINS,
    METRIC_SETTLED_WAGERS,
    METRIC_SETTLEMENT_LATENCY,
    METRIC_SETTLEMENTS,
    observe_latency,
)
from wicketbook.services import market_service, wallet_service
from wicketbook.utils import utcnow

logger = logging.getLogger("wicketbook.settlement")


def compute_payout(stake: float, odds: float, bonus: bool) -> float:
    """stake x odds x multiplier, rounded half-up to PAYOUT_DECIMALS places."""
    multiplier = settings.BONUS_MULTIPLIER if bonus else 1
    raw = Decimal(str(stake)) * Decimal(str(odds)) * multiplier
    quantum = Decimal(1).scaleb(-settings.PAYOUT_DECIMALS)
    return float(raw.quantize(quantum, rounding=ROUND_HALF_UP))


def bonus_applies(wager: dict, market_bonus: bool) -> bool:
    if settings.BONUS_POLICY == "placement":
        return bool(wager.get("bonus_at_placement"))
    return market_bonus


async def declare_winner(market_id: str, winner: str) -> dict:
    """Finish the market with ``winner`` and settle all of its pending wagers."""
    market = await market_service.get_market(market_id)
    if winner not in (market["team_a"], market["team_b"]):
        raise InvalidSelectionError(
            f"Winner must be {market['team_a']} or {market['team_b']}."
        )
    if market["status"] == MarketStatus.finished.value and market.get("winner") != winner:
        raise WinnerConflictError()

    with observe_latency(METRIC_SETTLEMENT_LATENCY):
        summary = await _settle(market_id, winner)

    METRIC_SETTLEMENTS.inc()
    METRIC_SETTLED_WAGERS.labels(outcome=WagerStatus.won.value).inc(summary["won"])
    METRIC_SETTLED_WAGERS.labels(outcome=WagerStatus.lost.value).inc(summary["lost"])
    METRIC_PAYOUT_COINS.inc(summary["total_payout"])
    logger.info(
        "Market %s settled: winner=%s bonus=%s processed=%d won=%d payout=%.0f",
        market_id, winner, summary["bonus_active"], summary["processed"],
        summary["won"], summary["total_payout"],
    )
    return summary


async def _settle(market_id: str, winner: str) -> dict:
    processed = won = lost = 0
    total_payout = 0.0
    credited: list[str] = []
    now = utcnow()

    async with _db.transaction() as session:
        # Bonus flag as of the declaration, read inside the commit.
        market = await market_service.get_market(market_id, session=session)
        if market["status"] == MarketStatus.finished.value and market.get("winner") != winner:
            raise WinnerConflictError()
        market_bonus = bool(market.get("bonus_active"))
        match_label = f"{market['team_a']} vs {market['team_b']}"

        await _db.db.markets.update_one(
            {"_id": market["_id"]},
            {"$set": {
                "status": MarketStatus.finished.value,
                "winner": winner,
                "finished_at": market.get("finished_at") or now,
                "updated_at": now,
            }},
            session=session,
        )

        cursor = _db.db.wagers.find(
            {"market_id": str(market["_id"]), "status": WagerStatus.pending.value},
            session=session,
        )
        async for wager in cursor:
            wager_id = str(wager["_id"])
            if wager["selected_team"] == winner:
                bonus = bonus_applies(wager, market_bonus)
                payout = compute_payout(wager["stake"], wager["odds"], bonus)
                await _db.db.wagers.update_one(
                    {"_id": wager["_id"], "status": WagerStatus.pending.value},
                    {"$set": {
                        "status": WagerStatus.won.value,
                        "payout": payout,
                        "bonus_applied": bonus,
                        "resolved_at": now,
                    }},
                    session=session,
                )
                await wallet_service.credit(
                    wager["user_id"],
                    payout,
                    TransactionType.WAGER_WON,
                    f"Win: {match_label} -> {winner} ({payout:.0f} coins)",
                    session=session,
                    reference_type="wager",
                    reference_id=wager_id,
                    counters={"total_won": payout},
                )
                won += 1
                total_payout += payout
                credited.append(wager["user_id"])
            else:
                await _db.db.wagers.update_one(
                    {"_id": wager["_id"], "status": WagerStatus.pending.value},
                    {"$set": {
                        "status": WagerStatus.lost.value,
                        "payout": 0.0,
                        "bonus_applied": False,
                        "resolved_at": now,
                    }},
                    session=session,
                )
                owner = await wallet_service.get_user(wager["user_id"], session=session)
                await wallet_service.log_transaction(
                    user_id=wager["user_id"],
                    tx_type=TransactionType.WAGER_LOST,
                    amount=0.0,
                    balance_after=owner.get("balance", 0.0),
                    description=f"Lost: {match_label}",
                    reference_type="wager",
                    reference_id=wager_id,
                    session=session,
                )
                lost += 1
            processed += 1

    return {
        "market_id": market_id,
        "winner": winner,
        "bonus_active": market_bonus,
        "processed": processed,
        "won": won,
        "lost": lost,
        "total_payout": total_payout,
        "credited_user_ids": sorted(set(credited)),
    }


async def market_position(market_id: str) -> dict:
    """Platform position on a market: stakes taken minus payouts made.

    Works for deleted markets too; wagers keep their market_id.
    """
    rows = await _db.db.wagers.aggregate([
        {"$match": {"market_id": market_id}},
        {"$group": {
            "_id": "$status",
            "count": {"$sum": 1},
            "stake": {"$sum": "$stake"},
            "payout": {"$sum": "$payout"},
        }},
    ]).to_list(length=None)

    wager_count = sum(int(r["count"]) for r in rows)
    total_staked = sum(float(r["stake"]) for r in rows)
    total_paid = sum(float(r["payout"]) for r in rows)
    pending_stake = sum(float(r["stake"]) for r in rows if r["_id"] == WagerStatus.pending.value)
    return {
        "market_id": market_id,
        "wager_count": wager_count,
        "pending_stake": pending_stake,
        "total_staked": total_staked,
        "total_paid": total_paid,
        "net_position": total_staked - total_paid,
    }
