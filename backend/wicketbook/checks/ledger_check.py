"""
backend/wicketbook/checks/ledger_check.py

Purpose:
    Self-check for ledger integrity. Verifies DB connectivity, that every
    wallet matches its ledger, that winners exist exactly on finished
    markets, and that no finished market still holds pending wagers.

Dependencies:
    - wicketbook.database
    - wicketbook.services.wallet_service
"""

import logging
import traceback

import wicketbook.database as _db
from wicketbook.models.market import MarketStatus
from wicketbook.models.wager import WagerStatus
from wicketbook.services.wallet_service import find_ledger_drift

logger = logging.getLogger("wicketbook.ledger_check")


class LedgerHealthCheck:
    """Read-only consistency sweep over markets, wagers and wallets."""

    @staticmethod
    async def run() -> dict:
        report: dict = {
            "status": "UNKNOWN",
            "steps": {
                "database": "PENDING",
                "wallets_reconciled": "PENDING",
                "winners_consistent": "PENDING",
                "settlement_complete": "PENDING",
                "pending_payouts_zero": "PENDING",
            },
            "details": {},
            "error": None,
        }

        try:
            if _db.db is None:
                raise RuntimeError("Database is not initialized. Call connect_db() first.")

            collections = await _db.db.list_collection_names()
            report["steps"]["database"] = "OK"
            report["details"]["collections_count"] = len(collections)

            drifted = await find_ledger_drift()
            report["steps"]["wallets_reconciled"] = "FAILED" if drifted else "OK"
            report["details"]["drifted_wallets"] = [d["user_id"] for d in drifted]

            open_with_winner = await _db.db.markets.count_documents(
                {"status": {"$ne": MarketStatus.finished.value}, "winner": {"$ne": None}}
            )
            finished_without_winner = await _db.db.markets.count_documents(
                {"status": MarketStatus.finished.value, "winner": None}
            )
            report["steps"]["winners_consistent"] = (
                "FAILED" if open_with_winner or finished_without_winner else "OK"
            )
            report["details"]["open_markets_with_winner"] = open_with_winner
            report["details"]["finished_markets_without_winner"] = finished_without_winner

            unsettled: list[str] = []
            async for market in _db.db.markets.find(
                {"status": MarketStatus.finished.value}, {"_id": 1},
            ):
                market_id = str(market["_id"])
                if await _db.db.wagers.count_documents(
                    {"market_id": market_id, "status": WagerStatus.pending.value}
                ):
                    unsettled.append(market_id)
            report["steps"]["settlement_complete"] = "FAILED" if unsettled else "OK"
            report["details"]["unsettled_markets"] = unsettled

            paid_pending = await _db.db.wagers.count_documents(
                {"status": WagerStatus.pending.value, "payout": {"$ne": 0}}
            )
            report["steps"]["pending_payouts_zero"] = "FAILED" if paid_pending else "OK"
            report["details"]["pending_wagers_with_payout"] = paid_pending

            failed = [k for k, v in report["steps"].items() if v == "FAILED"]
            report["status"] = "DEGRADED" if failed else "HEALTHY"
            if failed:
                report["error"] = f"Failed checks: {', '.join(failed)}"

        except Exception as e:
            report["status"] = "CRITICAL"
            report["error"] = str(e)
            report["traceback"] = traceback.format_exc()
            logger.error("Ledger check failed: %s", e, exc_info=True)

        return report
