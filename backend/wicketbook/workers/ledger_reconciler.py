"""Ledger reconciliation: flag wallets whose balance disagrees with their ledger."""

import logging
from datetime import timedelta

from wicketbook.config import settings
from wicketbook.monitoring.ledger_metrics import METRIC_DRIFTED_WALLETS
from wicketbook.services.wallet_service import find_ledger_drift
from wicketbook.workers._state import ran_recently, set_last_run

logger = logging.getLogger("wicketbook.ledger_reconciler")

STATE_KEY = "ledger_reconciler"


async def reconcile_ledger() -> int:
    """Scan all wallets and log each drifted one. Returns the drift count.

    Read-only: drift is reported, never auto-corrected.
    """
    # Skip when a previous process already ran inside the window (restarts).
    window = timedelta(hours=settings.LEDGER_RECONCILE_HOURS) - timedelta(minutes=5)
    if await ran_recently(STATE_KEY, window):
        logger.debug("Smart sleep: ledger reconciled recently")
        return 0

    drifted = await find_ledger_drift()
    METRIC_DRIFTED_WALLETS.set(len(drifted))
    for row in drifted:
        logger.warning(
            "Ledger drift: user=%s balance=%.2f ledger=%.2f drift=%.2f entries=%d",
            row["user_id"], row["balance"], row["ledger_total"], row["drift"], row["entries"],
        )

    if drifted:
        logger.warning("Ledger reconciliation: %d wallet(s) drifted", len(drifted))
    else:
        logger.info("Ledger reconciliation: all wallets consistent")

    await set_last_run(STATE_KEY, drifted=len(drifted))
    return len(drifted)
