"""
backend/tests/test_ledger_reconciler.py

Purpose:
    Scheduled ledger reconciliation: drift is logged and counted, and a
    recent run suppresses the next one.
"""

from __future__ import annotations

import logging
import sys

import pytest

sys.path.insert(0, "backend")

from wicketbook.services import wallet_service
from wicketbook.workers import ledger_reconciler


@pytest.mark.asyncio
async def test_reconciler_reports_drift_once_per_window(fake_mongo, caplog):
    await wallet_service.ensure_user("u1")
    await wallet_service.ensure_user("u2")
    await fake_mongo.users.update_one({"_id": "u1"}, {"$inc": {"balance": -10}})

    with caplog.at_level(logging.WARNING, logger="wicketbook.ledger_reconciler"):
        assert await ledger_reconciler.reconcile_ledger() == 1
    assert "user=u1" in caplog.text

    state = await fake_mongo.worker_state.find_one({"_id": ledger_reconciler.STATE_KEY})
    assert state["drifted"] == 1

    # Within the window the scan is skipped.
    assert await ledger_reconciler.reconcile_ledger() == 0


@pytest.mark.asyncio
async def test_reconciler_clean_ledger(fake_mongo):
    await wallet_service.ensure_user("u1")
    assert await ledger_reconciler.reconcile_ledger() == 0
    assert await fake_mongo.users.find_one({"_id": "u1", "balance": 1000.0})
