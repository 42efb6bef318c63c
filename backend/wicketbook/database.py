"""
backend/wicketbook/database.py

Purpose:
    MongoDB connection bootstrap, transaction helper and index management for
    the market, wager, wallet and cashier collections.

Dependencies:
    - motor.motor_asyncio
    - wicketbook.config
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from motor.motor_asyncio import (
    AsyncIOMotorClient,
    AsyncIOMotorClientSession,
    AsyncIOMotorDatabase,
)

from wicketbook.config import settings

client: AsyncIOMotorClient = None
db: AsyncIOMotorDatabase = None

logger = logging.getLogger("wicketbook.database")


async def connect_db() -> None:
    global client, db
    client = AsyncIOMotorClient(
        settings.MONGO_URI,
        maxPoolSize=25,
        minPoolSize=5,
        tz_aware=True,
    )
    db = client[settings.MONGO_DB]
    await _ensure_indexes()


async def close_db() -> None:
    global client
    if client:
        client.close()


async def get_db() -> AsyncIOMotorDatabase:
    return db


@asynccontextmanager
async def transaction() -> AsyncIterator[AsyncIOMotorClientSession]:
    """Run the enclosed writes as one all-or-nothing multi-document commit.

    Any exception raised inside the block aborts the transaction.
    """
    async with await client.start_session() as session:
        async with session.start_transaction():
            yield session


async def _ensure_indexes() -> None:
    """Create indexes on startup. Idempotent."""

    # ---- Users ----
    await db.users.create_index("email", sparse=True)
    await db.users.create_index([("balance", -1)])

    # ---- Markets ----
    await db.markets.create_index([("status", 1), ("match_time", 1)])
    await db.markets.create_index([("created_at", -1)])

    # ---- Wagers ----
    # Settlement scan: all pending wagers of one market
    await db.wagers.create_index([("market_id", 1), ("status", 1)])
    await db.wagers.create_index([("user_id", 1), ("created_at", -1)])

    # ---- Ledger ----
    await db.wallet_transactions.create_index([("user_id", 1), ("created_at", -1)])
    await db.wallet_transactions.create_index([("reference_type", 1), ("reference_id", 1)])

    # ---- Cashier ----
    await db.withdrawals.create_index([("status", 1), ("created_at", -1)])
    await db.withdrawals.create_index([("user_id", 1), ("created_at", -1)])
    await db.recharge_requests.create_index([("status", 1), ("created_at", -1)])
    await db.recharge_requests.create_index([("user_id", 1), ("created_at", -1)])
    await db.notifications.create_index([("user_id", 1), ("created_at", -1)])

    # ---- Audit / worker state ----
    await db.audit_logs.create_index([("timestamp", -1)])
    await db.audit_logs.create_index("target_id")

    logger.info("Database indexes ensured")
