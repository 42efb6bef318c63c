"""Persistent worker state: last run timestamp per worker, across restarts.

Stored in a small `worker_state` collection.
"""

from datetime import datetime, timedelta

import wicketbook.database as _db
from wicketbook.utils import ensure_utc, utcnow


async def get_last_run(worker_id: str) -> datetime | None:
    doc = await _db.db.worker_state.find_one({"_id": worker_id})
    return doc["last_run_at"] if doc else None


async def set_last_run(worker_id: str, **extra) -> None:
    await _db.db.worker_state.update_one(
        {"_id": worker_id},
        {"$set": {"last_run_at": utcnow(), **extra}},
        upsert=True,
    )


async def ran_recently(worker_id: str, max_age: timedelta) -> bool:
    """True if the worker completed a run within ``max_age``."""
    last = await get_last_run(worker_id)
    if not last:
        return False
    return (utcnow() - ensure_utc(last)) < max_age
