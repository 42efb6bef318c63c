import logging

import wicketbook.database as _db
from wicketbook.config import settings
from wicketbook.services.wallet_service import ensure_user
from wicketbook.utils import utcnow

logger = logging.getLogger("wicketbook.seed")


async def seed_admin_user() -> None:
    """Create (or promote) the seed admin configured via env."""
    if not settings.SEED_ADMIN_UID:
        logger.debug("SEED_ADMIN_UID not set, skipping seed")
        return

    user = await ensure_user(settings.SEED_ADMIN_UID, settings.SEED_ADMIN_EMAIL or None)
    if user.get("is_admin"):
        logger.info("Seed admin already exists, skipping")
        return

    await _db.db.users.update_one(
        {"_id": user["_id"]},
        {"$set": {"is_admin": True, "updated_at": utcnow()}},
    )
    logger.info("Seed user promoted to admin: %s", user["_id"])
