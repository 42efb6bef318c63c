"""Insert-only audit trail for administrator actions on markets, wallets and cashier requests.

Entries are written after the audited change has committed. There is no
update or delete path for ``audit_logs``.
"""

import logging
from enum import Enum
from ipaddress import ip_address
from typing import Optional

from fastapi import Request

import wicketbook.database as _db
from wicketbook.utils import utcnow

logger = logging.getLogger("wicketbook.audit")


class AuditAction(str, Enum):
    MARKET_CREATED = "MARKET_CREATED"
    MARKET_STATUS_SET = "MARKET_STATUS_SET"
    MARKET_BONUS_TOGGLED = "MARKET_BONUS_TOGGLED"
    MARKET_SETTLED = "MARKET_SETTLED"
    MARKET_DELETED = "MARKET_DELETED"
    ADMIN_USER_UPDATED = "ADMIN_USER_UPDATED"
    WITHDRAWAL_APPROVED = "WITHDRAWAL_APPROVED"
    WITHDRAWAL_REJECTED = "WITHDRAWAL_REJECTED"
    RECHARGE_APPROVED = "RECHARGE_APPROVED"
    RECHARGE_REJECTED = "RECHARGE_REJECTED"


def mask_ip(raw: str) -> str:
    """Keep the network part only: 203.0.113.7 -> 203.0.113.0/24, IPv6 -> /48."""
    try:
        addr = ip_address(raw.strip())
    except ValueError:
        return ""
    prefix = 24 if addr.version == 4 else 48
    network = type(addr)(int(addr) >> (addr.max_prefixlen - prefix) << (addr.max_prefixlen - prefix))
    return f"{network}/{prefix}"


def _request_context(request: Optional[Request]) -> tuple[str, Optional[str]]:
    if request is None:
        return "", None
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        ip = forwarded.split(",")[0]
    else:
        ip = request.client.host if request.client else ""
    return mask_ip(ip or ""), getattr(request.state, "request_id", None)


async def log_audit(
    *,
    actor_id: str,
    target_id: str,
    action: AuditAction,
    metadata: Optional[dict] = None,
    request: Optional[Request] = None,
) -> None:
    """Record an administrator action.

    ``metadata`` carries before/after values or the settlement summary.
    The request, when given, contributes a masked client network and the
    request id assigned by the logging middleware.
    """
    ip_network, request_id = _request_context(request)
    doc = {
        "timestamp": utcnow(),
        "actor_id": actor_id,
        "target_id": target_id,
        "action": AuditAction(action).value,
        "metadata": metadata or {},
        "ip_network": ip_network,
        "request_id": request_id,
    }
    try:
        await _db.db.audit_logs.insert_one(doc)
    except Exception:
        # Action already committed; never fail it on audit.
        logger.exception("Failed to write audit log: action=%s actor=%s", doc["action"], actor_id)


async def recent_audit(target_id: Optional[str] = None, limit: int = 100) -> list[dict]:
    query = {"target_id": target_id} if target_id else {}
    return await _db.db.audit_logs.find(query).sort("timestamp", -1).to_list(length=limit)
