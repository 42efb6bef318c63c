"""
backend/wicketbook/services/websocket_manager.py

Purpose:
    Process-local publish/subscribe fan-out for market and wallet changes.
    Routers publish after a successful commit; the ledger services never
    depend on push delivery. Clients filter by market id and event type;
    events addressed to users (wallet updates) reach only their owners.

Dependencies:
    - fastapi.WebSocket
    - wicketbook.config
    - wicketbook.utils
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections import Counter, defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Iterable

from fastapi import WebSocket

from wicketbook.config import settings
from wicketbook.utils import utcnow

logger = logging.getLogger("wicketbook.websocket_manager")


def _clean_ids(values: Any) -> set[str]:
    if not isinstance(values, (list, tuple, set)):
        return set()
    return {str(v).strip() for v in values if v is not None and str(v).strip()}


@dataclass
class Subscription:
    """What a client asked to hear about. Empty sets mean "everything"."""

    market_ids: set[str] = field(default_factory=set)
    event_types: set[str] = field(default_factory=set)

    @classmethod
    def from_payload(cls, payload: Any) -> "Subscription":
        if not isinstance(payload, dict):
            return cls()
        return cls(
            market_ids=_clean_ids(payload.get("market_ids")),
            event_types=_clean_ids(payload.get("event_types")),
        )

    def wants(self, event_type: str, market_ids: set[str]) -> bool:
        if self.event_types and event_type not in self.event_types:
            return False
        return not self.market_ids or bool(self.market_ids & market_ids)

    def as_dict(self) -> dict[str, list[str]]:
        return {"market_ids": sorted(self.market_ids), "event_types": sorted(self.event_types)}


@dataclass
class ManagedConnection:
    connection_id: str
    user_id: str
    websocket: WebSocket
    subscription: Subscription
    connected_at: datetime
    last_seen_at: datetime


class WebSocketManager:
    def __init__(self, *, max_connections: int, heartbeat_seconds: int) -> None:
        self._max_connections = max(1, int(max_connections))
        self._heartbeat_seconds = max(1, int(heartbeat_seconds))
        self._connections: dict[str, ManagedConnection] = {}
        self._by_user: dict[str, set[str]] = defaultdict(set)
        self._lock = asyncio.Lock()
        self._heartbeat_task: asyncio.Task | None = None
        self._running = False
        self._events_sent: Counter[str] = Counter()
        self._send_failures = 0
        self._dropped_connections = 0

    async def start(self) -> None:
        async with self._lock:
            if self._running:
                return
            self._running = True
            self._heartbeat_task = asyncio.create_task(self._heartbeat_loop(), name="ws_heartbeat")
        logger.info("WebSocket manager started (heartbeat=%ss)", self._heartbeat_seconds)

    async def stop(self) -> None:
        async with self._lock:
            if not self._running:
                return
            self._running = False
            task, self._heartbeat_task = self._heartbeat_task, None
            self._connections.clear()
            self._by_user.clear()
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        logger.info("WebSocket manager stopped")

    async def connect(
        self, websocket: WebSocket, *, user_id: str, initial_filters: dict[str, Any] | None = None,
    ) -> str:
        """Accept the socket and register it; RuntimeError when the server is full."""
        await websocket.accept()
        async with self._lock:
            if len(self._connections) >= self._max_connections:
                raise RuntimeError("max_connections_exceeded")
            now = utcnow()
            conn = ManagedConnection(
                connection_id=uuid.uuid4().hex,
                user_id=str(user_id),
                websocket=websocket,
                subscription=Subscription.from_payload(initial_filters or {}),
                connected_at=now,
                last_seen_at=now,
            )
            self._connections[conn.connection_id] = conn
            self._by_user[conn.user_id].add(conn.connection_id)
        logger.debug("WS connected: user=%s id=%s", conn.user_id, conn.connection_id)
        return conn.connection_id

    async def disconnect(self, connection_id: str) -> None:
        async with self._lock:
            self._forget(connection_id)

    async def update_filters(
        self, connection_id: str, command_type: str, payload: dict[str, Any],
    ) -> dict[str, list[str]]:
        async with self._lock:
            conn = self._connections.get(connection_id)
            if conn is None:
                raise RuntimeError("connection_not_found")

            incoming = Subscription.from_payload(payload)
            current = conn.subscription
            if command_type == "replace_subscriptions":
                conn.subscription = incoming
            elif command_type == "subscribe":
                current.market_ids |= incoming.market_ids
                current.event_types |= incoming.event_types
            elif command_type == "unsubscribe":
                current.market_ids -= incoming.market_ids
                current.event_types -= incoming.event_types
            else:
                raise ValueError("unsupported_command")

            conn.last_seen_at = utcnow()
            return conn.subscription.as_dict()

    async def broadcast(
        self,
        *,
        event_type: str,
        data: dict[str, Any],
        market_ids: list[str] | None = None,
        user_ids: list[str] | None = None,
    ) -> int:
        """Deliver an event to every matching connection. Returns the delivery count.

        With ``user_ids`` the event is private: only connections of those
        users receive it, regardless of their market filters.
        """
        event_type = str(event_type)
        event_markets = _clean_ids(market_ids or [])
        async with self._lock:
            if user_ids is not None:
                targets = [
                    self._connections[cid]
                    for uid in _clean_ids(user_ids)
                    for cid in self._by_user.get(uid, ())
                ]
            else:
                targets = [
                    c for c in self._connections.values()
                    if c.subscription.wants(event_type, event_markets)
                ]

        message = {"type": event_type, "data": data, "meta": {"ts": utcnow().isoformat()}}
        delivered = await self._send_all(targets, message)
        self._events_sent[event_type] += delivered
        return delivered

    def stats(self) -> dict[str, Any]:
        return {
            "running": self._running,
            "active_connections": len(self._connections),
            "connected_users": len(self._by_user),
            "max_connections": self._max_connections,
            "heartbeat_seconds": self._heartbeat_seconds,
            "events_sent": dict(self._events_sent),
            "send_failures": self._send_failures,
            "dropped_connections": self._dropped_connections,
        }

    async def _send_all(self, targets: Iterable[ManagedConnection], message: dict) -> int:
        delivered = 0
        dead: list[str] = []
        for conn in targets:
            try:
                await conn.websocket.send_json(message)
                delivered += 1
            except Exception as exc:
                logger.debug("WS send failed for %s: %s", conn.connection_id, exc)
                self._send_failures += 1
                dead.append(conn.connection_id)
        if dead:
            async with self._lock:
                for connection_id in dead:
                    if self._forget(connection_id):
                        self._dropped_connections += 1
        return delivered

    def _forget(self, connection_id: str) -> bool:
        conn = self._connections.pop(connection_id, None)
        if conn is None:
            return False
        owned = self._by_user.get(conn.user_id)
        if owned is not None:
            owned.discard(connection_id)
            if not owned:
                del self._by_user[conn.user_id]
        return True

    async def _heartbeat_loop(self) -> None:
        while self._running:
            await asyncio.sleep(self._heartbeat_seconds)
            async with self._lock:
                connections = list(self._connections.values())
            await self._send_all(connections, {"type": "ping", "data": {"ts": utcnow().isoformat()}})


websocket_manager = WebSocketManager(
    max_connections=settings.WS_MAX_CONNECTIONS,
    heartbeat_seconds=settings.WS_HEARTBEAT_SECONDS,
)
