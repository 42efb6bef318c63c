"""
backend/tests/test_websocket_manager.py

Purpose:
    Unit tests for websocket manager connection lifecycle, market/event
    filters, private wallet events and heartbeat cleanup.
"""

from __future__ import annotations

import asyncio
import sys

import pytest

sys.path.insert(0, "backend")

from wicketbook.services.websocket_manager import WebSocketManager


class _FakeWebSocket:
    def __init__(self, *, fail_send: bool = False):
        self.accepted = False
        self.fail_send = fail_send
        self.messages: list[dict] = []

    async def accept(self):
        self.accepted = True

    async def send_json(self, payload):
        if self.fail_send:
            raise RuntimeError("send failed")
        self.messages.append(payload)


@pytest.mark.asyncio
async def test_subscribe_filters_market_events():
    manager = WebSocketManager(max_connections=10, heartbeat_seconds=30)
    ws = _FakeWebSocket()
    conn_id = await manager.connect(ws, user_id="u1")
    assert ws.accepted
    filters = await manager.update_filters(
        conn_id,
        "subscribe",
        {"market_ids": ["m1"], "event_types": ["market.settled"]},
    )
    assert filters == {"market_ids": ["m1"], "event_types": ["market.settled"]}

    sent = await manager.broadcast(
        event_type="market.settled", data={"winner": "India"}, market_ids=["m1"],
    )
    assert sent == 1
    assert ws.messages[-1]["type"] == "market.settled"
    assert ws.messages[-1]["data"] == {"winner": "India"}

    assert await manager.broadcast(event_type="market.updated", data={}, market_ids=["m1"]) == 0
    assert await manager.broadcast(event_type="market.settled", data={}, market_ids=["m2"]) == 0


@pytest.mark.asyncio
async def test_unfiltered_connection_receives_every_market_event():
    manager = WebSocketManager(max_connections=10, heartbeat_seconds=30)
    ws = _FakeWebSocket()
    await manager.connect(ws, user_id="u1")

    assert await manager.broadcast(event_type="market.created", data={}, market_ids=["m9"]) == 1


@pytest.mark.asyncio
async def test_wallet_events_reach_only_their_owner():
    manager = WebSocketManager(max_connections=10, heartbeat_seconds=30)
    mine, theirs = _FakeWebSocket(), _FakeWebSocket()
    await manager.connect(mine, user_id="u1")
    await manager.connect(theirs, user_id="u2")

    sent = await manager.broadcast(event_type="wallet.updated", data={"reason": "wager"}, user_ids=["u1"])

    assert sent == 1
    assert [m["type"] for m in mine.messages] == ["wallet.updated"]
    assert theirs.messages == []


@pytest.mark.asyncio
async def test_unsubscribe_and_replace():
    manager = WebSocketManager(max_connections=10, heartbeat_seconds=30)
    conn_id = await manager.connect(
        _FakeWebSocket(), user_id="u1", initial_filters={"market_ids": ["m1", "m2"]},
    )
    filters = await manager.update_filters(conn_id, "unsubscribe", {"market_ids": ["m1"]})
    assert filters["market_ids"] == ["m2"]
    filters = await manager.update_filters(conn_id, "replace_subscriptions", {"event_types": ["market.deleted"]})
    assert filters == {"market_ids": [], "event_types": ["market.deleted"]}
    with pytest.raises(ValueError):
        await manager.update_filters(conn_id, "bogus", {})


@pytest.mark.asyncio
async def test_connection_limit():
    manager = WebSocketManager(max_connections=1, heartbeat_seconds=30)
    await manager.connect(_FakeWebSocket(), user_id="u1")
    with pytest.raises(RuntimeError):
        await manager.connect(_FakeWebSocket(), user_id="u2")


@pytest.mark.asyncio
async def test_failed_send_drops_connection():
    manager = WebSocketManager(max_connections=10, heartbeat_seconds=30)
    await manager.connect(_FakeWebSocket(fail_send=True), user_id="u1")

    assert await manager.broadcast(event_type="market.created", data={}) == 0
    stats = manager.stats()
    assert stats["active_connections"] == 0
    assert stats["send_failures"] == 1


@pytest.mark.asyncio
async def test_heartbeat_removes_dead_connections():
    manager = WebSocketManager(max_connections=10, heartbeat_seconds=1)
    ws_ok = _FakeWebSocket()
    ws_fail = _FakeWebSocket(fail_send=True)
    await manager.connect(ws_ok, user_id="u-ok")
    await manager.connect(ws_fail, user_id="u-fail")
    await manager.start()
    await asyncio.sleep(2.2)
    await manager.stop()
    stats = manager.stats()
    assert stats["dropped_connections"] >= 1
    assert any(m["type"] == "ping" for m in ws_ok.messages)


@pytest.mark.asyncio
async def test_stats_count_events_per_type_and_users():
    manager = WebSocketManager(max_connections=10, heartbeat_seconds=30)
    conn_a = await manager.connect(_FakeWebSocket(), user_id="u1")
    await manager.connect(_FakeWebSocket(), user_id="u1")
    await manager.connect(_FakeWebSocket(), user_id="u2")

    await manager.broadcast(event_type="wallet.updated", data={}, user_ids=["u1"])
    await manager.broadcast(event_type="market.created", data={})
    await manager.disconnect(conn_a)

    stats = manager.stats()
    assert stats["events_sent"] == {"wallet.updated": 2, "market.created": 3}
    assert stats["active_connections"] == 2
    assert stats["connected_users"] == 2
