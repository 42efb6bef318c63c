"""
backend/tests/test_market_service.py

Purpose:
    Market lifecycle: creation validation, forward-only status transitions,
    bonus toggling and deletion without cascade.
"""

from __future__ import annotations

import sys
from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

sys.path.insert(0, "backend")

from wicketbook.errors import InvalidTransitionError, MarketNotFoundError
from wicketbook.models.market import MarketCreate, MarketStatus
from wicketbook.services import market_service, settlement_service, wager_service, wallet_service


def _body(**overrides) -> MarketCreate:
    data = {
        "team_a": "Mumbai Indians",
        "team_b": "Chennai Super Kings",
        "odds_a": 1.90,
        "odds_b": 1.90,
        "match_time": datetime(2026, 11, 2, 14, 0, tzinfo=timezone.utc),
    }
    data.update(overrides)
    return MarketCreate(**data)


@pytest.mark.asyncio
async def test_create_market_starts_upcoming_without_winner(fake_mongo):
    market = await market_service.create_market(_body(team_a="  Mumbai Indians "))

    assert market["status"] == "Upcoming"
    assert market["winner"] is None
    assert market["bonus_active"] is False
    assert market["team_a"] == "Mumbai Indians"
    assert fake_mongo.markets.docs[0]["_id"] == market["_id"]


@pytest.mark.asyncio
async def test_duplicate_pairings_are_allowed(fake_mongo):
    await market_service.create_market(_body())
    await market_service.create_market(_body())
    assert len(await market_service.list_markets()) == 2


@pytest.mark.parametrize(
    "overrides",
    [
        {"odds_a": 0},
        {"odds_b": -1.5},
        {"team_a": "   "},
        {"team_b": "mumbai indians"},
    ],
)
def test_market_body_validation(overrides):
    with pytest.raises(ValidationError):
        _body(**overrides)


@pytest.mark.asyncio
async def test_upcoming_to_live_then_no_regression(fake_mongo):
    market_id = str((await market_service.create_market(_body()))["_id"])

    live = await market_service.transition_market(market_id, MarketStatus.live)
    assert live["status"] == "Live"

    # Same status again is a no-op.
    again = await market_service.transition_market(market_id, MarketStatus.live)
    assert again["status"] == "Live"

    with pytest.raises(InvalidTransitionError):
        await market_service.transition_market(market_id, MarketStatus.upcoming)


@pytest.mark.asyncio
async def test_finished_is_only_reachable_through_winner_declaration(fake_mongo):
    market_id = str((await market_service.create_market(_body()))["_id"])

    with pytest.raises(InvalidTransitionError):
        await market_service.transition_market(market_id, MarketStatus.finished)

    await settlement_service.declare_winner(market_id, "Chennai Super Kings")
    with pytest.raises(InvalidTransitionError):
        await market_service.transition_market(market_id, MarketStatus.live)

    market = await market_service.get_market(market_id)
    assert (market["status"], market["winner"]) == ("Finished", "Chennai Super Kings")


@pytest.mark.asyncio
async def test_toggle_bonus_flips_flag(fake_mongo):
    market_id = str((await market_service.create_market(_body()))["_id"])

    assert (await market_service.toggle_bonus(market_id))["bonus_active"] is True
    assert (await market_service.toggle_bonus(market_id))["bonus_active"] is False


@pytest.mark.asyncio
async def test_overlapping_bonus_toggles_both_apply(fake_mongo, monkeypatch):
    market_id = str((await market_service.create_market(_body()))["_id"])
    markets = fake_mongo.markets
    write = markets.find_one_and_update

    async def other_admin_toggles_first(query, update, **kwargs):
        monkeypatch.setattr(markets, "find_one_and_update", write)
        await market_service.toggle_bonus(market_id)
        return await write(query, update, **kwargs)

    monkeypatch.setattr(markets, "find_one_and_update", other_admin_toggles_first)

    updated = await market_service.toggle_bonus(market_id)

    assert updated["bonus_active"] is False
    assert (await market_service.get_market(market_id))["bonus_active"] is False


@pytest.mark.asyncio
async def test_toggle_bonus_unknown_market(fake_mongo):
    with pytest.raises(MarketNotFoundError):
        await market_service.toggle_bonus("0123456789abcdef01234567")


@pytest.mark.asyncio
async def test_list_markets_filters_by_status(fake_mongo):
    first = str((await market_service.create_market(_body()))["_id"])
    await market_service.create_market(_body(team_a="Gujarat Titans"))
    await market_service.transition_market(first, MarketStatus.live)

    live = await market_service.list_markets(MarketStatus.live)
    assert [str(m["_id"]) for m in live] == [first]
    assert len(await market_service.list_markets(MarketStatus.upcoming)) == 1


@pytest.mark.asyncio
async def test_delete_market_keeps_its_wagers(fake_mongo):
    market_id = str((await market_service.create_market(_body()))["_id"])
    await wallet_service.ensure_user("u1")
    await wager_service.place_wager("u1", market_id, "Mumbai Indians", 200)

    await market_service.delete_market(market_id)

    with pytest.raises(MarketNotFoundError):
        await market_service.get_market(market_id)
    with pytest.raises(MarketNotFoundError):
        await market_service.delete_market(market_id)
    wagers = await wager_service.get_market_wagers(market_id)
    assert len(wagers) == 1
    assert wagers[0]["status"] == "pending"
    assert (await wallet_service.get_user("u1"))["balance"] == 800


def test_odds_for_selection():
    market = {"team_a": "India", "team_b": "Pakistan", "odds_a": 1.7, "odds_b": 2.15}
    assert market_service.odds_for(market, "India") == 1.7
    assert market_service.odds_for(market, "Pakistan") == 2.15
    assert market_service.odds_for(market, "Nepal") is None
