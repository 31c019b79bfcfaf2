from __future__ import annotations

import asyncio

import pytest

from umvvs_proxy.core.errors import SelectionError, StateExpiredError
from umvvs_proxy.core.models import Level
from umvvs_proxy.postback.engine import ReplayEngine


FULL_CHAIN = {"make": "1", "model": "11", "year": "2015", "country": "JP", "fuel_type": "P"}


def _run(make_client, site, scenario):
    async def wrapper():
        async with make_client(site) as client:
            return await scenario(ReplayEngine(client))

    return asyncio.run(wrapper())


def test_lookup_without_state_replays_every_parent(make_client, fake_site) -> None:
    result = _run(
        make_client, fake_site,
        lambda engine: engine.lookup(Level.ENGINE, FULL_CHAIN),
    )

    assert [o.text for o in result.options] == ["1496 CC", "1798 CC"]
    assert result.postbacks == 5
    assert result.state.selections == FULL_CHAIN
    assert fake_site.gets == 1
    assert fake_site.posted_targets() == ["make", "model", "year", "country", "fuel_type"]


def test_lookup_reuses_state_whose_selections_lead_the_chain(make_client, fake_site) -> None:
    async def scenario(engine: ReplayEngine):
        first = await engine.lookup(Level.YEAR, {"make": "1", "model": "11"})
        return await engine.lookup(Level.FUEL_TYPE, {**FULL_CHAIN}, state=first.state)

    result = _run(make_client, fake_site, scenario)

    assert [o.value for o in result.options] == ["P", "D"]
    assert result.postbacks == 2
    assert fake_site.gets == 1
    assert fake_site.posted_targets() == ["make", "model", "year", "country"]


def test_lookup_restarts_when_selections_diverge(make_client, fake_site) -> None:
    async def scenario(engine: ReplayEngine):
        first = await engine.lookup(Level.YEAR, {"make": "1", "model": "11"})
        return await engine.lookup(Level.MODEL, {"make": "2"}, state=first.state)

    result = _run(make_client, fake_site, scenario)

    assert [o.text for o in result.options] == ["X-TRAIL"]
    assert result.postbacks == 1
    assert fake_site.gets == 2


def test_lookup_with_fully_applied_state_reposts_last_selection(make_client, fake_site) -> None:
    async def scenario(engine: ReplayEngine):
        first = await engine.lookup(Level.YEAR, {"make": "1", "model": "11"})
        again = await engine.lookup(Level.YEAR, {"make": "1", "model": "11"}, state=first.state)
        return first, again

    first, again = _run(make_client, fake_site, scenario)

    assert again.options == first.options
    assert again.postbacks == 1
    assert fake_site.gets == 1
    assert fake_site.posted_targets() == ["make", "model", "model"]


def test_rejected_bundle_is_replayed_once_from_fresh_page(make_client, fake_site) -> None:
    async def scenario(engine: ReplayEngine):
        first = await engine.lookup(Level.MODEL, {"make": "1"})
        stale = first.state.model_copy(update={"view_state": "/wEPDwUExpired="})
        return await engine.lookup(Level.YEAR, {"make": "1", "model": "11"}, state=stale)

    result = _run(make_client, fake_site, scenario)

    assert [o.value for o in result.options] == ["2015", "2016"]
    assert fake_site.gets == 2
    assert fake_site.posted_targets() == ["make", "model", "make", "model"]


def test_fresh_replay_failure_is_not_retried(make_client, fake_site) -> None:
    async def scenario(engine: ReplayEngine):
        await engine.lookup(Level.MODEL, {"make": "99"})

    with pytest.raises(StateExpiredError):
        _run(make_client, fake_site, scenario)

    assert fake_site.gets == 1


def test_make_lookup_loads_initial_page(make_client, fake_site) -> None:
    result = _run(make_client, fake_site, lambda engine: engine.lookup("make", {}))

    assert [o.text for o in result.options] == ["TOYOTA", "NISSAN", "SUZUKI"]
    assert result.postbacks == 0
    assert fake_site.posts == []


def test_missing_parent_fails_before_any_request(make_client, fake_site) -> None:
    with pytest.raises(SelectionError):
        _run(make_client, fake_site, lambda engine: engine.lookup(Level.YEAR, {"make": "1"}))

    assert fake_site.gets == 0
