from __future__ import annotations

from typing import Any, Dict

import pytest

from app.services.import_sessions import ImportSessionStore
from app.services.journal import JournalNotFoundError
from app.services.trade_import import ImportStep


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


async def _noop_creator(record: Dict[str, Any]) -> None:
    return None


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.mark.anyio("asyncio")
async def test_idle_sessions_expire(clock):
    store = ImportSessionStore(_noop_creator, idle_ttl_seconds=60, clock=clock)
    stale = await store.create()
    clock.now = 30
    fresh = await store.create()

    clock.now = 70
    assert await store.get(fresh.id) is fresh
    with pytest.raises(JournalNotFoundError):
        await store.get(stale.id)
    assert len(store) == 1


@pytest.mark.anyio("asyncio")
async def test_get_keeps_a_session_alive(clock):
    store = ImportSessionStore(_noop_creator, idle_ttl_seconds=60, clock=clock)
    session = await store.create()

    for now in (50, 100, 150):
        clock.now = now
        assert await store.get(session.id) is session


@pytest.mark.anyio("asyncio")
async def test_cap_drops_least_recently_used(clock):
    store = ImportSessionStore(_noop_creator, max_sessions=2, clock=clock)
    first = await store.create()
    clock.now = 1
    second = await store.create()
    clock.now = 2
    await store.get(first.id)

    clock.now = 3
    third = await store.create()

    assert len(store) == 2
    assert await store.get(first.id) is first
    assert await store.get(third.id) is third
    with pytest.raises(JournalNotFoundError):
        await store.get(second.id)


@pytest.mark.anyio("asyncio")
async def test_importing_sessions_are_never_dropped(clock):
    store = ImportSessionStore(_noop_creator, max_sessions=1, idle_ttl_seconds=10, clock=clock)
    busy = await store.create()
    busy.step = ImportStep.IMPORTING

    clock.now = 100
    other = await store.create()

    assert await store.get(busy.id) is busy
    assert await store.get(other.id) is other


@pytest.mark.anyio("asyncio")
async def test_discard_unknown_session(clock):
    store = ImportSessionStore(_noop_creator, clock=clock)
    session = await store.create()

    await store.discard(session.id)

    with pytest.raises(JournalNotFoundError):
        await store.discard(session.id)
    assert len(store) == 0


@pytest.mark.anyio("asyncio")
async def test_sessions_use_configured_preview_rows(clock):
    store = ImportSessionStore(_noop_creator, preview_rows=3, clock=clock)

    session = await store.create()

    assert session.preview_rows == 3
