from __future__ import annotations

import datetime as dt
from typing import Any, AsyncIterator, Dict
from uuid import uuid4

import httpx
import pytest


@pytest.fixture()
def app_instance(journal_temp_db):
    from app.main import app

    return app


@pytest.fixture()
async def aclient(app_instance) -> AsyncIterator[httpx.AsyncClient]:
    transport = httpx.ASGITransport(app=app_instance)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client


def _make_time(days: int = 0) -> str:
    base = dt.datetime(2024, 1, 1, 14, 0, 0, tzinfo=dt.timezone.utc)
    return (base + dt.timedelta(days=days)).isoformat()


async def _create_playbook(client: httpx.AsyncClient, name: str) -> Dict[str, Any]:
    payload = {
        "name": name,
        "description": "Playbook entry",
        "checklist": ["HTF bias aligned", " "],
        "rules": ["Rule 1", "Rule 2"],
    }
    r = await client.post("/journal/playbooks", json=payload)
    assert r.status_code == 201
    return r.json()


async def _create_trade(client: httpx.AsyncClient, **overrides: Any) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "symbol": "EURUSD",
        "direction": "buy",
        "entry_time": _make_time(),
        "entry_price": 1.1,
        "total_lots": 1.0,
    }
    payload.update(overrides)
    r = await client.post("/journal/trades", json=payload)
    return r.json() if r.status_code == 201 else {"status_code": r.status_code}


@pytest.mark.anyio("asyncio")
async def test_create_playbook_and_list(aclient: httpx.AsyncClient):
    playbook = await _create_playbook(aclient, "Breakout")
    assert playbook["checklist"] == ["HTF bias aligned"]
    assert playbook["rules"] == ["Rule 1", "Rule 2"]

    r = await aclient.get("/journal/playbooks")
    assert r.status_code == 200
    assert any(entry["id"] == playbook["id"] for entry in r.json())

    r = await aclient.get(f"/journal/playbooks/{playbook['id']}")
    assert r.status_code == 200
    assert r.json()["name"] == "Breakout"


@pytest.mark.anyio("asyncio")
async def test_duplicate_playbook_name_rejected(aclient: httpx.AsyncClient):
    await _create_playbook(aclient, "London Sweep")

    r = await aclient.post("/journal/playbooks", json={"name": "london sweep"})
    assert r.status_code == 400

    r = await aclient.post("/journal/playbooks", json={"name": "   "})
    assert r.status_code == 400


@pytest.mark.anyio("asyncio")
async def test_update_playbook(aclient: httpx.AsyncClient):
    playbook = await _create_playbook(aclient, "Trend Continuation")
    other = await _create_playbook(aclient, "Range Fade")

    r = await aclient.patch(
        f"/journal/playbooks/{playbook['id']}",
        json={"description": "Only with HTF trend", "rules": ["Wait for pullback"]},
    )
    assert r.status_code == 200
    updated = r.json()
    assert updated["description"] == "Only with HTF trend"
    assert updated["rules"] == ["Wait for pullback"]
    assert updated["checklist"] == ["HTF bias aligned"]

    r = await aclient.patch(f"/journal/playbooks/{playbook['id']}", json={"name": other["name"]})
    assert r.status_code == 400

    r = await aclient.patch(f"/journal/playbooks/{uuid4()}", json={"description": "x"})
    assert r.status_code == 404


@pytest.mark.anyio("asyncio")
async def test_trade_references_playbook(aclient: httpx.AsyncClient):
    playbook = await _create_playbook(aclient, "First Pullback")

    trade = await _create_trade(aclient, playbook_id=playbook["id"])
    assert trade["playbook_id"] == playbook["id"]

    r = await aclient.get("/journal/trades", params={"playbook_id": playbook["id"]})
    assert [t["id"] for t in r.json()] == [trade["id"]]

    missing = await _create_trade(aclient, playbook_id=str(uuid4()))
    assert missing == {"status_code": 404}


@pytest.mark.anyio("asyncio")
async def test_delete_playbook_keeps_trades(aclient: httpx.AsyncClient):
    playbook = await _create_playbook(aclient, "Asia Range")
    trade = await _create_trade(aclient, playbook_id=playbook["id"])

    r = await aclient.delete(f"/journal/playbooks/{playbook['id']}")
    assert r.status_code == 204

    r = await aclient.get(f"/journal/playbooks/{playbook['id']}")
    assert r.status_code == 404

    r = await aclient.get(f"/journal/trades/{trade['id']}")
    assert r.status_code == 200
    assert r.json()["playbook_id"] is None

    r = await aclient.delete(f"/journal/playbooks/{playbook['id']}")
    assert r.status_code == 404
