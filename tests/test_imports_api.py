from __future__ import annotations

import warnings
from typing import AsyncIterator
from uuid import uuid4

import httpx
import pytest

REFERENCE_CSV = (
    "Pair,Type,EntryTime,EntryPrice,Lots\n"
    "EURUSD,buy,2024-03-01T10:00:00Z,1.0850,0.50\n"
    "gbpusd,sell,2024-03-01T11:00:00Z,1.2600,1.00\n"
)


@pytest.fixture()
def app_instance(journal_temp_db):
    from app.main import app

    return app


@pytest.fixture()
async def aclient(app_instance) -> AsyncIterator[httpx.AsyncClient]:
    transport = httpx.ASGITransport(app=app_instance)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client


async def _start(client: httpx.AsyncClient, content: str = REFERENCE_CSV, filename: str = "trades.csv"):
    r = await client.post("/journal/imports", json={"filename": filename, "content": content})
    assert r.status_code == 201
    return r.json()


@pytest.mark.anyio("asyncio")
async def test_list_import_fields(aclient: httpx.AsyncClient):
    r = await aclient.get("/journal/imports/fields")
    assert r.status_code == 200
    fields = {item["value"]: item["label"] for item in r.json()}
    assert fields["skip"] == "Skip this column"
    assert {"symbol", "direction", "entry_time", "total_lots", "session"} <= set(fields)


@pytest.mark.anyio("asyncio")
async def test_import_end_to_end(aclient: httpx.AsyncClient):
    session = await _start(aclient)
    session_id = session["id"]
    assert session["step"] == "mapping"
    assert session["row_count"] == 2
    assert [m["target_field"] for m in session["mapping"]] == [
        "symbol",
        "direction",
        "entry_time",
        "entry_price",
        "total_lots",
    ]

    r = await aclient.post(f"/journal/imports/{session_id}/continue")
    assert r.status_code == 200
    preview = r.json()
    assert preview["session"]["step"] == "preview"
    assert preview["total_rows"] == 2
    assert [t["symbol"] for t in preview["trades"]] == ["EURUSD", "GBPUSD"]
    assert preview["trades"][0]["entry_time"] == "2024-03-01T10:00:00.000Z"
    assert preview["trades"][1]["direction"] == "sell"

    r = await aclient.post(f"/journal/imports/{session_id}/run")
    assert r.status_code == 200
    assert r.json() == {
        "imported": 2,
        "failed": 0,
        "total": 2,
        "message": "2 trades imported, 0 failed",
    }

    r = await aclient.get(f"/journal/imports/{session_id}")
    assert r.status_code == 200
    after = r.json()
    assert after["step"] == "upload"
    assert after["headers"] == [] and after["mapping"] == []
    assert after["last_notice"]["title"] == "Import complete"
    assert after["progress"]["percent"] == 100.0

    r = await aclient.get("/journal/trades")
    assert r.status_code == 200
    trades = {t["symbol"]: t for t in r.json()}
    assert set(trades) == {"EURUSD", "GBPUSD"}
    assert trades["EURUSD"]["direction"] == "buy"
    assert trades["EURUSD"]["total_lots"] == 0.5
    assert trades["EURUSD"]["entry_price"] == 1.085
    assert trades["EURUSD"]["is_open"] is True
    assert trades["GBPUSD"]["session"] == "off_hours"


@pytest.mark.anyio("asyncio")
async def test_mapping_update_changes_what_is_imported(aclient: httpx.AsyncClient):
    session = await _start(aclient)
    session_id = session["id"]

    r = await aclient.patch(
        f"/journal/imports/{session_id}/mapping",
        json={"mappings": [{"source_column": "Lots", "target_field": "skip"}]},
    )
    assert r.status_code == 200
    assert r.json()["mapping"][-1] == {"source_column": "Lots", "target_field": "skip"}

    r = await aclient.post(f"/journal/imports/{session_id}/continue")
    assert all(t["total_lots"] == 0.01 for t in r.json()["trades"])


@pytest.mark.anyio("asyncio")
async def test_rejected_rows_are_counted_as_failed(aclient: httpx.AsyncClient):
    content = REFERENCE_CSV + "9999,buy,2024-03-01T12:00:00Z,1.0,1\n"
    session = await _start(aclient, content)
    session_id = session["id"]

    r = await aclient.post(f"/journal/imports/{session_id}/continue")
    assert len(r.json()["trades"]) == 2

    r = await aclient.post(f"/journal/imports/{session_id}/run")
    assert r.json()["imported"] == 2
    assert r.json()["failed"] == 1
    assert r.json()["message"] == "2 trades imported, 1 failed"


@pytest.mark.anyio("asyncio")
async def test_invalid_csv_is_rejected(aclient: httpx.AsyncClient):
    r = await aclient.post("/journal/imports", json={"filename": "empty.csv", "content": "Pair,Type\n"})
    assert r.status_code == 400
    assert "header + at least one data row" in r.json()["detail"]


@pytest.mark.anyio("asyncio")
async def test_oversized_upload_is_rejected(aclient: httpx.AsyncClient, app_instance, monkeypatch):
    monkeypatch.setattr(app_instance.state.imports, "max_upload_bytes", 16)

    with warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter("always")
        r = await aclient.post("/journal/imports", json={"content": REFERENCE_CSV})

    assert r.status_code == 413
    assert "limit is 16" in r.json()["detail"]
    assert not [w for w in caught if "TOO_LARGE" in str(w.message)]


@pytest.mark.anyio("asyncio")
async def test_unknown_mapping_target_is_rejected(aclient: httpx.AsyncClient):
    session = await _start(aclient)

    r = await aclient.patch(
        f"/journal/imports/{session['id']}/mapping",
        json={"mappings": [{"source_column": "Pair", "target_field": "ticker"}]},
    )
    assert r.status_code == 400

    r = await aclient.patch(
        f"/journal/imports/{session['id']}/mapping",
        json={"mappings": [{"source_column": "Nope", "target_field": "symbol"}]},
    )
    assert r.status_code == 400


@pytest.mark.anyio("asyncio")
async def test_out_of_order_steps_conflict(aclient: httpx.AsyncClient):
    session = await _start(aclient)
    session_id = session["id"]

    r = await aclient.post(f"/journal/imports/{session_id}/run")
    assert r.status_code == 409

    r = await aclient.post(f"/journal/imports/{session_id}/file", json={"content": REFERENCE_CSV})
    assert r.status_code == 409

    await aclient.post(f"/journal/imports/{session_id}/continue")
    r = await aclient.patch(
        f"/journal/imports/{session_id}/mapping",
        json={"mappings": [{"source_column": "Lots", "target_field": "skip"}]},
    )
    assert r.status_code == 409

    r = await aclient.post(f"/journal/imports/{session_id}/continue")
    assert r.status_code == 409


@pytest.mark.anyio("asyncio")
async def test_back_and_reload_file(aclient: httpx.AsyncClient):
    session = await _start(aclient)
    session_id = session["id"]

    await aclient.post(f"/journal/imports/{session_id}/continue")
    r = await aclient.post(f"/journal/imports/{session_id}/back")
    assert r.json()["step"] == "mapping"

    r = await aclient.post(f"/journal/imports/{session_id}/back")
    assert r.json()["step"] == "upload"
    assert r.json()["row_count"] == 0

    r = await aclient.post(f"/journal/imports/{session_id}/back")
    assert r.status_code == 409

    r = await aclient.post(
        f"/journal/imports/{session_id}/file",
        json={"filename": "other.csv", "content": "Symbol,Side,Date\nUSDJPY,short,2024-03-02T14:00:00Z\n"},
    )
    assert r.status_code == 200
    reloaded = r.json()
    assert reloaded["filename"] == "other.csv"
    assert reloaded["headers"] == ["Symbol", "Side", "Date"]
    assert [m["target_field"] for m in reloaded["mapping"]] == ["symbol", "direction", "entry_time"]


@pytest.mark.anyio("asyncio")
async def test_unknown_and_discarded_sessions(aclient: httpx.AsyncClient):
    r = await aclient.get(f"/journal/imports/{uuid4()}")
    assert r.status_code == 404

    session = await _start(aclient)
    r = await aclient.delete(f"/journal/imports/{session['id']}")
    assert r.status_code == 204

    r = await aclient.get(f"/journal/imports/{session['id']}")
    assert r.status_code == 404
    r = await aclient.delete(f"/journal/imports/{session['id']}")
    assert r.status_code == 404
