from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from app.config import AppConfig
from app.price_source import PriceSource
from conftest import FakeFeed
from web.server import create_app

BUY = {
    "action": "BUY",
    "entry_from": 2045.0,
    "entry_to": 2055.0,
    "stop_loss": 2030.0,
    "take_profit_1": 2070.0,
    "take_profit_2": 2090.0,
    "take_profit_3": 2110.0,
}


@pytest.fixture
def client(tmp_path):
    config = AppConfig(user_id="tester", database={"path": str(tmp_path / "signals.db")})
    app = create_app(config, price_source=PriceSource(FakeFeed([2071.0])), auto_refresh=False)
    with TestClient(app) as test_client:
        yield test_client


def test_create_refresh_and_stats(client):
    created = client.post("/api/signals", json=BUY)
    assert created.status_code == 201
    signal = created.json()
    assert signal["status"] == "active"
    assert signal["is_draft"] is False
    assert signal["user_id"] == "tester"

    refreshed = client.post("/api/refresh").json()
    assert refreshed == {
        "price": 2071.0,
        "timestamp_ms": refreshed["timestamp_ms"],
        "evaluated": 1,
        "updated": 1,
        "failed": 0,
    }

    fetched = client.get(f"/api/signals/{signal['id']}").json()
    assert fetched["status"] == "tp1_hit"
    assert fetched["pnl"] == 2000.0
    assert fetched["pnl_percentage"] == 0.98

    assert client.get("/api/stats").json() == {"total": 1, "active": 0, "win_rate": "100.0", "total_pnl": 2000.0}
    assert [s["id"] for s in client.get("/api/signals", params={"view": "closed"}).json()] == [signal["id"]]
    assert client.get("/api/signals", params={"view": "active"}).json() == []


def test_draft_lifecycle(client):
    draft = client.post("/api/signals", json={"action": "SELL", "entry_from": 2450.0, "is_draft": True}).json()
    assert draft["status"] == "draft"
    assert [s["id"] for s in client.get("/api/signals", params={"view": "drafts"}).json()] == [draft["id"]]

    rejected = client.post(f"/api/signals/{draft['id']}/publish")
    assert rejected.status_code == 422
    assert rejected.json()["error"] == "invalid_signal"

    patched = client.patch(f"/api/signals/{draft['id']}", json={"stop_loss": 2470.0, "take_profit_1": 2430.0})
    assert patched.status_code == 200

    published = client.post(f"/api/signals/{draft['id']}/publish").json()
    assert published["status"] == "active"
    assert published["is_draft"] is False
    assert client.get("/api/stats").json()["active"] == 1


def test_invalid_payloads(client):
    assert client.post("/api/signals", json={**BUY, "action": "HOLD"}).status_code == 422
    assert client.post("/api/signals", json={**BUY, "stop_loss": None}).status_code == 422
    assert client.post("/api/signals", json={**BUY, "owner": "x"}).status_code == 422
    assert client.get("/api/signals", params={"view": "archived"}).status_code == 422

    signal = client.post("/api/signals", json=BUY).json()
    assert client.patch(f"/api/signals/{signal['id']}", json={"action": "SELL"}).status_code == 422
    assert client.patch(f"/api/signals/{signal['id']}", json={"status": "draft"}).status_code == 422


def test_unknown_signal(client):
    for response in (
        client.get("/api/signals/missing"),
        client.patch("/api/signals/missing", json={"notes": "x"}),
        client.post("/api/signals/missing/publish"),
        client.delete("/api/signals/missing"),
        client.get("/api/signals/missing/message"),
    ):
        assert response.status_code == 404
        assert response.json() == {"error": "signal_not_found", "id": "missing"}


def test_delete(client):
    signal = client.post("/api/signals", json=BUY).json()
    assert client.delete(f"/api/signals/{signal['id']}").status_code == 204
    assert client.get(f"/api/signals/{signal['id']}").status_code == 404


def test_message_and_price(client):
    signal = client.post("/api/signals", json={**BUY, "notes": "london open"}).json()

    text = client.get(f"/api/signals/{signal['id']}/message").json()["text"]
    assert "Buy Entry Zone: $2045.00 - $2055.00" in text
    assert "📝 Notes: london open" in text

    price = client.get("/api/price").json()
    assert price["price"] == 2071.0
    assert price["symbol"] == "XAUUSD"


def test_levels_suggestion(client):
    levels = client.post("/api/levels", json={"action": "BUY", "entry_from": 2045.0, "entry_to": 2055.0}).json()
    assert levels == {
        "entry_price": 2050.0,
        "stop_loss": 2009.0,
        "take_profit_1": 2050.5,
        "take_profit_2": 2051.0,
        "take_profit_3": 2052.0,
    }

    custom = client.post(
        "/api/levels", json={"action": "SELL", "entry_from": 2000.0, "entry_to": 2000.0, "sl_percent": 1.0}
    ).json()
    assert custom["stop_loss"] == 2020.0


def test_websocket_snapshot_then_changes(client):
    existing = client.post("/api/signals", json=BUY).json()

    with client.websocket_connect("/ws/signals") as ws:
        snapshot = ws.receive_json()
        assert snapshot["type"] == "snapshot"
        assert [s["id"] for s in snapshot["signals"]] == [existing["id"]]
        assert snapshot["stats"]["total"] == 1

        created = client.post("/api/signals", json={**BUY, "notes": "second"}).json()
        inserted = ws.receive_json()
        assert inserted["type"] == "insert"
        assert inserted["id"] == created["id"]
        assert inserted["signal"]["notes"] == "second"

        client.delete(f"/api/signals/{existing['id']}")
        deleted = ws.receive_json()
        assert deleted == {"type": "delete", "id": existing["id"], "signal": None}


def test_health(client):
    assert client.get("/api/health").json() == {"db": "OK", "refresh_running": False}
