"""Tests for the Operator API."""

from __future__ import annotations

import asyncio
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from signal_trader.api.operator import create_app
from signal_trader.connectors.bingx_client import ExchangeError
from signal_trader.execution import ReconciliationEngine, SignalIntake, TrailingStopController
from signal_trader.models import Direction, ManagedOrder, TradingIntent

SIGNAL = (
    "🔴 SHORT (XYZUSDT)\n"
    "Entrys: 2.0\n"
    "Leverage: 3X\n"
    "Tps: 1.8\n"
    "Stop Loss: 2.2"
)


@pytest.fixture
def engine(gateway, ledger) -> ReconciliationEngine:
    trailing = TrailingStopController(gateway, ledger)
    return ReconciliationEngine(gateway, ledger, trailing)


@pytest.fixture
def client(engine, gateway, ledger) -> TestClient:
    """Create a test client for the API."""
    app = create_app(engine, SignalIntake(gateway, ledger))
    return TestClient(app)


def _seed(engine: ReconciliationEngine) -> None:
    intent = TradingIntent("ABCUSDT", Direction.BUY, (Decimal("1"),), 2, (Decimal("1.2"),), Decimal("0.9"))
    asyncio.run(engine.add_order(ManagedOrder(order_id="77", intent=intent, quantity=Decimal("3"))))


def test_root_endpoint(client: TestClient) -> None:
    """Test the root endpoint returns API info."""
    response = client.get("/")
    assert response.status_code == 200
    data = response.json()
    assert data["name"] == "Signal Trader Operator API"
    assert data["version"] == "0.1.0"
    assert "endpoints" in data


def test_health_endpoint(client: TestClient) -> None:
    response = client.get("/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert data["monitoring_running"] is False
    assert "uptime_sec" in data


def test_orders_endpoint_lists_ledger(client: TestClient, engine) -> None:
    _seed(engine)
    data = client.get("/orders").json()
    assert data["count"] == 1
    assert data["orders"]["77"]["signal"]["symbol"] == "ABCUSDT"
    assert data["orders"]["77"]["trailingStop"]["isActive"] is False


def test_positions_endpoint(client: TestClient, gateway) -> None:
    gateway.open_position("XYZUSDT", side="SHORT")
    data = client.get("/positions").json()
    assert data["count"] == 1
    assert data["positions"][0]["side"] == "SHORT"


def test_positions_endpoint_exchange_failure(client: TestClient, gateway) -> None:
    gateway.positions_error = ExchangeError("timeout")
    response = client.get("/positions")
    assert response.status_code == 502


def test_monitoring_start_stop(client: TestClient, engine) -> None:
    first = client.post("/monitoring/start").json()
    assert first == {"success": True, "running": True, "changed": True}
    again = client.post("/monitoring/start").json()
    assert again["changed"] is False
    assert engine.is_running

    stopped = client.post("/monitoring/stop").json()
    assert stopped["running"] is False
    assert client.get("/status").json()["running"] is False


def test_submit_signal_endpoint(client: TestClient, gateway) -> None:
    data = client.post("/signals", json={"text": SIGNAL}).json()
    assert data["accepted"] is True
    assert data["order_id"] == "123"
    assert data["signal"]["direction"] == "SELL"
    assert gateway.placed[0]["direction"] is Direction.SELL


def test_submit_signal_rejected(client: TestClient) -> None:
    data = client.post("/signals", json={"text": "hello"}).json()
    assert data["accepted"] is False
    assert data["order_id"] is None


def test_delete_order(client: TestClient, engine) -> None:
    _seed(engine)
    response = client.delete("/orders/77")
    assert response.status_code == 200
    assert response.json()["order_id"] == "77"
    assert len(engine.ledger) == 0
    assert client.delete("/orders/77").status_code == 404
