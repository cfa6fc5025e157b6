"""Operator API for inspecting state and taking safe actions."""

from __future__ import annotations

import time
from contextlib import asynccontextmanager
from typing import Any

import structlog
from fastapi import FastAPI, HTTPException
from pydantic import BaseModel

from signal_trader import __version__
from signal_trader.connectors.bingx_client import ExchangeError
from signal_trader.execution.intake import SignalIntake
from signal_trader.execution.reconciliation import ReconciliationEngine

log = structlog.get_logger(__name__)


class SignalRequest(BaseModel):
    text: str


def create_app(engine: ReconciliationEngine, intake: SignalIntake) -> FastAPI:
    """Create and configure the FastAPI application."""
    started_at = time.time()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> Any:
        nonlocal started_at
        started_at = time.time()
        yield

    app = FastAPI(
        title="Signal Trader Operator API",
        description="Inspect managed orders and control reconciliation",
        version=__version__,
        lifespan=lifespan,
    )

    @app.get("/health")
    async def health() -> dict[str, Any]:
        return {
            "status": "degraded" if engine.ledger.durability_degraded else "healthy",
            "uptime_sec": time.time() - started_at,
            "monitoring_running": engine.is_running,
            "managed_orders": len(engine.ledger),
            "consecutive_failures": engine.consecutive_failures,
        }

    @app.get("/status")
    async def status() -> dict[str, Any]:
        return engine.status()

    @app.get("/orders")
    async def orders() -> dict[str, Any]:
        snapshot = engine.ledger_snapshot()
        return {
            "count": len(snapshot),
            "orders": {order.order_id: order.to_dict() for order in snapshot},
        }

    @app.get("/positions")
    async def positions() -> dict[str, Any]:
        try:
            live = await engine.live_positions()
        except ExchangeError as exc:
            log.warning("operator_positions_failed", error=str(exc))
            raise HTTPException(status_code=502, detail=str(exc)) from exc
        return {"count": len(live), "positions": [position.to_dict() for position in live]}

    @app.post("/monitoring/start")
    async def start_monitoring() -> dict[str, Any]:
        changed = engine.start()
        log.info("operator_monitoring_start", changed=changed)
        return {"success": True, "running": engine.is_running, "changed": changed}

    @app.post("/monitoring/stop")
    async def stop_monitoring() -> dict[str, Any]:
        changed = engine.stop()
        log.info("operator_monitoring_stop", changed=changed)
        return {"success": True, "running": engine.is_running, "changed": changed}

    @app.post("/signals")
    async def submit_signal(request: SignalRequest) -> dict[str, Any]:
        result = await intake.submit(request.text)
        return result.to_dict()

    @app.delete("/orders/{order_id}")
    async def remove_order(order_id: str) -> dict[str, Any]:
        removed = await engine.remove_order(order_id)
        if removed is None:
            raise HTTPException(status_code=404, detail=f"Order {order_id} is not managed")
        log.info("operator_order_removed", order_id=order_id, symbol=removed.symbol)
        return {"success": True, "order_id": order_id, "order": removed.to_dict()}

    @app.get("/")
    async def root() -> dict[str, Any]:
        """Root endpoint with API info."""
        return {
            "name": "Signal Trader Operator API",
            "version": __version__,
            "endpoints": {
                "health": "GET /health",
                "status": "GET /status",
                "orders": "GET /orders",
                "positions": "GET /positions",
                "start": "POST /monitoring/start",
                "stop": "POST /monitoring/stop",
                "signals": "POST /signals",
                "remove_order": "DELETE /orders/{order_id}",
            },
        }

    return app
