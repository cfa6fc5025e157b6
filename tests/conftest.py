from __future__ import annotations

import re
import shutil
from decimal import Decimal
from pathlib import Path
from typing import Any
from uuid import uuid4

import pytest

from signal_trader.connectors.bingx_client import ExchangeError
from signal_trader.ledger import LedgerSnapshotStore, PositionLedger
from signal_trader.models import (
    AccountBalance,
    Direction,
    HistoricalOrder,
    OrderResult,
    Position,
)


def _safe_node_name(name: str) -> str:
    # Windows-safe-ish: keep alnum, dash, underscore, dot.
    name = re.sub(r"[^A-Za-z0-9._-]+", "_", name).strip("._")
    return name or "test"


@pytest.fixture
def workspace_tmp_path(request: pytest.FixtureRequest) -> Path:
    """Temp dir rooted in the workspace (not system temp).

    This repo's environment can deny access to dirs created under the system temp
    directory; using a workspace-local temp dir avoids that.
    """
    root = Path.cwd() / ".pytest_tmp_workspace" / _safe_node_name(request.node.name) / uuid4().hex
    root.mkdir(parents=True, exist_ok=True)
    try:
        yield root
    finally:
        shutil.rmtree(root, ignore_errors=True)


class FakeGateway:
    """In-memory exchange double; set the *_error attributes to make calls fail."""

    def __init__(self) -> None:
        self.positions: list[Position] = []
        self.history: dict[str, list[HistoricalOrder]] = {}
        self.prices: dict[str, Decimal] = {}
        self.balance = AccountBalance(
            asset="USDT",
            available=Decimal("1000"),
            equity=Decimal("1000"),
            unrealized_pnl=Decimal("0"),
        )
        self.next_order_id = "123"
        self.positions_error: Exception | None = None
        self.history_error: Exception | None = None
        self.price_error: Exception | None = None
        self.place_error: Exception | None = None
        self.leverage_error: Exception | None = None
        self.close_error: Exception | None = None
        self.calls: list[tuple[str, Any]] = []
        self.placed: list[dict[str, Any]] = []
        self.closed: list[dict[str, Any]] = []

    def open_position(self, symbol: str, side: str = "LONG") -> None:
        self.positions.append(
            Position(
                symbol=symbol,
                side=side,
                quantity=Decimal("1"),
                avg_price=Decimal("1"),
                liquidation_price=Decimal("0"),
                unrealized_pnl=Decimal("0"),
            )
        )

    async def place_entry_order(
        self,
        symbol: str,
        direction: Direction,
        quantity: Decimal,
        stop_price: Decimal | None = None,
        take_profit_price: Decimal | None = None,
    ) -> OrderResult:
        self.calls.append(("place_entry_order", symbol))
        if self.place_error is not None:
            raise self.place_error
        self.placed.append(
            {
                "symbol": symbol,
                "direction": direction,
                "quantity": quantity,
                "stop_price": stop_price,
                "take_profit_price": take_profit_price,
            }
        )
        return OrderResult(order_id=self.next_order_id, client_order_id=f"ST_{symbol}_test")

    async def get_current_price(self, symbol: str) -> Decimal:
        self.calls.append(("get_current_price", symbol))
        if self.price_error is not None:
            raise self.price_error
        if symbol not in self.prices:
            raise ExchangeError(f"no price for {symbol}")
        return self.prices[symbol]

    async def get_open_positions(self, symbol: str | None = None) -> list[Position]:
        self.calls.append(("get_open_positions", symbol))
        if self.positions_error is not None:
            raise self.positions_error
        return list(self.positions)

    async def get_order_history(self, symbol: str, limit: int = 50) -> list[HistoricalOrder]:
        self.calls.append(("get_order_history", symbol))
        if self.history_error is not None:
            raise self.history_error
        return list(self.history.get(symbol, []))

    async def cancel_order(self, symbol: str, order_id: str) -> dict[str, Any]:
        self.calls.append(("cancel_order", order_id))
        return {"orderId": order_id}

    async def set_leverage(self, symbol: str, leverage: int, direction: Direction) -> None:
        self.calls.append(("set_leverage", (symbol, leverage, direction)))
        if self.leverage_error is not None:
            raise self.leverage_error

    async def get_available_balance(self) -> AccountBalance:
        self.calls.append(("get_available_balance", None))
        return self.balance

    async def get_open_orders(self, symbol: str | None = None) -> list[dict[str, Any]]:
        self.calls.append(("get_open_orders", symbol))
        return []

    async def close_position(self, symbol: str, direction: Direction, quantity: Decimal) -> OrderResult:
        self.calls.append(("close_position", symbol))
        if self.close_error is not None:
            raise self.close_error
        self.closed.append({"symbol": symbol, "direction": direction, "quantity": quantity})
        return OrderResult(order_id="999")

    def call_names(self) -> list[str]:
        return [name for name, _ in self.calls]


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def ledger(workspace_tmp_path: Path) -> PositionLedger:
    return PositionLedger(LedgerSnapshotStore(workspace_tmp_path / "active_orders.json"))
