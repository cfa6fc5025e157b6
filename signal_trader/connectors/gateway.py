"""Exchange access interface consumed by the trading core."""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Protocol

from signal_trader.models import (
    AccountBalance,
    Direction,
    HistoricalOrder,
    OrderResult,
    Position,
)


class ExchangeGateway(Protocol):
    """Every call is a single best-effort attempt; failures raise ExchangeError."""

    async def place_entry_order(
        self,
        symbol: str,
        direction: Direction,
        quantity: Decimal,
        stop_price: Decimal | None = None,
        take_profit_price: Decimal | None = None,
    ) -> OrderResult: ...

    async def get_current_price(self, symbol: str) -> Decimal: ...

    async def get_open_positions(self, symbol: str | None = None) -> list[Position]: ...

    async def get_order_history(self, symbol: str, limit: int = 50) -> list[HistoricalOrder]: ...

    async def cancel_order(self, symbol: str, order_id: str) -> dict[str, Any]: ...

    async def set_leverage(self, symbol: str, leverage: int, direction: Direction) -> None: ...

    async def get_available_balance(self) -> AccountBalance: ...

    async def get_open_orders(self, symbol: str | None = None) -> list[dict[str, Any]]: ...

    async def close_position(
        self,
        symbol: str,
        direction: Direction,
        quantity: Decimal,
    ) -> OrderResult: ...
