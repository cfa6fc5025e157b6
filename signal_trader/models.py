"""Shared data models."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any


UNKNOWN_ORDER_ID = "UNKNOWN"


def utc_now() -> datetime:
    """Return a timezone-aware UTC timestamp."""
    return datetime.now(timezone.utc)


def to_decimal(value: Any) -> Decimal:
    """Convert numbers and numeric strings to Decimal without float noise."""
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


class Direction(str, Enum):
    BUY = "BUY"
    SELL = "SELL"

    @classmethod
    def from_label(cls, label: str) -> "Direction":
        """Map signal/position labels (LONG/SHORT/BUY/SELL) to a direction."""
        normalized = label.strip().upper()
        if normalized in {"LONG", "BUY"}:
            return cls.BUY
        if normalized in {"SHORT", "SELL"}:
            return cls.SELL
        raise ValueError(f"Unknown direction label: {label!r}")

    @property
    def position_side(self) -> str:
        return "LONG" if self is Direction.BUY else "SHORT"

    @property
    def opposite(self) -> "Direction":
        return Direction.SELL if self is Direction.BUY else Direction.BUY


class ClosureKind(str, Enum):
    """Why a managed position disappeared from the exchange."""

    TP1_FILLED = "TP1_FILLED"
    STOP_OR_OTHER = "STOP_OR_OTHER"
    HISTORY_GAP = "HISTORY_GAP"

    @property
    def is_terminal(self) -> bool:
        return self is not ClosureKind.TP1_FILLED


@dataclass(frozen=True)
class TradingIntent:
    symbol: str
    direction: Direction
    entry_prices: tuple[Decimal, ...]
    leverage: int
    take_profits: tuple[Decimal, ...]
    stop_loss: Decimal

    @property
    def entry_price(self) -> Decimal:
        return self.entry_prices[0]

    @property
    def average_entry(self) -> Decimal:
        return sum(self.entry_prices, Decimal(0)) / len(self.entry_prices)

    @property
    def take_profit(self) -> Decimal:
        return self.take_profits[0]

    def to_dict(self) -> dict[str, Any]:
        return {
            "symbol": self.symbol,
            "direction": self.direction.value,
            "entryPrices": [str(price) for price in self.entry_prices],
            "leverage": self.leverage,
            "takeProfits": [str(price) for price in self.take_profits],
            "stopLoss": str(self.stop_loss),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TradingIntent":
        return cls(
            symbol=str(data["symbol"]),
            direction=Direction.from_label(str(data["direction"])),
            entry_prices=tuple(to_decimal(p) for p in data["entryPrices"]),
            leverage=int(data["leverage"]),
            take_profits=tuple(to_decimal(p) for p in data["takeProfits"]),
            stop_loss=to_decimal(data["stopLoss"]),
        )


@dataclass
class TrailingStopState:
    is_active: bool = False
    current_stop_price: Decimal = Decimal(0)

    def to_dict(self) -> dict[str, Any]:
        return {"isActive": self.is_active, "currentStopPrice": str(self.current_stop_price)}

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "TrailingStopState":
        if not data:
            return cls()
        return cls(
            is_active=bool(data.get("isActive", False)),
            current_stop_price=to_decimal(data.get("currentStopPrice", 0) or 0),
        )


@dataclass
class ManagedOrder:
    """An entry order the bot keeps managing until its position is closed."""

    order_id: str
    intent: TradingIntent
    quantity: Decimal
    client_order_id: str | None = None
    trailing_stop: TrailingStopState = field(default_factory=TrailingStopState)
    opened_at: datetime = field(default_factory=utc_now)

    @property
    def symbol(self) -> str:
        return self.intent.symbol

    @property
    def direction(self) -> Direction:
        return self.intent.direction

    def copy(self) -> "ManagedOrder":
        return replace(self, trailing_stop=replace(self.trailing_stop))

    def to_dict(self) -> dict[str, Any]:
        return {
            "signal": self.intent.to_dict(),
            "quantity": str(self.quantity),
            "clientOrderId": self.client_order_id,
            "trailingStop": self.trailing_stop.to_dict(),
            "openedAt": self.opened_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, order_id: str, data: dict[str, Any]) -> "ManagedOrder":
        opened_raw = data.get("openedAt")
        opened_at = datetime.fromisoformat(opened_raw) if opened_raw else utc_now()
        client_order_id = data.get("clientOrderId")
        return cls(
            order_id=str(order_id),
            intent=TradingIntent.from_dict(data["signal"]),
            quantity=to_decimal(data.get("quantity", 0) or 0),
            client_order_id=str(client_order_id) if client_order_id else None,
            trailing_stop=TrailingStopState.from_dict(data.get("trailingStop")),
            opened_at=opened_at,
        )


@dataclass(frozen=True)
class OrderResult:
    order_id: str
    client_order_id: str | None = None
    raw: dict[str, Any] = field(default_factory=dict)
    success: bool = True


@dataclass(frozen=True)
class Position:
    symbol: str
    side: str
    quantity: Decimal
    avg_price: Decimal
    liquidation_price: Decimal
    unrealized_pnl: Decimal
    margin: Decimal = Decimal(0)

    def to_dict(self) -> dict[str, Any]:
        return {
            "symbol": self.symbol,
            "side": self.side,
            "quantity": str(self.quantity),
            "avg_price": str(self.avg_price),
            "liquidation_price": str(self.liquidation_price),
            "unrealized_pnl": str(self.unrealized_pnl),
            "margin": str(self.margin),
        }


@dataclass(frozen=True)
class HistoricalOrder:
    order_id: str | None
    client_order_id: str | None
    type: str
    status: str

    @property
    def is_take_profit(self) -> bool:
        return "TAKE_PROFIT" in self.type.upper()

    @property
    def is_stop(self) -> bool:
        return "STOP" in self.type.upper()


@dataclass(frozen=True)
class AccountBalance:
    asset: str
    available: Decimal
    equity: Decimal
    unrealized_pnl: Decimal
