"""Client-side trailing stop for orders whose first take-profit has filled.

BingX does not expose the stop-loss leg of a bracket market order as an
addressable order, so the stop is not amended on the exchange. The bot keeps
the ratcheting stop price locally and re-evaluates it every reconciliation
cycle.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import TYPE_CHECKING

import structlog

from signal_trader.config.settings import TrailingStopConfig
from signal_trader.connectors.gateway import ExchangeGateway
from signal_trader.ledger.position_ledger import PositionLedger
from signal_trader.models import Direction, ManagedOrder, TrailingStopState, to_decimal

if TYPE_CHECKING:
    from signal_trader.monitoring.metrics import Metrics


def trailing_stop_price(price: Decimal, direction: Direction, offset_pct: Decimal) -> Decimal:
    """Stop at offset_pct below price for a BUY, above price for a SELL."""
    offset = price * offset_pct / 100
    return price - offset if direction is Direction.BUY else price + offset


def is_more_favorable(candidate: Decimal, current: Decimal, direction: Direction) -> bool:
    if direction is Direction.BUY:
        return candidate > current
    return candidate < current


def is_stop_breached(price: Decimal, stop_price: Decimal, direction: Direction) -> bool:
    if direction is Direction.BUY:
        return price <= stop_price
    return price >= stop_price


@dataclass(frozen=True)
class TrailingStopOutcome:
    order_id: str
    price: Decimal
    stop_price: Decimal
    changed: bool
    triggered: bool
    # False when the order left the ledger while the price was being fetched.
    applied: bool = True


class TrailingStopController:
    """Activate and ratchet trailing stops; report when one is breached."""

    def __init__(
        self,
        gateway: ExchangeGateway,
        ledger: PositionLedger,
        config: TrailingStopConfig | None = None,
        metrics: Metrics | None = None,
    ) -> None:
        self.gateway = gateway
        self.ledger = ledger
        self.config = config or TrailingStopConfig()
        self.offset_pct = to_decimal(self.config.offset_pct)
        self._metrics = metrics
        self.log = structlog.get_logger(__name__)

    async def activate(
        self, order: ManagedOrder, price: Decimal | None = None
    ) -> TrailingStopOutcome:
        """INACTIVE -> ACTIVE, persisted before returning.

        An order that is already active is ratcheted instead, so a repeated
        take-profit classification can never pull the stop back.
        """
        if order.trailing_stop.is_active:
            return await self.update(order, price)

        if price is None:
            price = await self.gateway.get_current_price(order.symbol)
        stop_price = trailing_stop_price(price, order.direction, self.offset_pct)
        applied = await self.ledger.set_trailing_stop(
            order.order_id,
            TrailingStopState(is_active=True, current_stop_price=stop_price),
        )
        if not applied:
            self.log.warning("trailing_stop_order_missing", order_id=order.order_id, symbol=order.symbol)
            return TrailingStopOutcome(order.order_id, price, stop_price, False, False, applied=False)

        if self._metrics is not None:
            self._metrics.trailing_stop_activations_total.inc()
        self.log.info(
            "trailing_stop_activated",
            order_id=order.order_id,
            symbol=order.symbol,
            direction=order.direction.value,
            price=str(price),
            stop_price=str(stop_price),
        )
        return TrailingStopOutcome(order.order_id, price, stop_price, changed=True, triggered=False)

    async def update(
        self, order: ManagedOrder, price: Decimal | None = None
    ) -> TrailingStopOutcome:
        """Ratchet the stop toward the price, then check whether it was crossed."""
        current_stop = order.trailing_stop.current_stop_price
        if price is None:
            price = await self.gateway.get_current_price(order.symbol)
        candidate = trailing_stop_price(price, order.direction, self.offset_pct)

        new_stop = current_stop
        changed = False
        if is_more_favorable(candidate, current_stop, order.direction):
            new_stop = candidate
            applied = await self.ledger.set_trailing_stop(
                order.order_id,
                TrailingStopState(is_active=True, current_stop_price=new_stop),
            )
            if not applied:
                self.log.warning("trailing_stop_order_missing", order_id=order.order_id, symbol=order.symbol)
                return TrailingStopOutcome(order.order_id, price, current_stop, False, False, applied=False)
            changed = True
            if self._metrics is not None:
                self._metrics.trailing_stop_updates_total.inc()
            self.log.info(
                "trailing_stop_updated",
                order_id=order.order_id,
                symbol=order.symbol,
                old_stop=str(current_stop),
                new_stop=str(new_stop),
                price=str(price),
            )

        triggered = is_stop_breached(price, new_stop, order.direction)
        if triggered:
            if self._metrics is not None:
                self._metrics.trailing_stop_triggers_total.inc()
            self.log.info(
                "trailing_stop_triggered",
                order_id=order.order_id,
                symbol=order.symbol,
                price=str(price),
                stop_price=str(new_stop),
            )
        return TrailingStopOutcome(order.order_id, price, new_stop, changed, triggered)
