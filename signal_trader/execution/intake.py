"""Turn a signal message into a placed, recorded entry order."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from decimal import Decimal
from typing import TYPE_CHECKING, Any

import structlog

from signal_trader.config.settings import RiskConfig
from signal_trader.connectors.bingx_client import ExchangeError
from signal_trader.connectors.gateway import ExchangeGateway
from signal_trader.ledger.position_ledger import PositionLedger
from signal_trader.models import UNKNOWN_ORDER_ID, ManagedOrder, TradingIntent
from signal_trader.risk.sizing import PositionSizer
from signal_trader.signals.parser import SignalError, parse_and_validate

if TYPE_CHECKING:
    from signal_trader.monitoring.metrics import Metrics


@dataclass(frozen=True)
class IntakeResult:
    accepted: bool
    reason: str
    order_id: str | None = None
    quantity: Decimal | None = None
    intent: TradingIntent | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "accepted": self.accepted,
            "reason": self.reason,
            "order_id": self.order_id,
            "quantity": str(self.quantity) if self.quantity is not None else None,
            "signal": self.intent.to_dict() if self.intent is not None else None,
        }


class SignalIntake:
    """Parse, size and place one signal; record the order only once it is placed."""

    def __init__(
        self,
        gateway: ExchangeGateway,
        ledger: PositionLedger,
        risk_config: RiskConfig | None = None,
        metrics: Metrics | None = None,
    ) -> None:
        self.gateway = gateway
        self.ledger = ledger
        self.risk_config = risk_config or RiskConfig()
        self.sizer = PositionSizer(
            self.risk_config.risk_per_trade_pct,
            self.risk_config.quantity_step,
        )
        self._metrics = metrics
        self.accepted_count = 0
        self.rejected_count = 0
        self.log = structlog.get_logger(__name__)

    async def submit(self, text: str) -> IntakeResult:
        try:
            intent = parse_and_validate(text)
        except SignalError as exc:
            self.log.info("signal_rejected", reason=str(exc))
            return self._result(IntakeResult(False, str(exc)))

        leverage = min(intent.leverage, self.risk_config.max_leverage)
        try:
            await self.gateway.set_leverage(intent.symbol, leverage, intent.direction)
            balance = await self.gateway.get_available_balance()
        except asyncio.CancelledError:
            raise
        except ExchangeError as exc:
            self.log.error("signal_setup_failed", symbol=intent.symbol, error=str(exc), code=exc.code)
            return self._result(IntakeResult(False, "exchange_error", intent=intent))

        quantity = self.sizer.calculate_quantity(balance.available, intent.entry_price)
        if quantity is None:
            self.log.warning(
                "signal_size_zero",
                symbol=intent.symbol,
                available=str(balance.available),
                entry_price=str(intent.entry_price),
            )
            return self._result(IntakeResult(False, "insufficient_balance", intent=intent))

        try:
            result = await self.gateway.place_entry_order(
                intent.symbol,
                intent.direction,
                quantity,
                stop_price=intent.stop_loss,
                take_profit_price=intent.take_profit,
            )
        except asyncio.CancelledError:
            raise
        except ExchangeError as exc:
            self.log.error("entry_order_failed", symbol=intent.symbol, error=str(exc), code=exc.code)
            return self._result(IntakeResult(False, "exchange_error", intent=intent))

        order_id = result.order_id
        if order_id == UNKNOWN_ORDER_ID:
            # Key by the client id so several id-less orders can coexist.
            order_id = result.client_order_id or UNKNOWN_ORDER_ID
            self.log.warning(
                "entry_order_id_unknown",
                symbol=intent.symbol,
                client_order_id=result.client_order_id,
            )
        order = ManagedOrder(
            order_id=order_id,
            intent=intent,
            quantity=quantity,
            client_order_id=result.client_order_id,
        )
        await self.ledger.add_order(order)
        if self._metrics is not None:
            self._metrics.managed_orders.set(len(self.ledger))
        self.log.info(
            "signal_accepted",
            order_id=order.order_id,
            symbol=intent.symbol,
            direction=intent.direction.value,
            quantity=str(quantity),
            leverage=leverage,
        )
        return self._result(
            IntakeResult(True, "placed", order_id=order.order_id, quantity=quantity, intent=intent)
        )

    def _result(self, result: IntakeResult) -> IntakeResult:
        if result.accepted:
            self.accepted_count += 1
        else:
            self.rejected_count += 1
        if self._metrics is not None:
            outcome = "accepted" if result.accepted else "rejected"
            self._metrics.signals_total.labels(outcome=outcome).inc()
        return result
