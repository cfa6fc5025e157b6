from __future__ import annotations

import asyncio
from decimal import Decimal

from prometheus_client import CollectorRegistry

from signal_trader.config.settings import TrailingStopConfig
from signal_trader.execution.trailing_stop import (
    TrailingStopController,
    is_stop_breached,
    trailing_stop_price,
)
from signal_trader.models import Direction, ManagedOrder, TradingIntent, TrailingStopState
from signal_trader.monitoring.metrics import Metrics


def _order(direction: Direction = Direction.BUY, order_id: str = "123") -> ManagedOrder:
    if direction is Direction.BUY:
        intent = TradingIntent("XYZUSDT", direction, (Decimal("95"),), 5, (Decimal("100"),), Decimal("90"))
    else:
        intent = TradingIntent("XYZUSDT", direction, (Decimal("105"),), 5, (Decimal("100"),), Decimal("110"))
    return ManagedOrder(order_id=order_id, intent=intent, quantity=Decimal("2"))


def test_trailing_stop_price_offsets() -> None:
    assert trailing_stop_price(Decimal("100"), Direction.BUY, Decimal("0.5")) == Decimal("99.5")
    assert trailing_stop_price(Decimal("100"), Direction.SELL, Decimal("0.5")) == Decimal("100.5")


def test_is_stop_breached_by_direction() -> None:
    assert is_stop_breached(Decimal("99.5"), Decimal("99.5"), Direction.BUY)
    assert not is_stop_breached(Decimal("99.6"), Decimal("99.5"), Direction.BUY)
    assert is_stop_breached(Decimal("100.5"), Decimal("100.5"), Direction.SELL)
    assert not is_stop_breached(Decimal("100.4"), Decimal("100.5"), Direction.SELL)


def test_activate_sets_stop_below_price_for_long(gateway, ledger) -> None:
    gateway.prices["XYZUSDT"] = Decimal("100")
    controller = TrailingStopController(gateway, ledger)
    order = _order()

    async def _run():
        await ledger.add_order(order)
        return await controller.activate(order)

    outcome = asyncio.run(_run())
    assert outcome.applied and outcome.changed
    assert outcome.stop_price == Decimal("99.5")
    state = ledger.get("123").trailing_stop
    assert state == TrailingStopState(is_active=True, current_stop_price=Decimal("99.5"))


def test_activate_uses_prefetched_price(gateway, ledger) -> None:
    controller = TrailingStopController(gateway, ledger)
    order = _order(Direction.SELL)

    async def _run():
        await ledger.add_order(order)
        return await controller.activate(order, Decimal("200"))

    outcome = asyncio.run(_run())
    assert outcome.stop_price == Decimal("201.0")
    assert "get_current_price" not in gateway.call_names()


def test_long_stop_only_moves_up(gateway, ledger) -> None:
    controller = TrailingStopController(gateway, ledger)
    order = _order()

    async def _run():
        await ledger.add_order(order)
        await controller.activate(order, Decimal("100"))
        stops = []
        for price in ("102", "101.8", "103"):
            current = ledger.get("123")
            await controller.update(current, Decimal(price))
            stops.append(ledger.get("123").trailing_stop.current_stop_price)
        return stops

    stops = asyncio.run(_run())
    assert stops == [Decimal("101.49"), Decimal("101.49"), Decimal("102.485")]
    assert stops == sorted(stops)


def test_short_stop_only_moves_down(gateway, ledger) -> None:
    controller = TrailingStopController(gateway, ledger)
    order = _order(Direction.SELL)

    async def _run():
        await ledger.add_order(order)
        await controller.activate(order, Decimal("100"))
        results = []
        for price in ("98", "98.2"):
            outcome = await controller.update(ledger.get("123"), Decimal(price))
            results.append((outcome.changed, ledger.get("123").trailing_stop.current_stop_price))
        return results

    results = asyncio.run(_run())
    assert results == [(True, Decimal("98.49")), (False, Decimal("98.49"))]


def test_update_reports_trigger_without_moving_stop(gateway, ledger) -> None:
    registry = CollectorRegistry()
    metrics = Metrics(registry)
    controller = TrailingStopController(gateway, ledger, metrics=metrics)
    order = _order()

    async def _run():
        await ledger.add_order(order)
        await controller.activate(order, Decimal("100"))
        return await controller.update(ledger.get("123"), Decimal("99.4"))

    outcome = asyncio.run(_run())
    assert outcome.triggered is True
    assert outcome.changed is False
    assert outcome.stop_price == Decimal("99.5")
    assert registry.get_sample_value("trailing_stop_triggers_total") == 1.0
    assert registry.get_sample_value("trailing_stop_activations_total") == 1.0


def test_reactivation_ratchets_instead_of_resetting(gateway, ledger) -> None:
    controller = TrailingStopController(gateway, ledger)
    order = _order()

    async def _run():
        await ledger.add_order(order)
        await controller.activate(order, Decimal("110"))
        # A second take-profit classification at a lower price keeps the higher stop.
        return await controller.activate(ledger.get("123"), Decimal("105"))

    outcome = asyncio.run(_run())
    assert outcome.changed is False
    assert ledger.get("123").trailing_stop.current_stop_price == Decimal("109.45")


def test_activate_for_removed_order_is_not_applied(gateway, ledger) -> None:
    controller = TrailingStopController(gateway, ledger, TrailingStopConfig(offset_pct=1.0))
    outcome = asyncio.run(controller.activate(_order(order_id="gone"), Decimal("100")))
    assert outcome.applied is False
    assert outcome.stop_price == Decimal("99")
