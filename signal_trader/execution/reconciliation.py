"""Polling reconciliation of managed orders against exchange positions.

BingX pushes no fill events to this bot, so each cycle diffs the set of open
positions against the ledger:

1. fetch open positions (failure skips the cycle, nothing is mutated);
2. for every managed order whose symbol is no longer open, look the order up
   in the symbol's recent order history and classify why it closed;
3. apply the classification: a take-profit fill activates the trailing stop,
   anything else removes the order;
4. ratchet active trailing stops of orders whose position is still open and
   remove the ones whose stop was breached.

All exchange reads of a cycle happen before its first ledger mutation.
"""

from __future__ import annotations

import asyncio
import time
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any, Iterable

import structlog

from signal_trader.config.settings import ReconciliationConfig
from signal_trader.connectors.gateway import ExchangeGateway
from signal_trader.execution.trailing_stop import TrailingStopController
from signal_trader.ledger.position_ledger import PositionLedger
from signal_trader.models import (
    ClosureKind,
    HistoricalOrder,
    ManagedOrder,
    Position,
    utc_now,
)

if TYPE_CHECKING:
    from signal_trader.monitoring.metrics import Metrics

TRAILING_STOP_CLOSE = "TRAILING_STOP"


def classify_closure(match: HistoricalOrder | None, trailing_active: bool) -> ClosureKind:
    """Infer why a managed position closed from its order-history record.

    Fixed precedence: take-profit match, then stop/other match, then history gap.
    """
    if match is None:
        return ClosureKind.HISTORY_GAP
    if match.is_take_profit or (not trailing_active and not match.is_stop):
        return ClosureKind.TP1_FILLED
    return ClosureKind.STOP_OR_OTHER


def find_history_match(
    history: Iterable[HistoricalOrder], order: ManagedOrder
) -> HistoricalOrder | None:
    for entry in history:
        if entry.order_id is not None and entry.order_id == order.order_id:
            return entry
        if (
            order.client_order_id
            and entry.client_order_id is not None
            and entry.client_order_id == order.client_order_id
        ):
            return entry
    return None


@dataclass
class CycleReport:
    started_at: datetime = field(default_factory=utc_now)
    skipped: bool = False
    reason: str | None = None
    open_symbols: list[str] = field(default_factory=list)
    closures: dict[str, str] = field(default_factory=dict)
    activated: list[str] = field(default_factory=list)
    updated: list[str] = field(default_factory=list)
    removed: dict[str, str] = field(default_factory=dict)
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "started_at": self.started_at.isoformat(),
            "skipped": self.skipped,
            "reason": self.reason,
            "open_symbols": list(self.open_symbols),
            "closures": dict(self.closures),
            "activated": list(self.activated),
            "updated": list(self.updated),
            "removed": dict(self.removed),
            "errors": list(self.errors),
        }


class ReconciliationEngine:
    """Drive the order lifecycle from periodic exchange polls."""

    def __init__(
        self,
        gateway: ExchangeGateway,
        ledger: PositionLedger,
        trailing: TrailingStopController,
        config: ReconciliationConfig | None = None,
        metrics: Metrics | None = None,
    ) -> None:
        self.gateway = gateway
        self.ledger = ledger
        self.trailing = trailing
        self.config = config or ReconciliationConfig()
        self._metrics = metrics
        self._running = False
        self.consecutive_failures = 0
        self.cycles_completed = 0
        self.closure_counts: Counter[str] = Counter()
        self.last_report: CycleReport | None = None
        self.log = structlog.get_logger(__name__)

    # Control surface

    @property
    def is_running(self) -> bool:
        return self._running

    def start(self) -> bool:
        """Enable monitoring; returns False when it was already running."""
        if self._running:
            return False
        self._running = True
        self._set_running_gauge()
        self.log.info("monitoring_started")
        return True

    def stop(self) -> bool:
        """Disable monitoring from the next loop iteration on."""
        if not self._running:
            return False
        self._running = False
        self._set_running_gauge()
        self.log.info("monitoring_stopped")
        return True

    async def add_order(self, order: ManagedOrder) -> None:
        await self.ledger.add_order(order)
        self._set_order_gauges()

    async def remove_order(self, order_id: str) -> ManagedOrder | None:
        removed = await self.ledger.remove_order(order_id)
        self._set_order_gauges()
        return removed

    # Read-only accessors

    def ledger_snapshot(self) -> list[ManagedOrder]:
        return self.ledger.snapshot()

    async def live_positions(self) -> list[Position]:
        return await self.gateway.get_open_positions()

    def status(self) -> dict[str, Any]:
        return {
            "running": self._running,
            "managed_orders": len(self.ledger),
            "cycles_completed": self.cycles_completed,
            "consecutive_failures": self.consecutive_failures,
            "durability_degraded": self.ledger.durability_degraded,
            "interval_sec": self.config.interval_sec,
            "last_cycle": self.last_report.to_dict() if self.last_report else None,
        }

    def stats(self) -> dict[str, Any]:
        """Counters since start-up: closures by kind and trailing stops in play."""
        orders = self.ledger.snapshot()
        return {
            "managed_orders": len(orders),
            "trailing_active": sum(1 for order in orders if order.trailing_stop.is_active),
            "cycles_completed": self.cycles_completed,
            "closures": dict(self.closure_counts),
        }

    # Loop

    async def run(self, max_cycles: int | None = None) -> None:
        """Poll until cancelled (or for max_cycles iterations).

        Each cycle is awaited before the next sleep, so cycles never overlap.
        """
        iterations = 0
        last_tick = time.time()
        while max_cycles is None or iterations < max_cycles:
            now = time.time()
            if self._metrics is not None:
                self._metrics.loop_last_tick_age_sec.labels(loop="reconciliation").set(now - last_tick)
            last_tick = now
            if self._running:
                try:
                    await self.run_cycle()
                except asyncio.CancelledError:
                    raise
                except Exception as exc:
                    self._record_failure()
                    self.log.exception("reconciliation_loop_error", error=str(exc))
            iterations += 1
            if max_cycles is not None and iterations >= max_cycles:
                break
            await asyncio.sleep(self.config.interval_sec)

    async def run_cycle(self) -> CycleReport:
        report = CycleReport()
        self.last_report = report

        try:
            positions = await self.gateway.get_open_positions()
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            return self._skip(report, "positions_unavailable", exc)
        open_symbols = {position.symbol for position in positions}
        report.open_symbols = sorted(open_symbols)

        orders = self.ledger.snapshot()
        closed = [order for order in orders if order.symbol not in open_symbols]
        trailing_open = [
            order
            for order in orders
            if order.symbol in open_symbols and order.trailing_stop.is_active
        ]

        histories: dict[str, list[HistoricalOrder]] = {}
        for symbol in dict.fromkeys(order.symbol for order in closed):
            try:
                histories[symbol] = await self.gateway.get_order_history(
                    symbol, self.config.history_limit
                )
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                if self.config.history_failure_policy == "skip_cycle":
                    return self._skip(report, "history_unavailable", exc)
                self.log.warning(
                    "order_history_failed_assuming_closed",
                    symbol=symbol,
                    error=str(exc),
                )
                histories[symbol] = []

        classified: list[tuple[ManagedOrder, ClosureKind]] = []
        for order in closed:
            match = find_history_match(histories[order.symbol], order)
            kind = classify_closure(match, order.trailing_stop.is_active)
            classified.append((order, kind))
            report.closures[order.order_id] = kind.value
            self.log.info(
                "position_closure_classified",
                order_id=order.order_id,
                symbol=order.symbol,
                kind=kind.value,
                history_type=match.type if match else None,
                trailing_active=order.trailing_stop.is_active,
            )

        price_symbols = [order.symbol for order, kind in classified if not kind.is_terminal]
        price_symbols += [order.symbol for order in trailing_open]
        prices = await self._fetch_prices(price_symbols, report)

        # Mutations start here.
        for order, kind in classified:
            self.closure_counts[kind.value] += 1
            if self._metrics is not None:
                self._metrics.position_closures_total.labels(kind=kind.value).inc()
            if kind.is_terminal:
                await self._remove(order, kind.value, report)
                continue
            price = prices.get(order.symbol)
            if price is None:
                continue
            outcome = await self.trailing.activate(order, price)
            if outcome.triggered:
                # Position already gone on the exchange; nothing left to close.
                await self._remove(order, TRAILING_STOP_CLOSE, report)
            elif order.trailing_stop.is_active:
                if outcome.changed:
                    report.updated.append(order.order_id)
            elif outcome.applied:
                report.activated.append(order.order_id)

        for order in trailing_open:
            price = prices.get(order.symbol)
            if price is None:
                continue
            outcome = await self.trailing.update(order, price)
            if outcome.changed:
                report.updated.append(order.order_id)
            if outcome.triggered:
                await self._close_triggered(order, report)

        self._record_success()
        self.log.info(
            "reconciliation_completed",
            managed_orders=len(self.ledger),
            open_positions=len(open_symbols),
            activated=len(report.activated),
            updated=len(report.updated),
            removed=len(report.removed),
        )
        return report

    # Helpers

    async def _fetch_prices(self, symbols: list[str], report: CycleReport) -> dict[str, Decimal]:
        prices: dict[str, Decimal] = {}
        for symbol in dict.fromkeys(symbols):
            try:
                prices[symbol] = await self.gateway.get_current_price(symbol)
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                report.errors.append(f"price:{symbol}")
                self.log.warning("price_fetch_failed", symbol=symbol, error=str(exc))
        return prices

    async def _close_triggered(self, order: ManagedOrder, report: CycleReport) -> None:
        if self.trailing.config.close_on_trigger:
            try:
                await self.gateway.close_position(order.symbol, order.direction, order.quantity)
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                # Keep the order so the next cycle tries again.
                report.errors.append(f"close:{order.order_id}")
                self.log.error(
                    "trailing_stop_close_failed",
                    order_id=order.order_id,
                    symbol=order.symbol,
                    error=str(exc),
                )
                return
        await self._remove(order, TRAILING_STOP_CLOSE, report)

    async def _remove(self, order: ManagedOrder, reason: str, report: CycleReport) -> None:
        removed = await self.remove_order(order.order_id)
        if removed is not None:
            report.removed[order.order_id] = reason
            self.log.info(
                "managed_order_closed",
                order_id=order.order_id,
                symbol=order.symbol,
                reason=reason,
            )

    def _skip(self, report: CycleReport, reason: str, exc: Exception) -> CycleReport:
        report.skipped = True
        report.reason = reason
        report.errors.append(str(exc))
        self._record_failure()
        self.log.warning("reconciliation_failed", reason=reason, error=str(exc))
        return report

    def _record_success(self) -> None:
        self.consecutive_failures = 0
        self.cycles_completed += 1
        if self._metrics is not None:
            self._metrics.reconciliation_success_total.inc()
            self._metrics.reconciliation_consecutive_failures.set(0)
        self._set_order_gauges()

    def _record_failure(self) -> None:
        self.consecutive_failures += 1
        if self._metrics is not None:
            self._metrics.reconciliation_failure_total.inc()
            self._metrics.reconciliation_consecutive_failures.set(self.consecutive_failures)
        if self.consecutive_failures == self.config.failure_threshold:
            self.log.warning(
                "reconciliation_failure_threshold_reached",
                consecutive_failures=self.consecutive_failures,
                threshold=self.config.failure_threshold,
            )

    def _set_running_gauge(self) -> None:
        if self._metrics is not None:
            self._metrics.monitoring_running.set(1 if self._running else 0)

    def _set_order_gauges(self) -> None:
        if self._metrics is not None:
            self._metrics.managed_orders.set(len(self.ledger))
            self._metrics.ledger_durability_degraded.set(1 if self.ledger.durability_degraded else 0)
