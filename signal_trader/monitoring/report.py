"""Plain-text status reports for chat replies."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any

from signal_trader.execution.intake import IntakeResult
from signal_trader.models import AccountBalance, ManagedOrder, Position


def format_order(order: ManagedOrder) -> str:
    intent = order.intent
    lines = [
        f"{intent.direction.value} {intent.symbol} x{intent.leverage} qty={order.quantity}",
        f"  id={order.order_id} entry={intent.entry_price} tp={intent.take_profit} sl={intent.stop_loss}",
    ]
    if order.trailing_stop.is_active:
        lines.append(f"  trailing stop @ {order.trailing_stop.current_stop_price}")
    return "\n".join(lines)


def format_position(position: Position) -> str:
    return (
        f"{position.side} {position.symbol} qty={position.quantity} "
        f"avg={position.avg_price} pnl={position.unrealized_pnl}"
    )


def format_balance(balance: AccountBalance) -> str:
    return (
        f"Balance ({balance.asset}): available={balance.available} "
        f"equity={balance.equity} unrealized={balance.unrealized_pnl}"
    )


def format_status(status: Mapping[str, Any]) -> str:
    lines = [
        f"Monitoring: {'running' if status.get('running') else 'stopped'}",
        f"Managed orders: {status.get('managed_orders', 0)}",
        f"Cycles completed: {status.get('cycles_completed', 0)}",
        f"Consecutive failures: {status.get('consecutive_failures', 0)}",
    ]
    if status.get("durability_degraded"):
        lines.append("WARNING: last ledger snapshot write failed")
    last_cycle = status.get("last_cycle")
    if last_cycle:
        if last_cycle.get("skipped"):
            lines.append(f"Last cycle skipped: {last_cycle.get('reason')}")
        else:
            lines.append(f"Last cycle: {last_cycle.get('started_at')}")
    return "\n".join(lines)


def format_stats(stats: Mapping[str, Any]) -> str:
    closures = stats.get("closures") or {}
    lines = [
        f"Signals accepted: {stats.get('signals_accepted', 0)}",
        f"Signals rejected: {stats.get('signals_rejected', 0)}",
        f"Managed orders: {stats.get('managed_orders', 0)}",
        f"Trailing stops active: {stats.get('trailing_active', 0)}",
        f"Closures: {sum(closures.values())}",
    ]
    lines.extend(f"  {kind}: {count}" for kind, count in sorted(closures.items()))
    return "\n".join(lines)


def format_report(
    orders: Iterable[ManagedOrder],
    positions: Iterable[Position] | None = None,
    balance: AccountBalance | None = None,
) -> str:
    """Ledger snapshot, then live positions and balance when they were fetched."""
    orders = list(orders)
    sections = [f"Managed orders ({len(orders)}):"]
    sections.extend(format_order(order) for order in orders)
    if not orders:
        sections.append("  none")

    if positions is not None:
        positions = list(positions)
        sections.append(f"Open positions ({len(positions)}):")
        sections.extend(f"  {format_position(position)}" for position in positions)
        if not positions:
            sections.append("  none")
    else:
        sections.append("Open positions: unavailable")

    if balance is not None:
        sections.append(format_balance(balance))
    return "\n".join(sections)


def format_intake_result(result: IntakeResult) -> str:
    if not result.accepted:
        return f"Signal rejected: {result.reason}"
    intent = result.intent
    if intent is None:
        return f"Order placed: {result.order_id}"
    return (
        f"Order placed: {intent.direction.value} {intent.symbol} qty={result.quantity} "
        f"id={result.order_id}\n"
        f"TP {intent.take_profit} / SL {intent.stop_loss}"
    )
