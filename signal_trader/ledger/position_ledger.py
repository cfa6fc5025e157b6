"""In-memory ledger of managed orders with write-through persistence."""

from __future__ import annotations

import asyncio
from dataclasses import replace

import structlog

from signal_trader.ledger.store import LedgerSnapshotStore, PersistenceError
from signal_trader.models import ManagedOrder, TrailingStopState


class PositionLedger:
    """Single owner of the orderId -> ManagedOrder map.

    All mutations go through one asyncio.Lock and rewrite the snapshot before
    the lock is released. Readers get copies, never the live objects.
    """

    def __init__(self, store: LedgerSnapshotStore) -> None:
        self._store = store
        self._orders: dict[str, ManagedOrder] = {}
        self._lock = asyncio.Lock()
        self.durability_degraded = False
        self.log = structlog.get_logger(__name__)

    def __len__(self) -> int:
        return len(self._orders)

    def __contains__(self, order_id: object) -> bool:
        return order_id in self._orders

    async def load(self) -> int:
        """Replace in-memory state with the persisted snapshot."""
        async with self._lock:
            orders = self._store.load()
            self._orders = {order.order_id: order for order in orders}
        self.log.info("ledger_loaded", orders=len(self._orders))
        return len(self._orders)

    async def add_order(self, order: ManagedOrder) -> None:
        async with self._lock:
            if order.order_id in self._orders:
                self.log.warning("ledger_order_replaced", order_id=order.order_id)
            self._orders[order.order_id] = order.copy()
            self._persist()
        self.log.info(
            "ledger_order_added",
            order_id=order.order_id,
            symbol=order.symbol,
            direction=order.direction.value,
            quantity=str(order.quantity),
        )

    async def remove_order(self, order_id: str) -> ManagedOrder | None:
        async with self._lock:
            removed = self._orders.pop(order_id, None)
            if removed is not None:
                self._persist()
        if removed is not None:
            self.log.info("ledger_order_removed", order_id=order_id, symbol=removed.symbol)
        return removed

    async def set_trailing_stop(self, order_id: str, state: TrailingStopState) -> bool:
        """Store a new trailing-stop state; False if the order is gone."""
        async with self._lock:
            order = self._orders.get(order_id)
            if order is None:
                return False
            order.trailing_stop = replace(state)
            self._persist()
        return True

    def get(self, order_id: str) -> ManagedOrder | None:
        order = self._orders.get(order_id)
        return order.copy() if order is not None else None

    def snapshot(self) -> list[ManagedOrder]:
        return [order.copy() for order in self._orders.values()]

    def _persist(self) -> None:
        try:
            self._store.save(self._orders.values())
        except PersistenceError as exc:
            self.durability_degraded = True
            self.log.warning("ledger_persist_failed", error=str(exc), orders=len(self._orders))
            return
        self.durability_degraded = False
