"""Position ledger module."""

from signal_trader.ledger.position_ledger import PositionLedger
from signal_trader.ledger.store import LedgerSnapshotStore, PersistenceError

__all__ = ["LedgerSnapshotStore", "PersistenceError", "PositionLedger"]
