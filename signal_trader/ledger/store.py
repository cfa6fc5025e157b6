"""Durable snapshot of managed orders to survive process restarts."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Iterable

import orjson
import structlog

from signal_trader.models import ManagedOrder


class PersistenceError(Exception):
    """Raised when the snapshot cannot be written."""

    pass


class LedgerSnapshotStore:
    """Read and rewrite the full list of ``{"orderId", "data"}`` records."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self.log = structlog.get_logger(__name__)

    def load(self) -> list[ManagedOrder]:
        """Load persisted orders; a missing file is an empty ledger."""
        if not self.path.exists():
            self.log.info("ledger_snapshot_missing", path=str(self.path))
            return []
        try:
            records = orjson.loads(self.path.read_bytes())
            if not isinstance(records, list):
                raise ValueError("snapshot root must be a list")
            return [
                ManagedOrder.from_dict(str(record["orderId"]), record["data"])
                for record in records
            ]
        except (orjson.JSONDecodeError, KeyError, TypeError, ValueError, ArithmeticError) as exc:
            corrupt = self.path.with_suffix(self.path.suffix + ".corrupt")
            self.log.error(
                "ledger_snapshot_corrupt",
                path=str(self.path),
                moved_to=str(corrupt),
                error=str(exc),
            )
            try:
                os.replace(self.path, corrupt)
            except OSError:
                pass
            return []
        except OSError as exc:
            raise PersistenceError(f"Cannot read ledger snapshot {self.path}: {exc}") from exc

    def save(self, orders: Iterable[ManagedOrder]) -> None:
        """Rewrite the snapshot atomically (temp file + rename)."""
        records = [{"orderId": order.order_id, "data": order.to_dict()} for order in orders]
        temp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(temp_path, "wb") as f:
                f.write(orjson.dumps(records, option=orjson.OPT_INDENT_2))
                f.flush()
                os.fsync(f.fileno())
            os.replace(temp_path, self.path)
        except OSError as exc:
            raise PersistenceError(f"Cannot write ledger snapshot {self.path}: {exc}") from exc
