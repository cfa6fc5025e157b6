"""Order lifecycle module."""

from signal_trader.execution.intake import IntakeResult, SignalIntake
from signal_trader.execution.reconciliation import (
    CycleReport,
    ReconciliationEngine,
    classify_closure,
    find_history_match,
)
from signal_trader.execution.trailing_stop import TrailingStopController, TrailingStopOutcome

__all__ = [
    "CycleReport",
    "IntakeResult",
    "ReconciliationEngine",
    "SignalIntake",
    "TrailingStopController",
    "TrailingStopOutcome",
    "classify_closure",
    "find_history_match",
]
