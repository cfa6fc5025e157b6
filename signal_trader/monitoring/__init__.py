"""Monitoring utilities."""

from signal_trader.monitoring.logging import configure_logging
from signal_trader.monitoring.metrics import Metrics

__all__ = [
    "configure_logging",
    "Metrics",
]
