"""Risk management module."""

from signal_trader.risk.sizing import PositionSizer

__all__ = ["PositionSizer"]
