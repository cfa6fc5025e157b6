"""Signal text interpretation."""

from signal_trader.signals.parser import (
    ParseError,
    SignalError,
    ValidationError,
    is_signal_message,
    parse_and_validate,
    parse_signal,
    validate_signal,
)

__all__ = [
    "ParseError",
    "SignalError",
    "ValidationError",
    "is_signal_message",
    "parse_and_validate",
    "parse_signal",
    "validate_signal",
]
