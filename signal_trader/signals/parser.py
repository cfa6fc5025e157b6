"""Parse and validate free-text trading signals.

Accepted shape (five lines, in this order)::

    🟢 LONG (AERGOUSDT)
    Entrys: 0.11477 - 0.11458
    Leverage: 5X
    Tps: 0.11547 - 0.11593 - 0.1164
    Stop Loss: 0.1143

Only the first take-profit is kept: a bracket market order on BingX carries a
single take-profit.
"""

from __future__ import annotations

import re
from decimal import Decimal, InvalidOperation

from signal_trader.models import Direction, TradingIntent


class SignalError(Exception):
    """Base class for signals rejected before reaching the exchange."""

    pass


class ParseError(SignalError):
    """Raised when signal text does not match the expected shape."""

    pass


class ValidationError(SignalError):
    """Raised when a well-formed signal has inconsistent prices."""

    pass


_SIGNAL_MESSAGE_RE = re.compile(
    r"^(?:🟢 LONG|🔴 SHORT) \([A-Z0-9]+\)\r?\n"
    r"Entrys\s*:.*\r?\n"
    r"Leverage\s*:.*\r?\n"
    r"Tps\s*:.*\r?\n"
    r"Stop Loss\s*:.*$"
)

_HEADER_RE = re.compile(r"^(?:🟢|🔴)?\s*(LONG|SHORT)\s*\(([A-Z0-9]+)\)$")
_ENTRIES_RE = re.compile(r"^Entrys\s*:\s*(.+)$")
_LEVERAGE_RE = re.compile(r"^Leverage\s*:\s*(\d+)\s*[xX]$")
_TPS_RE = re.compile(r"^Tps\s*:\s*(.+)$")
_STOP_LOSS_RE = re.compile(r"^Stop Loss\s*:\s*(\S+)$")
_NUMBER_RE = re.compile(r"^(?:\d+(?:\.\d*)?|\.\d+)$")
_PRICE_SEPARATOR_RE = re.compile(r"\s*-\s*|\s+")

_LINE_PATTERNS = (
    ("header", _HEADER_RE),
    ("Entrys", _ENTRIES_RE),
    ("Leverage", _LEVERAGE_RE),
    ("Tps", _TPS_RE),
    ("Stop Loss", _STOP_LOSS_RE),
)


def is_signal_message(text: str | None) -> bool:
    """Cheap pre-filter for chat messages: True only for the five-line signal shape."""
    if not text:
        return False
    return _SIGNAL_MESSAGE_RE.match(text.strip()) is not None


def _parse_price(token: str, field_name: str) -> Decimal:
    if not _NUMBER_RE.match(token):
        raise ParseError(f"Invalid number in {field_name}: {token!r}")
    try:
        value = Decimal(token)
    except InvalidOperation as exc:
        raise ParseError(f"Invalid number in {field_name}: {token!r}") from exc
    if value <= 0:
        raise ParseError(f"{field_name} must be positive: {token!r}")
    return value


def _parse_price_list(raw: str, field_name: str) -> tuple[Decimal, ...]:
    tokens = _PRICE_SEPARATOR_RE.split(raw.strip())
    if not any(tokens):
        raise ParseError(f"{field_name} has no prices")
    # A stray dash leaves an empty token: "-0.5" or "0.2 -- 0.3".
    if not all(tokens):
        raise ParseError(f"Misplaced separator in {field_name}: {raw.strip()!r}")
    return tuple(_parse_price(token, field_name) for token in tokens)


def parse_signal(text: str) -> TradingIntent:
    """Parse signal text into a TradingIntent or raise ParseError.

    All five lines must be present, in order, with no blank lines between
    them. A single bad numeric token anywhere rejects the whole signal.
    """
    if not isinstance(text, str) or not text.strip():
        raise ParseError("Empty signal")
    lines = [line.strip() for line in text.strip().splitlines()]
    if len(lines) != len(_LINE_PATTERNS):
        raise ParseError(
            f"Expected {len(_LINE_PATTERNS)} lines, got {len(lines)}"
        )

    matches = []
    for line, (name, pattern) in zip(lines, _LINE_PATTERNS):
        match = pattern.match(line)
        if match is None:
            raise ParseError(f"{name} line not found or malformed: {line!r}")
        matches.append(match)
    header, entries, leverage, tps, stop_loss = matches

    direction = Direction.BUY if header.group(1) == "LONG" else Direction.SELL
    entry_prices = _parse_price_list(entries.group(1), "Entrys")
    leverage_value = int(leverage.group(1))
    if leverage_value <= 0:
        raise ParseError("Leverage must be positive")
    take_profits = _parse_price_list(tps.group(1), "Tps")

    return TradingIntent(
        symbol=header.group(2),
        direction=direction,
        entry_prices=entry_prices,
        leverage=leverage_value,
        take_profits=take_profits[:1],
        stop_loss=_parse_price(stop_loss.group(1), "Stop Loss"),
    )


def validate_signal(intent: TradingIntent) -> bool:
    """Check that prices make sense for the direction.

    The mean of the entry prices is the reference: a BUY needs
    stop_loss < mean < every take-profit, a SELL the reverse.
    """
    if not intent.symbol or len(intent.symbol) < 3:
        return False
    if intent.direction not in (Direction.BUY, Direction.SELL):
        return False
    if not intent.entry_prices or not intent.take_profits:
        return False
    if intent.leverage <= 0 or intent.stop_loss <= 0:
        return False
    if any(price <= 0 for price in intent.entry_prices + intent.take_profits):
        return False

    average_entry = intent.average_entry
    if intent.direction is Direction.BUY:
        if any(tp <= average_entry for tp in intent.take_profits):
            return False
        return intent.stop_loss < average_entry
    if any(tp >= average_entry for tp in intent.take_profits):
        return False
    return intent.stop_loss > average_entry


def parse_and_validate(text: str) -> TradingIntent:
    """Parse and validate, raising ParseError or ValidationError."""
    intent = parse_signal(text)
    if not validate_signal(intent):
        raise ValidationError("Prices do not make sense for the signal direction")
    return intent
