"""Tests for signal text parsing and price validation."""

from __future__ import annotations

from decimal import Decimal

import pytest

from signal_trader.models import Direction, TradingIntent
from signal_trader.signals import (
    ParseError,
    ValidationError,
    is_signal_message,
    parse_and_validate,
    parse_signal,
    validate_signal,
)

LONG_SIGNAL = (
    "🟢 LONG (AERGOUSDT)\n"
    "Entrys: 0.11477 - 0.11458\n"
    "Leverage: 5X\n"
    "Tps: 0.11547 - 0.11593 - 0.1164\n"
    "Stop Loss: 0.1143"
)

SHORT_SIGNAL = (
    "🔴 SHORT (BTCUSDT)\n"
    "Entrys: 65000\n"
    "Leverage: 10x\n"
    "Tps: 64000 - 63000\n"
    "Stop Loss: 66000"
)


def _intent(stop_loss: str = "0.1143") -> TradingIntent:
    return TradingIntent(
        symbol="AERGOUSDT",
        direction=Direction.BUY,
        entry_prices=(Decimal("0.11477"),),
        leverage=5,
        take_profits=(Decimal("0.11547"),),
        stop_loss=Decimal(stop_loss),
    )


def test_parse_long_signal() -> None:
    intent = parse_signal(LONG_SIGNAL)
    assert intent.symbol == "AERGOUSDT"
    assert intent.direction is Direction.BUY
    assert intent.entry_prices == (Decimal("0.11477"), Decimal("0.11458"))
    assert intent.leverage == 5
    assert intent.stop_loss == Decimal("0.1143")


def test_parse_keeps_only_first_take_profit() -> None:
    intent = parse_signal(LONG_SIGNAL)
    assert intent.take_profits == (Decimal("0.11547"),)
    assert intent.take_profit == Decimal("0.11547")


def test_parse_short_signal_lowercase_x() -> None:
    intent = parse_signal(SHORT_SIGNAL)
    assert intent.direction is Direction.SELL
    assert intent.symbol == "BTCUSDT"
    assert intent.leverage == 10
    assert intent.entry_prices == (Decimal("65000"),)


def test_parse_tolerates_spaces_before_colons() -> None:
    text = LONG_SIGNAL.replace("Entrys:", "Entrys :").replace("Stop Loss:", "Stop Loss :")
    assert parse_signal(text).stop_loss == Decimal("0.1143")


def test_parse_rejects_missing_line() -> None:
    text = "\n".join(line for line in LONG_SIGNAL.splitlines() if not line.startswith("Leverage"))
    with pytest.raises(ParseError):
        parse_signal(text)


def test_parse_rejects_reordered_lines() -> None:
    lines = LONG_SIGNAL.splitlines()
    lines[2], lines[3] = lines[3], lines[2]
    with pytest.raises(ParseError):
        parse_signal("\n".join(lines))


def test_parse_rejects_bad_number() -> None:
    with pytest.raises(ParseError):
        parse_signal(LONG_SIGNAL.replace("0.11458", "0.11x58"))


@pytest.mark.parametrize(
    ("old", "new"),
    [
        ("Entrys: 0.11477 - 0.11458", "Entrys: -0.11477"),
        ("Tps: 0.11547 - 0.11593 - 0.1164", "Tps: 0.11547 -- 0.11593"),
        ("Tps: 0.11547 - 0.11593 - 0.1164", "Tps: 0.11547 - 0.11593 -"),
    ],
)
def test_parse_rejects_stray_dashes(old: str, new: str) -> None:
    with pytest.raises(ParseError):
        parse_signal(LONG_SIGNAL.replace(old, new))


def test_parse_is_deterministic() -> None:
    assert parse_signal(LONG_SIGNAL) == parse_signal(LONG_SIGNAL)
    assert parse_signal(SHORT_SIGNAL) == parse_signal(SHORT_SIGNAL)


def test_parse_rejects_empty_text() -> None:
    with pytest.raises(ParseError):
        parse_signal("   ")


def test_is_signal_message_requires_exact_shape() -> None:
    assert is_signal_message(LONG_SIGNAL)
    assert is_signal_message(SHORT_SIGNAL)
    assert not is_signal_message("hello there")
    assert not is_signal_message(None)
    # Header without the colored marker is not picked up from chat.
    assert not is_signal_message(LONG_SIGNAL.replace("🟢 ", ""))


def test_validate_long_scenario() -> None:
    assert validate_signal(_intent()) is True


def test_validate_rejects_stop_above_entry_for_long() -> None:
    assert validate_signal(_intent(stop_loss="0.12")) is False


def test_validate_short_requires_inverted_prices() -> None:
    intent = parse_signal(SHORT_SIGNAL)
    assert validate_signal(intent) is True
    inverted = TradingIntent(
        symbol=intent.symbol,
        direction=Direction.SELL,
        entry_prices=intent.entry_prices,
        leverage=intent.leverage,
        take_profits=(Decimal("66500"),),
        stop_loss=Decimal("66000"),
    )
    assert validate_signal(inverted) is False


def test_validate_uses_mean_entry() -> None:
    # Mean of 100 and 110 is 105: a take-profit at 106 is above it.
    intent = TradingIntent(
        symbol="ABCUSDT",
        direction=Direction.BUY,
        entry_prices=(Decimal("100"), Decimal("110")),
        leverage=3,
        take_profits=(Decimal("106"),),
        stop_loss=Decimal("95"),
    )
    assert validate_signal(intent) is True


def test_parse_and_validate_raises_validation_error() -> None:
    with pytest.raises(ValidationError):
        parse_and_validate(LONG_SIGNAL.replace("Stop Loss: 0.1143", "Stop Loss: 0.12"))
