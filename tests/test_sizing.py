from decimal import Decimal

from signal_trader.risk.sizing import PositionSizer


def test_position_sizer_rounds_down_to_step() -> None:
    sizer = PositionSizer(risk_per_trade_pct=1.0)
    quantity = sizer.calculate_quantity(Decimal("1000"), Decimal("3"))
    assert quantity == Decimal("3.333")


def test_position_sizer_custom_step() -> None:
    sizer = PositionSizer(risk_per_trade_pct=2.0, quantity_step=0.1)
    quantity = sizer.calculate_quantity(Decimal("500"), Decimal("7"))
    # 2% of 500 = 10 -> 10 / 7 = 1.428...
    assert quantity == Decimal("1.4")


def test_position_sizer_rejects_non_positive_inputs() -> None:
    sizer = PositionSizer(risk_per_trade_pct=1.0)
    assert sizer.calculate_quantity(Decimal("0"), Decimal("10")) is None
    assert sizer.calculate_quantity(Decimal("100"), Decimal("0")) is None
    assert sizer.calculate_quantity(Decimal("-5"), Decimal("10")) is None


def test_position_sizer_zero_after_rounding() -> None:
    sizer = PositionSizer(risk_per_trade_pct=1.0)
    # 1% of 1 = 0.01 -> 0.01 / 60000 rounds down to zero
    assert sizer.calculate_quantity(Decimal("1"), Decimal("60000")) is None


def test_position_sizer_whole_quantity_keeps_step_exponent() -> None:
    sizer = PositionSizer(risk_per_trade_pct=1.0, quantity_step=0.001)
    # 1% of 1000 at 0.125 is exactly 80 units
    quantity = sizer.calculate_quantity(Decimal("1000"), Decimal("0.125"))
    assert str(quantity) == "80.000"
