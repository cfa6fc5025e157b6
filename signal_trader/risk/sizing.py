"""Position sizing utilities."""

from __future__ import annotations

from decimal import ROUND_DOWN, Decimal

from signal_trader.models import to_decimal


def _round_step(value: Decimal, step: Decimal) -> Decimal:
    if step <= 0:
        return value
    # quantize keeps the step exponent, so whole numbers never print as 8E+1
    return ((value / step).to_integral_value(rounding=ROUND_DOWN) * step).quantize(step)


class PositionSizer:
    """Size an entry as a fixed percentage of the available balance."""

    def __init__(self, risk_per_trade_pct: float, quantity_step: float = 0.001) -> None:
        self.risk_per_trade_pct = to_decimal(risk_per_trade_pct)
        self.quantity_step = to_decimal(quantity_step)

    def calculate_quantity(
        self,
        available_balance: Decimal,
        entry_price: Decimal,
    ) -> Decimal | None:
        if available_balance <= 0 or entry_price <= 0:
            return None
        risk_amount = available_balance * (self.risk_per_trade_pct / 100)
        quantity = _round_step(risk_amount / entry_price, self.quantity_step)
        if quantity <= 0:
            return None
        return quantity
