# app/domain/pricing.py
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable

from app.domain.errors import InvalidQuantity

CENTS = Decimal("0.01")
ZERO = Decimal("0.00")


def validate_quantity(quantity) -> int:
    # bool to podklasa int, ale True nie jest iloscia
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise InvalidQuantity(quantity)
    return quantity


def to_money(value) -> Decimal:
    """Zamienia cene (str/int/float/Decimal) na Decimal z dokladnoscia do groszy."""
    if isinstance(value, float):
        value = str(value)
    return Decimal(value).quantize(CENTS, rounding=ROUND_HALF_UP)


def line_total(quantity: int, unit_price: Decimal) -> Decimal:
    return to_money(unit_price * quantity)


def cart_total(line_totals: Iterable[Decimal]) -> Decimal:
    return sum(line_totals, ZERO)
