"""
Cart and order totals.

All arithmetic uses Decimal; prices travel as fixed-point strings.
"""
from decimal import Decimal, ROUND_HALF_UP, InvalidOperation
from typing import Iterable, NamedTuple, Union

TAX_RATE = Decimal("0.085")  # NJ sales tax
CENT = Decimal("0.01")


class Totals(NamedTuple):
    subtotal: Decimal
    tax: Decimal
    total: Decimal


def to_decimal(value: Union[str, int, Decimal]) -> Decimal:
    if isinstance(value, float):
        raise TypeError("Money values must be strings or Decimals, not float")
    try:
        amount = Decimal(str(value).strip())
    except InvalidOperation:
        raise ValueError(f"Invalid money amount: {value!r}")
    if not amount.is_finite():
        raise ValueError(f"Invalid money amount: {value!r}")
    return amount


def format_money(value: Decimal) -> str:
    return str(Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP))


def _line_price_and_quantity(line):
    if isinstance(line, dict):
        return line["price"], line["quantity"]
    return line.price, line.quantity


def calculate_totals(lines: Iterable) -> Totals:
    """Exact subtotal, tax and total for lines carrying `price` and `quantity`.

    Lines may be dicts or objects. Nothing is rounded here; use
    `format_money` for display or `order_totals` for the persisted form.
    """
    subtotal = Decimal("0")
    for line in lines:
        price, quantity = _line_price_and_quantity(line)
        subtotal += to_decimal(price) * int(quantity)
    tax = subtotal * TAX_RATE
    return Totals(subtotal, tax, subtotal + tax)


def order_totals(lines: Iterable) -> dict:
    """Cent-rounded totals as stored on an order, with total == subtotal + tax."""
    exact = calculate_totals(lines)
    subtotal = exact.subtotal.quantize(CENT, rounding=ROUND_HALF_UP)
    tax = (subtotal * TAX_RATE).quantize(CENT, rounding=ROUND_HALF_UP)
    return {
        "subtotal": format_money(subtotal),
        "tax": format_money(tax),
        "total": format_money(subtotal + tax),
    }


def to_cents(value: Decimal) -> int:
    return int((Decimal(value) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
