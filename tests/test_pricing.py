from decimal import Decimal

import pytest

from pricing import calculate_totals, format_money, order_totals, to_cents


def test_subtotal_single_item():
    totals = calculate_totals([{"price": "29.99", "quantity": 2}])
    assert totals.subtotal == Decimal("59.98")


def test_subtotal_multiple_items():
    totals = calculate_totals([
        {"price": "29.99", "quantity": 2},
        {"price": "24.99", "quantity": 1},
        {"price": "34.99", "quantity": 3},
    ])
    assert totals.subtotal == Decimal("189.93")


def test_empty_cart_is_zero():
    totals = calculate_totals([])
    assert totals.subtotal == 0
    assert totals.tax == 0
    assert totals.total == 0


def test_tax_rate():
    totals = calculate_totals([{"price": "100.00", "quantity": 1}])
    assert totals.tax == Decimal("8.5")
    assert format_money(totals.tax) == "8.50"
    assert format_money(totals.total) == "108.50"


@pytest.mark.parametrize("subtotal,expected_tax", [
    ("50.00", "4.25"),
    ("99.99", "8.50"),
    ("200.00", "17.00"),
    ("31.00", "2.64"),
])
def test_tax_for_various_subtotals(subtotal, expected_tax):
    totals = calculate_totals([{"price": subtotal, "quantity": 1}])
    assert format_money(totals.tax) == expected_tax


def test_total_is_exact_sum():
    totals = calculate_totals([{"price": "29.99", "quantity": 1}])
    assert totals.tax == Decimal("2.54915")
    assert totals.total == totals.subtotal + totals.tax
    assert format_money(totals.total) == "32.54"


def test_many_small_lines_do_not_drift():
    totals = calculate_totals([{"price": "0.10", "quantity": 1}] * 1000)
    assert totals.subtotal == Decimal("100.00")


def test_order_totals_are_consistent_in_cents():
    totals = order_totals([{"price": "29.99", "quantity": 1}])
    assert totals == {"subtotal": "29.99", "tax": "2.55", "total": "32.54"}
    assert Decimal(totals["total"]) == Decimal(totals["subtotal"]) + Decimal(totals["tax"])


def test_order_totals_for_two_shirts():
    assert order_totals([{"price": "29.99", "quantity": 2}]) == {
        "subtotal": "59.98",
        "tax": "5.10",
        "total": "65.08",
    }


def test_float_prices_rejected():
    with pytest.raises(TypeError):
        calculate_totals([{"price": 29.99, "quantity": 1}])


def test_invalid_price_rejected():
    with pytest.raises(ValueError):
        calculate_totals([{"price": "abc", "quantity": 1}])


def test_to_cents():
    assert to_cents(Decimal("32.53915")) == 3254
    assert to_cents(Decimal("0")) == 0
