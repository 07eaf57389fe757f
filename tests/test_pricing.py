import pytest

from pricing import price_summary, round_half_up, shipping_for, tax_for


@pytest.mark.parametrize("subtotal, tax, shipping, total", [
    (1000, 180, 0, 1180),
    (300, 54, 50, 404),
    (2000, 360, 0, 2360),
])
def test_price_summary(subtotal, tax, shipping, total):
    summary = price_summary(subtotal)
    assert summary == {"subtotal": subtotal, "tax": tax, "shipping": shipping, "total": total}


def test_free_shipping_needs_strictly_more_than_threshold():
    assert shipping_for(500) == 50
    assert shipping_for(500.01) == 0


def test_tax_rounds_half_up():
    # 25 * 0.18 = 4.5; banker's rounding would give 4
    assert tax_for(25) == 5
    assert tax_for(2.5) == 0
    assert tax_for(1234.5) == 222


def test_round_half_up_of_float_input():
    assert round_half_up(0.5) == 1
    assert round_half_up(2.5) == 3
    assert round_half_up(2.49) == 2


def test_empty_cart_still_charges_shipping():
    assert price_summary(0) == {"subtotal": 0, "tax": 0, "shipping": 50, "total": 50}
