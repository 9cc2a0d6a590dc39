import sys
import os

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))
from decimal import Decimal

import pytest
from shopcore import pricing
from shopcore.pricing import DiscountRule, StaticDiscountPolicy


def test_round2_half_up():
    assert pricing.round2("2.345") == Decimal("2.35")
    assert pricing.round2(0.1 + 0.2) == Decimal("0.30")


def test_item_subtotal():
    assert pricing.item_subtotal(Decimal("10.99"), 2) == Decimal("21.98")
    assert pricing.item_subtotal(Decimal("10.00"), 3, discount_percent=10) == Decimal("27.00")


def test_tax_default_rate():
    assert pricing.tax(100) == Decimal("15.00")
    assert pricing.tax(90) == Decimal("13.50")
    assert pricing.tax(Decimal("33.33")) == Decimal("5.00")


def test_shipping_threshold():
    """Бесплатная доставка начиная с порога включительно"""
    assert pricing.shipping(100) == Decimal("0.00")
    assert pricing.shipping(Decimal("99.99")) == Decimal("5.00")
    assert pricing.shipping(50, flat_rate=7) == Decimal("7.00")


def test_total_rounds_each_term():
    assert pricing.total(100, 10, Decimal("13.50"), 0) == Decimal("103.50")


@pytest.mark.parametrize(
    "code,subtotal,expected",
    [
        ("SAVE10", 100, Decimal("10.00")),
        ("save20", 50, Decimal("10.00")),
        ("FLAT5", 100, Decimal("5")),
        (" flat10 ", 3, Decimal("10")),
    ],
)
def test_validate_discount_code_known(code, subtotal, expected):
    result = pricing.validate_discount_code(code, subtotal)
    assert result.valid
    assert result.discount == expected
    assert result.message == "Discount applied successfully"


def test_validate_discount_code_unknown():
    result = pricing.validate_discount_code("BOGUS", 100)
    assert not result.valid
    assert result.discount == Decimal("0.00")
    assert result.message == "Invalid discount code"


def test_injected_policy_with_minimum():
    policy = StaticDiscountPolicy(
        {"BIG": DiscountRule("percentage", Decimal("50"), min_subtotal=Decimal("200"))}
    )
    assert not pricing.validate_discount_code("BIG", 100, policy).valid
    assert pricing.validate_discount_code("BIG", 200, policy).discount == Decimal("100.00")
    # стандартные коды в чужой политике не действуют
    assert not pricing.validate_discount_code("SAVE10", 100, policy).valid


def test_clamp_discount():
    assert pricing.clamp_discount(10, 3) == Decimal("3.00")
    assert pricing.clamp_discount(5, 100) == Decimal("5.00")


def test_format_currency():
    assert pricing.format_currency(Decimal("1234.5")) == "$1,234.50"
    assert pricing.format_currency(-3, "EUR") == "-€3.00"
    assert pricing.format_currency(7, "KZT") == "7.00 KZT"
