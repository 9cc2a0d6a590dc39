import sys
import os

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))
from datetime import timedelta
from decimal import Decimal

import pytest
import structlog

from shopcore.carts import CartManager
from shopcore.config import ShopSettings, configure_logging
from shopcore.domain import Product
from shopcore.inventory import InMemoryProductRepository


def test_defaults():
    settings = ShopSettings()
    assert settings.tax_rate == Decimal("15")
    assert settings.free_shipping_threshold == Decimal("100")
    assert settings.cart_ttl == timedelta(days=7)
    assert settings.currency == "USD"


def test_from_env(monkeypatch):
    monkeypatch.setenv("SHOP_TAX_RATE", "20")
    monkeypatch.setenv("SHOP_CART_TTL_DAYS", "1")
    monkeypatch.setenv("SHOP_LOG_LEVEL", "debug")
    settings = ShopSettings.from_env()
    assert settings.tax_rate == Decimal("20")
    assert settings.cart_ttl == timedelta(days=1)
    assert settings.log_level == "DEBUG"
    assert settings.flat_shipping == Decimal("5")


def test_settings_flow_into_cart_totals():
    products = InMemoryProductRepository(
        (Product(id="p1", name="Widget", sku="W", price=Decimal("10.00"), stock=5),)
    )
    settings = ShopSettings(tax_rate=Decimal("20"), flat_shipping=Decimal("7"), currency="EUR")
    cart = CartManager(products, settings=settings).add_item("s1", "p1", 1)
    assert cart.tax == Decimal("2.00")
    assert cart.shipping == Decimal("7.00")
    assert cart.total == Decimal("19.00")
    assert cart.currency == "EUR"


@pytest.fixture
def restore_logging():
    yield
    structlog.reset_defaults()


def test_configure_logging_accepts_level(restore_logging):
    configure_logging("WARNING")
    configure_logging("debug")
