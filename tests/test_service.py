import sys
import os

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))
from decimal import Decimal

import pytest
from shopcore.domain import ShippingAddress
from shopcore.errors import CheckoutBlocked, EmptyOrder
from shopcore.events import EventBus, SalesFeed
from shopcore.pricing import DiscountRule, StaticDiscountPolicy
from shopcore.service import Storefront
from shopcore.transforms import by_price_range, load_seed

SEED = os.path.join(os.path.dirname(__file__), "..", "data", "seed.json")

ADDRESS = ShippingAddress("Jane Doe", "+100000", "1 Main St", "Springfield", "IL", "US")


@pytest.fixture
def shop():
    return Storefront.from_seed(SEED)


def test_load_seed():
    """Проверка загрузки данных из seed.json"""
    categories, products = load_seed(SEED)
    assert len(categories) == 7
    assert len(products) == 10
    assert isinstance(products[0].price, Decimal)
    assert products[0].created_at.tzinfo is not None


def test_products_by_category_subtree(shop):
    ids = {p.id for p in shop.catalog.products_by_category("c1")}
    # черновик p6 не показывается
    assert ids == {"p1", "p2", "p3", "p4", "p5"}


def test_filter_products(shop):
    cheap = shop.catalog.filter_products(by_price_range(Decimal("0"), Decimal("30")))
    assert {p.id for p in cheap} == {"p3", "p4", "p10"}


def test_checkout_creates_order_and_clears_cart(shop):
    shop.carts.add_item("s1", "p3", 2)
    shop.carts.apply_discount("s1", "FLAT5")

    order = shop.checkout("s1", ADDRESS, "card")
    assert order.subtotal == Decimal("39.98")
    assert order.discount == Decimal("5.00")
    assert order.discount_code == "FLAT5"
    assert order.tax == Decimal("6.00")
    assert order.shipping == Decimal("5.00")
    assert order.total == Decimal("45.98")

    assert shop.inventory.get("p3").value.stock == 78
    cart = shop.carts.get_or_create("s1")
    assert cart.items == ()
    assert cart.discount_code is None


def test_checkout_empty_cart(shop):
    with pytest.raises(EmptyOrder):
        shop.checkout("s1", ADDRESS, "card")


def test_checkout_blocked_by_stock(shop):
    shop.carts.add_item("s1", "p2", 3)
    shop.inventory.set_stock("p2", 1)

    with pytest.raises(CheckoutBlocked) as exc:
        shop.checkout("s1", ADDRESS, "card")
    assert exc.value.errors == ("Only 1 items of Budget Phone available in stock",)
    assert shop.inventory.get("p2").value.stock == 1
    assert len(shop.carts.get_or_create("s1").items) == 1
    assert shop.orders.orders.all() == ()


def test_checkout_drops_degraded_code():
    policy = StaticDiscountPolicy(
        {"BIG": DiscountRule("percentage", Decimal("10"), min_subtotal=Decimal("100"))}
    )
    shop = Storefront.from_seed(SEED, discounts=policy)
    cart = shop.carts.add_item("s1", "p3", 6)
    shop.carts.apply_discount("s1", "BIG")
    shop.carts.update_item("s1", cart.items[0].id, 1)

    order = shop.checkout("s1", ADDRESS, "card")
    assert order.discount == Decimal("0.00")
    assert order.discount_code is None


def test_checkout_for_user_publishes_sale():
    feed = SalesFeed()
    shop = Storefront.from_seed(SEED, events=feed.attach(EventBus()))
    shop.carts.add_item("guest", "p1", 1)
    shop.carts.merge_carts("guest", "u1")

    order = shop.checkout("other-session", ADDRESS, "card", user_id="u1", notes="leave at door")
    assert order.user_id == "u1"
    assert order.notes == "leave at door"
    assert order.shipping == Decimal("0.00")
    assert feed.state["total_revenue"] == order.total
