import sys
import os

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))
import asyncio
import random
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

import pytest
from shopcore.async_ops import dashboard_snapshot_async, run_dashboard_snapshot
from shopcore.domain import Category, OrderLine, Product, ShippingAddress
from shopcore.inventory import InMemoryProductRepository
from shopcore.orders import OrderManager

ADDRESS = ShippingAddress("Jane Doe", "+100000", "1 Main St", "Springfield", "IL", "US")


class StepClock:
    def __init__(self):
        self.now = datetime(2025, 6, 20, 9, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now


@pytest.fixture
def shop_data():
    products = InMemoryProductRepository(
        (
            Product(id="p1", name="Phone", sku="S1", price=Decimal("60.00"), stock=20),
            Product(id="p2", name="Case", sku="S2", price=Decimal("10.00"), stock=6),
        )
    )
    clock = StepClock()
    manager = OrderManager(products, clock=clock, rng=random.Random(1))
    manager.create_order([OrderLine("p1", 1, Decimal("60.00"))], ADDRESS, "card")
    clock.now += timedelta(days=2)
    manager.create_order([OrderLine("p2", 3, Decimal("10.00"))], ADDRESS, "card")
    categories = (Category("c1", "Root"),)
    return products.list(), categories, manager.orders.all()


@pytest.mark.asyncio
async def test_dashboard_snapshot_async(shop_data):
    products, categories, orders = shop_data
    snapshot = await dashboard_snapshot_async(products, categories, orders)

    assert snapshot["stats"]["orders"]["total"] == 2
    assert snapshot["sales"]["total_revenue"] == Decimal("113.50")
    assert [row["product_id"] for row in snapshot["top_products"]] == ["p2", "p1"]
    assert [a["product_id"] for a in snapshot["inventory_alerts"]["low_stock"]] == ["p2"]
    # период по умолчанию — от первого до последнего дня с заказами
    assert list(snapshot["sales_by_day"]) == [
        date(2025, 6, 20),
        date(2025, 6, 21),
        date(2025, 6, 22),
    ]
    assert snapshot["sales_by_day"][date(2025, 6, 21)] == Decimal("0.00")


@pytest.mark.asyncio
async def test_snapshots_run_concurrently(shop_data):
    products, categories, orders = shop_data
    first, second = await asyncio.gather(
        dashboard_snapshot_async(products, categories, orders, k=1),
        dashboard_snapshot_async(
            products, categories, orders, period=(date(2025, 6, 22), date(2025, 6, 22))
        ),
    )
    assert len(first["top_products"]) == 1
    assert second["sales_by_day"] == {date(2025, 6, 22): Decimal("39.50")}


def test_run_dashboard_snapshot_empty():
    """Синхронная обёртка и пустые данные"""
    snapshot = run_dashboard_snapshot((), (), ())
    assert snapshot["sales_by_day"] == {}
    assert snapshot["sales"]["total_orders"] == 0
    assert snapshot["top_products"] == []
