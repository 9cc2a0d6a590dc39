import sys
import os

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))
from datetime import date, datetime, timezone
from decimal import Decimal

import pytest
from Analytics_Service.report import (
    dashboard_stats,
    inventory_alerts,
    sales_by_day,
    sales_summary,
    top_products,
)
from shopcore.domain import Category, Order, OrderItem, Product, ShippingAddress

ADDRESS = ShippingAddress("A", "1", "Street", "City", "P", "US")


def make_order(oid, day, total, status="pending", items=()):
    ts = datetime(2025, 6, day, 10, 0, tzinfo=timezone.utc)
    return Order(
        id=oid,
        order_number=f"ORD-202506{day:02d}-{oid}",
        items=tuple(
            OrderItem(f"{oid}-{pid}", pid, name, f"SKU-{pid}", qty, Decimal(price), Decimal(price) * qty)
            for pid, name, qty, price in items
        ),
        subtotal=Decimal(total),
        discount=Decimal("0.00"),
        tax=Decimal("0.00"),
        shipping=Decimal("0.00"),
        total=Decimal(total),
        shipping_address=ADDRESS,
        payment_method="card",
        created_at=ts,
        updated_at=ts,
        status=status,
    )


@pytest.fixture
def sample_orders():
    return (
        make_order("o1", 1, "50.00", items=(("p1", "Phone", 2, "25.00"),)),
        make_order("o2", 1, "30.00", "delivered", items=(("p2", "Case", 3, "10.00"),)),
        make_order("o3", 3, "100.00", "cancelled", items=(("p2", "Case", 10, "10.00"),)),
        make_order("o4", 3, "20.00", "refunded", items=(("p1", "Phone", 1, "20.00"),)),
        make_order("o5", 3, "10.00", "shipped", items=(("p2", "Case", 1, "10.00"),)),
    )


@pytest.fixture
def sample_products():
    return (
        Product(id="p1", name="Phone", sku="S1", price=Decimal("25.00"), stock=0,
                created_at=datetime(2025, 1, 1, tzinfo=timezone.utc)),
        Product(id="p2", name="Case", sku="S2", price=Decimal("10.00"), stock=4,
                created_at=datetime(2025, 3, 1, tzinfo=timezone.utc)),
        Product(id="p3", name="Cable", sku="S3", price=Decimal("2.00"), stock=50, status="draft"),
        Product(id="p4", name="Charger", sku="S4", price=Decimal("15.00"), stock=9),
    )


def test_sales_summary(sample_orders):
    summary = sales_summary(sample_orders)
    assert summary["total_orders"] == 5
    assert summary["cancelled_orders"] == 1
    assert summary["refunded_orders"] == 1
    assert summary["total_revenue"] == Decimal("110.00")
    assert summary["total_refunded"] == Decimal("20.00")
    assert summary["net_revenue"] == Decimal("90.00")
    assert summary["average_order_value"] == Decimal("30.00")
    assert summary["status_breakdown"]["pending"] == 1


def test_sales_summary_refund_counted_once():
    """Возврат вычитается из выручки ровно один раз"""
    orders = (
        make_order("a", 1, "115.00", "delivered"),
        make_order("b", 2, "115.00", "refunded"),
    )
    summary = sales_summary(orders)
    assert summary["total_revenue"] == Decimal("230.00")
    assert summary["total_refunded"] == Decimal("115.00")
    assert summary["net_revenue"] == Decimal("115.00")
    assert summary["average_order_value"] == Decimal("115.00")


def test_sales_summary_empty():
    summary = sales_summary(())
    assert summary["total_orders"] == 0
    assert summary["average_order_value"] == Decimal("0.00")


def test_sales_by_day_fills_gaps(sample_orders):
    result = sales_by_day(sample_orders, date(2025, 6, 1), date(2025, 6, 3))
    assert result == {
        date(2025, 6, 1): Decimal("80.00"),
        date(2025, 6, 2): Decimal("0.00"),
        date(2025, 6, 3): Decimal("10.00"),
    }
    assert sales_by_day(sample_orders, date(2025, 6, 3), date(2025, 6, 1)) == {}


def test_top_products_ignores_cancelled_and_refunded(sample_orders):
    top = top_products(sample_orders, k=5)
    assert [row["product_id"] for row in top] == ["p2", "p1"]
    assert top[0]["quantity_sold"] == 4
    assert top[0]["revenue"] == Decimal("40.00")
    assert top[1]["quantity_sold"] == 2
    assert len(top_products(sample_orders, k=1)) == 1


def test_inventory_alerts_sorted_by_stock(sample_products):
    alerts = inventory_alerts(sample_products, threshold=10)
    assert [a["product_id"] for a in alerts["out_of_stock"]] == ["p1"]
    assert [a["product_id"] for a in alerts["low_stock"]] == ["p2", "p4"]


def test_dashboard_stats(sample_products, sample_orders):
    cats = (Category("c1", "Root"), Category("c2", "Old", status="inactive"))
    stats = dashboard_stats(sample_products, cats, sample_orders)
    assert stats["products"]["total"] == 4
    assert stats["products"]["published"] == 3
    assert stats["products"]["draft"] == 1
    assert stats["products"]["out_of_stock"] == 1
    assert stats["products"]["low_stock"] == 2
    assert stats["inventory_value"] == Decimal("275.00")
    assert stats["categories"] == {"total": 2, "active": 1}
    assert stats["orders"]["total"] == 5
    assert stats["orders"]["pending"] == 1
    assert stats["revenue"] == Decimal("90.00")
    assert stats["recent_products"] == ["p2", "p1"]
