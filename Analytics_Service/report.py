from datetime import date, timedelta
from decimal import Decimal
from functools import partial, reduce
from typing import Dict, Iterable, List, Tuple

from shopcore.compose import pipe
from shopcore.domain import ZERO, Category, Order, Product
from shopcore.lazy import iter_orders_by_day
from shopcore.pricing import round2
from shopcore.transforms import by_product_status, by_status, revenue_bearing


def _sum_totals(orders: Iterable[Order]) -> Decimal:
    return round2(reduce(lambda acc, o: acc + o.total, orders, ZERO))


# выручка учитывает только неотменённые и невозвращённые заказы
revenue_of = pipe(partial(filter, revenue_bearing()), _sum_totals)


def _count_by(attr: str, items: Iterable) -> Dict[str, int]:
    def accumulate(acc: dict, item) -> dict:
        key = getattr(item, attr)
        return {**acc, key: acc.get(key, 0) + 1}

    return reduce(accumulate, items, {})


# ============ Отчёты по продажам ============


def sales_summary(orders: Tuple[Order, ...]) -> dict:
    """
    Сводка по продажам.
    Валовая выручка включает возвращённые заказы, чистая — за вычетом возвратов.
    """
    sold = tuple(filter(lambda o: o.status != "cancelled", orders))
    bearing = tuple(filter(revenue_bearing(), orders))
    refunded = tuple(filter(by_status("refunded"), orders))

    gross = _sum_totals(sold)
    total_refunded = _sum_totals(refunded)
    net = round2(gross - total_refunded)

    return {
        "total_orders": len(orders),
        "status_breakdown": _count_by("status", orders),
        "cancelled_orders": len(tuple(filter(by_status("cancelled"), orders))),
        "refunded_orders": len(refunded),
        "total_revenue": gross,
        "total_refunded": total_refunded,
        "net_revenue": net,
        "average_order_value": round2(net / len(bearing)) if bearing else ZERO,
    }


def sales_by_day(orders: Tuple[Order, ...], start: date, end: date) -> Dict[date, Decimal]:
    """
    Выручка по дням за период (границы включительно).
    Дни без продаж присутствуют с нулём.
    """
    if end < start:
        return {}
    days = [start + timedelta(days=n) for n in range((end - start).days + 1)]
    return {day: revenue_of(iter_orders_by_day(orders, day)) for day in days}


# ============ Отчёты по товарам ============


def top_products(orders: Tuple[Order, ...], k: int = 10) -> List[dict]:
    """
    Топ-K товаров по проданному количеству.
    Данные берутся из снимков позиций, поэтому удалённые товары тоже попадают в отчёт.
    """

    def accumulate(acc: dict, order: Order) -> dict:
        def add_item(inner: dict, item) -> dict:
            qty, revenue, name = inner.get(item.product_id, (0, ZERO, item.product_name))
            return {
                **inner,
                item.product_id: (qty + item.quantity, revenue + item.subtotal, name),
            }

        return reduce(add_item, order.items, acc)

    sold = reduce(accumulate, filter(revenue_bearing(), orders), {})
    top_ids = sorted(sold, key=lambda pid: sold[pid][0], reverse=True)[:k]

    return [
        {
            "product_id": pid,
            "product_name": sold[pid][2],
            "quantity_sold": sold[pid][0],
            "revenue": round2(sold[pid][1]),
        }
        for pid in top_ids
    ]


def inventory_alerts(products: Tuple[Product, ...], threshold: int = 10) -> dict:
    """Товары без остатка и с остатком ниже порога, по возрастанию остатка"""
    by_stock = sorted(products, key=lambda p: p.stock)

    def brief(p: Product) -> dict:
        return {"product_id": p.id, "name": p.name, "sku": p.sku, "stock": p.stock}

    return {
        "out_of_stock": [brief(p) for p in by_stock if p.stock == 0],
        "low_stock": [brief(p) for p in by_stock if 0 < p.stock <= threshold],
    }


# ============ Дашборд ============


def dashboard_stats(
    products: Tuple[Product, ...],
    categories: Tuple[Category, ...],
    orders: Tuple[Order, ...],
    low_stock_threshold: int = 10,
) -> dict:
    """
    Счётчики для админ-панели: товары, склад, категории, заказы, выручка
    """
    inventory_value = round2(
        reduce(lambda acc, p: acc + p.price * p.stock, products, Decimal("0"))
    )
    recent = sorted(
        filter(lambda p: p.created_at is not None, products),
        key=lambda p: p.created_at,
        reverse=True,
    )[:5]

    return {
        "products": {
            "total": len(products),
            "published": len(tuple(filter(by_product_status("published"), products))),
            "draft": len(tuple(filter(by_product_status("draft"), products))),
            "archived": len(tuple(filter(by_product_status("archived"), products))),
            "low_stock": sum(1 for p in products if 0 < p.stock <= low_stock_threshold),
            "out_of_stock": sum(1 for p in products if p.stock == 0),
        },
        "inventory_value": inventory_value,
        "categories": {
            "total": len(categories),
            "active": sum(1 for c in categories if c.status == "active"),
        },
        "orders": {
            "total": len(orders),
            "pending": len(tuple(filter(by_status("pending"), orders))),
            "status_breakdown": _count_by("status", orders),
        },
        "revenue": revenue_of(orders),
        "recent_products": [p.id for p in recent],
    }
