import json
from datetime import datetime
from decimal import Decimal
from typing import Callable, Optional, Tuple

from .domain import Category, Order, Product


def load_seed(path: str) -> Tuple[Tuple[Category, ...], Tuple[Product, ...]]:
    """Загружает seed.json: категории и товары каталога (цены — строки в долларах)"""
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)

    categories = tuple(map(lambda c: Category(**c), data.get("categories", [])))

    def _to_product(p: dict) -> Product:
        p2 = dict(p)
        p2["price"] = Decimal(str(p2["price"]))
        p2["stock"] = int(p2.get("stock", 0))
        if p2.get("created_at"):
            p2["created_at"] = datetime.fromisoformat(p2["created_at"])
        return Product(**p2)

    products = tuple(map(_to_product, data.get("products", [])))
    return categories, products


# ============ Замыкания-фильтры товаров ============


def by_price_range(min_price: Decimal, max_price: Decimal) -> Callable[[Product], bool]:
    return lambda p: min_price <= p.price <= max_price


def by_product_status(status: str) -> Callable[[Product], bool]:
    return lambda p: p.status == status


def in_stock() -> Callable[[Product], bool]:
    return lambda p: p.stock > 0


# ============ Замыкания-фильтры заказов ============


def by_user(user_id: str) -> Callable[[Order], bool]:
    return lambda o: o.user_id == user_id


def by_status(status: str) -> Callable[[Order], bool]:
    return lambda o: o.status == status


def by_payment_status(payment_status: str) -> Callable[[Order], bool]:
    return lambda o: o.payment_status == payment_status


def created_between(
    start: Optional[datetime] = None, end: Optional[datetime] = None
) -> Callable[[Order], bool]:
    """Границы включительно; отсутствующая граница не ограничивает"""
    return lambda o: (start is None or o.created_at >= start) and (
        end is None or o.created_at <= end
    )


def revenue_bearing() -> Callable[[Order], bool]:
    """Заказы, приносящие выручку: не отменённые и не возвращённые"""
    return lambda o: o.status not in ("cancelled", "refunded")
