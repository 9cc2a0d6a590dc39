from datetime import date
from itertools import islice
from typing import Iterable, Iterator, TypeVar

from .domain import Order

T = TypeVar("T")


## ленивый генератор заказов, созданных в указанный день
def iter_orders_by_day(orders: Iterable[Order], day: date) -> Iterator[Order]:
    for order in orders:
        if order.created_at.date() == day:
            yield order


## одна страница из последовательности, нумерация страниц с 1
def iter_page(items: Iterable[T], page: int, limit: int) -> Iterator[T]:
    start = (max(page, 1) - 1) * limit
    return islice(items, start, start + limit)
