"""
Хранилище товаров и складских остатков.

Менеджеры корзины и заказов получают его через конструктор; в тестах
и демо-приложении используется InMemoryProductRepository.
"""

from __future__ import annotations

import threading
from dataclasses import replace
from typing import Dict, Iterable, Mapping, Protocol, Tuple

import structlog

from .domain import Product
from .errors import (
    DuplicateSku,
    InsufficientStock,
    InvalidStockQuantity,
    ProductNotFound,
    ProductUnavailable,
)
from .ftypes import Maybe

logger = structlog.get_logger(__name__)


class ProductRepository(Protocol):
    def get(self, product_id: str) -> Maybe[Product]:
        ...

    def get_by_sku(self, sku: str) -> Maybe[Product]:
        ...

    def set_stock(self, product_id: str, quantity: int) -> Maybe[Product]:
        ...

    def reserve(self, quantities: Mapping[str, int]) -> Tuple[Product, ...]:
        ...

    def release(self, quantities: Mapping[str, int]) -> Tuple[Product, ...]:
        ...


class InMemoryProductRepository:
    """
    Товары в словаре по id. Все изменения остатков идут под одной блокировкой,
    поэтому два заказа на последнюю единицу товара не могут пройти оба.
    """

    def __init__(self, products: Iterable[Product] = ()):
        self._products: Dict[str, Product] = {}
        self._lock = threading.RLock()
        for product in products:
            self.add(product)

    def add(self, product: Product) -> Product:
        with self._lock:
            clash = self.get_by_sku(product.sku)
            if clash.is_some() and clash.value.id != product.id:
                raise DuplicateSku(product.sku)
            if product.stock < 0:
                raise InvalidStockQuantity(product.id, product.stock)
            self._products[product.id] = product
            return product

    def get(self, product_id: str) -> Maybe[Product]:
        return Maybe.of(self._products.get(product_id))

    def get_by_sku(self, sku: str) -> Maybe[Product]:
        return Maybe.of(next((p for p in self._products.values() if p.sku == sku), None))

    def list(self) -> Tuple[Product, ...]:
        return tuple(self._products.values())

    def set_stock(self, product_id: str, quantity: int) -> Maybe[Product]:
        """Ничего не подрезает: отрицательный остаток — ошибка вызывающего"""
        if quantity < 0:
            raise InvalidStockQuantity(product_id, quantity)
        with self._lock:
            current = self._products.get(product_id)
            if current is None:
                return Maybe.nothing()
            updated = replace(current, stock=quantity)
            self._products[product_id] = updated
            return Maybe.some(updated)

    def reserve(self, quantities: Mapping[str, int]) -> Tuple[Product, ...]:
        """
        Списывает остатки по всем позициям или не списывает ничего.
        Сначала проверяются все товары, затем фиксируются все списания.
        """
        with self._lock:
            for product_id, qty in quantities.items():
                product = self.get(product_id).get_or_raise(
                    lambda: ProductNotFound(product_id)
                )
                if product.stock < qty:
                    raise InsufficientStock(product_id, qty, product.stock)

            updated = tuple(
                self.set_stock(pid, self._products[pid].stock - qty).value
                for pid, qty in quantities.items()
            )
            logger.debug("stock_reserved", quantities=dict(quantities))
            return updated

    def release(self, quantities: Mapping[str, int]) -> Tuple[Product, ...]:
        """Возвращает остатки на склад (отмена или полный возврат заказа)"""
        with self._lock:
            released = []
            for product_id, qty in quantities.items():
                current = self._products.get(product_id)
                if current is None:
                    # товар удалён после заказа — возвращать некуда
                    logger.warning("stock_release_skipped", product_id=product_id, quantity=qty)
                    continue
                released.append(self.set_stock(product_id, current.stock + qty).value)
            logger.debug("stock_released", quantities=dict(quantities))
            return tuple(released)

    def remove(self, product_id: str) -> None:
        with self._lock:
            self._products.pop(product_id, None)


def merge_quantities(pairs: Iterable[Tuple[str, int]]) -> Dict[str, int]:
    """Суммирует количества по товару: одна позиция на товар при резервировании"""
    merged: Dict[str, int] = {}
    for product_id, qty in pairs:
        merged[product_id] = merged.get(product_id, 0) + qty
    return merged


def check_purchasable(products: ProductRepository, product_id: str, quantity: int) -> Product:
    """Товар существует, опубликован и есть в нужном количестве — иначе исключение"""
    product = products.get(product_id).get_or_raise(lambda: ProductNotFound(product_id))
    if product.status != "published":
        raise ProductUnavailable(product_id, product.status)
    if product.stock < quantity:
        raise InsufficientStock(product_id, quantity, product.stock)
    return product
