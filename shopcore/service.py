from datetime import datetime
from typing import Callable, Iterable, Optional, Tuple

import structlog

from . import pricing
from .carts import CartManager, CartRepository, utcnow
from .catalog import CategoryStore
from .config import ShopSettings
from .domain import Category, Order, OrderLine, Product, ShippingAddress
from .errors import CheckoutBlocked, EmptyOrder
from .events import EventBus
from .inventory import InMemoryProductRepository
from .orders import OrderManager, OrderRepository
from .payments import PaymentGateway
from .transforms import by_product_status, load_seed

logger = structlog.get_logger(__name__)


class CatalogService:
    """Фасад для работы с каталогом"""

    def __init__(self, categories: CategoryStore, inventory: InMemoryProductRepository):
        self.categories = categories
        self.inventory = inventory

    def products_by_category(self, root_id: str) -> Tuple[Product, ...]:
        """Опубликованные товары категории и её подкатегорий"""
        return tuple(
            filter(
                by_product_status("published"),
                self.categories.products_in(root_id, self.inventory.list()),
            )
        )

    def filter_products(self, predicate) -> Tuple[Product, ...]:
        return tuple(filter(predicate, self.inventory.list()))


class Storefront:
    """
    Сборка хранилищ и менеджеров в одно приложение.
    Корзина и заказ не делят изменяемое состояние: оформление копирует
    позиции корзины в снимок заказа и очищает корзину.
    """

    def __init__(
        self,
        products: Optional[InMemoryProductRepository] = None,
        categories: Iterable[Category] = (),
        carts: Optional[CartRepository] = None,
        orders: Optional[OrderRepository] = None,
        payments: Optional[PaymentGateway] = None,
        events: Optional[EventBus] = None,
        discounts: pricing.DiscountPolicy = pricing.DEFAULT_DISCOUNT_POLICY,
        settings: Optional[ShopSettings] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.settings = settings or ShopSettings()
        self.inventory = products if products is not None else InMemoryProductRepository()
        self.categories = CategoryStore(categories)
        self.catalog = CatalogService(self.categories, self.inventory)
        self.carts = CartManager(
            self.inventory, carts, discounts=discounts, settings=self.settings, clock=clock
        )
        self.orders = OrderManager(
            self.inventory,
            orders,
            payments=payments,
            events=events,
            discounts=discounts,
            settings=self.settings,
            clock=clock,
        )

    @classmethod
    def from_seed(cls, path: str, **kwargs) -> "Storefront":
        categories, products = load_seed(path)
        return cls(products=InMemoryProductRepository(products), categories=categories, **kwargs)

    def checkout(
        self,
        session_id: str,
        shipping_address: ShippingAddress,
        payment_method: str,
        user_id: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> Order:
        """
        Проверка остатков -> заказ по ценам корзины -> очистка корзины.
        Код скидки переносится только если он реально даёт скидку.
        """
        cart = self.carts.get_or_create(session_id, user_id)
        if not cart.items:
            raise EmptyOrder()

        validation = self.carts.validate_stock(cart)
        if not validation.valid:
            raise CheckoutBlocked(validation.errors)

        lines = tuple(OrderLine(i.product_id, i.quantity, i.price) for i in cart.items)
        code = cart.discount_code if cart.discount > 0 else None
        order = self.orders.create_order(
            lines,
            shipping_address,
            payment_method,
            user_id=user_id or cart.user_id,
            discount_code=code,
            notes=notes,
        )
        self.carts.clear_cart(session_id, user_id)
        logger.info("checkout_completed", cart_id=cart.id, order_id=order.id)
        return order
