"""
Менеджер корзин: позиции, скидочный код, пересчёт итогов,
слияние гостевой корзины с корзиной пользователя и "отложенные" товары.

Итоги корзины никогда не хранятся отдельно от позиций: после каждой
мутации вызывается recalculate, который выводит их из текущего списка.
"""

from __future__ import annotations

import threading
import uuid
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from decimal import Decimal
from functools import reduce
from typing import Callable, Dict, List, Optional, Protocol, Tuple

import structlog

from . import pricing
from .config import ShopSettings
from .domain import ZERO, Cart, CartItem, SavedItem
from .errors import (
    CartItemNotFound,
    InvalidDiscountCode,
    ProductNotFound,
    InsufficientStock,
    SavedItemNotFound,
    UserRequired,
)
from .ftypes import Either, lefts
from .inventory import ProductRepository, check_purchasable
from .sync import synchronized

logger = structlog.get_logger(__name__)

UNSET = object()


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class StockValidation:
    valid: bool
    errors: Tuple[str, ...]


@dataclass(frozen=True)
class CartSummary:
    item_count: int
    line_count: int
    subtotal: Decimal
    discount: Decimal
    tax: Decimal
    shipping: Decimal
    total: Decimal
    currency: str
    discount_code: Optional[str] = None


# ============ Хранилище корзин ============


class CartRepository(Protocol):
    def get(self, cart_id: str) -> Optional[Cart]:
        ...

    def find_by_user(self, user_id: str) -> Optional[Cart]:
        ...

    def find_by_session(self, session_id: str, guests_only: bool = False) -> Optional[Cart]:
        ...

    def save(self, cart: Cart) -> Cart:
        ...

    def delete(self, cart_id: str) -> None:
        ...

    def all(self) -> Tuple[Cart, ...]:
        ...

    def saved_items(self, user_id: str) -> Tuple[SavedItem, ...]:
        ...

    def set_saved_items(self, user_id: str, items: Tuple[SavedItem, ...]) -> None:
        ...


class InMemoryCartRepository:
    def __init__(self):
        self._carts: Dict[str, Cart] = {}
        self._saved: Dict[str, Tuple[SavedItem, ...]] = {}

    def get(self, cart_id: str) -> Optional[Cart]:
        return self._carts.get(cart_id)

    def find_by_user(self, user_id: str) -> Optional[Cart]:
        return next((c for c in self._carts.values() if c.user_id == user_id), None)

    def find_by_session(self, session_id: str, guests_only: bool = False) -> Optional[Cart]:
        return next(
            (
                c
                for c in self._carts.values()
                if c.session_id == session_id and not (guests_only and c.user_id)
            ),
            None,
        )

    def save(self, cart: Cart) -> Cart:
        self._carts[cart.id] = cart
        return cart

    def delete(self, cart_id: str) -> None:
        self._carts.pop(cart_id, None)

    def all(self) -> Tuple[Cart, ...]:
        return tuple(self._carts.values())

    def saved_items(self, user_id: str) -> Tuple[SavedItem, ...]:
        return self._saved.get(user_id, ())

    def set_saved_items(self, user_id: str, items: Tuple[SavedItem, ...]) -> None:
        self._saved[user_id] = items


# ============ Менеджер ============


class CartManager:
    def __init__(
        self,
        products: ProductRepository,
        carts: Optional[CartRepository] = None,
        discounts: pricing.DiscountPolicy = pricing.DEFAULT_DISCOUNT_POLICY,
        settings: Optional[ShopSettings] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.products = products
        self.carts = carts if carts is not None else InMemoryCartRepository()
        self.discounts = discounts
        self.settings = settings or ShopSettings()
        self.clock = clock
        self._lock = threading.RLock()

    # ---------- поиск и создание ----------

    def _is_expired(self, cart: Cart) -> bool:
        return cart.expires_at is not None and cart.expires_at <= self.clock()

    def _live(self, cart: Optional[Cart]) -> Optional[Cart]:
        """Ленивая проверка срока жизни: просроченная корзина удаляется при чтении"""
        if cart is not None and self._is_expired(cart):
            logger.info("cart_expired", cart_id=cart.id, session_id=cart.session_id)
            self.carts.delete(cart.id)
            return None
        return cart

    def find(self, session_id: str, user_id: Optional[str] = None) -> Optional[Cart]:
        """Корзина пользователя приоритетнее; иначе — корзина сессии"""
        if user_id:
            cart = self._live(self.carts.find_by_user(user_id))
            if cart is not None:
                return cart
        return self._live(self.carts.find_by_session(session_id))

    @synchronized
    def get_or_create(self, session_id: str, user_id: Optional[str] = None) -> Cart:
        cart = self.find(session_id, user_id)
        if cart is not None:
            return cart
        return self.carts.save(self._new_cart(session_id, user_id))

    def _new_cart(self, session_id: str, user_id: Optional[str]) -> Cart:
        now = self.clock()
        cart = Cart(
            id=str(uuid.uuid4()),
            session_id=session_id,
            user_id=user_id or None,
            currency=self.settings.currency,
            created_at=now,
            updated_at=now,
            expires_at=now + self.settings.cart_ttl,
        )
        logger.debug("cart_created", cart_id=cart.id, session_id=session_id, user_id=user_id)
        return cart

    # ---------- пересчёт ----------

    def recalculate(self, cart: Cart) -> Cart:
        """
        Итоги из позиций: subtotal = сумма подытогов строк; код скидки
        перепроверяется против нового subtotal и при несоответствии тихо даёт 0;
        налог и доставка считаются от (subtotal - discount).
        Пустая корзина целиком нулевая.
        """
        subtotal = pricing.round2(reduce(lambda acc, i: acc + i.subtotal, cart.items, ZERO))

        discount = ZERO
        if cart.discount_code:
            result = pricing.validate_discount_code(cart.discount_code, subtotal, self.discounts)
            if result.valid:
                discount = pricing.clamp_discount(result.discount, subtotal)
            else:
                logger.info(
                    "discount_degraded",
                    cart_id=cart.id,
                    code=cart.discount_code,
                    reason=result.message,
                )

        discounted = subtotal - discount
        tax_amount = pricing.tax(discounted, self.settings.tax_rate)
        if cart.items:
            shipping_fee = pricing.shipping(
                discounted, self.settings.flat_shipping, self.settings.free_shipping_threshold
            )
        else:
            shipping_fee = ZERO

        return replace(
            cart,
            subtotal=subtotal,
            discount=discount,
            tax=tax_amount,
            shipping=shipping_fee,
            total=pricing.total(subtotal, discount, tax_amount, shipping_fee),
        )

    def _commit(self, cart: Cart, items=UNSET, discount_code=UNSET) -> Cart:
        """Применяет патч, пересчитывает итоги, продлевает срок жизни и сохраняет"""
        changes = {}
        if items is not UNSET:
            changes["items"] = tuple(items)
        if discount_code is not UNSET:
            changes["discount_code"] = discount_code
        now = self.clock()
        patched = replace(
            cart, updated_at=now, expires_at=now + self.settings.cart_ttl, **changes
        )
        return self.carts.save(self.recalculate(patched))

    # ---------- позиции ----------

    @synchronized
    def add_item(
        self, session_id: str, product_id: str, quantity: int, user_id: Optional[str] = None
    ) -> Cart:
        cart = self.get_or_create(session_id, user_id)
        product = check_purchasable(self.products, product_id, quantity)

        existing = next((i for i in cart.items if i.product_id == product_id), None)
        if existing is not None:
            # повторное добавление фиксирует текущую цену товара
            qty = existing.quantity + quantity
            updated = replace(
                existing,
                quantity=qty,
                price=product.price,
                subtotal=pricing.item_subtotal(product.price, qty),
            )
            items = tuple(updated if i.id == existing.id else i for i in cart.items)
        else:
            line = CartItem(
                id=str(uuid.uuid4()),
                product_id=product.id,
                product_name=product.name,
                quantity=quantity,
                price=product.price,
                subtotal=pricing.item_subtotal(product.price, quantity),
            )
            items = cart.items + (line,)

        logger.info("cart_item_added", cart_id=cart.id, product_id=product_id, quantity=quantity)
        return self._commit(cart, items=items)

    @synchronized
    def update_item(
        self, session_id: str, item_id: str, quantity: int, user_id: Optional[str] = None
    ) -> Cart:
        cart = self.get_or_create(session_id, user_id)
        line = next((i for i in cart.items if i.id == item_id), None)
        if line is None:
            raise CartItemNotFound(item_id)

        if quantity <= 0:
            return self._commit(cart, items=tuple(i for i in cart.items if i.id != item_id))

        # проверка по живому остатку, а не по закэшированной строке
        product = self.products.get(line.product_id).get_or_raise(
            lambda: ProductNotFound(line.product_id)
        )
        if product.stock < quantity:
            raise InsufficientStock(product.id, quantity, product.stock)

        updated = replace(
            line, quantity=quantity, subtotal=pricing.item_subtotal(line.price, quantity)
        )
        items = tuple(updated if i.id == item_id else i for i in cart.items)
        return self._commit(cart, items=items)

    @synchronized
    def remove_item(self, session_id: str, item_id: str, user_id: Optional[str] = None) -> Cart:
        """Идемпотентно: отсутствующая позиция оставляет корзину как есть"""
        cart = self.get_or_create(session_id, user_id)
        if not any(i.id == item_id for i in cart.items):
            return cart
        return self._commit(cart, items=tuple(i for i in cart.items if i.id != item_id))

    @synchronized
    def clear_cart(self, session_id: str, user_id: Optional[str] = None) -> Cart:
        cart = self.get_or_create(session_id, user_id)
        return self._commit(cart, items=(), discount_code=None)

    # ---------- скидки ----------

    @synchronized
    def apply_discount(self, session_id: str, code: str, user_id: Optional[str] = None) -> Cart:
        cart = self.get_or_create(session_id, user_id)
        result = pricing.validate_discount_code(code, cart.subtotal, self.discounts)
        if not result.valid:
            raise InvalidDiscountCode(code, result.message)
        logger.info("discount_applied", cart_id=cart.id, code=code.upper())
        return self._commit(cart, discount_code=code.strip().upper())

    @synchronized
    def remove_discount(self, session_id: str, user_id: Optional[str] = None) -> Cart:
        cart = self.get_or_create(session_id, user_id)
        return self._commit(cart, discount_code=None)

    # ---------- отложенные товары ----------

    def get_saved_items(self, user_id: str) -> Tuple[SavedItem, ...]:
        if not user_id:
            raise UserRequired("view saved items")
        return self.carts.saved_items(user_id)

    @synchronized
    def save_for_later(
        self, session_id: str, item_id: str, user_id: Optional[str]
    ) -> Tuple[SavedItem, ...]:
        if not user_id:
            raise UserRequired("save items for later")

        cart = self.get_or_create(session_id, user_id)
        line = next((i for i in cart.items if i.id == item_id), None)
        if line is None:
            raise CartItemNotFound(item_id)

        saved = SavedItem(
            id=str(uuid.uuid4()),
            user_id=user_id,
            product_id=line.product_id,
            product_name=line.product_name,
            price=line.price,
            saved_at=self.clock(),
        )
        items = self.carts.saved_items(user_id) + (saved,)
        self.carts.set_saved_items(user_id, items)
        self._commit(cart, items=tuple(i for i in cart.items if i.id != item_id))
        return items

    @synchronized
    def move_to_cart(self, session_id: str, saved_item_id: str, user_id: Optional[str]) -> Cart:
        """Возвращает отложенный товар в корзину с количеством 1"""
        if not user_id:
            raise UserRequired("move saved items to cart")

        saved = self.carts.saved_items(user_id)
        item = next((s for s in saved if s.id == saved_item_id), None)
        if item is None:
            raise SavedItemNotFound(saved_item_id)

        cart = self.add_item(session_id, item.product_id, 1, user_id)
        self.carts.set_saved_items(user_id, tuple(s for s in saved if s.id != saved_item_id))
        return cart

    # ---------- слияние при входе ----------

    @synchronized
    def merge_carts(self, guest_session_id: str, user_id: str) -> Cart:
        """
        Переносит гостевую корзину в корзину пользователя.
        Повторный вызов с уже пустой гостевой сессией ничего не меняет.
        """
        if not user_id:
            raise UserRequired("merge carts")

        guest = self._live(self.carts.find_by_session(guest_session_id, guests_only=True))
        user_cart = self._live(self.carts.find_by_user(user_id))
        if user_cart is None:
            user_cart = self.carts.save(self._new_cart(guest_session_id, user_id))
        if guest is None:
            return user_cart

        def merge_line(items: Tuple[CartItem, ...], line: CartItem) -> Tuple[CartItem, ...]:
            existing = next((i for i in items if i.product_id == line.product_id), None)
            if existing is None:
                return items + (replace(line, id=str(uuid.uuid4())),)
            qty = existing.quantity + line.quantity
            merged = replace(
                existing, quantity=qty, subtotal=pricing.item_subtotal(existing.price, qty)
            )
            return tuple(merged if i.id == existing.id else i for i in items)

        items = reduce(merge_line, guest.items, user_cart.items)
        code = user_cart.discount_code or guest.discount_code

        self.carts.delete(guest.id)
        logger.info(
            "carts_merged",
            guest_cart_id=guest.id,
            user_cart_id=user_cart.id,
            user_id=user_id,
            lines=len(guest.items),
        )
        return self._commit(user_cart, items=items, discount_code=code)

    # ---------- проверки и сводка ----------

    def validate_stock(self, cart: Cart) -> StockValidation:
        """Перепроверяет позиции по текущему складу, ничего не меняя"""

        def check(line: CartItem) -> Either[str, CartItem]:
            found = self.products.get(line.product_id)
            if found.is_none():
                return Either.left(f"{line.product_name} is no longer available")
            product = found.value
            if product.status != "published":
                return Either.left(f"{product.name} is not available")
            if product.stock < line.quantity:
                return Either.left(
                    f"Only {product.stock} items of {product.name} available in stock"
                )
            return Either.right(line)

        errors: List[str] = lefts(check(line) for line in cart.items)
        return StockValidation(valid=not errors, errors=tuple(errors))

    def get_summary(self, session_id: str, user_id: Optional[str] = None) -> CartSummary:
        cart = self.get_or_create(session_id, user_id)
        return CartSummary(
            item_count=sum(i.quantity for i in cart.items),
            line_count=len(cart.items),
            subtotal=cart.subtotal,
            discount=cart.discount,
            tax=cart.tax,
            shipping=cart.shipping,
            total=cart.total,
            currency=cart.currency,
            discount_code=cart.discount_code,
        )

    @synchronized
    def delete(self, cart_id: str) -> None:
        self.carts.delete(cart_id)

    @synchronized
    def purge_expired(self) -> int:
        """Удаляет все просроченные корзины, возвращает их количество"""
        expired = [c for c in self.carts.all() if self._is_expired(c)]
        for cart in expired:
            self.carts.delete(cart.id)
        if expired:
            logger.info("carts_purged", count=len(expired))
        return len(expired)
