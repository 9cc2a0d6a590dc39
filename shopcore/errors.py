"""Исключения ядра магазина (корзина, заказы, склад)."""

from __future__ import annotations


class ShopError(Exception):
    """Базовое исключение для всех ошибок ядра."""

    pass


class ProductNotFound(ShopError):
    """Товар с указанным id или SKU не существует."""

    def __init__(self, product_id: str):
        self.product_id = product_id
        super().__init__(f"Product not found: {product_id}")


class ProductUnavailable(ShopError):
    """Товар существует, но не опубликован."""

    def __init__(self, product_id: str, status: str):
        self.product_id = product_id
        self.status = status
        super().__init__(f"Product is not available: {product_id} (status: {status})")


class InsufficientStock(ShopError):
    """Запрошено больше, чем есть на складе."""

    def __init__(self, product_id: str, requested: int, available: int):
        self.product_id = product_id
        self.requested = requested
        self.available = available
        super().__init__(
            f"Insufficient stock for {product_id}: "
            f"requested {requested}, only {available} available"
        )


class InvalidStockQuantity(ShopError):
    def __init__(self, product_id: str, quantity: int):
        self.product_id = product_id
        self.quantity = quantity
        super().__init__(f"Stock cannot be negative: {product_id} -> {quantity}")


class DuplicateSku(ShopError):
    def __init__(self, sku: str):
        self.sku = sku
        super().__init__(f"SKU already exists: {sku}")


class CartItemNotFound(ShopError):
    def __init__(self, item_id: str):
        self.item_id = item_id
        super().__init__(f"Cart item not found: {item_id}")


class SavedItemNotFound(ShopError):
    def __init__(self, item_id: str):
        self.item_id = item_id
        super().__init__(f"Saved item not found: {item_id}")


class OrderNotFound(ShopError):
    def __init__(self, order_id: str):
        self.order_id = order_id
        super().__init__(f"Order not found: {order_id}")


class InvalidDiscountCode(ShopError):
    def __init__(self, code: str, reason: str | None = None):
        self.code = code
        msg = reason or "Invalid discount code"
        super().__init__(f"{msg}: {code}")


class EmptyOrder(ShopError):
    def __init__(self):
        super().__init__("Order must contain at least one item")


class UserRequired(ShopError):
    def __init__(self, operation: str):
        self.operation = operation
        super().__init__(f"User must be logged in to {operation}")


class InvalidStatusTransition(ShopError):
    """Переход статуса заказа недостижим из текущего статуса."""

    def __init__(self, current: str, requested: str, reason: str | None = None):
        self.current = current
        self.requested = requested
        msg = reason or f"Cannot change order status from '{current}' to '{requested}'"
        super().__init__(f"{msg} (current status: {current})")


class PaymentFailed(ShopError):
    """Платёжный коллаборатор отклонил возврат средств."""

    def __init__(self, order_id: str, error: str | None = None):
        self.order_id = order_id
        self.error = error
        msg = f"Refund failed for order {order_id}"
        if error:
            msg = f"{msg}: {error}"
        super().__init__(msg)


class OrderNumberExhausted(ShopError):
    def __init__(self, attempts: int):
        self.attempts = attempts
        super().__init__(f"Could not generate a unique order number in {attempts} attempts")


class CheckoutBlocked(ShopError):
    """Корзина не прошла проверку остатков перед оформлением."""

    def __init__(self, errors):
        self.errors = tuple(errors)
        super().__init__("Cart cannot be checked out: " + "; ".join(self.errors))
