from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Optional, Tuple

# Статусы — обычные строки, допустимые значения перечислены в кортежах ниже

PRODUCT_STATUSES = ("draft", "published", "archived")
CATEGORY_STATUSES = ("active", "inactive")

ORDER_STATUSES = (
    "pending",
    "confirmed",
    "processing",
    "shipped",
    "delivered",
    "cancelled",
    "refunded",
)
PAYMENT_STATUSES = ("pending", "processing", "completed", "paid", "failed", "refunded")
RETURN_STATUSES = ("pending", "approved", "rejected", "completed")

ZERO = Decimal("0.00")


@dataclass(frozen=True)
class Category:
    id: str
    name: str
    slug: str = ""
    parent_id: Optional[str] = None
    status: str = "active"


@dataclass(frozen=True)
class Product:
    id: str
    name: str
    sku: str
    price: Decimal
    stock: int
    status: str = "published"
    category_id: Optional[str] = None
    created_at: Optional[datetime] = None


@dataclass(frozen=True)
class CartItem:
    id: str
    product_id: str
    product_name: str
    quantity: int
    price: Decimal  # цена на момент добавления
    subtotal: Decimal


@dataclass(frozen=True)
class Cart:
    id: str
    session_id: str
    user_id: Optional[str] = None
    items: Tuple[CartItem, ...] = ()
    discount_code: Optional[str] = None
    subtotal: Decimal = ZERO
    discount: Decimal = ZERO
    tax: Decimal = ZERO
    shipping: Decimal = ZERO
    total: Decimal = ZERO
    currency: str = "USD"
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None


@dataclass(frozen=True)
class SavedItem:
    id: str
    user_id: str
    product_id: str
    product_name: str
    price: Decimal
    saved_at: datetime


@dataclass(frozen=True)
class ShippingAddress:
    full_name: str
    phone: str
    address_line1: str
    city: str
    province: str
    country: str
    address_line2: Optional[str] = None
    postal_code: Optional[str] = None


@dataclass(frozen=True)
class OrderLine:
    """Строка запроса на создание заказа (цена уже проверена вызывающим)"""

    product_id: str
    quantity: int
    price: Decimal


@dataclass(frozen=True)
class OrderItem:
    """Неизменяемый снимок позиции заказа — финансовая запись"""

    id: str
    product_id: str
    product_name: str
    sku: str
    quantity: int
    price: Decimal
    subtotal: Decimal


@dataclass(frozen=True)
class Order:
    id: str
    order_number: str
    items: Tuple[OrderItem, ...]
    subtotal: Decimal
    discount: Decimal
    tax: Decimal
    shipping: Decimal
    total: Decimal
    shipping_address: ShippingAddress
    payment_method: str
    created_at: datetime
    updated_at: datetime
    user_id: Optional[str] = None
    currency: str = "USD"
    discount_code: Optional[str] = None
    status: str = "pending"
    payment_status: str = "pending"
    payment_transaction_id: Optional[str] = None
    notes: Optional[str] = None
    tracking_number: Optional[str] = None
    estimated_delivery: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    refunded_at: Optional[datetime] = None


@dataclass(frozen=True)
class ReturnItem:
    order_item_id: str
    quantity: int
    reason: str


@dataclass(frozen=True)
class ReturnRequest:
    id: str
    order_id: str
    items: Tuple[ReturnItem, ...]
    created_at: datetime
    status: str = "pending"


@dataclass(frozen=True)
class TrackingEvent:
    status: str
    timestamp: Optional[datetime]
    description: str


@dataclass(frozen=True)
class OrderTracking:
    order_id: str
    order_number: str
    status: str
    history: Tuple[TrackingEvent, ...]
    tracking_number: Optional[str] = None
    estimated_delivery: Optional[datetime] = None


@dataclass(frozen=True)
class Event:
    id: str
    ts: datetime
    name: str
    payload: dict = field(default_factory=dict)
