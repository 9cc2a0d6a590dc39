"""
Менеджер заказов: создание из списка позиций с атомарным списанием остатков,
машина статусов, возврат остатков при отмене, возвраты средств и товаров.

Заказ — снимок: позиции хранят копию имени/SKU/цены и не ссылаются
на живой товар дальше его id.
"""

from __future__ import annotations

import math
import random
import threading
import uuid
from dataclasses import dataclass, fields, replace
from datetime import datetime, timezone
from decimal import Decimal
from functools import reduce
from typing import Callable, Dict, List, Optional, Protocol, Sequence, Tuple

import structlog

from . import pricing
from .compose import all_of
from .config import ShopSettings
from .domain import (
    PAYMENT_STATUSES,
    ZERO,
    Order,
    OrderItem,
    OrderLine,
    OrderTracking,
    ReturnItem,
    ReturnRequest,
    ShippingAddress,
    TrackingEvent,
)
from .errors import (
    EmptyOrder,
    InvalidDiscountCode,
    InvalidStatusTransition,
    OrderNotFound,
    OrderNumberExhausted,
    PaymentFailed,
)
from .events import (
    ORDER_CREATED,
    ORDER_REFUNDED,
    ORDER_RETURN_REQUESTED,
    ORDER_STATUS_CHANGED,
    EventBus,
    create_event,
)
from .inventory import ProductRepository, check_purchasable, merge_quantities
from .lazy import iter_page
from .payments import AlwaysApprovePayments, PaymentGateway
from .sync import synchronized
from .transforms import by_payment_status, by_status, by_user, created_between

logger = structlog.get_logger(__name__)

# ============ Машина статусов ============

# Порядок исполнения заказа; движение только вперёд, пропуск шагов разрешён
FULFILMENT_FLOW = ("pending", "confirmed", "processing", "shipped", "delivered")
CANCELLABLE = ("pending", "confirmed", "processing", "shipped")
TERMINAL = ("delivered", "cancelled", "refunded")

STATUS_DESCRIPTIONS = {
    "pending": "Order placed",
    "confirmed": "Order confirmed",
    "processing": "Order is being prepared",
    "shipped": "Order shipped",
    "delivered": "Order delivered",
    "cancelled": "Order cancelled",
    "refunded": "Order refunded",
}


def can_transition(current: str, target: str) -> bool:
    """
    Разрешённые переходы:
      pending -> confirmed -> processing -> shipped -> delivered (вперёд, можно через шаг)
      pending|confirmed|processing|shipped -> cancelled
      delivered -> refunded
    """
    if current in ("cancelled", "refunded"):
        return False
    if target == "cancelled":
        return current in CANCELLABLE
    if target == "refunded":
        return current == "delivered"
    if current in FULFILMENT_FLOW and target in FULFILMENT_FLOW:
        return FULFILMENT_FLOW.index(target) > FULFILMENT_FLOW.index(current)
    return False


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ============ Хранилище и фильтры ============


class OrderRepository(Protocol):
    def get(self, order_id: str) -> Optional[Order]:
        ...

    def get_by_number(self, order_number: str) -> Optional[Order]:
        ...

    def save(self, order: Order) -> Order:
        ...

    def all(self) -> Tuple[Order, ...]:
        ...

    def save_return(self, request: ReturnRequest) -> ReturnRequest:
        ...

    def returns_for(self, order_id: str) -> Tuple[ReturnRequest, ...]:
        ...


class InMemoryOrderRepository:
    """Заказы в порядке вставки (от него зависит стабильная сортировка)"""

    def __init__(self):
        self._orders: Dict[str, Order] = {}
        self._returns: Dict[str, ReturnRequest] = {}

    def get(self, order_id: str) -> Optional[Order]:
        return self._orders.get(order_id)

    def get_by_number(self, order_number: str) -> Optional[Order]:
        return next((o for o in self._orders.values() if o.order_number == order_number), None)

    def save(self, order: Order) -> Order:
        self._orders[order.id] = order
        return order

    def all(self) -> Tuple[Order, ...]:
        return tuple(self._orders.values())

    def save_return(self, request: ReturnRequest) -> ReturnRequest:
        self._returns[request.id] = request
        return request

    def returns_for(self, order_id: str) -> Tuple[ReturnRequest, ...]:
        return tuple(r for r in self._returns.values() if r.order_id == order_id)


ORDER_FIELDS = tuple(f.name for f in fields(Order))

# составные поля не упорядочиваются сами по себе
COMPOSITE_SORT_KEYS = {
    "items": lambda items: sum(i.quantity for i in items),
    "shipping_address": lambda a: (a.country, a.province, a.city, a.full_name),
}


@dataclass(frozen=True)
class OrderFilters:
    user_id: Optional[str] = None
    status: Optional[str] = None
    payment_status: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    page: int = 1
    limit: int = 20
    sort_by: str = "created_at"
    sort_order: str = "desc"


@dataclass(frozen=True)
class OrderPage:
    items: Tuple[Order, ...]
    total: int
    page: int
    limit: int
    pages: int


# ============ Менеджер ============


class OrderManager:
    def __init__(
        self,
        products: ProductRepository,
        orders: Optional[OrderRepository] = None,
        payments: Optional[PaymentGateway] = None,
        events: Optional[EventBus] = None,
        discounts: pricing.DiscountPolicy = pricing.DEFAULT_DISCOUNT_POLICY,
        settings: Optional[ShopSettings] = None,
        clock: Callable[[], datetime] = utcnow,
        rng: Optional[random.Random] = None,
    ):
        self.products = products
        self.orders = orders if orders is not None else InMemoryOrderRepository()
        self.payments = payments if payments is not None else AlwaysApprovePayments()
        self.events = events if events is not None else EventBus()
        self.discounts = discounts
        self.settings = settings or ShopSettings()
        self.clock = clock
        self.rng = rng or random.Random()
        self._lock = threading.RLock()

    # ---------- чтение ----------

    def get_order(self, order_id: str) -> Order:
        order = self.orders.get(order_id)
        if order is None:
            raise OrderNotFound(order_id)
        return order

    def get_order_by_number(self, order_number: str) -> Order:
        order = self.orders.get_by_number(order_number)
        if order is None:
            raise OrderNotFound(order_number)
        return order

    # ---------- создание ----------

    def generate_order_number(self) -> str:
        """ORD-YYYYMMDD-NNNN; при совпадении с существующим номером — новая попытка"""
        day = self.clock().strftime("%Y%m%d")
        for _ in range(self.settings.order_number_attempts):
            candidate = f"ORD-{day}-{self.rng.randint(0, 9999):04d}"
            if self.orders.get_by_number(candidate) is None:
                return candidate
        raise OrderNumberExhausted(self.settings.order_number_attempts)

    @synchronized
    def create_order(
        self,
        items: Sequence[OrderLine],
        shipping_address: ShippingAddress,
        payment_method: str,
        user_id: Optional[str] = None,
        discount_code: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> Order:
        if not items:
            raise EmptyOrder()

        # 1. проверяем все позиции, ничего не трогая
        quantities = merge_quantities((line.product_id, line.quantity) for line in items)
        snapshots = {
            pid: check_purchasable(self.products, pid, qty) for pid, qty in quantities.items()
        }

        # 2. считаем деньги по ценам вызывающего
        order_items = tuple(
            OrderItem(
                id=str(uuid.uuid4()),
                product_id=line.product_id,
                product_name=snapshots[line.product_id].name,
                sku=snapshots[line.product_id].sku,
                quantity=line.quantity,
                price=pricing.round2(line.price),
                subtotal=pricing.item_subtotal(line.price, line.quantity),
            )
            for line in items
        )
        subtotal = pricing.round2(reduce(lambda acc, i: acc + i.subtotal, order_items, ZERO))

        discount = ZERO
        code = None
        if discount_code:
            result = pricing.validate_discount_code(discount_code, subtotal, self.discounts)
            if not result.valid:
                raise InvalidDiscountCode(discount_code, result.message)
            discount = pricing.clamp_discount(result.discount, subtotal)
            code = discount_code.strip().upper()

        # налог заказа считается от полного subtotal, без учёта скидки
        tax_amount = pricing.tax(subtotal, self.settings.tax_rate)
        shipping_fee = pricing.shipping(
            subtotal, self.settings.flat_shipping, self.settings.free_shipping_threshold
        )
        order_number = self.generate_order_number()

        # 3. фиксируем списание одним пакетом: всё или ничего
        self.products.reserve(quantities)

        now = self.clock()
        order = self.orders.save(
            Order(
                id=str(uuid.uuid4()),
                order_number=order_number,
                user_id=user_id,
                items=order_items,
                subtotal=subtotal,
                discount=discount,
                tax=tax_amount,
                shipping=shipping_fee,
                total=pricing.total(subtotal, discount, tax_amount, shipping_fee),
                currency=self.settings.currency,
                discount_code=code,
                shipping_address=shipping_address,
                payment_method=payment_method,
                notes=notes,
                created_at=now,
                updated_at=now,
            )
        )
        logger.info(
            "order_created",
            order_id=order.id,
            order_number=order.order_number,
            user_id=user_id,
            total=str(order.total),
            lines=len(order_items),
        )
        self._notify(
            ORDER_CREATED,
            order,
            total=order.total,
            order_number=order.order_number,
            user_id=user_id,
        )
        return order

    # ---------- статусы ----------

    @synchronized
    def update_status(
        self,
        order_id: str,
        status: str,
        tracking_number: Optional[str] = None,
        estimated_delivery: Optional[datetime] = None,
    ) -> Order:
        order = self.get_order(order_id)
        if status == "refunded":
            raise InvalidStatusTransition(
                order.status, status, "Refunds must go through request_refund"
            )

        same = status == order.status and status not in TERMINAL
        if not same and not can_transition(order.status, status):
            raise InvalidStatusTransition(order.status, status)

        now = self.clock()
        changes = {"status": status, "updated_at": now}
        if tracking_number is not None:
            changes["tracking_number"] = tracking_number
        elif status == "shipped" and not order.tracking_number:
            changes["tracking_number"] = self._tracking_number(now)
        if estimated_delivery is not None:
            changes["estimated_delivery"] = estimated_delivery

        if status == "cancelled":
            self.products.release(merge_quantities((i.product_id, i.quantity) for i in order.items))
            changes["cancelled_at"] = now
        elif status == "delivered" and not same:
            changes["delivered_at"] = now

        updated = self.orders.save(replace(order, **changes))
        logger.info(
            "order_status_changed",
            order_id=order_id,
            from_status=order.status,
            to_status=status,
        )
        self._notify(ORDER_STATUS_CHANGED, updated, from_status=order.status, to_status=status)
        return updated

    def cancel_order(self, order_id: str) -> Order:
        order = self.get_order(order_id)
        if order.status not in CANCELLABLE:
            raise InvalidStatusTransition(
                order.status, "cancelled", "Order cannot be cancelled at this stage"
            )
        return self.update_status(order_id, "cancelled")

    @synchronized
    def update_payment_status(
        self, order_id: str, payment_status: str, transaction_id: Optional[str] = None
    ) -> Order:
        """Оплата прошла (completed) — ожидающий заказ подтверждается"""
        if payment_status not in PAYMENT_STATUSES:
            raise ValueError(f"Unknown payment status: {payment_status}")

        order = self.get_order(order_id)
        changes = {"payment_status": payment_status, "updated_at": self.clock()}
        if transaction_id is not None:
            changes["payment_transaction_id"] = transaction_id
        if payment_status in ("completed", "paid") and order.status == "pending":
            changes["status"] = "confirmed"

        updated = self.orders.save(replace(order, **changes))
        logger.info("order_payment_updated", order_id=order_id, payment_status=payment_status)
        if updated.status != order.status:
            self._notify(
                ORDER_STATUS_CHANGED, updated, from_status=order.status, to_status=updated.status
            )
        return updated

    # ---------- возвраты ----------

    @synchronized
    def request_refund(
        self,
        order_id: str,
        amount: Optional[Decimal] = None,
        items: Optional[Sequence[str]] = None,
        reason: Optional[str] = None,
    ) -> Order:
        """
        Возврат средств по доставленному заказу.
        Сначала платёжный шлюз; если он отказал — заказ не меняется.
        Полный возврат (без списка позиций или со всеми позициями) возвращает остатки.
        """
        order = self.get_order(order_id)
        if order.status != "delivered":
            raise InvalidStatusTransition(
                order.status, "refunded", "Only delivered orders can be refunded"
            )

        by_id = {i.id: i for i in order.items}
        selected = tuple(items) if items else tuple(by_id)
        unknown = [item_id for item_id in selected if item_id not in by_id]
        if unknown:
            raise ValueError(f"Order {order_id} has no items {unknown}")
        full = set(selected) == set(by_id)

        if amount is None:
            amount = (
                order.total
                if full
                else pricing.round2(sum((by_id[i].subtotal for i in selected), ZERO))
            )
        amount = pricing.round2(amount)

        try:
            result = self.payments.process_refund(
                order.payment_transaction_id or order.id, amount, reason or "Customer refund"
            )
        except Exception as exc:
            logger.error("refund_gateway_error", order_id=order_id, exc_info=True)
            raise PaymentFailed(order_id, str(exc)) from exc
        if not result.ok:
            logger.warning("refund_rejected", order_id=order_id, error=result.error)
            raise PaymentFailed(order_id, result.error)

        if full:
            self.products.release(merge_quantities((i.product_id, i.quantity) for i in order.items))

        now = self.clock()
        updated = self.orders.save(
            replace(
                order,
                status="refunded",
                payment_status="refunded",
                refunded_at=now,
                updated_at=now,
            )
        )
        logger.info("order_refunded", order_id=order_id, amount=str(amount), full=full)
        self._notify(ORDER_REFUNDED, updated, amount=amount, full=full)
        return updated

    @synchronized
    def request_return(self, order_id: str, items: Sequence[ReturnItem]) -> ReturnRequest:
        """Заявка на возврат товаров; остатки не меняются до одобрения"""
        order = self.get_order(order_id)
        if order.status != "delivered":
            raise InvalidStatusTransition(
                order.status, "return", "Can only return delivered orders"
            )
        if not items:
            raise ValueError("Return request must contain at least one item")

        by_id = {i.id: i for i in order.items}
        for item in items:
            ordered = by_id.get(item.order_item_id)
            if ordered is None:
                raise ValueError(f"Order {order_id} has no item {item.order_item_id}")
            if not 0 < item.quantity <= ordered.quantity:
                raise ValueError(
                    f"Cannot return {item.quantity} of item {item.order_item_id}: "
                    f"{ordered.quantity} ordered"
                )

        request = self.orders.save_return(
            ReturnRequest(
                id=str(uuid.uuid4()),
                order_id=order_id,
                items=tuple(items),
                created_at=self.clock(),
            )
        )
        logger.info("return_requested", order_id=order_id, return_id=request.id)
        self._notify(ORDER_RETURN_REQUESTED, order, return_id=request.id)
        return request

    def get_return_requests(self, order_id: str) -> Tuple[ReturnRequest, ...]:
        self.get_order(order_id)
        return self.orders.returns_for(order_id)

    # ---------- проекции ----------

    def get_order_tracking(self, order_id: str) -> OrderTracking:
        """История строится из текущего статуса и меток времени, отдельно не хранится"""
        order = self.get_order(order_id)

        def event(status: str, ts: Optional[datetime]) -> TrackingEvent:
            return TrackingEvent(status, ts, STATUS_DESCRIPTIONS[status])

        def flow_until(last: str) -> List[TrackingEvent]:
            steps = FULFILMENT_FLOW[: FULFILMENT_FLOW.index(last) + 1]
            history = []
            for step in steps:
                if step == "pending":
                    ts = order.created_at
                elif step == "delivered":
                    ts = order.delivered_at
                elif step == order.status:
                    ts = order.updated_at
                else:
                    ts = None
                history.append(event(step, ts))
            return history

        if order.status == "cancelled":
            history = [event("pending", order.created_at), event("cancelled", order.cancelled_at)]
        elif order.status == "refunded":
            history = flow_until("delivered") + [event("refunded", order.refunded_at)]
        else:
            history = flow_until(order.status)

        return OrderTracking(
            order_id=order.id,
            order_number=order.order_number,
            status=order.status,
            history=tuple(history),
            tracking_number=order.tracking_number,
            estimated_delivery=order.estimated_delivery,
        )

    def get_orders(self, filters: Optional[OrderFilters] = None) -> OrderPage:
        filters = filters or OrderFilters()
        if filters.sort_by not in ORDER_FIELDS:
            raise ValueError(f"Cannot sort orders by '{filters.sort_by}'")
        if filters.limit < 1:
            raise ValueError("limit must be positive")

        predicates = []
        if filters.user_id:
            predicates.append(by_user(filters.user_id))
        if filters.status:
            predicates.append(by_status(filters.status))
        if filters.payment_status:
            predicates.append(by_payment_status(filters.payment_status))
        if filters.start_date or filters.end_date:
            predicates.append(created_between(filters.start_date, filters.end_date))

        matching = tuple(filter(all_of(*predicates), self.orders.all()))

        to_key = COMPOSITE_SORT_KEYS.get(filters.sort_by, lambda value: value)

        def sort_key(order: Order):
            value = to_key(getattr(order, filters.sort_by))
            return (value is None, value)

        # sorted стабилен и при reverse=True: равные ключи остаются в порядке вставки
        ordered = sorted(
            matching, key=sort_key, reverse=filters.sort_order.lower() == "desc"
        )
        page = max(filters.page, 1)
        return OrderPage(
            items=tuple(iter_page(ordered, page, filters.limit)),
            total=len(ordered),
            page=page,
            limit=filters.limit,
            pages=math.ceil(len(ordered) / filters.limit),
        )

    def get_order_stats(
        self, start: Optional[datetime] = None, end: Optional[datetime] = None
    ) -> dict:
        selected = tuple(filter(created_between(start, end), self.orders.all()))
        revenue = pricing.round2(sum((o.total for o in selected), ZERO))

        def count_status(acc: dict, order: Order) -> dict:
            return {**acc, order.status: acc.get(order.status, 0) + 1}

        return {
            "total_orders": len(selected),
            "total_revenue": revenue,
            "average_order_value": pricing.round2(revenue / len(selected)) if selected else ZERO,
            "status_breakdown": reduce(count_status, selected, {}),
        }

    # ---------- служебное ----------

    def _tracking_number(self, now: datetime) -> str:
        return f"TRK{int(now.timestamp() * 1000)}{self.rng.randint(0, 999999):06d}"

    def _notify(self, name: str, order: Order, **payload) -> None:
        event = create_event(
            name, {"order_id": order.id, "status": order.status, **payload}
        )
        self.events.publish(event)
