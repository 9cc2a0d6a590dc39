import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from functools import reduce
from typing import Callable, Tuple

import structlog

from .domain import Event

logger = structlog.get_logger(__name__)

ORDER_CREATED = "order.created"
ORDER_STATUS_CHANGED = "order.status_changed"
ORDER_REFUNDED = "order.refunded"
ORDER_RETURN_REQUESTED = "order.return_requested"


@dataclass(frozen=True)
class EventBus:
    """
    Иммутабельная шина событий заказов.
    Подписчики — уведомления (email/SMS, websocket) и проекции для дашборда.
    Доставка fire-and-forget: упавший подписчик логируется и не ломает операцию.
    """

    subscribers: Tuple[Tuple[str, Callable[[Event], None]], ...] = ()

    def subscribe(self, event_name: str, handler: Callable[[Event], None]) -> "EventBus":
        """Возвращает новую шину с добавленным подписчиком ("*" — все события)"""
        return EventBus(subscribers=self.subscribers + ((event_name, handler),))

    def publish(self, event: Event) -> int:
        """Вызывает подписчиков события, возвращает число успешных доставок"""
        matching = tuple(h for name, h in self.subscribers if name in (event.name, "*"))
        delivered = 0
        for handler in matching:
            try:
                handler(event)
                delivered += 1
            except Exception:
                logger.warning(
                    "notification_failed",
                    event_name=event.name,
                    event_id=event.id,
                    handler=getattr(handler, "__name__", repr(handler)),
                    exc_info=True,
                )
        return delivered


def create_event(name: str, payload: dict) -> Event:
    """Событие с автоматической меткой времени"""
    return Event(
        id=str(uuid.uuid4()),
        ts=datetime.now(timezone.utc),
        name=name,
        payload=payload,
    )


# ============ Проекция "живых" продаж для дашборда ============
# Чистые обработчики: (Event, State) -> State


def initial_state() -> dict:
    return {
        "current_sales": [],
        "refunds": [],
        "status_changes": 0,
        "total_revenue": Decimal("0.00"),
        "total_refunded": Decimal("0.00"),
        "last_event": None,
    }


def handle_order_created(event: Event, state: dict) -> dict:
    sale = {
        "order_id": event.payload.get("order_id"),
        "order_number": event.payload.get("order_number"),
        "total": event.payload.get("total", Decimal("0.00")),
        "user_id": event.payload.get("user_id"),
        "ts": event.ts,
    }
    return {
        **state,
        "current_sales": state["current_sales"] + [sale],
        "total_revenue": state["total_revenue"] + sale["total"],
        "last_event": event.name,
    }


def handle_order_refunded(event: Event, state: dict) -> dict:
    amount = event.payload.get("amount", Decimal("0.00"))
    refund = {"order_id": event.payload.get("order_id"), "amount": amount, "ts": event.ts}
    return {
        **state,
        "refunds": state["refunds"] + [refund],
        "total_refunded": state["total_refunded"] + amount,
        "last_event": event.name,
    }


def handle_status_changed(event: Event, state: dict) -> dict:
    return {**state, "status_changes": state["status_changes"] + 1, "last_event": event.name}


PROJECTION_HANDLERS = {
    ORDER_CREATED: handle_order_created,
    ORDER_REFUNDED: handle_order_refunded,
    ORDER_STATUS_CHANGED: handle_status_changed,
}


def apply_events(events: Tuple[Event, ...], state: dict) -> dict:
    """(events, state) -> state; незнакомые события пропускаются"""

    def step(current: dict, event: Event) -> dict:
        handler = PROJECTION_HANDLERS.get(event.name)
        return handler(event, current) if handler else current

    return reduce(step, events, state)


class SalesFeed:
    """Подписчик шины, держащий проекцию продаж в памяти"""

    def __init__(self):
        self.state = initial_state()

    def __call__(self, event: Event) -> None:
        self.state = apply_events((event,), self.state)

    def attach(self, bus: EventBus) -> EventBus:
        for name in PROJECTION_HANDLERS:
            bus = bus.subscribe(name, self)
        return bus
