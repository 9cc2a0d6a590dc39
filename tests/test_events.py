import sys
import os

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))
from decimal import Decimal

from structlog.testing import capture_logs

from shopcore.events import (
    ORDER_CREATED,
    ORDER_REFUNDED,
    ORDER_STATUS_CHANGED,
    EventBus,
    SalesFeed,
    apply_events,
    create_event,
    initial_state,
)


def test_eventbus_immutability():
    """EventBus должен быть иммутабельным"""
    bus1 = EventBus()
    bus2 = bus1.subscribe(ORDER_CREATED, lambda e: None)

    assert bus1.subscribers == ()
    assert len(bus2.subscribers) == 1
    assert bus1 is not bus2


def test_publish_counts_successful_deliveries():
    seen = []

    def broken(event):
        raise ValueError("nope")

    bus = (
        EventBus()
        .subscribe(ORDER_CREATED, seen.append)
        .subscribe("*", seen.append)
        .subscribe(ORDER_CREATED, broken)
        .subscribe(ORDER_REFUNDED, seen.append)
    )
    delivered = bus.publish(create_event(ORDER_CREATED, {"order_id": "o1"}))
    assert delivered == 2
    assert len(seen) == 2


def test_failed_delivery_is_logged_not_raised():
    def smtp(event):
        raise RuntimeError("smtp down")

    bus = EventBus().subscribe(ORDER_CREATED, smtp)
    event = create_event(ORDER_CREATED, {"order_id": "o1"})
    with capture_logs() as logs:
        assert bus.publish(event) == 0

    failures = [e for e in logs if e["event"] == "notification_failed"]
    assert len(failures) == 1
    assert failures[0]["event_name"] == ORDER_CREATED
    assert failures[0]["event_id"] == event.id
    assert failures[0]["handler"] == "smtp"
    assert failures[0]["log_level"] == "warning"


def test_apply_events_projection():
    events = (
        create_event(ORDER_CREATED, {"order_id": "o1", "total": Decimal("50.00")}),
        create_event(ORDER_CREATED, {"order_id": "o2", "total": Decimal("25.00")}),
        create_event(ORDER_STATUS_CHANGED, {"order_id": "o1"}),
        create_event(ORDER_REFUNDED, {"order_id": "o2", "amount": Decimal("25.00")}),
        create_event("unknown", {}),
    )
    state = apply_events(events, initial_state())

    assert state["total_revenue"] == Decimal("75.00")
    assert state["total_refunded"] == Decimal("25.00")
    assert state["status_changes"] == 1
    assert len(state["current_sales"]) == 2
    assert state["last_event"] == ORDER_REFUNDED


def test_apply_events_is_pure():
    state = initial_state()
    apply_events((create_event(ORDER_CREATED, {"total": Decimal("1.00")}),), state)
    assert state == initial_state()


def test_sales_feed_attach():
    feed = SalesFeed()
    bus = feed.attach(EventBus())
    bus.publish(create_event(ORDER_CREATED, {"order_id": "o1", "total": Decimal("10.00")}))
    assert feed.state["total_revenue"] == Decimal("10.00")
    assert feed.state["current_sales"][0]["order_id"] == "o1"
