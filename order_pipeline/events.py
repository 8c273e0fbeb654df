"""
Order lifecycle events.

Each event kind is its own frozen dataclass, so routing rules and the
notification publisher match on the type instead of on loose payload keys.
Events are ephemeral: they are routed and delivered, never persisted.

Design decisions:
- Events are named in past tense (OrderCreated, OrderFailed)
- The detail payload carries everything subscribers need (no query back)
- Every kind knows its wire detailType ("Order Created", ...)
- Factory functions build events from an Order record
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar, Optional
from uuid import uuid4

from shared.models import Order, utc_now_iso
from shared.templates import format_item_list

EVENT_SOURCE = "order.system"


class EventType(str, Enum):
    """Event kind names."""
    ORDER_CREATED = "OrderCreated"
    ORDER_COMPLETED = "OrderCompleted"
    ORDER_FAILED = "OrderFailed"
    ORDER_URGENT = "OrderUrgent"


@dataclass(frozen=True)
class OrderEvent:
    """
    Base class for every lifecycle event.

    Attributes:
        detail: Event payload (orderId, customerName, orderValue, ...)
        source: Publishing system
        event_id: Unique identifier for this event instance
        timestamp: When the event was created
    """
    detail: dict[str, Any]
    source: str = EVENT_SOURCE
    event_id: str = field(default_factory=lambda: str(uuid4()))
    timestamp: str = field(default_factory=utc_now_iso)

    event_type: ClassVar[EventType]
    detail_type: ClassVar[str]

    @property
    def order_id(self) -> Optional[str]:
        return self.detail.get("orderId")

    def to_envelope(self) -> dict[str, Any]:
        """The event as it appears on the wire."""
        return {
            "id": self.event_id,
            "source": self.source,
            "detailType": self.detail_type,
            "time": self.timestamp,
            "detail": self.detail,
        }

    def __str__(self) -> str:
        return f"{type(self).__name__}(order={self.order_id}, id={self.event_id[:8]})"


@dataclass(frozen=True)
class OrderCreated(OrderEvent):
    event_type: ClassVar[EventType] = EventType.ORDER_CREATED
    detail_type: ClassVar[str] = "Order Created"


@dataclass(frozen=True)
class OrderCompleted(OrderEvent):
    event_type: ClassVar[EventType] = EventType.ORDER_COMPLETED
    detail_type: ClassVar[str] = "Order Completed"


@dataclass(frozen=True)
class OrderFailed(OrderEvent):
    event_type: ClassVar[EventType] = EventType.ORDER_FAILED
    detail_type: ClassVar[str] = "Order Failed"


@dataclass(frozen=True)
class OrderUrgent(OrderEvent):
    event_type: ClassVar[EventType] = EventType.ORDER_URGENT
    detail_type: ClassVar[str] = "Order Urgent"


EVENT_CLASSES: dict[EventType, type[OrderEvent]] = {
    EventType.ORDER_CREATED: OrderCreated,
    EventType.ORDER_COMPLETED: OrderCompleted,
    EventType.ORDER_FAILED: OrderFailed,
    EventType.ORDER_URGENT: OrderUrgent,
}

_CLASSES_BY_DETAIL_TYPE = {cls.detail_type: cls for cls in EVENT_CLASSES.values()}


# =============================================================================
# Factories
# =============================================================================

def order_detail(order: Order) -> dict[str, Any]:
    """The detail payload shared by every order event."""
    return {
        "orderId": order.order_id,
        "timestamp": order.timestamp,
        "customerName": order.customer_name,
        "customerEmail": order.customer_email,
        "orderValue": order.order_value,
        "priority": order.priority,
        "items": [item.model_dump(mode="json", by_alias=True, exclude_none=True) for item in order.items],
    }


def order_created(order: Order) -> OrderCreated:
    """Emitted by the consumer once an order is persisted."""
    return OrderCreated(detail=order_detail(order))


def order_completed(order: Order) -> OrderCompleted:
    """Emitted when the workflow reaches Success."""
    detail = order_detail(order)
    detail["transactionId"] = order.transaction_id
    detail["completedAt"] = order.completed_at
    return OrderCompleted(detail=detail)


def order_failed(order: Order, reason: str, step: Optional[str] = None) -> OrderFailed:
    """Emitted by HandleFailure."""
    detail = order_detail(order)
    detail["failureReason"] = reason
    detail["failedStep"] = step
    detail["failedAt"] = order.failed_at
    return OrderFailed(detail=detail)


def order_urgent(created: OrderCreated) -> OrderUrgent:
    """Derived from an OrderCreated event whose priority is urgent."""
    return OrderUrgent(detail=dict(created.detail))


def event_from_envelope(envelope: dict[str, Any]) -> OrderEvent:
    """
    Rebuild an event from its wire envelope.

    Raises:
        ValueError: If the detailType is not a known event kind
    """
    cls = _CLASSES_BY_DETAIL_TYPE.get(envelope.get("detailType"))
    if cls is None:
        raise ValueError(f"Unknown event detailType: {envelope.get('detailType')!r}")
    kwargs = {"detail": dict(envelope.get("detail") or {})}
    for wire_key, attr in (("source", "source"), ("id", "event_id"), ("time", "timestamp")):
        if envelope.get(wire_key):
            kwargs[attr] = envelope[wire_key]
    return cls(**kwargs)


def describe_items(event: OrderEvent) -> str:
    """Item list of an event's order, formatted for an email body."""
    return format_item_list(event.detail.get("items") or [])
