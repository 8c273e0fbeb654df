"""
Domain models for the order pipeline.

These models describe the order record as it is persisted in the order store,
the submission accepted at the ingress boundary, and the notification
subscriptions kept by the registry.

Design decisions:
- Using Pydantic for validation and serialization
- Field names are snake_case in Python and camelCase on the wire / in storage
- Status values only move forward along ORDER_STATUS_TRANSITIONS
- orderValue is derived from the items when the submission omits it
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel


def utc_now_iso() -> str:
    """Current UTC time as an ISO-8601 string (the store's timestamp format)."""
    return datetime.now(timezone.utc).isoformat()


# Every persisted model serializes with camelCase keys
_CAMEL_CONFIG = ConfigDict(
    use_enum_values=True,
    validate_default=True,
    alias_generator=to_camel,
    populate_by_name=True,
)


# =============================================================================
# Enums - Status values used across the domain
# =============================================================================

class OrderStatus(str, Enum):
    """
    Order lifecycle states.

    SUBMITTED is written by the consumer; every later state is written by a
    workflow step.
    """
    SUBMITTED = "submitted"
    VALIDATED = "validated"
    VALIDATION_FAILED = "validation_failed"
    PAYMENT_PROCESSED = "payment_processed"
    PAYMENT_FAILED = "payment_failed"
    INVENTORY_UPDATED = "inventory_updated"
    COMPLETED = "completed"
    FAILED = "failed"


class Priority(str, Enum):
    """Order priority as chosen by the customer."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class PaymentStatus(str, Enum):
    """Outcome of the payment step."""
    COMPLETED = "completed"
    FAILED = "failed"


class SubscriptionStatus(str, Enum):
    """Notification subscriptions start pending until the recipient confirms."""
    PENDING_CONFIRMATION = "pendingConfirmation"
    CONFIRMED = "confirmed"


# Allowed forward moves of an order's status. Terminal states map to nothing.
ORDER_STATUS_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.SUBMITTED: frozenset({
        OrderStatus.VALIDATED,
        OrderStatus.VALIDATION_FAILED,
        OrderStatus.FAILED,
    }),
    OrderStatus.VALIDATED: frozenset({
        OrderStatus.PAYMENT_PROCESSED,
        OrderStatus.PAYMENT_FAILED,
        OrderStatus.FAILED,
    }),
    OrderStatus.VALIDATION_FAILED: frozenset({OrderStatus.FAILED}),
    OrderStatus.PAYMENT_PROCESSED: frozenset({
        OrderStatus.INVENTORY_UPDATED,
        OrderStatus.FAILED,
    }),
    OrderStatus.PAYMENT_FAILED: frozenset({OrderStatus.FAILED}),
    OrderStatus.INVENTORY_UPDATED: frozenset({
        OrderStatus.COMPLETED,
        OrderStatus.FAILED,
    }),
    OrderStatus.COMPLETED: frozenset(),
    OrderStatus.FAILED: frozenset(),
}


def can_transition(current: str, new: str) -> bool:
    """
    Check whether an order may move from `current` to `new` status.

    Re-writing the current status is always allowed (it is a no-op).
    """
    current, new = OrderStatus(current), OrderStatus(new)
    if current == new:
        return True
    return new in ORDER_STATUS_TRANSITIONS[current]


# =============================================================================
# Order Records
# =============================================================================

class OrderItem(BaseModel):
    """A single line of an order."""
    id: Optional[str] = Field(default=None, description="Inventory item identifier")
    name: str = Field(default="", description="Item display name")
    quantity: int = Field(default=1, ge=0, description="Quantity ordered")
    price: float = Field(default=0.0, description="Unit price at time of order")

    model_config = _CAMEL_CONFIG

    @property
    def item_id(self) -> str:
        """Identifier used for inventory tracking (falls back to the name)."""
        return self.id or self.name


class ValidationResult(BaseModel):
    """
    Outcome of the Validate workflow step.

    `valid` is the conjunction of every individual check.
    """
    has_order_id: bool
    has_valid_value: bool
    has_items: bool
    items_have_price: bool
    valid: bool

    model_config = _CAMEL_CONFIG


class InventoryUpdate(BaseModel):
    """One stock adjustment made by the UpdateInventory step."""
    item_id: str
    item_name: str
    quantity_reduced: int
    timestamp: str = Field(default_factory=utc_now_iso)

    model_config = _CAMEL_CONFIG


class Order(BaseModel):
    """
    Persisted order record.

    (order_id, timestamp) is the composite key in the order store. The
    processing fields start empty and are filled in by the workflow steps.
    """
    order_id: str = Field(..., min_length=1, description="Client-supplied order id")
    timestamp: str = Field(
        default_factory=utc_now_iso,
        description="Client-supplied submission time, the store's sort key",
    )
    status: OrderStatus = Field(default=OrderStatus.SUBMITTED)
    priority: Priority = Field(default=Priority.MEDIUM)
    customer_name: str = Field(default="")
    customer_email: str = Field(default="")
    items: list[OrderItem] = Field(default_factory=list)
    order_value: Optional[float] = Field(
        default=None,
        description="Order total; derived from the items when omitted",
    )

    # Processing fields
    processed_at: Optional[str] = None
    validation_result: Optional[ValidationResult] = None
    payment_status: Optional[PaymentStatus] = None
    transaction_id: Optional[str] = None
    inventory_updates: list[InventoryUpdate] = Field(default_factory=list)
    notification_sent: bool = False
    completed_at: Optional[str] = None
    failed_at: Optional[str] = None
    failure_reason: Optional[str] = None

    model_config = _CAMEL_CONFIG

    @model_validator(mode="after")
    def _derive_order_value(self) -> "Order":
        if self.order_value is None:
            self.order_value = self.computed_value()
        return self

    @property
    def key(self) -> tuple[str, str]:
        """Composite store key."""
        return (self.order_id, self.timestamp)

    def computed_value(self) -> float:
        """Sum of quantity x price over all items."""
        return round(sum(item.quantity * item.price for item in self.items), 2)

    def is_terminal(self) -> bool:
        return self.status in (OrderStatus.COMPLETED, OrderStatus.FAILED)

    def to_record(self) -> dict:
        """Serialize with the camelCase keys used in storage and on the wire."""
        return self.model_dump(mode="json", by_alias=True)


class OrderSubmission(BaseModel):
    """
    The body accepted by the ingress boundary.

    Only the customer-facing fields are read; processing fields a client
    might send are ignored so a submission can never skip workflow steps.
    """
    order_id: str = Field(..., min_length=1)
    timestamp: Optional[str] = None
    priority: Priority = Priority.MEDIUM
    customer_name: str = ""
    customer_email: str = ""
    items: list[OrderItem] = Field(default_factory=list)
    order_value: Optional[float] = None

    model_config = ConfigDict(
        use_enum_values=True,
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
        str_strip_whitespace=True,
    )

    def to_order(self) -> Order:
        fields = self.model_dump(exclude_none=True)
        return Order(**fields)


# =============================================================================
# Notification Subscriptions
# =============================================================================

class NotificationPreferences(BaseModel):
    """
    Which lifecycle events a subscriber wants to hear about.

    Every key defaults to True. Unknown keys and non-boolean values are
    rejected.
    """
    order_created: bool = True
    order_completed: bool = True
    order_failed: bool = True
    order_urgent: bool = True

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="forbid",
        strict=True,
    )

    def enabled(self, preference_key: str) -> bool:
        """Check a preference by its camelCase key (e.g. "orderUrgent")."""
        return self.to_dict().get(preference_key, False)

    def to_dict(self) -> dict[str, bool]:
        return self.model_dump(by_alias=True)


class Subscription(BaseModel):
    """
    A recipient registered with the notification registry.

    Deliveries only happen once the subscription is CONFIRMED.
    """
    email: str
    preferences: NotificationPreferences = Field(default_factory=NotificationPreferences)
    status: SubscriptionStatus = Field(default=SubscriptionStatus.PENDING_CONFIRMATION)
    subscription_arn: str
    confirmation_token: str
    created_at: str = Field(default_factory=utc_now_iso)
    confirmed_at: Optional[str] = None

    model_config = _CAMEL_CONFIG

    @property
    def is_confirmed(self) -> bool:
        return self.status == SubscriptionStatus.CONFIRMED
