"""
Exception types raised across the order pipeline.

Input and persistence errors propagate to the caller (the HTTP boundary or
the queue, which redelivers). Notification and event-emission errors are
logged where they happen and never abort order processing.
"""

from typing import Optional


class OrderPipelineError(Exception):
    """Base class for all pipeline errors."""


class InputValidationError(OrderPipelineError):
    """A submission was rejected at the ingress boundary and never enqueued."""

    def __init__(self, message: str, errors: Optional[list[dict]] = None):
        super().__init__(message)
        self.errors = errors or []


class TransientProcessingError(OrderPipelineError):
    """
    Processing of a queued message failed.

    The message stays unacknowledged and is redelivered until the queue's
    receive limit moves it to the dead-letter store.
    """


class StatusTransitionError(TransientProcessingError):
    """An update tried to move an order's status backwards or sideways."""

    def __init__(self, order_id: str, current: str, requested: str):
        super().__init__(
            f"Order {order_id}: illegal status transition {current} -> {requested}"
        )
        self.order_id = order_id
        self.current = current
        self.requested = requested


class InsufficientStockError(OrderPipelineError):
    """The inventory cannot cover an order line."""

    def __init__(self, item_id: str, requested: int, available: int):
        super().__init__(
            f"Insufficient stock for {item_id}: requested {requested}, available {available}"
        )
        self.item_id = item_id
        self.requested = requested
        self.available = available


class NotificationDeliveryError(OrderPipelineError):
    """A channel could not hand a message to its recipient."""


class SubscriptionError(OrderPipelineError):
    """Base class for notification registry errors."""


class InvalidEmailError(SubscriptionError):
    """The email address does not look like an address."""


class InvalidPreferencesError(SubscriptionError):
    """The preference map contains unknown keys or non-boolean values."""


class SubscriptionNotFoundError(SubscriptionError):
    """No subscription exists for the given email or confirmation token."""
