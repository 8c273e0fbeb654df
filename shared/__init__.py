"""
Shared infrastructure for the order pipeline.

This package contains code used by every pipeline component:
- Domain models (Order, Subscription, ...)
- The keyed order store
- The mock email channel and notification templates
- Settings, logging setup and the error taxonomy
"""

from shared.models import (
    Order,
    OrderItem,
    OrderStatus,
    OrderSubmission,
    Priority,
    Subscription,
    NotificationPreferences,
)
from shared.data_store import OrderStore
from shared.channels import EmailChannel, NotificationResult
from shared.config import Settings, configure_logging

__all__ = [
    "Order",
    "OrderItem",
    "OrderStatus",
    "OrderSubmission",
    "Priority",
    "Subscription",
    "NotificationPreferences",
    "OrderStore",
    "EmailChannel",
    "NotificationResult",
    "Settings",
    "configure_logging",
]
