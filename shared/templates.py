"""
Notification message templates.

One email template per notification kind. Templates use Python's string
formatting with {variable} placeholders.

Design decisions:
- NotificationType values double as the subscriber preference keys
  (orderCreated, orderUrgent, ...), so a template and a filter share a name
- Subscription confirmation has a template but no preference key; it is
  always sent
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class NotificationType(str, Enum):
    """
    Supported notification types.

    Each lifecycle type corresponds to an event kind the publisher fans out.
    """
    ORDER_CREATED = "orderCreated"
    ORDER_COMPLETED = "orderCompleted"
    ORDER_FAILED = "orderFailed"
    ORDER_URGENT = "orderUrgent"

    # Registry handshake
    SUBSCRIPTION_CONFIRMATION = "subscriptionConfirmation"


@dataclass
class NotificationTemplate:
    """An email template: subject line plus body."""
    notification_type: NotificationType
    email_subject: str
    email_body: str

    def render_email(self, **kwargs) -> tuple[str, str]:
        """
        Render the email template with provided variables.

        Returns:
            Tuple of (subject, body)
        """
        return (
            self.email_subject.format(**kwargs),
            self.email_body.format(**kwargs).strip(),
        )


# =============================================================================
# Template Definitions
# =============================================================================

TEMPLATES: dict[NotificationType, NotificationTemplate] = {

    # -------------------------------------------------------------------------
    # Order Lifecycle Notifications
    # -------------------------------------------------------------------------

    NotificationType.ORDER_CREATED: NotificationTemplate(
        notification_type=NotificationType.ORDER_CREATED,
        email_subject="New Order {order_id}",
        email_body="""
New Order Created

Order ID: {order_id}
Customer: {customer_name} ({customer_email})
Order Value: ${order_value:.2f}
Priority: {priority}
Items: {item_count}

{item_list}

The order has been received and is being processed.
""",
    ),

    NotificationType.ORDER_URGENT: NotificationTemplate(
        notification_type=NotificationType.ORDER_URGENT,
        email_subject="URGENT: Order {order_id}",
        email_body="""
URGENT ORDER ALERT

Order ID: {order_id}
Customer: {customer_name} ({customer_email})
Order Value: ${order_value:.2f}
Items: {item_count}

This order requires immediate attention!
Please prioritize processing.
""",
    ),

    NotificationType.ORDER_COMPLETED: NotificationTemplate(
        notification_type=NotificationType.ORDER_COMPLETED,
        email_subject="Order {order_id} - Processing Complete",
        email_body="""
Order Processed Successfully!

Order ID: {order_id}
Customer: {customer_name} ({customer_email})
Amount: ${order_value:.2f}
Transaction ID: {transaction_id}
Status: Completed

Your order has been validated, payment processed, and inventory updated.
Estimated delivery: 3-5 business days.

Thank you for your order!
""",
    ),

    NotificationType.ORDER_FAILED: NotificationTemplate(
        notification_type=NotificationType.ORDER_FAILED,
        email_subject="Order {order_id} - Processing Failed",
        email_body="""
Order Processing Failed

Order ID: {order_id}
Customer: {customer_name} ({customer_email})
Error: {failure_reason}
Step Failed: {failed_step}

The order has been marked as failed and requires manual review.
Customer service has been notified.
""",
    ),

    # -------------------------------------------------------------------------
    # Subscription Handshake
    # -------------------------------------------------------------------------

    NotificationType.SUBSCRIPTION_CONFIRMATION: NotificationTemplate(
        notification_type=NotificationType.SUBSCRIPTION_CONFIRMATION,
        email_subject="Confirm your order notification subscription",
        email_body="""
You have chosen to subscribe to order notifications on {topic_arn}.

Enabled notifications: {enabled}

To confirm this subscription, use the token below:

{confirmation_token}
""",
    ),
}


# =============================================================================
# Template Access Functions
# =============================================================================

def get_template(notification_type: NotificationType) -> Optional[NotificationTemplate]:
    return TEMPLATES.get(notification_type)


def render_notification(notification_type: NotificationType, **context) -> tuple[str, str]:
    """
    Render a notification email.

    Args:
        notification_type: The type of notification
        **context: Variables to substitute in the template

    Returns:
        (subject, body)

    Raises:
        ValueError: If no template exists for the type
    """
    template = get_template(notification_type)
    if not template:
        raise ValueError(f"No template found for notification type: {notification_type}")
    return template.render_email(**context)


def format_item_list(items: list[dict]) -> str:
    """
    Format order items for inclusion in email bodies.

    Args:
        items: List of dicts with 'name', 'quantity', and optionally 'price'
    """
    lines = []
    for item in items:
        name = item.get("name") or item.get("id") or "(unnamed item)"
        quantity = item.get("quantity", 1)
        if item.get("price") is not None:
            lines.append(f"  - {name} (x{quantity}) - ${item['price']:.2f}")
        else:
            lines.append(f"  - {name} (x{quantity})")
    return "\n".join(lines)
