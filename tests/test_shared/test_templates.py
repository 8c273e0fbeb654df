"""
Tests for notification templates.
"""

import pytest

from shared.templates import (
    TEMPLATES,
    NotificationType,
    format_item_list,
    render_notification,
)

ORDER_CONTEXT = {
    "order_id": "T1",
    "customer_name": "Alice",
    "customer_email": "alice@example.com",
    "order_value": 999.0,
    "priority": "urgent",
    "item_count": 1,
    "item_list": "  - Desk (x1) - $999.00",
    "transaction_id": "TXN-1",
    "failure_reason": "Payment declined",
    "failed_step": "ProcessPayment",
}


class TestTemplates:
    """Tests for template rendering."""

    def test_every_type_has_a_template(self):
        assert set(TEMPLATES) == set(NotificationType)

    @pytest.mark.parametrize("notification_type", [
        NotificationType.ORDER_CREATED,
        NotificationType.ORDER_COMPLETED,
        NotificationType.ORDER_FAILED,
        NotificationType.ORDER_URGENT,
    ])
    def test_lifecycle_templates_render(self, notification_type):
        subject, body = render_notification(notification_type, **ORDER_CONTEXT)

        assert "T1" in subject
        assert "T1" in body

    def test_urgent_subject(self):
        subject, _ = render_notification(NotificationType.ORDER_URGENT, **ORDER_CONTEXT)
        assert subject == "URGENT: Order T1"

    def test_failed_body_has_reason_and_step(self):
        _, body = render_notification(NotificationType.ORDER_FAILED, **ORDER_CONTEXT)
        assert "Payment declined" in body
        assert "ProcessPayment" in body

    def test_confirmation_template(self):
        subject, body = render_notification(
            NotificationType.SUBSCRIPTION_CONFIRMATION,
            topic_arn="arn:test",
            enabled="orderCreated",
            confirmation_token="tok-123",
        )
        assert "Confirm" in subject
        assert "tok-123" in body

    def test_missing_variable_raises(self):
        with pytest.raises(KeyError):
            render_notification(NotificationType.ORDER_CREATED, order_id="T1")


class TestFormatItemList:
    def test_with_prices(self):
        text = format_item_list([{"name": "Desk", "quantity": 2, "price": 10}])
        assert text == "  - Desk (x2) - $10.00"

    def test_without_price(self):
        assert format_item_list([{"name": "Desk", "quantity": 1}]) == "  - Desk (x1)"

    def test_empty(self):
        assert format_item_list([]) == ""
