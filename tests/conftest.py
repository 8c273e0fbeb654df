"""
Shared pytest fixtures for the order pipeline tests.

These fixtures provide fresh collaborators per test, a manual clock for the
queue, and deterministic payment gateways so no test depends on randomness
or sleeping.
"""

from typing import Callable

import pytest

from order_pipeline.durable_queue import DurableQueue
from order_pipeline.notification_service import NotificationService
from order_pipeline.pipeline import OrderPipeline
from order_pipeline.services.payment import PaymentResult
from shared.channels import EmailChannel
from shared.config import Settings
from shared.data_store import OrderStore
from shared.models import Order


class ManualClock:
    """A clock tests advance by hand."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class ApprovingGateway:
    """Payment gateway that approves every charge."""

    def __init__(self):
        self.charged: list[str] = []

    def charge(self, order: Order) -> PaymentResult:
        self.charged.append(order.order_id)
        return PaymentResult(
            success=True,
            amount=order.order_value,
            transaction_id=f"TXN-TEST-{order.order_id}",
            message="Payment approved",
        )


class DecliningGateway:
    """Payment gateway that declines every charge."""

    def __init__(self):
        self.charged: list[str] = []

    def charge(self, order: Order) -> PaymentResult:
        self.charged.append(order.order_id)
        return PaymentResult(
            success=False,
            amount=order.order_value,
            transaction_id=f"TXN-DECLINED-{order.order_id}",
            message="Payment declined",
        )


class ExplodingGateway:
    """Payment gateway whose remote call blows up."""

    def charge(self, order: Order) -> PaymentResult:
        raise ConnectionError("payment provider unreachable")


# =============================================================================
# Infrastructure Fixtures
# =============================================================================

@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def order_store() -> OrderStore:
    """Fresh, empty OrderStore for each test."""
    return OrderStore()


@pytest.fixture
def queue(clock: ManualClock) -> DurableQueue:
    """Queue with the production defaults (30 s visibility, 3 receives)."""
    return DurableQueue(visibility_timeout=30, max_receive_count=3, clock=clock)


@pytest.fixture
def email_channel() -> EmailChannel:
    """Fresh EmailChannel for each test."""
    return EmailChannel(fail_rate=0.0)


@pytest.fixture
def notifications(email_channel: EmailChannel) -> NotificationService:
    return NotificationService(channel=email_channel)


@pytest.fixture
def subscribe_confirmed(notifications: NotificationService, email_channel: EmailChannel) -> Callable:
    """
    Subscribe and confirm a recipient in one step.

    The confirmation email is cleared from the channel history so tests only
    see lifecycle notifications.
    """
    def _subscribe(email: str, preferences: dict = None):
        subscription = notifications.subscribe(email, preferences)
        confirmed = notifications.confirm(subscription.confirmation_token)
        email_channel.clear_history()
        return confirmed

    return _subscribe


@pytest.fixture
def approving_gateway() -> ApprovingGateway:
    return ApprovingGateway()


@pytest.fixture
def declining_gateway() -> DecliningGateway:
    return DecliningGateway()


@pytest.fixture
def exploding_gateway() -> ExplodingGateway:
    return ExplodingGateway()


# =============================================================================
# Order Fixtures
# =============================================================================

@pytest.fixture
def make_order() -> Callable[..., Order]:
    """
    Factory for valid orders.

    Defaults to a single $999 item so the order clears the high-value rule.
    """
    def _make(order_id: str = "T1", **overrides) -> Order:
        fields = {
            "order_id": order_id,
            "timestamp": "2024-05-01T12:00:00+00:00",
            "customer_name": "Alice Example",
            "customer_email": "alice@example.com",
            "priority": "medium",
            "items": [{"id": "desk-1", "name": "Standing desk", "quantity": 1, "price": 999.0}],
        }
        fields.update(overrides)
        return Order(**fields)

    return _make


@pytest.fixture
def urgent_submission() -> dict:
    """The end-to-end submission: urgent, $999, one item."""
    return {
        "orderId": "T1",
        "timestamp": "2024-05-01T12:00:00+00:00",
        "customerName": "Alice Example",
        "customerEmail": "alice@example.com",
        "priority": "urgent",
        "orderValue": 999,
        "items": [{"name": "Standing desk", "quantity": 1, "price": 999}],
    }


# =============================================================================
# Pipeline Fixtures
# =============================================================================

@pytest.fixture
def make_pipeline(clock: ManualClock, email_channel: EmailChannel, approving_gateway: ApprovingGateway) -> Callable:
    """
    Factory for a fully wired pipeline that runs on the test thread.

    Workflows run inline and no consumer threads are started; call
    pipeline.drain() to process the queue.
    """
    def _make(payment_gateway=None, inventory=None, **settings) -> OrderPipeline:
        fields = {"inline_workflows": True, "consumer_workers": 0}
        fields.update(settings)
        return OrderPipeline(
            Settings(**fields),
            channel=email_channel,
            payment_gateway=payment_gateway or approving_gateway,
            inventory=inventory,
            clock=clock,
        )

    return _make
