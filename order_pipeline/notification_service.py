"""
Notification registry and publisher.

Recipients subscribe with an email address and a preference map saying which
lifecycle events they want. Subscriptions start pending and only receive
order notifications after the recipient confirms the token emailed to them.

Design decisions:
- The registry validates input before touching any state
- Each subscription record is updated under its own lock
- Publishing renders one message per event and delivers it to every
  confirmed, interested subscriber
- One recipient's failure is logged and never blocks the others

Key insight:
- The workflow and router only hand events over; all "who gets what" logic
  lives here, keyed on the event type
"""

import logging
import re
import threading
from dataclasses import dataclass, field
from typing import Any, Optional
from uuid import uuid4

from pydantic import ValidationError

from order_pipeline.events import EventType, OrderEvent, describe_items
from shared.channels import EmailChannel
from shared.errors import (
    InvalidEmailError,
    InvalidPreferencesError,
    SubscriptionNotFoundError,
)
from shared.locks import KeyedLocks
from shared.models import (
    NotificationPreferences,
    Subscription,
    SubscriptionStatus,
    utc_now_iso,
)
from shared.templates import NotificationType, render_notification

logger = logging.getLogger("notification_service")

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

# Event kind -> template and preference key. Must cover every EventType.
NOTIFICATION_FOR_EVENT: dict[EventType, NotificationType] = {
    EventType.ORDER_CREATED: NotificationType.ORDER_CREATED,
    EventType.ORDER_COMPLETED: NotificationType.ORDER_COMPLETED,
    EventType.ORDER_FAILED: NotificationType.ORDER_FAILED,
    EventType.ORDER_URGENT: NotificationType.ORDER_URGENT,
}


def normalize_email(email: Any) -> str:
    """
    Strip and lower-case an address, rejecting anything that isn't one.

    Raises:
        InvalidEmailError: If the address doesn't match EMAIL_PATTERN
    """
    if not isinstance(email, str) or not EMAIL_PATTERN.match(email.strip()):
        raise InvalidEmailError(f"Invalid email address: {email!r}")
    return email.strip().lower()


def parse_preferences(preferences: Optional[dict[str, Any]]) -> NotificationPreferences:
    """
    Validate a preference map; omitted keys default to enabled.

    Raises:
        InvalidPreferencesError: On unknown keys or non-boolean values
    """
    if preferences is None:
        return NotificationPreferences()
    if isinstance(preferences, NotificationPreferences):
        return preferences
    if not isinstance(preferences, dict):
        raise InvalidPreferencesError("Preferences must be an object of booleans")
    try:
        return NotificationPreferences.model_validate(preferences)
    except ValidationError as e:
        problems = ", ".join(
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
        )
        raise InvalidPreferencesError(f"Invalid preferences ({problems})") from e


# =============================================================================
# Registry
# =============================================================================

class SubscriptionRegistry:
    """
    Thread-safe store of subscriptions, keyed by email.

    Writes to one subscriber hold that subscriber's lock; the map itself is
    guarded by a short-lived lock for inserts, deletes and iteration.
    """

    def __init__(self, topic_arn: str = "arn:local:sns:order-notifications"):
        self.topic_arn = topic_arn
        self._subscriptions: dict[str, Subscription] = {}
        self._tokens: dict[str, str] = {}  # confirmation token -> email
        self._guard = threading.Lock()
        self._locks = KeyedLocks()

    def subscribe(self, email: str, preferences: Optional[dict[str, Any]] = None) -> tuple[Subscription, bool]:
        """
        Register (or update) a subscriber.

        Re-subscribing replaces the preferences and keeps the status.

        Returns:
            (subscription, created)

        Raises:
            InvalidEmailError, InvalidPreferencesError: Before any state changes
        """
        email = normalize_email(email)
        prefs = parse_preferences(preferences)

        with self._locks.hold(email):
            existing = self.get(email)
            if existing is not None:
                updated = existing.model_copy(update={"preferences": prefs})
                with self._guard:
                    self._subscriptions[email] = updated
                logger.info(f"Updated preferences for {email}: {prefs.to_dict()}")
                return updated.model_copy(), False

            subscription = Subscription(
                email=email,
                preferences=prefs,
                subscription_arn=f"{self.topic_arn}:{uuid4()}",
                confirmation_token=uuid4().hex,
            )
            with self._guard:
                self._subscriptions[email] = subscription
                self._tokens[subscription.confirmation_token] = email
            logger.info(f"Subscribed {email} (pending confirmation)")
            return subscription.model_copy(), True

    def confirm(self, token: str) -> Subscription:
        """
        Confirm the subscription that was sent `token`.

        Raises:
            SubscriptionNotFoundError: If the token is unknown
        """
        with self._guard:
            email = self._tokens.get(token)
        if email is None:
            raise SubscriptionNotFoundError("Unknown confirmation token")

        with self._locks.hold(email):
            current = self.get(email)
            # The token may belong to a subscription removed in the meantime
            if current is None or current.confirmation_token != token:
                raise SubscriptionNotFoundError(f"No subscription for {email}")
            if current.is_confirmed:
                return current
            confirmed = current.model_copy(update={
                "status": SubscriptionStatus.CONFIRMED.value,
                "confirmed_at": utc_now_iso(),
            })
            with self._guard:
                self._subscriptions[email] = confirmed
        logger.info(f"Confirmed subscription for {email}")
        return confirmed.model_copy()

    def unsubscribe(self, email: str) -> Subscription:
        """
        Remove a subscriber.

        Raises:
            SubscriptionNotFoundError: If there is no such subscriber; the
                registry is left unchanged
        """
        key = email.strip().lower() if isinstance(email, str) else email
        with self._locks.hold(key):
            with self._guard:
                removed = self._subscriptions.pop(key, None)
                if removed is not None:
                    self._tokens.pop(removed.confirmation_token, None)
        if removed is None:
            raise SubscriptionNotFoundError(f"No subscription for {email}")
        logger.info(f"Unsubscribed {key}")
        return removed

    def get(self, email: str) -> Optional[Subscription]:
        with self._guard:
            subscription = self._subscriptions.get(email.strip().lower())
        return subscription.model_copy() if subscription else None

    def all(self) -> list[Subscription]:
        with self._guard:
            return [s.model_copy() for s in self._subscriptions.values()]

    def matching(self, notification_type: NotificationType) -> list[Subscription]:
        """Confirmed subscribers that have `notification_type` enabled."""
        return [
            s for s in self.all()
            if s.is_confirmed and s.preferences.enabled(notification_type.value)
        ]

    def __len__(self) -> int:
        with self._guard:
            return len(self._subscriptions)


# =============================================================================
# Publisher
# =============================================================================

@dataclass
class PublishReport:
    """What happened when one event was published."""
    event_type: str
    order_id: Optional[str]
    delivered: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)

    @property
    def recipients(self) -> list[str]:
        return self.delivered + self.failed


class NotificationService:
    """
    Facade over the registry and the email channel.

    Example:
        service = NotificationService(channel=EmailChannel())
        subscription = service.subscribe("ops@example.com", {"orderCreated": False})
        service.confirm(subscription.confirmation_token)
        service.publish(order_failed(order, "Payment declined"))
    """

    def __init__(
        self,
        channel: Optional[EmailChannel] = None,
        registry: Optional[SubscriptionRegistry] = None,
        topic_arn: str = "arn:local:sns:order-notifications",
    ):
        self.channel = channel or EmailChannel()
        self.registry = registry or SubscriptionRegistry(topic_arn=topic_arn)

    @property
    def topic_arn(self) -> str:
        return self.registry.topic_arn

    # =========================================================================
    # Subscription management
    # =========================================================================

    def subscribe(self, email: str, preferences: Optional[dict[str, Any]] = None) -> Subscription:
        """
        Subscribe a recipient and email them a confirmation token.

        A failed confirmation email is logged; the subscription still exists
        and the recipient can subscribe again to get a new email.
        """
        subscription, created = self.registry.subscribe(email, preferences)
        if created or not subscription.is_confirmed:
            self._send_confirmation(subscription)
        return subscription

    def confirm(self, token: str) -> Subscription:
        return self.registry.confirm(token)

    def unsubscribe(self, email: str) -> Subscription:
        return self.registry.unsubscribe(email)

    def _send_confirmation(self, subscription: Subscription) -> None:
        enabled = [k for k, v in subscription.preferences.to_dict().items() if v]
        subject, body = render_notification(
            NotificationType.SUBSCRIPTION_CONFIRMATION,
            topic_arn=self.topic_arn,
            enabled=", ".join(enabled) or "(none)",
            confirmation_token=subscription.confirmation_token,
        )
        try:
            result = self.channel.send(subscription.email, subject, body)
        except Exception as e:
            logger.error(f"Failed to send confirmation to {subscription.email}: {e}")
            return
        if not result.success:
            logger.error(f"Failed to send confirmation to {subscription.email}: {result.error}")

    # =========================================================================
    # Publishing
    # =========================================================================

    def publish(self, event: OrderEvent) -> PublishReport:
        """
        Deliver an event to every confirmed subscriber that wants it.

        Raises:
            TypeError: If `event` is not an OrderEvent
        """
        if not isinstance(event, OrderEvent):
            raise TypeError(f"Cannot publish {type(event).__name__}; expected an OrderEvent")

        notification_type = NOTIFICATION_FOR_EVENT[event.event_type]
        report = PublishReport(event_type=event.event_type.value, order_id=event.order_id)

        recipients = self.registry.matching(notification_type)
        if not recipients:
            logger.info(f"No subscribers for {notification_type.value}; {event} not delivered")
            return report

        subject, body = render_notification(notification_type, **self._message_context(event))
        for subscription in recipients:
            try:
                result = self.channel.send(subscription.email, subject, body)
            except Exception as e:
                logger.error(f"Delivery of {event} to {subscription.email} raised: {e}")
                report.failed.append(subscription.email)
                continue

            if result.success:
                report.delivered.append(subscription.email)
            else:
                logger.error(f"Delivery of {event} to {subscription.email} failed: {result.error}")
                report.failed.append(subscription.email)

        logger.info(
            f"Published {event}: {len(report.delivered)} delivered, {len(report.failed)} failed"
        )
        return report

    @staticmethod
    def _message_context(event: OrderEvent) -> dict[str, Any]:
        detail = event.detail
        items = detail.get("items") or []
        return {
            "order_id": detail.get("orderId", "(unknown)"),
            "customer_name": detail.get("customerName") or "(unknown)",
            "customer_email": detail.get("customerEmail") or "n/a",
            "order_value": float(detail.get("orderValue") or 0.0),
            "priority": detail.get("priority", "medium"),
            "item_count": len(items),
            "item_list": describe_items(event),
            "transaction_id": detail.get("transactionId") or "n/a",
            "failure_reason": detail.get("failureReason") or "Unknown error",
            "failed_step": detail.get("failedStep") or "Unknown",
        }
