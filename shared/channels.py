"""
Mock email channel for order notifications.

The channel simulates delivery by logging each send. In a deployment it would
sit in front of a real provider (SNS email subscriptions, SES, SendGrid).

Design decisions:
- All sends are logged for visibility
- The channel tracks sent messages for test assertions
- Failures can be simulated randomly (fail_rate) or per recipient (fail_for)
- An empty recipient is a hard failure and raises instead of returning
"""

import logging
import random
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Iterable, Optional

from shared.errors import NotificationDeliveryError

logger = logging.getLogger("notifications")


@dataclass
class NotificationResult:
    """
    Result of a notification send attempt.

    Captures success/failure and metadata for debugging and testing.
    """
    success: bool
    recipient: str
    subject: str
    body: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    error: Optional[str] = None

    def __str__(self) -> str:
        status = "✓" if self.success else "✗"
        return f"{status} EMAIL to {self.recipient}: {self.subject}"


class EmailChannel:
    """
    Mock email channel.

    Logs email sends and tracks them for test assertions.
    Can simulate failures for testing error handling.
    """

    def __init__(
        self,
        fail_rate: float = 0.0,
        fail_for: Optional[Iterable[str]] = None,
        from_addr: str = "orders@order-pipeline.local",
        rng: Optional[random.Random] = None,
        history_limit: int = 1000,
    ):
        """
        Initialize the email channel.

        Args:
            fail_rate: Probability of send failure (0.0 to 1.0), for testing.
            fail_for: Recipients whose sends always fail, for testing.
            from_addr: Sender address (for logging).
            rng: Random source used for fail_rate.
            history_limit: Most recent sends kept in sent_messages.
        """
        self.fail_rate = fail_rate
        self.fail_for = set(fail_for or ())
        self.from_addr = from_addr
        self._rng = rng or random.Random()
        self.sent_messages: deque[NotificationResult] = deque(maxlen=history_limit)

    def send(self, to: str, subject: str, body: str) -> NotificationResult:
        """
        Send an email (mock implementation).

        Returns:
            NotificationResult indicating success/failure

        Raises:
            NotificationDeliveryError: If there is no recipient to send to.
        """
        if not to:
            raise NotificationDeliveryError(f"No recipient for '{subject}'")

        if to in self.fail_for or self._rng.random() < self.fail_rate:
            result = NotificationResult(
                success=False,
                recipient=to,
                subject=subject,
                body=body,
                error="Simulated email delivery failure",
            )
            logger.error(f"[EMAIL FAILED] To: {to} | Subject: {subject} | Error: {result.error}")
        else:
            result = NotificationResult(
                success=True,
                recipient=to,
                subject=subject,
                body=body,
            )
            logger.info(f"[EMAIL] From: {self.from_addr} | To: {to} | Subject: {subject}")
            logger.debug(f"[EMAIL BODY] {body}")

        self.sent_messages.append(result)
        return result

    def get_sent_count(self) -> int:
        """Get the number of messages sent (for testing)."""
        return len(self.sent_messages)

    def get_successful_sends(self) -> list[NotificationResult]:
        return [m for m in self.sent_messages if m.success]

    def clear_history(self):
        """Clear sent message history (useful between tests)."""
        self.sent_messages.clear()

    def find_message_to(self, recipient: str) -> Optional[NotificationResult]:
        """Find the first message sent to a specific recipient."""
        for msg in self.sent_messages:
            if msg.recipient == recipient:
                return msg
        return None

    def messages_to(self, recipient: str) -> list[NotificationResult]:
        """All messages sent to a specific recipient."""
        return [m for m in self.sent_messages if m.recipient == recipient]
