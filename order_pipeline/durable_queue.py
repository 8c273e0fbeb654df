"""
In-memory durable queue with visibility timeouts and a dead-letter store.

Models the at-least-once delivery contract the consumers rely on:

- A received message is hidden for `visibility_timeout` seconds and carries a
  fresh receipt handle. Only the holder of the current receipt can ack it.
- A message that is not acked before its deadline becomes visible again.
- Once a message has been received `max_receive_count` times without an ack,
  the next lapse moves it to the dead-letter store instead.

Design decisions:
- Expired in-flight messages are reclaimed lazily on every queue operation,
  so no timer thread is needed
- The clock is injectable so tests can advance time deterministically
- One lock guards the queue's structures; it is never held while a consumer
  processes a message
"""

import json
import logging
import threading
import time
from collections import deque
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Optional, Union
from uuid import uuid4

logger = logging.getLogger("queue")

Clock = Callable[[], float]


@dataclass
class QueueMessage:
    """A message as tracked by the queue."""
    message_id: str
    body: str
    sent_at: float
    receive_count: int = 0
    visible_at: float = 0.0
    receipt_handle: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "messageId": self.message_id,
            "body": self.body,
            "sentAt": self.sent_at,
            "receiveCount": self.receive_count,
        }


@dataclass(frozen=True)
class ReceivedMessage:
    """What a consumer gets back from dequeue()."""
    message_id: str
    body: str
    receipt_handle: str
    receive_count: int

    def json(self) -> Any:
        return json.loads(self.body)


class DurableQueue:
    """
    At-least-once message buffer.

    Example:
        queue = DurableQueue(visibility_timeout=30, max_receive_count=3)
        queue.enqueue({"orderId": "T1"})
        for message in queue.dequeue(10):
            handle(message)
            queue.ack(message.receipt_handle)
    """

    def __init__(
        self,
        name: str = "orders",
        visibility_timeout: float = 30.0,
        max_receive_count: int = 3,
        clock: Optional[Clock] = None,
    ):
        if visibility_timeout <= 0:
            raise ValueError("visibility_timeout must be positive")
        if max_receive_count < 1:
            raise ValueError("max_receive_count must be at least 1")

        self.name = name
        self.visibility_timeout = visibility_timeout
        self.max_receive_count = max_receive_count
        self._clock = clock or time.monotonic

        self._lock = threading.Lock()
        self._visible: deque[QueueMessage] = deque()
        self._in_flight: dict[str, QueueMessage] = {}
        self._dead_letters: list[QueueMessage] = []

    # =========================================================================
    # Producer side
    # =========================================================================

    def enqueue(self, body: Union[str, dict]) -> str:
        """
        Buffer a message.

        Args:
            body: Message body; dicts are JSON-encoded.

        Returns:
            The new message id.
        """
        if not isinstance(body, str):
            body = json.dumps(body)
        message = QueueMessage(
            message_id=str(uuid4()),
            body=body,
            sent_at=self._clock(),
        )
        with self._lock:
            self._visible.append(message)
        logger.debug(f"[{self.name}] Enqueued {message.message_id}")
        return message.message_id

    # =========================================================================
    # Consumer side
    # =========================================================================

    def dequeue(self, max_messages: int = 10) -> list[ReceivedMessage]:
        """
        Receive up to `max_messages` visible messages.

        Each returned message is hidden until now + visibility_timeout and
        carries a new receipt handle; older handles for it become stale.
        """
        if max_messages < 1:
            raise ValueError("max_messages must be at least 1")

        received = []
        with self._lock:
            now = self._clock()
            self._reclaim_expired(now)
            while self._visible and len(received) < max_messages:
                message = self._visible.popleft()
                message.receive_count += 1
                message.receipt_handle = str(uuid4())
                message.visible_at = now + self.visibility_timeout
                self._in_flight[message.message_id] = message
                received.append(ReceivedMessage(
                    message_id=message.message_id,
                    body=message.body,
                    receipt_handle=message.receipt_handle,
                    receive_count=message.receive_count,
                ))
        return received

    def ack(self, receipt_handle: str) -> bool:
        """
        Delete the message held under `receipt_handle`.

        Returns:
            False if the handle is stale (the message was redelivered or
            already deleted), True otherwise.
        """
        with self._lock:
            message = self._find_in_flight(receipt_handle)
            if message is None:
                logger.warning(f"[{self.name}] Ack with stale receipt handle {receipt_handle[:8]}")
                return False
            del self._in_flight[message.message_id]
        logger.debug(f"[{self.name}] Acked {message.message_id}")
        return True

    def release(self, receipt_handle: str) -> bool:
        """
        Make an in-flight message visible again immediately.

        The release counts as a lapsed receive, so a message that has reached
        max_receive_count goes to the dead-letter store.
        """
        with self._lock:
            message = self._find_in_flight(receipt_handle)
            if message is None:
                return False
            now = self._clock()
            message.visible_at = now
            self._reclaim_expired(now)
        return True

    # =========================================================================
    # Dead letters
    # =========================================================================

    def dead_letters(self) -> list[QueueMessage]:
        """Copies of the messages in the dead-letter store."""
        with self._lock:
            self._reclaim_expired(self._clock())
            return [replace(m) for m in self._dead_letters]

    def redrive_dead_letters(self) -> int:
        """
        Move every dead letter back to the main queue with a fresh receive count.

        Returns:
            Number of messages moved.
        """
        with self._lock:
            self._reclaim_expired(self._clock())
            moved = self._dead_letters
            self._dead_letters = []
            for message in moved:
                message.receive_count = 0
                message.receipt_handle = None
                self._visible.append(message)
        if moved:
            logger.info(f"[{self.name}] Redrove {len(moved)} dead letters")
        return len(moved)

    # =========================================================================
    # Introspection
    # =========================================================================

    def depth(self) -> int:
        """Approximate number of visible messages."""
        with self._lock:
            self._reclaim_expired(self._clock())
            return len(self._visible)

    def in_flight(self) -> int:
        """Approximate number of received but unacked messages."""
        with self._lock:
            self._reclaim_expired(self._clock())
            return len(self._in_flight)

    def stats(self) -> dict[str, int]:
        with self._lock:
            self._reclaim_expired(self._clock())
            return {
                "visible": len(self._visible),
                "inFlight": len(self._in_flight),
                "deadLetters": len(self._dead_letters),
            }

    # =========================================================================
    # Internals (caller holds self._lock)
    # =========================================================================

    def _find_in_flight(self, receipt_handle: str) -> Optional[QueueMessage]:
        for message in self._in_flight.values():
            if message.receipt_handle == receipt_handle:
                return message
        return None

    def _reclaim_expired(self, now: float) -> None:
        expired = [m for m in self._in_flight.values() if m.visible_at <= now]
        for message in expired:
            del self._in_flight[message.message_id]
            message.receipt_handle = None
            if message.receive_count >= self.max_receive_count:
                self._dead_letters.append(message)
                logger.warning(
                    f"[{self.name}] Message {message.message_id} dead-lettered "
                    f"after {message.receive_count} receives"
                )
            else:
                self._visible.append(message)
