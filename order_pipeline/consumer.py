"""
Queue consumer: persists submitted orders and announces them.

For every message the consumer
1. parses the Order,
2. upserts it into the order store keyed on (orderId, timestamp),
3. routes an OrderCreated event, best-effort,
4. acks the message.

A failure in steps 1-2 leaves the message unacked so the queue redelivers
it; after max_receive_count attempts it lands in the dead-letter store.
A failure in step 3 is logged and the message is still acked.

Design decisions:
- Messages in a batch are handled independently; one bad message never
  fails its neighbours
- Redelivery is safe: the upsert never duplicates or regresses a record
- An OrderCreated is re-emitted on redelivery only while the stored record
  is still SUBMITTED (the workflow dedupes a second start)
"""

import logging
import threading
from dataclasses import dataclass, field
from typing import Optional

from pydantic import ValidationError

from order_pipeline.durable_queue import DurableQueue, ReceivedMessage
from order_pipeline.events import order_created
from order_pipeline.router import EventRouter
from shared.data_store import OrderStore
from shared.errors import TransientProcessingError
from shared.models import Order, OrderStatus, utc_now_iso

logger = logging.getLogger("order_consumer")


@dataclass
class BatchResult:
    """Per-batch bookkeeping (message ids)."""
    received: int = 0
    succeeded: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)


class OrderConsumer:
    """Consumes order messages from a DurableQueue."""

    def __init__(
        self,
        queue: DurableQueue,
        store: OrderStore,
        router: Optional[EventRouter] = None,
        batch_size: int = 10,
    ):
        self.queue = queue
        self.store = store
        self.router = router
        self.batch_size = batch_size

    def handle_message(self, message: ReceivedMessage) -> Order:
        """
        Persist one message's order and emit OrderCreated.

        Raises:
            TransientProcessingError: If the body is not a valid order
            Any store error propagates unchanged
        """
        try:
            order = Order.model_validate_json(message.body)
        except ValidationError as e:
            raise TransientProcessingError(
                f"Malformed order in message {message.message_id}: {e.error_count()} errors"
            ) from e

        order = order.model_copy(update={
            "status": OrderStatus.SUBMITTED.value,
            "processed_at": utc_now_iso(),
        })
        record, created = self.store.upsert_submission(order)

        if created or record.status == OrderStatus.SUBMITTED:
            self._emit_created(record)
        return record

    def _emit_created(self, record: Order) -> None:
        if self.router is None:
            return
        try:
            self.router.route(order_created(record))
        except Exception as e:
            logger.error(f"Failed to emit OrderCreated for {record.order_id}: {e}")

    def process_batch(self) -> BatchResult:
        """Receive up to batch_size messages and handle each one."""
        messages = self.queue.dequeue(self.batch_size)
        result = BatchResult(received=len(messages))

        for message in messages:
            try:
                self.handle_message(message)
            except Exception as e:
                logger.error(
                    f"Error processing message {message.message_id} "
                    f"(attempt {message.receive_count}): {e}"
                )
                logger.debug(f"Message body: {message.body}")
                result.failed.append(message.message_id)
                continue

            if self.queue.ack(message.receipt_handle):
                result.succeeded.append(message.message_id)
            else:
                # Visibility lapsed mid-processing; the queue will redeliver.
                result.failed.append(message.message_id)

        if messages:
            logger.info(
                f"Batch done: {len(result.succeeded)} ok, {len(result.failed)} failed "
                f"of {result.received}"
            )
        return result

    def drain(self, max_batches: int = 100) -> int:
        """
        Process batches until the queue has no visible messages.

        Returns:
            Number of messages handled successfully.
        """
        handled = 0
        for _ in range(max_batches):
            result = self.process_batch()
            if result.received == 0:
                break
            handled += len(result.succeeded)
        return handled


class ConsumerPool:
    """
    Worker threads polling the queue.

    Each worker loops over process_batch() and sleeps poll_interval whenever
    the queue comes back empty.
    """

    def __init__(self, consumer: OrderConsumer, workers: int = 2, poll_interval: float = 0.5):
        self.consumer = consumer
        self.workers = workers
        self.poll_interval = poll_interval
        self._stop = threading.Event()
        self._threads: list[threading.Thread] = []

    @property
    def running(self) -> bool:
        return any(t.is_alive() for t in self._threads)

    def start(self) -> None:
        if self.running:
            logger.warning("ConsumerPool already started")
            return
        self._stop.clear()
        self._threads = [
            threading.Thread(target=self._run, name=f"order-consumer-{i}", daemon=True)
            for i in range(self.workers)
        ]
        for thread in self._threads:
            thread.start()
        logger.info(f"ConsumerPool started with {self.workers} workers")

    def stop(self, timeout: Optional[float] = 5.0) -> None:
        self._stop.set()
        for thread in self._threads:
            thread.join(timeout)
        self._threads = []
        logger.info("ConsumerPool stopped")

    def _run(self) -> None:
        while not self._stop.is_set():
            try:
                result = self.consumer.process_batch()
            except Exception:
                logger.exception("Consumer batch failed")
                self._stop.wait(self.poll_interval)
                continue
            if result.received == 0:
                self._stop.wait(self.poll_interval)
