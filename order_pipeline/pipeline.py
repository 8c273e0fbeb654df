"""
Composition root: builds every pipeline component from Settings.

All collaborators are constructed here and passed in explicitly; nothing in
the pipeline reaches for a module-level singleton. Tests and the API build
their own OrderPipeline, optionally replacing any collaborator.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Optional

from order_pipeline.consumer import ConsumerPool, OrderConsumer
from order_pipeline.durable_queue import Clock, DurableQueue
from order_pipeline.ingress import IngressGateway
from order_pipeline.notification_service import NotificationService
from order_pipeline.router import EventRouter, build_default_rules
from order_pipeline.services.inventory import InventoryService
from order_pipeline.services.payment import PaymentGateway, SimulatedPaymentGateway
from order_pipeline.workflow import WorkflowOrchestrator
from shared.channels import EmailChannel
from shared.config import Settings
from shared.data_store import OrderStore
from shared.models import Order

logger = logging.getLogger("pipeline")


class OrderPipeline:
    """
    The wired-up order pipeline.

    Example:
        pipeline = OrderPipeline(Settings(inline_workflows=True))
        pipeline.submit({"orderId": "T1", "items": [{"name": "Desk", "price": 999}]})
        pipeline.drain()
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        store: Optional[OrderStore] = None,
        channel: Optional[EmailChannel] = None,
        payment_gateway: Optional[PaymentGateway] = None,
        inventory: Optional[InventoryService] = None,
        clock: Optional[Clock] = None,
    ):
        self.settings = settings = settings or Settings()

        self.store = store or OrderStore(settings.data_file)
        self.queue = DurableQueue(
            visibility_timeout=settings.visibility_timeout,
            max_receive_count=settings.max_receive_count,
            clock=clock,
        )
        self.channel = channel or EmailChannel(
            from_addr=settings.sender_address,
            history_limit=settings.history_limit,
        )
        self.notifications = NotificationService(channel=self.channel, topic_arn=settings.topic_arn)
        self.router = EventRouter(event_log_size=settings.history_limit)

        self._executor: Optional[ThreadPoolExecutor] = None
        self.orchestrator = WorkflowOrchestrator(
            store=self.store,
            payment_gateway=payment_gateway or SimulatedPaymentGateway(settings.payment_success_rate),
            inventory=inventory or InventoryService(),
            notifications=self.notifications,
            emit=self.router.route,
            max_order_value=settings.max_order_value,
            history_limit=settings.history_limit,
        )
        if not settings.inline_workflows:
            self._install_executor()
        for rule in build_default_rules(self.orchestrator, self.notifications, settings.high_value_threshold):
            self.router.add_rule(rule)

        self.consumer = OrderConsumer(self.queue, self.store, self.router, batch_size=settings.batch_size)
        self.pool = ConsumerPool(
            self.consumer,
            workers=settings.consumer_workers,
            poll_interval=settings.poll_interval,
        )
        self.ingress = IngressGateway(self.queue)

    def _install_executor(self) -> None:
        self._executor = ThreadPoolExecutor(
            max_workers=self.settings.workflow_workers,
            thread_name_prefix="workflow",
        )
        self.orchestrator.executor = self._executor

    def submit(self, payload: Any) -> tuple[Order, str]:
        """Validate and enqueue a submission (see IngressGateway.accept)."""
        return self.ingress.accept(payload)

    def drain(self, timeout: Optional[float] = 10.0) -> int:
        """
        Consume everything currently queued on the calling thread and wait
        for the workflows it started.

        Returns:
            Number of messages handled successfully.
        """
        handled = self.consumer.drain()
        self.orchestrator.join(timeout)
        return handled

    def start(self) -> None:
        """Start the background consumer workers."""
        self.pool.start()

    def stop(self, timeout: Optional[float] = 5.0) -> None:
        """
        Stop the consumers, then let running workflows finish.

        The pipeline can be started again afterwards; workflow threads are
        recreated on a fresh executor.
        """
        self.pool.stop(timeout)
        self.orchestrator.join(timeout)
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._install_executor()
        if self.settings.data_file is not None:
            self.store.snapshot()
        logger.info("Pipeline stopped")
