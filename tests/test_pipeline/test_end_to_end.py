"""
End-to-end tests: submission -> queue -> consumer -> router -> workflow ->
notifications, all wired by OrderPipeline.
"""

import time

import pytest

from order_pipeline.services.inventory import InventoryService
from shared.errors import InputValidationError
from shared.models import OrderStatus


@pytest.fixture
def ops_inbox(make_pipeline, email_channel):
    """A pipeline with one confirmed, fully opted-in subscriber."""
    pipeline = make_pipeline()
    subscription = pipeline.notifications.subscribe("ops@example.com")
    pipeline.notifications.confirm(subscription.confirmation_token)
    email_channel.clear_history()
    yield {"pipeline": pipeline, "channel": email_channel}


def subjects(channel) -> set[str]:
    return {m.subject for m in channel.messages_to("ops@example.com")}


class TestUrgentHighValueOrder:
    """The urgent $999 order: created + urgent notifications and a workflow."""

    def test_full_flow(self, ops_inbox, urgent_submission):
        pipeline, channel = ops_inbox["pipeline"], ops_inbox["channel"]

        order, message_id = pipeline.submit(urgent_submission)
        assert order.order_id == "T1"
        assert pipeline.queue.depth() == 1

        assert pipeline.drain() == 1

        record = pipeline.store.get("T1", urgent_submission["timestamp"])
        assert record.status == OrderStatus.COMPLETED
        assert record.transaction_id == "TXN-TEST-T1"
        assert subjects(channel) == {
            "New Order T1",
            "URGENT: Order T1",
            "Order T1 - Processing Complete",
        }
        assert pipeline.queue.stats() == {"visible": 0, "inFlight": 0, "deadLetters": 0}

    def test_redelivered_submission_runs_workflow_once(self, ops_inbox, urgent_submission, approving_gateway):
        pipeline = ops_inbox["pipeline"]

        pipeline.submit(urgent_submission)
        pipeline.submit(urgent_submission)
        pipeline.drain()

        assert pipeline.store.count() == 1
        assert approving_gateway.charged == ["T1"]
        assert len(pipeline.orchestrator.executions()) == 1


class TestLowValueOrder:
    def test_no_workflow_at_threshold(self, ops_inbox):
        """Test that an order worth exactly 500 is stored but not processed."""
        pipeline, channel = ops_inbox["pipeline"], ops_inbox["channel"]

        pipeline.submit({
            "orderId": "T2",
            "timestamp": "2024-05-01T12:05:00+00:00",
            "items": [{"name": "Chair", "quantity": 2, "price": 250}],
        })
        pipeline.drain()

        record = pipeline.store.get_by_order_id("T2")[0]
        assert record.order_value == 500
        assert record.status == OrderStatus.SUBMITTED
        assert pipeline.orchestrator.executions() == []
        assert subjects(channel) == {"New Order T2"}


class TestFailingOrders:
    def test_payment_declined(self, make_pipeline, declining_gateway, email_channel, urgent_submission):
        pipeline = make_pipeline(payment_gateway=declining_gateway)
        pipeline.notifications.confirm(
            pipeline.notifications.subscribe("ops@example.com", {"orderCreated": False, "orderUrgent": False})
            .confirmation_token
        )
        email_channel.clear_history()

        pipeline.submit(urgent_submission)
        pipeline.drain()

        record = pipeline.store.get("T1", urgent_submission["timestamp"])
        assert record.status == OrderStatus.FAILED
        assert record.failure_reason == "Payment declined"
        assert [m.subject for m in email_channel.sent_messages] == ["Order T1 - Processing Failed"]

    def test_over_limit_fails_validation(self, ops_inbox):
        pipeline, channel = ops_inbox["pipeline"], ops_inbox["channel"]

        pipeline.submit({"orderId": "T3", "orderValue": 12000, "items": [{"name": "Server", "price": 12000}]})
        pipeline.drain()

        record = pipeline.store.get_by_order_id("T3")[0]
        assert record.status == OrderStatus.FAILED
        assert record.validation_result.has_valid_value is False
        assert "Order T3 - Processing Failed" in subjects(channel)

    def test_out_of_stock(self, make_pipeline, urgent_submission):
        pipeline = make_pipeline(inventory=InventoryService({"Standing desk": 0}))

        pipeline.submit(urgent_submission)
        pipeline.drain()

        assert pipeline.store.get_by_order_id("T1")[0].status == OrderStatus.FAILED


class TestIngress:
    def test_rejects_missing_order_id(self, make_pipeline):
        pipeline = make_pipeline()
        with pytest.raises(InputValidationError):
            pipeline.submit({"items": []})
        assert pipeline.queue.depth() == 0

    def test_rejects_non_object(self, make_pipeline):
        with pytest.raises(InputValidationError):
            make_pipeline().submit(["not", "an", "order"])

    def test_processing_fields_are_ignored(self, make_pipeline, urgent_submission):
        pipeline = make_pipeline()
        order, _ = pipeline.submit({**urgent_submission, "status": "completed", "transactionId": "forged"})

        assert order.status == OrderStatus.SUBMITTED
        assert order.transaction_id is None


class TestPoisonMessages:
    def test_malformed_message_is_dead_lettered(self, make_pipeline, clock):
        pipeline = make_pipeline()
        pipeline.queue.enqueue("{broken")

        for _ in range(3):
            pipeline.drain()
            clock.advance(30)

        assert pipeline.queue.depth() == 0
        assert len(pipeline.queue.dead_letters()) == 1
        assert pipeline.store.count() == 0


class TestBackgroundWorkers:
    def test_start_and_stop(self, make_pipeline, urgent_submission):
        pipeline = make_pipeline(consumer_workers=2, poll_interval=0.01, inline_workflows=False)
        pipeline.start()
        try:
            pipeline.submit(urgent_submission)
            for _ in range(500):
                record = pipeline.store.get("T1", urgent_submission["timestamp"])
                if record is not None and record.is_terminal():
                    break
                time.sleep(0.01)
        finally:
            pipeline.stop()

        assert pipeline.store.get("T1", urgent_submission["timestamp"]).status == OrderStatus.COMPLETED
        assert not pipeline.pool.running

    def test_restart_runs_workflows_again(self, make_pipeline, urgent_submission):
        """Test that workflows still run after a stop() and start() cycle."""
        pipeline = make_pipeline(inline_workflows=False)
        pipeline.start()
        pipeline.stop()
        pipeline.start()
        try:
            pipeline.submit(urgent_submission)
            pipeline.drain()
        finally:
            pipeline.stop()

        record = pipeline.store.get("T1", urgent_submission["timestamp"])
        assert record.status == OrderStatus.COMPLETED
        assert pipeline.orchestrator.executions()[0].succeeded
