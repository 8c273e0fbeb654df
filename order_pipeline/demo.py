"""
Demonstration scripts for the order pipeline.

These functions push orders through a fully wired pipeline on the calling
thread and print what happened: which rules fired, where each workflow
ended, and which notifications went out.
"""

import random

from order_pipeline.pipeline import OrderPipeline
from order_pipeline.services.payment import SimulatedPaymentGateway
from shared.config import Settings, configure_logging

configure_logging()

SUBSCRIBER = "ops@example.com"


def _build_pipeline(payment_success_rate: float = 1.0, seed: int = 7) -> OrderPipeline:
    """A pipeline that runs workflows inline, with one confirmed subscriber."""
    settings = Settings(inline_workflows=True, consumer_workers=0)
    pipeline = OrderPipeline(
        settings,
        payment_gateway=SimulatedPaymentGateway(payment_success_rate, rng=random.Random(seed)),
    )
    subscription = pipeline.notifications.subscribe(SUBSCRIBER)
    pipeline.notifications.confirm(subscription.confirmation_token)
    pipeline.channel.clear_history()
    return pipeline


def _banner(title: str) -> None:
    print("\n" + "=" * 70)
    print(f"ORDER PIPELINE DEMO: {title}")
    print("=" * 70 + "\n")


def _report(pipeline: OrderPipeline) -> None:
    print("\n" + "-" * 70)
    print("Stored orders:")
    for order in pipeline.store.scan():
        extra = f" ({order.failure_reason})" if order.failure_reason else ""
        print(f"  {order.order_id}: {order.status}{extra}")
    print("\nWorkflow executions:")
    for execution in pipeline.orchestrator.executions():
        steps = " -> ".join(step.value for step in execution.visited_steps)
        print(f"  {execution.execution_id}: {steps} -> {execution.current_step.value}")
    print("\nNotifications sent:")
    for msg in pipeline.channel.sent_messages:
        print(f"  {msg}")
    print("-" * 70)


def run_happy_path_demo():
    """
    An urgent, high-value order.

    This shows:
    1. The order is accepted and queued
    2. The consumer stores it and routes OrderCreated
    3. The high-value, order-created and urgent rules all fire
    4. The workflow completes and OrderCompleted is published
    """
    _banner("Urgent high-value order")
    pipeline = _build_pipeline()

    pipeline.submit({
        "orderId": "T1",
        "customerName": "Alice Example",
        "customerEmail": "alice@example.com",
        "priority": "urgent",
        "items": [{"name": "Standing desk", "quantity": 1, "price": 999}],
    })
    pipeline.drain()
    _report(pipeline)
    return list(pipeline.channel.sent_messages)


def run_low_value_demo():
    """An order at the threshold: stored and announced, but no workflow."""
    _banner("Order at the high-value threshold")
    pipeline = _build_pipeline()

    pipeline.submit({
        "orderId": "T2",
        "customerName": "Bob Example",
        "customerEmail": "bob@example.com",
        "items": [{"name": "Monitor arm", "quantity": 2, "price": 250}],
    })
    pipeline.drain()
    _report(pipeline)
    return list(pipeline.channel.sent_messages)


def run_failure_demo():
    """
    Orders that fail inside the workflow.

    One exceeds the maximum order value (rejected by Validate), the other is
    declined by the payment gateway. Both end in HandleFailure -> Failed and
    an OrderFailed notification.
    """
    _banner("Workflow failures")
    pipeline = _build_pipeline(payment_success_rate=0.0)

    pipeline.submit({
        "orderId": "T3",
        "customerName": "Carol Example",
        "customerEmail": "carol@example.com",
        "items": [{"name": "Server rack", "quantity": 1, "price": 12000}],
    })
    pipeline.submit({
        "orderId": "T4",
        "customerName": "David Example",
        "customerEmail": "david@example.com",
        "items": [{"name": "Laptop", "quantity": 1, "price": 1500}],
    })
    pipeline.drain()
    _report(pipeline)
    return list(pipeline.channel.sent_messages)


def run_dead_letter_demo():
    """
    A poison message.

    The body is not an order, so every receive fails. After three receives
    the queue moves it to the dead-letter store.
    """
    _banner("Poison message and dead-letter store")
    now = [0.0]
    pipeline = OrderPipeline(
        Settings(inline_workflows=True, consumer_workers=0),
        clock=lambda: now[0],
    )

    pipeline.queue.enqueue("this is not an order")
    for attempt in range(1, 4):
        result = pipeline.consumer.process_batch()
        print(f"Attempt {attempt}: {len(result.failed)} failed")
        now[0] += pipeline.queue.visibility_timeout

    dead = pipeline.queue.dead_letters()
    print(f"\nQueue depth: {pipeline.queue.depth()}, dead letters: {len(dead)}")
    for message in dead:
        print(f"  {message.message_id}: receiveCount={message.receive_count} body={message.body!r}")
    return dead


def run_all_demos():
    run_happy_path_demo()
    run_low_value_demo()
    run_failure_demo()
    run_dead_letter_demo()


if __name__ == "__main__":
    run_all_demos()
