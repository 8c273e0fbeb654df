"""
Asynchronous order-processing pipeline.

This package implements the processing side of the system:
- A durable queue and the consumers that persist submitted orders
- A rule-based router that fans lifecycle events out to handlers
- The workflow state machine (validate, pay, reserve stock, notify)
- The notification registry and publisher
"""

from order_pipeline.durable_queue import DurableQueue
from order_pipeline.events import EventType, OrderEvent
from order_pipeline.notification_service import NotificationService
from order_pipeline.pipeline import OrderPipeline
from order_pipeline.router import EventRouter, Rule
from order_pipeline.workflow import WorkflowOrchestrator, WorkflowStep

__all__ = [
    "DurableQueue",
    "EventType",
    "OrderEvent",
    "NotificationService",
    "OrderPipeline",
    "EventRouter",
    "Rule",
    "WorkflowOrchestrator",
    "WorkflowStep",
]
