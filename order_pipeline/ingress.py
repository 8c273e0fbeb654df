"""
Ingress gateway: the producer side of the queue.

Accepts an order submission, checks its shape, enqueues it and returns at
once. Business rules (value bounds, prices) are the workflow's job; the
gateway only refuses bodies that cannot become an Order.
"""

import logging
from typing import Any

from pydantic import ValidationError

from order_pipeline.durable_queue import DurableQueue
from shared.errors import InputValidationError
from shared.models import Order, OrderSubmission

logger = logging.getLogger("ingress")


def _summarize(error: ValidationError) -> str:
    parts = []
    for err in error.errors():
        location = ".".join(str(p) for p in err["loc"]) or "body"
        parts.append(f"{location}: {err['msg']}")
    return "; ".join(parts)


class IngressGateway:
    def __init__(self, queue: DurableQueue):
        self.queue = queue

    def accept(self, payload: Any) -> tuple[Order, str]:
        """
        Validate and enqueue a submission.

        Returns:
            (order, message_id)

        Raises:
            InputValidationError: If the payload is not a valid submission;
                nothing is enqueued
        """
        if not isinstance(payload, dict):
            raise InputValidationError("Order body must be a JSON object")
        try:
            submission = OrderSubmission.model_validate(payload)
        except ValidationError as e:
            raise InputValidationError(
                _summarize(e),
                errors=e.errors(include_url=False, include_context=False),
            ) from e

        order = submission.to_order()
        message_id = self.queue.enqueue(order.model_dump_json(by_alias=True))
        logger.info(f"Queued order {order.order_id} as message {message_id}")
        return order, message_id
